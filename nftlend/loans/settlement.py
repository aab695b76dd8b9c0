"""
settlement.py - Net Settlement Calculator

Whenever a loan is closed and replaced by another (rollover, migration from
a foreign protocol), money has to move between up to three parties: the old
lender, the new lender and the borrower. Instead of a full repayment followed
by a fresh origination, only net amounts move.

=== NETTING POLICY ===

    repay_amount   = old balance + accrued interest (+ flash premium)
    borrower_owed  = new principal - borrower fees

    repay_amount > borrower_owed  ->  need_from_borrower = difference
    repay_amount < borrower_owed  ->  leftover_principal = difference (to the borrower)

Different lender:
    new lender supplies the new principal, the old lender is paid the
    repay amount (net of fees) out of it.

Same lender:
    only the delta moves. If the lender is owed more than it would supply,
    it receives the difference; otherwise it supplies the difference.

=== INVARIANT ===

need_from_borrower and leftover_principal are never both non-zero. The check
lives in check_funds_conflict() and in SettlementAmounts itself, so any call
site that derives the two numbers independently fails with FundsConflict
instead of silently picking one.

All functions here are pure.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from ..core import FundsConflict
from .fees import bps_of


ZERO = Decimal("0")


def check_funds_conflict(need_from_borrower: Decimal, leftover_principal: Decimal) -> None:
    """
    Raises:
        FundsConflict: If funds are owed both by and to the borrower
    """
    if need_from_borrower > 0 and leftover_principal > 0:
        raise FundsConflict(
            f"borrower would both pay {need_from_borrower} and receive {leftover_principal}"
        )


def net_settlement(repay_amount: Decimal, borrower_owed: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Net what the borrower owes against what it is owed.

    Returns:
        (need_from_borrower, leftover_principal), at most one non-zero
    """
    if repay_amount > borrower_owed:
        return repay_amount - borrower_owed, ZERO
    return ZERO, borrower_owed - repay_amount


@dataclass(frozen=True, slots=True)
class SettlementAmounts:
    """
    Net transfers for closing one loan into another.

    Attributes:
        need_from_borrower: Shortfall the borrower must supply
        leftover_principal: Surplus destined to the borrower
        amount_from_lender: What the new lender supplies
        amount_to_old_lender: Paid to the old lender (different lender only)
        amount_to_lender: Paid to the new lender (same lender only)
        amount_to_borrower: Paid to the borrower
        settled_amount: Everything collected by the settling contract
        interest_amount: Interest being closed out on the old loan
        flash_amount_due: Flash loan principal plus premium (migrations only)
    """
    need_from_borrower: Decimal
    leftover_principal: Decimal
    amount_from_lender: Decimal
    amount_to_old_lender: Decimal
    amount_to_lender: Decimal
    amount_to_borrower: Decimal
    settled_amount: Decimal
    interest_amount: Decimal = ZERO
    flash_amount_due: Decimal = ZERO

    def __post_init__(self):
        check_funds_conflict(self.need_from_borrower, self.leftover_principal)

    @property
    def total_payout(self) -> Decimal:
        return self.amount_to_old_lender + self.amount_to_lender + self.amount_to_borrower

    @property
    def fee(self) -> Decimal:
        """Residual kept by the protocol."""
        return self.settled_amount - self.total_payout


def calculate_rollover_amounts(
    old_balance: Decimal,
    interest: Decimal,
    new_principal: Decimal,
    same_lender: bool,
    borrower_fee: Decimal = ZERO,
    lender_fee: Decimal = ZERO,
    repayment_fee: Decimal = ZERO,
) -> SettlementAmounts:
    """
    Compute the net transfers for rolling a loan over into new terms.

    Args:
        old_balance: Outstanding principal of the old loan
        interest: Interest accrued on the old loan
        new_principal: Principal of the new loan
        same_lender: Whether the new lender is the old lender
        borrower_fee: Rollover fee charged to the borrower
        lender_fee: Rollover fee charged to the new lender
        repayment_fee: Interest and principal fees withheld from the old lender

    Returns:
        SettlementAmounts; settled_amount - total_payout is the protocol fee

    Example:
        # Old loan 100 + 10 interest, same lender, new principal 100, 0.1 fee
        amounts = calculate_rollover_amounts(
            Decimal("100"), Decimal("10"), Decimal("100"), True,
            borrower_fee=Decimal("0.1"),
        )
        amounts.need_from_borrower   # 10.1
        amounts.amount_to_lender     # 10
        amounts.fee                  # 0.1
    """
    repay_amount = old_balance + interest
    borrower_owed = new_principal - borrower_fee
    amount_to_lender = repay_amount - repayment_fee
    amount_from_lender = new_principal + lender_fee

    need_from_borrower, leftover_principal = net_settlement(repay_amount, borrower_owed)

    amount_to_old_lender = ZERO
    if not same_lender:
        amount_to_old_lender = amount_to_lender
        amount_to_lender = ZERO
    elif amount_from_lender > amount_to_lender:
        amount_from_lender -= amount_to_lender
        amount_to_lender = ZERO
    else:
        amount_to_lender -= amount_from_lender
        amount_from_lender = ZERO

    return SettlementAmounts(
        need_from_borrower=need_from_borrower,
        leftover_principal=leftover_principal,
        amount_from_lender=amount_from_lender,
        amount_to_old_lender=amount_to_old_lender,
        amount_to_lender=amount_to_lender,
        amount_to_borrower=leftover_principal,
        settled_amount=amount_from_lender + need_from_borrower,
        interest_amount=interest,
    )


def calculate_migration_amounts(
    old_repay_amount: Decimal,
    flash_premium_bps: int,
    new_principal: Decimal,
    borrower_fee: Decimal = ZERO,
    lender_fee: Decimal = ZERO,
    places: Optional[int] = None,
) -> SettlementAmounts:
    """
    Compute the net transfers for migrating a foreign loan via a flash loan.

    The flash loan pays off the foreign loan; the new loan's proceeds repay
    the flash loan. The premium is folded into the repay amount and the
    borrower's origination fee into what the borrower is owed, then the
    shared netting applies.

    Args:
        old_repay_amount: Full payoff of the foreign loan (the flash amount)
        flash_premium_bps: Flash lender premium in bps
        new_principal: Principal of the new loan
        borrower_fee: Borrower origination fee on the new loan
        lender_fee: Lender origination fee on the new loan
        places: Currency decimal places for the premium

    Returns:
        SettlementAmounts with flash_amount_due set
    """
    flash_amount_due = old_repay_amount + bps_of(old_repay_amount, flash_premium_bps, places)
    borrower_owed = new_principal - borrower_fee
    need_from_borrower, leftover_principal = net_settlement(flash_amount_due, borrower_owed)
    amount_from_lender = new_principal + lender_fee

    return SettlementAmounts(
        need_from_borrower=need_from_borrower,
        leftover_principal=leftover_principal,
        amount_from_lender=amount_from_lender,
        amount_to_old_lender=old_repay_amount,
        amount_to_lender=ZERO,
        amount_to_borrower=leftover_principal,
        settled_amount=amount_from_lender + need_from_borrower,
        flash_amount_due=flash_amount_due,
    )
