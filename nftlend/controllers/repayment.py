"""
repayment.py - Repayment Controller

Turns a payment amount into the split the loan core expects:

    interest  = accrued since the last payment (see loans.interest)
    principal = min(amount - interest, balance)
    lender    = interest + principal - lender fees (frozen in the loan)

Also the entry point for lenders: claiming defaulted collateral and redeeming
note receipts. Both require the caller to hold the lender note.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Tuple

from ..core import InvalidLoanState, InvalidRepayment, NoReceipt, NotLender, ZeroAmount
from ..loan_core import LoanCore
from ..loans.fees import LENDER_DEFAULT_FEE, LENDER_REDEEM_FEE, bps_of
from ..loans.interest import loan_interest
from ..loans.terms import LoanState


class RepaymentController:
    """
    Example:
        repayment = RepaymentController(core)
        repayment.amount_due(loan_id)              # Decimal("1050.00")
        repayment.repay_full(loan_id, caller="alice")
    """

    def __init__(self, loan_core: LoanCore):
        self.loan_core = loan_core
        self.ledger = loan_core.ledger

    def _places(self, token: str):
        return self.ledger.get_unit(token).decimal_places

    def _split_payment(self, loan_id: int, amount: Decimal) -> Tuple[Decimal, Decimal, Decimal]:
        """
        Returns:
            (amount_to_lender, interest_amount, payment_to_principal)
        """
        loan = self.loan_core.get_loan(loan_id)
        if loan.state is not LoanState.ACTIVE:
            raise InvalidLoanState(f"loan {loan_id} is {loan.state.value}")
        if amount <= 0:
            raise ZeroAmount("repayment amount must be positive")

        places = self._places(loan.terms.payable_currency)
        interest = loan_interest(loan, self.ledger.current_time, places)
        if amount < interest:
            raise InvalidRepayment(f"payment {amount} does not cover interest {interest}")
        payment_to_principal = min(amount - interest, loan.balance)

        interest_fee = bps_of(interest, loan.fee_snapshot.lender_interest_fee, places)
        principal_fee = bps_of(payment_to_principal, loan.fee_snapshot.lender_principal_fee, places)
        amount_to_lender = interest + payment_to_principal - interest_fee - principal_fee
        return amount_to_lender, interest, payment_to_principal

    def _require_lender(self, loan_id: int, caller: str) -> None:
        if self.loan_core.lender_note.owner_of(self.ledger, loan_id) != caller:
            raise NotLender(f"{caller} does not hold the lender note of loan {loan_id}")

    # ========================================================================
    # BORROWER SIDE
    # ========================================================================

    def amount_due(self, loan_id: int) -> Decimal:
        """Balance plus accrued interest; zero once the loan is closed."""
        loan = self.loan_core.get_loan(loan_id)
        if loan.state is not LoanState.ACTIVE:
            return Decimal("0")
        places = self._places(loan.terms.payable_currency)
        return loan.balance + loan_interest(loan, self.ledger.current_time, places)

    def repay(self, loan_id: int, amount: Decimal, caller: str) -> None:
        """
        Pay `amount` toward a loan. Anyone may pay; the payment comes from caller.

        Anything above the amount due is not collected.

        Raises:
            ZeroAmount: If amount is not positive
            InvalidRepayment: If amount does not cover accrued interest
        """
        amount_to_lender, interest, principal = self._split_payment(loan_id, amount)
        self.loan_core.repay(loan_id, caller, amount_to_lender, interest, principal)

    def repay_full(self, loan_id: int, caller: str) -> None:
        self.repay(loan_id, self.amount_due(loan_id), caller)

    def force_repay(self, loan_id: int, amount: Decimal, caller: str) -> None:
        """Like repay, but the lender's share is held for it in a note receipt."""
        amount_to_lender, interest, principal = self._split_payment(loan_id, amount)
        self.loan_core.force_repay(loan_id, caller, amount_to_lender, interest, principal)

    # ========================================================================
    # LENDER SIDE
    # ========================================================================

    def claim(self, loan_id: int, caller: str) -> None:
        """
        Take the collateral of an expired loan.

        The claim fee is the lender default fee on the outstanding balance.

        Raises:
            NotLender: If caller does not hold the lender note
            LoanNotExpired: Before due date + grace period
        """
        self._require_lender(loan_id, caller)
        loan = self.loan_core.get_loan(loan_id)
        fee = bps_of(
            loan.balance,
            self.loan_core.fee_controller.get(LENDER_DEFAULT_FEE),
            self._places(loan.terms.payable_currency),
        )
        self.loan_core.claim(loan_id, fee)

    def redeem_note(self, loan_id: int, to: str, caller: str) -> None:
        """
        Collect the funds held in a note receipt, less the redeem fee.

        Raises:
            NotLender: If caller does not hold the lender note
            NoReceipt: If nothing is held for the note
        """
        self._require_lender(loan_id, caller)
        receipt = self.loan_core.note_receipt(loan_id)
        if receipt is None or receipt.amount <= 0:
            raise NoReceipt(f"no funds held for loan {loan_id}")
        fee = bps_of(
            receipt.amount,
            self.loan_core.fee_controller.get(LENDER_REDEEM_FEE),
            self._places(receipt.token),
        )
        self.loan_core.redeem_note(loan_id, fee, to)
