"""
migration.py - Migration Controller

Moves a loan from another lending protocol into this one without the
borrower ever giving up the collateral for longer than one operation.

=== TWO-PHASE PROTOCOL ===

    migrate_loan()                       (phase 1)
        plan the amounts, record a fingerprint of the operation,
        ask the flash lender for the foreign repay amount
              |
              v
    flash lender pays the controller, then calls back
              |
              v
    receive_flash_loan()                 (phase 2)
        1. check the callback carries the recorded fingerprint
        2. repay the foreign loan (collateral goes back to the borrower)
        3. move the collateral from the borrower to the controller
        4. start the new loan with the controller as borrower
        5. settle with the borrower: collect the shortfall or pay the surplus
        6. hand the borrower note to the borrower
              |
              v
    flash lender takes back amount + premium

The planned settlement and the one computed inside the callback are
cross-checked, so a premium that differs from the advertised one cannot make
the borrower both pay and receive.

Everything runs inside one loan core checkpoint: a failure anywhere,
including the flash lender failing to recover its funds, undoes it all.
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from ..core import (
    Move, ExecuteResult,
    NotCounterparty, RolloverMismatch, ReentrancyError, CallbackMismatch, TransferFailed,
    content_hash,
)
from ..interfaces import FlashLender, ForeignLoan, ForeignLoanSource
from ..loan_core import LoanCore
from ..loans.fees import BORROWER_ORIGINATION_FEE, LENDER_ORIGINATION_FEE, bps_of
from ..loans.settlement import (
    SettlementAmounts, calculate_migration_amounts, check_funds_conflict, net_settlement,
)
from ..loans.terms import LoanTerms, Side
from ..units.collateral import collateral_symbol
from .origination import OriginationController


@dataclass(slots=True)
class _Migration:
    """Operation in flight between phase 1 and phase 2."""
    fingerprint: str
    foreign: ForeignLoan
    new_terms: LoanTerms
    lender: str
    signature: Any
    nonce: int
    max_uses: int
    planned: SettlementAmounts
    in_callback: bool = False
    new_loan_id: Optional[int] = None


class MigrationController:
    """
    Example:
        migration = MigrationController(core, origination, flash_lender, foreign)
        loan_id = migration.migrate_loan(
            foreign_loan_id=7, new_terms=terms, lender="bob",
            signature=lender_sig, nonce=1, max_uses=1, caller="alice",
        )
    """

    def __init__(
        self,
        loan_core: LoanCore,
        origination: OriginationController,
        flash_lender: FlashLender,
        foreign_source: ForeignLoanSource,
        wallet: str = "migration_controller",
    ):
        self.loan_core = loan_core
        self.ledger = loan_core.ledger
        self.origination = origination
        self.flash_lender = flash_lender
        self.foreign_source = foreign_source
        self.wallet = self.ledger.ensure_wallet(wallet)
        self._active: Optional[_Migration] = None

    # ========================================================================
    # PHASE 1
    # ========================================================================

    def migrate_loan(
        self,
        foreign_loan_id: int,
        new_terms: LoanTerms,
        lender: str,
        signature: Any,
        nonce: int,
        max_uses: int,
        caller: str,
    ) -> int:
        """
        Refinance a foreign loan into a new loan here.

        Args:
            foreign_loan_id: Loan id in the foreign protocol
            new_terms: Terms of the new loan, signed by lender
            lender: Lender of the new loan
            signature: Lender signature over the terms
            nonce: Lender nonce bound in the signature
            max_uses: How many times the signature may be used
            caller: Borrower of the foreign loan

        Returns:
            The new loan id

        Raises:
            ReentrancyError: If a migration is already in flight
            NotCounterparty: If caller is not the foreign loan's borrower
            RolloverMismatch: If collateral or currency differ
            FundsConflict: If the flash premium differs so that the borrower
                would both pay and receive
        """
        if self._active is not None:
            raise ReentrancyError("a migration is already in progress")

        foreign = self.foreign_source.load_loan(self.ledger, foreign_loan_id)
        if caller != foreign.borrower:
            raise NotCounterparty(f"{caller} is not the borrower of foreign loan {foreign_loan_id}")
        if new_terms.collateral_key != (foreign.collateral_address, foreign.collateral_id):
            raise RolloverMismatch("migration must keep the same collateral")
        if new_terms.payable_currency != foreign.currency:
            raise RolloverMismatch("migration must keep the same currency")

        token = new_terms.payable_currency
        places = self.ledger.get_unit(token).decimal_places
        fees = self.loan_core.fee_controller
        planned = calculate_migration_amounts(
            foreign.repay_amount,
            self.flash_lender.premium_bps,
            new_terms.principal,
            borrower_fee=bps_of(new_terms.principal, fees.get(BORROWER_ORIGINATION_FEE), places),
            lender_fee=bps_of(new_terms.principal, fees.get(LENDER_ORIGINATION_FEE), places),
            places=places,
        )
        fingerprint = content_hash(
            "migration", foreign_loan_id, caller, lender,
            new_terms.digest(nonce, max_uses, Side.LENDER),
            planned.flash_amount_due, self.ledger.current_time,
        )

        migration = _Migration(
            fingerprint=fingerprint,
            foreign=foreign,
            new_terms=new_terms,
            lender=lender,
            signature=signature,
            nonce=nonce,
            max_uses=max_uses,
            planned=planned,
        )
        self._active = migration
        try:
            with self.loan_core.checkpoint():
                self.flash_lender.flash_loan(self, token, foreign.repay_amount, fingerprint)
                if migration.new_loan_id is None:
                    raise CallbackMismatch("flash lender never called back")
        finally:
            self._active = None
        return migration.new_loan_id

    # ========================================================================
    # PHASE 2
    # ========================================================================

    def receive_flash_loan(self, token: str, amount: Decimal, premium: Decimal, user_data: Any) -> None:
        """
        Flash loan callback. Only accepted for the migration in flight.

        Raises:
            CallbackMismatch: If no migration matches user_data, token or amount
            ReentrancyError: If called again from inside the callback
        """
        migration = self._active
        if migration is None or user_data != migration.fingerprint:
            raise CallbackMismatch("unexpected flash loan callback")
        if migration.in_callback:
            raise ReentrancyError("flash loan callback re-entered")
        foreign = migration.foreign
        if token != foreign.currency or amount != foreign.repay_amount:
            raise CallbackMismatch(f"flash loan of {amount} {token} does not match the migration")

        migration.in_callback = True
        try:
            migration.new_loan_id = self._settle(migration, token, amount, premium)
        finally:
            migration.in_callback = False

    def _settle(self, migration: _Migration, token: str, amount: Decimal, premium: Decimal) -> int:
        core = self.loan_core
        foreign = migration.foreign
        borrower = foreign.borrower
        terms = migration.new_terms

        repayment = self.foreign_source.compute_repayment(self.ledger, foreign.loan_id, self.wallet)
        if self.ledger.execute(repayment) is not ExecuteResult.APPLIED:
            raise TransferFailed(f"repayment of foreign loan {foreign.loan_id} failed")

        nft = collateral_symbol(*terms.collateral_key)
        core.submit(
            [Move(Decimal("1"), nft, borrower, self.wallet, f"migrate_{foreign.loan_id}")],
            self.wallet, "MigrationCollateral", unit_symbol=nft,
        )

        loan_id = self.origination.initialize_loan(
            terms,
            borrower=self.wallet,
            lender=migration.lender,
            signature=migration.signature,
            nonce=migration.nonce,
            max_uses=migration.max_uses,
            caller=self.wallet,
        )

        places = self.ledger.get_unit(token).decimal_places
        borrower_fee = bps_of(terms.principal, core.fee_controller.get(BORROWER_ORIGINATION_FEE), places)
        need, leftover = net_settlement(amount + premium, terms.principal - borrower_fee)
        check_funds_conflict(migration.planned.need_from_borrower, leftover)
        check_funds_conflict(need, migration.planned.leftover_principal)

        tag = f"migrate_{foreign.loan_id}"
        moves = []
        if need > 0:
            moves.append(Move(need, token, borrower, self.wallet, tag))
        if leftover > 0:
            moves.append(Move(leftover, token, self.wallet, borrower, tag))
        moves.append(Move(Decimal("1"), core.borrower_note.symbol(loan_id), self.wallet, borrower, tag))
        core.submit(moves, self.wallet, "MigrationSettlement", unit_symbol=core.lender_note.symbol(loan_id))
        return loan_id
