"""
origination.py - Origination Controller

Validates that both counterparties agreed to a set of terms before asking the
loan core to start (or roll over) a loan.

=== CONSENT MODEL ===

One side submits the terms (the caller), the other side signed them off-line.

    caller is the borrower (or its delegate)  ->  lender must have signed
    caller is the lender (or its delegate)    ->  borrower must have signed

The signed payload is LoanTerms.digest(nonce, max_uses, side), extended with
the data of any predicates attached to the terms. The signer's nonce is
consumed in the loan core, so the same signature works at most max_uses
times.

=== FEES ===

    start:     borrower receives principal - borrower origination fee
               lender supplies principal + lender origination fee
    rollover:  borrower and lender rollover fees on the new principal, plus
               the old loan's frozen interest and principal fees withheld
               from the old lender
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence, Set

from ..core import (
    Move,
    InvalidLoanState, NotCounterparty, InvalidSignature, SignatureExpired,
    PredicateFailed, RolloverMismatch,
    content_hash,
)
from ..interfaces import Predicate, SignatureVerifier
from ..loan_core import LoanCore
from ..loans.fees import (
    BORROWER_ORIGINATION_FEE, LENDER_ORIGINATION_FEE,
    BORROWER_ROLLOVER_FEE, LENDER_ROLLOVER_FEE,
    bps_of,
)
from ..loans.interest import loan_interest
from ..loans.settlement import calculate_rollover_amounts
from ..loans.terms import LoanState, LoanTerms, Side


def signing_payload(
    terms: LoanTerms,
    nonce: int,
    max_uses: int,
    side: Side,
    predicates: Optional[Sequence[Predicate]] = None,
) -> str:
    """The string a counterparty signs to approve `terms`."""
    digest = terms.digest(nonce, max_uses, side)
    if not predicates:
        return digest
    return content_hash(digest, [p.data for p in predicates])


class OriginationController:
    """
    Entry point for starting loans and rolling them over.

    Example:
        origination = OriginationController(core, verifier)
        loan_id = origination.initialize_loan(
            terms, borrower="alice", lender="bob",
            signature=lender_sig, nonce=1, max_uses=1, caller="alice",
        )
    """

    def __init__(
        self,
        loan_core: LoanCore,
        signature_verifier: SignatureVerifier,
        wallet: str = "origination_controller",
    ):
        self.loan_core = loan_core
        self.ledger = loan_core.ledger
        self.signature_verifier = signature_verifier
        self.wallet = self.ledger.ensure_wallet(wallet)
        self._delegates: Dict[str, Set[str]] = {}

    # ========================================================================
    # DELEGATES
    # ========================================================================

    def approve(self, owner: str, delegate: str, approved: bool = True) -> None:
        """Allow (or stop allowing) `delegate` to sign and submit on behalf of `owner`."""
        delegates = self._delegates.setdefault(owner, set())
        if approved:
            delegates.add(delegate)
        else:
            delegates.discard(delegate)

    def is_approved_for(self, owner: str, who: Optional[str]) -> bool:
        return who is not None and (who == owner or who in self._delegates.get(owner, set()))

    # ========================================================================
    # CHECKS
    # ========================================================================

    def _require_not_expired(self, terms: LoanTerms) -> None:
        if terms.deadline < self.ledger.current_time:
            raise SignatureExpired(f"terms expired at {terms.deadline}")

    def _verify_signer(
        self,
        terms: LoanTerms,
        nonce: int,
        max_uses: int,
        side: Side,
        expected: str,
        signature: Any,
        predicates: Optional[Sequence[Predicate]],
    ) -> str:
        """
        Recover the signer and check it speaks for `expected`.

        Returns:
            The recovered signer, whose nonce is to be consumed

        Raises:
            InvalidSignature: If the signer is neither expected nor its delegate
        """
        payload = signing_payload(terms, nonce, max_uses, side, predicates)
        signer = self.signature_verifier.recover(payload, signature)
        if not self.is_approved_for(expected, signer):
            raise InvalidSignature(f"terms not signed by {side.value} {expected}")
        return signer

    def _run_predicates(
        self,
        borrower: str,
        lender: str,
        terms: LoanTerms,
        predicates: Optional[Sequence[Predicate]],
    ) -> None:
        for predicate in predicates or ():
            ok = predicate.verifier.verify(
                self.ledger, borrower, lender,
                terms.collateral_address, terms.collateral_id, predicate.data,
            )
            if not ok:
                raise PredicateFailed(f"predicate {predicate.data!r} rejected the loan")

    # ========================================================================
    # ORIGINATION
    # ========================================================================

    def initialize_loan(
        self,
        terms: LoanTerms,
        borrower: str,
        lender: str,
        signature: Any,
        nonce: int,
        max_uses: int,
        caller: str,
        predicates: Optional[Sequence[Predicate]] = None,
    ) -> int:
        """
        Start a loan agreed by both counterparties.

        Args:
            terms: Term sheet signed by the counterparty of caller
            borrower: Wallet pledging the collateral and receiving the principal
            lender: Wallet supplying the principal
            signature: Counterparty signature over signing_payload()
            nonce: Signer nonce bound in the signature
            max_uses: How many times the signature may be used
            caller: Wallet submitting the terms
            predicates: Extra conditions bound into the signature

        Returns:
            The new loan id

        Raises:
            SignatureExpired: If the terms' deadline has passed
            NotCounterparty: If caller speaks for neither side
            InvalidSignature: If the other side did not sign
            PredicateFailed: If a predicate rejects the loan
            NonceUsed: If the signature was already used up
        """
        self._require_not_expired(terms)
        if self.is_approved_for(borrower, caller):
            side, expected = Side.LENDER, lender
        elif self.is_approved_for(lender, caller):
            side, expected = Side.BORROWER, borrower
        else:
            raise NotCounterparty(f"{caller} is neither borrower nor lender")
        signer = self._verify_signer(terms, nonce, max_uses, side, expected, signature, predicates)
        self._run_predicates(borrower, lender, terms, predicates)

        fees = self.loan_core.fee_controller
        places = self.ledger.get_unit(terms.payable_currency).decimal_places
        borrower_fee = bps_of(terms.principal, fees.get(BORROWER_ORIGINATION_FEE), places)
        lender_fee = bps_of(terms.principal, fees.get(LENDER_ORIGINATION_FEE), places)

        with self.loan_core.checkpoint():
            self.loan_core.consume_nonce(signer, nonce, max_uses)
            return self.loan_core.start_loan(
                lender=lender,
                borrower=borrower,
                terms=terms,
                amount_from_lender=terms.principal + lender_fee,
                amount_to_borrower=terms.principal - borrower_fee,
                fee_snapshot=fees.snapshot(),
            )

    def rollover_loan(
        self,
        old_loan_id: int,
        new_terms: LoanTerms,
        lender: str,
        signature: Any,
        nonce: int,
        max_uses: int,
        caller: str,
        predicates: Optional[Sequence[Predicate]] = None,
    ) -> int:
        """
        Replace an active loan with a new one on the same collateral.

        The borrower note holder (or its delegate) submits terms signed by
        the new lender, who may be the old one. Only the net amounts move.

        Returns:
            The new loan id

        Raises:
            InvalidLoanState: If the old loan is not ACTIVE
            NotCounterparty: If caller does not speak for the borrower
            RolloverMismatch: If collateral or currency differ
            InvalidSignature: If the lender did not sign
        """
        core = self.loan_core
        old = core.get_loan(old_loan_id)
        if old.state is not LoanState.ACTIVE:
            raise InvalidLoanState(f"loan {old_loan_id} is {old.state.value}")
        borrower = core.borrower_note.owner_of(self.ledger, old_loan_id)
        if borrower is None or not self.is_approved_for(borrower, caller):
            raise NotCounterparty(f"{caller} does not hold the borrower note of loan {old_loan_id}")
        if new_terms.collateral_key != old.terms.collateral_key:
            raise RolloverMismatch("rollover must keep the same collateral")
        if new_terms.payable_currency != old.terms.payable_currency:
            raise RolloverMismatch("rollover must keep the same currency")
        self._require_not_expired(new_terms)
        signer = self._verify_signer(new_terms, nonce, max_uses, Side.LENDER, lender, signature, predicates)
        self._run_predicates(borrower, lender, new_terms, predicates)

        old_lender = core.lender_note.owner_of(self.ledger, old_loan_id)
        token = new_terms.payable_currency
        places = self.ledger.get_unit(token).decimal_places
        fees = core.fee_controller
        interest = loan_interest(old, self.ledger.current_time, places)
        repayment_fee = (
            bps_of(interest, old.fee_snapshot.lender_interest_fee, places)
            + bps_of(old.balance, old.fee_snapshot.lender_principal_fee, places)
        )
        amounts = calculate_rollover_amounts(
            old.balance,
            interest,
            new_terms.principal,
            same_lender=old_lender == lender,
            borrower_fee=bps_of(new_terms.principal, fees.get(BORROWER_ROLLOVER_FEE), places),
            lender_fee=bps_of(new_terms.principal, fees.get(LENDER_ROLLOVER_FEE), places),
            repayment_fee=repayment_fee,
        )

        with core.checkpoint():
            core.consume_nonce(signer, nonce, max_uses)
            tag = f"rollover_funding_{old_loan_id}"
            moves = []
            if amounts.need_from_borrower > 0:
                moves.append(Move(amounts.need_from_borrower, token, borrower, self.wallet, tag))
            if amounts.amount_from_lender > 0:
                moves.append(Move(amounts.amount_from_lender, token, lender, self.wallet, tag))
            core.submit(moves, self.wallet, "RolloverFunding")
            return core.rollover(
                old_loan_id=old_loan_id,
                old_lender=old_lender,
                borrower=borrower,
                lender=lender,
                new_terms=new_terms,
                settled_amount=amounts.settled_amount,
                amount_to_old_lender=amounts.amount_to_old_lender,
                amount_to_lender=amounts.amount_to_lender,
                amount_to_borrower=amounts.amount_to_borrower,
                interest_amount=interest,
                caller=self.wallet,
            )
