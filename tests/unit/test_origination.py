"""
test_origination.py - Unit tests for the origination controller

Tests:
- Either side may submit, the other must have signed
- Delegates may sign and submit
- Expired, forged and replayed signatures are refused
- Predicates run and are bound into the signature
- Origination fees (borrower and lender)
- Rollovers: same lender, new lender, interest, fees, failures
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from nftlend import (
    OriginationController, LoanState, Side, Predicate,
    collateral_owner,
    NotCounterparty, InvalidSignature, SignatureExpired, NonceUsed, PredicateFailed,
    CollateralInUse, RolloverMismatch, TransferFailed, InvalidLoanState,
)

from tests.fakes import FakePredicate, sign
from tests.helpers import make_terms, T0, NFT


D = Decimal


def usdc(ledger, wallet):
    return ledger.get_balance(wallet, "USDC")


def borrow(origination, terms=None, nonce=1, max_uses=1, lender="bob", borrower="alice"):
    """alice submits terms that the lender signed."""
    terms = terms or make_terms()
    signature = sign(lender, terms, nonce, max_uses, Side.LENDER)
    return origination.initialize_loan(terms, borrower, lender, signature, nonce, max_uses, caller=borrower)


@pytest.fixture
def fee_origination(fee_core, verifier):
    return OriginationController(fee_core, verifier)


# ============================================================================
# CONSENT
# ============================================================================

class TestInitializeLoan:

    def test_borrower_submits_lender_signed(self, origination, core, ledger):
        loan_id = borrow(origination)
        assert core.get_loan(loan_id).state is LoanState.ACTIVE
        assert usdc(ledger, "alice") == D("101000")
        assert core.is_nonce_used("bob", 1)

    def test_lender_submits_borrower_signed(self, origination, core):
        terms = make_terms()
        signature = sign("alice", terms, 4, 1, Side.BORROWER)
        loan_id = origination.initialize_loan(terms, "alice", "bob", signature, 4, 1, caller="bob")
        assert core.borrower_note.owner_of(core.ledger, loan_id) == "alice"
        assert core.is_nonce_used("alice", 4)

    def test_delegate_signs_for_lender(self, origination, core):
        origination.approve("bob", "bob_bot")
        terms = make_terms()
        signature = sign("bob_bot", terms, 1, 1, Side.LENDER)
        origination.initialize_loan(terms, "alice", "bob", signature, 1, 1, caller="alice")
        assert core.is_nonce_used("bob_bot", 1)

    def test_delegate_submits_for_borrower(self, origination, core):
        origination.approve("alice", "alice_bot")
        terms = make_terms()
        signature = sign("bob", terms, 1, 1, Side.LENDER)
        loan_id = origination.initialize_loan(terms, "alice", "bob", signature, 1, 1, caller="alice_bot")
        assert core.borrower_note.owner_of(core.ledger, loan_id) == "alice"

    def test_revoked_delegate(self, origination):
        origination.approve("bob", "bob_bot")
        origination.approve("bob", "bob_bot", approved=False)
        assert not origination.is_approved_for("bob", "bob_bot")
        terms = make_terms()
        with pytest.raises(InvalidSignature):
            origination.initialize_loan(
                terms, "alice", "bob", sign("bob_bot", terms, 1, 1, Side.LENDER), 1, 1, caller="alice",
            )

    def test_third_party_caller(self, origination):
        terms = make_terms()
        with pytest.raises(NotCounterparty):
            origination.initialize_loan(
                terms, "alice", "bob", sign("bob", terms, 1, 1, Side.LENDER), 1, 1, caller="carol",
            )

    def test_wrong_signer(self, origination):
        terms = make_terms()
        with pytest.raises(InvalidSignature):
            origination.initialize_loan(
                terms, "alice", "bob", sign("carol", terms, 1, 1, Side.LENDER), 1, 1, caller="alice",
            )

    def test_signature_for_other_side(self, origination):
        terms = make_terms()
        with pytest.raises(InvalidSignature):
            origination.initialize_loan(
                terms, "alice", "bob", sign("bob", terms, 1, 1, Side.BORROWER), 1, 1, caller="alice",
            )

    def test_tampered_terms(self, origination, core):
        signature = sign("bob", make_terms(principal="1000"), 1, 1, Side.LENDER)
        with pytest.raises(InvalidSignature):
            origination.initialize_loan(
                make_terms(principal="5000"), "alice", "bob", signature, 1, 1, caller="alice",
            )
        assert core.loans == {}

    def test_tampered_nonce(self, origination):
        terms = make_terms()
        with pytest.raises(InvalidSignature):
            origination.initialize_loan(
                terms, "alice", "bob", sign("bob", terms, 1, 1, Side.LENDER), 2, 1, caller="alice",
            )

    def test_expired(self, origination, ledger):
        ledger.advance_time(T0 + timedelta(days=8))
        with pytest.raises(SignatureExpired):
            borrow(origination)

    def test_replay(self, origination, core, ledger):
        terms = make_terms()
        signature = sign("bob", terms, 1, 1, Side.LENDER)
        origination.initialize_loan(terms, "alice", "bob", signature, 1, 1, caller="alice")
        with pytest.raises(NonceUsed):
            origination.initialize_loan(terms, "alice", "bob", signature, 1, 1, caller="alice")
        assert core.next_loan_id == 2

    def test_failed_start_keeps_nonce(self, origination, core):
        terms = make_terms()
        signature = sign("bob", terms, 1, 2, Side.LENDER)
        origination.initialize_loan(terms, "alice", "bob", signature, 1, 2, caller="alice")
        with pytest.raises(CollateralInUse):
            origination.initialize_loan(terms, "alice", "bob", signature, 1, 2, caller="alice")
        assert core.number_of_nonce_uses("bob", 1) == 1


# ============================================================================
# PREDICATES
# ============================================================================

class TestPredicates:

    def test_passing_predicate(self, origination, ledger):
        check = FakePredicate(True)
        predicates = [Predicate(check, {"trait": "alien"})]
        terms = make_terms()
        signature = sign("bob", terms, 1, 1, Side.LENDER, predicates)
        origination.initialize_loan(terms, "alice", "bob", signature, 1, 1, "alice", predicates)
        assert check.calls == [("alice", "bob", NFT, 1, {"trait": "alien"})]

    def test_failing_predicate(self, origination, core):
        predicates = [Predicate(FakePredicate(True)), Predicate(FakePredicate(False), "no")]
        terms = make_terms()
        signature = sign("bob", terms, 1, 1, Side.LENDER, predicates)
        with pytest.raises(PredicateFailed):
            origination.initialize_loan(terms, "alice", "bob", signature, 1, 1, "alice", predicates)
        assert not core.is_nonce_used("bob", 1)

    def test_predicates_bound_into_signature(self, origination):
        predicates = [Predicate(FakePredicate(True), "anything")]
        terms = make_terms()
        signature = sign("bob", terms, 1, 1, Side.LENDER)
        with pytest.raises(InvalidSignature):
            origination.initialize_loan(terms, "alice", "bob", signature, 1, 1, "alice", predicates)


# ============================================================================
# FEES
# ============================================================================

class TestOriginationFees:

    def test_borrower_origination_fee(self, fee_origination, fee_core, ledger):
        """Principal 1,000 at a 1% fee: borrower receives 990, protocol earns 10."""
        borrow(fee_origination)
        assert usdc(ledger, "alice") == D("100990")
        assert usdc(ledger, "bob") == D("99000")
        assert fee_core.fees_withdrawable("USDC", fee_core.wallet) == D("10")

    def test_lender_origination_fee(self, fee_origination, fee_core, ledger):
        fee_core.fee_controller.set("LENDER_ORIGINATION_FEE", 50)
        borrow(fee_origination)
        assert usdc(ledger, "bob") == D("98995")
        assert fee_core.fees_withdrawable("USDC", fee_core.wallet) == D("15")

    def test_snapshot_taken(self, fee_origination, fee_core):
        loan_id = borrow(fee_origination)
        assert fee_core.get_loan(loan_id).fee_snapshot.lender_interest_fee == 5_00


# ============================================================================
# ROLLOVER
# ============================================================================

def roll(origination, old_loan_id, terms, lender="bob", nonce=2, caller="alice"):
    signature = sign(lender, terms, nonce, 1, Side.LENDER)
    return origination.rollover_loan(old_loan_id, terms, lender, signature, nonce, 1, caller=caller)


class TestRolloverLoan:

    def test_same_lender_smaller_principal(self, origination, core, ledger):
        """New principal 200 below the old repay amount: borrower supplies exactly 200."""
        old_id = borrow(origination)
        new_id = roll(origination, old_id, make_terms(principal="800"))
        assert usdc(ledger, "alice") == D("101000") - D("200")
        assert usdc(ledger, "bob") == D("99000") + D("200")
        assert core.get_loan(old_id).state is LoanState.REPAID
        assert core.get_loan(new_id).balance == D("800")
        assert collateral_owner(ledger, NFT, 1) == core.wallet
        assert usdc(ledger, origination.wallet) == 0
        assert usdc(ledger, core.wallet) == 0

    def test_new_lender_larger_principal(self, origination, core, ledger):
        """Old repay 1,000, new principal 1,200: carol supplies 1,200, bob gets 1,000, alice 200."""
        old_id = borrow(origination)
        new_id = roll(origination, old_id, make_terms(principal="1200"), lender="carol")
        assert usdc(ledger, "carol") == D("98800")
        assert usdc(ledger, "bob") == D("100000")
        assert usdc(ledger, "alice") == D("101200")
        assert core.lender_note.owner_of(ledger, new_id) == "carol"
        assert core.borrower_note.owner_of(ledger, new_id) == "alice"

    def test_interest_settled(self, origination, core, ledger):
        old_id = borrow(origination)
        ledger.advance_time(T0 + timedelta(days=10))
        # 1000 * 10% * 10 / 365 = 2.739...
        new_id = roll(origination, old_id, make_terms(principal="1000", deadline=T0 + timedelta(days=20)))
        assert usdc(ledger, "alice") == D("101000") - D("2.73")
        assert usdc(ledger, "bob") == D("99000") + D("2.73")
        assert core.get_loan(old_id).interest_amount_paid == D("2.73")
        assert core.get_loan(new_id).start_date == T0 + timedelta(days=10)

    def test_lender_interest_fee_withheld(self, fee_origination, fee_core, ledger):
        old_id = borrow(fee_origination)
        ledger.advance_time(T0 + timedelta(days=10))
        roll(fee_origination, old_id, make_terms(principal="1000", deadline=T0 + timedelta(days=20)))
        # borrower paid 10 at origination; interest 2.73, fee 5% = 0.13
        assert usdc(ledger, "alice") == D("100990") - D("2.73")
        assert usdc(ledger, "bob") == D("99000") + D("2.60")
        assert fee_core.fees_withdrawable("USDC", fee_core.wallet) == D("10.13")
        assert usdc(ledger, fee_core.wallet) == D("10.13")

    def test_rollover_fees(self, fee_origination, fee_core, ledger):
        old_id = borrow(fee_origination)
        fee_core.fee_controller.set("BORROWER_ROLLOVER_FEE", 1_00)
        fee_core.fee_controller.set("LENDER_ROLLOVER_FEE", 1_00)
        roll(fee_origination, old_id, make_terms(principal="1000"), lender="carol")
        assert usdc(ledger, "carol") == D("98990")
        assert usdc(ledger, "alice") == D("100990") - D("10")
        assert fee_core.fees_withdrawable("USDC", fee_core.wallet) == D("30")

    def test_caller_must_hold_borrower_note(self, origination):
        old_id = borrow(origination)
        with pytest.raises(NotCounterparty):
            roll(origination, old_id, make_terms(), caller="carol")

    def test_collateral_must_match(self, origination):
        old_id = borrow(origination)
        with pytest.raises(RolloverMismatch):
            roll(origination, old_id, make_terms(collateral_id=2))

    def test_lender_must_sign(self, origination):
        old_id = borrow(origination)
        terms = make_terms(principal="900")
        forged = sign("carol", terms, 2, 1, Side.LENDER)
        with pytest.raises(InvalidSignature):
            origination.rollover_loan(old_id, terms, "bob", forged, 2, 1, caller="alice")

    def test_borrower_short_of_funds(self, origination, core, ledger):
        old_id = borrow(origination)
        ledger.set_balance("alice", "USDC", D("50"))
        with pytest.raises(TransferFailed):
            roll(origination, old_id, make_terms(principal="800"))
        assert core.get_loan(old_id).state is LoanState.ACTIVE
        assert not core.is_nonce_used("bob", 2)
        assert usdc(ledger, "bob") == D("99000")

    def test_closed_loan(self, origination, core):
        old_id = borrow(origination)
        core.repay(old_id, "alice", D("1000"), D("0"), D("1000"))
        with pytest.raises(InvalidLoanState):
            roll(origination, old_id, make_terms())
