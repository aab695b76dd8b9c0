"""
test_repayment.py - Unit tests for the repayment controller

Tests:
- amount_due with accrued interest
- Partial, full and over-payments
- Lender interest and principal fees from the loan's snapshot
- Payments that do not cover interest
- force_repay into a note receipt
- claim and redeem_note require the lender note
- Claim and redeem fees
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from nftlend import (
    RepaymentController, LoanState, NoteReceipt,
    collateral_owner, compute_note_transfer,
    InvalidRepayment, ZeroAmount, NotLender, LoanNotExpired, NoReceipt, InvalidLoanState,
)

from tests.helpers import make_terms, start_loan, assert_core_solvent, T0, NFT, YEAR


D = Decimal


def usdc(ledger, wallet):
    return ledger.get_balance(wallet, "USDC")


@pytest.fixture
def fee_repayment(fee_core):
    return RepaymentController(fee_core)


class TestAmountDue:

    def test_at_start(self, repayment, active_loan):
        loan_id, _ = active_loan
        assert repayment.amount_due(loan_id) == D("1000")

    def test_with_interest(self, repayment, ledger, active_loan):
        loan_id, _ = active_loan
        ledger.advance_time(T0 + timedelta(days=15))
        # 1000 * 10% * 15 / 365 = 4.109...
        assert repayment.amount_due(loan_id) == D("1004.10")

    def test_closed_loan(self, repayment, core, active_loan):
        loan_id, _ = active_loan
        repayment.repay_full(loan_id, "alice")
        assert repayment.amount_due(loan_id) == 0


class TestRepay:

    def test_partial(self, repayment, core, ledger, active_loan):
        loan_id, _ = active_loan
        ledger.advance_time(T0 + timedelta(days=15))
        repayment.repay(loan_id, D("500"), "alice")
        loan = core.get_loan(loan_id)
        assert loan.balance == D("504.10")
        assert loan.interest_amount_paid == D("4.10")
        assert usdc(ledger, "bob") == D("99500")
        # accrual restarts from the payment
        assert repayment.amount_due(loan_id) == D("504.10")

    def test_overpayment_not_collected(self, repayment, core, ledger, active_loan):
        loan_id, _ = active_loan
        repayment.repay(loan_id, D("5000"), "alice")
        assert core.get_loan(loan_id).state is LoanState.REPAID
        assert usdc(ledger, "alice") == D("100000")

    def test_does_not_cover_interest(self, repayment, ledger, active_loan):
        loan_id, _ = active_loan
        ledger.advance_time(T0 + timedelta(days=15))
        with pytest.raises(InvalidRepayment):
            repayment.repay(loan_id, D("4"), "alice")

    def test_zero_amount(self, repayment, active_loan):
        loan_id, _ = active_loan
        with pytest.raises(ZeroAmount):
            repayment.repay(loan_id, D("0"), "alice")

    def test_repay_full_returns_collateral(self, repayment, core, ledger, active_loan):
        loan_id, _ = active_loan
        ledger.advance_time(T0 + timedelta(days=30))
        repayment.repay_full(loan_id, "alice")
        assert core.get_loan(loan_id).state is LoanState.REPAID
        assert collateral_owner(ledger, NFT, 1) == "alice"
        assert not core.lender_note.exists(ledger, loan_id)

    def test_lender_interest_fee(self, fee_core, fee_repayment, ledger):
        """Balance 1,000, interest 50, 5% interest fee: lender 1,047.5, protocol 2.5."""
        loan_id = start_loan(fee_core, make_terms(duration_secs=YEAR, interest_rate=5_00))
        ledger.advance_time(T0 + timedelta(days=365))
        assert fee_repayment.amount_due(loan_id) == D("1050")
        fee_repayment.repay_full(loan_id, "alice")
        assert usdc(ledger, "bob") == D("99000") + D("1047.5")
        assert fee_core.fees_withdrawable("USDC", fee_core.wallet) == D("2.5")
        assert fee_core.get_loan(loan_id).state is LoanState.REPAID
        assert collateral_owner(ledger, NFT, 1) == "alice"
        assert_core_solvent(fee_core)

    def test_lender_principal_fee(self, fee_core, fee_repayment, ledger):
        fee_core.fee_controller.set("LENDER_PRINCIPAL_FEE", 1_00)
        loan_id = start_loan(fee_core, make_terms())
        fee_repayment.repay(loan_id, D("400"), "alice")
        assert usdc(ledger, "bob") == D("99000") + D("396")
        assert fee_core.fees_withdrawable("USDC", fee_core.wallet) == D("4")

    def test_closed_loan(self, repayment, active_loan):
        loan_id, _ = active_loan
        repayment.repay_full(loan_id, "alice")
        with pytest.raises(InvalidLoanState):
            repayment.repay(loan_id, D("1"), "alice")


class TestForceRepay:

    def test_receipt(self, repayment, core, ledger, active_loan):
        loan_id, _ = active_loan
        repayment.force_repay(loan_id, D("1000"), "alice")
        assert core.note_receipt(loan_id) == NoteReceipt("USDC", D("1000"))
        assert usdc(ledger, "bob") == D("99000")
        assert collateral_owner(ledger, NFT, 1) == "alice"


class TestClaim:

    def test_requires_lender_note(self, repayment, ledger, active_loan):
        loan_id, _ = active_loan
        ledger.advance_time(T0 + timedelta(days=31))
        with pytest.raises(NotLender):
            repayment.claim(loan_id, "alice")

    def test_too_early(self, repayment, ledger, active_loan):
        loan_id, _ = active_loan
        ledger.advance_time(T0 + timedelta(days=30, minutes=5))
        with pytest.raises(LoanNotExpired):
            repayment.claim(loan_id, "bob")

    def test_claim(self, repayment, core, ledger, active_loan):
        loan_id, _ = active_loan
        ledger.advance_time(T0 + timedelta(days=30, minutes=11))
        repayment.claim(loan_id, "bob")
        assert core.get_loan(loan_id).state is LoanState.DEFAULTED
        assert collateral_owner(ledger, NFT, 1) == "bob"

    def test_new_holder_claims(self, repayment, core, ledger, active_loan):
        loan_id, _ = active_loan
        ledger.execute(compute_note_transfer(ledger, core.lender_note, loan_id, "bob", "carol"))
        ledger.advance_time(T0 + timedelta(days=31))
        with pytest.raises(NotLender):
            repayment.claim(loan_id, "bob")
        repayment.claim(loan_id, "carol")
        assert collateral_owner(ledger, NFT, 1) == "carol"

    def test_default_fee(self, fee_core, fee_repayment, ledger):
        fee_core.fee_controller.set("LENDER_DEFAULT_FEE", 2_00)
        loan_id = start_loan(fee_core, make_terms())
        ledger.advance_time(T0 + timedelta(days=31))
        fee_repayment.claim(loan_id, "bob")
        assert usdc(ledger, "bob") == D("99000") - D("20")
        assert fee_core.fees_withdrawable("USDC", fee_core.wallet) == D("20")


class TestRedeemNote:

    def test_redeem_fee(self, fee_core, fee_repayment, ledger):
        """Receipt 109 with a 5% redeem fee: 103.55 paid out."""
        fee_core.fee_controller.set("LENDER_REDEEM_FEE", 5_00)
        fee_core.fee_controller.set("LENDER_INTEREST_FEE", 0)
        loan_id = start_loan(fee_core, make_terms())
        fee_repayment.force_repay(loan_id, D("109"), "alice")
        fee_repayment.redeem_note(loan_id, "dave", "bob")
        assert usdc(ledger, "dave") == D("100103.55")
        assert fee_core.fees_withdrawable("USDC", fee_core.wallet) == D("5.45")
        assert_core_solvent(fee_core)

    def test_requires_lender_note(self, repayment, active_loan):
        loan_id, _ = active_loan
        repayment.force_repay(loan_id, D("100"), "alice")
        with pytest.raises(NotLender):
            repayment.redeem_note(loan_id, "alice", "alice")

    def test_nothing_to_redeem(self, repayment, active_loan):
        loan_id, _ = active_loan
        with pytest.raises(NoReceipt):
            repayment.redeem_note(loan_id, "bob", "bob")
