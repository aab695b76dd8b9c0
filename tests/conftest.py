"""
conftest.py - Shared pytest fixtures for loan tests

Provides common fixtures used across unit and conformance tests:
- Funded ledgers with a currency and a few NFTs
- A loan core, with and without fees
- Controllers wired to test fakes
- Helpers to build terms and start loans
"""

import pytest

from nftlend import (
    LoanCore, FeeController, OriginationController, RepaymentController,
)

from tests.fakes import FakeSignatureVerifier
from tests.helpers import make_ledger, make_terms, start_loan


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Ledger with USDC, punks #1-#5 and four funded wallets."""
    return make_ledger()


@pytest.fixture
def core(ledger):
    """Loan core with all fees at zero."""
    return LoanCore(ledger)


@pytest.fixture
def fees():
    """Fee controller with a 1% borrower origination fee and 5% lender interest fee."""
    return FeeController({
        "BORROWER_ORIGINATION_FEE": 1_00,
        "LENDER_INTEREST_FEE": 5_00,
    })


@pytest.fixture
def fee_core(ledger, fees):
    """Loan core charging the fees fixture."""
    return LoanCore(ledger, fee_controller=fees)


@pytest.fixture
def verifier():
    return FakeSignatureVerifier()


@pytest.fixture
def origination(core, verifier):
    return OriginationController(core, verifier)


@pytest.fixture
def repayment(core):
    return RepaymentController(core)


@pytest.fixture
def active_loan(core):
    """Loan 1: alice borrows 1,000 USDC from bob against punks #1."""
    terms = make_terms()
    return start_loan(core, terms), terms
