"""
helpers.py - Builders and assertions shared by the loan tests
"""

from datetime import datetime, timedelta
from decimal import Decimal

from nftlend import Ledger, LoanCore, LoanTerms, cash, collateral_symbol, create_collateral_unit


T0 = datetime(2025, 1, 1)
NFT = "punks"
DAY = 24 * 3600
YEAR = 365 * DAY
WALLETS = ("alice", "bob", "carol", "dave")
FUNDING = Decimal("100000")


def make_ledger() -> Ledger:
    """Ledger with USDC, punks #1-#5 owned by alice and four funded wallets."""
    ledger = Ledger("test", T0, verbose=False, test_mode=True)
    ledger.register_unit(cash("USDC", "USD Coin", decimal_places=2))
    for wallet in WALLETS:
        ledger.register_wallet(wallet)
        ledger.set_balance(wallet, "USDC", FUNDING)
    for token_id in range(1, 6):
        ledger.register_unit(create_collateral_unit(NFT, token_id))
        ledger.set_balance("alice", collateral_symbol(NFT, token_id), Decimal("1"))
    return ledger


def make_terms(
    principal="1000",
    collateral_id: int = 1,
    duration_secs: int = 30 * DAY,
    interest_rate: int = 1_000,
    deadline: datetime = T0 + timedelta(days=7),
    currency: str = "USDC",
    affiliate_code=None,
) -> LoanTerms:
    """Terms for punks #collateral_id; 10% APR over 30 days by default."""
    return LoanTerms(
        duration_secs=duration_secs,
        principal=Decimal(principal),
        interest_rate=interest_rate,
        collateral_address=NFT,
        collateral_id=collateral_id,
        payable_currency=currency,
        deadline=deadline,
        affiliate_code=affiliate_code,
    )


def start_loan(core: LoanCore, terms: LoanTerms, lender: str = "bob", borrower: str = "alice",
               fee=Decimal("0")) -> int:
    """Start a loan directly on the loan core, charging `fee` to the borrower."""
    return core.start_loan(
        lender=lender,
        borrower=borrower,
        terms=terms,
        amount_from_lender=terms.principal,
        amount_to_borrower=terms.principal - fee,
        fee_snapshot=core.fee_controller.snapshot(),
    )


def assert_core_solvent(core: LoanCore, token: str = "USDC") -> None:
    """The loan core holds exactly what it owes in `token`."""
    assert core.ledger.get_balance(core.wallet, token) == core.obligations(token)
