"""
fakes.py - Test doubles for the external collaborators

    FakeSignatureVerifier   signatures are (signer, payload) pairs
    FakePredicate           fixed answer, records its calls
    FakeFlashLender         lends from its own wallet for one callback
    FakeForeignLoanSource   a foreign protocol holding loans in escrow
"""

from __future__ import annotations
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from nftlend import (
    Ledger, LedgerView, Move, PendingTransaction, TransactionOrigin, OriginType,
    ExecuteResult, ForeignLoan, FlashBorrower, TransferFailed,
    LoanTerms, Side, Predicate, bps_of, build_transaction, collateral_symbol,
    signing_payload,
)


class FakeSignatureVerifier:
    """A signature is the tuple (signer, payload); anything else is invalid."""

    def recover(self, payload: str, signature: Any) -> Optional[str]:
        if isinstance(signature, tuple) and len(signature) == 2 and signature[1] == payload:
            return signature[0]
        return None


def sign(
    signer: str,
    terms: LoanTerms,
    nonce: int,
    max_uses: int,
    side: Side,
    predicates: Optional[List[Predicate]] = None,
) -> Tuple[str, str]:
    return (signer, signing_payload(terms, nonce, max_uses, side, predicates))


class FakePredicate:
    def __init__(self, result: bool = True):
        self.result = result
        self.calls: List[tuple] = []

    def verify(self, view, borrower, lender, collateral_address, collateral_id, data) -> bool:
        self.calls.append((borrower, lender, collateral_address, collateral_id, data))
        return self.result


class FakeFlashLender:
    """
    Pays `amount` to the receiver's wallet, calls back, then takes back
    amount + premium.

    charged_premium_bps lets a test charge a different premium than the one
    advertised in premium_bps. before_callback runs inside flash_loan before
    the callback, so tests can try to re-enter.
    """

    def __init__(
        self,
        ledger: Ledger,
        wallet: str = "flash_lender",
        premium_bps: int = 9,
        charged_premium_bps: Optional[int] = None,
        before_callback: Optional[Callable[[], None]] = None,
    ):
        self.ledger = ledger
        self.wallet = ledger.ensure_wallet(wallet)
        self.premium_bps = premium_bps
        self.charged_premium_bps = premium_bps if charged_premium_bps is None else charged_premium_bps
        self.before_callback = before_callback
        self._counter = 0

    def _execute(self, moves: List[Move], event: str) -> None:
        self._counter += 1
        origin = TransactionOrigin(OriginType.EXTERNAL, self.wallet, event_type=f"{event}#{self._counter}")
        if self.ledger.execute(build_transaction(self.ledger, moves, origin=origin)) is not ExecuteResult.APPLIED:
            raise TransferFailed(f"flash loan {event} failed")

    def flash_loan(self, receiver: FlashBorrower, token: str, amount: Decimal, user_data: Any) -> None:
        places = self.ledger.get_unit(token).decimal_places
        premium = bps_of(amount, self.charged_premium_bps, places)
        self._execute([Move(amount, token, self.wallet, receiver.wallet, "flash_out")], "FlashOut")
        if self.before_callback is not None:
            self.before_callback()
        receiver.receive_flash_loan(token, amount, premium, user_data)
        self._execute([Move(amount + premium, token, receiver.wallet, self.wallet, "flash_in")], "FlashIn")


class FakeForeignLoanSource:
    """
    Loans of another protocol. The NFT sits in the protocol's escrow wallet
    until the loan is repaid.
    """

    def __init__(self, ledger: Ledger, wallet: str = "foreign_protocol"):
        self.wallet = ledger.ensure_wallet(wallet)
        self.loans: Dict[int, ForeignLoan] = {}

    def add_loan(self, loan: ForeignLoan) -> None:
        self.loans[loan.loan_id] = loan

    def load_loan(self, view: LedgerView, loan_id: int) -> ForeignLoan:
        return self.loans[loan_id]

    def compute_repayment(self, view: LedgerView, loan_id: int, payer: str) -> PendingTransaction:
        loan = self.loans[loan_id]
        nft = collateral_symbol(loan.collateral_address, loan.collateral_id)
        moves = [
            Move(loan.repay_amount, loan.currency, payer, loan.lender, f"foreign_repay_{loan_id}"),
            Move(Decimal("1"), nft, self.wallet, loan.borrower, f"foreign_release_{loan_id}"),
        ]
        origin = TransactionOrigin(OriginType.EXTERNAL, self.wallet, unit_symbol=nft, event_type="Repay")
        return build_transaction(view, moves, origin=origin)
