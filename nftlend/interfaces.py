"""
interfaces.py - External Collaborators

The controllers depend on a handful of outside systems that are not part of
this package. Each is described by a narrow Protocol so that any object with
the right methods can be plugged in (structural typing, like LedgerView).

    SignatureVerifier   recovers the signer of a payload
    PredicateVerifier   extra condition a signer attached to its terms
    FlashLender         lends funds for the duration of one callback
    FlashBorrower       receives that callback
    ForeignLoanSource   loans held by another lending protocol
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from .core import LedgerView, PendingTransaction


@runtime_checkable
class SignatureVerifier(Protocol):
    def recover(self, payload: str, signature: Any) -> Optional[str]:
        """Return the account that signed payload, or None if the signature is invalid."""
        ...


@runtime_checkable
class PredicateVerifier(Protocol):
    def verify(
        self,
        view: LedgerView,
        borrower: str,
        lender: str,
        collateral_address: str,
        collateral_id: int,
        data: Any,
    ) -> bool:
        ...


@dataclass(frozen=True, slots=True)
class Predicate:
    """A verifier plus the data its signer attached to it."""
    verifier: PredicateVerifier
    data: Any = None


@runtime_checkable
class FlashBorrower(Protocol):
    wallet: str

    def receive_flash_loan(self, token: str, amount: Decimal, premium: Decimal, user_data: Any) -> None:
        """
        Called by the flash lender after `amount` has been paid to the borrower's
        wallet. amount + premium must be in that wallet when this returns.
        """
        ...


@runtime_checkable
class FlashLender(Protocol):
    wallet: str
    premium_bps: int

    def flash_loan(self, receiver: FlashBorrower, token: str, amount: Decimal, user_data: Any) -> None:
        ...


@dataclass(frozen=True, slots=True)
class ForeignLoan:
    """A loan as reported by another lending protocol."""
    loan_id: int
    borrower: str
    lender: str
    repay_amount: Decimal
    collateral_address: str
    collateral_id: int
    currency: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


@runtime_checkable
class ForeignLoanSource(Protocol):
    def load_loan(self, view: LedgerView, loan_id: int) -> ForeignLoan:
        ...

    def compute_repayment(self, view: LedgerView, loan_id: int, payer: str) -> PendingTransaction:
        """
        Build the transaction that pays off the loan from `payer` and
        releases its collateral to the loan's borrower.
        """
        ...
