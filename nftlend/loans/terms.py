"""
terms.py - Loan Data Model

Frozen dataclasses for everything the loan core stores:

    LoanTerms     what both parties agreed to (signed, immutable)
    FeeSnapshot   protocol fees frozen into the loan at start
    LoanRecord    the loan's lifecycle state (replaced, never mutated)
    NoteReceipt   funds withheld for the lender note holder
    LoanEvent     audit record of a loan core operation

Every LoanRecord transition returns a NEW instance (value semantics), so a
snapshot of the loan table is just a shallow copy of the dict.
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping, Optional

from ..core import (
    InvalidLoanTerms, InvalidLoanState,
    MIN_LOAN_DURATION_SECS, MAX_LOAN_DURATION_SECS,
    MIN_INTEREST_RATE_BPS, MAX_INTEREST_RATE_BPS,
    content_hash,
)


# =============================================================================
# ENUMS
# =============================================================================

class LoanState(str, Enum):
    """Lifecycle state of a loan. REPAID and DEFAULTED are terminal."""
    ACTIVE = "active"
    REPAID = "repaid"
    DEFAULTED = "defaulted"

    @property
    def is_terminal(self) -> bool:
        return self is not LoanState.ACTIVE


class Side(str, Enum):
    """Which counterparty signed a set of terms."""
    BORROWER = "borrower"
    LENDER = "lender"


# =============================================================================
# TERMS
# =============================================================================

@dataclass(frozen=True, slots=True)
class LoanTerms:
    """
    Immutable term sheet for a loan.

    Validated on construction: principal > 0, duration within
    [1 hour, 3 years], interest rate within [0.01%, 1,000,000%].

    Attributes:
        duration_secs: Loan length in seconds
        principal: Amount lent, in payable currency
        interest_rate: Annualized rate in basis points (10_000 = 100% APR)
        collateral_address: NFT collection address
        collateral_id: NFT token id
        payable_currency: Currency unit symbol
        deadline: Last moment the signature over these terms can be used
        affiliate_code: Optional code routing a share of fees to an affiliate
    """
    duration_secs: int
    principal: Decimal
    interest_rate: int
    collateral_address: str
    collateral_id: int
    payable_currency: str
    deadline: datetime
    affiliate_code: Optional[str] = None

    def __post_init__(self):
        if not isinstance(self.principal, Decimal):
            object.__setattr__(self, 'principal', Decimal(str(self.principal)))
        if self.principal <= 0:
            raise InvalidLoanTerms(f"principal must be positive, got {self.principal}")
        if not MIN_LOAN_DURATION_SECS <= self.duration_secs <= MAX_LOAN_DURATION_SECS:
            raise InvalidLoanTerms(
                f"duration {self.duration_secs}s outside "
                f"[{MIN_LOAN_DURATION_SECS}, {MAX_LOAN_DURATION_SECS}]"
            )
        if not MIN_INTEREST_RATE_BPS <= self.interest_rate <= MAX_INTEREST_RATE_BPS:
            raise InvalidLoanTerms(
                f"interest rate {self.interest_rate} bps outside "
                f"[{MIN_INTEREST_RATE_BPS}, {MAX_INTEREST_RATE_BPS}]"
            )
        if not self.collateral_address or not self.payable_currency:
            raise InvalidLoanTerms("collateral_address and payable_currency are required")

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.duration_secs)

    @property
    def collateral_key(self) -> tuple:
        return (self.collateral_address, self.collateral_id)

    def digest(self, nonce: int, max_uses: int, side: Side) -> str:
        """
        Content hash a counterparty signs to approve these terms.

        Binds the nonce, its use limit and the signing side, so a lender's
        signature cannot be replayed as a borrower's.
        """
        return content_hash(
            self.duration_secs, self.principal, self.interest_rate,
            self.collateral_address, self.collateral_id, self.payable_currency,
            self.deadline, self.affiliate_code, nonce, max_uses, side,
        )


@dataclass(frozen=True, slots=True)
class FeeSnapshot:
    """Lender-side fees, in bps, frozen into a loan when it starts."""
    lender_interest_fee: int = 0
    lender_principal_fee: int = 0


@dataclass(frozen=True, slots=True)
class NoteReceipt:
    """Funds held for the lender note holder of a force-repaid loan."""
    token: str
    amount: Decimal


# =============================================================================
# LOAN RECORD
# =============================================================================

@dataclass(frozen=True, slots=True)
class LoanRecord:
    """
    Immutable snapshot of a loan.

    Transitions (repay, close, default) return new instances. A terminal
    record refuses further transitions with InvalidLoanState.
    """
    state: LoanState
    start_date: datetime
    last_accrual_timestamp: datetime
    terms: LoanTerms
    fee_snapshot: FeeSnapshot
    balance: Decimal
    interest_amount_paid: Decimal = Decimal("0")

    @property
    def due_date(self) -> datetime:
        return self.start_date + self.terms.duration

    def _require_active(self) -> None:
        if self.state is not LoanState.ACTIVE:
            raise InvalidLoanState(f"loan is {self.state.value}")

    def apply_payment(self, payment_to_principal: Decimal, interest_amount: Decimal, now: datetime) -> LoanRecord:
        """Reduce the balance and roll the accrual clock forward to now."""
        self._require_active()
        new_balance = self.balance - payment_to_principal
        return replace(
            self,
            state=LoanState.REPAID if new_balance <= 0 else LoanState.ACTIVE,
            balance=new_balance,
            last_accrual_timestamp=now,
            interest_amount_paid=self.interest_amount_paid + interest_amount,
        )

    def close(self, interest_amount: Decimal, now: datetime) -> LoanRecord:
        """Close the loan as repaid in full (rollover)."""
        self._require_active()
        return replace(
            self,
            state=LoanState.REPAID,
            balance=Decimal("0"),
            last_accrual_timestamp=now,
            interest_amount_paid=self.interest_amount_paid + interest_amount,
        )

    def default(self) -> LoanRecord:
        self._require_active()
        return replace(self, state=LoanState.DEFAULTED)


@dataclass(frozen=True, slots=True)
class LoanEvent:
    """Audit record emitted by every loan core operation."""
    name: str
    loan_id: int
    timestamp: datetime
    details: Mapping[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.name}(loan={self.loan_id}{', ' + detail_str if detail_str else ''})"
