"""
Core types and pure functions for the NFT lending ledger.

This module provides the foundational data structures and protocols:
1. Protocols: LedgerView for read-only access to asset balances
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError for the asset ledger, LoanCoreError for the
   loan lifecycle and the orchestrators that drive it
4. Type aliases: Positions, UnitState
5. Unit factories: the payable currency

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_EVEN, ROUND_DOWN, getcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Callable, Any, Protocol,
    Tuple, FrozenSet, runtime_checkable,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Token amounts, fees and interest are all Decimal. The global context is
# configured once at import so every component rounds the same way.
#
# PRECONDITION: No other code should modify the global Decimal context.
# If thread-local contexts are needed, use decimal.localcontext().
#
#   - prec=50: enough headroom for rate * elapsed * balance products
#   - rounding=ROUND_HALF_EVEN: default; fee and interest helpers quantize
#     explicitly with ROUND_DOWN
#
_LEDGER_DECIMAL_CONTEXT = getcontext()
_LEDGER_DECIMAL_CONTEXT.prec = 50
_LEDGER_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and burning of notes and test funding.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Unit type constants
UNIT_TYPE_CASH = "CASH"
UNIT_TYPE_COLLATERAL = "COLLATERAL"
UNIT_TYPE_BORROWER_NOTE = "BORROWER_NOTE"
UNIT_TYPE_LENDER_NOTE = "LENDER_NOTE"

# Quantities with absolute value below this threshold are treated as zero.
QUANTITY_EPSILON = Decimal("1e-12")

# 10_000 bps == 100%
BASIS_POINTS_DENOMINATOR = 10_000

SECONDS_PER_YEAR = 31_536_000

# A lender may only claim collateral this long after the loan's due date.
GRACE_PERIOD = timedelta(minutes=10)

# Bounds on LoanTerms
MIN_LOAN_DURATION_SECS = 3_600
MAX_LOAN_DURATION_SECS = 3 * 365 * 24 * 3_600
MIN_INTEREST_RATE_BPS = 1                 # 0.01%
MAX_INTEREST_RATE_BPS = 100_000_000       # 1,000,000%

DECIMAL_ROUNDING = {
    UNIT_TYPE_CASH: ROUND_DOWN,
    UNIT_TYPE_COLLATERAL: ROUND_DOWN,
    UNIT_TYPE_BORROWER_NOTE: ROUND_DOWN,
    UNIT_TYPE_LENDER_NOTE: ROUND_DOWN,
}


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, Decimal]

# Internal state for a unit (collateral identity, note loan id, ...)
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Pure functions (note holder lookup, foreign loan readers, transfer rules)
    accept a LedgerView to declare that they never mutate balances. The Ledger
    class implements this protocol but also provides mutation methods. For
    testing, FakeView provides a truly immutable implementation.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Return the balance of a specific unit in a wallet.

        Returns Decimal("0") if the wallet has no balance for the unit.
        """
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """
        Return all non-zero positions for a unit across all wallets.

        Returns a dictionary mapping wallet IDs to quantities.
        """
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was successfully validated and applied to the ledger.
    ALREADY_APPLIED: Transaction ID was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation due to insufficient funds, balance
              constraints, or transfer rule violations.
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated."""
    USER_ACTION = "user_action"           # Direct wallet-to-wallet transfer
    CONTRACT = "contract"                 # Loan core or controller operation
    SYSTEM = "system"                     # Issuance, initial setup
    EXTERNAL = "external"                 # Foreign protocol or flash lender


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class TransferRuleViolation(LedgerError):
    """Raised when a move violates the unit's transfer rule."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when attempting to operate on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when attempting to operate on a wallet that has not been registered with the ledger."""
    pass


class LoanCoreError(LedgerError):
    """Base exception for loan lifecycle and orchestration failures."""
    pass


# Marker bases. A caller can catch these to decide whether to retry.

class RetryLater(LoanCoreError):
    """The operation may succeed at a later time."""
    pass


class AlreadyConsumed(LoanCoreError):
    """A one-shot resource (nonce, collateral slot, affiliate code) is taken."""
    pass


class NeverValid(LoanCoreError):
    """The request is malformed and will never succeed as given."""
    pass


class InvalidLoanState(LoanCoreError):
    """Raised when an operation requires an ACTIVE loan and the loan is terminal."""
    pass


class LoanNotFound(LoanCoreError):
    """Raised when a loan id was never allocated."""
    pass


class CollateralInUse(AlreadyConsumed):
    """Raised when the collateral already backs an active loan."""
    pass


class CannotSettle(LoanCoreError):
    """Raised when payouts would exceed what was collected."""
    pass


class ExceedsBalance(LoanCoreError):
    """Raised when a principal payment is larger than the outstanding balance."""
    pass


class NonceUsed(AlreadyConsumed):
    """Raised when a nonce is exhausted, cancelled, or over its use limit."""
    pass


class LoanNotExpired(RetryLater):
    """Raised when claiming before the due date plus grace period."""
    pass


class FundsConflict(LoanCoreError):
    """Raised when a settlement owes funds both to and from the borrower."""
    pass


class InvalidLoanTerms(NeverValid):
    """Raised when loan terms fall outside protocol bounds."""
    pass


class NoReceipt(LoanCoreError):
    """Raised when redeeming a note with no withheld funds."""
    pass


class AffiliateCodeAlreadySet(AlreadyConsumed):
    """Raised when an affiliate code's split is registered twice."""
    pass


class OverMaxSplit(NeverValid):
    """Raised when an affiliate split exceeds MAX_AFFILIATE_SPLIT."""
    pass


class ArrayLengthMismatch(NeverValid):
    """Raised when parallel argument lists differ in length."""
    pass


class FeeOverMax(NeverValid):
    """Raised when a fee is set above its maximum."""
    pass


class InsufficientWithdrawable(LoanCoreError):
    """Raised when withdrawing more than an account has earned."""
    pass


class ZeroAmount(LoanCoreError):
    """Raised when an amount that must be positive is zero."""
    pass


class ProtocolShutdown(LoanCoreError):
    """Raised by origination, rollover, claim and nonce use after shutdown."""
    pass


class TransferFailed(LoanCoreError):
    """Raised when the asset ledger does not apply a required transfer."""
    pass


class NoteNotFound(LoanCoreError):
    """Raised when a promissory note has no holder."""
    pass


class ReentrancyError(LoanCoreError):
    """Raised when an entry point is re-entered while already running."""
    pass


class NotCounterparty(LoanCoreError):
    """Raised when the caller is neither party to the loan nor their delegate."""
    pass


class InvalidSignature(LoanCoreError):
    """Raised when the signer is not the expected counterparty."""
    pass


class SignatureExpired(LoanCoreError):
    """Raised when the terms' signature deadline has passed."""
    pass


class PredicateFailed(LoanCoreError):
    """Raised when a collateral predicate rejects the loan."""
    pass


class RolloverMismatch(NeverValid):
    """Raised when new terms change the collateral or currency of a loan."""
    pass


class InvalidRepayment(LoanCoreError):
    """Raised when a repayment does not cover the interest due."""
    pass


class NotLender(LoanCoreError):
    """Raised when the caller does not hold the lender note."""
    pass


class CallbackMismatch(LoanCoreError):
    """Raised when a flash-loan callback does not match the pending operation."""
    pass


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Identifier of the specific source (wallet of the loan core, controller)
        unit_symbol: Symbol of the unit that triggered this (if applicable)
        event_type: Specific event within the source (e.g., "LoanStarted:3")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: The amount to transfer (must be finite and non-zero).
        unit_symbol: The symbol of the unit being transferred (e.g., "USDC", "LN-3").
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if self.quantity.is_infinite() or self.quantity.is_nan():
            raise ValueError(f"Move quantity must be finite, got {self.quantity}")
        if abs(self.quantity) < QUANTITY_EPSILON:
            raise ValueError("Move quantity is effectively zero")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _normalize_decimal(d: Decimal) -> str:
    """
    Normalize a Decimal to a canonical string representation.

    Decimal("1.0") and Decimal("1.00") both become "1".
    """
    normalized = d.normalize()
    if normalized == normalized.to_integral_value():
        return str(int(normalized))
    return format(normalized, 'f')


def canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Deterministic regardless of dict insertion order and Decimal
    representation. Used for transaction intent ids and for the payloads
    that counterparties sign.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return f"D:{_normalize_decimal(value)}"
    if isinstance(value, (int, float)):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, datetime):
        return f"T:{value.isoformat()}"
    if isinstance(value, Enum):
        return f"E:{value.value}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{canonicalize(k)}:{canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, (set, frozenset)):
        serialized = ",".join(canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def content_hash(*parts: Any) -> str:
    """Return a short sha256 hex digest over the canonical form of parts."""
    content = "|".join(canonicalize(p) for p in parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


def _compute_intent_id(
    moves: Tuple[Move, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = ()
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    Based solely on the semantic content of the transaction, NOT on
    timestamps. Same inputs always produce the same intent_id, which the
    ledger uses to refuse duplicate business transactions.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (_normalize_decimal(m.quantity), m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.unit_symbol:
        content_parts.append(f"unit:{origin.unit_symbol}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for unit in sorted(units_to_create, key=lambda u: u.symbol):
        content_parts.append(f"unit_create:{unit.symbol}|{unit.unit_type}")

    for m in sorted_moves:
        qty = _normalize_decimal(m.quantity)
        content_parts.append(f"move:{qty}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Created by the loan core, the controllers and external collaborators,
    then submitted to the ledger for execution.

    Attributes:
        moves: Tuple of value transfers between wallets
        origin: Who/what created this transaction and why
        timestamp: When this pending transaction was created
        units_to_create: Tuple of Unit objects to register before executing moves
        intent_id: Content-addressable hash of the transaction intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: datetime
    units_to_create: Tuple['Unit', ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(self.moves, self.origin, self.units_to_create)
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """Return True if this pending transaction has no moves and no units to create."""
        return not self.moves and not self.units_to_create

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves.

    This is the standard way to create transactions.

    Args:
        view: Read-only ledger view (provides current_time)
        moves: List of moves to include in the transaction
        origin: Transaction origin (defaults to CONTRACT origin)
        units_to_create: Optional tuple of Unit objects to register before executing moves

    Returns:
        A PendingTransaction ready for execution

    Example:
        tx = build_transaction(ledger, [
            Move(Decimal("990"), "USDC", "loan_core", "alice", "start_loan_1"),
        ])
        ledger.execute(tx)
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.CONTRACT,
            source_id="contract",
        )

    return PendingTransaction(
        moves=tuple(moves),
        origin=origin,
        timestamp=view.current_time,
        units_to_create=units_to_create or (),
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Tuple of value transfers between wallets
        origin: Who/what created this transaction and why
        timestamp: When the PendingTransaction was created
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: When this was executed and logged
        sequence_number: Monotonic sequence within the ledger (for ordering)
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    origin: TransactionOrigin
    timestamp: datetime
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: datetime
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if not self.moves and not self.units_to_create:
            raise ValueError("Transaction must have moves or units_to_create")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            """Pad or truncate text to exactly w characters."""
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   ledger_name    : ' + self.ledger_name)}│",
            f"│{pad('   execution_time : ' + str(self.execution_time))}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
        ]
        if self.units_to_create:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' Units Created (' + str(len(self.units_to_create)) + '):')}│")
            for unit in self.units_to_create:
                lines.append(f"│{pad('   ' + unit.symbol + ' (' + unit.name + ')')}│")
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


# Transfer rules validate moves and raise TransferRuleViolation if invalid.
TransferRule = Callable[[LedgerView, Move], None]


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a mutable state dict to a sorted tuple of (key, value) pairs."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state representation back to a mutable dict."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of an asset type in the ledger.

    Attributes:
        symbol: Short identifier for the unit (e.g., "USDC", "punks:42", "BN-1").
        name: Human-readable name for the unit.
        unit_type: Category of the unit (CASH, COLLATERAL, BORROWER_NOTE, LENDER_NOTE).
        min_balance: Minimum allowed balance in any wallet.
        max_balance: Maximum allowed balance in any wallet.
        decimal_places: Number of decimal places for rounding (None = no rounding).
        transfer_rule: Optional function to validate moves involving this unit.
        _frozen_state: Internal frozen state representation (tuple of key-value pairs).
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    max_balance: Decimal = Decimal("Infinity")
    decimal_places: Optional[int] = None
    transfer_rule: Optional[TransferRule] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """Get the unit's state as a new mutable dictionary."""
        return _thaw_state(self._frozen_state)

    def round(self, value: Decimal) -> Decimal:
        """
        Round a value to this unit's decimal precision using quantize.

        Returns the value unchanged if decimal_places is None.
        """
        if self.decimal_places is None:
            return value
        if not isinstance(value, Decimal):
            value = Decimal(str(value))
        quantizer = Decimal(10) ** -self.decimal_places
        rounding_mode = DECIMAL_ROUNDING.get(self.unit_type, ROUND_HALF_EVEN)
        return value.quantize(quantizer, rounding=rounding_mode)


def copy_state(state: Optional[UnitState]) -> Optional[UnitState]:
    """Deep copy a unit state dictionary, or return None."""
    if state is None:
        return None
    return copy.deepcopy(state)


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def cash(symbol: str, name: str, decimal_places: int = 2) -> Unit:
    """
    Create a fungible payable-currency unit.

    Args:
        symbol: Token symbol (e.g., "USDC", "WETH").
        name: Full name of the token.
        decimal_places: Number of decimal places for amounts (default: 2).

    Returns:
        A Unit with a zero minimum balance: wallets cannot overdraft, so a
        payer without funds makes the enclosing transaction fail.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_CASH,
        decimal_places=decimal_places,
        min_balance=Decimal("0"),
        _frozen_state=_freeze_state({'token': symbol}),
    )
