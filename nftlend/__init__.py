"""
nftlend - NFT-Collateralized Lending Ledger

Loan book and settlement engine for loans backed by a single NFT, built on a
double-entry asset ledger.

Usage:
    from nftlend import (
        Ledger, LoanCore, OriginationController, RepaymentController,
        LoanTerms, cash, create_collateral_unit,
    )

    ledger = Ledger("main", datetime(2025, 1, 1))
    ledger.register_unit(cash("USDC", "USD Coin"))
    ledger.register_unit(create_collateral_unit("punks", 42))
    for wallet in ("alice", "bob"):
        ledger.register_wallet(wallet)

    core = LoanCore(ledger)
    origination = OriginationController(core, verifier)
    repayment = RepaymentController(core)

    # alice borrows against punks #42, bob signed the terms off-line
    loan_id = origination.initialize_loan(
        terms, borrower="alice", lender="bob",
        signature=bob_sig, nonce=1, max_uses=1, caller="alice",
    )
    repayment.repay_full(loan_id, caller="alice")
"""

# Core types
from .core import (
    LedgerView,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    Unit,
    TransferRule,
    ExecuteResult,
    cash,
    content_hash,
    SYSTEM_WALLET,
    UNIT_TYPE_CASH,
    UNIT_TYPE_COLLATERAL,
    UNIT_TYPE_BORROWER_NOTE,
    UNIT_TYPE_LENDER_NOTE,
    BASIS_POINTS_DENOMINATOR,
    SECONDS_PER_YEAR,
    GRACE_PERIOD,
    # Errors
    LedgerError,
    TransferRuleViolation,
    UnitNotRegistered,
    WalletNotRegistered,
    LoanCoreError,
    RetryLater,
    AlreadyConsumed,
    NeverValid,
    InvalidLoanState,
    LoanNotFound,
    CollateralInUse,
    CannotSettle,
    ExceedsBalance,
    NonceUsed,
    LoanNotExpired,
    FundsConflict,
    InvalidLoanTerms,
    NoReceipt,
    AffiliateCodeAlreadySet,
    OverMaxSplit,
    ArrayLengthMismatch,
    FeeOverMax,
    InsufficientWithdrawable,
    ZeroAmount,
    ProtocolShutdown,
    TransferFailed,
    NoteNotFound,
    ReentrancyError,
    NotCounterparty,
    InvalidSignature,
    SignatureExpired,
    PredicateFailed,
    RolloverMismatch,
    InvalidRepayment,
    NotLender,
    CallbackMismatch,
)

# Ledger
from .ledger import Ledger

# Units
from .units import (
    collateral_symbol,
    create_collateral_unit,
    collateral_owner,
    compute_collateral_transfer,
    PromissoryNote,
    borrower_note,
    lender_note,
    compute_note_transfer,
)

# Loans
from .loans import (
    LoanState,
    Side,
    LoanTerms,
    FeeSnapshot,
    NoteReceipt,
    LoanRecord,
    LoanEvent,
    NonceRegistry,
    AffiliateSplit,
    FeeSplit,
    AffiliateRegistry,
    FeeController,
    bps_of,
    split_fee,
    prorated_interest,
    loan_interest,
    SettlementAmounts,
    check_funds_conflict,
    net_settlement,
    calculate_rollover_amounts,
    calculate_migration_amounts,
)

# Loan core
from .loan_core import LoanCore

# Collaborators
from .interfaces import (
    SignatureVerifier,
    PredicateVerifier,
    Predicate,
    FlashLender,
    FlashBorrower,
    ForeignLoan,
    ForeignLoanSource,
)

# Controllers
from .controllers import (
    OriginationController,
    signing_payload,
    RepaymentController,
    MigrationController,
)

__all__ = [
    # Core
    'LedgerView', 'Move', 'Transaction', 'PendingTransaction', 'TransactionOrigin',
    'OriginType', 'build_transaction', 'Unit', 'TransferRule', 'ExecuteResult',
    'cash', 'content_hash', 'SYSTEM_WALLET',
    'UNIT_TYPE_CASH', 'UNIT_TYPE_COLLATERAL', 'UNIT_TYPE_BORROWER_NOTE', 'UNIT_TYPE_LENDER_NOTE',
    'BASIS_POINTS_DENOMINATOR', 'SECONDS_PER_YEAR', 'GRACE_PERIOD',
    # Errors
    'LedgerError', 'TransferRuleViolation',
    'UnitNotRegistered', 'WalletNotRegistered', 'LoanCoreError',
    'RetryLater', 'AlreadyConsumed', 'NeverValid',
    'InvalidLoanState', 'LoanNotFound', 'CollateralInUse', 'CannotSettle', 'ExceedsBalance',
    'NonceUsed', 'LoanNotExpired', 'FundsConflict', 'InvalidLoanTerms', 'NoReceipt',
    'AffiliateCodeAlreadySet', 'OverMaxSplit', 'ArrayLengthMismatch', 'FeeOverMax',
    'InsufficientWithdrawable', 'ZeroAmount', 'ProtocolShutdown', 'TransferFailed',
    'NoteNotFound', 'ReentrancyError', 'NotCounterparty', 'InvalidSignature',
    'SignatureExpired', 'PredicateFailed', 'RolloverMismatch', 'InvalidRepayment',
    'NotLender', 'CallbackMismatch',
    # Ledger
    'Ledger',
    # Units
    'collateral_symbol', 'create_collateral_unit', 'collateral_owner',
    'compute_collateral_transfer', 'PromissoryNote', 'borrower_note', 'lender_note',
    'compute_note_transfer',
    # Loans
    'LoanState', 'Side', 'LoanTerms', 'FeeSnapshot', 'NoteReceipt', 'LoanRecord', 'LoanEvent',
    'NonceRegistry', 'AffiliateSplit', 'FeeSplit', 'AffiliateRegistry', 'FeeController',
    'bps_of', 'split_fee', 'prorated_interest', 'loan_interest',
    'SettlementAmounts', 'check_funds_conflict', 'net_settlement',
    'calculate_rollover_amounts', 'calculate_migration_amounts',
    # Loan core
    'LoanCore',
    # Collaborators
    'SignatureVerifier', 'PredicateVerifier', 'Predicate', 'FlashLender', 'FlashBorrower',
    'ForeignLoan', 'ForeignLoanSource',
    # Controllers
    'OriginationController', 'signing_payload', 'RepaymentController', 'MigrationController',
]
