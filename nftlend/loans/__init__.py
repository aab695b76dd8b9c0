"""
Loans module - data model and pure calculators for the loan core.

- terms: LoanTerms, LoanRecord, FeeSnapshot, NoteReceipt, LoanEvent
- nonces: NonceRegistry
- fees: FeeController, AffiliateRegistry, split_fee, bps_of
- interest: prorated_interest
- settlement: net settlement for rollovers and migrations
"""

from .terms import (
    LoanState,
    Side,
    LoanTerms,
    FeeSnapshot,
    NoteReceipt,
    LoanRecord,
    LoanEvent,
)

from .nonces import NonceRegistry

from .fees import (
    BORROWER_ORIGINATION_FEE,
    LENDER_ORIGINATION_FEE,
    BORROWER_ROLLOVER_FEE,
    LENDER_ROLLOVER_FEE,
    LENDER_DEFAULT_FEE,
    LENDER_INTEREST_FEE,
    LENDER_PRINCIPAL_FEE,
    LENDER_REDEEM_FEE,
    MAX_FEES,
    MAX_AFFILIATE_SPLIT,
    AffiliateSplit,
    FeeSplit,
    AffiliateRegistry,
    FeeController,
    bps_of,
    split_fee,
    quantize_down,
)

from .interest import prorated_interest, loan_interest

from .settlement import (
    SettlementAmounts,
    check_funds_conflict,
    net_settlement,
    calculate_rollover_amounts,
    calculate_migration_amounts,
)

__all__ = [
    'LoanState', 'Side', 'LoanTerms', 'FeeSnapshot', 'NoteReceipt', 'LoanRecord', 'LoanEvent',
    'NonceRegistry',
    'BORROWER_ORIGINATION_FEE', 'LENDER_ORIGINATION_FEE', 'BORROWER_ROLLOVER_FEE',
    'LENDER_ROLLOVER_FEE', 'LENDER_DEFAULT_FEE', 'LENDER_INTEREST_FEE',
    'LENDER_PRINCIPAL_FEE', 'LENDER_REDEEM_FEE', 'MAX_FEES', 'MAX_AFFILIATE_SPLIT',
    'AffiliateSplit', 'FeeSplit', 'AffiliateRegistry', 'FeeController',
    'bps_of', 'split_fee', 'quantize_down',
    'prorated_interest', 'loan_interest',
    'SettlementAmounts', 'check_funds_conflict', 'net_settlement',
    'calculate_rollover_amounts', 'calculate_migration_amounts',
]
