"""
Units module - Factory functions for the assets of the lending protocol.

- Collateral units: one Unit per NFT, held by at most one wallet
- Promissory notes: borrower and lender notes minted per loan

All unit factories and related functions are re-exported here for convenience.
"""

from .collateral import (
    collateral_symbol,
    create_collateral_unit,
    collateral_owner,
    compute_collateral_transfer,
)

from .promissory_note import (
    PromissoryNote,
    borrower_note,
    lender_note,
    compute_note_transfer,
)

__all__ = [
    'collateral_symbol',
    'create_collateral_unit',
    'collateral_owner',
    'compute_collateral_transfer',
    'PromissoryNote',
    'borrower_note',
    'lender_note',
    'compute_note_transfer',
]
