"""
collateral.py - Non-Fungible Collateral Units

Each NFT that can back a loan is its own Unit, identified by the pair
(collection address, token id). At most one wallet ever holds it:

    min_balance = 0, max_balance = 1, decimal_places = 0

Pattern:
    Mint to owner (test setup / bridging an NFT in):
        Move(1, "punks:42", system, "alice")
    Loan start (escrow):
        Move(1, "punks:42", "alice", "loan_core")
    Repay / claim (release):
        Move(1, "punks:42", "loan_core", <borrower or lender>)

Custody questions (who holds it, is it escrowed) are answered from ledger
positions, so they can be asked of any LedgerView.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, TransactionOrigin, OriginType,
    TransferRule, SYSTEM_WALLET, UNIT_TYPE_COLLATERAL,
    build_transaction, _freeze_state,
)


def collateral_symbol(collateral_address: str, collateral_id: int) -> str:
    """Return the ledger symbol of an NFT: "<address>:<token id>"."""
    return f"{collateral_address}:{collateral_id}"


def create_collateral_unit(
    collateral_address: str,
    collateral_id: int,
    name: Optional[str] = None,
    transfer_rule: Optional[TransferRule] = None,
) -> Unit:
    """
    Create the Unit for a single NFT.

    Args:
        collateral_address: Collection (contract) address
        collateral_id: Token id within the collection
        name: Optional display name (default "<address> #<id>")
        transfer_rule: Optional hook run on every transfer of this NFT. Real
            collections can call back into arbitrary code on transfer, and
            the rule is how tests model that.

    Returns:
        Unit holding the collection address and token id in its state.
    """
    if not collateral_address or not collateral_address.strip():
        raise ValueError("collateral_address cannot be empty")
    if collateral_id < 0:
        raise ValueError(f"collateral_id must be non-negative, got {collateral_id}")

    return Unit(
        symbol=collateral_symbol(collateral_address, collateral_id),
        name=name or f"{collateral_address} #{collateral_id}",
        unit_type=UNIT_TYPE_COLLATERAL,
        min_balance=Decimal("0"),
        max_balance=Decimal("1"),
        decimal_places=0,
        transfer_rule=transfer_rule,
        _frozen_state=_freeze_state({
            'collateral_address': collateral_address,
            'collateral_id': collateral_id,
        }),
    )


def collateral_owner(view: LedgerView, collateral_address: str, collateral_id: int) -> Optional[str]:
    """Return the wallet holding the NFT, or None if nobody does."""
    positions = view.get_positions(collateral_symbol(collateral_address, collateral_id))
    for wallet, quantity in positions.items():
        if wallet != SYSTEM_WALLET and quantity > 0:
            return wallet
    return None


def compute_collateral_transfer(
    view: LedgerView,
    collateral_address: str,
    collateral_id: int,
    source: str,
    dest: str,
) -> PendingTransaction:
    """
    Build a plain owner-to-owner transfer of an NFT.

    Raises:
        ValueError: If source does not hold the NFT
    """
    symbol = collateral_symbol(collateral_address, collateral_id)
    if view.get_balance(source, symbol) < 1:
        raise ValueError(f"{source} does not hold {symbol}")
    move = Move(Decimal("1"), symbol, source, dest, f"transfer_{symbol}")
    origin = TransactionOrigin(OriginType.USER_ACTION, source, unit_symbol=symbol, event_type="Transfer")
    return build_transaction(view, [move], origin=origin)
