"""
promissory_note.py - Borrower and Lender Notes

Every loan issues two non-fungible notes whose token id is the loan id:

    BN-<id>  borrower note: the right to the collateral when the loan is repaid
    LN-<id>  lender note:   the right to repayments, default claims and
                            withheld funds (note receipts)

Notes follow the obligation pattern of the ledger:

    Mint:  Move(1, "LN-7", system, "bob")
    Burn:  Move(1, "LN-7", "bob", system)

Holding is the only thing that matters: whoever holds the note at the time
of an operation is the payee. Notes can be transferred freely between
wallets with compute_note_transfer().
"""

from __future__ import annotations
from decimal import Decimal
from typing import Optional, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, TransactionOrigin, OriginType,
    SYSTEM_WALLET, UNIT_TYPE_BORROWER_NOTE, UNIT_TYPE_LENDER_NOTE,
    NoteNotFound, build_transaction, _freeze_state,
)


class PromissoryNote:
    """
    Issuance capability for one side of the loan notes.

    Instances are stateless: all ownership lives in the ledger. The loan core
    holds one PromissoryNote per side and asks it for the units and moves to
    include in its own transactions.

    Example:
        lender_note = PromissoryNote("LN", "Lender Note", UNIT_TYPE_LENDER_NOTE)
        unit, move = lender_note.mint("bob", 1)
        ledger.execute(build_transaction(ledger, [move], units_to_create=(unit,)))
        lender_note.owner_of(ledger, 1)    # "bob"
    """

    def __init__(self, prefix: str, name: str, unit_type: str):
        self.prefix = prefix
        self.name = name
        self.unit_type = unit_type

    def symbol(self, loan_id: int) -> str:
        return f"{self.prefix}-{loan_id}"

    def create_unit(self, loan_id: int) -> Unit:
        """Create the Unit for this side's note of loan_id."""
        return Unit(
            symbol=self.symbol(loan_id),
            name=f"{self.name} #{loan_id}",
            unit_type=self.unit_type,
            min_balance=Decimal("0"),
            max_balance=Decimal("1"),
            decimal_places=0,
            _frozen_state=_freeze_state({'loan_id': loan_id}),
        )

    def mint(self, to: str, loan_id: int) -> Tuple[Unit, Move]:
        """Return the unit to create and the issuance move to `to`."""
        move = Move(Decimal("1"), self.symbol(loan_id), SYSTEM_WALLET, to, f"mint_{self.symbol(loan_id)}")
        return self.create_unit(loan_id), move

    def burn(self, view: LedgerView, loan_id: int) -> Move:
        """
        Return the move that extinguishes the note from its current holder.

        Raises:
            NoteNotFound: If the note is not held by anyone
        """
        holder = self.owner_of(view, loan_id)
        if holder is None:
            raise NoteNotFound(f"{self.symbol(loan_id)} has no holder")
        return Move(Decimal("1"), self.symbol(loan_id), holder, SYSTEM_WALLET, f"burn_{self.symbol(loan_id)}")

    def owner_of(self, view: LedgerView, loan_id: int) -> Optional[str]:
        """Return the wallet holding the note, or None if it was never minted or is burned."""
        for wallet, quantity in view.get_positions(self.symbol(loan_id)).items():
            if wallet != SYSTEM_WALLET and quantity > 0:
                return wallet
        return None

    def exists(self, view: LedgerView, loan_id: int) -> bool:
        return self.owner_of(view, loan_id) is not None


def borrower_note() -> PromissoryNote:
    return PromissoryNote("BN", "Borrower Note", UNIT_TYPE_BORROWER_NOTE)


def lender_note() -> PromissoryNote:
    return PromissoryNote("LN", "Lender Note", UNIT_TYPE_LENDER_NOTE)


def compute_note_transfer(
    view: LedgerView,
    note: PromissoryNote,
    loan_id: int,
    source: str,
    dest: str,
) -> PendingTransaction:
    """
    Transfer a note to a new holder.

    The new holder takes over every right attached to the note, including
    payouts already pending on a note receipt.

    Raises:
        NoteNotFound: If source does not hold the note
    """
    if note.owner_of(view, loan_id) != source:
        raise NoteNotFound(f"{source} does not hold {note.symbol(loan_id)}")
    move = Move(Decimal("1"), note.symbol(loan_id), source, dest, f"transfer_{note.symbol(loan_id)}")
    origin = TransactionOrigin(
        OriginType.USER_ACTION, source, unit_symbol=note.symbol(loan_id), event_type="Transfer",
    )
    return build_transaction(view, [move], origin=origin)
