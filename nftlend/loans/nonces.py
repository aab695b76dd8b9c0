"""
nonces.py - Replay Protection for Signed Loan Terms

A signature over loan terms carries a nonce and a use limit. The registry
counts uses per (account, nonce):

    consume(a, n, max_uses=K)   succeeds exactly K times, then NonceUsed
    cancel(a, n)                exhausts the nonce immediately

Exhaustion is one-way: calling consume later with a larger max_uses does
not revive the nonce.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Tuple

from ..core import NonceUsed


@dataclass(slots=True)
class NonceState:
    uses: int = 0
    exhausted: bool = False


class NonceRegistry:
    """Use counts and exhaustion flags for every (account, nonce) pair."""

    def __init__(self):
        self._nonces: Dict[Tuple[str, int], NonceState] = {}

    def consume(self, account: str, nonce: int, max_uses: int) -> int:
        """
        Record one use of a nonce.

        Args:
            account: Signer whose nonce is consumed
            nonce: Nonce value from the signed payload
            max_uses: Use limit from the signed payload

        Returns:
            The new use count

        Raises:
            NonceUsed: If the nonce is exhausted or this use would exceed max_uses
        """
        state = self._nonces.get((account, nonce), NonceState())
        new_count = state.uses + 1
        if state.exhausted or new_count > max_uses:
            raise NonceUsed(f"nonce {nonce} of {account} is used")
        self._nonces[(account, nonce)] = NonceState(
            uses=new_count,
            exhausted=new_count == max_uses,
        )
        return new_count

    def cancel(self, account: str, nonce: int) -> None:
        """
        Exhaust a nonce before it is used up.

        Raises:
            NonceUsed: If the nonce is already exhausted
        """
        state = self._nonces.get((account, nonce), NonceState())
        if state.exhausted:
            raise NonceUsed(f"nonce {nonce} of {account} is used")
        self._nonces[(account, nonce)] = NonceState(uses=state.uses, exhausted=True)

    def is_used(self, account: str, nonce: int) -> bool:
        state = self._nonces.get((account, nonce))
        return state is not None and state.exhausted

    def uses(self, account: str, nonce: int) -> int:
        state = self._nonces.get((account, nonce))
        return state.uses if state is not None else 0

    def copy(self) -> NonceRegistry:
        """Independent copy for snapshots. Entries are replaced, never mutated."""
        cloned = NonceRegistry()
        cloned._nonces = dict(self._nonces)
        return cloned
