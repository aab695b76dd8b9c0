"""
fake_view.py - Test Helper for LedgerView

Provides a minimal LedgerView implementation for testing note and collateral
lookups without requiring a full Ledger instance.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Dict, Set, Optional, Any

from nftlend.core import Positions, UnitState


class FakeView:
    """
    Minimal, immutable LedgerView.

    Example:
        view = FakeView(
            balances={'alice': {'LN-1': Decimal("1")}},
            time=datetime(2025, 1, 1)
        )

        view.get_positions('LN-1')
        # Returns: {'alice': Decimal("1")}
    """

    def __init__(
        self,
        balances: Dict[str, Dict[str, Decimal]],
        states: Optional[Dict[str, UnitState]] = None,
        time: Optional[datetime] = None,
        units: Optional[Dict[str, Any]] = None
    ):
        self._balances = balances
        self._states = states or {}
        self._time = time or datetime(2025, 1, 1)
        self._units = units or {}

    @property
    def current_time(self) -> datetime:
        return self._time

    def get_balance(self, wallet: str, unit: str) -> Decimal:
        return self._balances.get(wallet, {}).get(unit, Decimal("0"))

    def get_unit_state(self, unit: str) -> UnitState:
        return dict(self._states.get(unit, {}))

    def get_positions(self, unit: str) -> Positions:
        return {
            w: b[unit]
            for w, b in self._balances.items()
            if unit in b and b[unit] != 0
        }

    def list_wallets(self) -> Set[str]:
        return set(self._balances.keys())

    def get_unit(self, symbol: str) -> Any:
        return self._units[symbol]

