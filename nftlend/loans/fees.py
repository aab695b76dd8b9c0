"""
fees.py - Protocol Fees and Affiliate Splits

Fee model:
    All fees are basis points of some amount (principal, interest,
    balance or note receipt). The FeeController holds the current values,
    each capped by a fixed maximum. Lender interest and principal fees are
    frozen into each loan at start (FeeSnapshot); the other fees are read
    when the operation happens.

Affiliate splits:
    A loan's terms may carry an affiliate code. Every fee collected on the
    loan is split between the protocol and the affiliate registered for the
    code. The affiliate share is rounded down and the protocol share is
    computed by subtraction, so the two always sum to the fee exactly.

Pure functions:
    bps_of(amount, bps, places) -> Decimal
    split_fee(amount, split, places) -> FeeSplit
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Dict, List, Optional, Sequence

from ..core import (
    BASIS_POINTS_DENOMINATOR,
    AffiliateCodeAlreadySet, OverMaxSplit, ArrayLengthMismatch, FeeOverMax,
)
from .terms import FeeSnapshot


# =============================================================================
# CONSTANTS
# =============================================================================

BORROWER_ORIGINATION_FEE = "BORROWER_ORIGINATION_FEE"
LENDER_ORIGINATION_FEE = "LENDER_ORIGINATION_FEE"
BORROWER_ROLLOVER_FEE = "BORROWER_ROLLOVER_FEE"
LENDER_ROLLOVER_FEE = "LENDER_ROLLOVER_FEE"
LENDER_DEFAULT_FEE = "LENDER_DEFAULT_FEE"
LENDER_INTEREST_FEE = "LENDER_INTEREST_FEE"
LENDER_PRINCIPAL_FEE = "LENDER_PRINCIPAL_FEE"
LENDER_REDEEM_FEE = "LENDER_REDEEM_FEE"

# Maximum value of each fee, in bps
MAX_FEES: Dict[str, int] = {
    BORROWER_ORIGINATION_FEE: 10_00,
    LENDER_ORIGINATION_FEE: 10_00,
    BORROWER_ROLLOVER_FEE: 20_00,
    LENDER_ROLLOVER_FEE: 20_00,
    LENDER_DEFAULT_FEE: 10_00,
    LENDER_INTEREST_FEE: 50_00,
    LENDER_PRINCIPAL_FEE: 10_00,
    LENDER_REDEEM_FEE: 10_00,
}

# An affiliate can never receive more than half of a fee
MAX_AFFILIATE_SPLIT = 50_00


# =============================================================================
# PURE FUNCTIONS
# =============================================================================

def quantize_down(amount: Decimal, places: Optional[int]) -> Decimal:
    """Truncate amount to `places` decimals (no-op when places is None)."""
    if places is None:
        return amount
    return amount.quantize(Decimal(10) ** -places, rounding=ROUND_DOWN)


def bps_of(amount: Decimal, bps: int, places: Optional[int] = None) -> Decimal:
    """
    Return `bps` basis points of `amount`, rounded down.

    Example:
        bps_of(Decimal("50"), 5_00, 2)      # Decimal("2.50")
        bps_of(Decimal("0.03"), 1_00, 2)    # Decimal("0.00")
    """
    return quantize_down(amount * bps / BASIS_POINTS_DENOMINATOR, places)


@dataclass(frozen=True, slots=True)
class AffiliateSplit:
    """Payout wallet and fee share (bps) registered for an affiliate code."""
    affiliate: str
    split_bps: int


@dataclass(frozen=True, slots=True)
class FeeSplit:
    """How one fee is divided. protocol + affiliate == the fee."""
    protocol: Decimal
    affiliate: Decimal
    affiliate_address: Optional[str] = None


def split_fee(amount: Decimal, split: Optional[AffiliateSplit], places: Optional[int] = None) -> FeeSplit:
    """
    Divide a fee between the protocol and an affiliate.

    Args:
        amount: Gross fee
        split: Registered split for the loan's affiliate code, or None
        places: Currency decimal places for rounding the affiliate share

    Returns:
        FeeSplit where protocol == amount - affiliate
    """
    if split is None or split.split_bps == 0 or amount <= 0:
        return FeeSplit(protocol=amount, affiliate=Decimal("0"))
    affiliate = bps_of(amount, split.split_bps, places)
    return FeeSplit(
        protocol=amount - affiliate,
        affiliate=affiliate,
        affiliate_address=split.affiliate,
    )


# =============================================================================
# AFFILIATE REGISTRY
# =============================================================================

class AffiliateRegistry:
    """
    Affiliate code -> split table.

    Codes are set once. An unknown or unset code maps to None, in which case
    the whole fee goes to the protocol.
    """

    def __init__(self):
        self._splits: Dict[str, AffiliateSplit] = {}

    def set_splits(self, codes: Sequence[str], splits: Sequence[AffiliateSplit]) -> None:
        """
        Register splits for several codes at once, all or nothing.

        Raises:
            ArrayLengthMismatch: If codes and splits differ in length
            OverMaxSplit: If any split exceeds MAX_AFFILIATE_SPLIT
            AffiliateCodeAlreadySet: If any code already has a split
        """
        if len(codes) != len(splits):
            raise ArrayLengthMismatch(f"{len(codes)} codes but {len(splits)} splits")
        pending: Dict[str, AffiliateSplit] = {}
        for code, split in zip(codes, splits):
            if split.split_bps > MAX_AFFILIATE_SPLIT:
                raise OverMaxSplit(f"split {split.split_bps} bps for {code} exceeds {MAX_AFFILIATE_SPLIT}")
            if split.split_bps < 0:
                raise OverMaxSplit(f"split for {code} is negative")
            if code in self._splits or code in pending:
                raise AffiliateCodeAlreadySet(f"affiliate code {code} already set")
            pending[code] = split
        self._splits.update(pending)

    def get(self, code: Optional[str]) -> Optional[AffiliateSplit]:
        if code is None:
            return None
        return self._splits.get(code)

    def split(self, amount: Decimal, code: Optional[str], places: Optional[int] = None) -> FeeSplit:
        """Split a fee according to the split registered for `code`."""
        return split_fee(amount, self.get(code), places)

    def copy(self) -> AffiliateRegistry:
        cloned = AffiliateRegistry()
        cloned._splits = dict(self._splits)
        return cloned


# =============================================================================
# FEE CONTROLLER
# =============================================================================

class FeeController:
    """
    Current protocol fees, each bounded by MAX_FEES.

    Example:
        fees = FeeController()
        fees.set(BORROWER_ORIGINATION_FEE, 1_00)   # 1%
        fees.get(BORROWER_ORIGINATION_FEE)         # 100
        fees.get(LENDER_DEFAULT_FEE)               # 0 (never set)
    """

    def __init__(self, initial: Optional[Dict[str, int]] = None):
        self._fees: Dict[str, int] = {}
        for name, value in (initial or {}).items():
            self.set(name, value)

    def set(self, name: str, bps: int) -> None:
        """
        Raises:
            KeyError: If name is not a known fee
            FeeOverMax: If bps exceeds the fee's maximum
        """
        max_fee = self.get_max_fee(name)
        if bps > max_fee:
            raise FeeOverMax(f"{name}: {bps} bps exceeds max {max_fee}")
        if bps < 0:
            raise FeeOverMax(f"{name}: fee cannot be negative")
        self._fees[name] = bps

    def get(self, name: str) -> int:
        self.get_max_fee(name)
        return self._fees.get(name, 0)

    def get_max_fee(self, name: str) -> int:
        if name not in MAX_FEES:
            raise KeyError(f"unknown fee {name}")
        return MAX_FEES[name]

    def snapshot(self) -> FeeSnapshot:
        """Lender fees to freeze into a new loan."""
        return FeeSnapshot(
            lender_interest_fee=self.get(LENDER_INTEREST_FEE),
            lender_principal_fee=self.get(LENDER_PRINCIPAL_FEE),
        )

    def names(self) -> List[str]:
        return sorted(MAX_FEES)
