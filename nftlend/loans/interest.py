"""
interest.py - Prorated Simple Interest

Interest accrues linearly on the outstanding balance from the last accrual
(loan start or last payment) until now, and stops at the loan's due date:

    interest = balance * rate_bps * elapsed_secs / (10_000 * 31_536_000)

    elapsed_secs = max(0, min(now, start + duration) - last_accrual)

Amounts are rounded down to the currency's decimal places.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from ..core import BASIS_POINTS_DENOMINATOR, SECONDS_PER_YEAR
from .fees import quantize_down
from .terms import LoanRecord


def prorated_interest(
    balance: Decimal,
    rate_bps: int,
    start_date: datetime,
    duration_secs: int,
    last_accrual: datetime,
    now: datetime,
    places: Optional[int] = None,
) -> Decimal:
    """
    Interest accrued on `balance` since `last_accrual`.

    Example:
        # 1,000 at 5% APR for a full 365-day loan
        prorated_interest(Decimal("1000"), 500, t0, 365 * 86400, t0,
                          t0 + timedelta(days=400), places=2)   # Decimal("50.00")
    """
    end = min(now, start_date + timedelta(seconds=duration_secs))
    elapsed = int((end - last_accrual).total_seconds())
    if elapsed <= 0 or balance <= 0:
        return quantize_down(Decimal("0"), places)
    interest = (balance * rate_bps * elapsed) / (BASIS_POINTS_DENOMINATOR * SECONDS_PER_YEAR)
    return quantize_down(interest, places)


def loan_interest(loan: LoanRecord, now: datetime, places: Optional[int] = None) -> Decimal:
    """Interest currently due on a loan record."""
    return prorated_interest(
        loan.balance,
        loan.terms.interest_rate,
        loan.start_date,
        loan.terms.duration_secs,
        loan.last_accrual_timestamp,
        now,
        places,
    )
