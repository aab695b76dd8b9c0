"""
Controllers module - orchestrators in front of the loan core.

- origination: counterparty consent, origination and rollover fees
- repayment: payment splitting, claims, note redemption
- migration: flash-loan refinancing of loans held by another protocol
"""

from .origination import OriginationController, signing_payload
from .repayment import RepaymentController
from .migration import MigrationController

__all__ = [
    'OriginationController',
    'signing_payload',
    'RepaymentController',
    'MigrationController',
]
