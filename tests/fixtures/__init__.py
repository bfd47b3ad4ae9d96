"""
Test Fixtures Package.

Reusable claim factories for lifecycle tests.
"""

from .sample_claims import (
    NOW,
    make_claim,
    make_insurance,
    make_paid_primary,
)

__all__ = [
    "NOW",
    "make_claim",
    "make_insurance",
    "make_paid_primary",
]
