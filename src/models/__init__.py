"""
SQLAlchemy Models for the Claim Lifecycle Core.
"""

from src.models.base import Base, TimeStampedModel
from src.models.claim import ClaimRecord

__all__ = [
    "Base",
    "TimeStampedModel",
    "ClaimRecord",
]
