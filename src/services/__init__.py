"""
Services Layer for the Claim Lifecycle Core.

Exports the lifecycle facade and its factory.
"""

from src.services.claim_lifecycle_service import (
    ClaimLifecycleService,
    create_claim_lifecycle_service,
)

__all__ = [
    "ClaimLifecycleService",
    "create_claim_lifecycle_service",
]
