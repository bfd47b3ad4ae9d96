"""
Pydantic Schemas for the Claim Lifecycle Core.

This module exports the claim document and its parts.
"""

from src.schemas.claim import (
    Claim,
    ClaimTracking,
    COBInfo,
    InsuranceInfo,
    InsuredPerson,
    PatientInfo,
    PaymentAdjustment,
    PaymentInfo,
    PrimaryPayment,
    ProcedureLine,
    ProviderInfo,
    SecondaryInsuranceInfo,
    StatusHistoryEntry,
)

__all__ = [
    "Claim",
    "ClaimTracking",
    "COBInfo",
    "InsuranceInfo",
    "InsuredPerson",
    "PatientInfo",
    "PaymentAdjustment",
    "PaymentInfo",
    "PrimaryPayment",
    "ProcedureLine",
    "ProviderInfo",
    "SecondaryInsuranceInfo",
    "StatusHistoryEntry",
]
