"""
Pydantic Schemas for the Claim Lifecycle Core.

A single canonical claim layout is used throughout: nested patient and
provider objects, insurance identifiers under ``insurance`` and one flat
``total_charges`` amount on the claim.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.core.enums import (
    ClaimStatus,
    RelationshipToInsured,
    StatusChangeSource,
    SubmissionStatus,
)


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Parties
# =============================================================================


class PatientInfo(BaseModel):
    """Patient demographics carried on the claim."""

    id: Optional[str] = None
    first_name: str
    last_name: str
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(None, description="M, F or U")
    member_id: Optional[str] = Field(None, description="Member ID on the billed plan")


class ProviderInfo(BaseModel):
    """Rendering/billing provider."""

    id: Optional[str] = None
    npi: Optional[str] = Field(None, max_length=10)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    organization_name: Optional[str] = None

    @property
    def name(self) -> str:
        if self.organization_name:
            return self.organization_name
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class ProcedureLine(BaseModel):
    """One billed service line."""

    code: str = Field(..., min_length=1, max_length=20)
    description: Optional[str] = None
    charge: Decimal = Field(..., ge=0)
    units: int = Field(default=1, ge=1)
    modifiers: list[str] = Field(default_factory=list)
    diagnosis_pointers: list[int] = Field(default_factory=list)
    place_of_service: Optional[str] = None
    service_date: Optional[date] = None


# =============================================================================
# Insurance & Coordination of Benefits
# =============================================================================


class InsuredPerson(BaseModel):
    """Subscriber of a plan (may differ from the patient)."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None


class InsuranceInfo(BaseModel):
    """Plan billed by a claim."""

    payer_id: Optional[str] = None
    payer_name: Optional[str] = None
    policy_number: Optional[str] = None
    group_number: Optional[str] = None
    plan_name: Optional[str] = None
    relationship_to_insured: RelationshipToInsured = RelationshipToInsured.SELF
    insured: Optional[InsuredPerson] = None
    coverage_start: Optional[date] = None
    coverage_end: Optional[date] = None
    insurance_type: Optional[str] = Field(None, description="e.g. COMMERCIAL, MEDICARE")
    is_active: bool = Field(default=True, description="False for retiree or COBRA coverage")
    timely_filing_limit: Optional[int] = Field(
        default=90, ge=1, description="Days the payer allows for filing"
    )


class SecondaryInsuranceInfo(InsuranceInfo):
    """Second plan on file; its presence gates COB filing."""

    has_secondary: bool = False
    cob_order: int = Field(default=2, ge=2, description="2 = secondary, 3 = tertiary")


class PrimaryPayment(BaseModel):
    """What the primary payer paid, per its EOB."""

    amount: Decimal = Decimal("0")
    date: Optional[datetime] = None
    eob_received: bool = False
    eob_document: Optional[str] = Field(None, description="URL or storage key of the EOB")


class COBInfo(BaseModel):
    """Coordination-of-benefits linkage between primary and secondary claims."""

    is_primary: bool = True
    is_secondary: bool = False
    primary_claim_id: Optional[str] = None
    secondary_claim_id: Optional[str] = None
    primary_payment: PrimaryPayment = Field(default_factory=PrimaryPayment)
    patient_responsibility_from_primary: Decimal = Decimal("0")
    secondary_filing_date: Optional[datetime] = None


# =============================================================================
# Payment & Tracking
# =============================================================================


class PaymentAdjustment(BaseModel):
    """Contractual or other adjustment reported by the payer."""

    code: Optional[str] = None
    amount: Decimal = Decimal("0")
    reason: Optional[str] = None


class PaymentInfo(BaseModel):
    """Payment/denial details from the payer."""

    paid_amount: Optional[Decimal] = None
    payment_date: Optional[datetime] = None
    check_number: Optional[str] = None
    era_number: Optional[str] = None
    denial_reason: Optional[str] = None
    denial_code: Optional[str] = None
    adjustments: list[PaymentAdjustment] = Field(default_factory=list)


class ClaimTracking(BaseModel):
    """Milestone timestamps; each is written once, by the first matching transition."""

    submitted_date: Optional[datetime] = None
    acknowledged_date: Optional[datetime] = None
    paid_date: Optional[datetime] = None
    clearinghouse_claim_id: Optional[str] = None


# =============================================================================
# Status History
# =============================================================================


class StatusHistoryEntry(BaseModel):
    """
    Immutable ledger entry for one status change.

    ``changed_by`` is None for system-originated changes (e.g. EDI ingestion).
    Payment, denial and pend fields are only populated when entering the
    matching status.
    """

    model_config = ConfigDict(frozen=True)

    status: ClaimStatus
    previous_status: Optional[ClaimStatus] = None
    changed_at: datetime
    changed_by: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    source: StatusChangeSource = StatusChangeSource.MANUAL
    reference_number: Optional[str] = None
    status_code: Optional[int] = None
    status_code_description: Optional[str] = None

    # Entering paid / partially_paid
    payment_amount: Optional[Decimal] = None
    payment_date: Optional[datetime] = None
    check_number: Optional[str] = None
    era_number: Optional[str] = None

    # Entering denied / rejected
    denial_reason: Optional[str] = None
    denial_code: Optional[str] = None
    is_appealable: Optional[bool] = None

    # Entering pended
    pend_reason: Optional[str] = None
    information_requested: Optional[str] = None
    response_deadline: Optional[datetime] = None


# =============================================================================
# Claim
# =============================================================================


class Claim(BaseModel):
    """Central claim entity. Status changes go through ClaimStatusEngine only."""

    id: str = Field(default_factory=_new_id)
    claim_number: Optional[str] = None

    status: ClaimStatus = ClaimStatus.DRAFT
    submission_status: SubmissionStatus = SubmissionStatus.NOT_SUBMITTED
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)
    tracking: ClaimTracking = Field(default_factory=ClaimTracking)

    patient: PatientInfo
    provider: ProviderInfo = Field(default_factory=ProviderInfo)
    insurance: InsuranceInfo = Field(default_factory=InsuranceInfo)
    secondary_insurance: SecondaryInsuranceInfo = Field(default_factory=SecondaryInsuranceInfo)
    cob: COBInfo = Field(default_factory=COBInfo)
    payment: PaymentInfo = Field(default_factory=PaymentInfo)

    service_date: Optional[date] = None
    service_date_end: Optional[date] = None
    place_of_service: Optional[str] = None
    diagnosis_codes: list[str] = Field(default_factory=list)
    procedures: list[ProcedureLine] = Field(default_factory=list)

    total_charges: Decimal = Field(default=Decimal("0"), ge=0)
    amount_paid: Decimal = Decimal("0")
    patient_responsibility: Decimal = Decimal("0")

    prior_auth_number: Optional[str] = None
    referral_number: Optional[str] = None
    notes: Optional[str] = None

    created_by: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def last_status_change(self) -> Optional[datetime]:
        """Timestamp of the most recent history entry, if any."""
        if not self.status_history:
            return None
        return self.status_history[-1].changed_at
