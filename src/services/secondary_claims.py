"""
Secondary Claim Generation (Coordination of Benefits).

Provides:
- Secondary filing readiness checks
- Secondary claim derivation from a paid primary claim
- Batch generation with per-claim failure isolation
- COB order determination between two policies

Generation writes in two steps: the secondary claim is inserted first, then
linked on the primary with a guarded write (status still paid, no secondary
linked yet). If the link loses a race, the inserted secondary is deleted
again, so at most one secondary claim ever survives per primary.
"""

import asyncio
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional, Union

from pydantic import BaseModel, Field

from src.core.config import ClaimsSettings, get_claims_settings
from src.core.enums import (
    AuditAction,
    ClaimStatus,
    COBRule,
    ReadinessCheckName,
    RelationshipToInsured,
    StatusChangeSource,
)
from src.schemas.claim import (
    Claim,
    COBInfo,
    InsuranceInfo,
    PaymentAdjustment,
    PrimaryPayment,
    SecondaryInsuranceInfo,
)
from src.services.adapters.base import ClaimRepository, WritePrecondition
from src.services.audit import AuditEvent, AuditSink, LoggingAuditSink
from src.services.claim_state_machine import (
    PAYMENT_STATUSES,
    ClaimStatusEngine,
    StatusUpdateData,
    is_terminal_status,
)
from src.utils.clock import Clock, SystemClock, ensure_utc
from src.utils.errors import (
    AlreadyExistsError,
    ClaimLifecycleError,
    ConcurrentModificationError,
    ErrorKind,
    NotFoundError,
    UnexpectedError,
    ValidationError,
)
from src.utils.logging import get_logger

logger = get_logger(__name__)

SECONDARY_CLAIM_SUFFIX = "-S"


# =============================================================================
# COB Rules
# =============================================================================


class COBRules:
    """
    Individual coordination-of-benefits rules.

    Each rule returns 1 or 2 for the plan it makes primary, or None when it
    cannot decide.
    """

    @staticmethod
    def birthday_rule(parent1_dob: date, parent2_dob: date) -> Optional[int]:
        """Parent whose birthday falls earlier in the calendar year is primary."""
        first = (parent1_dob.month, parent1_dob.day)
        second = (parent2_dob.month, parent2_dob.day)
        if first < second:
            return 1
        if second < first:
            return 2
        return None

    @staticmethod
    def active_rule(insurance1_active: bool, insurance2_active: bool) -> Optional[int]:
        """Active coverage is primary over retiree or COBRA coverage."""
        if insurance1_active and not insurance2_active:
            return 1
        if insurance2_active and not insurance1_active:
            return 2
        return None

    @staticmethod
    def medicare_rule(
        insurance1_type: Optional[str],
        insurance2_type: Optional[str],
        is_working: bool,
    ) -> Optional[int]:
        """Employer group coverage is primary to Medicare while the patient works."""
        if not is_working:
            return None
        is_medicare1 = (insurance1_type or "").upper() == "MEDICARE"
        is_medicare2 = (insurance2_type or "").upper() == "MEDICARE"
        if is_medicare1 and not is_medicare2:
            return 2
        if is_medicare2 and not is_medicare1:
            return 1
        return None


# =============================================================================
# Schemas
# =============================================================================


class COBPatientInfo(BaseModel):
    """Patient facts the COB order depends on."""

    date_of_birth: Optional[date] = None
    court_ordered_payer_id: Optional[str] = Field(
        None, description="Payer named primary by a custody or court decree"
    )


class COBOrderResult(BaseModel):
    primary: InsuranceInfo
    secondary: InsuranceInfo
    rule: COBRule
    notes: Optional[str] = None


class ReadinessCheck(BaseModel):
    name: ReadinessCheckName
    passed: bool
    message: str


class ReadinessResult(BaseModel):
    """Outcome of the secondary filing checklist for one primary claim."""

    ready: bool
    validations: list[ReadinessCheck] = Field(default_factory=list)
    primary_claim_id: str
    claim_number: Optional[str] = None
    status: ClaimStatus
    amount_paid: Decimal = Decimal("0")
    filing_days_remaining: Optional[int] = None  # Informational only

    @property
    def failed_checks(self) -> list[ReadinessCheck]:
        return [check for check in self.validations if not check.passed]


class PrimaryPaymentData(BaseModel):
    """Primary payer payment, as read from its EOB."""

    amount: Decimal = Field(default=Decimal("0"), ge=0)
    date: Optional[datetime] = None
    patient_responsibility: Decimal = Field(default=Decimal("0"), ge=0)
    adjustments: list[PaymentAdjustment] = Field(default_factory=list)
    eob_document: Optional[str] = None


class SecondaryAmounts(BaseModel):
    total_charges: Decimal
    primary_paid: Decimal
    primary_adjustments: Decimal
    allowed_amount: Decimal
    patient_responsibility_from_primary: Decimal
    remaining_balance: Decimal
    secondary_charges: Decimal


class SecondaryClaimResult(BaseModel):
    primary_claim: Claim
    secondary_claim: Claim
    amounts: SecondaryAmounts
    auto_submit_error: Optional[str] = None


class BatchSuccess(BaseModel):
    primary_claim_id: str
    primary_claim_number: Optional[str] = None
    secondary_claim_id: str
    secondary_claim_number: Optional[str] = None
    amounts: SecondaryAmounts


class BatchFailure(BaseModel):
    primary_claim_id: str
    primary_claim_number: Optional[str] = None
    error_kind: ErrorKind
    error: str


class BatchSecondaryResult(BaseModel):
    total_processed: int = 0
    successful: list[BatchSuccess] = Field(default_factory=list)
    failed: list[BatchFailure] = Field(default_factory=list)


class SecondaryClaimStats(BaseModel):
    primaries_with_secondary_insurance: int = 0
    ready_for_secondary: int = 0
    secondary_filed: int = 0
    secondary_paid: int = 0
    secondary_pending: int = 0
    total_secondary_charges: Decimal = Decimal("0")
    total_secondary_paid: Decimal = Decimal("0")
    collection_rate: float = 0.0  # Percentage, 2 dp


# =============================================================================
# Pure Helpers
# =============================================================================


def calculate_secondary_amounts(
    primary_claim: Claim, payment: PrimaryPaymentData
) -> SecondaryAmounts:
    """
    Balance to bill the secondary payer.

    allowed = charges - |sum(adjustments)|, remaining = allowed - primary paid,
    and the secondary claim carries max(0, remaining).
    """
    total_charges = primary_claim.total_charges
    adjustments_total = sum((adj.amount for adj in payment.adjustments), Decimal("0"))
    allowed_amount = total_charges - abs(adjustments_total)
    remaining = allowed_amount - payment.amount

    return SecondaryAmounts(
        total_charges=total_charges,
        primary_paid=payment.amount,
        primary_adjustments=adjustments_total,
        allowed_amount=allowed_amount,
        patient_responsibility_from_primary=payment.patient_responsibility,
        remaining_balance=remaining,
        secondary_charges=max(Decimal("0"), remaining),
    )


def payment_data_from_claim(claim: Claim) -> PrimaryPaymentData:
    """Primary payment as already recorded on a claim."""
    recorded = claim.cob.primary_payment
    return PrimaryPaymentData(
        amount=recorded.amount or claim.amount_paid,
        date=recorded.date or claim.payment.payment_date,
        patient_responsibility=(
            claim.cob.patient_responsibility_from_primary or claim.patient_responsibility
        ),
        adjustments=list(claim.payment.adjustments),
        eob_document=recorded.eob_document,
    )


def determine_cob_order(
    patient_info: COBPatientInfo,
    insurance1: InsuranceInfo,
    insurance2: InsuranceInfo,
) -> COBOrderResult:
    """
    Decide which of two plans pays first.

    Rules, first decisive one wins:
        1. subscriber: the plan where the patient is the subscriber
        2. court_order: the plan named by a custody/court decree
        3. birthday: parent with the earlier month/day (year ignored)
        4. active_coverage: active coverage over retiree/COBRA
        5. default_order: caller's order, flagged in notes
    """
    plans = (insurance1, insurance2)

    def ordered(winner: int, rule: COBRule, notes: Optional[str] = None) -> COBOrderResult:
        primary = plans[winner - 1]
        secondary = plans[2 - winner]
        return COBOrderResult(primary=primary, secondary=secondary, rule=rule, notes=notes)

    self1 = insurance1.relationship_to_insured == RelationshipToInsured.SELF
    self2 = insurance2.relationship_to_insured == RelationshipToInsured.SELF
    if self1 and not self2:
        return ordered(1, COBRule.SUBSCRIBER)
    if self2 and not self1:
        return ordered(2, COBRule.SUBSCRIBER)

    court_payer = patient_info.court_ordered_payer_id
    if court_payer:
        if insurance1.payer_id == court_payer and insurance2.payer_id != court_payer:
            return ordered(1, COBRule.COURT_ORDER)
        if insurance2.payer_id == court_payer and insurance1.payer_id != court_payer:
            return ordered(2, COBRule.COURT_ORDER)

    dob1 = insurance1.insured.date_of_birth if insurance1.insured else None
    dob2 = insurance2.insured.date_of_birth if insurance2.insured else None
    if dob1 and dob2:
        winner = COBRules.birthday_rule(dob1, dob2)
        if winner:
            return ordered(winner, COBRule.BIRTHDAY)

    winner = COBRules.active_rule(insurance1.is_active, insurance2.is_active)
    if winner:
        return ordered(winner, COBRule.ACTIVE_COVERAGE)

    return ordered(
        1,
        COBRule.DEFAULT_ORDER,
        notes="Unable to determine definitively, using provided order",
    )


# =============================================================================
# Generator Service
# =============================================================================


class SecondaryClaimGenerator:
    """
    Derives secondary claims from paid primary claims.

    Args:
        repository: Claim store
        engine: Status engine used for auto-submission
        clock: Time source
        audit_sink: Receives payment and generation events
        settings: Batch concurrency and default filing limit
    """

    def __init__(
        self,
        repository: ClaimRepository,
        engine: ClaimStatusEngine,
        clock: Optional[Clock] = None,
        audit_sink: Optional[AuditSink] = None,
        settings: Optional[ClaimsSettings] = None,
    ):
        self._repository = repository
        self._engine = engine
        self._clock = clock or SystemClock()
        self._audit = audit_sink or LoggingAuditSink()
        self._settings = settings or get_claims_settings()

    async def _get_claim(self, claim_id: str) -> Claim:
        claim = await self._repository.find_by_id(claim_id)
        if claim is None:
            raise NotFoundError("Claim", claim_id)
        return claim

    # =========================================================================
    # Readiness
    # =========================================================================

    def _evaluate_readiness(self, claim: Claim, now: datetime) -> ReadinessResult:
        payment = claim.cob.primary_payment
        checks = [
            ReadinessCheck(
                name=ReadinessCheckName.IS_PRIMARY_CLAIM,
                passed=claim.cob.is_primary,
                message=(
                    "Claim is a primary claim"
                    if claim.cob.is_primary
                    else "Claim is not a primary claim"
                ),
            ),
            ReadinessCheck(
                name=ReadinessCheckName.HAS_SECONDARY_INSURANCE,
                passed=claim.secondary_insurance.has_secondary,
                message=(
                    "Secondary insurance on file"
                    if claim.secondary_insurance.has_secondary
                    else "No secondary insurance on file"
                ),
            ),
            ReadinessCheck(
                name=ReadinessCheckName.EOB_RECEIVED,
                passed=payment.eob_received,
                message=(
                    "Primary EOB received" if payment.eob_received else "Primary EOB not received"
                ),
            ),
            ReadinessCheck(
                name=ReadinessCheckName.PRIMARY_PAID,
                passed=claim.status == ClaimStatus.PAID,
                message=(
                    "Primary claim paid"
                    if claim.status == ClaimStatus.PAID
                    else f"Primary claim not yet paid (status: {claim.status.value})"
                ),
            ),
            ReadinessCheck(
                name=ReadinessCheckName.SECONDARY_NOT_FILED,
                passed=claim.cob.secondary_claim_id is None,
                message=(
                    "No secondary claim filed"
                    if claim.cob.secondary_claim_id is None
                    else f"Secondary claim already filed: {claim.cob.secondary_claim_id}"
                ),
            ),
        ]

        filing_days_remaining = None
        if claim.secondary_insurance.has_secondary:
            limit = (
                claim.secondary_insurance.timely_filing_limit
                or self._settings.DEFAULT_TIMELY_FILING_DAYS
            )
            elapsed = 0
            if payment.date is not None:
                elapsed = (ensure_utc(now) - ensure_utc(payment.date)).days
            filing_days_remaining = max(0, limit - elapsed)

        return ReadinessResult(
            ready=all(check.passed for check in checks),
            validations=checks,
            primary_claim_id=claim.id,
            claim_number=claim.claim_number,
            status=claim.status,
            amount_paid=claim.amount_paid,
            filing_days_remaining=filing_days_remaining,
        )

    async def validate_secondary_readiness(self, primary_claim_id: str) -> ReadinessResult:
        """
        Run the secondary filing checklist.

        Raises:
            NotFoundError: primary claim does not exist
        """
        claim = await self._get_claim(primary_claim_id)
        return self._evaluate_readiness(claim, self._clock.now())

    # =========================================================================
    # Primary Payment
    # =========================================================================

    async def record_primary_payment(
        self,
        primary_claim_id: str,
        payment_data: PrimaryPaymentData,
        user_id: Optional[str] = None,
    ) -> Claim:
        """Record the primary payer's EOB on a primary claim."""
        claim = await self._get_claim(primary_claim_id)
        if not claim.cob.is_primary:
            raise ValidationError(
                "Primary payment can only be recorded on a primary claim",
                errors=["claim is not a primary claim"],
                claim_id=claim.id,
            )

        now = self._clock.now()
        self._apply_primary_payment(claim, payment_data, now)
        saved = await self._repository.save(
            claim, WritePrecondition(expected_status=claim.status)
        )

        await self._audit.record(
            AuditEvent(
                action=AuditAction.PRIMARY_PAYMENT_RECORDED,
                claim_id=saved.id,
                claim_number=saved.claim_number,
                actor_id=user_id,
                occurred_at=now,
                details={
                    "amount": str(payment_data.amount),
                    "patient_responsibility": str(payment_data.patient_responsibility),
                },
            )
        )
        logger.info(
            f"Primary payment recorded on claim {saved.claim_number or saved.id}: "
            f"{payment_data.amount}"
        )
        return saved

    @staticmethod
    def _apply_primary_payment(
        claim: Claim, payment_data: PrimaryPaymentData, now: datetime
    ) -> None:
        current = claim.cob.primary_payment
        claim.cob.primary_payment = PrimaryPayment(
            amount=payment_data.amount,
            date=payment_data.date or current.date or now,
            eob_received=True,
            eob_document=payment_data.eob_document or current.eob_document,
        )
        claim.cob.patient_responsibility_from_primary = payment_data.patient_responsibility
        if payment_data.adjustments:
            claim.payment.adjustments = list(payment_data.adjustments)
        claim.updated_at = now

    # =========================================================================
    # Generation
    # =========================================================================

    def _build_secondary_claim(
        self,
        primary: Claim,
        amounts: SecondaryAmounts,
        payment_data: PrimaryPaymentData,
        user_id: Optional[str],
        now: datetime,
    ) -> Claim:
        secondary_insurance = primary.secondary_insurance
        insurance = InsuranceInfo(
            **secondary_insurance.model_dump(
                exclude={"has_secondary", "cob_order", "timely_filing_limit"}
            ),
            timely_filing_limit=(
                secondary_insurance.timely_filing_limit
                or self._settings.DEFAULT_TIMELY_FILING_DAYS
            ),
        )

        return Claim(
            claim_number=(
                f"{primary.claim_number}{SECONDARY_CLAIM_SUFFIX}"
                if primary.claim_number
                else None
            ),
            status=ClaimStatus.DRAFT,
            patient=primary.patient.model_copy(deep=True),
            provider=primary.provider.model_copy(deep=True),
            insurance=insurance,
            secondary_insurance=SecondaryInsuranceInfo(has_secondary=False),
            cob=COBInfo(
                is_primary=False,
                is_secondary=True,
                primary_claim_id=primary.id,
                primary_payment=PrimaryPayment(
                    amount=amounts.primary_paid,
                    date=payment_data.date or now,
                    eob_received=True,
                    eob_document=payment_data.eob_document,
                ),
                patient_responsibility_from_primary=amounts.patient_responsibility_from_primary,
            ),
            service_date=primary.service_date,
            service_date_end=primary.service_date_end,
            place_of_service=primary.place_of_service,
            diagnosis_codes=list(primary.diagnosis_codes),
            procedures=[proc.model_copy(deep=True) for proc in primary.procedures],
            total_charges=amounts.secondary_charges,
            amount_paid=Decimal("0"),
            patient_responsibility=amounts.patient_responsibility_from_primary,
            prior_auth_number=primary.prior_auth_number,
            referral_number=primary.referral_number,
            notes=(
                f"Secondary claim for primary claim {primary.claim_number or primary.id}. "
                f"Primary paid: ${amounts.primary_paid}"
            ),
            created_by=user_id,
            created_at=now,
            updated_at=now,
        )

    async def generate_secondary_claim(
        self,
        primary_claim_id: str,
        payment_data: PrimaryPaymentData,
        user_id: Optional[str] = None,
        auto_submit: bool = False,
    ) -> SecondaryClaimResult:
        """
        Create the secondary claim for a paid primary claim.

        Args:
            primary_claim_id: Primary claim ID
            payment_data: Primary payment per the EOB
            user_id: Acting user (None for system)
            auto_submit: Move the new claim to submitted right away

        Returns:
            SecondaryClaimResult with both claims and the computed amounts

        Raises:
            NotFoundError: primary claim does not exist
            AlreadyExistsError: a secondary claim is already linked
            ValidationError: readiness checks failed
            ConcurrentModificationError: primary changed while generating
        """
        primary = await self._get_claim(primary_claim_id)

        if primary.cob.secondary_claim_id is not None:
            raise AlreadyExistsError(
                "Secondary claim",
                primary.claim_number or primary.id,
                existing_id=primary.cob.secondary_claim_id,
            )

        now = self._clock.now()
        readiness = self._evaluate_readiness(primary, now)
        if not readiness.ready:
            failed = readiness.failed_checks
            raise ValidationError(
                f"Primary claim {primary.claim_number or primary.id} is not ready "
                f"for secondary filing",
                errors=[f"{check.name.value}: {check.message}" for check in failed],
                claim_id=primary.id,
                failed_checks=[check.name.value for check in failed],
            )

        amounts = calculate_secondary_amounts(primary, payment_data)
        secondary = self._build_secondary_claim(primary, amounts, payment_data, user_id, now)
        secondary = await self._repository.insert(secondary)

        self._apply_primary_payment(primary, payment_data, now)
        primary.amount_paid = payment_data.amount
        primary.cob.secondary_claim_id = secondary.id
        primary.cob.secondary_filing_date = now

        try:
            primary = await self._repository.save(
                primary,
                WritePrecondition(
                    expected_status=ClaimStatus.PAID, require_no_secondary=True
                ),
            )
        except (ConcurrentModificationError, NotFoundError) as e:
            await self._repository.delete(secondary.id)
            logger.warning(
                f"Secondary claim link lost for primary {primary_claim_id}; "
                f"removed {secondary.id}: {e.message}"
            )
            current = await self._repository.find_by_id(primary_claim_id)
            if current is not None and current.cob.secondary_claim_id is not None:
                raise AlreadyExistsError(
                    "Secondary claim",
                    current.claim_number or current.id,
                    existing_id=current.cob.secondary_claim_id,
                ) from e
            raise
        except Exception:
            # Any other failed link leaves no unlinked secondary behind
            await self._repository.delete(secondary.id)
            logger.exception(
                f"Secondary claim link failed for primary {primary_claim_id}; "
                f"removed {secondary.id}"
            )
            raise

        await self._audit.record(
            AuditEvent(
                action=AuditAction.SECONDARY_CLAIM_GENERATED,
                claim_id=primary.id,
                claim_number=primary.claim_number,
                actor_id=user_id,
                occurred_at=now,
                details={
                    "secondary_claim_id": secondary.id,
                    "secondary_claim_number": secondary.claim_number,
                    "primary_paid": str(amounts.primary_paid),
                    "secondary_charges": str(amounts.secondary_charges),
                },
            )
        )
        logger.info(
            f"Secondary claim generated: primary={primary.claim_number or primary.id} "
            f"secondary={secondary.claim_number or secondary.id} "
            f"primary_paid={amounts.primary_paid} remaining={amounts.remaining_balance}"
        )

        auto_submit_error = None
        if auto_submit:
            try:
                update = await self._engine.update_status(
                    secondary.id,
                    ClaimStatus.SUBMITTED,
                    StatusUpdateData(
                        source=StatusChangeSource.API,
                        reason="Auto-submitted after secondary claim generation",
                    ),
                    actor_id=user_id,
                )
                secondary = update.claim
            except ClaimLifecycleError as e:
                # The secondary claim stays committed as a draft
                auto_submit_error = e.message
                logger.warning(
                    f"Auto-submit failed for secondary claim {secondary.id}: {e.message}"
                )

        return SecondaryClaimResult(
            primary_claim=primary,
            secondary_claim=secondary,
            amounts=amounts,
            auto_submit_error=auto_submit_error,
        )

    async def batch_generate_secondary_claims(
        self,
        primary_claims: Iterable[Claim],
        user_id: Optional[str] = None,
    ) -> BatchSecondaryResult:
        """
        Generate secondary claims for many primaries.

        Each claim succeeds or fails on its own; payment data comes from what
        is already recorded on each claim.

        Args:
            primary_claims: Primary claims to process
            user_id: Acting user

        Returns:
            BatchSecondaryResult, successes and failures in input order
        """
        claims = list(primary_claims)

        async def process(claim: Claim) -> Union[BatchSuccess, BatchFailure]:
            try:
                result = await self.generate_secondary_claim(
                    claim.id, payment_data_from_claim(claim), user_id=user_id
                )
            except ClaimLifecycleError as e:
                logger.error(
                    f"Failed to generate secondary claim for {claim.claim_number or claim.id}: "
                    f"{e.message}"
                )
                return BatchFailure(
                    primary_claim_id=claim.id,
                    primary_claim_number=claim.claim_number,
                    error_kind=e.kind,
                    error=e.message,
                )
            except Exception as e:
                error = UnexpectedError(e)
                logger.exception(
                    f"Unexpected failure generating secondary claim for "
                    f"{claim.claim_number or claim.id}: {e}"
                )
                return BatchFailure(
                    primary_claim_id=claim.id,
                    primary_claim_number=claim.claim_number,
                    error_kind=error.kind,
                    error=error.message,
                )
            return BatchSuccess(
                primary_claim_id=claim.id,
                primary_claim_number=claim.claim_number,
                secondary_claim_id=result.secondary_claim.id,
                secondary_claim_number=result.secondary_claim.claim_number,
                amounts=result.amounts,
            )

        concurrency = self._settings.BATCH_CONCURRENCY
        if concurrency > 1:
            semaphore = asyncio.Semaphore(concurrency)

            async def process_with_semaphore(claim: Claim):
                async with semaphore:
                    return await process(claim)

            outcomes = await asyncio.gather(*[process_with_semaphore(c) for c in claims])
        else:
            outcomes = [await process(claim) for claim in claims]

        result = BatchSecondaryResult(total_processed=len(claims))
        for outcome in outcomes:
            if isinstance(outcome, BatchSuccess):
                result.successful.append(outcome)
            else:
                result.failed.append(outcome)

        logger.info(
            f"Batch secondary generation: processed={result.total_processed} "
            f"successful={len(result.successful)} failed={len(result.failed)}"
        )
        return result

    # =========================================================================
    # Lookups & Stats
    # =========================================================================

    async def get_ready_for_secondary(self) -> list[Claim]:
        """Paid primary claims with EOB on file and no secondary claim yet."""
        return await self._repository.find_ready_for_secondary()

    async def get_secondary_for_primary(self, primary_claim_id: str) -> Optional[Claim]:
        primary = await self._get_claim(primary_claim_id)
        if primary.cob.secondary_claim_id is None:
            return None
        return await self._repository.find_by_id(primary.cob.secondary_claim_id)

    async def get_primary_for_secondary(self, secondary_claim_id: str) -> Optional[Claim]:
        secondary = await self._get_claim(secondary_claim_id)
        if secondary.cob.primary_claim_id is None:
            return None
        return await self._repository.find_by_id(secondary.cob.primary_claim_id)

    async def get_secondary_claim_stats(self) -> SecondaryClaimStats:
        """Counts and collection totals for COB filing."""
        claims = await self._repository.list_all()
        ready = await self._repository.find_ready_for_secondary()
        secondaries = [c for c in claims if c.cob.is_secondary]

        stats = SecondaryClaimStats(
            primaries_with_secondary_insurance=sum(
                1 for c in claims if c.cob.is_primary and c.secondary_insurance.has_secondary
            ),
            ready_for_secondary=len(ready),
            secondary_filed=len(secondaries),
            secondary_paid=sum(1 for c in secondaries if c.status in PAYMENT_STATUSES),
            secondary_pending=sum(
                1
                for c in secondaries
                if c.status not in PAYMENT_STATUSES
                and c.status != ClaimStatus.DENIED
                and not is_terminal_status(c.status)
            ),
            total_secondary_charges=sum((c.total_charges for c in secondaries), Decimal("0")),
            total_secondary_paid=sum((c.amount_paid for c in secondaries), Decimal("0")),
        )
        if stats.total_secondary_charges > 0:
            stats.collection_rate = round(
                float(stats.total_secondary_paid / stats.total_secondary_charges * 100), 2
            )
        return stats
