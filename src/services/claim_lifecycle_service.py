"""
Claim Lifecycle Service.

Provides:
- Claim status updates and history
- Payer status response (277) ingestion and inquiry (276) generation
- Timely filing, aging and stale-claim checks
- Secondary claim readiness, generation and COB order

Single entry point wiring the status engine, translator, deadline tracker,
secondary claim generator and inquiry builder around one claim store, one
clock and one audit sink.
"""

from datetime import datetime
from typing import Iterable, Optional

from src.core.config import ClaimsSettings, get_claims_settings
from src.core.enums import ClaimStatus
from src.schemas.claim import Claim, InsuranceInfo
from src.services.adapters.base import ClaimRepository
from src.services.audit import AuditSink, LoggingAuditSink
from src.services.claim_monitoring import ClaimMonitoringScheduler
from src.services.claim_state_machine import (
    ClaimStatusEngine,
    StatusHistory,
    StatusStatistics,
    StatusTimeline,
    StatusUpdateData,
    StatusUpdateResult,
)
from src.services.deadline_tracker import AgingReport, DeadlineTracker, TimelyFilingReport
from src.services.edi.x12_276_builder import (
    AutoInquiryResult,
    StatusInquiry,
    StatusInquiryBuilder,
)
from src.services.edi.x12_277_translator import (
    ClaimStatusResponse,
    Response277Result,
    StatusCodeTranslator,
)
from src.services.secondary_claims import (
    BatchSecondaryResult,
    COBOrderResult,
    COBPatientInfo,
    PrimaryPaymentData,
    ReadinessResult,
    SecondaryClaimGenerator,
    SecondaryClaimResult,
    SecondaryClaimStats,
    determine_cob_order,
)
from src.utils.clock import Clock, SystemClock
from src.utils.logging import get_logger

logger = get_logger(__name__)


class ClaimLifecycleService:
    """
    Claim lifecycle operations exposed to callers.

    Callers resolve authentication beforehand; ``actor_id``/``user_id`` may
    be None for system-originated changes.
    """

    def __init__(
        self,
        repository: ClaimRepository,
        engine: ClaimStatusEngine,
        translator: StatusCodeTranslator,
        deadline_tracker: DeadlineTracker,
        secondary_generator: SecondaryClaimGenerator,
        inquiry_builder: StatusInquiryBuilder,
        scheduler: ClaimMonitoringScheduler,
    ):
        self.repository = repository
        self.engine = engine
        self.translator = translator
        self.deadline_tracker = deadline_tracker
        self.secondary_generator = secondary_generator
        self.inquiry_builder = inquiry_builder
        self.scheduler = scheduler

    # =========================================================================
    # Status
    # =========================================================================

    async def update_claim_status(
        self,
        claim_id: str,
        new_status: ClaimStatus,
        data: Optional[StatusUpdateData] = None,
        actor_id: Optional[str] = None,
    ) -> StatusUpdateResult:
        return await self.engine.update_status(claim_id, new_status, data, actor_id)

    async def get_status_history(self, claim_id: str) -> StatusHistory:
        return await self.engine.get_status_history(claim_id)

    async def get_status_timeline(self, claim_id: str) -> StatusTimeline:
        return await self.engine.get_status_timeline(claim_id)

    async def get_claims_by_status(
        self,
        status: ClaimStatus,
        payer_id: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[Claim]:
        return await self.engine.get_claims_by_status(
            status, payer_id=payer_id, date_from=date_from, date_to=date_to, limit=limit
        )

    async def get_status_statistics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> StatusStatistics:
        return await self.engine.get_status_statistics(start_date, end_date)

    # =========================================================================
    # EDI
    # =========================================================================

    async def process_277_response(self, batch: ClaimStatusResponse) -> Response277Result:
        return await self.translator.process_277_response(batch)

    async def generate_276_inquiry(self, claim_ids: Iterable[str]) -> StatusInquiry:
        return await self.inquiry_builder.generate_276_inquiry(claim_ids)

    async def auto_generate_status_inquiries(self) -> AutoInquiryResult:
        return await self.inquiry_builder.auto_generate_status_inquiries()

    # =========================================================================
    # Deadlines
    # =========================================================================

    async def get_aging_report(self) -> AgingReport:
        return await self.deadline_tracker.get_aging_report()

    async def check_stale_claims(self, days_threshold: Optional[int] = None) -> list[Claim]:
        return await self.deadline_tracker.check_stale_claims(days_threshold)

    async def check_timely_filing_deadlines(self) -> TimelyFilingReport:
        return await self.deadline_tracker.check_timely_filing_deadlines()

    # =========================================================================
    # Secondary Claims
    # =========================================================================

    async def validate_secondary_readiness(self, primary_claim_id: str) -> ReadinessResult:
        return await self.secondary_generator.validate_secondary_readiness(primary_claim_id)

    async def record_primary_payment(
        self,
        primary_claim_id: str,
        payment_data: PrimaryPaymentData,
        user_id: Optional[str] = None,
    ) -> Claim:
        return await self.secondary_generator.record_primary_payment(
            primary_claim_id, payment_data, user_id
        )

    async def generate_secondary_claim(
        self,
        primary_claim_id: str,
        payment_data: PrimaryPaymentData,
        user_id: Optional[str] = None,
        auto_submit: bool = False,
    ) -> SecondaryClaimResult:
        return await self.secondary_generator.generate_secondary_claim(
            primary_claim_id, payment_data, user_id=user_id, auto_submit=auto_submit
        )

    async def batch_generate_secondary_claims(
        self,
        primary_claims: Iterable[Claim],
        user_id: Optional[str] = None,
    ) -> BatchSecondaryResult:
        return await self.secondary_generator.batch_generate_secondary_claims(
            primary_claims, user_id
        )

    async def get_ready_for_secondary(self) -> list[Claim]:
        return await self.secondary_generator.get_ready_for_secondary()

    async def get_secondary_claim_stats(self) -> SecondaryClaimStats:
        return await self.secondary_generator.get_secondary_claim_stats()

    def determine_cob_order(
        self,
        patient_info: COBPatientInfo,
        insurance1: InsuranceInfo,
        insurance2: InsuranceInfo,
    ) -> COBOrderResult:
        return determine_cob_order(patient_info, insurance1, insurance2)


# =============================================================================
# Factory Functions
# =============================================================================


def create_claim_lifecycle_service(
    repository: ClaimRepository,
    clock: Optional[Clock] = None,
    audit_sink: Optional[AuditSink] = None,
    settings: Optional[ClaimsSettings] = None,
) -> ClaimLifecycleService:
    """
    Wire every lifecycle component around one claim store.

    Args:
        repository: Claim store
        clock: Time source (system clock by default)
        audit_sink: Audit destination (log records by default)
        settings: Configuration (environment by default)

    Returns:
        ClaimLifecycleService
    """
    clock = clock or SystemClock()
    audit_sink = audit_sink or LoggingAuditSink()
    settings = settings or get_claims_settings()

    engine = ClaimStatusEngine(repository, clock=clock, audit_sink=audit_sink)
    translator = StatusCodeTranslator(
        engine, repository, concurrency=settings.BATCH_CONCURRENCY
    )
    tracker = DeadlineTracker(
        repository, clock=clock, audit_sink=audit_sink, settings=settings
    )
    generator = SecondaryClaimGenerator(
        repository, engine, clock=clock, audit_sink=audit_sink, settings=settings
    )
    builder = StatusInquiryBuilder(
        repository, clock=clock, audit_sink=audit_sink, settings=settings
    )
    scheduler = ClaimMonitoringScheduler(
        repository, tracker, builder, clock=clock, settings=settings
    )

    logger.debug("Claim lifecycle service created")
    return ClaimLifecycleService(
        repository=repository,
        engine=engine,
        translator=translator,
        deadline_tracker=tracker,
        secondary_generator=generator,
        inquiry_builder=builder,
        scheduler=scheduler,
    )
