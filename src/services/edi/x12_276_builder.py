"""
X12 276 Claim Status Inquiry Builder.

Assembles the logical content of outbound claim status inquiries, grouped by
payer. Nothing here talks to a clearinghouse: the returned batch is handed
to whichever collaborator transmits it.

Usage:
    builder = StatusInquiryBuilder(repository)
    inquiry = await builder.generate_276_inquiry(["claim-1", "claim-2"])
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional

from src.core.config import ClaimsSettings, get_claims_settings
from src.core.enums import AuditAction, ClaimStatus
from src.schemas.claim import Claim
from src.services.adapters.base import ClaimQuery, ClaimRepository
from src.services.audit import AuditEvent, AuditSink, LoggingAuditSink
from src.utils.clock import Clock, SystemClock
from src.utils.errors import ClaimLifecycleError
from src.utils.logging import get_logger

logger = get_logger(__name__)


# Claims still waiting on a payer decision
INQUIRY_STATUSES = frozenset(
    {ClaimStatus.PENDING, ClaimStatus.UNDER_REVIEW, ClaimStatus.ACKNOWLEDGED}
)


# =============================================================================
# Data Models
# =============================================================================


@dataclass
class InquiryPatient:
    """Patient identifiers for a status inquiry."""
    first_name: str
    last_name: str
    date_of_birth: Optional[date] = None
    member_id: Optional[str] = None


@dataclass
class InquiryProvider:
    """Provider identifiers for a status inquiry."""
    npi: Optional[str]
    name: str


@dataclass
class InquiryPayer:
    """Payer the inquiry is addressed to."""
    payer_id: Optional[str]
    name: Optional[str] = None


@dataclass
class InquiryClaim:
    """One claim line of a 276 inquiry."""
    claim_id: str
    claim_number: Optional[str]
    patient: InquiryPatient
    provider: InquiryProvider
    payer: InquiryPayer
    service_date: Optional[date] = None
    total_charges: Decimal = Decimal("0")
    submitted_date: Optional[datetime] = None
    clearinghouse_claim_id: Optional[str] = None


@dataclass
class PayerGroup:
    """Claims of one inquiry addressed to the same payer."""
    payer_id: Optional[str]
    payer_name: Optional[str]
    claim_ids: List[str] = field(default_factory=list)


@dataclass
class StatusInquiry:
    """Logical 276 inquiry batch."""
    inquiry_date: datetime
    inquiry_count: int
    claims: List[InquiryClaim] = field(default_factory=list)
    payer_groups: List[PayerGroup] = field(default_factory=list)
    transaction_type: str = "276"


@dataclass
class PayerInquiry:
    """Inquiry generated for a single payer by the automatic sweep."""
    payer_id: Optional[str]
    claim_count: int
    inquiry: StatusInquiry


@dataclass
class AutoInquiryResult:
    count: int = 0
    total_claims: int = 0
    inquiries: List[PayerInquiry] = field(default_factory=list)


# =============================================================================
# Builder
# =============================================================================


def _payer_sort_key(payer_id: Optional[str]) -> tuple[bool, str]:
    # Claims without a payer go last
    return (payer_id is None, payer_id or "")


def build_inquiry_claim(claim: Claim) -> InquiryClaim:
    """Project a claim onto the identifiers a 276 inquiry carries."""
    return InquiryClaim(
        claim_id=claim.id,
        claim_number=claim.claim_number,
        patient=InquiryPatient(
            first_name=claim.patient.first_name,
            last_name=claim.patient.last_name,
            date_of_birth=claim.patient.date_of_birth,
            member_id=claim.patient.member_id,
        ),
        provider=InquiryProvider(npi=claim.provider.npi, name=claim.provider.name),
        payer=InquiryPayer(
            payer_id=claim.insurance.payer_id,
            name=claim.insurance.payer_name,
        ),
        service_date=claim.service_date,
        total_charges=claim.total_charges,
        submitted_date=claim.tracking.submitted_date,
        clearinghouse_claim_id=claim.tracking.clearinghouse_claim_id,
    )


class StatusInquiryBuilder:
    """
    Builds 276 claim status inquiries from stored claims.

    Args:
        repository: Claim store
        clock: Time source for inquiry dates and the automatic sweep window
        audit_sink: Receives one event per generated payer inquiry
        settings: Inquiry window configuration
    """

    def __init__(
        self,
        repository: ClaimRepository,
        clock: Optional[Clock] = None,
        audit_sink: Optional[AuditSink] = None,
        settings: Optional[ClaimsSettings] = None,
    ):
        self._repository = repository
        self._clock = clock or SystemClock()
        self._audit = audit_sink or LoggingAuditSink()
        self._settings = settings or get_claims_settings()

    async def generate_276_inquiry(self, claim_ids: Iterable[str]) -> StatusInquiry:
        """
        Build one inquiry batch for the given claims.

        Unknown IDs are skipped. Claims are ordered by payer, then by their
        position in ``claim_ids``.

        Args:
            claim_ids: Claim IDs to inquire about

        Returns:
            StatusInquiry
        """
        requested = list(dict.fromkeys(claim_ids))
        claims = await self._repository.find_many(requested)

        found = {claim.id for claim in claims}
        missing = [claim_id for claim_id in requested if claim_id not in found]
        if missing:
            logger.warning(f"276 inquiry skipped {len(missing)} unknown claim(s): {missing}")

        position = {claim_id: index for index, claim_id in enumerate(requested)}
        claims.sort(
            key=lambda c: (_payer_sort_key(c.insurance.payer_id), position[c.id])
        )

        groups: dict[Optional[str], PayerGroup] = {}
        for claim in claims:
            payer_id = claim.insurance.payer_id
            group = groups.get(payer_id)
            if group is None:
                group = groups[payer_id] = PayerGroup(
                    payer_id=payer_id, payer_name=claim.insurance.payer_name
                )
            group.claim_ids.append(claim.id)

        inquiry = StatusInquiry(
            inquiry_date=self._clock.now(),
            inquiry_count=len(claims),
            claims=[build_inquiry_claim(claim) for claim in claims],
            payer_groups=list(groups.values()),
        )

        logger.info(
            f"Generated 276 claim status inquiry: {inquiry.inquiry_count} claim(s), "
            f"{len(inquiry.payer_groups)} payer(s)"
        )
        return inquiry

    async def auto_generate_status_inquiries(self) -> AutoInquiryResult:
        """
        Build one inquiry per payer for claims awaiting a payer decision.

        Picks claims in pending, under_review or acknowledged that were
        submitted between INQUIRY_MAX_AGE_DAYS and INQUIRY_MIN_AGE_DAYS ago.
        A failure for one payer is logged and does not stop the others.
        """
        now = self._clock.now()
        candidates = await self._repository.query(
            ClaimQuery(
                statuses=INQUIRY_STATUSES,
                submitted_from=now - timedelta(days=self._settings.INQUIRY_MAX_AGE_DAYS),
                submitted_to=now - timedelta(days=self._settings.INQUIRY_MIN_AGE_DAYS),
            )
        )

        if not candidates:
            logger.info("No claims require status inquiry")
            return AutoInquiryResult()

        by_payer: dict[Optional[str], list[str]] = {}
        for claim in candidates:
            by_payer.setdefault(claim.insurance.payer_id, []).append(claim.id)

        result = AutoInquiryResult(total_claims=len(candidates))
        for payer_id in sorted(by_payer, key=_payer_sort_key):
            claim_ids = by_payer[payer_id]
            try:
                inquiry = await self.generate_276_inquiry(claim_ids)
            except ClaimLifecycleError as e:
                logger.error(f"Failed to generate 276 inquiry for payer {payer_id}: {e.message}")
                continue

            result.inquiries.append(
                PayerInquiry(payer_id=payer_id, claim_count=len(claim_ids), inquiry=inquiry)
            )
            await self._audit.record(
                AuditEvent(
                    action=AuditAction.STATUS_INQUIRY_GENERATED,
                    occurred_at=now,
                    details={"payer_id": payer_id, "claim_ids": claim_ids},
                )
            )
            logger.info(f"Generated 276 inquiry for payer {payer_id}: {len(claim_ids)} claim(s)")

        result.count = len(result.inquiries)
        logger.info(
            f"Status inquiry generation complete: {len(by_payer)} payer(s), "
            f"{len(candidates)} claim(s), {result.count} inquiries"
        )
        return result
