"""
Claim Status State Machine.

Provides:
- Valid status transitions
- Transition validation and status-specific payload checks
- Append-only status history ledger
- Optimistic-concurrency status updates
- Status timeline and statistics

State Diagram:
    DRAFT -> SUBMITTED | CANCELLED
    SUBMITTED -> ACKNOWLEDGED | REJECTED | CANCELLED
    ACKNOWLEDGED -> PENDING | UNDER_REVIEW | PENDED | DENIED | PAID
    PENDING -> UNDER_REVIEW | PENDED | DENIED | PAID | PARTIALLY_PAID
    UNDER_REVIEW -> PENDED | APPROVED_FOR_PAYMENT | DENIED | PAID | PARTIALLY_PAID
    PENDED -> UNDER_REVIEW | PENDING | DENIED | PAID
    APPROVED_FOR_PAYMENT -> PAID | PARTIALLY_PAID
    PAID -> CLOSED | APPEALED
    PARTIALLY_PAID -> PAID | APPEALED | CLOSED
    DENIED -> APPEALED | CLOSED
    REJECTED -> RESUBMITTED | CLOSED
    APPEALED -> UNDER_REVIEW | PAID | PARTIALLY_PAID | DENIED | CLOSED
    RESUBMITTED -> SUBMITTED
    CANCELLED, CLOSED are terminal
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from src.core.enums import AuditAction, ClaimStatus, StatusChangeSource, SubmissionStatus
from src.schemas.claim import Claim, StatusHistoryEntry
from src.services.adapters.base import ClaimQuery, ClaimRepository, WritePrecondition
from src.services.audit import AuditEvent, AuditSink, LoggingAuditSink
from src.services.edi.x12_277_translator import describe_status_code
from src.utils.clock import Clock, SystemClock, ensure_utc
from src.utils.errors import InvalidTransitionError, NotFoundError, ValidationError
from src.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Valid Transitions Definition
# =============================================================================


VALID_TRANSITIONS: dict[ClaimStatus, frozenset[ClaimStatus]] = {
    ClaimStatus.DRAFT: frozenset({ClaimStatus.SUBMITTED, ClaimStatus.CANCELLED}),
    ClaimStatus.SUBMITTED: frozenset(
        {ClaimStatus.ACKNOWLEDGED, ClaimStatus.REJECTED, ClaimStatus.CANCELLED}
    ),
    ClaimStatus.ACKNOWLEDGED: frozenset(
        {
            ClaimStatus.PENDING,
            ClaimStatus.UNDER_REVIEW,
            ClaimStatus.PENDED,
            ClaimStatus.DENIED,
            ClaimStatus.PAID,
        }
    ),
    ClaimStatus.PENDING: frozenset(
        {
            ClaimStatus.UNDER_REVIEW,
            ClaimStatus.PENDED,
            ClaimStatus.DENIED,
            ClaimStatus.PAID,
            ClaimStatus.PARTIALLY_PAID,
        }
    ),
    ClaimStatus.UNDER_REVIEW: frozenset(
        {
            ClaimStatus.PENDED,
            ClaimStatus.APPROVED_FOR_PAYMENT,
            ClaimStatus.DENIED,
            ClaimStatus.PAID,
            ClaimStatus.PARTIALLY_PAID,
        }
    ),
    ClaimStatus.PENDED: frozenset(
        {
            ClaimStatus.UNDER_REVIEW,
            ClaimStatus.PENDING,
            ClaimStatus.DENIED,
            ClaimStatus.PAID,
        }
    ),
    ClaimStatus.APPROVED_FOR_PAYMENT: frozenset(
        {ClaimStatus.PAID, ClaimStatus.PARTIALLY_PAID}
    ),
    ClaimStatus.PAID: frozenset({ClaimStatus.CLOSED, ClaimStatus.APPEALED}),
    ClaimStatus.PARTIALLY_PAID: frozenset(
        {ClaimStatus.PAID, ClaimStatus.APPEALED, ClaimStatus.CLOSED}
    ),
    ClaimStatus.DENIED: frozenset({ClaimStatus.APPEALED, ClaimStatus.CLOSED}),
    ClaimStatus.REJECTED: frozenset({ClaimStatus.RESUBMITTED, ClaimStatus.CLOSED}),
    ClaimStatus.APPEALED: frozenset(
        {
            ClaimStatus.UNDER_REVIEW,
            ClaimStatus.PAID,
            ClaimStatus.PARTIALLY_PAID,
            ClaimStatus.DENIED,
            ClaimStatus.CLOSED,
        }
    ),
    ClaimStatus.RESUBMITTED: frozenset({ClaimStatus.SUBMITTED}),
    ClaimStatus.CANCELLED: frozenset(),
    ClaimStatus.CLOSED: frozenset(),
}

_unmapped = set(ClaimStatus) - set(VALID_TRANSITIONS)
if _unmapped:
    raise RuntimeError(
        f"Transition table missing statuses: {sorted(s.value for s in _unmapped)}"
    )

# Statuses the aging report buckets
OPEN_STATUSES: frozenset[ClaimStatus] = frozenset(
    {
        ClaimStatus.ACKNOWLEDGED,
        ClaimStatus.PENDING,
        ClaimStatus.UNDER_REVIEW,
        ClaimStatus.PENDED,
    }
)

# Statuses eligible for stale-claim follow-up
STALE_CANDIDATE_STATUSES: frozenset[ClaimStatus] = OPEN_STATUSES

PAYMENT_STATUSES: frozenset[ClaimStatus] = frozenset(
    {ClaimStatus.PAID, ClaimStatus.PARTIALLY_PAID}
)
DENIAL_STATUSES: frozenset[ClaimStatus] = frozenset(
    {ClaimStatus.DENIED, ClaimStatus.REJECTED}
)


# =============================================================================
# Status Helpers
# =============================================================================


def can_transition(from_status: ClaimStatus, to_status: ClaimStatus) -> bool:
    """Check if transition from one status to another is valid."""
    return to_status in VALID_TRANSITIONS.get(from_status, frozenset())


def get_next_statuses(status: ClaimStatus) -> list[ClaimStatus]:
    """Get all possible next statuses from current status, in declaration order."""
    allowed = VALID_TRANSITIONS.get(status, frozenset())
    return [s for s in ClaimStatus if s in allowed]


def is_terminal_status(status: ClaimStatus) -> bool:
    """Check if status is terminal (no further transitions)."""
    return not VALID_TRANSITIONS.get(status)


def get_status_display_name(status: ClaimStatus) -> str:
    """Get human-readable status name."""
    display_names = {
        ClaimStatus.DRAFT: "Draft",
        ClaimStatus.SUBMITTED: "Submitted",
        ClaimStatus.ACKNOWLEDGED: "Acknowledged",
        ClaimStatus.PENDING: "Pending",
        ClaimStatus.UNDER_REVIEW: "Under Review",
        ClaimStatus.PENDED: "Pended - Information Requested",
        ClaimStatus.APPROVED_FOR_PAYMENT: "Approved for Payment",
        ClaimStatus.PAID: "Paid",
        ClaimStatus.PARTIALLY_PAID: "Partially Paid",
        ClaimStatus.DENIED: "Denied",
        ClaimStatus.REJECTED: "Rejected",
        ClaimStatus.APPEALED: "Appealed",
        ClaimStatus.RESUBMITTED: "Resubmitted",
        ClaimStatus.CANCELLED: "Cancelled",
        ClaimStatus.CLOSED: "Closed",
    }
    return display_names.get(status, status.value)


def replay_history(
    entries: Iterable[StatusHistoryEntry],
    initial: ClaimStatus = ClaimStatus.DRAFT,
) -> ClaimStatus:
    """
    Rebuild a claim's status by walking its ledger from ``initial``.

    Raises:
        InvalidTransitionError: an entry is not reachable from the one before it
    """
    status = initial
    for entry in entries:
        if entry.previous_status is not None and entry.previous_status != status:
            raise InvalidTransitionError(None, entry.previous_status, entry.status)
        if not can_transition(status, entry.status):
            raise InvalidTransitionError(
                None, status, entry.status, allowed=get_next_statuses(status)
            )
        status = entry.status
    return status


# =============================================================================
# Data Transfer Objects
# =============================================================================


class StatusUpdateData(BaseModel):
    """Evidence and payload accompanying a status change."""

    reason: Optional[str] = None
    notes: Optional[str] = None
    source: StatusChangeSource = StatusChangeSource.MANUAL
    reference_number: Optional[str] = None
    status_code: Optional[int] = None
    status_code_description: Optional[str] = None

    # Payment (paid / partially_paid)
    payment_amount: Optional[Decimal] = None
    payment_date: Optional[datetime] = None
    check_number: Optional[str] = None
    era_number: Optional[str] = None

    # Denial (denied / rejected)
    denial_reason: Optional[str] = None
    denial_code: Optional[str] = None
    is_appealable: bool = True

    # Pend (pended)
    pend_reason: Optional[str] = None
    information_requested: Optional[str] = None
    response_deadline: Optional[datetime] = None


class StatusUpdateResult(BaseModel):
    """Updated claim plus the ledger entry that was appended."""

    claim: Claim
    status_entry: StatusHistoryEntry


class StatusHistory(BaseModel):
    claim_id: str
    claim_number: Optional[str] = None
    current_status: ClaimStatus
    history: list[StatusHistoryEntry] = Field(default_factory=list)


class TimelineMilestone(BaseModel):
    """One point on a claim timeline."""

    event: str
    date: datetime
    type: str  # "milestone" or "status_change"
    status: Optional[ClaimStatus] = None
    previous_status: Optional[ClaimStatus] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    changed_by: Optional[str] = None
    source: Optional[StatusChangeSource] = None


class StatusTimeline(BaseModel):
    claim_id: str
    claim_number: Optional[str] = None
    current_status: ClaimStatus
    milestones: list[TimelineMilestone] = Field(default_factory=list)
    total_duration_days: Optional[int] = None
    status_changes: int = 0


class StatusBreakdown(BaseModel):
    count: int = 0
    total_amount: Decimal = Decimal("0")


class StatusStatistics(BaseModel):
    """Claim counts and turnaround over a submission-date window."""

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    total_claims: int = 0
    by_status: dict[str, StatusBreakdown] = Field(default_factory=dict)
    average_days_to_payment: float = 0.0
    denial_rate: float = 0.0  # Percentage, 2 dp


# =============================================================================
# Status Engine
# =============================================================================


class ClaimStatusEngine:
    """
    Applies status transitions to stored claims.

    Every write is guarded by the status read at the start of the operation,
    so a concurrent change to the same claim surfaces as
    ConcurrentModificationError instead of a lost update.
    """

    def __init__(
        self,
        repository: ClaimRepository,
        clock: Optional[Clock] = None,
        audit_sink: Optional[AuditSink] = None,
    ):
        self._repository = repository
        self._clock = clock or SystemClock()
        self._audit = audit_sink or LoggingAuditSink()

    # =========================================================================
    # Transitions
    # =========================================================================

    async def update_status(
        self,
        claim_id: str,
        new_status: ClaimStatus,
        data: Optional[StatusUpdateData] = None,
        actor_id: Optional[str] = None,
    ) -> StatusUpdateResult:
        """
        Move a claim to ``new_status`` and append a history entry.

        Args:
            claim_id: Claim ID
            new_status: Target status
            data: Evidence and status-specific payload
            actor_id: Acting user, None for system-originated changes

        Returns:
            StatusUpdateResult with the persisted claim and new entry

        Raises:
            NotFoundError: claim does not exist
            InvalidTransitionError: target not reachable (claim unmodified)
            ValidationError: required status payload missing
            ConcurrentModificationError: claim changed since it was read
        """
        data = data or StatusUpdateData()
        new_status = ClaimStatus(new_status)

        claim = await self._repository.find_by_id(claim_id)
        if claim is None:
            raise NotFoundError("Claim", claim_id)

        current_status = claim.status
        if not can_transition(current_status, new_status):
            logger.warning(
                f"Rejected transition for claim {claim.claim_number or claim_id}: "
                f"{current_status.value} -> {new_status.value}"
            )
            raise InvalidTransitionError(
                claim_id,
                current_status,
                new_status,
                allowed=get_next_statuses(current_status),
            )

        self._validate_payload(claim_id, new_status, data)

        now = self._clock.now()
        entry = self._build_entry(current_status, new_status, data, actor_id, now)
        self._apply(claim, entry, data, now)

        saved = await self._repository.save(
            claim, WritePrecondition(expected_status=current_status)
        )

        await self._audit.record(
            AuditEvent(
                action=AuditAction.STATUS_CHANGED,
                claim_id=saved.id,
                claim_number=saved.claim_number,
                actor_id=actor_id,
                occurred_at=now,
                details={
                    "previous_status": current_status.value,
                    "new_status": new_status.value,
                    "source": data.source.value,
                    "status_code": data.status_code,
                },
            )
        )
        logger.info(
            f"Claim {saved.claim_number or saved.id} status updated: "
            f"{current_status.value} -> {new_status.value} (source: {data.source.value})"
        )

        return StatusUpdateResult(claim=saved, status_entry=entry)

    @staticmethod
    def _validate_payload(
        claim_id: str, new_status: ClaimStatus, data: StatusUpdateData
    ) -> None:
        errors: list[str] = []

        if new_status == ClaimStatus.DENIED and not data.denial_reason:
            errors.append("denial_reason is required when denying a claim")
        if new_status == ClaimStatus.REJECTED and not (
            data.denial_reason or data.denial_code or data.reason
        ):
            errors.append("a rejection reason or code is required when rejecting a claim")
        if new_status == ClaimStatus.PENDED and not data.pend_reason:
            errors.append("pend_reason is required when pending a claim")
        if data.payment_amount is not None and data.payment_amount < 0:
            errors.append("payment_amount must not be negative")

        if errors:
            raise ValidationError(
                f"Invalid data for transition to '{new_status.value}'",
                errors=errors,
                claim_id=claim_id,
                to_status=new_status.value,
            )

    @staticmethod
    def _build_entry(
        previous_status: ClaimStatus,
        new_status: ClaimStatus,
        data: StatusUpdateData,
        actor_id: Optional[str],
        now: datetime,
    ) -> StatusHistoryEntry:
        description = data.status_code_description
        if description is None and data.status_code is not None:
            description = describe_status_code(data.status_code)

        fields = {
            "status": new_status,
            "previous_status": previous_status,
            "changed_at": now,
            "changed_by": actor_id,
            "reason": data.reason,
            "notes": data.notes,
            "source": data.source,
            "reference_number": data.reference_number,
            "status_code": data.status_code,
            "status_code_description": description,
        }

        # Status-specific payload only
        if new_status in PAYMENT_STATUSES:
            fields.update(
                payment_amount=data.payment_amount,
                payment_date=data.payment_date,
                check_number=data.check_number,
                era_number=data.era_number,
            )
        if new_status in DENIAL_STATUSES:
            fields.update(
                denial_reason=data.denial_reason,
                denial_code=data.denial_code,
                is_appealable=data.is_appealable,
            )
        if new_status == ClaimStatus.PENDED:
            fields.update(
                pend_reason=data.pend_reason,
                information_requested=data.information_requested,
                response_deadline=data.response_deadline,
            )

        return StatusHistoryEntry(**fields)

    @staticmethod
    def _apply(
        claim: Claim,
        entry: StatusHistoryEntry,
        data: StatusUpdateData,
        now: datetime,
    ) -> None:
        claim.status = entry.status
        claim.status_history.append(entry)
        claim.updated_at = now

        # Milestone dates are written once, by the first entry into the state
        if entry.status == ClaimStatus.SUBMITTED:
            if claim.tracking.submitted_date is None:
                claim.tracking.submitted_date = now
            if claim.submission_status == SubmissionStatus.NOT_SUBMITTED:
                claim.submission_status = SubmissionStatus.PENDING
        elif entry.status == ClaimStatus.ACKNOWLEDGED:
            if claim.tracking.acknowledged_date is None:
                claim.tracking.acknowledged_date = now
            claim.submission_status = SubmissionStatus.ACKNOWLEDGED
        elif entry.status in PAYMENT_STATUSES:
            if claim.tracking.paid_date is None:
                claim.tracking.paid_date = now
            if data.payment_amount is not None:
                claim.payment.paid_amount = data.payment_amount
                claim.amount_paid = data.payment_amount
            claim.payment.payment_date = data.payment_date or now
            if data.check_number:
                claim.payment.check_number = data.check_number
            if data.era_number:
                claim.payment.era_number = data.era_number

    # =========================================================================
    # History & Reporting
    # =========================================================================

    async def get_status_history(self, claim_id: str) -> StatusHistory:
        """Get the ordered status ledger for a claim."""
        claim = await self._repository.find_by_id(claim_id)
        if claim is None:
            raise NotFoundError("Claim", claim_id)

        return StatusHistory(
            claim_id=claim.id,
            claim_number=claim.claim_number,
            current_status=claim.status,
            history=list(claim.status_history),
        )

    async def get_status_timeline(self, claim_id: str) -> StatusTimeline:
        """
        Build a date-sorted timeline of milestones and status changes.

        Returns:
            StatusTimeline with total duration in whole days (rounded up)
        """
        claim = await self._repository.find_by_id(claim_id)
        if claim is None:
            raise NotFoundError("Claim", claim_id)

        milestones: list[TimelineMilestone] = []
        tracking = claim.tracking

        if tracking.submitted_date:
            milestones.append(
                TimelineMilestone(
                    event="Claim Submitted", date=tracking.submitted_date, type="milestone"
                )
            )
        if tracking.acknowledged_date:
            milestones.append(
                TimelineMilestone(
                    event="Claim Acknowledged",
                    date=tracking.acknowledged_date,
                    type="milestone",
                )
            )

        for entry in claim.status_history:
            milestones.append(
                TimelineMilestone(
                    event=f"Status: {entry.status.value}",
                    date=entry.changed_at,
                    type="status_change",
                    status=entry.status,
                    previous_status=entry.previous_status,
                    reason=entry.reason,
                    notes=entry.notes,
                    changed_by=entry.changed_by,
                    source=entry.source,
                )
            )

        if tracking.paid_date:
            milestones.append(
                TimelineMilestone(
                    event="Payment Received", date=tracking.paid_date, type="milestone"
                )
            )

        # Stable sort keeps milestone-before-status-change order on equal timestamps
        milestones.sort(key=lambda m: ensure_utc(m.date))

        total_duration = None
        if milestones:
            span = ensure_utc(milestones[-1].date) - ensure_utc(milestones[0].date)
            total_duration = math.ceil(span.total_seconds() / 86400)

        return StatusTimeline(
            claim_id=claim.id,
            claim_number=claim.claim_number,
            current_status=claim.status,
            milestones=milestones,
            total_duration_days=total_duration,
            status_changes=len(claim.status_history),
        )

    async def get_claims_by_status(
        self,
        status: ClaimStatus,
        payer_id: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        limit: int = 100,
    ) -> list[Claim]:
        """Claims in ``status``, most recently submitted first."""
        return await self._repository.query(
            ClaimQuery(
                statuses=frozenset({ClaimStatus(status)}),
                payer_id=payer_id,
                submitted_from=date_from,
                submitted_to=date_to,
                limit=limit,
                order_by_submitted="desc",
            )
        )

    async def get_status_statistics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> StatusStatistics:
        """
        Summarize claims submitted within an optional date window.

        Args:
            start_date: Inclusive lower bound on submission date
            end_date: Inclusive upper bound on submission date

        Returns:
            StatusStatistics with per-status counts and charge totals,
            average days from submission to payment and denial rate
        """
        if start_date is None and end_date is None:
            claims = await self._repository.list_all()
        else:
            claims = await self._repository.query(
                ClaimQuery(submitted_from=start_date, submitted_to=end_date)
            )

        by_status: dict[str, StatusBreakdown] = {}
        for claim in claims:
            bucket = by_status.setdefault(claim.status.value, StatusBreakdown())
            bucket.count += 1
            bucket.total_amount += claim.total_charges

        days_to_pay = [
            (ensure_utc(c.tracking.paid_date) - ensure_utc(c.tracking.submitted_date)).total_seconds()
            / 86400
            for c in claims
            if c.status in PAYMENT_STATUSES
            and c.tracking.submitted_date is not None
            and c.tracking.paid_date is not None
        ]
        average_days = sum(days_to_pay) / len(days_to_pay) if days_to_pay else 0.0

        denied = sum(1 for c in claims if c.status == ClaimStatus.DENIED)
        denial_rate = round(denied / len(claims) * 100, 2) if claims else 0.0

        return StatusStatistics(
            start_date=start_date,
            end_date=end_date,
            total_claims=len(claims),
            by_status=by_status,
            average_days_to_payment=average_days,
            denial_rate=denial_rate,
        )
