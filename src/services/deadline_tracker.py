"""
Timely Filing & Claim Aging.

Provides:
- Timely filing deadline arithmetic
- Deadline severity classification
- Aging report by days since submission
- Stale claim detection for manual follow-up

Every check here is read-only apart from alert log records and audit
events, so it can be re-run by the scheduler as often as needed. A claim
with a missing or unusable date is left out of the computation it cannot
take part in; it never fails the whole check.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from src.core.config import ClaimsSettings, get_claims_settings
from src.core.enums import AgingBucket, AuditAction, ClaimStatus, DeadlineSeverity
from src.schemas.claim import Claim
from src.services.adapters.base import ClaimQuery, ClaimRepository
from src.services.audit import AuditEvent, AuditSink, LoggingAuditSink
from src.services.claim_state_machine import OPEN_STATUSES, STALE_CANDIDATE_STATUSES
from src.utils.clock import Clock, SystemClock, ensure_utc
from src.utils.logging import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 86400

# Claims in these statuses no longer have a filing deadline to meet
TIMELY_FILING_EXCLUDED_STATUSES = frozenset(
    {ClaimStatus.PAID, ClaimStatus.DENIED, ClaimStatus.CLOSED, ClaimStatus.CANCELLED}
)

# Upper bound (inclusive) of each aging bucket, in days
_AGING_LIMITS: list[tuple[int, AgingBucket]] = [
    (30, AgingBucket.DAYS_0_30),
    (60, AgingBucket.DAYS_31_60),
    (90, AgingBucket.DAYS_61_90),
    (120, AgingBucket.DAYS_91_120),
]


# =============================================================================
# Deadline Arithmetic
# =============================================================================


def timely_filing_deadline(claim: Claim, default_limit: int = 90) -> Optional[datetime]:
    """
    Submission date plus the payer's timely filing limit.

    Returns:
        Deadline, or None if the claim has no submission date
    """
    submitted = claim.tracking.submitted_date
    if submitted is None:
        return None
    limit = claim.insurance.timely_filing_limit or default_limit
    return ensure_utc(submitted) + timedelta(days=limit)


def days_until(moment: datetime, now: datetime) -> int:
    """Whole days from ``now`` to ``moment``, rounded up (negative once passed)."""
    delta = ensure_utc(moment) - ensure_utc(now)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def days_since(moment: datetime, now: datetime) -> int:
    """Whole days elapsed since ``moment``, rounded down."""
    delta = ensure_utc(now) - ensure_utc(moment)
    return math.floor(delta.total_seconds() / SECONDS_PER_DAY)


def days_until_deadline(
    claim: Claim, now: datetime, default_limit: int = 90
) -> Optional[int]:
    """Raw days remaining until the timely filing deadline (may be negative)."""
    deadline = timely_filing_deadline(claim, default_limit)
    if deadline is None:
        return None
    return days_until(deadline, now)


def display_days_remaining(days: int) -> int:
    """Days remaining as shown to users: never below zero."""
    return max(0, days)


def classify_deadline(days_remaining: int, warning_days: int = 14) -> DeadlineSeverity:
    """
    Severity of a raw days-remaining value.

    <= 0 is critical (overdue), 1..warning_days is a warning, anything
    further out is ok.
    """
    if days_remaining <= 0:
        return DeadlineSeverity.CRITICAL
    if days_remaining <= warning_days:
        return DeadlineSeverity.WARNING
    return DeadlineSeverity.OK


def aging_bucket(days: int) -> AgingBucket:
    """Aging bucket for a days-since-submission value."""
    for limit, bucket in _AGING_LIMITS:
        if days <= limit:
            return bucket
    return AgingBucket.DAYS_120_PLUS


# =============================================================================
# Report Models
# =============================================================================


@dataclass
class TimelyFilingAlert:
    """A claim near or past its timely filing deadline."""

    claim_id: str
    claim_number: Optional[str]
    payer_id: Optional[str]
    deadline: datetime
    days_remaining: int  # Raw, negative when overdue
    severity: DeadlineSeverity

    @property
    def days_overdue(self) -> int:
        return abs(self.days_remaining) if self.days_remaining <= 0 else 0

    @property
    def display_days_remaining(self) -> int:
        return display_days_remaining(self.days_remaining)

    def to_log_dict(self) -> dict:
        return {
            "claim_id": self.claim_id,
            "claim_number": self.claim_number,
            "deadline": self.deadline.isoformat(),
            "days_remaining": self.display_days_remaining,
            "days_overdue": self.days_overdue,
        }


@dataclass
class TimelyFilingReport:
    checked: int = 0
    warnings: list[TimelyFilingAlert] = field(default_factory=list)
    critical: list[TimelyFilingAlert] = field(default_factory=list)


@dataclass
class AmountSummary:
    count: int = 0
    total_amount: Decimal = Decimal("0")

    def add(self, amount: Decimal) -> None:
        self.count += 1
        self.total_amount += amount


@dataclass
class AgingReport:
    """Open-claim aging plus a count/amount breakdown by status."""

    generated_at: datetime
    by_aging: dict[AgingBucket, AmountSummary] = field(
        default_factory=lambda: {bucket: AmountSummary() for bucket in AgingBucket}
    )
    by_status: dict[ClaimStatus, AmountSummary] = field(default_factory=dict)


# =============================================================================
# Tracker Service
# =============================================================================


class DeadlineTracker:
    """
    Deadline and aging checks over the claim store.

    Args:
        repository: Claim store
        clock: Time source
        audit_sink: Receives one event per deadline alert and stale claim
        settings: Thresholds (warning window, stale days, default limit)
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

    def _claim_days_remaining(self, claim: Claim, now: datetime) -> Optional[int]:
        try:
            return days_until_deadline(
                claim, now, self._settings.DEFAULT_TIMELY_FILING_DAYS
            )
        except (TypeError, ValueError, OverflowError) as e:
            logger.debug(f"Skipping claim {claim.id} in deadline check: {e}")
            return None

    async def check_timely_filing_deadlines(self) -> TimelyFilingReport:
        """
        Flag open claims near or past their timely filing deadline.

        Returns:
            TimelyFilingReport with warning and critical alerts
        """
        now = self._clock.now()
        candidates = await self._repository.query(
            ClaimQuery(
                exclude_statuses=TIMELY_FILING_EXCLUDED_STATUSES,
                require_submitted_date=True,
            )
        )

        report = TimelyFilingReport(checked=len(candidates))
        for claim in candidates:
            days_remaining = self._claim_days_remaining(claim, now)
            if days_remaining is None:
                continue

            severity = classify_deadline(days_remaining, self._settings.DEADLINE_WARNING_DAYS)
            if severity == DeadlineSeverity.OK:
                continue

            alert = TimelyFilingAlert(
                claim_id=claim.id,
                claim_number=claim.claim_number,
                payer_id=claim.insurance.payer_id,
                deadline=timely_filing_deadline(
                    claim, self._settings.DEFAULT_TIMELY_FILING_DAYS
                ),
                days_remaining=days_remaining,
                severity=severity,
            )
            if severity == DeadlineSeverity.CRITICAL:
                report.critical.append(alert)
            else:
                report.warnings.append(alert)

            await self._audit.record(
                AuditEvent(
                    action=(
                        AuditAction.TIMELY_FILING_CRITICAL
                        if severity == DeadlineSeverity.CRITICAL
                        else AuditAction.TIMELY_FILING_WARNING
                    ),
                    claim_id=claim.id,
                    claim_number=claim.claim_number,
                    occurred_at=now,
                    details=alert.to_log_dict(),
                )
            )

        sample = self._settings.ALERT_SAMPLE_SIZE
        if report.critical:
            logger.bind(claims=[a.to_log_dict() for a in report.critical[:sample]]).error(
                f"Critical: {len(report.critical)} claim(s) past timely filing deadline"
            )
        if report.warnings:
            logger.bind(claims=[a.to_log_dict() for a in report.warnings[:sample]]).warning(
                f"Warning: {len(report.warnings)} claim(s) approaching timely filing deadline"
            )
        logger.info(
            f"Timely filing check complete: checked={report.checked} "
            f"warnings={len(report.warnings)} critical={len(report.critical)}"
        )
        return report

    async def get_aging_report(self) -> AgingReport:
        """
        Bucket open claims by days since submission.

        Returns:
            AgingReport; every bucket is present even when empty
        """
        now = self._clock.now()
        claims = await self._repository.list_all()
        report = AgingReport(generated_at=now)

        for claim in claims:
            report.by_status.setdefault(claim.status, AmountSummary()).add(
                claim.total_charges
            )

            if claim.status not in OPEN_STATUSES or claim.tracking.submitted_date is None:
                continue
            try:
                age = days_since(claim.tracking.submitted_date, now)
            except (TypeError, ValueError, OverflowError):
                continue
            if age < 0:
                # Submission date in the future
                continue
            report.by_aging[aging_bucket(age)].add(claim.total_charges)

        logger.info(
            f"Generated aging report: {len(report.by_status)} status(es), "
            f"{sum(s.count for s in report.by_aging.values())} open claim(s) aged"
        )
        return report

    async def check_stale_claims(self, days_threshold: Optional[int] = None) -> list[Claim]:
        """
        Open claims with no status change for ``days_threshold`` days.

        The last history entry is the reference point; claims without history
        fall back to their submission date.

        Args:
            days_threshold: Days without change (default STALE_CLAIM_DAYS)

        Returns:
            Stale claims, oldest submission first
        """
        threshold = days_threshold if days_threshold is not None else self._settings.STALE_CLAIM_DAYS
        now = self._clock.now()
        cutoff = now - timedelta(days=threshold)

        candidates = await self._repository.query(
            ClaimQuery(statuses=STALE_CANDIDATE_STATUSES, order_by_submitted="asc")
        )

        stale: list[Claim] = []
        for claim in candidates:
            reference = claim.last_status_change or claim.tracking.submitted_date
            if reference is None:
                continue
            try:
                if ensure_utc(reference) <= cutoff:
                    stale.append(claim)
            except (TypeError, ValueError):
                continue

        if stale:
            await self._report_stale(stale, now)

        logger.info(f"Checked for stale claims: threshold={threshold}d count={len(stale)}")
        return stale

    async def _report_stale(self, stale: list[Claim], now: datetime) -> None:
        by_payer: dict[Optional[str], list[Claim]] = {}
        for claim in stale:
            by_payer.setdefault(claim.insurance.payer_id, []).append(claim)

        sample = self._settings.ALERT_SAMPLE_SIZE
        for payer_id, claims in by_payer.items():
            logger.bind(
                payer_id=payer_id,
                payer_name=claims[0].insurance.payer_name,
                claim_numbers=[c.claim_number for c in claims[:sample]],
            ).warning(f"Stale claims found for payer {payer_id}: {len(claims)}")

        for claim in stale:
            await self._audit.record(
                AuditEvent(
                    action=AuditAction.STALE_CLAIM_DETECTED,
                    claim_id=claim.id,
                    claim_number=claim.claim_number,
                    occurred_at=now,
                    details={
                        "status": claim.status.value,
                        "payer_id": claim.insurance.payer_id,
                    },
                )
            )
