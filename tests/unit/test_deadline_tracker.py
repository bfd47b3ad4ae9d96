"""
Deadline Tracker Tests.

Tests for:
- Deadline arithmetic and severity classification
- Timely filing check
- Aging report
- Stale claim detection
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from src.core.enums import AgingBucket, AuditAction, ClaimStatus, DeadlineSeverity
from src.services.deadline_tracker import (
    DeadlineTracker,
    aging_bucket,
    classify_deadline,
    days_since,
    days_until,
    display_days_remaining,
    timely_filing_deadline,
)
from src.schemas.claim import StatusHistoryEntry
from tests.fixtures import NOW, make_claim


@pytest.fixture
def tracker(service):
    return service.deadline_tracker


def days_ago(days: float):
    return NOW - timedelta(days=days)


# =============================================================================
# Arithmetic
# =============================================================================


class TestDeadlineArithmetic:
    """Tests for the pure deadline helpers."""

    @pytest.mark.parametrize(
        "days,expected",
        [
            (-3, DeadlineSeverity.CRITICAL),
            (0, DeadlineSeverity.CRITICAL),
            (1, DeadlineSeverity.WARNING),
            (14, DeadlineSeverity.WARNING),
            (15, DeadlineSeverity.OK),
        ],
    )
    def test_classify_deadline(self, days, expected):
        assert classify_deadline(days, warning_days=14) == expected

    @pytest.mark.parametrize(
        "days,expected",
        [
            (0, AgingBucket.DAYS_0_30),
            (30, AgingBucket.DAYS_0_30),
            (31, AgingBucket.DAYS_31_60),
            (60, AgingBucket.DAYS_31_60),
            (61, AgingBucket.DAYS_61_90),
            (90, AgingBucket.DAYS_61_90),
            (91, AgingBucket.DAYS_91_120),
            (120, AgingBucket.DAYS_91_120),
            (121, AgingBucket.DAYS_120_PLUS),
        ],
    )
    def test_aging_bucket_boundaries(self, days, expected):
        assert aging_bucket(days) == expected

    def test_days_until_rounds_up(self):
        assert days_until(NOW + timedelta(days=1, hours=12), NOW) == 2
        assert days_until(NOW - timedelta(hours=12), NOW) == 0
        assert days_until(NOW - timedelta(days=3), NOW) == -3

    def test_days_since_rounds_down(self):
        assert days_since(NOW - timedelta(days=30, hours=23), NOW) == 30

    def test_display_days_never_negative(self):
        assert display_days_remaining(-5) == 0
        assert display_days_remaining(7) == 7

    def test_deadline_uses_payer_limit_or_default(self):
        submitted = days_ago(10)
        claim = make_claim(submitted_date=submitted, timely_filing_limit=180)
        no_limit = make_claim(submitted_date=submitted, timely_filing_limit=None)

        assert timely_filing_deadline(claim) == submitted + timedelta(days=180)
        assert timely_filing_deadline(no_limit, default_limit=365) == submitted + timedelta(days=365)
        assert timely_filing_deadline(make_claim()) is None


# =============================================================================
# Timely Filing
# =============================================================================


class TestTimelyFiling:
    """Tests for DeadlineTracker.check_timely_filing_deadlines."""

    @pytest.mark.asyncio
    async def test_warning_and_critical(self, tracker, repository, audit_sink):
        warning = make_claim(status=ClaimStatus.PENDING, submitted_date=days_ago(80))
        overdue = make_claim(status=ClaimStatus.UNDER_REVIEW, submitted_date=days_ago(95))
        healthy = make_claim(status=ClaimStatus.PENDING, submitted_date=days_ago(10))
        repository.seed([warning, overdue, healthy])

        report = await tracker.check_timely_filing_deadlines()

        assert report.checked == 3
        assert [a.claim_id for a in report.warnings] == [warning.id]
        assert [a.claim_id for a in report.critical] == [overdue.id]
        assert report.warnings[0].days_remaining == 10
        assert report.critical[0].days_remaining == -5
        assert report.critical[0].days_overdue == 5
        assert report.critical[0].display_days_remaining == 0

        assert len(audit_sink.by_action(AuditAction.TIMELY_FILING_WARNING)) == 1
        assert len(audit_sink.by_action(AuditAction.TIMELY_FILING_CRITICAL)) == 1

    @pytest.mark.asyncio
    async def test_deadline_today_is_critical(self, tracker, repository):
        claim = make_claim(status=ClaimStatus.PENDING, submitted_date=days_ago(90))
        repository.seed([claim])

        report = await tracker.check_timely_filing_deadlines()

        assert report.critical[0].days_remaining == 0

    @pytest.mark.asyncio
    async def test_finished_and_unsubmitted_claims_excluded(self, tracker, repository):
        repository.seed(
            [
                make_claim(status=ClaimStatus.PAID, submitted_date=days_ago(200)),
                make_claim(status=ClaimStatus.DENIED, submitted_date=days_ago(200)),
                make_claim(status=ClaimStatus.CLOSED, submitted_date=days_ago(200)),
                make_claim(status=ClaimStatus.CANCELLED, submitted_date=days_ago(200)),
                make_claim(status=ClaimStatus.DRAFT),
            ]
        )

        report = await tracker.check_timely_filing_deadlines()

        assert report.checked == 0
        assert report.warnings == [] and report.critical == []

    @pytest.mark.asyncio
    async def test_missing_limit_uses_configured_default(self, repository, clock, audit_sink, settings):
        settings.DEFAULT_TIMELY_FILING_DAYS = 30
        tracker = DeadlineTracker(repository, clock=clock, audit_sink=audit_sink, settings=settings)
        repository.seed(
            [make_claim(status=ClaimStatus.PENDING, submitted_date=days_ago(25), timely_filing_limit=None)]
        )

        report = await tracker.check_timely_filing_deadlines()

        assert report.warnings[0].days_remaining == 5


# =============================================================================
# Aging
# =============================================================================


class TestAgingReport:
    """Tests for DeadlineTracker.get_aging_report."""

    @pytest.mark.asyncio
    async def test_buckets_and_status_breakdown(self, tracker, repository):
        repository.seed(
            [
                make_claim(status=ClaimStatus.PENDING, submitted_date=days_ago(5), total_charges=Decimal("100")),
                make_claim(status=ClaimStatus.PENDED, submitted_date=days_ago(45), total_charges=Decimal("200")),
                make_claim(status=ClaimStatus.ACKNOWLEDGED, submitted_date=days_ago(130), total_charges=Decimal("300")),
                make_claim(status=ClaimStatus.PAID, submitted_date=days_ago(130), total_charges=Decimal("400")),
                make_claim(status=ClaimStatus.DRAFT, total_charges=Decimal("50")),
            ]
        )

        report = await tracker.get_aging_report()

        assert report.generated_at == NOW
        assert set(report.by_aging) == set(AgingBucket)
        assert report.by_aging[AgingBucket.DAYS_0_30].count == 1
        assert report.by_aging[AgingBucket.DAYS_31_60].total_amount == Decimal("200")
        assert report.by_aging[AgingBucket.DAYS_61_90].count == 0
        assert report.by_aging[AgingBucket.DAYS_120_PLUS].count == 1
        assert report.by_status[ClaimStatus.PAID].total_amount == Decimal("400")
        assert report.by_status[ClaimStatus.DRAFT].count == 1

    @pytest.mark.asyncio
    async def test_future_submission_date_skipped(self, tracker, repository):
        repository.seed(
            [make_claim(status=ClaimStatus.PENDING, submitted_date=NOW + timedelta(days=3))]
        )

        report = await tracker.get_aging_report()

        assert sum(s.count for s in report.by_aging.values()) == 0
        assert report.by_status[ClaimStatus.PENDING].count == 1


# =============================================================================
# Stale Claims
# =============================================================================


class TestStaleClaims:
    """Tests for DeadlineTracker.check_stale_claims."""

    @pytest.mark.asyncio
    async def test_uses_last_status_change(self, tracker, repository, audit_sink):
        stale = make_claim(status=ClaimStatus.PENDING, submitted_date=days_ago(60))
        stale.status_history.append(
            StatusHistoryEntry(
                status=ClaimStatus.PENDING,
                previous_status=ClaimStatus.ACKNOWLEDGED,
                changed_at=days_ago(31),
            )
        )
        recent = make_claim(status=ClaimStatus.PENDING, submitted_date=days_ago(60))
        recent.status_history.append(
            StatusHistoryEntry(
                status=ClaimStatus.PENDING,
                previous_status=ClaimStatus.ACKNOWLEDGED,
                changed_at=days_ago(5),
            )
        )
        repository.seed([stale, recent])

        claims = await tracker.check_stale_claims()

        assert [c.id for c in claims] == [stale.id]
        events = audit_sink.by_action(AuditAction.STALE_CLAIM_DETECTED)
        assert [e.claim_id for e in events] == [stale.id]

    @pytest.mark.asyncio
    async def test_falls_back_to_submission_date(self, tracker, repository):
        claim = make_claim(status=ClaimStatus.UNDER_REVIEW, submitted_date=days_ago(30))
        repository.seed([claim])

        claims = await tracker.check_stale_claims()

        assert [c.id for c in claims] == [claim.id]

    @pytest.mark.asyncio
    async def test_only_open_statuses_considered(self, tracker, repository):
        repository.seed(
            [
                make_claim(status=ClaimStatus.SUBMITTED, submitted_date=days_ago(90)),
                make_claim(status=ClaimStatus.DENIED, submitted_date=days_ago(90)),
                make_claim(status=ClaimStatus.PAID, submitted_date=days_ago(90)),
            ]
        )

        assert await tracker.check_stale_claims() == []

    @pytest.mark.asyncio
    async def test_custom_threshold_and_order(self, tracker, repository):
        newest = make_claim(status=ClaimStatus.PENDING, submitted_date=days_ago(8))
        oldest = make_claim(status=ClaimStatus.PENDED, submitted_date=days_ago(20))
        repository.seed([newest, oldest])

        claims = await tracker.check_stale_claims(days_threshold=7)

        assert [c.id for c in claims] == [oldest.id, newest.id]
