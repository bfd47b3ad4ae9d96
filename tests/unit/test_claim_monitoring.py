"""
Claim Monitoring Scheduler Tests.

The scheduler runs on a ManualClock, so days of schedule pass instantly.
"""

import asyncio
from datetime import timedelta

import pytest

from src.core.enums import ClaimStatus
from src.schemas.claim import StatusHistoryEntry
from src.services.claim_monitoring import (
    JOB_INQUIRY,
    JOB_STALE,
    JOB_TIMELY,
    ClaimMonitoringScheduler,
)
from tests.fixtures import NOW, make_claim


@pytest.fixture
def scheduler(service):
    return service.scheduler


class FailingTracker:
    """Deadline tracker whose stale check always fails."""

    def __init__(self, tracker):
        self._tracker = tracker

    async def check_stale_claims(self, days_threshold=None):
        raise RuntimeError("claim store unavailable")

    async def check_timely_filing_deadlines(self):
        return await self._tracker.check_timely_filing_deadlines()


class TestSchedule:
    """Tests for tick-driven scheduling."""

    @pytest.mark.asyncio
    async def test_first_tick_runs_daily_checks_only(self, scheduler):
        ran = await scheduler.tick()

        assert sorted(ran) == [JOB_STALE, JOB_TIMELY]
        assert scheduler.jobs[JOB_INQUIRY].next_run == NOW + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_jobs_follow_their_intervals(self, scheduler, clock):
        await scheduler.tick()
        assert await scheduler.tick() == []

        clock.advance(days=1)
        assert sorted(await scheduler.tick()) == [JOB_STALE, JOB_TIMELY]

        clock.advance(days=6)
        assert sorted(await scheduler.tick()) == [JOB_INQUIRY, JOB_STALE, JOB_TIMELY]
        assert scheduler.jobs[JOB_STALE].run_count == 3
        assert scheduler.jobs[JOB_INQUIRY].run_count == 1

    @pytest.mark.asyncio
    async def test_failing_job_does_not_stop_others(self, service, repository, clock, settings):
        scheduler = ClaimMonitoringScheduler(
            repository,
            FailingTracker(service.deadline_tracker),
            service.inquiry_builder,
            clock=clock,
            settings=settings,
        )

        ran = await scheduler.tick()

        assert sorted(ran) == [JOB_STALE, JOB_TIMELY]
        stale_job = scheduler.jobs[JOB_STALE]
        assert stale_job.failure_count == 1
        assert stale_job.last_error == "claim store unavailable"
        assert stale_job.next_run == NOW + timedelta(days=1)
        assert scheduler.jobs[JOB_TIMELY].failure_count == 0

    @pytest.mark.asyncio
    async def test_start_and_stop(self, scheduler):
        assert scheduler.get_monitoring_status()["active"] is False

        task = scheduler.start(poll_seconds=3600)
        for _ in range(5):
            await asyncio.sleep(0)
        assert scheduler.is_running

        await scheduler.stop()

        assert task.done()
        assert not scheduler.is_running
        assert scheduler.jobs[JOB_STALE].run_count >= 1

    @pytest.mark.asyncio
    async def test_run_exits_when_stop_event_set(self, scheduler):
        stop_event = asyncio.Event()
        stop_event.set()

        await asyncio.wait_for(scheduler.run(stop_event), timeout=1)

        assert scheduler.jobs[JOB_STALE].run_count == 0


class TestManualChecks:
    """Tests for run_all_checks and get_claims_requiring_attention."""

    @pytest.mark.asyncio
    async def test_run_all_checks(self, scheduler, repository):
        repository.seed(
            [
                make_claim(status=ClaimStatus.PENDING, submitted_date=NOW - timedelta(days=40)),
                make_claim(status=ClaimStatus.PENDING, submitted_date=NOW - timedelta(days=95)),
            ]
        )

        results = await scheduler.run_all_checks()

        assert results.timestamp == NOW
        assert results.stale_claims == 2
        assert results.status_inquiries == 1
        assert results.timely_filing_critical == 1
        assert results.timely_filing_warnings == 0

    @pytest.mark.asyncio
    async def test_claims_requiring_attention(self, scheduler, repository):
        old_pend = make_claim(status=ClaimStatus.PENDED, submitted_date=NOW - timedelta(days=10))
        old_pend.updated_at = NOW - timedelta(days=9)
        new_pend = make_claim(status=ClaimStatus.PENDED, submitted_date=NOW - timedelta(days=10))
        new_pend.updated_at = NOW - timedelta(days=1)
        old_denial = make_claim(status=ClaimStatus.DENIED)
        old_denial.updated_at = NOW - timedelta(days=20)
        new_denial = make_claim(status=ClaimStatus.DENIED)
        new_denial.updated_at = NOW - timedelta(days=2)
        stale = make_claim(status=ClaimStatus.PENDING, submitted_date=NOW - timedelta(days=50))
        stale.status_history.append(
            StatusHistoryEntry(
                status=ClaimStatus.PENDING,
                previous_status=ClaimStatus.ACKNOWLEDGED,
                changed_at=NOW - timedelta(days=45),
            )
        )
        repository.seed([new_pend, old_pend, old_denial, new_denial, stale])

        attention = await scheduler.get_claims_requiring_attention()

        assert [c.id for c in attention.pended_claims] == [old_pend.id, new_pend.id]
        assert [c.id for c in attention.denied_claims] == [new_denial.id, old_denial.id]
        assert attention.stale_count == 1
        assert attention.stale_claims[0].id == stale.id
        assert attention.timely_filing_warnings == 0
        assert attention.timely_filing_critical == 0
