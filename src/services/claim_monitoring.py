"""
Claim Status Monitoring Scheduler.

Runs the periodic follow-up checks (stale claims, timely filing deadlines,
automatic 276 inquiries) on an explicit scheduler object. Time comes from an
injected clock and the loop stops on an asyncio.Event, so tests can drive
days of schedule deterministically and shut it down cleanly.

Default schedule:
    stale     every 24h, first run immediately
    timely    every 24h, first run immediately
    inquiry   every 7 days, first run after one period
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

from src.core.config import ClaimsSettings, get_claims_settings
from src.core.enums import ClaimStatus
from src.schemas.claim import Claim
from src.services.adapters.base import ClaimQuery, ClaimRepository
from src.services.deadline_tracker import DeadlineTracker, TimelyFilingAlert
from src.services.edi.x12_276_builder import StatusInquiryBuilder
from src.utils.clock import Clock, SystemClock, ensure_utc
from src.utils.logging import get_logger

logger = get_logger(__name__)

JOB_STALE = "stale"
JOB_INQUIRY = "inquiry"
JOB_TIMELY = "timely"

ATTENTION_LIST_LIMIT = 50
ATTENTION_STALE_SAMPLE = 20


@dataclass
class MonitoringJob:
    """One periodic check and its schedule state."""

    name: str
    interval_seconds: float
    action: Callable[[], Awaitable[Any]]
    next_run: datetime
    last_run: Optional[datetime] = None
    last_error: Optional[str] = None
    run_count: int = 0
    failure_count: int = 0

    def is_due(self, now: datetime) -> bool:
        return ensure_utc(now) >= ensure_utc(self.next_run)


@dataclass
class MonitoringCheckResults:
    """Summary of a manual run of every check."""

    timestamp: datetime
    stale_claims: int = 0
    status_inquiries: int = 0
    timely_filing_warnings: int = 0
    timely_filing_critical: int = 0


@dataclass
class ClaimsRequiringAttention:
    stale_count: int = 0
    stale_claims: list[Claim] = field(default_factory=list)
    pended_claims: list[Claim] = field(default_factory=list)
    denied_claims: list[Claim] = field(default_factory=list)
    timely_filing_alerts: list[TimelyFilingAlert] = field(default_factory=list)

    @property
    def timely_filing_critical(self) -> int:
        return sum(1 for a in self.timely_filing_alerts if a.days_remaining <= 0)

    @property
    def timely_filing_warnings(self) -> int:
        return len(self.timely_filing_alerts) - self.timely_filing_critical


class ClaimMonitoringScheduler:
    """
    Periodic claim follow-up checks.

    Usage:
        scheduler = ClaimMonitoringScheduler(repository, tracker, builder)
        scheduler.start()
        ...
        await scheduler.stop()
    """

    def __init__(
        self,
        repository: ClaimRepository,
        deadline_tracker: DeadlineTracker,
        inquiry_builder: StatusInquiryBuilder,
        clock: Optional[Clock] = None,
        settings: Optional[ClaimsSettings] = None,
    ):
        self._repository = repository
        self._tracker = deadline_tracker
        self._inquiry_builder = inquiry_builder
        self._clock = clock or SystemClock()
        self._settings = settings or get_claims_settings()

        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

        now = self._clock.now()
        self._jobs: dict[str, MonitoringJob] = {
            JOB_STALE: MonitoringJob(
                name=JOB_STALE,
                interval_seconds=self._settings.stale_check_interval_seconds,
                action=self._tracker.check_stale_claims,
                next_run=now,
            ),
            JOB_INQUIRY: MonitoringJob(
                name=JOB_INQUIRY,
                interval_seconds=self._settings.inquiry_interval_seconds,
                action=self._inquiry_builder.auto_generate_status_inquiries,
                next_run=now + timedelta(seconds=self._settings.inquiry_interval_seconds),
            ),
            JOB_TIMELY: MonitoringJob(
                name=JOB_TIMELY,
                interval_seconds=self._settings.timely_filing_check_interval_seconds,
                action=self._tracker.check_timely_filing_deadlines,
                next_run=now,
            ),
        }

    @property
    def jobs(self) -> dict[str, MonitoringJob]:
        return self._jobs

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    # =========================================================================
    # Scheduling
    # =========================================================================

    async def _run_job(self, job: MonitoringJob, now: datetime) -> None:
        try:
            await job.action()
            job.last_error = None
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # A failing check is retried next period; the other checks keep running
            job.failure_count += 1
            job.last_error = str(e)
            logger.exception(f"Monitoring job '{job.name}' failed: {e}")
        finally:
            job.run_count += 1
            job.last_run = now
            job.next_run = now + timedelta(seconds=job.interval_seconds)

    async def tick(self) -> list[str]:
        """
        Run every job that is due.

        Returns:
            Names of the jobs that ran
        """
        now = self._clock.now()
        ran: list[str] = []
        for job in self._jobs.values():
            if job.is_due(now):
                await self._run_job(job, now)
                ran.append(job.name)
        return ran

    async def run(self, stop_event: asyncio.Event, poll_seconds: float = 60) -> None:
        """
        Tick until ``stop_event`` is set.

        Args:
            stop_event: Cancellation token
            poll_seconds: Pause between ticks
        """
        logger.info("Claim status monitoring started")
        try:
            while not stop_event.is_set():
                await self.tick()
                if stop_event.is_set():
                    break
                await self._pause(stop_event, poll_seconds)
        finally:
            logger.info("Claim status monitoring stopped")

    async def _pause(self, stop_event: asyncio.Event, seconds: float) -> None:
        """Sleep on the clock, returning early once ``stop_event`` is set."""
        sleeper = asyncio.ensure_future(self._clock.sleep(seconds))
        waiter = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                task.cancel()

    def start(self, poll_seconds: float = 60) -> asyncio.Task:
        """Run the scheduler as a background task on the current loop."""
        if self.is_running:
            return self._task
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self.run(self._stop_event, poll_seconds))
        return self._task

    async def stop(self) -> None:
        """Signal the background task to stop and wait for it."""
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await self._task
        finally:
            self._task = None
            self._stop_event = None

    def get_monitoring_status(self) -> dict[str, Any]:
        return {
            "active": self.is_running,
            "jobs": {
                name: {
                    "interval_hours": job.interval_seconds / 3600,
                    "next_run": job.next_run,
                    "last_run": job.last_run,
                    "run_count": job.run_count,
                    "failure_count": job.failure_count,
                    "last_error": job.last_error,
                }
                for name, job in self._jobs.items()
            },
        }

    # =========================================================================
    # Manual Checks
    # =========================================================================

    async def run_all_checks(self) -> MonitoringCheckResults:
        """Run every check once, outside the schedule."""
        logger.info("Running all claim status checks manually")

        stale = await self._tracker.check_stale_claims()
        inquiries = await self._inquiry_builder.auto_generate_status_inquiries()
        timely = await self._tracker.check_timely_filing_deadlines()

        results = MonitoringCheckResults(
            timestamp=self._clock.now(),
            stale_claims=len(stale),
            status_inquiries=inquiries.count,
            timely_filing_warnings=len(timely.warnings),
            timely_filing_critical=len(timely.critical),
        )
        logger.info(
            f"All claim status checks complete: stale={results.stale_claims} "
            f"inquiries={results.status_inquiries} "
            f"timely_warnings={results.timely_filing_warnings} "
            f"timely_critical={results.timely_filing_critical}"
        )
        return results

    async def get_claims_requiring_attention(self) -> ClaimsRequiringAttention:
        """Stale, pended and denied claims plus open deadline alerts."""
        stale = await self._tracker.check_stale_claims()
        pended = await self._repository.query(
            ClaimQuery(statuses=frozenset({ClaimStatus.PENDED}))
        )
        denied = await self._repository.query(
            ClaimQuery(statuses=frozenset({ClaimStatus.DENIED}))
        )
        timely = await self._tracker.check_timely_filing_deadlines()

        # Oldest pended first, most recent denial first
        pended.sort(key=lambda c: ensure_utc(c.updated_at))
        denied.sort(key=lambda c: ensure_utc(c.updated_at), reverse=True)

        return ClaimsRequiringAttention(
            stale_count=len(stale),
            stale_claims=stale[:ATTENTION_STALE_SAMPLE],
            pended_claims=pended[:ATTENTION_LIST_LIMIT],
            denied_claims=denied[:ATTENTION_LIST_LIMIT],
            timely_filing_alerts=timely.critical + timely.warnings,
        )
