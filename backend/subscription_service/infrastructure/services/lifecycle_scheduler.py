"""
Lifecycle Scheduler

Daily scans that move subscriptions through time-driven transitions and
send trial reminders. Both scans are safe to re-run: transitions re-check
state under the row lock, and reminders carry a deterministic
idempotency key for downstream dedupe.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from subscription_service.config.settings import Settings, get_settings
from subscription_service.domain.subscription import (
    Subscription,
    SubscriptionStatus,
    utc_now,
)
from subscription_service.infrastructure.db.unit_of_work import (
    UnitOfWorkFactory,
    get_unit_of_work,
)
from subscription_service.infrastructure.services.lifecycle_service import (
    SubscriptionLifecycleManager,
    get_lifecycle_manager,
)


logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    """Counters of one scan run."""
    job: str
    started_at: datetime
    scanned: int = 0
    transitioned: int = 0
    notified: int = 0
    skipped: int = 0
    failed: int = 0
    failed_organizations: List[int] = field(default_factory=list)

    def record_failure(self, organization_id: int) -> None:
        self.failed += 1
        self.failed_organizations.append(organization_id)

    def to_dict(self) -> dict:
        return {
            "job": self.job,
            "started_at": self.started_at.isoformat(),
            "scanned": self.scanned,
            "transitioned": self.transitioned,
            "notified": self.notified,
            "skipped": self.skipped,
            "failed": self.failed,
            "failed_organizations": self.failed_organizations,
        }


class LifecycleScheduler:
    """
    Expiration and reminder scans.

    Candidates are selected in a short read-only unit of work; each one is
    then handed to the lifecycle manager, which locks and re-validates it.
    A failure on one subscription is logged and the scan moves on.
    """

    def __init__(
        self,
        manager: Optional[SubscriptionLifecycleManager] = None,
        uow_factory: UnitOfWorkFactory = get_unit_of_work,
        clock: Callable[[], datetime] = utc_now,
        settings: Optional[Settings] = None,
    ):
        self.manager = manager or get_lifecycle_manager()
        self.uow_factory = uow_factory
        self.clock = clock
        self.settings = settings or get_settings()

    async def _run_each(
        self,
        report: ScanReport,
        candidates: List[Subscription],
        transition: Callable[[int], Awaitable[Optional[Subscription]]],
        action: str,
    ) -> None:
        for candidate in candidates:
            report.scanned += 1
            try:
                result = await transition(candidate.organization_id)
            except Exception as e:
                report.record_failure(candidate.organization_id)
                logger.error(
                    f"[SCHEDULER] {action} failed for organization {candidate.organization_id}: {e}",
                    exc_info=True,
                )
                continue
            if result is None:
                report.skipped += 1
            else:
                report.transitioned += 1

    async def run_expiration_scan(self) -> ScanReport:
        """
        Expire finished trials, suspend stale grace and past-due
        subscriptions, and end canceled ones whose window ran out.
        """
        now = self.clock()
        report = ScanReport(job="expiration", started_at=now)
        grace_cutoff = now - timedelta(days=self.settings.grace_period_days)
        past_due_cutoff = now - timedelta(days=self.settings.past_due_suspension_days)

        async with self.uow_factory() as uow:
            expired_trials = await uow.subscriptions.find_expired_trials(now)
            stale_grace = await uow.subscriptions.find_in_status_since(
                SubscriptionStatus.GRACE_PERIOD, grace_cutoff
            )
            stale_past_due = await uow.subscriptions.find_in_status_since(
                SubscriptionStatus.PAST_DUE, past_due_cutoff
            )
            canceled_due = await uow.subscriptions.find_canceled_due_to_end(now)

        logger.info(
            f"[SCHEDULER] Expiration scan: {len(expired_trials)} trials, "
            f"{len(stale_grace)} grace, {len(stale_past_due)} past due, {len(canceled_due)} canceled"
        )

        await self._run_each(report, expired_trials, self.manager.expire_trial, "expire trial")
        await self._run_each(
            report,
            stale_grace,
            lambda org_id: self.manager.suspend(
                org_id, reason="grace_period_ended", entered_before=grace_cutoff
            ),
            "suspend",
        )
        await self._run_each(
            report,
            stale_past_due,
            lambda org_id: self.manager.suspend(
                org_id, reason="payment_past_due", entered_before=past_due_cutoff
            ),
            "suspend past due",
        )
        await self._run_each(report, canceled_due, self.manager.end_subscription, "end")

        logger.info(f"[SCHEDULER] Expiration scan finished: {report.to_dict()}")
        return report

    async def run_reminder_scan(self) -> ScanReport:
        """Notify trials ending in each configured number of days. No transitions."""
        now = self.clock()
        report = ScanReport(job="reminders", started_at=now)

        for offset in self.settings.trial_reminder_offsets:
            window_start = now + timedelta(days=offset)
            window_end = window_start + timedelta(days=1)
            async with self.uow_factory() as uow:
                candidates = await uow.subscriptions.find_trials_ending_between(window_start, window_end)

            logger.info(f"[SCHEDULER] {len(candidates)} trials ending in {offset} days")
            for subscription in candidates:
                report.scanned += 1
                delivered = await self.manager.dispatcher.notify(
                    subscription,
                    lambda p, s=subscription, days=offset: p.publish_trial_expiring(s, days),
                )
                if delivered:
                    report.notified += 1
                else:
                    report.record_failure(subscription.organization_id)

        logger.info(f"[SCHEDULER] Reminder scan finished: {report.to_dict()}")
        return report


# =============================================================================
# In-process daily runner
# =============================================================================

def seconds_until(hour_utc: int, now: datetime) -> float:
    """Seconds from `now` until the next occurrence of `hour_utc`:00 UTC."""
    target = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class DailyScanRunner:
    """Runs both scans once a day at their configured UTC hours."""

    def __init__(self, scheduler: LifecycleScheduler, settings: Optional[Settings] = None):
        self.scheduler = scheduler
        self.settings = settings or get_settings()
        self._tasks: List[asyncio.Task] = []

    async def _loop(self, name: str, hour_utc: int, job: Callable[[], Awaitable[ScanReport]]) -> None:
        while True:
            delay = seconds_until(hour_utc, self.scheduler.clock())
            logger.info(f"[SCHEDULER] Next {name} scan in {delay:.0f}s")
            await asyncio.sleep(delay)
            try:
                await job()
            except Exception as e:
                logger.error(f"[SCHEDULER] {name} scan aborted: {e}", exc_info=True)

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(
                self._loop("expiration", self.settings.expiration_scan_hour_utc, self.scheduler.run_expiration_scan)
            ),
            asyncio.create_task(
                self._loop("reminder", self.settings.reminder_scan_hour_utc, self.scheduler.run_reminder_scan)
            ),
        ]
        logger.info("[SCHEDULER] Daily scan runner started")

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("[SCHEDULER] Daily scan runner stopped")


def get_lifecycle_scheduler() -> LifecycleScheduler:
    return LifecycleScheduler()
