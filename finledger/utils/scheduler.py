"""
Scheduler Service
Background refresh and savings expiry sweep using APScheduler
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from finledger.models.savings import OneTimeSaving
from finledger.utils.dashboard import Dashboard
from finledger.utils.notifications import SAVINGS_EXPIRED

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "dashboard_refresh"
EXPIRY_JOB_ID = "savings_expiry_sweep"


class BackgroundJobs:
    def __init__(self, dashboard: Dashboard, refresh_seconds: int = 300, sweep_minutes: int = 60) -> None:
        self._dashboard = dashboard
        self._refresh_seconds = refresh_seconds
        self._sweep_minutes = sweep_minutes
        self._announced: Set[str] = set()
        self.scheduler: Optional[AsyncIOScheduler] = None

    def start(self) -> None:
        """Must be called from a running event loop."""
        if self.scheduler is not None:
            logger.warning("Scheduler is already running")
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self.refresh_job,
            trigger=IntervalTrigger(seconds=self._refresh_seconds),
            id=REFRESH_JOB_ID,
            name="Dashboard refresh",
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.expiry_sweep_job,
            trigger=IntervalTrigger(minutes=self._sweep_minutes),
            id=EXPIRY_JOB_ID,
            name="Savings expiry sweep",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            "Scheduler started: refresh every %ss, expiry sweep every %s min",
            self._refresh_seconds,
            self._sweep_minutes,
        )

    def stop(self) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None
            logger.info("Scheduler stopped")

    async def refresh_job(self) -> None:
        result = await self._dashboard.refresh()
        logger.info("Scheduled refresh #%d served from %s", result.sequence, result.state.source)

    async def expiry_sweep_job(self, as_of: Optional[datetime] = None) -> List[str]:
        """
        Announce savings that expired (one-time) or matured (RD) since the last
        sweep, then signal one refresh if anything new was found.
        """
        fresh = [r for r in self._dashboard.expired_savings(as_of) if r.id not in self._announced]
        for record in fresh:
            self._announced.add(record.id)
            what = "expired" if isinstance(record, OneTimeSaving) else "matured"
            self._dashboard.notifications.publish(f"Saving '{record.name or record.id}' has {what}", "warning")

        if fresh:
            logger.info("Expiry sweep found %d record(s)", len(fresh))
            self._dashboard.handle_signal(SAVINGS_EXPIRED)
        return [r.id for r in fresh]

    def status(self) -> Dict:
        if self.scheduler is None:
            return {"running": False, "jobs": []}

        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": str(job.next_run_time) if job.next_run_time else None,
            })

        return {
            "running": self.scheduler.running,
            "jobs": jobs,
        }
