"""Periodic execution of the batch jobs.

Both jobs run on interval triggers inside the API process. max_instances=1
keeps two runs of the same job from overlapping, and coalesce collapses
runs missed while the previous one was still busy.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from src.config.settings import Settings, get_settings
from src.core.logging import get_logger

from .expiry_notifier import ExpiryNotifier
from .reconciliation import ReconciliationEngine


logger = get_logger(__name__)

RECONCILIATION_JOB_ID = "token_enrol_reconciliation"
EXPIRY_NOTIFY_JOB_ID = "token_enrol_expiry_notify"


class JobScheduler:
    """Owns the AsyncIOScheduler that drives reconciliation and notifications."""

    def __init__(
        self,
        reconciliation: ReconciliationEngine,
        notifier: ExpiryNotifier,
        settings: Settings | None = None,
    ):
        self.reconciliation = reconciliation
        self.notifier = notifier
        self.settings = settings or get_settings()
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> None:
        if self._scheduler is not None:
            return

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.run_reconciliation,
            trigger=IntervalTrigger(
                minutes=self.settings.reconciliation_interval_minutes
            ),
            id=RECONCILIATION_JOB_ID,
            name="Token enrolment reconciliation",
            max_instances=1,
            coalesce=True,
        )
        scheduler.add_job(
            self.run_expiry_notifier,
            trigger=IntervalTrigger(minutes=self.settings.expiry_notify_interval_minutes),
            id=EXPIRY_NOTIFY_JOB_ID,
            name="Token enrolment expiry notifications",
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler

        logger.info(
            "job_scheduler_started",
            reconciliation_minutes=self.settings.reconciliation_interval_minutes,
            expiry_notify_minutes=self.settings.expiry_notify_interval_minutes,
        )

    def stop(self) -> None:
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("job_scheduler_stopped")

    async def run_reconciliation(self) -> None:
        try:
            await self.reconciliation.run()
        except Exception as e:
            logger.exception(
                "scheduled_reconciliation_failed",
                error=str(e),
                error_type=type(e).__name__,
            )

    async def run_expiry_notifier(self) -> None:
        try:
            await self.notifier.run()
        except Exception as e:
            logger.exception(
                "scheduled_expiry_notify_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
