import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, ContextManager, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from sqlalchemy.orm import Session

from config import get_settings
from database import session_scope
from notifications import DataChanged
from services import BarsSnapshot, BudgetBarsService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "budget_bars_refresh"


class CollapsibleRefresher:
    """Runs ``callback`` once after a short delay, however often it is asked.

    Requests made while a run is still pending are folded into that run.
    """

    def __init__(
        self,
        scheduler: BackgroundScheduler,
        callback: Callable[[str], None],
        delay_secs: float,
        job_id: str = REFRESH_JOB_ID,
    ) -> None:
        self.scheduler = scheduler
        self.callback = callback
        self.delay_secs = delay_secs
        self.job_id = job_id
        self._lock = threading.Lock()

    def enqueue_refresh(self, source: str = "change") -> bool:
        with self._lock:
            if self.scheduler.get_job(self.job_id) is not None:
                logger.debug(f"refresh_collapsed: source={source}")
                return False
            run_date = datetime.now(timezone.utc) + timedelta(seconds=self.delay_secs)
            self.scheduler.add_job(
                self.callback,
                DateTrigger(run_date=run_date),
                args=[source],
                id=self.job_id,
                replace_existing=True,
                misfire_grace_time=60,
            )
            return True

    def pending(self) -> bool:
        return self.scheduler.get_job(self.job_id) is not None

    def flush(self, source: str = "flush") -> None:
        """Run a pending refresh now instead of waiting for the delay."""
        with self._lock:
            if self.scheduler.get_job(self.job_id) is None:
                return
            self.scheduler.remove_job(self.job_id)
        self.callback(source)


class SchedulerManager:
    def __init__(
        self,
        session_factory: Callable[[], ContextManager[Session]] = session_scope,
        scheduler: Optional[BackgroundScheduler] = None,
    ) -> None:
        settings = get_settings()
        self.settings = settings
        self.scheduler = scheduler or BackgroundScheduler(timezone=settings.timezone)
        self.session_factory = session_factory
        self.refresher = CollapsibleRefresher(
            self.scheduler, self._run_job, settings.refresh_delay_secs
        )
        self.snapshot: Optional[BarsSnapshot] = None
        self.last_error: Optional[ValueError] = None

    def _run_job(self, source: str = "manual") -> None:
        logger.info(f"refresh_run: source={source}")
        try:
            with self.session_factory() as session:
                snapshot = BudgetBarsService(session).build()
        except ValueError as exc:
            self.last_error = exc
            logger.warning(f"refresh_run: source={source} skipped={exc}")
            return
        self.publish(snapshot)
        logger.info(f"refresh_run: source={source} bars={len(snapshot.bars)}")

    def publish(self, snapshot: BarsSnapshot) -> None:
        self.snapshot = snapshot
        self.last_error = None

    def invalidate(self) -> None:
        self.snapshot = None
        if self.scheduler.running:
            self.refresher.enqueue_refresh("invalidate")

    def notify(self, change: DataChanged) -> None:
        self.refresher.enqueue_refresh(change.source)

    def start(self) -> None:
        self._run_job("startup")

        trigger = CronTrigger(hour=self.settings.rollover_hour, minute=5)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["calendar_rollover"],
            id="calendar_rollover",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info("Scheduler started with daily calendar rollover refresh")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
