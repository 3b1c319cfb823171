import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import get_settings
from database import session_scope
from services import RecurringTransactionService


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self) -> None:
        settings = get_settings()
        self.hour = settings.recurring_hour
        self.minute = settings.recurring_minute
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> int:
        logger.info(f"scheduler_run: source={source}")
        try:
            with session_scope() as session:
                service = RecurringTransactionService(session)
                count = service.process_due_recurring_transactions()
        except Exception:
            logger.exception(f"scheduler_run_failed: source={source}")
            return 0
        logger.info(f"scheduler_run: source={source} transactions_posted={count}")
        return count

    def start(self) -> None:
        trigger = CronTrigger(hour=self.hour, minute=self.minute)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=[f"daily_{self.hour:02d}:{self.minute:02d}"],
            id="recurring_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.start()
        logger.info(f"Scheduler started with daily {self.hour:02d}:{self.minute:02d}")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
