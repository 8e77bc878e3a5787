import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config import get_settings
from database import session_scope
from services import BalanceAuditService


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


class SchedulerManager:
    """Runs the balance audit at startup and once a night.

    The audit only reports drift between stored balances and the transaction
    log; repairs are an explicit API call.
    """

    def __init__(self) -> None:
        self.settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=self.settings.timezone)

    def _run_job(self, source: str = "manual") -> None:
        logger.info(f"balance_audit_run: source={source}")
        with session_scope() as session:
            drifts = BalanceAuditService(session).audit(repair=False)
            logger.info(f"balance_audit_run: source={source} drifts={len(drifts)}")

    def start(self) -> None:
        self._run_job("startup")

        hour = self.settings.audit_hour
        minute = self.settings.audit_minute
        self.scheduler.add_job(
            self._run_job,
            CronTrigger(hour=hour, minute=minute),
            args=[f"daily_{hour:02d}:{minute:02d}"],
            id="balance_audit_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with daily audit at {hour:02d}:{minute:02d}")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
