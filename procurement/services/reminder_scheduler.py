from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from procurement.core.config import settings
from procurement.core.db import SessionLocal
from procurement.services.reminders import send_pending_response_reminders


logger = logging.getLogger(__name__)


class ResponseReminderScheduler:
    """Background scheduler that reminds suppliers about unanswered purchase orders.

    Runs inside the API process and is controlled from the FastAPI
    startup/shutdown events.
    """

    def __init__(self, interval_minutes: int = 60, enabled: Optional[bool] = None) -> None:
        self._interval_minutes = interval_minutes
        self._enabled = enabled
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Start the APScheduler instance if not already running."""
        enabled = settings.reminder_scheduler_enabled if self._enabled is None else self._enabled
        if not enabled:
            logger.warning("ResponseReminderScheduler disabled via REMINDER_SCHEDULER_ENABLED")
            return

        if self.running:
            logger.warning("ResponseReminderScheduler already running, skipping start")
            return

        scheduler = BackgroundScheduler(timezone="UTC")
        scheduler.add_job(
            self._run_reminder_job,
            trigger=IntervalTrigger(minutes=self._interval_minutes),
            id="purchase_order_reminder_job",
            replace_existing=True,
            max_instances=1,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.warning(
            "ResponseReminderScheduler started with interval %s minutes", self._interval_minutes
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler if it is running."""
        if self._scheduler is not None:
            try:
                self._scheduler.shutdown(wait=False)
                logger.warning("ResponseReminderScheduler stopped")
            finally:
                self._scheduler = None

    @staticmethod
    def _run_reminder_job() -> None:
        """Job function; failures are logged so they never bring down the process."""
        db: Session = SessionLocal()
        try:
            count = send_pending_response_reminders(db)
            logger.info("Reminder job completed, %s reminders sent", count)
        except Exception:
            logger.exception("Error while running purchase order reminder job")
            db.rollback()
        finally:
            db.close()
