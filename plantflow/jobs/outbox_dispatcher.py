"""
Outbox Dispatcher - delivers pending notifications in the background

Notifications that could not be sent right after their transaction
committed (or whose delivery failed) are retried here until they are sent
or reach OUTBOX_MAX_ATTEMPTS.
"""
import logging

from plantflow.core import settings, SessionLocal
from plantflow.services.notification_service import OutboxService

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler = None


class OutboxDispatcher:
    """Polls the notification outbox on a fixed interval"""

    def __init__(self, session_factory=SessionLocal):
        from apscheduler.schedulers.background import BackgroundScheduler
        self.scheduler = BackgroundScheduler()
        self.session_factory = session_factory
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if not self.is_running:
            self.scheduler.add_job(
                func=self.run_once,
                trigger="interval",
                seconds=settings.OUTBOX_POLL_SECONDS,
                id="outbox_dispatch",
                name="Dispatch notification outbox",
                replace_existing=True,
                max_instances=1,
                coalesce=True
            )
            self.scheduler.start()
            self.is_running = True
            logger.info(f"Outbox dispatcher started (every {settings.OUTBOX_POLL_SECONDS}s)")

    def stop(self):
        """Stop the scheduler"""
        if self.is_running:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Outbox dispatcher stopped")

    def run_once(self) -> dict:
        db = self.session_factory()
        try:
            return OutboxService.dispatch_pending(db)
        except Exception as e:
            logger.error(f"Outbox dispatch run failed: {e}")
            return {"sent": 0, "failed": 0}
        finally:
            db.close()


# ========== Global Functions ==========

def get_scheduler() -> "OutboxDispatcher":
    """Get or create the global dispatcher instance"""
    global _scheduler
    if _scheduler is None:
        _scheduler = OutboxDispatcher()
    return _scheduler


def start_scheduler():
    """Start the global dispatcher"""
    if not settings.OUTBOX_ENABLED:
        logger.info("Outbox dispatcher disabled")
        return
    get_scheduler().start()


def stop_scheduler():
    """Stop the global dispatcher"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
