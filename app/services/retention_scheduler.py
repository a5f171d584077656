"""
Scheduled cleanup task for event retention.
"""
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional

from app.core.config import get_settings
from app.services.retention import retention_service
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

# Seconds to wait after start before the first cleanup
INITIAL_DELAY_SECONDS = 30
# How often the loop checks whether a cleanup is due
CHECK_INTERVAL_SECONDS = 300


class RetentionScheduler:
    """Scheduler for running retention cleanup tasks."""

    def __init__(self, cleanup_interval_hours: int = 24):
        """
        Initialize retention scheduler.

        Args:
            cleanup_interval_hours: Hours between cleanup runs (default: 24)
        """
        self.cleanup_interval_hours = cleanup_interval_hours
        self.cleanup_interval_seconds = cleanup_interval_hours * 3600
        self.running = False
        self.thread: Optional[threading.Thread] = None
        self.last_cleanup: Optional[datetime] = None
        self.last_summary: Optional[Dict] = None
        self._stop_event = threading.Event()

        logger.info(f"RetentionScheduler initialized with {cleanup_interval_hours}h interval")

    def start(self):
        """Start the retention scheduler."""
        if self.running:
            logger.warning("RetentionScheduler is already running")
            return

        logger.info("Starting RetentionScheduler")
        self.running = True
        self._stop_event.clear()
        self.thread = threading.Thread(target=self._run_scheduler, daemon=True)
        self.thread.start()
        logger.info("RetentionScheduler started successfully")

    def stop(self):
        """Stop the retention scheduler."""
        if not self.running:
            logger.debug("RetentionScheduler is not running")
            return

        logger.info("Stopping RetentionScheduler")
        self.running = False
        self._stop_event.set()

        if self.thread:
            self.thread.join(timeout=10)
            if self.thread.is_alive():
                logger.warning("RetentionScheduler thread did not stop within timeout")
            else:
                logger.info("RetentionScheduler stopped successfully")

    def _run_scheduler(self):
        """Main scheduler loop."""
        logger.info("RetentionScheduler thread started")

        if self._stop_event.wait(INITIAL_DELAY_SECONDS):
            return

        while self.running:
            try:
                if self._should_run_cleanup():
                    logger.info("Starting scheduled retention cleanup")
                    self._run_cleanup()
                    logger.info("Scheduled retention cleanup completed")
            except Exception as e:
                logger.error(f"Error in retention scheduler: {e}", exc_info=True)

            if self._stop_event.wait(CHECK_INTERVAL_SECONDS):
                break

        logger.info("RetentionScheduler thread stopped")

    def _should_run_cleanup(self) -> bool:
        """
        Check if cleanup should run based on interval.

        Returns:
            True if cleanup should run, False otherwise
        """
        if self.last_cleanup is None:
            return True

        time_since_last = datetime.utcnow() - self.last_cleanup
        return time_since_last.total_seconds() >= self.cleanup_interval_seconds

    def _run_cleanup(self) -> Dict:
        summary = retention_service.cleanup_all_organizations()
        self.last_cleanup = datetime.utcnow()
        self.last_summary = summary
        return summary

    def run_cleanup_now(self) -> Dict:
        """
        Manually trigger cleanup process.

        Returns:
            Dictionary with cleanup results
        """
        logger.info("Manual retention cleanup triggered")

        try:
            summary = self._run_cleanup()
            return {"message": "Manual cleanup completed", "summary": summary}
        except Exception as e:
            logger.error(f"Error during manual cleanup: {e}", exc_info=True)
            return {"error": str(e)}

    def get_status(self) -> Dict:
        """
        Get scheduler status information.

        Returns:
            Dictionary with scheduler status
        """
        return {
            "running": self.running,
            "enabled": settings.event_retention_enabled,
            "cleanup_interval_hours": self.cleanup_interval_hours,
            "last_cleanup": self.last_cleanup.isoformat() if self.last_cleanup else None,
            "next_cleanup": self._get_next_cleanup_time(),
            "thread_alive": self.thread.is_alive() if self.thread else False,
            "last_events_deleted": self.last_summary.get("totalEventsDeleted") if self.last_summary else None,
        }

    def _get_next_cleanup_time(self) -> str:
        """
        Get next scheduled cleanup time.

        Returns:
            ISO format string of next cleanup time
        """
        if self.last_cleanup is None:
            return datetime.utcnow().isoformat()

        next_cleanup = self.last_cleanup + timedelta(seconds=self.cleanup_interval_seconds)
        return next_cleanup.isoformat()


# Global retention scheduler instance
retention_scheduler = RetentionScheduler(cleanup_interval_hours=settings.event_retention_interval_hours)
