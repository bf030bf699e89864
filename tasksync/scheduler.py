"""Background scheduler for periodic maintenance jobs"""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

MAPPING_REFRESH_JOB = "refresh_identity_mapping"
PRUNE_LOGS_JOB = "prune_sync_logs"


class SyncScheduler:
    """Scheduler for identity mapping refresh and sync log retention"""

    def __init__(self, services, *, mapping_refresh_minutes: int = 10, sync_log_retention_days: int = 30):
        self.services = services
        self.mapping_refresh_minutes = mapping_refresh_minutes
        self.sync_log_retention_days = sync_log_retention_days
        self.scheduler = AsyncIOScheduler()

    def start(self):
        """Start the scheduler (must be called from inside the running event loop)"""
        if self.mapping_refresh_minutes > 0:
            self.scheduler.add_job(
                func=self._refresh_mapping_job,
                trigger=IntervalTrigger(minutes=self.mapping_refresh_minutes),
                id=MAPPING_REFRESH_JOB,
                replace_existing=True,
            )
            logger.info(f"Scheduled identity mapping refresh every {self.mapping_refresh_minutes} minutes")
        else:
            logger.info("Identity mapping refresh disabled")

        if self.sync_log_retention_days > 0:
            self.scheduler.add_job(
                func=self._prune_logs_job,
                trigger=IntervalTrigger(hours=24),
                id=PRUNE_LOGS_JOB,
                replace_existing=True,
            )

        self.scheduler.start()
        logger.info("Sync scheduler started")

    def stop(self):
        """Stop the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Sync scheduler stopped")

    async def _refresh_mapping_job(self):
        """Rebuild the identity mapping so request paths rarely pay for it"""
        try:
            mapping = await self.services.mapper.refresh()
            logger.info(f"Scheduled mapping refresh completed: {len(mapping.forward)} mappings")
        except Exception as e:
            logger.error(f"Scheduled mapping refresh failed: {e}")

    def _prune_logs_job(self):
        self.services.recorder.prune(self.sync_log_retention_days)
