"""Job scheduling for Price Tracker."""

from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

if TYPE_CHECKING:
    from .coordinator import RefreshCoordinator


class JobScheduler:
    """Runs the price refresh on a fixed interval.

    Only one refresh may run at a time; missed runs are coalesced.
    """

    def __init__(self, coordinator: "RefreshCoordinator", config: dict):
        """Initialize job scheduler.

        Args:
            coordinator: Refresh coordinator instance
            config: Configuration dictionary
        """
        self.coordinator = coordinator
        self.config = config

        schedule_config = config.get("schedule", {})
        self.scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": schedule_config.get("misfire_grace_time_seconds", 300),
            }
        )

    def configure_jobs(self):
        """Set up the scheduled refresh job."""
        schedule_config = self.config.get("schedule", {})

        refresh_hours = schedule_config.get("refresh_hours", 6)
        self.scheduler.add_job(
            self._run_refresh,
            IntervalTrigger(hours=refresh_hours),
            id="price_refresh",
            name="Price Refresh",
            replace_existing=True,
        )
        logger.info(f"Scheduled price refresh every {refresh_hours} hours")

    async def _run_refresh(self):
        try:
            await self.coordinator.run()
        except Exception as e:
            logger.error(f"Scheduled refresh failed: {e}")

    def start(self):
        """Start the scheduler."""
        logger.info("Starting job scheduler")
        self.scheduler.start()

    def stop(self):
        """Stop the scheduler."""
        logger.info("Stopping job scheduler")
        self.scheduler.shutdown()

    def get_jobs(self):
        """Get list of scheduled jobs."""
        return self.scheduler.get_jobs()
