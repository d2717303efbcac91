"""APScheduler setup for periodic tasks."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

logger = logging.getLogger(__name__)


def create_scheduler(trip_service) -> AsyncIOScheduler:
    """Create and configure the scheduler with all jobs."""
    from shuttle_ops.config import settings

    scheduler = AsyncIOScheduler()

    # Resolve routes for trips stored without them (and endpoints from stops)
    scheduler.add_job(
        trip_service.migrate_all,
        "interval",
        hours=settings.route_migration_hours,
        id="migrate_trip_routes",
        name="Resolve missing trip routes",
        max_instances=1,
        coalesce=True,
    )

    return scheduler
