"""
Background jobs.

One interval job drops expired magic-link tokens from the in-memory store.
"""

from datetime import datetime
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from adops.config import get_settings
from adops.services.token_store import TokenStore, get_token_store

logger = structlog.get_logger(__name__)

SWEEP_JOB_ID = "sweep_expired_tokens"


async def sweep_expired_tokens(store: Optional[TokenStore] = None) -> None:
    store = store or get_token_store()
    try:
        store.sweep(datetime.utcnow())
    except Exception:
        # Next run retries; the store is only memory
        logger.exception("token_sweep_failed")


class SchedulerService:
    """Owns the AsyncIOScheduler for the application lifespan."""

    def __init__(self, interval_minutes: Optional[int] = None):
        self.interval_minutes = interval_minutes or get_settings().token_sweep_interval_minutes
        self.scheduler = AsyncIOScheduler()

    def start(self) -> None:
        self.scheduler.add_job(
            sweep_expired_tokens,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=SWEEP_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        self.scheduler.start()
        logger.info("scheduler_started", jobs=[SWEEP_JOB_ID], interval_minutes=self.interval_minutes)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("scheduler_stopped")
