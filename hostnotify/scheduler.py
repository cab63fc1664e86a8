"""APScheduler integration."""

from __future__ import annotations

import logging

from apscheduler.schedulers.background import BackgroundScheduler

from .config import settings
from .ratelimit import RateLimiters

logger = logging.getLogger("uvicorn.error")

_scheduler: BackgroundScheduler | None = None


def prune_rate_limiters(limiters: RateLimiters) -> int:
    removed = limiters.prune()
    if removed:
        logger.info("Pruned %s expired rate-limit counters", removed)
    return removed


def start_scheduler(limiters: RateLimiters) -> BackgroundScheduler:
    global _scheduler
    if _scheduler and _scheduler.running:
        return _scheduler
    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        prune_rate_limiters,
        "interval",
        args=[limiters],
        minutes=settings.rate_prune_interval_minutes,
        id="rate-limit-prune",
        max_instances=1,
        replace_existing=True,
    )
    scheduler.start()
    _scheduler = scheduler
    return scheduler


def stop_scheduler() -> None:
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        _scheduler = None
