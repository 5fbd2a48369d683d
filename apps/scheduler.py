"""
APScheduler setup for the in-process daily journal.

Schedules:
  every day at journal.daily_time in journal.timezone  →  relay.send_daily_journal()

The scheduler runs on the bot's own event loop, and send_daily_journal takes
the relay lock, so it never overlaps a command that is mutating state.
"""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)


async def _daily_journal(relay):
    try:
        await relay.send_daily_journal()
    except Exception:
        logger.exception("Daily journal job failed")


def build_scheduler(relay, cfg) -> AsyncIOScheduler:
    hour, minute = cfg.daily_hour_minute
    scheduler = AsyncIOScheduler(timezone=cfg.timezone)

    scheduler.add_job(
        _daily_journal,
        CronTrigger(hour=hour, minute=minute, timezone=cfg.timezone),
        args=[relay],
        id="daily_journal",
        name="Daily journal summary",
        misfire_grace_time=15 * 60,
        coalesce=True,
        replace_existing=True,
    )
    logger.info("Daily journal scheduled at %s (%s)", cfg.daily_time, cfg.timezone)
    return scheduler
