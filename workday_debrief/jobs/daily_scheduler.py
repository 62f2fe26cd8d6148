"""
Daily Scheduler

Generates the day's summary at the configured time and applies the
retention window:
- Daily trigger at settings.scheduled_time (local time)
- Missed-run check on startup: if today has no summary and the scheduled
  time has passed, generate now
- Summaries older than settings.retention_days are purged after each run

Run as a long-lived loop (started by the API on startup), or once:
  python -m workday_debrief.jobs.daily_scheduler --once
"""

from __future__ import annotations

import asyncio
import argparse
import logging
from datetime import datetime, timezone
from typing import Optional

import pytz
from croniter import croniter
from dotenv import load_dotenv

from workday_debrief import config
from workday_debrief.services.debrief import DebriefService, get_debrief_service

logger = logging.getLogger(__name__)

# Delay before retrying a cycle whose settings could not be loaded
ERROR_BACKOFF_SECONDS = 60


# =============================================================================
# Schedule math
# =============================================================================

def daily_cron(scheduled_time: str) -> str:
    """Cron expression for an "HH:MM" daily trigger."""
    hour, minute = (int(p) for p in scheduled_time.split(":"))
    return f"{minute} {hour} * * *"


def _local_tz(tz: Optional[pytz.BaseTzInfo]):
    return tz or datetime.now().astimezone().tzinfo


def calculate_next_run(
    scheduled_time: str,
    tz: Optional[pytz.BaseTzInfo] = None,
    from_time: Optional[datetime] = None,
) -> datetime:
    """
    Next daily trigger strictly after `from_time`.

    Args:
        scheduled_time: "HH:MM" local time
        tz: Schedule timezone (None means machine local time)
        from_time: Base time (defaults to now)

    Returns:
        Next run time as UTC datetime
    """
    if from_time is None:
        from_time = datetime.now(timezone.utc)

    local_time = from_time.astimezone(_local_tz(tz))
    cron = croniter(daily_cron(scheduled_time), local_time)
    next_local = cron.get_next(datetime)
    return next_local.astimezone(timezone.utc)


def is_missed_run(
    scheduled_time: str,
    now: datetime,
    has_summary_today: bool,
) -> bool:
    """True when today's trigger time has passed without a summary for today."""
    if has_summary_today:
        return False
    hour, minute = (int(p) for p in scheduled_time.split(":"))
    return (now.hour, now.minute) >= (hour, minute)


# =============================================================================
# Jobs
# =============================================================================

async def run_daily_job(service: DebriefService) -> bool:
    """Generate today's summary, then purge expired ones. Returns success."""
    try:
        outcome = await service.generate_summary()
        for warning in outcome.warnings:
            logger.warning(f"[SCHEDULER] Source warning: {warning}")
        logger.info(f"[SCHEDULER] Generated summary for {outcome.summary.summary_date}")
    except Exception as e:
        logger.error(f"[SCHEDULER] Scheduled generation failed: {e}", exc_info=True)
        return False

    try:
        purged = await service.purge_expired()
        if purged:
            logger.info(f"[SCHEDULER] Purged {purged} expired summaries")
    except Exception as e:
        logger.error(f"[SCHEDULER] Retention purge failed: {e}")
    return True


async def check_missed_run(service: DebriefService) -> bool:
    """Startup check. Returns True if a catch-up generation was run."""
    settings = await service.get_settings()
    tz = config.get_timezone()
    now = datetime.now(tz) if tz else datetime.now()
    existing = await service.get_today_summary()

    if not is_missed_run(settings.scheduled_time, now, existing is not None):
        return False

    logger.info(f"[SCHEDULER] Missed {settings.scheduled_time} trigger, generating now")
    await run_daily_job(service)
    return True


async def _wait_or_stop(stop: asyncio.Event, delay: float) -> bool:
    """Sleep up to `delay` seconds. True when `stop` was set meanwhile."""
    try:
        await asyncio.wait_for(stop.wait(), timeout=delay)
        return True
    except asyncio.TimeoutError:
        return False


async def run_daily_scheduler(
    service: DebriefService,
    stop: asyncio.Event,
    error_backoff: float = ERROR_BACKOFF_SECONDS,
) -> None:
    """
    Long-lived loop: sleep until the next trigger, generate, repeat.

    Settings are reloaded every cycle so a changed schedule time applies
    from the next trigger. A failed cycle is logged and retried after
    `error_backoff` seconds. Returns when `stop` is set.
    """
    try:
        await check_missed_run(service)
    except Exception as e:
        logger.error(f"[SCHEDULER] Missed-run check failed: {e}", exc_info=True)

    while not stop.is_set():
        try:
            settings = await service.get_settings()
            next_run = calculate_next_run(settings.scheduled_time, config.get_timezone())
        except Exception as e:
            logger.error(f"[SCHEDULER] Could not plan next run: {e}", exc_info=True)
            if await _wait_or_stop(stop, error_backoff):
                break
            continue

        delay = max((next_run - datetime.now(timezone.utc)).total_seconds(), 0)
        logger.info(f"[SCHEDULER] Next run at {next_run.isoformat()} (in {delay:.0f}s)")

        if await _wait_or_stop(stop, delay):
            break

        await run_daily_job(service)

    logger.info("[SCHEDULER] Stopped")


async def main(once: bool = False) -> None:
    service = get_debrief_service()
    if once:
        await run_daily_job(service)
        return
    await run_daily_scheduler(service, asyncio.Event())


def cli() -> None:
    load_dotenv()
    logging.basicConfig(
        level=config.get_log_level(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    parser = argparse.ArgumentParser(description="Workday Debrief daily scheduler")
    parser.add_argument("--once", action="store_true", help="Generate today's summary and exit")
    args = parser.parse_args()
    asyncio.run(main(once=args.once))


if __name__ == "__main__":
    cli()
