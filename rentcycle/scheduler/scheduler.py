"""Scheduler using APScheduler to trigger the daily rent cycle."""

import time
from datetime import date, datetime, timezone

from apscheduler.schedulers.background import BackgroundScheduler
from prometheus_client import start_http_server

from rentcycle.config import Settings
from rentcycle.cycle import RentCycleEngine
from rentcycle.logging_config import configure_logging, get_logger

logger = get_logger(__name__)

# The cron trigger and the business date share this timezone.
SCHEDULER_TIMEZONE = timezone.utc


def business_date() -> date:
    """Current date in the scheduler's timezone."""
    return datetime.now(SCHEDULER_TIMEZONE).date()


def daily_job(engine: RentCycleEngine):
    """Job that runs the rent cycle for the current date.

    This is the only place the wall-clock date enters the engine.

    Args:
        engine (RentCycleEngine): Engine to run.

    Returns:
        DailyCycleSummary: Summary of the run, or None if the cycle crashed.
    """
    today = business_date()
    try:
        summary = engine.run_daily_cycle(today)
    except Exception as e:
        logger.exception(f"Daily rent cycle for {today} failed: {e}")
        return None
    if summary.all_failed:
        logger.error(f"Every operation of the {today} rent cycle failed")
    return summary


def build_scheduler(engine: RentCycleEngine, settings: Settings) -> BackgroundScheduler:
    """Create a scheduler with the daily rent cycle job registered (not started)."""
    scheduler = BackgroundScheduler(timezone=SCHEDULER_TIMEZONE)
    scheduler.add_job(
        daily_job,
        "cron",
        args=[engine],
        hour=settings.cycle_hour,
        minute=settings.cycle_minute,
        id="daily_rent_cycle",
        max_instances=1,
        coalesce=True,
    )
    return scheduler


def start_scheduler(settings: Settings = None):
    """Start the APScheduler to run the rent cycle once a day.

    Schedules daily_job at CYCLE_HOUR:CYCLE_MINUTE UTC, starts the scheduler
    process, and keeps the application alive.

    Returns:
        None
    """
    settings = settings or Settings.from_env()
    engine = RentCycleEngine.from_settings(settings)
    scheduler = build_scheduler(engine, settings)
    scheduler.start()
    logger.info(f"Scheduler started. Next runs: {scheduler.get_jobs()}")
    try:
        # Keep the scheduler alive
        while True:
            time.sleep(60)
    except (KeyboardInterrupt, SystemExit):
        scheduler.shutdown()
        logger.info("Scheduler stopped.")


def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    start_http_server(settings.metrics_port)
    start_scheduler(settings)


if __name__ == "__main__":
    main()
