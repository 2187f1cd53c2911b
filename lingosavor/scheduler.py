"""APScheduler process that fires the scheduled jobs.

Run with ``python -m lingosavor.scheduler``.
"""

import logging
from zoneinfo import ZoneInfo

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from lingosavor.config import load_config
from lingosavor.extensions import build_service_context, init_sentry
from lingosavor.jobs import JOBS, run_job
from lingosavor.logging_config import configure_logging

logger = logging.getLogger(__name__)

MISFIRE_GRACE_SECONDS = 600

# job name -> cron fields; ``utc`` pins the trigger to UTC instead of the schedule timezone.
SCHEDULE = {
    'create_daily_tasks': {'hour': 4, 'minute': 0},
    'create_word_lists': {'hour': 5, 'minute': 0},
    'add_monthly_free_gems': {'day': 1, 'hour': 0, 'minute': 0},
    'send_daily_notification': {'hour': 19, 'minute': 0},
    'send_word_list_reminder': {'hour': 23, 'minute': 0},
    'send_review_reminder': {'hour': 7, 'minute': 0},
    'update_user_plans': {'hour': 0, 'minute': 0, 'utc': True},
}


def build_trigger(fields, tz_name):
    fields = dict(fields)
    tz = ZoneInfo('UTC') if fields.pop('utc', False) else ZoneInfo(tz_name)
    return CronTrigger(timezone=tz, **fields)


def _run_scheduled(job_name, app_ctx):
    try:
        run_job(job_name, app_ctx)
    except Exception as exc:
        logger.error(f"❌ Scheduled job {job_name} failed: {exc}")


def register_jobs(scheduler, app_ctx, tz_name):
    for job_name, fields in SCHEDULE.items():
        if job_name not in JOBS:
            raise KeyError(f"Unknown job: {job_name}")
        scheduler.add_job(
            _run_scheduled,
            build_trigger(fields, tz_name),
            args=[job_name, app_ctx],
            id=job_name,
            name=job_name,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=MISFIRE_GRACE_SECONDS,
            replace_existing=True,
        )
        logger.info(f"Scheduled {job_name} ({fields}, tz={tz_name})")
    return scheduler


def main():
    config = load_config()
    configure_logging(config.log_level)
    init_sentry(config)
    app_ctx = build_service_context(config)
    scheduler = BlockingScheduler(timezone=ZoneInfo(config.schedule_timezone))
    register_jobs(scheduler, app_ctx, config.schedule_timezone)
    logger.info('✅ Scheduler started')
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info('Scheduler stopped')


if __name__ == '__main__':
    main()
