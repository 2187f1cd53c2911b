"""Scheduled job registry shared by the APScheduler process and ``scripts/run_job.py``."""

import logging
from dataclasses import dataclass
from typing import Callable

from lingosavor.logging_config import log_event
from lingosavor.repositories import users_repo
from lingosavor.services import gems_service, job_lock_service, notification_service, plan_service
from lingosavor.services.batch_scheduler import DailyTaskPipeline, RunReport, WordListPipeline

HEAVY_JOB_TIMEOUT_SECONDS = 1800
LIGHT_JOB_TIMEOUT_SECONDS = 540

MONTHLY_GEMS_TITLE = 'Your monthly gems have arrived 💎'
MONTHLY_GEMS_BODY = 'You received 100 free gems this month. Use them to savor a new English text!'


@dataclass(frozen=True)
class JobSpec:
    name: str
    func: Callable
    timeout_seconds: int = LIGHT_JOB_TIMEOUT_SECONDS


def create_daily_tasks(app_ctx, now):
    return DailyTaskPipeline(app_ctx).run(now)


def create_word_lists(app_ctx, now):
    return WordListPipeline(app_ctx).run(now)


def add_monthly_free_gems(app_ctx, now):
    updated = gems_service.grant_monthly_free_gems(
        db=app_ctx.db, firestore_module=app_ctx.firestore_module, logger=app_ctx.logger
    )
    notified = 0
    try:
        user_ids = [snapshot.id for snapshot in users_repo.list_all(app_ctx.db)]
        notified = len(notification_service.queue_bulk_notifications(
            user_ids, MONTHLY_GEMS_TITLE, MONTHLY_GEMS_BODY,
            db=app_ctx.db, firestore_module=app_ctx.firestore_module, logger=app_ctx.logger,
            screen='document', sleep=app_ctx.sleep,
        ))
    except Exception as exc:
        app_ctx.logger.error(f"❌ Monthly gems notification failed: {exc}")
    return {'usersUpdated': updated, 'notificationsSent': notified}


JOBS = {
    spec.name: spec
    for spec in (
        JobSpec('create_daily_tasks', create_daily_tasks, HEAVY_JOB_TIMEOUT_SECONDS),
        JobSpec('create_word_lists', create_word_lists, HEAVY_JOB_TIMEOUT_SECONDS),
        JobSpec('add_monthly_free_gems', add_monthly_free_gems),
        JobSpec('send_daily_notification', notification_service.send_daily_study_reminder),
        JobSpec('send_word_list_reminder', notification_service.send_word_list_reminder),
        JobSpec('send_review_reminder', notification_service.send_review_reminder),
        JobSpec('update_user_plans', plan_service.update_user_plans),
    )
}


def summarize(result):
    if isinstance(result, RunReport):
        return result.summary()
    return dict(result or {})


def run_job(name, app_ctx, now=None):
    """Run one job under its Firestore lease. Returns the summary dict, or None when skipped."""
    spec = JOBS.get(name)
    if spec is None:
        raise KeyError(f"Unknown job: {name}")
    now = now or app_ctx.now()
    logger = app_ctx.logger
    lease_enabled = app_ctx.config.job_lease_enabled
    owner = job_lock_service.lease_owner()
    if lease_enabled and not job_lock_service.acquire_lease(
        name,
        db=app_ctx.db,
        firestore_module=app_ctx.firestore_module,
        now=now,
        ttl_seconds=spec.timeout_seconds,
        owner=owner,
    ):
        log_event(logger, logging.WARNING, 'job_skipped_lease_held', job=name)
        return None

    status = 'failed'
    summary = {}
    try:
        summary = summarize(spec.func(app_ctx, now))
        status = 'succeeded'
        log_event(logger, logging.INFO, 'job_finished', job=name, summary=summary)
        return summary
    except Exception as exc:
        summary = {'error': f"{type(exc).__name__}: {exc}"}
        logger.error(f"❌ Job {name} failed: {exc}")
        raise
    finally:
        if lease_enabled:
            try:
                job_lock_service.release_lease(
                    name, db=app_ctx.db, owner=owner, finished_at=app_ctx.now(), status=status, summary=summary
                )
            except Exception as exc:
                logger.error(f"❌ Could not release lease for {name}: {exc}")
