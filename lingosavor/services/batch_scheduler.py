"""Batch pipelines behind the daily word-list refresh and daily task generation.

Both pipelines expose ``run(now) -> RunReport``. Each user is one unit of
work; unit failures are recorded and the run moves on, while store or
credential failures abort the whole run (see ``ContinueOnItemErrorPolicy``).
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from google.api_core import exceptions as google_exceptions

from lingosavor.errors import GenerationError, InfrastructureError
from lingosavor.logging_config import log_event
from lingosavor.repositories import dictionary_repo, learning_items_repo, user_tasks_repo, users_repo
from lingosavor.repositories.query_utils import MAX_BATCH_WRITES, chunked
from lingosavor.services import audio_service
from lingosavor.services.clock import local_date_key
from lingosavor.services.retention import coerce_datetime, review_history_from_item, should_review
from lingosavor.services.stage_progression import STAGE_LISTENING, STAGE_READING, StageProgressionEngine
from lingosavor.services.task_assembler import RegenerationFlags, assemble_bundle, has_generated_content
from lingosavor.services.task_generation import TaskContentGenerator

USER_BATCH_SIZE = 10
USER_BATCH_DELAY_SECONDS = 1.0

TARGET_COMPLETED = 'completed'
TARGET_UNCREATED = 'uncreated'

STATUS_WRITTEN = 'written'
STATUS_SKIPPED = 'skipped'
STATUS_FAILED = 'failed'

DEFAULT_ABORT_ON = (
    InfrastructureError,
    google_exceptions.PermissionDenied,
    google_exceptions.Unauthenticated,
)


@dataclass
class UnitResult:
    unit_id: str
    status: str
    detail: str = ''
    counts: Dict[str, int] = field(default_factory=dict)


@dataclass
class RunReport:
    job: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: List[UnitResult] = field(default_factory=list)
    aborted: bool = False
    error: str = ''

    def add(self, result):
        self.results.append(result)
        return result

    def count(self, status):
        return sum(1 for result in self.results if result.status == status)

    @property
    def failed_units(self):
        return [result.unit_id for result in self.results if result.status == STATUS_FAILED]

    def summary(self):
        return {
            'job': self.job,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'units': len(self.results),
            'written': self.count(STATUS_WRITTEN),
            'skipped': self.count(STATUS_SKIPPED),
            'failed': self.count(STATUS_FAILED),
            'failed_units': self.failed_units[:50],
            'aborted': self.aborted,
            'error': self.error,
        }


class ContinueOnItemErrorPolicy:
    """Record a failing unit and keep going; re-raise anything in ``abort_on``."""

    name = 'continue-on-item-error'

    def __init__(self, abort_on=DEFAULT_ABORT_ON):
        self.abort_on = tuple(abort_on)

    def run_unit(self, report, unit_id, func, logger):
        try:
            result = func()
        except self.abort_on as exc:
            report.aborted = True
            report.error = f"{type(exc).__name__}: {exc}"
            logger.error(f"❌ {report.job} aborted at unit {unit_id}: {exc}")
            raise
        except Exception as exc:
            logger.error(f"❌ {report.job} failed for unit {unit_id}: {exc}")
            return report.add(UnitResult(unit_id=unit_id, status=STATUS_FAILED, detail=str(exc)[:300]))
        return report.add(result)


@dataclass(frozen=True)
class TargetUser:
    user_id: str
    last_reviewed: datetime
    plan: str
    type: str
    is_completed: tuple = ()


def build_targets(user_docs, task_docs, *, logger=None):
    """Split the population into users needing a first bundle and users who finished categories."""
    logger = logger or logging.getLogger(__name__)
    users = {doc.id: (doc.to_dict() or {}) for doc in user_docs}
    users_with_tasks = set()
    completed = {}
    for doc in task_docs:
        data = doc.to_dict() or {}
        uid = data.get('userId')
        if not uid:
            continue
        users_with_tasks.add(uid)
        categories = data.get('isCompleted')
        created_at = coerce_datetime(data.get('createdAt'))
        if not isinstance(categories, list) or not categories or created_at is None:
            continue
        current = completed.get(uid)
        if current is not None and current.last_reviewed >= created_at:
            continue
        completed[uid] = TargetUser(
            user_id=uid,
            last_reviewed=created_at,
            plan=str(users.get(uid, {}).get('plan') or ''),
            type=TARGET_COMPLETED,
            is_completed=tuple(categories),
        )

    targets = list(completed.values())
    for uid, data in users.items():
        if uid in users_with_tasks:
            continue
        created_at = coerce_datetime(data.get('created_at'))
        if created_at is None:
            logger.warning(f"⚠️ User {uid} has no created_at; skipping task creation")
            continue
        targets.append(TargetUser(
            user_id=uid,
            last_reviewed=created_at,
            plan=str(data.get('plan') or ''),
            type=TARGET_UNCREATED,
        ))
    return targets


def newest_snapshot(snapshots):
    dated = [(coerce_datetime((snapshot.to_dict() or {}).get('createdAt')), snapshot) for snapshot in snapshots]
    dated = [entry for entry in dated if entry[0] is not None]
    if dated:
        return max(dated, key=lambda entry: entry[0])[1]
    return snapshots[-1] if snapshots else None


class DailyTaskPipeline:
    job_name = 'create_daily_tasks'

    def __init__(
        self,
        app_ctx,
        *,
        content=None,
        stage_engine=None,
        policy=None,
        sleep=None,
        user_batch_size=USER_BATCH_SIZE,
        batch_delay=USER_BATCH_DELAY_SECONDS,
    ):
        self.ctx = app_ctx
        self.db = app_ctx.db
        self.logger = app_ctx.logger or logging.getLogger(__name__)
        self.sleep = sleep or getattr(app_ctx, 'sleep', None) or time.sleep
        self.content = content or TaskContentGenerator(
            app_ctx.db,
            app_ctx.generation,
            logger=self.logger,
            sleep=self.sleep,
            explanation_language=app_ctx.config.explanation_language,
        )
        self.stage_engine = stage_engine or StageProgressionEngine(app_ctx.db, logger=self.logger)
        self.policy = policy or ContinueOnItemErrorPolicy()
        self.user_batch_size = user_batch_size
        self.batch_delay = batch_delay

    def load_targets(self):
        try:
            user_docs = users_repo.list_all(self.db)
            task_docs = user_tasks_repo.list_all(self.db)
        except Exception as exc:
            raise InfrastructureError(f"Could not load users and tasks: {exc}") from exc
        return build_targets(user_docs, task_docs, logger=self.logger)

    def run(self, now):
        report = RunReport(job=self.job_name, started_at=now)
        log_event(self.logger, logging.INFO, 'daily_tasks_started', started_at=now.isoformat())
        try:
            targets = self.load_targets()
            log_event(
                self.logger,
                logging.INFO,
                'daily_tasks_targets',
                completed=sum(1 for target in targets if target.type == TARGET_COMPLETED),
                uncreated=sum(1 for target in targets if target.type == TARGET_UNCREATED),
            )
            batches = list(chunked(targets, self.user_batch_size))
            for index, batch in enumerate(batches):
                for target in batch:
                    self.policy.run_unit(report, target.user_id, lambda: self.process_user(target, now), self.logger)
                if index < len(batches) - 1:
                    self.sleep(self.batch_delay)
        except Exception as exc:
            report.aborted = True
            report.error = report.error or f"{type(exc).__name__}: {exc}"
            raise
        finally:
            report.finished_at = self.ctx.clock() if callable(getattr(self.ctx, 'clock', None)) else now
            log_event(self.logger, logging.INFO, 'daily_tasks_finished', **report.summary())
        return report

    def _previous_bundle(self, uid):
        try:
            snapshot = user_tasks_repo.latest_for_user(self.db, uid)
        except Exception as exc:
            self.logger.warning(f"⚠️ Could not load previous task for user {uid}: {exc}")
            return {}
        return (snapshot.to_dict() or {}) if snapshot is not None else {}

    def _review_task(self, target, modality, previous):
        entry = previous.get(modality) if isinstance(previous.get(modality), dict) else {}
        try:
            return self.content.review_task(
                target.user_id,
                target.plan,
                modality,
                previous_text=entry.get('text'),
                impression=entry.get('user_impression'),
            )
        except GenerationError as exc:
            self.logger.error(f"❌ {modality} task generation failed for user {target.user_id}: {exc}")
            return None

    def process_user(self, target, now):
        uid = target.user_id
        stages = self.stage_engine.advance_user(uid)
        flags = RegenerationFlags.everything() if target.type == TARGET_UNCREATED else RegenerationFlags.from_completed(target.is_completed)

        grammar_list = self.content.grammar_list(uid, target.last_reviewed, target.plan) if flags.grammar else []
        previous = self._previous_bundle(uid) if (flags.reading or flags.listening) else {}
        reading_task = self._review_task(target, STAGE_READING, previous) if flags.reading else None
        listening_task = None
        if flags.listening and target.plan != 'free':
            listening_task = self._review_task(target, STAGE_LISTENING, previous)

        task_date = local_date_key(now, self.ctx.config.schedule_timezone)
        audio_url = None
        if listening_task:
            audio_url = audio_service.publish_daily_narration(
                synthesizer=self.ctx.speech,
                object_store=self.ctx.object_store,
                uid=uid,
                text=listening_task['text'],
                date_key=task_date,
                logger=self.logger,
            )

        counts = {
            'stages_advanced': stages.advanced,
            'grammar': len(grammar_list),
            'reading': 1 if reading_task else 0,
            'listening': 1 if listening_task else 0,
        }
        if target.type == TARGET_UNCREATED:
            if not has_generated_content(grammar_list, reading_task, listening_task):
                self.logger.info(f"No content generated for new user {uid}; nothing saved")
                return UnitResult(unit_id=uid, status=STATUS_SKIPPED, detail='no content', counts=counts)
            bundle = assemble_bundle(
                None,
                user_id=uid,
                task_date=task_date,
                created_at=now,
                grammar_list=grammar_list,
                reading_task=reading_task,
                listening_task=listening_task,
                audio_url=audio_url,
                flags=flags,
            )
            user_tasks_repo.add_doc(self.db, bundle)
        else:
            self.replace_bundles(uid, now, task_date, flags, grammar_list, reading_task, listening_task, audio_url)
        self.logger.info(f"✅ Daily tasks saved for user {uid} ({target.type}): {counts}")
        return UnitResult(unit_id=uid, status=STATUS_WRITTEN, counts=counts)

    def replace_bundles(self, uid, now, task_date, flags, grammar_list, reading_task, listening_task, audio_url):
        """Merge into the newest bundle, then delete every old bundle and insert the merge in one batch."""
        snapshots = user_tasks_repo.list_by_user(self.db, uid)
        newest = newest_snapshot(snapshots)
        existing = (newest.to_dict() or {}) if newest is not None else None
        bundle = assemble_bundle(
            existing,
            user_id=uid,
            task_date=task_date,
            created_at=now,
            grammar_list=grammar_list,
            reading_task=reading_task,
            listening_task=listening_task,
            audio_url=audio_url,
            flags=flags,
        )
        if len(snapshots) >= MAX_BATCH_WRITES:
            self.logger.warning(
                f"⚠️ User {uid} has {len(snapshots)} task bundles; replacing them exceeds one batch of {MAX_BATCH_WRITES} writes"
            )
        batch = self.db.batch()
        for snapshot in snapshots:
            batch.delete(snapshot.reference)
        batch.set(user_tasks_repo.new_doc_ref(self.db), bundle)
        batch.commit()
        return bundle


def dictionary_word_entry(entry_data, user_word_id):
    meanings = []
    for meaning in entry_data.get('meanings') or []:
        if isinstance(meaning, dict) and isinstance(meaning.get('definition'), str):
            meanings.append(meaning['definition'])
    return {
        'word': entry_data.get('word', ''),
        'meaning': meanings or [''],
        'id': user_word_id,
    }


class WordListPipeline:
    job_name = 'create_word_lists'

    def __init__(self, app_ctx, *, policy=None):
        self.ctx = app_ctx
        self.db = app_ctx.db
        self.logger = app_ctx.logger or logging.getLogger(__name__)
        self.policy = policy or ContinueOnItemErrorPolicy()

    def load_words_by_user(self):
        try:
            snapshots = learning_items_repo.list_all_words(self.db)
        except Exception as exc:
            raise InfrastructureError(f"Could not load user_words: {exc}") from exc
        grouped = {}
        for snapshot in snapshots:
            uid = (snapshot.to_dict() or {}).get('user_id')
            if uid:
                grouped.setdefault(uid, []).append(snapshot)
        return grouped

    def due_word_list(self, uid, snapshots, now):
        word_list = []
        for snapshot in snapshots:
            data = snapshot.to_dict() or {}
            created_at = coerce_datetime(data.get('created_at'))
            if created_at is None:
                self.logger.warning(f"⚠️ user_words/{snapshot.id} has no created_at; skipping")
                continue
            if not should_review(now, created_at, review_history_from_item(data)):
                continue
            word_id = data.get('word_id')
            if not word_id:
                continue
            try:
                entry = dictionary_repo.get_doc(self.db, word_id)
            except Exception as exc:
                self.logger.warning(f"⚠️ Dictionary lookup failed for {word_id} (user {uid}): {exc}")
                continue
            if entry.exists:
                word_list.append(dictionary_word_entry(entry.to_dict() or {}, snapshot.id))
        return word_list

    def upsert_word_list(self, uid, word_list, now):
        bundles = user_tasks_repo.list_by_user(self.db, uid)
        if bundles:
            for snapshot in bundles:
                snapshot.reference.update({'word_list': word_list})
            return len(bundles)
        user_tasks_repo.add_doc(self.db, {
            'userId': uid,
            'date': local_date_key(now, self.ctx.config.schedule_timezone),
            'createdAt': now,
            'word_list': word_list,
            'grammar_list': [],
            'isCompleted': [],
            'answers': {},
        })
        return 1

    def process_user(self, uid, snapshots, now):
        word_list = self.due_word_list(uid, snapshots, now)
        written = self.upsert_word_list(uid, word_list, now)
        return UnitResult(unit_id=uid, status=STATUS_WRITTEN, counts={'words': len(word_list), 'bundles': written})

    def run(self, now):
        report = RunReport(job=self.job_name, started_at=now)
        log_event(self.logger, logging.INFO, 'word_lists_started', started_at=now.isoformat())
        try:
            grouped = self.load_words_by_user()
            for uid, snapshots in grouped.items():
                self.policy.run_unit(report, uid, lambda: self.process_user(uid, snapshots, now), self.logger)
        except Exception as exc:
            report.aborted = True
            report.error = report.error or f"{type(exc).__name__}: {exc}"
            raise
        finally:
            report.finished_at = self.ctx.clock() if callable(getattr(self.ctx, 'clock', None)) else now
            log_event(self.logger, logging.INFO, 'word_lists_finished', **report.summary())
        return report
