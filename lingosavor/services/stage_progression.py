"""Per-item review stage state machine for words and conversation rooms."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from lingosavor.repositories import learning_items_repo

STAGE_UNREVIEWED = 'unreviewed'
STAGE_READING = 'reading'
STAGE_LISTENING = 'listening'
STAGE_COMPLETED = 'completed'
STAGES = (STAGE_UNREVIEWED, STAGE_READING, STAGE_LISTENING, STAGE_COMPLETED)

KIND_WORD = 'word'
KIND_ROOM = 'room'

REVIEWS_TO_ADVANCE = 3


def stage_rank(stage):
    try:
        return STAGES.index(stage)
    except ValueError:
        return -1


def _non_empty_list(value):
    return isinstance(value, list) and len(value) > 0


def _review_count(review_data, modality):
    if not isinstance(review_data, dict):
        return 0
    entries = review_data.get(modality)
    return len(entries) if isinstance(entries, list) else 0


def next_stage(kind, item_data) -> Optional[str]:
    """Return the stage an item should move to, or None when it stays put.

    Only one step is ever returned, so a run advances an item at most once.
    """
    data = item_data or {}
    stage = data.get('stage')
    review_data = data.get('reviewData') if isinstance(data.get('reviewData'), dict) else {}

    if stage == STAGE_UNREVIEWED:
        if kind == KIND_WORD:
            started = _non_empty_list(data.get('isCorrectData'))
        else:
            started = _non_empty_list(review_data.get(STAGE_READING)) or _non_empty_list(review_data.get(STAGE_LISTENING))
        return STAGE_READING if started else None
    if stage == STAGE_READING:
        if _review_count(review_data, STAGE_READING) >= REVIEWS_TO_ADVANCE:
            return STAGE_LISTENING
        return None
    if stage == STAGE_LISTENING:
        if _review_count(review_data, STAGE_LISTENING) >= REVIEWS_TO_ADVANCE:
            return STAGE_COMPLETED
        return None
    return None


@dataclass
class StageProgressionResult:
    advanced: int = 0
    failed: int = 0
    transitions: Dict[str, int] = field(default_factory=dict)

    def record(self, from_stage, to_stage):
        key = f"{from_stage}->{to_stage}"
        self.transitions[key] = self.transitions.get(key, 0) + 1
        self.advanced += 1

    def merge(self, other):
        self.advanced += other.advanced
        self.failed += other.failed
        for key, count in other.transitions.items():
            self.transitions[key] = self.transitions.get(key, 0) + count
        return self


class StageProgressionEngine:
    def __init__(self, db, *, logger=None):
        self.db = db
        self.logger = logger or logging.getLogger(__name__)

    def advance_items(self, kind, snapshots):
        """Advance every snapshot by at most one stage, isolating per-item write failures."""
        result = StageProgressionResult()
        for snapshot in snapshots:
            data = snapshot.to_dict() or {}
            target = next_stage(kind, data)
            if target is None or stage_rank(target) <= stage_rank(data.get('stage')):
                continue
            try:
                snapshot.reference.update({'stage': target})
                result.record(data.get('stage'), target)
            except Exception as exc:
                result.failed += 1
                self.logger.error(f"❌ Failed to advance {kind} {snapshot.id} to {target}: {exc}")
        return result

    def advance_user(self, uid):
        words = learning_items_repo.list_words_by_user(self.db, uid)
        rooms = learning_items_repo.list_rooms_by_user(self.db, uid)
        result = self.advance_items(KIND_WORD, words)
        result.merge(self.advance_items(KIND_ROOM, rooms))
        if result.advanced or result.failed:
            self.logger.info(
                f"Stage progression for user {uid}: advanced={result.advanced} failed={result.failed} {result.transitions}"
            )
        return result
