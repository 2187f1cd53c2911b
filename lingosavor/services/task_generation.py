"""Generated content for daily task bundles: grammar quizzes and review texts."""

import logging
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List

from lingosavor.errors import GenerationError
from lingosavor.repositories import dictionary_repo, documents_repo, learning_items_repo, messages_repo
from lingosavor.repositories.query_utils import chunked
from lingosavor.services import prompt_registry
from lingosavor.services.generation import model_for_plan
from lingosavor.services.stage_progression import STAGE_LISTENING, STAGE_READING

ROOM_SUB_BATCH_SIZE = 50
ROOM_SUB_BATCH_DELAY_SECONDS = 1.0
MAX_REVIEW_WORDS = 5
MAX_REVIEW_ABSTRACTS = 5
REVIEW_TIERS = (0, 1, 2)


def speaker_label(message):
    sender = str(message.get('sender') or '').strip()
    if sender:
        return sender
    return 'Assistant' if message.get('role') == 'model' else 'User'


def format_conversation(messages):
    return '\n'.join(f"{speaker_label(message)}: {message.get('content') or ''}" for message in messages)


def review_count(item_data, modality):
    review_data = item_data.get('reviewData') if isinstance(item_data.get('reviewData'), dict) else {}
    entries = review_data.get(modality)
    return len(entries) if isinstance(entries, list) else 0


def tiered_selection(snapshots, modality, rng):
    """Order items by how often they were reviewed in ``modality`` (0, 1, then 2), random within a tier."""
    tiers = {tier: [] for tier in REVIEW_TIERS}
    for snapshot in snapshots:
        count = review_count(snapshot.to_dict() or {}, modality)
        if count in tiers:
            tiers[count].append(snapshot)
    ordered = []
    for tier in REVIEW_TIERS:
        bucket = list(tiers[tier])
        rng.shuffle(bucket)
        ordered.extend(bucket)
    return ordered


def sanitize_quizzes(payload, room_id):
    quizzes = []
    for quiz in (payload or {}).get('quizzes') or []:
        if not isinstance(quiz, dict):
            continue
        options = quiz.get('options')
        if not quiz.get('question') or not isinstance(options, list) or not options:
            continue
        cleaned = dict(quiz)
        cleaned['room_id'] = room_id
        quizzes.append(cleaned)
    return quizzes


@dataclass
class ReviewSelection:
    words: List[str] = field(default_factory=list)
    abstracts: List[str] = field(default_factory=list)

    @property
    def empty(self):
        return not self.words and not self.abstracts


class TaskContentGenerator:
    def __init__(
        self,
        db,
        generation,
        *,
        logger=None,
        sleep=time.sleep,
        rng=None,
        explanation_language='Japanese',
        sub_batch_size=ROOM_SUB_BATCH_SIZE,
        sub_batch_delay=ROOM_SUB_BATCH_DELAY_SECONDS,
    ):
        self.db = db
        self.generation = generation
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep
        self.rng = rng or random.Random()
        self.explanation_language = explanation_language
        self.sub_batch_size = sub_batch_size
        self.sub_batch_delay = sub_batch_delay

    # Grammar quizzes

    def grammar_list(self, uid, last_reviewed, plan):
        messages = messages_repo.list_for_user_since(self.db, uid, last_reviewed)
        if not messages:
            self.logger.info(f"No new messages for user {uid} since {last_reviewed}")
            return []

        new_by_room = {}
        for snapshot in messages:
            data = snapshot.to_dict() or {}
            room_id = data.get('room_id')
            if not room_id:
                continue
            new_by_room.setdefault(room_id, []).append(data)

        model = model_for_plan(plan)
        room_ids = list(new_by_room)
        quizzes = []
        sub_batches = list(chunked(room_ids, self.sub_batch_size))
        for index, sub_batch in enumerate(sub_batches):
            with ThreadPoolExecutor(max_workers=len(sub_batch)) as executor:
                results = list(executor.map(
                    lambda room_id: self.grammar_for_room(uid, room_id, new_by_room[room_id], model),
                    sub_batch,
                ))
            for room_quizzes in results:
                if room_quizzes:
                    quizzes.extend(room_quizzes)
            if index < len(sub_batches) - 1:
                self.sleep(self.sub_batch_delay)
        self.logger.info(f"Grammar list for user {uid}: {len(quizzes)} quizzes from {len(room_ids)} rooms")
        return quizzes

    def grammar_for_room(self, uid, room_id, new_messages, model):
        """Quizzes for one room, or None when the room cannot be used."""
        try:
            room_doc = learning_items_repo.get_room(self.db, room_id)
            if not room_doc.exists:
                self.logger.warning(f"⚠️ Room {room_id} not found for user {uid}")
                return None
            document_id = (room_doc.to_dict() or {}).get('document_id')
            if not document_id:
                self.logger.warning(f"⚠️ Room {room_id} has no document_id")
                return None
            document = documents_repo.get_doc(self.db, document_id)
            script = (document.to_dict() or {}).get('transcription') if document.exists else None
            if not script:
                self.logger.warning(f"⚠️ Document {document_id} for room {room_id} has no transcription")
                return None
            all_messages = [snapshot.to_dict() or {} for snapshot in messages_repo.list_for_room(self.db, room_id)]
        except Exception as exc:
            self.logger.error(f"❌ Could not prepare room {room_id} for user {uid}: {exc}")
            return None

        prompt = prompt_registry.render_prompt(
            'grammar_quiz',
            script=script,
            conversation=format_conversation(all_messages),
            new_messages=format_conversation(new_messages),
            explanation_language=self.explanation_language,
        )
        try:
            payload = self.generation.generate_json(model, prompt)
        except GenerationError as exc:
            self.logger.error(f"❌ Grammar generation failed for room {room_id} (user {uid}): {exc}")
            return None
        if not isinstance(payload, dict):
            self.logger.error(f"❌ Grammar generation for room {room_id} returned {type(payload).__name__}")
            return None

        quizzes = sanitize_quizzes(payload, room_id)
        abstract = str(payload.get('abstract') or '').strip()
        if abstract:
            try:
                learning_items_repo.update_room(self.db, room_id, {'abstract': abstract})
            except Exception as exc:
                self.logger.error(f"❌ Could not save abstract for room {room_id}: {exc}")
        return quizzes

    # Reading / listening review texts

    def _word_text(self, word_id):
        try:
            entry = dictionary_repo.get_doc(self.db, word_id)
        except Exception as exc:
            self.logger.warning(f"⚠️ Dictionary lookup failed for {word_id}: {exc}")
            return None
        if not entry.exists:
            return None
        return (entry.to_dict() or {}).get('word') or None

    def select_review_items(self, uid, modality):
        word_docs = learning_items_repo.list_by_user_and_stage(
            self.db, learning_items_repo.WORDS_COLLECTION, uid, modality
        )
        room_docs = learning_items_repo.list_by_user_and_stage(
            self.db, learning_items_repo.ROOMS_COLLECTION, uid, modality
        )
        selection = ReviewSelection()
        for snapshot in tiered_selection(word_docs, modality, self.rng):
            if len(selection.words) >= MAX_REVIEW_WORDS:
                break
            word_id = (snapshot.to_dict() or {}).get('word_id')
            if not word_id:
                continue
            word = self._word_text(word_id)
            if word:
                selection.words.append(word)
        for snapshot in tiered_selection(room_docs, modality, self.rng):
            if len(selection.abstracts) >= MAX_REVIEW_ABSTRACTS:
                break
            abstract = str((snapshot.to_dict() or {}).get('abstract') or '').strip()
            if abstract:
                selection.abstracts.append(abstract)
        return selection

    def review_task(self, uid, plan, modality, previous_text=None, impression=None):
        """Generate a reading or listening text, or None when nothing is due in that stage.

        Raises GenerationError when the model output is unusable.
        """
        if modality not in (STAGE_READING, STAGE_LISTENING):
            raise ValueError(f"Unsupported review modality: {modality}")
        selection = self.select_review_items(uid, modality)
        if selection.empty:
            self.logger.info(f"No {modality} items for user {uid}")
            return None

        feedback = ''
        if previous_text and impression:
            feedback = prompt_registry.render_prompt(
                'review_feedback', previous_text=previous_text, impression=impression
            )
        prompt = prompt_registry.render_prompt(
            'review_text',
            item_count=len(selection.words) + len(selection.abstracts),
            feedback=feedback,
            words=','.join(f'"{word}"' for word in selection.words),
            grammar_points=','.join(f'"{abstract}"' for abstract in selection.abstracts),
        )
        payload = self.generation.generate_json(model_for_plan(plan), prompt)
        if not isinstance(payload, dict) or not payload.get('text'):
            raise GenerationError(f"{modality} task for user {uid} is missing text")
        questions = payload.get('questions')
        if not isinstance(questions, list):
            raise GenerationError(f"{modality} task for user {uid} is missing questions")
        return {'text': str(payload['text']), 'questions': questions}
