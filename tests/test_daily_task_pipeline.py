import json
import logging
import random
from datetime import timedelta

import pytest
from google.api_core import exceptions as google_exceptions

from lingosavor.errors import GenerationError, InfrastructureError
from lingosavor.services import batch_scheduler
from lingosavor.services.batch_scheduler import (
    TARGET_COMPLETED,
    TARGET_UNCREATED,
    DailyTaskPipeline,
    build_targets,
)
from lingosavor.services.stage_progression import StageProgressionEngine
from lingosavor.services.task_generation import TaskContentGenerator, tiered_selection

from conftest import FIXED_NOW

GRAMMAR_MARKER = "Using the English script and the conversation below"
REVIEW_MARKER = "Write an English text of about 200 words"

GRAMMAR_REPLY = json.dumps({
    "abstract": "Past continuous for background actions",
    "quizzes": [
        {"question": "Choose the past continuous form.", "options": ["was raining", "rains", "rained", "rain"], "answer": 0},
        {"question": "Which sentence sets the scene?", "options": ["A", "B", "C", "D"], "answer": 2},
    ],
})
REVIEW_REPLY = json.dumps({
    "text": "Mia likes to savor her morning coffee while the city wakes up.",
    "questions": [
        {"question": "What does Mia savor?", "options": ["tea", "coffee", "juice", "water"], "answer": 1},
        {"question": "When?", "options": ["night", "noon", "morning", "evening"], "answer": 2},
    ],
})


def _seed_room_with_messages(db, uid, room_id, since, count=2):
    db.seed("user_documents", f"doc-{room_id}", {"user_id": uid, "transcription": "It was raining when we arrived."})
    db.seed("user_rooms", room_id, {"user_id": uid, "document_id": f"doc-{room_id}", "stage": "unreviewed"})
    for index in range(count):
        db.seed("messages", f"{room_id}-m{index}", {
            "user_id": uid,
            "room_id": room_id,
            "role": "user" if index % 2 == 0 else "model",
            "content": f"message {index}",
            "created_at": since + timedelta(hours=index + 1),
        })


def _seed_word(db, uid, word_id, word, stage):
    db.seed("dictionary", f"dict-{word_id}", {"word": word, "meanings": [{"definition": f"meaning of {word}"}]})
    db.seed("user_words", word_id, {
        "user_id": uid,
        "word_id": f"dict-{word_id}",
        "stage": stage,
        "created_at": FIXED_NOW - timedelta(days=5),
    })


def _bundles_for(db, uid):
    return [data for data in db.all("user_tasks").values() if data.get("userId") == uid]


@pytest.fixture()
def scripted(app_ctx):
    app_ctx.generation.on(GRAMMAR_MARKER, GRAMMAR_REPLY).on(REVIEW_MARKER, REVIEW_REPLY)
    return app_ctx


def test_new_user_gets_full_bundle_with_narration(scripted, db, bucket):
    created_at = FIXED_NOW - timedelta(days=3)
    db.seed("users", "u-new", {"created_at": created_at, "plan": "pro"})
    _seed_room_with_messages(db, "u-new", "room1", created_at)
    _seed_word(db, "u-new", "w1", "savor", "reading")
    _seed_word(db, "u-new", "w2", "linger", "listening")

    report = DailyTaskPipeline(scripted).run(FIXED_NOW)

    assert report.count("written") == 1
    bundles = _bundles_for(db, "u-new")
    assert len(bundles) == 1
    bundle = bundles[0]
    assert bundle["date"] == "2026-10-19"
    assert [quiz["room_id"] for quiz in bundle["grammar_list"]] == ["room1", "room1"]
    assert bundle["answers"] == {"grammar": [-1, -1], "reading": [-1, -1], "listening": [-1, -1]}
    assert bundle["listening"]["audioUrl"] == (
        "https://storage.googleapis.com/lingosavor-test/documents/u-new/daily-listening-2026-10-19.mp3"
    )
    assert "documents/u-new/daily-listening-2026-10-19.mp3" in bucket.public
    assert db.data("user_rooms", "room1")["abstract"] == "Past continuous for background actions"


def test_free_plan_never_gets_listening(scripted, db):
    created_at = FIXED_NOW - timedelta(days=3)
    db.seed("users", "u-free", {"created_at": created_at, "plan": "free"})
    _seed_word(db, "u-free", "w1", "savor", "reading")
    _seed_word(db, "u-free", "w2", "linger", "listening")

    DailyTaskPipeline(scripted).run(FIXED_NOW)

    bundle = _bundles_for(db, "u-free")[0]
    assert "reading" in bundle
    assert "listening" not in bundle
    assert scripted.speech.calls == []


def test_narration_failure_leaves_audio_url_empty(scripted, db):
    scripted.speech.error = RuntimeError("tts quota")
    db.seed("users", "u1", {"created_at": FIXED_NOW - timedelta(days=3), "plan": "standard"})
    _seed_word(db, "u1", "w2", "linger", "listening")

    DailyTaskPipeline(scripted).run(FIXED_NOW)

    bundle = _bundles_for(db, "u1")[0]
    assert bundle["listening"]["audioUrl"] is None


def test_new_user_without_content_gets_no_bundle(scripted, db):
    db.seed("users", "u-empty", {"created_at": FIXED_NOW - timedelta(days=3), "plan": "free"})

    report = DailyTaskPipeline(scripted).run(FIXED_NOW)

    assert _bundles_for(db, "u-empty") == []
    assert report.count("skipped") == 1


def test_completed_grammar_only_regenerates_grammar(scripted, db):
    last_created = FIXED_NOW - timedelta(days=1)
    db.seed("users", "u1", {"created_at": FIXED_NOW - timedelta(days=30), "plan": "free"})
    reading = {"text": "old reading", "questions": [{"question": "q"}], "user_impression": "easy"}
    db.seed("user_tasks", "t1", {
        "userId": "u1",
        "date": "2026-10-18",
        "createdAt": last_created,
        "word_list": [{"word": "savor", "meaning": ["enjoy"], "id": "w1"}],
        "grammar_list": [],
        "reading": reading,
        "isCompleted": ["grammar"],
        "answers": {"grammar": [], "reading": [3]},
    })
    _seed_room_with_messages(db, "u1", "room1", last_created)
    _seed_word(db, "u1", "w1", "savor", "reading")

    DailyTaskPipeline(scripted).run(FIXED_NOW)

    bundles = _bundles_for(db, "u1")
    assert len(bundles) == 1
    bundle = bundles[0]
    assert len(bundle["grammar_list"]) == 2
    assert bundle["answers"] == {"grammar": [-1, -1], "reading": [3]}
    assert bundle["reading"] == reading
    assert bundle["isCompleted"] == []
    assert bundle["createdAt"] == FIXED_NOW
    assert not any(REVIEW_MARKER in call["prompt"] for call in scripted.generation.calls)


def test_running_twice_leaves_one_bundle_per_user(scripted, db):
    last_created = FIXED_NOW - timedelta(days=1)
    db.seed("users", "u1", {"created_at": FIXED_NOW - timedelta(days=30), "plan": "free"})
    for doc_id in ("t1", "t2"):
        db.seed("user_tasks", doc_id, {
            "userId": "u1",
            "createdAt": last_created,
            "grammar_list": [],
            "isCompleted": ["grammar"],
            "answers": {},
        })
    _seed_room_with_messages(db, "u1", "room1", last_created)

    pipeline = DailyTaskPipeline(scripted)
    pipeline.run(FIXED_NOW)
    second = pipeline.run(FIXED_NOW + timedelta(minutes=5))

    assert len(_bundles_for(db, "u1")) == 1
    assert second.results == []


class _FlakyStageEngine(StageProgressionEngine):
    def __init__(self, db, error, failing_uid):
        super().__init__(db)
        self.error = error
        self.failing_uid = failing_uid

    def advance_user(self, uid):
        if uid == self.failing_uid:
            raise self.error
        return super().advance_user(uid)


def test_failing_user_does_not_block_others(scripted, db):
    for uid in ("u-bad", "u-good"):
        db.seed("users", uid, {"created_at": FIXED_NOW - timedelta(days=3), "plan": "free"})
        _seed_word(db, uid, f"{uid}-w", "savor", "reading")

    pipeline = DailyTaskPipeline(scripted, stage_engine=_FlakyStageEngine(db, RuntimeError("boom"), "u-bad"))
    report = pipeline.run(FIXED_NOW)

    assert report.failed_units == ["u-bad"]
    assert report.count("written") == 1
    assert len(_bundles_for(db, "u-good")) == 1
    assert report.aborted is False


def test_permission_denied_aborts_the_run(scripted, db):
    db.seed("users", "u1", {"created_at": FIXED_NOW - timedelta(days=3), "plan": "free"})
    engine = _FlakyStageEngine(db, google_exceptions.PermissionDenied("rules"), "u1")

    with pytest.raises(google_exceptions.PermissionDenied):
        DailyTaskPipeline(scripted, stage_engine=engine).run(FIXED_NOW)


def test_population_load_failure_is_infrastructure_error(scripted, db):
    db.fail_streams["users"] = google_exceptions.ServiceUnavailable("firestore down")

    with pytest.raises(InfrastructureError):
        DailyTaskPipeline(scripted).run(FIXED_NOW)


def test_users_are_paced_between_batches(scripted, db):
    pauses = []
    for index in range(3):
        db.seed("users", f"u{index}", {"created_at": FIXED_NOW - timedelta(days=3), "plan": "free"})

    DailyTaskPipeline(scripted, sleep=pauses.append, user_batch_size=2, batch_delay=1.0).run(FIXED_NOW)

    assert pauses == [1.0]


class _Doc:
    def __init__(self, doc_id, data):
        self.id = doc_id
        self._data = data

    def to_dict(self):
        return dict(self._data)


def test_build_targets_splits_uncreated_and_completed():
    users = [
        _Doc("u-new", {"created_at": FIXED_NOW, "plan": "pro"}),
        _Doc("u-done", {"created_at": FIXED_NOW, "plan": "free"}),
        _Doc("u-busy", {"created_at": FIXED_NOW}),
        _Doc("u-undated", {}),
    ]
    tasks = [
        _Doc("t1", {"userId": "u-done", "isCompleted": ["reading"], "createdAt": FIXED_NOW - timedelta(days=2)}),
        _Doc("t2", {"userId": "u-done", "isCompleted": ["grammar"], "createdAt": FIXED_NOW - timedelta(days=1)}),
        _Doc("t3", {"userId": "u-busy", "isCompleted": [], "createdAt": FIXED_NOW}),
    ]

    targets = {target.user_id: target for target in build_targets(users, tasks)}

    assert set(targets) == {"u-new", "u-done"}
    assert targets["u-new"].type == TARGET_UNCREATED
    assert targets["u-new"].plan == "pro"
    assert targets["u-done"].type == TARGET_COMPLETED
    assert targets["u-done"].is_completed == ("grammar",)
    assert targets["u-done"].last_reviewed == FIXED_NOW - timedelta(days=1)


def test_grammar_rooms_fan_out_in_paced_sub_batches(app_ctx, db):
    since = FIXED_NOW - timedelta(days=1)
    for room_id in ("room1", "room2", "room3"):
        _seed_room_with_messages(db, "u1", room_id, since, count=1)
    db.seed("user_rooms", "room3", {"user_id": "u1"})
    app_ctx.generation.on(GRAMMAR_MARKER, GRAMMAR_REPLY)
    pauses = []
    content = TaskContentGenerator(db, app_ctx.generation, sleep=pauses.append, sub_batch_size=2, sub_batch_delay=1.0)

    quizzes = content.grammar_list("u1", since, "free")

    assert sorted({quiz["room_id"] for quiz in quizzes}) == ["room1", "room2"]
    assert pauses == [1.0]


def test_tiered_selection_orders_by_review_count_and_drops_overflow():
    docs = [
        _Doc("twice", {"reviewData": {"reading": [1, 2]}}),
        _Doc("many", {"reviewData": {"reading": [1, 2, 3]}}),
        _Doc("never", {}),
        _Doc("once", {"reviewData": {"reading": [1]}}),
    ]

    ordered = tiered_selection(docs, "reading", random.Random(7))

    assert [doc.id for doc in ordered] == ["never", "once", "twice"]


def test_review_selection_keeps_scanning_past_unusable_words(app_ctx, db):
    for index in range(5):
        db.seed("user_words", f"orphan{index}", {"user_id": "u1", "word_id": f"gone{index}", "stage": "reading"})
    for word in ("savor", "linger", "brisk"):
        _seed_word(db, "u1", word, word, "reading")

    for seed in range(20):
        content = TaskContentGenerator(db, app_ctx.generation, rng=random.Random(seed))
        selection = content.select_review_items("u1", "reading")
        assert sorted(selection.words) == ["brisk", "linger", "savor"]


def test_review_selection_caps_words_at_five(app_ctx, db):
    for word in ("savor", "linger", "brisk", "vivid", "mellow", "crisp", "tender"):
        _seed_word(db, "u1", word, word, "reading")

    selection = TaskContentGenerator(db, app_ctx.generation, rng=random.Random(3)).select_review_items("u1", "reading")

    assert len(selection.words) == 5


def test_unusable_rooms_are_skipped_while_others_still_get_quizzes(app_ctx, db):
    since = FIXED_NOW - timedelta(days=1)
    _seed_room_with_messages(db, "u1", "room-ok", since, count=1)
    _seed_room_with_messages(db, "u1", "room-garbled", since, count=1)
    db.seed("user_documents", "doc-room-garbled", {"user_id": "u1", "transcription": "GARBLED SCRIPT"})
    _seed_room_with_messages(db, "u1", "room-nodoc", since, count=1)
    db.docs("user_documents").pop("doc-room-nodoc")
    _seed_room_with_messages(db, "u1", "room-empty", since, count=1)
    db.seed("user_documents", "doc-room-empty", {"user_id": "u1", "transcription": ""})
    app_ctx.generation.on("GARBLED SCRIPT", "Sorry, I cannot write a quiz today.").on(GRAMMAR_MARKER, GRAMMAR_REPLY)
    content = TaskContentGenerator(db, app_ctx.generation, sleep=lambda _seconds: None)

    quizzes = content.grammar_list("u1", since, "free")

    assert [quiz["room_id"] for quiz in quizzes] == ["room-ok", "room-ok"]
    assert "abstract" not in db.data("user_rooms", "room-garbled")


def test_reading_generation_failure_still_writes_bundle(app_ctx, db):
    db.seed("users", "u1", {"created_at": FIXED_NOW - timedelta(days=3), "plan": "pro"})
    _seed_word(db, "u1", "w1", "savor", "reading")
    _seed_word(db, "u1", "w2", "linger", "listening")
    app_ctx.generation.on('"savor"', GenerationError("model overloaded")).on(REVIEW_MARKER, REVIEW_REPLY)

    report = DailyTaskPipeline(app_ctx).run(FIXED_NOW)

    assert report.count("written") == 1
    assert report.failed_units == []
    bundle = _bundles_for(db, "u1")[0]
    assert "reading" not in bundle
    assert bundle["listening"]["text"].startswith("Mia likes to savor")
    assert bundle["answers"]["listening"] == [-1, -1]


def test_oversized_bundle_replace_is_logged(scripted, db, monkeypatch, caplog):
    monkeypatch.setattr(batch_scheduler, "MAX_BATCH_WRITES", 2)
    last_created = FIXED_NOW - timedelta(days=1)
    db.seed("users", "u1", {"created_at": FIXED_NOW - timedelta(days=30), "plan": "free"})
    for doc_id in ("t1", "t2"):
        db.seed("user_tasks", doc_id, {"userId": "u1", "createdAt": last_created, "isCompleted": ["grammar"], "answers": {}})
    _seed_room_with_messages(db, "u1", "room1", last_created)

    with caplog.at_level(logging.WARNING):
        DailyTaskPipeline(scripted).run(FIXED_NOW)

    assert "has 2 task bundles" in caplog.text
    assert len(_bundles_for(db, "u1")) == 1
