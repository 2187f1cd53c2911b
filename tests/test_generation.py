from types import SimpleNamespace

import pytest

from lingosavor.errors import GenerationError
from lingosavor.services.generation import (
    FAST_MODEL,
    SMART_MODEL,
    ContentGenerationClient,
    ensure_object,
    extract_json_payload,
    model_for_plan,
)


class _Models:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.requests = []

    def generate_content(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.reply)


def _client(reply=None, error=None):
    models = _Models(reply, error)
    return ContentGenerationClient(SimpleNamespace(models=models)), models


def test_model_for_plan_uses_smart_tier_only_for_pro():
    assert model_for_plan("pro") == SMART_MODEL
    assert model_for_plan("standard") == FAST_MODEL
    assert model_for_plan("") == FAST_MODEL


def test_extract_json_payload_strips_code_fences():
    raw = '```json\n{"abstract": "present perfect", "quizzes": []}\n```'

    assert extract_json_payload(raw) == {"abstract": "present perfect", "quizzes": []}


def test_extract_json_payload_ignores_surrounding_prose():
    raw = 'Here you go: [{"raw": "Hi.", "translation": "やあ。"}] Hope it helps!'

    assert extract_json_payload(raw) == [{"raw": "Hi.", "translation": "やあ。"}]


def test_extract_json_payload_returns_none_without_json():
    assert extract_json_payload("no json here") is None
    assert extract_json_payload("") is None


def test_ensure_object_unwraps_single_item_arrays():
    assert ensure_object([{"base_word": "run"}]) == {"base_word": "run"}
    assert ensure_object([]) is None
    assert ensure_object({"a": 1}) == {"a": 1}


def test_generate_json_requests_json_mime_type():
    client, models = _client(reply='{"text": "hello", "questions": []}')

    payload = client.generate_json(FAST_MODEL, "prompt")

    assert payload == {"text": "hello", "questions": []}
    request = models.requests[0]
    assert request["model"] == FAST_MODEL
    assert request["config"].response_mime_type == "application/json"


def test_generate_text_sends_history_before_prompt():
    client, models = _client(reply="Sure!")

    client.generate_text(SMART_MODEL, "latest question", history=[("user", "hi"), ("model", "hello")])

    contents = models.requests[0]["contents"]
    assert [content.role for content in contents] == ["user", "model", "user"]
    assert contents[-1].parts[-1].text == "latest question"


@pytest.mark.parametrize(
    ("reply", "error"),
    [("", None), (None, RuntimeError("quota exceeded")), ("not json", None)],
)
def test_generate_json_raises_generation_error(reply, error):
    client, _ = _client(reply=reply, error=error)

    with pytest.raises(GenerationError):
        client.generate_json(FAST_MODEL, "prompt")


def test_unconfigured_client_raises_generation_error():
    client = ContentGenerationClient(None)

    assert client.configured is False
    with pytest.raises(GenerationError):
        client.generate_text(FAST_MODEL, "prompt")
