"""Gemini wrapper used by every content-producing handler and job."""

import json
import logging

from google import genai
from google.genai import types

from lingosavor.errors import GenerationError

SMART_MODEL = 'gemini-2.5-flash'
FAST_MODEL = 'gemini-2.5-flash-lite'
JSON_MIME_TYPE = 'application/json'


def model_for_plan(plan):
    if str(plan or '').strip().lower() == 'pro':
        return SMART_MODEL
    return FAST_MODEL


def extract_json_payload(raw_text):
    """Pull the first JSON object or array out of a model reply, or None."""
    if not raw_text:
        return None
    text = raw_text.strip()
    if text.startswith('```'):
        lines = text.splitlines()
        if len(lines) >= 3 and lines[0].startswith('```') and lines[-1].strip() == '```':
            text = '\n'.join(lines[1:-1]).strip()
    candidates = [index for index in (text.find('{'), text.find('[')) if index != -1]
    if not candidates:
        return None
    start = min(candidates)
    closer = '}' if text[start] == '{' else ']'
    decoder = json.JSONDecoder()
    try:
        parsed, _ = decoder.raw_decode(text[start:])
        return parsed
    except json.JSONDecodeError:
        end = text.rfind(closer)
        if end == -1 or end <= start:
            return None
        try:
            return json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            return None


def ensure_object(payload):
    """Models sometimes wrap a single object in an array; unwrap it."""
    if isinstance(payload, list):
        return payload[0] if payload else None
    return payload


def build_client(api_key, logger=None):
    if not api_key:
        if logger is not None:
            logger.warning("⚠️ GEMINI_API_KEY is not set; content generation is disabled.")
        return None
    return genai.Client(api_key=api_key)


class ContentGenerationClient:
    def __init__(self, client, *, logger=None):
        self._client = client
        self.logger = logger or logging.getLogger(__name__)

    @classmethod
    def from_api_key(cls, api_key, *, logger=None):
        return cls(build_client(api_key, logger), logger=logger)

    @property
    def configured(self):
        return self._client is not None

    def _build_contents(self, prompt, media, history):
        contents = []
        for role, text in history or []:
            contents.append(types.Content(role=role, parts=[types.Part.from_text(text=text)]))
        parts = [types.Part.from_bytes(data=data, mime_type=mime_type) for data, mime_type in media or []]
        parts.append(types.Part.from_text(text=prompt))
        contents.append(types.Content(role='user', parts=parts))
        return contents

    def generate_text(
        self,
        model,
        prompt,
        *,
        media=None,
        history=None,
        system_instruction=None,
        temperature=None,
        top_p=None,
        max_output_tokens=None,
        response_mime_type=None,
    ):
        if self._client is None:
            raise GenerationError('Generation client is not configured')
        config_kwargs = {}
        if system_instruction:
            config_kwargs['system_instruction'] = system_instruction
        if temperature is not None:
            config_kwargs['temperature'] = temperature
        if top_p is not None:
            config_kwargs['top_p'] = top_p
        if max_output_tokens is not None:
            config_kwargs['max_output_tokens'] = max_output_tokens
        if response_mime_type:
            config_kwargs['response_mime_type'] = response_mime_type
        try:
            response = self._client.models.generate_content(
                model=model,
                contents=self._build_contents(prompt, media, history),
                config=types.GenerateContentConfig(**config_kwargs),
            )
        except Exception as exc:
            raise GenerationError(f"{model} request failed: {exc}") from exc
        text = (getattr(response, 'text', None) or '').strip()
        if not text:
            raise GenerationError(f"{model} returned an empty response")
        return text

    def generate_json(self, model, prompt, **kwargs):
        kwargs.setdefault('response_mime_type', JSON_MIME_TYPE)
        text = self.generate_text(model, prompt, **kwargs)
        payload = extract_json_payload(text)
        if payload is None:
            raise GenerationError(f"{model} returned no parseable JSON")
        return payload
