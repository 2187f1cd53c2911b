"""Request/response envelope for callable endpoints.

Requests are ``POST`` with a JSON body ``{"data": {...}}``. Successful calls
answer ``{"result": {...}}``; failures answer ``{"error": {"status", "message"}}``.
"""

import logging

from flask import jsonify

try:
    import sentry_sdk
except Exception:
    sentry_sdk = None

from lingosavor.errors import CallableError

logger = logging.getLogger('lingosavor')


def callable_payload(request):
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return {}
    data = body.get('data', body)
    return data if isinstance(data, dict) else {}


def callable_result(payload):
    return jsonify({'result': payload})


def require_string(data, key, message=None):
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise CallableError('invalid-argument', message or f"{key} is required")
    return value.strip()


def handle_callable_error(error):
    return jsonify({'error': error.to_dict()}), error.http_status


def handle_unexpected_error(error):
    original = getattr(error, 'original_exception', None) or error
    logger.error(f"❌ Unhandled error: {original}")
    if sentry_sdk:
        sentry_sdk.capture_exception(original)
    internal = CallableError('internal', 'An internal error occurred.')
    return jsonify({'error': internal.to_dict()}), internal.http_status


def register_error_handlers(app) -> None:
    app.register_error_handler(CallableError, handle_callable_error)
    app.register_error_handler(500, handle_unexpected_error)
