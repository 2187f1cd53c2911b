"""Business logic handlers for word lookup and room chat callables."""

from lingosavor.callable_protocol import callable_payload, callable_result, require_string
from lingosavor.errors import CallableError
from lingosavor.services import chat_service, meaning_service
from lingosavor.services.auth_service import require_uid


def generate_meanings(app_ctx, request):
    uid = require_uid(app_ctx, request)
    data = callable_payload(request)
    word = require_string(data, 'word', 'word must be a non-empty string')
    sentence = data.get('sentence') or ''
    if not isinstance(sentence, str):
        raise CallableError('invalid-argument', 'sentence must be a string')
    try:
        result = meaning_service.generate_meanings(app_ctx, uid, word, sentence.strip())
    except CallableError:
        raise
    except Exception as e:
        app_ctx.logger.error(f"Error generating meanings for '{word}': {e}")
        raise CallableError('internal', 'Failed to generate meanings') from e
    return callable_result(result)


def generate_response(app_ctx, request):
    uid = require_uid(app_ctx, request)
    data = callable_payload(request)
    room_id = require_string(data, 'room_id', 'room_id is required')
    try:
        result = chat_service.generate_room_response(app_ctx, uid, room_id)
    except CallableError:
        raise
    except Exception as e:
        app_ctx.logger.error(f"Error generating response for room {room_id}: {e}")
        raise CallableError('internal', 'Failed to generate a response') from e
    return callable_result(result)
