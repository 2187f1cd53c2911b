"""Room chat replies grounded on the room's source document."""

import random

from lingosavor.errors import CallableError, GenerationError
from lingosavor.repositories import documents_repo, learning_items_repo, messages_repo, users_repo
from lingosavor.services import prompt_registry
from lingosavor.services.generation import model_for_plan

CHAT_MAX_OUTPUT_TOKENS = 4096
CHAT_TEMPERATURE = 0.7
CHAT_TOP_P = 0.95

NO_USER_MESSAGE_REPLY = "Sorry, I couldn't find a message to reply to."
FALLBACK_REPLIES = (
    'Sorry, something went wrong while generating a reply. Please try again.',
    'A system error occurred. Please wait a moment and try again.',
    'An error occurred while preparing the answer. Please send your message again.',
)


def split_chat_history(messages):
    """Return ``(history, prompt)`` where prompt is the latest user message.

    ``messages`` is a list of ``(role, text)``; empty texts are dropped first.
    """
    turns = [(role, text) for role, text in messages if isinstance(text, str) and text.strip()]
    user_indexes = [index for index, (role, _) in enumerate(turns) if role == 'user']
    if not user_indexes:
        return turns, None
    last_user = user_indexes[-1]
    return turns[:last_user], turns[last_user][1]


def system_instruction(transcription, explanation_language):
    instruction = prompt_registry.render_prompt('chat_system', explanation_language=explanation_language)
    if transcription and transcription.strip():
        instruction += prompt_registry.render_prompt('chat_reference', transcription=transcription)
    return instruction


def generate_reply(generation, model, messages, transcription, explanation_language, *, logger, rng=None):
    history, prompt = split_chat_history(messages)
    if prompt is None:
        return NO_USER_MESSAGE_REPLY
    try:
        return generation.generate_text(
            model,
            prompt,
            history=history,
            system_instruction=system_instruction(transcription, explanation_language),
            max_output_tokens=CHAT_MAX_OUTPUT_TOKENS,
            temperature=CHAT_TEMPERATURE,
            top_p=CHAT_TOP_P,
        )
    except GenerationError as exc:
        logger.error(f"❌ Chat generation failed: {exc}")
        return (rng or random).choice(FALLBACK_REPLIES)


def room_transcription(db, room_data, uid, logger):
    document_id = room_data.get('document_id')
    if not document_id:
        return ''
    document = documents_repo.get_doc(db, document_id)
    if not document.exists:
        logger.warning(f"⚠️ Document {document_id} of room not found")
        return ''
    data = document.to_dict() or {}
    if data.get('user_id') != uid:
        logger.warning(f"⚠️ Document {document_id} is not owned by {uid}; reference text skipped")
        return ''
    return data.get('transcription') or ''


def generate_room_response(app_ctx, uid, room_id):
    room_doc = learning_items_repo.get_room(app_ctx.db, room_id)
    if not room_doc.exists:
        raise CallableError('not-found', 'Room not found')
    room_data = room_doc.to_dict() or {}
    if room_data.get('user_id') != uid:
        raise CallableError('permission-denied', 'You do not have access to this room.')

    transcription = room_transcription(app_ctx.db, room_data, uid, app_ctx.logger)
    user_doc = users_repo.get_doc(app_ctx.db, uid)
    plan = (user_doc.to_dict() or {}).get('plan') if user_doc.exists else None
    model = model_for_plan(plan or 'free')

    messages = [
        ((snapshot.to_dict() or {}).get('role'), (snapshot.to_dict() or {}).get('content'))
        for snapshot in messages_repo.list_for_room_and_user(app_ctx.db, room_id, room_data.get('user_id'), ordered=True)
    ]
    reply = generate_reply(
        app_ctx.generation, model, messages, transcription,
        app_ctx.config.explanation_language, logger=app_ctx.logger,
    )
    messages_repo.add_doc(app_ctx.db, {
        'role': 'model',
        'user_id': room_data.get('user_id'),
        'created_at': app_ctx.firestore_module.SERVER_TIMESTAMP,
        'content': reply,
        'room_id': room_id,
    })
    return {'success': True, 'message': 'Response generated successfully', 'response': reply}
