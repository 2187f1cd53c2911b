"""Business logic handlers for document callables (transcription, TTS, analysis)."""

from lingosavor.callable_protocol import callable_payload, callable_result, require_string
from lingosavor.errors import CallableError
from lingosavor.services import document_analysis_service, transcription_service
from lingosavor.services.auth_service import require_uid


def _run(app_ctx, request, operation, label):
    uid = require_uid(app_ctx, request)
    data = callable_payload(request)
    document_id = require_string(data, 'documentId', 'documentId is required')
    try:
        result = operation(app_ctx, uid, document_id)
    except CallableError:
        raise
    except Exception as e:
        app_ctx.logger.error(f"Error in {label} for document {document_id}: {e}")
        raise CallableError('internal', f"{label} failed") from e
    return callable_result(result)


def transcribe_audio(app_ctx, request):
    return _run(app_ctx, request, transcription_service.transcribe_audio, 'Audio transcription')


def transcribe_video(app_ctx, request):
    return _run(app_ctx, request, transcription_service.transcribe_video, 'Video transcription')


def transcribe_images(app_ctx, request):
    return _run(app_ctx, request, transcription_service.transcribe_images, 'Image transcription')


def transcribe_document(app_ctx, request):
    return _run(app_ctx, request, transcription_service.transcribe_document, 'PDF transcription')


def text_to_speech(app_ctx, request):
    return _run(app_ctx, request, document_analysis_service.synthesize_document, 'Text-to-speech')


def savor_document(app_ctx, request):
    return _run(app_ctx, request, document_analysis_service.savor_document, 'Document analysis')
