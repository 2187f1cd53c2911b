"""Transcription of uploaded audio, video, images and PDFs into ``user_documents``."""

from lingosavor.errors import CallableError, GenerationError
from lingosavor.repositories import documents_repo
from lingosavor.services import file_service, prompt_registry
from lingosavor.services.generation import FAST_MODEL

REQUEST_MAIN = 'main'
REQUEST_WHOLE = 'whole'


def load_owned_document(app_ctx, uid, document_id):
    snapshot = documents_repo.get_doc(app_ctx.db, document_id)
    if not snapshot.exists:
        raise CallableError('not-found', 'Document not found')
    data = snapshot.to_dict() or {}
    if data.get('user_id') != uid:
        raise CallableError('permission-denied', 'You do not have access to this document.')
    return data


def _require_path(data):
    path = data.get('path')
    if not path:
        raise CallableError('failed-precondition', 'Document path missing')
    return path


def _download(app_ctx, location, missing_message):
    if not app_ctx.object_store.exists(location):
        raise CallableError('not-found', missing_message)
    return app_ctx.object_store.download_bytes(location)


def _transcribe(app_ctx, prompt_id, media, **kwargs):
    try:
        return app_ctx.generation.generate_text(
            FAST_MODEL, prompt_registry.get_prompt_template(prompt_id), media=media, **kwargs
        )
    except GenerationError as exc:
        app_ctx.logger.error(f"❌ Transcription ({prompt_id}) failed: {exc}")
        raise CallableError('internal', 'Failed to generate transcription') from exc


def save_transcription(app_ctx, document_id, transcription):
    documents_repo.update_doc(app_ctx.db, document_id, {'transcription': transcription})
    app_ctx.logger.info(f"📝 Saved transcription for document {document_id} ({len(transcription)} chars)")
    return {'success': True, 'documentId': document_id, 'transcription': transcription}


def transcribe_media(app_ctx, uid, document_id, *, max_bytes, mime_type_for, prompt_id, label):
    data = load_owned_document(app_ctx, uid, document_id)
    path = _require_path(data)
    payload = _download(app_ctx, path, f"{label.capitalize()} file not found in storage")
    if len(payload) > max_bytes:
        raise CallableError(
            'invalid-argument',
            f"{label.capitalize()} file too large. Maximum size is {max_bytes // (1024 * 1024)}MB.",
        )
    mime_type = mime_type_for(data.get('file_name') or path)
    transcription = _transcribe(app_ctx, prompt_id, [(payload, mime_type)])
    return save_transcription(app_ctx, document_id, transcription)


def transcribe_audio(app_ctx, uid, document_id):
    return transcribe_media(
        app_ctx, uid, document_id,
        max_bytes=file_service.MAX_AUDIO_BYTES,
        mime_type_for=file_service.audio_mime_type,
        prompt_id='audio_transcription',
        label='audio',
    )


def transcribe_video(app_ctx, uid, document_id):
    return transcribe_media(
        app_ctx, uid, document_id,
        max_bytes=file_service.MAX_VIDEO_BYTES,
        mime_type_for=file_service.video_mime_type,
        prompt_id='video_transcription',
        label='video',
    )


def transcribe_images(app_ctx, uid, document_id):
    data = load_owned_document(app_ctx, uid, document_id)
    image_paths = data.get('image_paths')
    if not isinstance(image_paths, list) or not image_paths:
        raise CallableError('failed-precondition', 'No image paths found')

    media = []
    for image_path in image_paths:
        try:
            if not app_ctx.object_store.exists(image_path):
                app_ctx.logger.warning(f"⚠️ Image not found in storage: {image_path}")
                continue
            payload = app_ctx.object_store.download_bytes(image_path)
        except Exception as exc:
            app_ctx.logger.warning(f"⚠️ Could not download image {image_path}: {exc}")
            continue
        if len(payload) > file_service.MAX_IMAGE_BYTES:
            app_ctx.logger.warning(f"⚠️ Image too large, skipped: {image_path}")
            continue
        media.append((payload, file_service.image_mime_type(image_path)))
    if not media:
        raise CallableError('failed-precondition', 'No valid images to transcribe')

    transcription = _transcribe(app_ctx, 'image_transcription', media)
    result = save_transcription(app_ctx, document_id, transcription)
    result['processedImages'] = len(media)
    return result


def transcribe_document(app_ctx, uid, document_id):
    data = load_owned_document(app_ctx, uid, document_id)
    path = _require_path(data)
    pdf_bytes = _download(app_ctx, path, 'PDF file not found in storage')
    prompt_id = 'document_main_text' if (data.get('request') or REQUEST_WHOLE) == REQUEST_MAIN else 'document_whole'
    try:
        chunks = file_service.split_pdf_pages(pdf_bytes)
    except Exception as exc:
        raise CallableError('invalid-argument', 'Could not read the PDF file') from exc
    if not chunks:
        raise CallableError('failed-precondition', 'PDF has no pages')

    texts = []
    for index, chunk in enumerate(chunks):
        app_ctx.logger.info(f"Transcribing PDF chunk {index + 1}/{len(chunks)} of document {document_id}")
        texts.append(_transcribe(app_ctx, prompt_id, [(chunk, 'application/pdf')], temperature=0))
    return save_transcription(app_ctx, document_id, '\n\n'.join(texts))
