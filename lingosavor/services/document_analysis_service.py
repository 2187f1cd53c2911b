"""Document analysis ("savor") and document text-to-speech.

Both flows charge gems up front and refund them if a later step fails.
"""

import re
from concurrent.futures import ThreadPoolExecutor

from lingosavor.errors import CallableError, GenerationError
from lingosavor.repositories import documents_repo, subscriptions_repo, users_repo
from lingosavor.repositories.query_utils import chunked
from lingosavor.services import audio_service, gems_service, prompt_registry
from lingosavor.services.generation import SMART_MODEL, extract_json_payload
from lingosavor.services.transcription_service import load_owned_document

# Stored status values are read by the mobile client as-is.
STATUS_PROCESSING = '処理中'
STATUS_ANALYZED = '解析済み'
STATUS_UNANALYZED = '未解析'

PREMIUM_PLANS = {'standard', 'pro'}
MAX_TTS_CHARACTERS = 5000
PUBLISHED_WORD_BATCH_SIZE = 100
TRANSLATION_FALLBACK = 'Translation could not be generated.'

_QUOTE_OPEN_RE = re.compile(r"(\s)(['’])")
_QUOTE_CLOSE_RE = re.compile(r"(['’])(\s)")
_PUNCTUATION_RE = re.compile(r'([,.!?;:"()\[\]{}`~@#$%^&*+=|\\/<>])')
_SENTENCE_END_RE = re.compile(r'(?<=[.?!])\s+')
_WORD_START_RE = re.compile(r'^[a-z]')


def split_into_basic_tokens(text):
    """Whitespace tokens with punctuation and quoting apostrophes split off.

    Apostrophes inside a word (possessives, contractions) stay attached.
    """
    processed = _QUOTE_OPEN_RE.sub(r'\1 \2 ', text)
    processed = _QUOTE_CLOSE_RE.sub(r' \1 \2', processed)
    processed = _PUNCTUATION_RE.sub(r' \1 ', processed)
    return [token for token in processed.split() if token]


def split_paragraphs(text):
    return [line for line in str(text or '').split('\n') if line.strip()]


def extract_sentences(paragraphs):
    sentences = []
    for paragraph in paragraphs:
        sentences.extend(part.strip() for part in _SENTENCE_END_RE.split(paragraph) if part.strip())
    return sentences


def normalize_word(word):
    return str(word or '').lower().strip()


def published_word_doc_id(word):
    return normalize_word(word).replace('/', '_SLASH_').replace('.', '_DOT_')


def is_english_text(generation, text, logger):
    try:
        answer = generation.generate_text(SMART_MODEL, prompt_registry.render_prompt('english_detection', text=text))
    except GenerationError as exc:
        logger.warning(f"⚠️ English detection failed, assuming English: {exc}")
        return True
    return 'true' in answer.strip().lower()


def generate_summary(generation, text, explanation_language):
    return generation.generate_text(
        SMART_MODEL,
        prompt_registry.render_prompt('document_summary', text=text, explanation_language=explanation_language),
    ).strip()


def translate_sentences(generation, sentences, explanation_language, logger):
    if not sentences:
        return []
    prompt = prompt_registry.render_prompt(
        'sentence_translation',
        sentences='\n'.join(f"{index + 1}. {sentence}" for index, sentence in enumerate(sentences)),
        explanation_language=explanation_language,
    )
    try:
        payload = extract_json_payload(generation.generate_text(SMART_MODEL, prompt))
    except GenerationError as exc:
        logger.warning(f"⚠️ Sentence translation failed, using placeholders: {exc}")
        payload = None
    if not isinstance(payload, list):
        return [{'raw': sentence, 'translation': TRANSLATION_FALLBACK} for sentence in sentences]
    return payload


def match_published_words(db, uid, words, logger):
    """Find which words appear in the user's subscribed published word lists."""
    result = {}
    user_doc = users_repo.get_doc(db, uid)
    subscribed = (user_doc.to_dict() or {}).get('subscribed_wordlists') if user_doc.exists else None
    if not subscribed:
        return result

    metadata = {}
    for wordlist_id in subscribed:
        snapshot = subscriptions_repo.get_published_wordlist(db, wordlist_id)
        if snapshot.exists:
            metadata[wordlist_id] = snapshot.to_dict() or {}

    unique_words = []
    for word in words:
        normalized = normalize_word(word)
        if len(normalized) > 1 and _WORD_START_RE.match(normalized) and normalized not in unique_words:
            unique_words.append(normalized)
    if not unique_words:
        return result

    for wordlist_id in subscribed:
        if wordlist_id not in metadata:
            continue
        for batch in chunked(unique_words, PUBLISHED_WORD_BATCH_SIZE):
            refs = subscriptions_repo.published_word_refs(db, wordlist_id, [published_word_doc_id(word) for word in batch])
            try:
                snapshots = list(db.get_all(refs))
            except Exception as exc:
                logger.warning(f"⚠️ Published word lookup failed for {wordlist_id}: {exc}")
                continue
            for snapshot in snapshots:
                if not snapshot.exists:
                    continue
                data = snapshot.to_dict() or {}
                word = data.get('word')
                if not word:
                    continue
                appearance = {
                    'wordlistId': wordlist_id,
                    'wordlistTitle': metadata[wordlist_id].get('title', ''),
                    'number': data.get('number'),
                    'type': data.get('type'),
                }
                if data.get('page') is not None:
                    appearance['page'] = data['page']
                if data.get('parentWord'):
                    appearance['parentWord'] = data['parentWord']
                result.setdefault(word, {'word': word, 'appearances': []})['appearances'].append(appearance)
    return result


def cleanup_source_files(app_ctx, document_id, document):
    """Delete uploaded originals that are no longer needed once analysis is stored."""
    doc_type = document.get('type')
    try:
        if doc_type == 'image' and isinstance(document.get('image_paths'), list):
            all_deleted = True
            for image_path in document['image_paths']:
                try:
                    app_ctx.object_store.delete(image_path)
                except Exception as exc:
                    all_deleted = False
                    app_ctx.logger.warning(f"⚠️ Could not delete image {image_path}: {exc}")
            if all_deleted:
                documents_repo.update_doc(app_ctx.db, document_id, {'image_paths': app_ctx.firestore_module.DELETE_FIELD})
        elif doc_type == 'file' and isinstance(document.get('path'), str):
            app_ctx.object_store.delete(document['path'])
            documents_repo.update_doc(app_ctx.db, document_id, {'path': app_ctx.firestore_module.DELETE_FIELD})
    except Exception as exc:
        app_ctx.logger.warning(f"⚠️ Storage cleanup failed for document {document_id}: {exc}")


def _plan_of(app_ctx, uid):
    user_doc = users_repo.get_doc(app_ctx.db, uid)
    if not user_doc.exists:
        raise CallableError('not-found', 'User data not found')
    return (user_doc.to_dict() or {}).get('plan') or 'free'


def savor_document(app_ctx, uid, document_id):
    document = load_owned_document(app_ctx, uid, document_id)
    documents_repo.update_doc(app_ctx.db, document_id, {'status': STATUS_PROCESSING})
    charged = 0
    try:
        transcription = document.get('transcription') or ''
        if not transcription.strip():
            raise CallableError('failed-precondition', 'Transcription not found. Please transcribe the document first.')
        if not is_english_text(app_ctx.generation, transcription, app_ctx.logger):
            raise CallableError('failed-precondition', 'Transcription is not English. Please transcribe English text.')

        required_gems = 0
        if _plan_of(app_ctx, uid) not in PREMIUM_PLANS:
            required_gems = gems_service.gems_for_text(transcription)
            gems_service.deduct_gems(uid, required_gems, db=app_ctx.db, firestore_module=app_ctx.firestore_module)
            charged = required_gems

        paragraphs = split_paragraphs(transcription)
        paragraphs_with_words = [{'paragraph': paragraph, 'words': split_into_basic_tokens(paragraph)} for paragraph in paragraphs]
        all_words = [word for entry in paragraphs_with_words for word in entry['words']]
        sentences = extract_sentences(paragraphs)
        language = app_ctx.config.explanation_language
        with ThreadPoolExecutor(max_workers=3) as executor:
            summary_future = executor.submit(generate_summary, app_ctx.generation, transcription, language)
            translation_future = executor.submit(translate_sentences, app_ctx.generation, sentences, language, app_ctx.logger)
            matches_future = executor.submit(match_published_words, app_ctx.db, uid, all_words, app_ctx.logger)
            summary = summary_future.result()
            translations = translation_future.result()
            matches = matches_future.result()

        documents_repo.set_savor_result(app_ctx.db, document_id, {
            'summary': summary,
            'paragraphs': paragraphs,
            'paragraphs_with_words': paragraphs_with_words,
            'sentence_translations': translations,
            'matched_published_words': matches,
            'user_id': uid,
        })

        if document.get('type') == 'audio' and document.get('path'):
            try:
                audio_service.create_audio_overlaps(
                    app_ctx, audio_location=document['path'], uid=uid, document_id=document_id
                )
            except Exception as exc:
                app_ctx.logger.warning(f"⚠️ Overlapping audio failed for document {document_id}: {exc}")

        cleanup_source_files(app_ctx, document_id, document)
        documents_repo.update_doc(app_ctx.db, document_id, {'status': STATUS_ANALYZED})
        app_ctx.logger.info(f"✅ Document {document_id} analyzed for user {uid} ({required_gems} gems)")
        return {'success': True, 'documentId': document_id, 'consumed_gems': required_gems}
    except Exception as exc:
        if charged:
            gems_service.refund_gems(uid, charged, db=app_ctx.db, firestore_module=app_ctx.firestore_module, logger=app_ctx.logger)
        try:
            documents_repo.update_doc(app_ctx.db, document_id, {'status': STATUS_UNANALYZED})
        except Exception as status_exc:
            app_ctx.logger.error(f"❌ Could not reset status of document {document_id}: {status_exc}")
        if isinstance(exc, CallableError):
            raise
        app_ctx.logger.error(f"❌ Document analysis failed for {document_id}: {exc}")
        raise CallableError('internal', 'Document analysis failed') from exc


def tts_audio_path(uid, document_id):
    return f"audios/{uid}/tts_{document_id}.mp3"


def synthesize_document(app_ctx, uid, document_id):
    document = load_owned_document(app_ctx, uid, document_id)
    transcription = (document.get('transcription') or '').strip()
    if not transcription:
        raise CallableError('failed-precondition', 'Transcription not found. Please transcribe the document first.')
    if len(transcription) > MAX_TTS_CHARACTERS:
        raise CallableError(
            'invalid-argument',
            f"Transcription is too long: {len(transcription)} characters. Maximum allowed is {MAX_TTS_CHARACTERS}.",
        )

    charged = 0
    if _plan_of(app_ctx, uid) == 'free':
        charged = gems_service.gems_for_text(transcription)
        gems_service.deduct_gems(uid, charged, db=app_ctx.db, firestore_module=app_ctx.firestore_module)

    object_path = tts_audio_path(uid, document_id)
    try:
        audio = app_ctx.speech.synthesize_document_voice(transcription)
        app_ctx.object_store.upload_bytes(object_path, audio, 'audio/mpeg')
    except Exception as exc:
        if charged:
            gems_service.refund_gems(uid, charged, db=app_ctx.db, firestore_module=app_ctx.firestore_module, logger=app_ctx.logger)
        app_ctx.logger.error(f"❌ Text-to-speech failed for document {document_id}: {exc}")
        raise CallableError('internal', 'Text-to-speech conversion failed') from exc

    audio_uri = app_ctx.object_store.gs_uri(object_path)
    try:
        audio_service.create_audio_overlaps(app_ctx, audio_location=object_path, uid=uid, document_id=document_id)
    except Exception as exc:
        app_ctx.logger.warning(f"⚠️ Overlapping audio failed for document {document_id}: {exc}")
    return {
        'success': True,
        'documentId': document_id,
        'audioStorageUri': audio_uri,
        'consumed_gems': charged,
        'message': 'Text-to-speech conversion completed successfully',
    }
