"""Speech synthesis and overlapping-practice audio.

Overlapping audio plays each sentence of a recording followed by a silence
of the same length, so the learner can repeat it aloud.
"""

import logging
import os
import shutil
import subprocess
import tempfile

from google.cloud import texttospeech

try:
    import imageio_ffmpeg
except Exception:
    imageio_ffmpeg = None

from lingosavor.errors import GenerationError
from lingosavor.repositories import documents_repo
from lingosavor.services import file_service, prompt_registry
from lingosavor.services.generation import FAST_MODEL, extract_json_payload

NARRATION_LANGUAGE = 'en-US'
DOCUMENT_VOICE_NAME = 'en-US-Journey-F'
AUDIO_SAMPLE_RATE = 44100


class SpeechSynthesizer:
    def __init__(self, client=None, *, logger=None):
        self._client = client
        self.logger = logger or logging.getLogger(__name__)

    @property
    def client(self):
        if self._client is None:
            self._client = texttospeech.TextToSpeechClient()
        return self._client

    def synthesize(
        self,
        text,
        *,
        language_code=NARRATION_LANGUAGE,
        voice_name=None,
        gender=texttospeech.SsmlVoiceGender.NEUTRAL,
        sample_rate_hertz=None,
        speaking_rate=None,
    ):
        voice_kwargs = {'language_code': language_code, 'ssml_gender': gender}
        if voice_name:
            voice_kwargs['name'] = voice_name
        audio_kwargs = {'audio_encoding': texttospeech.AudioEncoding.MP3}
        if sample_rate_hertz:
            audio_kwargs['sample_rate_hertz'] = sample_rate_hertz
        if speaking_rate is not None:
            audio_kwargs['speaking_rate'] = speaking_rate
        response = self.client.synthesize_speech(
            input=texttospeech.SynthesisInput(text=text),
            voice=texttospeech.VoiceSelectionParams(**voice_kwargs),
            audio_config=texttospeech.AudioConfig(**audio_kwargs),
        )
        audio = response.audio_content
        if not audio:
            raise RuntimeError('Speech synthesis returned no audio')
        return audio

    def synthesize_document_voice(self, text):
        return self.synthesize(
            text,
            voice_name=DOCUMENT_VOICE_NAME,
            gender=texttospeech.SsmlVoiceGender.FEMALE,
            sample_rate_hertz=AUDIO_SAMPLE_RATE,
            speaking_rate=1.0,
        )


def daily_narration_path(uid, date_key):
    return f"documents/{uid}/daily-listening-{date_key}.mp3"


def publish_daily_narration(*, synthesizer, object_store, uid, text, date_key, logger):
    """Synthesize a listening task and return its public URL, or None on failure."""
    try:
        audio = synthesizer.synthesize(text)
        object_path = daily_narration_path(uid, date_key)
        object_store.upload_bytes(object_path, audio, 'audio/mp3')
        object_store.make_public(object_path)
        return object_store.public_url(object_path)
    except Exception as exc:
        logger.error(f"❌ Narration audio failed for user {uid}: {exc}")
        return None


def timestamp_to_seconds(timestamp):
    """Convert ``MM:SS:mmm`` into seconds; any other shape is rejected."""
    parts = str(timestamp or '').strip().split(':')
    if len(parts) != 3:
        raise ValueError(f"Invalid timestamp format: {timestamp} (expected MM:SS:mmm)")
    minutes, seconds, milliseconds = (int(part) for part in parts)
    return minutes * 60 + seconds + milliseconds / 1000


def plan_overlap_segments(timestamped_sentences):
    """Return ``(start, end)`` spans; the final span has ``end=None`` and runs to EOF."""
    starts = [timestamp_to_seconds(item.get('timestamp')) for item in timestamped_sentences]
    spans = []
    for index, start in enumerate(starts):
        end = starts[index + 1] if index + 1 < len(starts) else None
        spans.append((start, end))
    return spans


class OverlapAudioBuilder:
    def __init__(self, *, ffmpeg_binary_getter=None, subprocess_module=subprocess, logger=None):
        self._ffmpeg_binary_getter = ffmpeg_binary_getter or (
            lambda: file_service.get_ffmpeg_binary(which_func=shutil.which, imageio_ffmpeg_module=imageio_ffmpeg)
        )
        self.subprocess_module = subprocess_module
        self.logger = logger or logging.getLogger(__name__)

    def _run(self, args):
        ffmpeg_bin = self._ffmpeg_binary_getter()
        if not ffmpeg_bin:
            raise RuntimeError('ffmpeg is not installed on the server.')
        cmd = [ffmpeg_bin, '-y', '-hide_banner', '-loglevel', 'error', *args]
        result = self.subprocess_module.run(cmd, check=False, capture_output=True, text=True, timeout=300)
        if result.returncode != 0:
            stderr = (result.stderr or result.stdout or '').strip().splitlines()
            reason = stderr[-1] if stderr else 'ffmpeg failed'
            raise RuntimeError(f"ffmpeg error: {reason[:220]}")

    def extract_segment(self, source_path, start, end, output_path):
        args = ['-ss', f"{start:.3f}", '-i', source_path]
        if end is not None:
            args += ['-t', f"{end - start:.3f}"]
        args += ['-c:a', 'aac', '-ar', str(AUDIO_SAMPLE_RATE), output_path]
        self._run(args)

    def generate_silence(self, duration, output_path):
        self._run([
            '-f', 'lavfi',
            '-i', f"anullsrc=channel_layout=mono:sample_rate={AUDIO_SAMPLE_RATE}",
            '-t', f"{duration:.3f}",
            '-c:a', 'aac', '-ar', str(AUDIO_SAMPLE_RATE),
            output_path,
        ])

    def concatenate(self, input_paths, output_path, work_dir):
        list_path = os.path.join(work_dir, 'concat_list.txt')
        with open(list_path, 'w', encoding='utf-8') as handle:
            handle.write('\n'.join(f"file '{path}'" for path in input_paths))
        self._run(['-f', 'concat', '-safe', '0', '-i', list_path, '-c:a', 'aac', '-ar', str(AUDIO_SAMPLE_RATE), output_path])

    def build(self, source_path, timestamped_sentences, output_path):
        with tempfile.TemporaryDirectory(prefix='overlap_') as work_dir:
            pieces = []
            for index, (start, end) in enumerate(plan_overlap_segments(timestamped_sentences)):
                if end is not None and end <= start:
                    self.logger.warning(f"⚠️ Skipping empty overlap segment {index} ({start}s-{end}s)")
                    continue
                segment_path = os.path.join(work_dir, f"segment_{index}.m4a")
                self.extract_segment(source_path, start, end, segment_path)
                pieces.append(segment_path)
                if end is not None:
                    silence_path = os.path.join(work_dir, f"silence_{index}.m4a")
                    self.generate_silence(end - start, silence_path)
                    pieces.append(silence_path)
            if not pieces:
                raise RuntimeError('No audio segments to concatenate')
            self.concatenate(pieces, output_path, work_dir)
        return output_path


def transcribe_with_timestamps(generation, audio_bytes, mime_type):
    text = generation.generate_text(
        FAST_MODEL,
        prompt_registry.get_prompt_template('timestamped_sentences'),
        media=[(audio_bytes, mime_type)],
    )
    payload = extract_json_payload(text)
    if not isinstance(payload, list):
        raise GenerationError('Timestamp transcription did not return a JSON array')
    return [
        {'timestamp': str(item.get('timestamp', '')), 'sentence': str(item.get('sentence', ''))}
        for item in payload
        if isinstance(item, dict) and item.get('timestamp')
    ]


def overlapping_audio_path(uid, document_id):
    return f"audios/{uid}/overlapping_{document_id}.m4a"


def create_audio_overlaps(app_ctx, *, audio_location, uid, document_id, builder=None):
    """Build overlapping audio for a stored recording and register it in ``user_audios``."""
    mime_type = file_service.strict_audio_mime_type(audio_location)
    if not mime_type:
        raise ValueError('Unsupported audio format (mp3, wav and m4a only)')
    audio_bytes = app_ctx.object_store.download_bytes(audio_location)
    sentences = transcribe_with_timestamps(app_ctx.generation, audio_bytes, mime_type)
    if not sentences:
        raise GenerationError('No timestamped sentences were produced')

    builder = builder or OverlapAudioBuilder(logger=app_ctx.logger)
    extension = file_service.file_extension(audio_location) or 'mp3'
    with tempfile.TemporaryDirectory(prefix='overlap_src_') as work_dir:
        source_path = os.path.join(work_dir, f"original.{extension}")
        output_path = os.path.join(work_dir, 'overlapping.m4a')
        with open(source_path, 'wb') as handle:
            handle.write(audio_bytes)
        builder.build(source_path, sentences, output_path)
        object_path = overlapping_audio_path(uid, document_id)
        app_ctx.object_store.upload_file(object_path, output_path, 'audio/mp4')

    overlapping_uri = app_ctx.object_store.gs_uri(object_path)
    documents_repo.add_user_audio(app_ctx.db, {
        'user_id': uid,
        'document_id': document_id,
        'original_path': audio_location,
        'overlapping_path': overlapping_uri,
        'timestamped_sentences': sentences,
        'created_at': app_ctx.firestore_module.SERVER_TIMESTAMP,
    })
    app_ctx.logger.info(f"🎧 Overlapping audio ready for document {document_id}: {len(sentences)} sentences")
    return {'overlapping_path': overlapping_uri, 'sentence_count': len(sentences)}
