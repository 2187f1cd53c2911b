"""Media type detection, size limits, PDF splitting and ffmpeg lookup."""

import io
import os
import shutil

from pypdf import PdfReader, PdfWriter

MAX_AUDIO_BYTES = 20 * 1024 * 1024
MAX_VIDEO_BYTES = 50 * 1024 * 1024
MAX_IMAGE_BYTES = 20 * 1024 * 1024
PDF_PAGES_PER_CHUNK = 2

AUDIO_MIME_TYPES = {
    'mp3': 'audio/mpeg',
    'wav': 'audio/wav',
    'm4a': 'audio/mp4',
}
VIDEO_MIME_TYPES = {
    'mp4': 'video/mp4',
    'mov': 'video/quicktime',
    'mpg': 'video/mpeg',
    'mpeg': 'video/mpeg',
}
IMAGE_MIME_TYPES = {
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
}


def file_extension(filename):
    name = str(filename or '')
    if '.' not in name:
        return ''
    return name.rsplit('.', 1)[1].lower()


def audio_mime_type(filename):
    return AUDIO_MIME_TYPES.get(file_extension(filename), 'audio/mpeg')


def video_mime_type(filename):
    return VIDEO_MIME_TYPES.get(file_extension(filename), 'video/mp4')


def image_mime_type(filename):
    return IMAGE_MIME_TYPES.get(file_extension(filename), 'image/jpeg')


def strict_audio_mime_type(filename):
    """Mime type for audio the timestamp model accepts, or None."""
    return AUDIO_MIME_TYPES.get(file_extension(filename))


def count_words(text):
    return len([part for part in str(text or '').split() if part])


def split_pdf_pages(pdf_bytes, pages_per_chunk=PDF_PAGES_PER_CHUNK):
    """Split a PDF into smaller PDFs of ``pages_per_chunk`` pages each."""
    reader = PdfReader(io.BytesIO(pdf_bytes))
    total_pages = len(reader.pages)
    chunks = []
    for start in range(0, total_pages, pages_per_chunk):
        writer = PdfWriter()
        for index in range(start, min(start + pages_per_chunk, total_pages)):
            writer.add_page(reader.pages[index])
        buffer = io.BytesIO()
        writer.write(buffer)
        chunks.append(buffer.getvalue())
    return chunks


def get_ffmpeg_binary(*, which_func=shutil.which, imageio_ffmpeg_module=None):
    ffmpeg_bin = which_func('ffmpeg')
    if ffmpeg_bin:
        return ffmpeg_bin
    if imageio_ffmpeg_module:
        try:
            ffmpeg_bin = imageio_ffmpeg_module.get_ffmpeg_exe()
            if ffmpeg_bin and os.path.exists(ffmpeg_bin):
                return ffmpeg_bin
        except Exception:
            pass
    return ''
