"""
Text-to-speech for articles using Edge TTS.
Audio is synthesized per language and stored under audio/ in blob storage.
"""
import asyncio
import logging
import os
import re
import tempfile

import edge_tts

import config
from storage import get_storage
from utils import slugify, timestamp_suffix

logger = logging.getLogger(__name__)


class TTSError(Exception):
    pass


def clean_text_for_tts(text):
    """Strip markup and collapse whitespace before synthesis"""
    if not text:
        return ''
    cleaned = re.sub(r'<[^>]+>', ' ', text)
    cleaned = re.sub(r'[\*#_]', '', cleaned)
    cleaned = cleaned.replace('\n', ' . ')
    return re.sub(r'\s+', ' ', cleaned).strip()


async def _synthesize(text, voice, output_path):
    communicate = edge_tts.Communicate(text, voice)
    await communicate.save(output_path)


def synthesize_to_bytes(text, voice):
    """
    Returns:
        bytes: MP3 audio

    Raises:
        TTSError: Edge TTS failed or produced no audio
    """
    fd, path = tempfile.mkstemp(suffix='.mp3')
    os.close(fd)
    try:
        try:
            asyncio.run(_synthesize(text, voice, path))
        except Exception as e:
            raise TTSError(f"Edge TTS failed for voice {voice}: {e}") from e
        with open(path, 'rb') as fh:
            data = fh.read()
    finally:
        if os.path.exists(path):
            os.remove(path)
    if not data:
        raise TTSError(f"Edge TTS produced no audio for voice {voice}")
    return data


def synthesize_article_audio(texts, basename=None, voices=None):
    """
    Synthesize one MP3 per language and upload it.

    Args:
        texts: {lang: text}
        basename: Blob name stem (slug of the article)
        voices: {lang: edge voice name}, defaults to TTS_VOICES

    Returns:
        dict: {lang: blob url} for every language that had text and a voice
    """
    voices = voices or config.TTS_VOICES
    storage = get_storage()
    stem = slugify(basename) or 'article'
    urls = {}

    for lang, text in (texts or {}).items():
        voice = voices.get(lang)
        if not voice:
            logger.info(f"ℹ️  No TTS voice configured for '{lang}', skipping")
            continue
        cleaned = clean_text_for_tts(text)
        if not cleaned:
            continue
        audio = synthesize_to_bytes(cleaned, voice)
        blob_name = f"audio/{stem}-{lang}-{timestamp_suffix()}.mp3"
        urls[lang] = storage.upload_bytes(blob_name, audio, 'audio/mpeg')
        logger.info(f"🔊 Audio generated for {lang} ({len(audio)} bytes)")

    return urls
