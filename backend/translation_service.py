"""
Translation Service using Google Translate (deep-translator, no API key)
with OpenAI as fallback. Also language detection for scraped articles.
"""
import logging
import re

from deep_translator import GoogleTranslator
from deep_translator.exceptions import TooManyRequests
from langdetect import detect, LangDetectException

import config
import openai_service
from models import has_text

logger = logging.getLogger(__name__)

TRANSLATABLE_FIELDS = ('title', 'summary', 'content')

# Paragraph, then sentence, then word boundaries. Capturing groups keep the
# separators so ''.join(chunks) == text.
SPLIT_PATTERNS = (
    r'(\n\s*\n)',
    r'(?<=[.!?।॥])(\s+)',
    r'(\s+)',
)

# In-memory cache for session
_language_detection_cache = {}


class TranslationError(Exception):
    """Translation failed. `status` is the HTTP status to report (429 or 500)."""

    def __init__(self, message, status=500):
        super().__init__(message)
        self.status = status


def clear_all_caches():
    """Clear all in-memory caches"""
    _language_detection_cache.clear()


def detect_language(text):
    """
    Detect the language of given text

    Returns:
        Language code (e.g., 'en', 'hi', 'te') or 'unknown'
    """
    if not text or len(text.strip()) < 3:
        return 'unknown'

    cache_key = text[:100]
    if cache_key in _language_detection_cache:
        return _language_detection_cache[cache_key]

    try:
        detected = detect(text)
    except LangDetectException as e:
        logger.warning(f"⚠️ Language detection error: {str(e)}")
        return 'unknown'
    _language_detection_cache[cache_key] = detected
    return detected


def _split(text, max_chars, level):
    if len(text) <= max_chars:
        return [text]
    if level >= len(SPLIT_PATTERNS):
        return [text[i:i + max_chars] for i in range(0, len(text), max_chars)]

    pieces = []
    for part in re.split(SPLIT_PATTERNS[level], text):
        if not part:
            continue
        if len(part) > max_chars:
            pieces.extend(_split(part, max_chars, level + 1))
        else:
            pieces.append(part)

    chunks = []
    current = ''
    for piece in pieces:
        if current and len(current) + len(piece) > max_chars:
            chunks.append(current)
            current = piece
        else:
            current += piece
    if current:
        chunks.append(current)
    return chunks


def chunk_text(text, max_chars=None):
    """
    Split text into pieces no longer than max_chars, preferring paragraph,
    then sentence, then word boundaries.

    Returns:
        list: Chunks whose concatenation is exactly `text`
    """
    max_chars = max_chars or config.TRANSLATION_CHUNK_SIZE
    if max_chars < 1:
        raise ValueError('max_chars must be positive')
    if not text:
        return []
    return _split(text, max_chars, 0)


def _google_translate(text, source, target):
    translator = GoogleTranslator(source=source, target=target)
    out = []
    for chunk in chunk_text(text):
        stripped = chunk.strip()
        if not stripped:
            out.append(chunk)
            continue
        lead = chunk[:len(chunk) - len(chunk.lstrip())]
        trail = chunk[len(chunk.rstrip()):]
        translated = translator.translate(stripped)
        out.append(f"{lead}{translated or ''}{trail}")
    return ''.join(out)


def translate_text(text, source, target):
    """
    Translate one text with Google Translate.

    Raises:
        TranslationError: 429 when Google rate limits, 500 otherwise
    """
    if not has_text(text) or source == target:
        return text
    try:
        return _google_translate(text, source, target)
    except TooManyRequests as e:
        raise TranslationError('Translation rate limit reached, please try again later', status=429) from e
    except Exception as e:
        logger.error(f"❌ Google translation {source}->{target} failed: {str(e)}")
        raise TranslationError(f"Translation failed: {str(e)}") from e


def _translate_batch(texts, source, target, provider):
    """Translate {name: text} from source to target using the configured provider order"""
    if provider == 'openai' and openai_service.is_available():
        try:
            return openai_service.translate_fields(texts, source, target)
        except openai_service.OpenAIRateLimited as e:
            raise TranslationError('Translation rate limit reached, please try again later', status=429) from e
        except openai_service.OpenAIUnavailable as e:
            logger.warning(f"⚠️ OpenAI translation failed, using Google: {e}")
        return {name: translate_text(text, source, target) for name, text in texts.items()}

    try:
        return {name: translate_text(text, source, target) for name, text in texts.items()}
    except TranslationError as google_error:
        if not openai_service.is_available():
            raise
        logger.warning(f"⚠️ Google translation failed ({google_error}), falling back to OpenAI")
        try:
            return openai_service.translate_fields(texts, source, target)
        except openai_service.OpenAIRateLimited as e:
            raise TranslationError('Translation rate limit reached, please try again later', status=429) from e
        except openai_service.OpenAIUnavailable as e:
            raise TranslationError(f"Translation failed: {str(e)}") from e


def translate_fields(fields, target_codes, default_code='en', provider=None):
    """
    Fill every target language of each multilingual field.

    Languages that already have text are kept verbatim. Missing ones are
    translated from the default language when it is filled, otherwise from
    the first filled language.

    Args:
        fields: {'title': {lang: text}, 'summary': {...}, 'content': {...}}
        target_codes: Active language codes
        default_code: Default language code

    Returns:
        Dict with the same field names, each a complete {lang: text} map
    """
    provider = provider or config.TRANSLATION_PROVIDER
    result = {}
    pending = {}  # (source, target) -> {field: text}

    for name, values in fields.items():
        values = values if isinstance(values, dict) else {}
        filled = {code: text for code, text in values.items() if has_text(text)}
        result[name] = dict(filled)
        if not filled:
            continue
        source = default_code if default_code in filled else next(iter(filled))
        for target in target_codes:
            if target in filled:
                continue
            pending.setdefault((source, target), {})[name] = filled[source]

    for (source, target), texts in pending.items():
        logger.info(f"🔤 Translating {sorted(texts)} {source}->{target}")
        translated = _translate_batch(texts, source, target, provider)
        for name, text in translated.items():
            result[name][target] = text

    return result
