"""
OpenAI Service for Translation
Uses a JSON chat completion to translate several article fields at once.
Only used when TRANSLATION_PROVIDER=openai or as the Google fallback.
"""
import json
import logging

from openai import OpenAI, APIError, RateLimitError

import config

logger = logging.getLogger(__name__)

# Initialize OpenAI client
client = None
if config.OPENAI_API_KEY:
    try:
        client = OpenAI(api_key=config.OPENAI_API_KEY, timeout=config.TRANSLATION_TIMEOUT_S)
    except Exception as e:
        logger.warning(f"⚠️ Failed to initialize OpenAI client: {str(e)}")
        client = None
else:
    logger.info("ℹ️  OPENAI_API_KEY not found in environment, OpenAI translation disabled")


class OpenAIUnavailable(Exception):
    pass


class OpenAIRateLimited(Exception):
    pass


def is_available():
    return client is not None


def translate_fields(fields, source_lang, target_lang):
    """
    Translate a dict of named texts in one request.

    Args:
        fields: {'title': '...', 'summary': '...'} in source_lang
        source_lang: Source language code
        target_lang: Target language code

    Returns:
        Dict with the same keys, translated

    Raises:
        OpenAIUnavailable: no client, API error or malformed reply
        OpenAIRateLimited: the API returned 429
    """
    if client is None:
        raise OpenAIUnavailable('OpenAI is not configured')

    prompt = (
        f"Translate the values of this JSON object from '{source_lang}' to '{target_lang}'. "
        "This is a news article: keep names, numbers and formatting (paragraph breaks) intact. "
        "Reply with a JSON object that has exactly the same keys.\n\n"
        f"{json.dumps(fields, ensure_ascii=False)}"
    )

    try:
        logger.debug(f"🤖 Calling OpenAI API ({config.OPENAI_MODEL}) {source_lang}->{target_lang}")
        response = client.chat.completions.create(
            model=config.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": "You are a professional news translator. Always reply with JSON only."},
                {"role": "user", "content": prompt}
            ],
            temperature=0.2,
            response_format={"type": "json_object"}
        )
    except RateLimitError as e:
        raise OpenAIRateLimited(str(e)) from e
    except APIError as e:
        logger.error(f"❌ OpenAI API error: {str(e)}")
        raise OpenAIUnavailable(str(e)) from e

    if not response or not response.choices:
        raise OpenAIUnavailable('Empty response from OpenAI')

    result_text = (response.choices[0].message.content or '').strip()
    try:
        result = json.loads(result_text)
    except json.JSONDecodeError as e:
        logger.error(f"❌ JSON parsing error: {str(e)}")
        raise OpenAIUnavailable('Malformed translation response') from e

    missing = [key for key in fields if not isinstance(result.get(key), str)]
    if missing:
        raise OpenAIUnavailable(f"Translation response missing keys: {missing}")

    return {key: result[key] for key in fields}
