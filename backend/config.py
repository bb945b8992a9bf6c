"""
Taaja News API Configuration

Centralized configuration for the news platform API.
All configurable limits, credentials, and settings in one place.
"""
import os

from dotenv import load_dotenv

load_dotenv()


# ==================== Server ====================

PORT = int(os.getenv('PORT', '5000'))

# Origin allowed to call the API with credentials (cookies)
FRONTEND_URL = os.getenv('FRONTEND_URL', 'http://localhost:5173')

# Upper bound for request bodies (JSON and multipart)
MAX_UPLOAD_MB = int(os.getenv('MAX_UPLOAD_MB', '10'))


# ==================== Database ====================

DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///taaja_news.db')


# ==================== Auth ====================

JWT_SECRET = os.getenv('JWT_SECRET', 'dev-secret-change-me')

# Access token lifetime (seconds)
ACCESS_TTL_SECONDS = int(os.getenv('ACCESS_TTL', str(7 * 24 * 3600)))  # 7d

# Cookie mirror of the bearer token
TOKEN_COOKIE_NAME = 'token'
TOKEN_COOKIE_SECURE = os.getenv('TOKEN_COOKIE_SECURE', 'false').lower() == 'true'


# ==================== Rate Limiting ====================

RATE_LIMIT_ENABLED = os.getenv('RATE_LIMIT_ENABLED', 'true').lower() == 'true'

# Requests allowed per client IP per window on /api/
RATE_LIMIT_MAX_REQUESTS = int(os.getenv('RATE_LIMIT_MAX_REQUESTS', '1000'))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv('RATE_LIMIT_WINDOW_SECONDS', str(15 * 60)))


# ==================== Content ====================

# How long the active/default language lookup stays cached
LANGUAGE_CACHE_TTL_SECONDS = int(os.getenv('LANGUAGE_CACHE_TTL_SECONDS', '300'))

# Repeat views from the same actor inside this window are not counted
VIEW_DEDUP_WINDOW_HOURS = int(os.getenv('VIEW_DEDUP_WINDOW_HOURS', '24'))

# Comments can be edited by their author for this long
COMMENT_EDIT_WINDOW_MINUTES = int(os.getenv('COMMENT_EDIT_WINDOW_MINUTES', '10'))

# Reading speed used for reading_time
WORDS_PER_MINUTE = 200

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


# ==================== Blob Storage ====================

AZURE_STORAGE_CONNECTION_STRING = os.getenv('AZURE_STORAGE_CONNECTION_STRING', '')
AZURE_STORAGE_CONTAINER = os.getenv('AZURE_STORAGE_CONTAINER', 'taaja-media')
AZURE_STORAGE_URL = os.getenv('AZURE_STORAGE_URL', '')

UPLOAD_SAS_MINUTES = int(os.getenv('UPLOAD_SAS_MINUTES', '30'))
MAX_BATCH_UPLOADS = 10

ALLOWED_UPLOAD_TYPES = [
    'image/jpeg',
    'image/png',
    'image/gif',
    'image/webp',
    'video/mp4',
    'video/webm',
]


# ==================== Translation ====================

# Primary provider: 'google' (deep-translator) or 'openai'
TRANSLATION_PROVIDER = os.getenv('TRANSLATION_PROVIDER', 'google').lower()

OPENAI_API_KEY = (os.getenv('OPENAI_API_KEY') or '').strip()
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')

# Google Translate rejects payloads above 5000 characters
TRANSLATION_CHUNK_SIZE = int(os.getenv('TRANSLATION_CHUNK_SIZE', '4500'))

# Translation timeout (seconds)
TRANSLATION_TIMEOUT_S = int(os.getenv('TRANSLATION_TIMEOUT_S', '30'))


# ==================== Text To Speech ====================

# "lang:voice" pairs, comma separated
TTS_VOICES = dict(
    pair.split(':', 1)
    for pair in os.getenv(
        'TTS_VOICES',
        'en:en-IN-NeerjaNeural,hi:hi-IN-SwaraNeural,te:te-IN-ShrutiNeural'
    ).split(',')
    if ':' in pair
)


# ==================== Logging & Debugging ====================

# Log level (DEBUG, INFO, WARNING, ERROR)
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')


# ==================== Helper Functions ====================

def is_storage_configured():
    """
    Check whether blob storage credentials are present.

    Returns:
        bool: True if a connection string is configured
    """
    return bool(AZURE_STORAGE_CONNECTION_STRING)


def is_openai_configured():
    return bool(OPENAI_API_KEY)


def get_config_summary():
    """
    Get a summary of current configuration.

    Returns:
        dict: Configuration summary (no secrets)
    """
    return {
        'database': DATABASE_URL.split('://', 1)[0],
        'frontend_url': FRONTEND_URL,
        'rate_limit': f"{RATE_LIMIT_MAX_REQUESTS}/{RATE_LIMIT_WINDOW_SECONDS}s" if RATE_LIMIT_ENABLED else 'disabled',
        'language_cache_ttl': LANGUAGE_CACHE_TTL_SECONDS,
        'view_dedup_hours': VIEW_DEDUP_WINDOW_HOURS,
        'storage_configured': is_storage_configured(),
        'translation_provider': TRANSLATION_PROVIDER,
        'openai_configured': is_openai_configured(),
        'tts_languages': sorted(TTS_VOICES),
    }


# ==================== Validation ====================

def validate_config():
    """
    Validate configuration values and warn about issues.
    """
    issues = []

    if JWT_SECRET == 'dev-secret-change-me':
        issues.append("JWT_SECRET is using the development default")

    if ACCESS_TTL_SECONDS <= 0:
        issues.append("ACCESS_TTL must be positive")

    if TRANSLATION_PROVIDER not in ['google', 'openai']:
        issues.append(f"Unknown TRANSLATION_PROVIDER: {TRANSLATION_PROVIDER}")

    if TRANSLATION_CHUNK_SIZE < 100 or TRANSLATION_CHUNK_SIZE > 5000:
        issues.append("TRANSLATION_CHUNK_SIZE must be between 100 and 5000")

    if LANGUAGE_CACHE_TTL_SECONDS < 0:
        issues.append("LANGUAGE_CACHE_TTL_SECONDS cannot be negative")

    if VIEW_DEDUP_WINDOW_HOURS < 1:
        issues.append("VIEW_DEDUP_WINDOW_HOURS must be at least 1")

    if RATE_LIMIT_MAX_REQUESTS < 1:
        issues.append("RATE_LIMIT_MAX_REQUESTS must be at least 1")

    return issues


# Validate on import
_validation_issues = validate_config()
if _validation_issues:
    import warnings
    for issue in _validation_issues:
        warnings.warn(f"Configuration issue: {issue}")
