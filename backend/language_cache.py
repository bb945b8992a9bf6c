"""
Language Cache
Keeps the active languages and the default language in memory so every
request does not hit the languages table.
"""
import logging
import time
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

import config

logger = logging.getLogger(__name__)

FALLBACK_LANGUAGE = {
    'id': None,
    'code': 'en',
    'name': 'English',
    'native_name': 'English',
    'is_active': True,
    'is_default': True,
    'is_rtl': False,
    'order': 0,
}


class LanguageCache:
    """
    Single-slot cache with TTL.

    Holds plain dicts (not ORM rows) so cached values survive session close.
    Concurrent refreshes are not coordinated; a duplicate refresh just
    reloads the same rows.
    """

    def __init__(self, ttl_seconds: int = config.LANGUAGE_CACHE_TTL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._languages: List[Dict] = []
        self._default: Optional[Dict] = None
        self._refreshed_at: float = 0.0

    def is_stale(self) -> bool:
        if not self._languages:
            return True
        return time.time() - self._refreshed_at >= self.ttl_seconds

    def refresh(self, db) -> List[Dict]:
        """
        Reload active languages from the database.

        Args:
            db: SQLAlchemy session

        Returns:
            List of active language dicts ordered by `order`
        """
        from models import Language

        try:
            rows = (
                db.query(Language)
                .filter(Language.is_active.is_(True))
                .order_by(Language.order.asc(), Language.id.asc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"❌ Language cache refresh failed: {e}")
            if not self._languages:
                self._languages = [dict(FALLBACK_LANGUAGE)]
                self._default = self._languages[0]
                self._refreshed_at = time.time()
            return self._languages

        languages = [row.to_dict() for row in rows]
        default = next((lang for lang in languages if lang['is_default']), None)
        if default is None:
            default = languages[0] if languages else dict(FALLBACK_LANGUAGE)
        if not languages:
            languages = [default]

        self._languages = languages
        self._default = default
        self._refreshed_at = time.time()
        logger.debug(f"🔄 Language cache refreshed: {[l['code'] for l in languages]} (default={default['code']})")
        return self._languages

    def _ensure(self, db):
        if self.is_stale():
            self.refresh(db)

    def get_active_languages(self, db) -> List[Dict]:
        self._ensure(db)
        return list(self._languages)

    def get_default_language(self, db) -> Dict:
        self._ensure(db)
        return self._default or dict(FALLBACK_LANGUAGE)

    def get_default_language_code(self, db) -> str:
        return self.get_default_language(db)['code']

    def get_active_language_codes(self, db) -> List[str]:
        return [lang['code'] for lang in self.get_active_languages(db)]

    def is_valid_language_code(self, db, code: Optional[str]) -> bool:
        if not code:
            return False
        return code in self.get_active_language_codes(db)

    def invalidate(self):
        """Force the next read to reload from the database"""
        self._refreshed_at = 0.0

    def clear(self):
        self._languages = []
        self._default = None
        self._refreshed_at = 0.0

    def stats(self) -> Dict:
        age = time.time() - self._refreshed_at if self._refreshed_at else None
        return {
            'languages': [lang['code'] for lang in self._languages],
            'default': self._default['code'] if self._default else None,
            'age_seconds': round(age, 1) if age is not None else None,
            'ttl_seconds': self.ttl_seconds,
        }


# Global instance
_cache = LanguageCache()


def refresh(db):
    return _cache.refresh(db)


def get_active_languages(db):
    return _cache.get_active_languages(db)


def get_default_language(db):
    return _cache.get_default_language(db)


def get_default_language_code(db):
    return _cache.get_default_language_code(db)


def get_active_language_codes(db):
    return _cache.get_active_language_codes(db)


def is_valid_language_code(db, code):
    return _cache.is_valid_language_code(db, code)


def invalidate():
    _cache.invalidate()


def clear():
    _cache.clear()


def stats():
    return _cache.stats()
