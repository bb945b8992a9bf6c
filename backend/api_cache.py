"""
Response caching and per-IP rate limiting for the public API.

Both live in process memory: a restart empties them and multiple workers
keep separate copies.
"""
import hashlib
import logging
import time
from collections import deque
from functools import wraps
from typing import Any, Callable, Dict, Optional

from flask import jsonify, request

import config

logger = logging.getLogger(__name__)


class ResponseCache:
    """JSON payloads keyed by '<prefix>:<digest>', each with its own expiry"""

    def __init__(self):
        self._entries = {}  # {key: (expires_at, payload)}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        expires_at, payload = entry
        if expires_at <= time.monotonic():
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return payload

    def put(self, key: str, payload: Any, ttl: int):
        now = time.monotonic()
        self.sweep(now)
        self._entries[key] = (now + ttl, payload)

    def sweep(self, now: float = None) -> int:
        """Drop expired entries"""
        now = time.monotonic() if now is None else now
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self):
        return len(self._entries)

    def drop_prefix(self, prefix: str) -> int:
        stale = [key for key in self._entries if key.startswith(prefix)]
        for key in stale:
            self._entries.pop(key, None)
        return len(stale)

    def reset(self):
        self._entries.clear()
        self.hits = self.misses = 0

    def stats(self) -> Dict:
        return {'entries': len(self._entries), 'hits': self.hits, 'misses': self.misses}


class IpRateLimiter:
    """Sliding window of request times per client address"""

    def __init__(self):
        self._windows = {}  # {ip: deque of monotonic times}

    def hit(self, ip: str, limit: int, window_seconds: int) -> bool:
        """
        Record a request from `ip`.

        Returns:
            bool: False when the client already used `limit` requests in the window
        """
        now = time.monotonic()
        self._prune(now, window_seconds)
        window = self._windows.setdefault(ip, deque())
        if len(window) >= limit:
            logger.warning(f"⚠️  Rate limit hit by {ip} ({len(window)} requests / {window_seconds}s)")
            return False
        window.append(now)
        return True

    def _prune(self, now: float, window_seconds: int):
        for ip in list(self._windows):
            window = self._windows[ip]
            while window and now - window[0] >= window_seconds:
                window.popleft()
            if not window:
                del self._windows[ip]

    def __len__(self):
        return len(self._windows)

    def reset(self):
        self._windows.clear()

    def stats(self) -> Dict:
        return {'clients': len(self._windows)}


_responses = ResponseCache()
_limiter = IpRateLimiter()


def cached(ttl: int = 60, key_prefix: str = ''):
    """
    Cache a GET view's 200 JSON body per path + query string (so ?lang= is part of the key).

    Usage:
        @bp.route('/tree')
        @cached(ttl=300, key_prefix='categories')
        def category_tree():
            ...
    """
    def decorator(view: Callable):
        @wraps(view)
        def wrapper(*args, **kwargs):
            digest = hashlib.md5(request.full_path.encode('utf-8')).hexdigest()
            key = f"{key_prefix}:{digest}"

            payload = _responses.get(key)
            if payload is not None:
                return jsonify(payload)

            response = view(*args, **kwargs)
            if getattr(response, 'status_code', None) == 200:
                body = response.get_json(silent=True)
                if body is not None:
                    _responses.put(key, body, ttl)
            return response

        return wrapper
    return decorator


def invalidate_cache(key_prefix: str = ''):
    removed = _responses.drop_prefix(f"{key_prefix}:")
    if removed:
        logger.debug(f"🗑️  Dropped {removed} cached '{key_prefix}' responses")


def client_ip() -> str:
    """First X-Forwarded-For hop when behind a proxy, else the socket address"""
    forwarded = request.headers.get('X-Forwarded-For', '')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.remote_addr or 'unknown'


def check_rate_limit():
    """before_request hook: 429 once a client exceeds the configured window"""
    if not config.RATE_LIMIT_ENABLED or not request.path.startswith('/api/'):
        return None
    if not _limiter.hit(client_ip(), config.RATE_LIMIT_MAX_REQUESTS, config.RATE_LIMIT_WINDOW_SECONDS):
        return jsonify({'error': 'Too many requests, please try again later.'}), 429
    return None


def get_cache_stats() -> Dict:
    return {'responses': _responses.stats(), 'rate_limiter': _limiter.stats()}


def clear_cache():
    _responses.reset()
    _limiter.reset()
