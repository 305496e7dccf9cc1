"""Translation lookup with a per-language TTL cache.

Cache entries are whole language bundles (key -> value across namespaces). Writes call
``invalidate(language)`` so the next lookup reloads from the database.
"""
from __future__ import annotations
import logging
import threading
import time
from typing import Dict, Optional, Tuple

from flask import current_app, g, has_request_context
from sqlalchemy import select

from milicard import get_db
from milicard.models.settings import Translation

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ('zh-CN', 'en-US', 'vi-VN', 'th-TH')
LANGUAGE_NAMES = {
    'zh-CN': '简体中文',
    'en-US': 'English',
    'vi-VN': 'Tiếng Việt',
    'th-TH': 'ไทย',
}

_lock = threading.Lock()
_cache: Dict[str, Tuple[float, Dict[str, str]]] = {}


def _match_language(raw: str) -> Optional[str]:
    raw = raw.strip()
    if not raw:
        return None
    for lang in SUPPORTED_LANGUAGES:
        if raw.lower() == lang.lower():
            return lang
    prefix = raw.split('-')[0].lower()
    for lang in SUPPORTED_LANGUAGES:
        if lang.split('-')[0].lower() == prefix:
            return lang
    return None


def resolve_request_language(headers, default: str) -> str:
    """X-Language wins, then the first supported Accept-Language entry, then ``default``."""
    explicit = headers.get('X-Language')
    if explicit:
        lang = _match_language(explicit)
        if lang:
            return lang
    accept = headers.get('Accept-Language') or ''
    for part in accept.split(','):
        lang = _match_language(part.split(';')[0])
        if lang:
            return lang
    return default


def current_language() -> str:
    if has_request_context() and g.get('language'):
        return g.language
    return current_app.config['DEFAULT_LANGUAGE']


def _ttl() -> int:
    return int(current_app.config.get('TRANSLATION_CACHE_TTL', 300))


def load_bundle(language: str, namespace: Optional[str] = None) -> Dict[str, str]:
    stmt = select(Translation).where(Translation.language == language)
    if namespace:
        stmt = stmt.where(Translation.namespace == namespace)
    return {t.key: t.value for t in get_db().execute(stmt).scalars()}


def cached_bundle(language: str) -> Dict[str, str]:
    now = time.monotonic()
    with _lock:
        entry = _cache.get(language)
        if entry and entry[0] > now:
            return entry[1]
    bundle = load_bundle(language)
    with _lock:
        _cache[language] = (now + _ttl(), bundle)
    return bundle


def translate(key: str, language: Optional[str] = None) -> str:
    language = language or current_language()
    return cached_bundle(language).get(key, key)


def invalidate(language: Optional[str] = None):
    with _lock:
        if language is None:
            _cache.clear()
        else:
            _cache.pop(language, None)
    logger.debug('translation cache invalidated for %s', language or 'all languages')


def missing_keys(language: str):
    default = current_app.config['DEFAULT_LANGUAGE']
    have = set(load_bundle(language))
    return sorted(k for k in load_bundle(default) if k not in have)
