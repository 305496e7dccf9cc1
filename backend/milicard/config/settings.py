"""Environment backed settings applied to ``app.config`` by the factory.

Every key can be overridden by the ``config`` dict passed to ``create_app``.
"""
from __future__ import annotations
import os
from typing import Any, Dict

DEFAULTS: Dict[str, Any] = {
    'JWT_SECRET_KEY': 'dev-secret',
    'DATABASE_URL': 'sqlite:///dev.db',
    'JWT_ACCESS_TOKEN_EXPIRES_HOURS': 12,
    'LOG_LEVEL': 'INFO',
    'LOG_FILE': None,
    'UPLOAD_PATH': './uploads',
    'BASE_URL': 'http://localhost:5000',
    'MAX_UPLOAD_MB': 10,
    'STORAGE_PROVIDER': 'local',
    'CURRENCY_API_URL': 'https://open.er-api.com/v6/latest/CNY',
    'CURRENCY_API_TIMEOUT': 10,
    'CURRENCY_RETRY_SECONDS': 300,
    'TRANSLATION_CACHE_TTL': 300,
    'VISIT_RETENTION_DAYS': 7,
    'DEFAULT_LANGUAGE': 'zh-CN',
    'AUTHZ_ADMIN_LEVEL': 1,
}

_INT_KEYS = {
    'JWT_ACCESS_TOKEN_EXPIRES_HOURS',
    'MAX_UPLOAD_MB',
    'CURRENCY_API_TIMEOUT',
    'CURRENCY_RETRY_SECONDS',
    'TRANSLATION_CACHE_TTL',
    'VISIT_RETENTION_DAYS',
    'AUTHZ_ADMIN_LEVEL',
}


def load_settings() -> Dict[str, Any]:
    settings: Dict[str, Any] = {}
    for key, default in DEFAULTS.items():
        raw = os.getenv(key)
        if raw is None or raw == '':
            settings[key] = default
        elif key in _INT_KEYS:
            try:
                settings[key] = int(raw)
            except ValueError:
                raise ValueError(f'{key} must be an integer, got {raw!r}')
        else:
            settings[key] = raw
    return settings
