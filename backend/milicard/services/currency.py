"""Live exchange rates with a once-per-day in-memory cache.

The upstream (open.er-api.com style) answers ``{"result": "success", "rates": {"USD": 0.14, ...}}``.
Failures never propagate: the last cached rates (or an empty dict) are returned instead.
After a failed fetch the upstream is left alone for ``CURRENCY_RETRY_SECONDS``, and while one
fetch is in flight other readers get the cached rates instead of waiting on it.
"""
from __future__ import annotations
import logging
import threading
import time
from datetime import date
from typing import Dict, Optional

import requests
from flask import current_app

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_cache: Dict[str, float] = {}
_cache_date: Optional[date] = None
_failed: Optional[tuple] = None  # (date, monotonic time) of the last failed fetch
_fetching = False


def _fetch(url: str, timeout: int) -> Dict[str, float]:
    resp = requests.get(url, timeout=timeout)
    resp.raise_for_status()
    payload = resp.json()
    if payload.get('result') not in (None, 'success'):
        raise ValueError(f"upstream returned result={payload.get('result')}")
    rates = payload.get('rates') or {}
    return {str(code).upper(): float(rate) for code, rate in rates.items()}


def _backing_off(today: date, retry_seconds: int) -> bool:
    if _failed is None:
        return False
    failed_day, failed_at = _failed
    return failed_day == today and time.monotonic() - failed_at < retry_seconds


def get_live_rates(today: Optional[date] = None) -> Dict[str, float]:
    global _cache, _cache_date, _failed, _fetching
    today = today or date.today()
    url = current_app.config['CURRENCY_API_URL']
    timeout = current_app.config['CURRENCY_API_TIMEOUT']
    retry_seconds = current_app.config.get('CURRENCY_RETRY_SECONDS', 300)
    with _lock:
        if _cache_date == today and _cache:
            return dict(_cache)
        if _fetching or _backing_off(today, retry_seconds):
            return dict(_cache)
        _fetching = True
    try:
        rates = _fetch(url, timeout)
    except (requests.RequestException, ValueError) as exc:
        logger.warning('live currency fetch from %s failed: %s', url, exc)
        rates = None
    finally:
        with _lock:
            _fetching = False
    with _lock:
        if rates is None:
            _failed = (today, time.monotonic())
        else:
            _cache = rates
            _cache_date = today
            _failed = None
            logger.info('live currency rates refreshed (%d currencies)', len(rates))
        return dict(_cache)


def get_live_rate(code: str) -> Optional[float]:
    return get_live_rates().get(code.upper())


def refresh_live_rates() -> Dict[str, float]:
    global _cache_date, _failed
    with _lock:
        _cache_date = None
        _failed = None
    return get_live_rates()


def reset_cache():
    global _cache, _cache_date, _failed, _fetching
    with _lock:
        _cache = {}
        _cache_date = None
        _failed = None
        _fetching = False
