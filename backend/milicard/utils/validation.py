from __future__ import annotations
"""Reusable validation helpers for request payloads and domain models.

Every helper aborts with 400 and a field-specific message so route handlers can
stay linear: ``qty = non_negative_int(data, 'box_quantity')``.
"""
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional
from flask import abort


def validate_status(new_status: str, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that new_status is inside allowed.

    Returns the status (to enable inline usage) or aborts with 400.
    """
    if new_status not in allowed:
        abort(400, description=f"{field_name} invalid")
    return new_status


def require_fields(data: dict, *names: str):
    missing = [n for n in names if data.get(n) in (None, '')]
    if missing:
        abort(400, description=f"{', '.join(missing)} required")


def optional_int(data: dict, name: str) -> Optional[int]:
    raw = data.get(name)
    if raw in (None, ''):
        return None
    if isinstance(raw, bool):
        abort(400, description=f'{name} must be int')
    try:
        return int(raw)
    except (TypeError, ValueError):
        abort(400, description=f'{name} must be int')


def required_int(data: dict, name: str) -> int:
    value = optional_int(data, name)
    if value is None:
        abort(400, description=f'{name} required')
    return value


def non_negative_int(data: dict, name: str, default: int = 0) -> int:
    value = optional_int(data, name)
    if value is None:
        return default
    if value < 0:
        abort(400, description=f'{name} must be >= 0')
    return value


def positive_int(data: dict, name: str, default: Optional[int] = None) -> int:
    value = optional_int(data, name)
    if value is None:
        if default is None:
            abort(400, description=f'{name} required')
        return default
    if value < 1:
        abort(400, description=f'{name} must be >= 1')
    return value


def parse_date(raw: Any, name: str, default: Optional[date] = None) -> date:
    if raw in (None, ''):
        if default is None:
            abort(400, description=f'{name} required')
        return default
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError:
        abort(400, description=f'{name} must be YYYY-MM-DD')


def parse_datetime(raw: Any, name: str, default: Optional[datetime] = None) -> datetime:
    if raw in (None, ''):
        if default is None:
            abort(400, description=f'{name} required')
        return default
    try:
        dt = datetime.fromisoformat(str(raw).replace('Z', '+00:00'))
    except ValueError:
        abort(400, description=f'{name} must be ISO 8601')
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_bool(raw: Any, name: str) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str) and raw.lower() in ('true', 'false', '1', '0'):
        return raw.lower() in ('true', '1')
    abort(400, description=f'{name} must be boolean')


def iso(value) -> Optional[str]:
    """ISO-8601 rendering for date/datetime JSON fields (UTC 'Z' suffix for datetimes)."""
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat().replace('+00:00', 'Z')
    return value.isoformat()

__all__ = [
    'validate_status', 'require_fields', 'optional_int', 'required_int', 'non_negative_int',
    'positive_int', 'parse_date', 'parse_datetime', 'parse_bool', 'iso',
]
