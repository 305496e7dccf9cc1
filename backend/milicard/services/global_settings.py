from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, Optional, Tuple

from flask import abort
from sqlalchemy import select

from milicard import get_db
from milicard.models.settings import GlobalSetting

logger = logging.getLogger(__name__)

LOW_STOCK_KEY = 'stock.low_quantity_threshold'
PROFIT_MARGIN_KEY = 'business.profit_margin_threshold'

SYSTEM_SETTINGS = [
    {
        'key': PROFIT_MARGIN_KEY,
        'value': 0.3,
        'value_type': GlobalSetting.TYPE_NUMBER,
        'category': 'business',
        'description': 'Minimum acceptable profit margin',
    },
    {
        'key': LOW_STOCK_KEY,
        'value': {'value': 5, 'unit': 'box', 'enabled': True},
        'value_type': GlobalSetting.TYPE_JSON,
        'category': 'stock',
        'description': 'Inventory level under which stock is flagged as low',
    },
]


def infer_value_type(value: Any) -> str:
    if isinstance(value, bool):
        return GlobalSetting.TYPE_BOOLEAN
    if isinstance(value, (int, float)):
        return GlobalSetting.TYPE_NUMBER
    if isinstance(value, str):
        return GlobalSetting.TYPE_STRING
    return GlobalSetting.TYPE_JSON


def resolve_value_type(value: Any, declared: Optional[str]) -> str:
    """Infer the type when absent, otherwise require the value to match it (400)."""
    if declared in (None, ''):
        return infer_value_type(value)
    if declared not in GlobalSetting.ALL_TYPES:
        abort(400, description='value_type invalid')
    ok = {
        GlobalSetting.TYPE_STRING: isinstance(value, str),
        GlobalSetting.TYPE_NUMBER: isinstance(value, (int, float)) and not isinstance(value, bool),
        GlobalSetting.TYPE_BOOLEAN: isinstance(value, bool),
        GlobalSetting.TYPE_JSON: isinstance(value, (dict, list)),
    }[declared]
    if not ok:
        abort(400, description=f'value does not match value_type {declared}')
    return declared


def find_by_key(key: str) -> Optional[GlobalSetting]:
    return get_db().execute(select(GlobalSetting).where(GlobalSetting.key == key)).scalar_one_or_none()


def get_value(key: str, default: Any = None) -> Any:
    setting = find_by_key(key)
    if setting is None or not setting.is_active:
        return default
    return setting.value


def get_values(keys: Iterable[str]) -> Dict[str, Any]:
    keys = [k for k in keys if k]
    if not keys:
        return {}
    stmt = select(GlobalSetting).where(GlobalSetting.key.in_(keys), GlobalSetting.is_active.is_(True))
    return {s.key: s.value for s in get_db().execute(stmt).scalars()}


def upsert_values(values: Dict[str, Any], user_id: Optional[int] = None) -> Dict[str, str]:
    """Batch upsert; returns key -> 'created' | 'updated'. Commit is left to the caller."""
    session = get_db()
    outcome: Dict[str, str] = {}
    for key, value in values.items():
        if not isinstance(key, str) or not key.strip():
            abort(400, description='setting keys must be non-empty strings')
        setting = find_by_key(key)
        if setting is None:
            session.add(GlobalSetting(key=key, value=value, value_type=infer_value_type(value), created_by=user_id))
            outcome[key] = 'created'
        else:
            setting.value = value
            setting.value_type = resolve_value_type(value, setting.value_type)
            outcome[key] = 'updated'
    session.flush()
    return outcome


def list_categories():
    stmt = select(GlobalSetting.category).where(
        GlobalSetting.is_active.is_(True), GlobalSetting.category.is_not(None)
    ).distinct()
    return sorted(c for c in get_db().execute(stmt).scalars() if c)


def low_stock_rule() -> Optional[Tuple[int, str]]:
    """(value, unit) of the low stock threshold, or None when the check is disabled."""
    raw = get_value(LOW_STOCK_KEY)
    if not isinstance(raw, dict) or not raw.get('enabled', True):
        return None
    try:
        value = int(raw.get('value', 0))
    except (TypeError, ValueError):
        logger.warning('ignoring malformed %s: %r', LOW_STOCK_KEY, raw)
        return None
    return value, raw.get('unit', 'box')


def threshold_pieces(rule: Optional[Tuple[int, str]], pack_per_box: int, piece_per_pack: int) -> Optional[int]:
    if rule is None:
        return None
    value, unit = rule
    if unit == 'box':
        return value * pack_per_box * piece_per_pack
    if unit == 'pack':
        return value * piece_per_pack
    return value


def seed_system_settings(session) -> int:
    created = 0
    for spec in SYSTEM_SETTINGS:
        existing = session.execute(select(GlobalSetting).where(GlobalSetting.key == spec['key'])).scalar_one_or_none()
        if existing:
            continue
        session.add(GlobalSetting(is_system=True, is_active=True, **spec))
        created += 1
    return created
