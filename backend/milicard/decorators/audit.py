"""Audit logging decorator so route handlers do not call add_audit() by hand.

Usage examples:

@audit_log('PO.CREATE', entity='PurchaseOrder', entity_id_key='id', meta_keys=['code', 'total_amount_cents'])
def create_purchase_order(base_id): ...

@audit_log('PTO.SHIP', entity='PointOrder', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')))
def ship_point_order(base_id, order_id): ...

Parameters:
  action: required audit action code (e.g. ROLE.CREATE)
  entity: optional entity label (Role, PurchaseOrder, Point)
  entity_id_key: key in the returned JSON object whose value becomes entity_id.
  entity_id_arg: name of the view argument to use for entity_id (fallback if entity_id_key absent).
  meta_keys: list of keys to project from returned JSON into meta dict (shallow copy).
  meta_builder: callable returning a meta dict; receives (data, original_return_value, args, kwargs). Overrides meta_keys.
  diff_keys / pre_fetch: pre_fetch(args, kwargs) snapshots the row before the call; changed diff_keys land in meta['changes'].

Views may return dict, (dict, status), (dict, status, headers) or a Response carrying JSON.
Audit failures are logged and never change the response.
"""
from __future__ import annotations
import logging
from functools import wraps
from typing import Any, Callable, Iterable, Optional, Dict

from flask import Response
from milicard.services.audit import add_audit
from milicard import get_db

logger = logging.getLogger(__name__)


def _extract_payload(rv: Any):
    """Return the JSON-able dict for inspection, or None."""
    if isinstance(rv, tuple) and rv:
        rv = rv[0]
    if isinstance(rv, Response):
        return rv.get_json(silent=True)
    return rv


def _build_meta(data, rv, args, kwargs, meta_keys, meta_builder):
    if meta_builder:
        return meta_builder(data, rv, args, kwargs)
    if meta_keys:
        return {k: data.get(k) for k in meta_keys if k in data}
    return None


def _diff(before: Dict[str, Any], after: Dict[str, Any], keys: Iterable[str]) -> Dict[str, Any]:
    changes = {}
    for k in keys:
        if k in before and k in after and before.get(k) != after.get(k):
            changes[k] = {'before': before.get(k), 'after': after.get(k)}
    return changes


def audit_log(
    action: str,
    *,
    entity: Optional[str] = None,
    entity_id_key: Optional[str] = None,
    entity_id_arg: Optional[str] = None,
    meta_keys: Optional[Iterable[str]] = None,
    meta_builder: Optional[Callable[[dict, Any, tuple, dict], dict]] = None,
    commit: bool = True,
    diff_keys: Optional[Iterable[str]] = None,
    pre_fetch: Optional[Callable[[tuple, dict], Dict[str, Any]]] = None,
):
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            before_snapshot = None
            if diff_keys and pre_fetch:
                before_snapshot = pre_fetch(args, kwargs)
            rv = fn(*args, **kwargs)
            try:
                data = _extract_payload(rv)
                if not isinstance(data, dict):
                    add_audit(action, entity, kwargs.get(entity_id_arg) if entity_id_arg else None, None)
                else:
                    entity_id = None
                    if entity_id_key and entity_id_key in data:
                        entity_id = data.get(entity_id_key)
                    elif entity_id_arg and entity_id_arg in kwargs:
                        entity_id = kwargs.get(entity_id_arg)
                    meta = _build_meta(data, rv, args, kwargs, meta_keys, meta_builder)
                    if diff_keys and isinstance(before_snapshot, dict):
                        changes = _diff(before_snapshot, data, diff_keys)
                        if changes:
                            meta = dict(meta or {})
                            meta['changes'] = changes
                    add_audit(action, entity, entity_id, meta)
                if commit:
                    get_db().commit()
            except Exception:
                logger.exception('audit entry for %s could not be written', action)
                get_db().rollback()
            return rv
        return wrapper
    return outer
