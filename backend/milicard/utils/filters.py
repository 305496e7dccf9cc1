from __future__ import annotations
from typing import Any, Callable, Dict
from datetime import date
from flask import abort


def apply_filters(query, specs: Dict[str, Dict[str, Any]], params: Dict[str, Any]):
    """Generic filter builder.

    specs: { param_name: { 'op': callable(query, value)->query, 'coerce': type/func, 'validate': callable(optional) } }
    """
    for name, meta in specs.items():
        if name not in params or params[name] in (None, ''):
            continue
        val = params[name]
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except Exception:
                abort(400, description=f'{name} invalid')
        if 'validate' in meta and not meta['validate'](val):
            abort(400, description=f'{name} invalid')
        query = meta['op'](query, val)
    return query


def parse_bool_param(raw: str) -> bool:
    lowered = str(raw).strip().lower()
    if lowered in ('true', '1', 'yes'):
        return True
    if lowered in ('false', '0', 'no'):
        return False
    raise ValueError(raw)


# --- spec builders for the common cases ---

def contains(column) -> Dict[str, Any]:
    return {'op': lambda q, v: q.filter(column.ilike(f'%{v}%'))}


def equals(column, coerce: Callable = str, allowed=None) -> Dict[str, Any]:
    spec: Dict[str, Any] = {'coerce': coerce, 'op': lambda q, v: q.filter(column == v)}
    if allowed is not None:
        spec['validate'] = lambda v: v in allowed
    return spec


def flag(column) -> Dict[str, Any]:
    return {'coerce': parse_bool_param, 'op': lambda q, v: q.filter(column.is_(v))}


def on_or_after(column) -> Dict[str, Any]:
    return {'coerce': date.fromisoformat, 'op': lambda q, v: q.filter(column >= v)}


def on_or_before(column) -> Dict[str, Any]:
    return {'coerce': date.fromisoformat, 'op': lambda q, v: q.filter(column <= v)}
