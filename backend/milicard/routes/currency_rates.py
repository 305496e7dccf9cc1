from __future__ import annotations
from decimal import Decimal, InvalidOperation
from flask import Blueprint, request, abort
from sqlalchemy import select, or_
from milicard import get_db
from milicard.decorators.auth import require_permissions
from milicard.decorators.audit import audit_log
from milicard.services.currency import get_live_rates, refresh_live_rates
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, flag
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import parse_bool, iso
from milicard.models.settings import CurrencyRate

fx_bp = Blueprint('currency_rates', __name__)


def _get_rate_or_404(rate_id: int) -> CurrencyRate:
    rate = get_db().get(CurrencyRate, rate_id)
    if not rate:
        abort(404, description='Currency rate not found')
    return rate


def _parse_rate(raw) -> Decimal:
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        abort(400, description='fixed_rate must be a number')
    if not value.is_finite() or value <= 0:
        abort(400, description='fixed_rate must be greater than 0')
    return value


def _search(q, term: str):
    like = f'%{term}%'
    return q.filter(or_(CurrencyRate.currency_code.ilike(like), CurrencyRate.currency_name.ilike(like)))


@fx_bp.route('/currency-rates', methods=['GET', 'HEAD'])
@require_permissions('FX.READ')
def list_rates():
    q = get_db().query(CurrencyRate)
    q = apply_filters(q, {
        'is_active': flag(CurrencyRate.is_active),
        'search': {'op': _search},
    }, request.args)
    allowed = {
        'currency_code': CurrencyRate.currency_code,
        'currency_name': CurrencyRate.currency_name,
        'updated_at': CurrencyRate.updated_at,
        'id': CurrencyRate.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, CurrencyRate.id, default=[CurrencyRate.currency_code.asc()])
    live = get_live_rates()
    return respond_list(q, lambda r: _rate_json(r, live))


@fx_bp.route('/currency-rates/live', methods=['GET', 'HEAD'])
@require_permissions('FX.READ')
def live_rates():
    rates = get_live_rates()
    return {'base': 'CNY', 'rates': rates, 'count': len(rates)}


@fx_bp.post('/currency-rates/refresh')
@require_permissions('FX.MANAGE')
@audit_log('FX.REFRESH', entity='CurrencyRate', meta_keys=['count'])
def refresh_rates():
    rates = refresh_live_rates()
    return {'base': 'CNY', 'rates': rates, 'count': len(rates)}


@fx_bp.route('/currency-rates/code/<string:code>', methods=['GET', 'HEAD'])
@require_permissions('FX.READ')
def get_rate_by_code(code: str):
    rate = get_db().execute(
        select(CurrencyRate).where(CurrencyRate.currency_code == code.strip().upper())
    ).scalar_one_or_none()
    if not rate:
        abort(404, description='Currency rate not found')
    return respond_single(_rate_json(rate, get_live_rates()), rate.updated_at)


@fx_bp.route('/currency-rates/<int:rate_id>', methods=['GET', 'HEAD'])
@require_permissions('FX.READ')
def get_rate(rate_id: int):
    rate = _get_rate_or_404(rate_id)
    return respond_single(_rate_json(rate, get_live_rates()), rate.updated_at)


@fx_bp.post('/currency-rates')
@require_permissions('FX.MANAGE')
@audit_log('FX.CREATE', entity='CurrencyRate', entity_id_key='id', meta_keys=['currency_code', 'fixed_rate'])
def create_rate():
    session = get_db()
    data = request.json or {}
    code = (data.get('currency_code') or '').strip().upper()
    name = (data.get('currency_name') or '').strip()
    if not code or not name:
        abort(400, description='currency_code and currency_name required')
    if session.execute(select(CurrencyRate.id).where(CurrencyRate.currency_code == code)).first():
        abort(409, description='currency code exists')
    if 'fixed_rate' not in data:
        abort(400, description='fixed_rate required')
    rate = CurrencyRate(
        currency_code=code,
        currency_name=name,
        fixed_rate=_parse_rate(data['fixed_rate']),
        is_active=parse_bool(data.get('is_active', True), 'is_active'),
    )
    session.add(rate)
    session.commit()
    return _rate_json(rate, get_live_rates()), 201


@fx_bp.put('/currency-rates/<int:rate_id>')
@require_permissions('FX.MANAGE')
@audit_log('FX.UPDATE', entity='CurrencyRate', entity_id_key='id', diff_keys=['currency_code', 'fixed_rate', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_rate(kw.get('rate_id')))
def update_rate(rate_id: int):
    session = get_db()
    rate = _get_rate_or_404(rate_id)
    data = request.json or {}
    if 'currency_code' in data:
        code = (data.get('currency_code') or '').strip().upper()
        if not code:
            abort(400, description='currency_code cannot be empty')
        if code != rate.currency_code and session.execute(
            select(CurrencyRate.id).where(CurrencyRate.currency_code == code)
        ).first():
            abort(409, description='currency code exists')
        rate.currency_code = code
    if 'currency_name' in data:
        if not (data.get('currency_name') or '').strip():
            abort(400, description='currency_name cannot be empty')
        rate.currency_name = data['currency_name'].strip()
    if 'fixed_rate' in data:
        rate.fixed_rate = _parse_rate(data['fixed_rate'])
    if 'is_active' in data:
        rate.is_active = parse_bool(data['is_active'], 'is_active')
    session.commit()
    return _rate_json(rate, get_live_rates())


@fx_bp.delete('/currency-rates/<int:rate_id>')
@require_permissions('FX.MANAGE')
@audit_log('FX.DELETE', entity='CurrencyRate', entity_id_arg='rate_id')
def delete_rate(rate_id: int):
    session = get_db()
    rate = _get_rate_or_404(rate_id)
    session.delete(rate)
    session.commit()
    return {'deleted': True, 'id': rate_id}


def _rate_json(r: CurrencyRate, live: dict):
    return {
        'id': r.id,
        'currency_code': r.currency_code,
        'currency_name': r.currency_name,
        # string keeps the stored precision
        'fixed_rate': str(r.fixed_rate),
        'live_rate': live.get(r.currency_code),
        'is_active': r.is_active,
        'created_at': iso(r.created_at),
        'updated_at': iso(r.updated_at),
    }


def _prefetch_rate(rate_id: int):
    r = get_db().get(CurrencyRate, rate_id)
    if not r:
        return {}
    return {'currency_code': r.currency_code, 'fixed_rate': str(r.fixed_rate), 'is_active': r.is_active}
