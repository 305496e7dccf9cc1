from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select, or_
from milicard import get_db
from milicard.decorators.auth import require_permissions
from milicard.decorators.audit import audit_log
from milicard.services.global_settings import (
    find_by_key, get_values, upsert_values, list_categories, resolve_value_type,
)
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, equals, flag
from milicard.utils.validation import parse_bool, iso
from milicard.models.settings import GlobalSetting

settings_bp = Blueprint('global_settings', __name__)


def _get_setting_or_404(setting_id: int) -> GlobalSetting:
    s = get_db().get(GlobalSetting, setting_id)
    if not s:
        abort(404, description='Setting not found')
    return s


def _search(q, term: str):
    like = f'%{term}%'
    return q.filter(or_(GlobalSetting.key.ilike(like), GlobalSetting.description.ilike(like)))


@settings_bp.route('/global-settings', methods=['GET', 'HEAD'])
@require_permissions('SET.READ')
def list_settings():
    q = apply_filters(get_db().query(GlobalSetting), {
        'search': {'op': _search},
        'category': equals(GlobalSetting.category),
        'is_active': flag(GlobalSetting.is_active),
    }, request.args)
    q = q.order_by(GlobalSetting.category.asc(), GlobalSetting.key.asc())
    return respond_list(q, _setting_json)


@settings_bp.route('/global-settings/categories', methods=['GET', 'HEAD'])
@require_permissions('SET.READ')
def categories():
    return {'data': list_categories()}


@settings_bp.route('/global-settings/values', methods=['GET', 'HEAD'])
@require_permissions('SET.READ')
def read_values():
    keys = [k.strip() for k in (request.args.get('keys') or '').split(',') if k.strip()]
    if not keys:
        abort(400, description='keys required')
    return {'data': get_values(keys)}


@settings_bp.put('/global-settings/values')
@require_permissions('SET.MANAGE')
@audit_log('SET.VALUES', entity='GlobalSetting', meta_builder=lambda d, rv, a, kw: {'results': d.get('results')})
def write_values():
    data = request.json or {}
    values = data.get('values')
    if not isinstance(values, dict) or not values:
        abort(400, description='values must be a non-empty object')
    results = upsert_values(values, int(get_jwt_identity()))
    get_db().commit()
    return {'results': results}


@settings_bp.route('/global-settings/key/<path:key>', methods=['GET', 'HEAD'])
@require_permissions('SET.READ')
def get_setting_by_key(key: str):
    s = find_by_key(key)
    if not s:
        abort(404, description='Setting not found')
    return respond_single(_setting_json(s), s.updated_at)


@settings_bp.route('/global-settings/<int:setting_id>', methods=['GET', 'HEAD'])
@require_permissions('SET.READ')
def get_setting(setting_id: int):
    s = _get_setting_or_404(setting_id)
    return respond_single(_setting_json(s), s.updated_at)


@settings_bp.post('/global-settings')
@require_permissions('SET.MANAGE')
@audit_log('SET.CREATE', entity='GlobalSetting', entity_id_key='id', meta_keys=['key', 'value_type'])
def create_setting():
    session = get_db()
    data = request.json or {}
    key = (data.get('key') or '').strip()
    if not key:
        abort(400, description='key required')
    if 'value' not in data:
        abort(400, description='value required')
    if find_by_key(key):
        abort(409, description='setting key exists')
    s = GlobalSetting(
        key=key,
        value=data['value'],
        value_type=resolve_value_type(data['value'], data.get('value_type')),
        description=data.get('description'),
        category=data.get('category'),
        is_active=parse_bool(data.get('is_active', True), 'is_active'),
        is_system=False,
        created_by=int(get_jwt_identity()),
    )
    session.add(s)
    session.commit()
    return _setting_json(s), 201


@settings_bp.put('/global-settings/<int:setting_id>')
@require_permissions('SET.MANAGE')
@audit_log('SET.UPDATE', entity='GlobalSetting', entity_id_key='id', diff_keys=['key', 'value', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_setting(kw.get('setting_id')))
def update_setting(setting_id: int):
    session = get_db()
    s = _get_setting_or_404(setting_id)
    data = request.json or {}
    if 'key' in data:
        key = (data.get('key') or '').strip()
        if key != s.key:
            if s.is_system:
                abort(400, description='system setting key cannot change')
            if not key:
                abort(400, description='key cannot be empty')
            if session.execute(select(GlobalSetting.id).where(GlobalSetting.key == key)).first():
                abort(409, description='setting key exists')
            s.key = key
    if 'value' in data or 'value_type' in data:
        value = data['value'] if 'value' in data else s.value
        declared = data.get('value_type') or s.value_type
        s.value_type = resolve_value_type(value, declared)
        s.value = value
    for name in ('description', 'category'):
        if name in data:
            setattr(s, name, data[name])
    if 'is_active' in data:
        s.is_active = parse_bool(data['is_active'], 'is_active')
    session.commit()
    return _setting_json(s)


@settings_bp.delete('/global-settings/<int:setting_id>')
@require_permissions('SET.MANAGE')
@audit_log('SET.DELETE', entity='GlobalSetting', entity_id_arg='setting_id')
def delete_setting(setting_id: int):
    session = get_db()
    s = _get_setting_or_404(setting_id)
    if s.is_system:
        abort(400, description='system settings cannot be deleted')
    session.delete(s)
    session.commit()
    return {'deleted': True, 'id': setting_id}


def _setting_json(s: GlobalSetting):
    return {
        'id': s.id,
        'key': s.key,
        'value': s.value,
        'value_type': s.value_type,
        'description': s.description,
        'category': s.category,
        'is_active': s.is_active,
        'is_system': s.is_system,
        'created_by': s.created_by,
        'created_at': iso(s.created_at),
        'updated_at': iso(s.updated_at),
    }


def _prefetch_setting(setting_id: int):
    s = get_db().get(GlobalSetting, setting_id)
    if not s:
        return {}
    return {'key': s.key, 'value': s.value, 'is_active': s.is_active}
