from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import jwt_required
from sqlalchemy import delete
from milicard import get_db
from milicard.decorators.auth import require_permissions
from milicard.decorators.audit import audit_log
from milicard.services.data_permissions import RESOURCE_MODELS, model_for_resource, assert_field_exists, get_field_permissions
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, equals, flag
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import required_int, parse_bool, iso
from milicard.models.authz import Role
from milicard.models.data_permission import DataPermissionRule, FieldPermission

dp_bp = Blueprint('data_permissions', __name__)


def _get_rule_or_404(rule_id: int) -> DataPermissionRule:
    rule = get_db().get(DataPermissionRule, rule_id)
    if not rule:
        abort(404, description='Data permission rule not found')
    return rule


def _role_or_400(role_id: int) -> Role:
    role = get_db().get(Role, role_id)
    if not role:
        abort(400, description=f'role {role_id} not found')
    return role


def _check_rule(resource: str, field: str, operator: str, value_type: str, value):
    assert_field_exists(resource, field)
    if operator not in DataPermissionRule.OPERATORS:
        abort(400, description='operator invalid')
    if value_type not in DataPermissionRule.VALUE_TYPES:
        abort(400, description='value_type invalid')
    if value_type == 'fixed' and value is None:
        abort(400, description='value required for fixed rules')


@dp_bp.route('/data-permission-rules', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.DATA_PERM.MANAGE')
def list_rules():
    q = apply_filters(get_db().query(DataPermissionRule), {
        'role_id': equals(DataPermissionRule.role_id, coerce=int),
        'resource': equals(DataPermissionRule.resource, allowed=RESOURCE_MODELS),
        'is_active': flag(DataPermissionRule.is_active),
    }, request.args)
    allowed = {'role_id': DataPermissionRule.role_id, 'resource': DataPermissionRule.resource, 'id': DataPermissionRule.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, DataPermissionRule.id)
    return respond_list(q, _rule_json)


@dp_bp.route('/data-permission-rules/<int:rule_id>', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.DATA_PERM.MANAGE')
def get_rule(rule_id: int):
    rule = _get_rule_or_404(rule_id)
    return respond_single(_rule_json(rule), rule.updated_at)


@dp_bp.post('/data-permission-rules')
@require_permissions('ADMIN.DATA_PERM.MANAGE')
@audit_log('DATA_PERM.CREATE', entity='DataPermissionRule', entity_id_key='id',
           meta_keys=['role_id', 'resource', 'field', 'operator', 'value_type'])
def create_rule():
    session = get_db()
    data = request.json or {}
    role = _role_or_400(required_int(data, 'role_id'))
    resource = data.get('resource') or ''
    field = data.get('field') or ''
    operator = data.get('operator') or 'eq'
    value_type = data.get('value_type') or ''
    _check_rule(resource, field, operator, value_type, data.get('value'))
    rule = DataPermissionRule(
        role_id=role.id,
        resource=resource,
        field=field,
        operator=operator,
        value_type=value_type,
        value=data.get('value'),
        description=data.get('description'),
        is_active=parse_bool(data.get('is_active', True), 'is_active'),
    )
    session.add(rule)
    session.commit()
    return _rule_json(rule), 201


@dp_bp.put('/data-permission-rules/<int:rule_id>')
@require_permissions('ADMIN.DATA_PERM.MANAGE')
@audit_log('DATA_PERM.UPDATE', entity='DataPermissionRule', entity_id_key='id',
           diff_keys=['field', 'operator', 'value_type', 'value', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_rule(kw.get('rule_id')))
def update_rule(rule_id: int):
    session = get_db()
    rule = _get_rule_or_404(rule_id)
    data = request.json or {}
    if 'role_id' in data:
        rule.role_id = _role_or_400(required_int(data, 'role_id')).id
    resource = data.get('resource', rule.resource)
    field = data.get('field', rule.field)
    operator = data.get('operator', rule.operator)
    value_type = data.get('value_type', rule.value_type)
    value = data['value'] if 'value' in data else rule.value
    _check_rule(resource, field, operator, value_type, value)
    rule.resource, rule.field, rule.operator, rule.value_type, rule.value = resource, field, operator, value_type, value
    if 'description' in data:
        rule.description = data['description']
    if 'is_active' in data:
        rule.is_active = parse_bool(data['is_active'], 'is_active')
    session.commit()
    return _rule_json(rule)


@dp_bp.delete('/data-permission-rules/<int:rule_id>')
@require_permissions('ADMIN.DATA_PERM.MANAGE')
@audit_log('DATA_PERM.DELETE', entity='DataPermissionRule', entity_id_arg='rule_id')
def delete_rule(rule_id: int):
    session = get_db()
    rule = _get_rule_or_404(rule_id)
    session.delete(rule)
    session.commit()
    return {'deleted': True, 'id': rule_id}


# --- field permissions ---

@dp_bp.route('/field-permissions', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.DATA_PERM.MANAGE')
def list_field_permissions():
    q = apply_filters(get_db().query(FieldPermission), {
        'role_id': equals(FieldPermission.role_id, coerce=int),
        'resource': equals(FieldPermission.resource, allowed=RESOURCE_MODELS),
    }, request.args)
    q = q.order_by(FieldPermission.role_id, FieldPermission.resource, FieldPermission.field, FieldPermission.id)
    return respond_list(q, _field_json)


@dp_bp.put('/field-permissions')
@require_permissions('ADMIN.DATA_PERM.MANAGE')
@audit_log('FIELD_PERM.REPLACE', entity='Role', entity_id_key='role_id',
           meta_builder=lambda d, rv, a, kw: {'resource': d.get('resource'), 'count': len(d.get('fields', []))})
def replace_field_permissions():
    """Replace every field permission of ``role_id`` for ``resource`` with ``fields``."""
    session = get_db()
    data = request.json or {}
    role = _role_or_400(required_int(data, 'role_id'))
    resource = data.get('resource') or ''
    model_for_resource(resource)
    fields = data.get('fields')
    if not isinstance(fields, list):
        abort(400, description='fields must be a list')
    rows = []
    seen = set()
    for raw in fields:
        if not isinstance(raw, dict) or not raw.get('field'):
            abort(400, description='each field entry needs a field name')
        name = raw['field']
        assert_field_exists(resource, name)
        if name in seen:
            abort(400, description=f'duplicate field {name}')
        seen.add(name)
        rows.append(FieldPermission(
            role_id=role.id,
            resource=resource,
            field=name,
            can_read=parse_bool(raw.get('can_read', True), 'can_read'),
            can_write=parse_bool(raw.get('can_write', False), 'can_write'),
        ))
    session.execute(delete(FieldPermission).where(FieldPermission.role_id == role.id, FieldPermission.resource == resource))
    session.add_all(rows)
    session.commit()
    return {'role_id': role.id, 'resource': resource, 'fields': [_field_json(r) for r in rows]}


@dp_bp.get('/field-permissions/me')
@jwt_required()
def my_field_permissions():
    resource = request.args.get('resource') or ''
    model_for_resource(resource)
    return {'resource': resource, **get_field_permissions(resource)}


def _rule_json(r: DataPermissionRule):
    return {
        'id': r.id,
        'role_id': r.role_id,
        'resource': r.resource,
        'field': r.field,
        'operator': r.operator,
        'value_type': r.value_type,
        'value': r.value,
        'description': r.description,
        'is_active': r.is_active,
        'created_at': iso(r.created_at),
        'updated_at': iso(r.updated_at),
    }


def _field_json(f: FieldPermission):
    return {
        'id': f.id,
        'role_id': f.role_id,
        'resource': f.resource,
        'field': f.field,
        'can_read': f.can_read,
        'can_write': f.can_write,
    }


def _prefetch_rule(rule_id: int):
    r = get_db().get(DataPermissionRule, rule_id)
    if not r:
        return {}
    return {'field': r.field, 'operator': r.operator, 'value_type': r.value_type, 'value': r.value, 'is_active': r.is_active}
