from __future__ import annotations
from flask import Blueprint, request, abort, g
from flask_jwt_extended import get_jwt_identity
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.services.code_generator import generate_code
from milicard.services.policy import get_in_base_or_404
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, contains, equals, flag
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import iso, parse_bool, validate_status
from milicard.models.personnel import Personnel

staff_bp = Blueprint('personnel', __name__)


@staff_bp.route('/<int:base_id>/personnel', methods=['GET', 'HEAD'])
@require_base_permissions('STAFF.READ')
def list_personnel(base_id: int):
    session = get_db()
    q = session.query(Personnel).filter(Personnel.base_id == base_id)
    q = apply_filters(q, {
        'role': equals(Personnel.role, allowed=Personnel.ALL_ROLES),
        'is_active': flag(Personnel.is_active),
        'name': contains(Personnel.name),
    }, request.args)
    allowed = {
        'name': Personnel.name,
        'role': Personnel.role,
        'code': Personnel.code,
        'updated_at': Personnel.updated_at,
        'id': Personnel.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Personnel.id)
    return respond_list(q, _person_json)


@staff_bp.route('/<int:base_id>/personnel/<int:person_id>', methods=['GET', 'HEAD'])
@require_base_permissions('STAFF.READ')
def get_person(base_id: int, person_id: int):
    p = get_in_base_or_404(Personnel, person_id, base_id, 'Personnel')
    return respond_single(_person_json(p), p.updated_at)


@staff_bp.post('/<int:base_id>/personnel')
@require_base_permissions('STAFF.MANAGE')
@audit_log('STAFF.CREATE', entity='Personnel', entity_id_key='id', meta_keys=['code', 'role', 'name'])
def create_person(base_id: int):
    session = get_db()
    data = request.json or {}
    name = (data.get('name') or '').strip()
    if not name:
        abort(400, description='name required')
    role = validate_status(data.get('role'), Personnel.ALL_ROLES, 'role')
    p = Personnel(
        base_id=g.base.id,
        role=role,
        code=generate_code(session, role, Personnel),
        name=name,
        created_by=int(get_jwt_identity()),
    )
    _apply_fields(p, data)
    session.add(p)
    session.commit()
    return _person_json(p), 201


@staff_bp.put('/<int:base_id>/personnel/<int:person_id>')
@require_base_permissions('STAFF.MANAGE')
@audit_log('STAFF.UPDATE', entity='Personnel', entity_id_key='id', diff_keys=['name', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_person(kw.get('person_id')), meta_keys=['code'])
def update_person(base_id: int, person_id: int):
    session = get_db()
    p = get_in_base_or_404(Personnel, person_id, base_id, 'Personnel')
    data = request.json or {}
    if 'name' in data:
        if not (data.get('name') or '').strip():
            abort(400, description='name cannot be empty')
        p.name = data['name'].strip()
    if 'role' in data and data['role'] != p.role:
        abort(400, description='role cannot change')
    _apply_fields(p, data)
    session.commit()
    return _person_json(p)


@staff_bp.delete('/<int:base_id>/personnel/<int:person_id>')
@require_base_permissions('STAFF.MANAGE')
@audit_log('STAFF.DELETE', entity='Personnel', entity_id_arg='person_id')
def delete_person(base_id: int, person_id: int):
    session = get_db()
    p = get_in_base_or_404(Personnel, person_id, base_id, 'Personnel')
    session.delete(p)
    session.commit()
    return {'deleted': True, 'id': person_id}


def _apply_fields(p: Personnel, data: dict):
    for name in ('phone', 'email', 'notes'):
        if name in data:
            setattr(p, name, data[name])
    if 'is_active' in data:
        p.is_active = parse_bool(data['is_active'], 'is_active')


def _person_json(p: Personnel):
    return {
        'id': p.id,
        'base_id': p.base_id,
        'role': p.role,
        'code': p.code,
        'name': p.name,
        'phone': p.phone,
        'email': p.email,
        'notes': p.notes,
        'is_active': p.is_active,
        'created_at': iso(p.created_at),
        'updated_at': iso(p.updated_at),
    }


def _prefetch_person(person_id: int):
    p = get_db().get(Personnel, person_id)
    if not p:
        return {}
    return {'name': p.name, 'is_active': p.is_active}
