from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select, func
from milicard import get_db
from milicard.decorators.auth import require_permissions
from milicard.decorators.audit import audit_log
from milicard.services.policy import filter_query_by_bases, get_base_or_404
from milicard.services.code_generator import generate_code
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, contains, flag
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import iso, parse_bool
from milicard.models.operating_base import OperatingBase
from milicard.models.location import Location
from milicard.models.personnel import Personnel
from milicard.models.purchase_order import PurchaseOrder
from milicard.models.point import Point
from milicard.models.sales import Customer

bases_bp = Blueprint('bases', __name__)

_TEXT_FIELDS = ('name', 'description', 'address', 'contact_person', 'contact_phone', 'currency', 'language')
# tables whose rows keep a base from being deleted
_DEPENDENTS = (
    ('locations', Location),
    ('personnel', Personnel),
    ('purchase orders', PurchaseOrder),
    ('points', Point),
    ('customers', Customer),
)


@bases_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('BASE.READ')
def list_bases():
    session = get_db()
    q = filter_query_by_bases(session.query(OperatingBase), OperatingBase.id)
    q = apply_filters(q, {
        'name': contains(OperatingBase.name),
        'code': contains(OperatingBase.code),
        'is_active': flag(OperatingBase.is_active),
    }, request.args)
    allowed = {
        'name': OperatingBase.name,
        'code': OperatingBase.code,
        'created_at': OperatingBase.created_at,
        'updated_at': OperatingBase.updated_at,
        'id': OperatingBase.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, OperatingBase.id)
    return respond_list(q, _base_json)


@bases_bp.route('/<int:base_id>', methods=['GET', 'HEAD'])
@require_permissions('BASE.READ')
def get_base(base_id: int):
    base = get_base_or_404(base_id)
    return respond_single(_base_json(base), base.updated_at)


@bases_bp.post('')
@require_permissions('BASE.MANAGE')
@audit_log('BASE.CREATE', entity='OperatingBase', entity_id_key='id', meta_keys=['code', 'name'])
def create_base():
    session = get_db()
    data = request.json or {}
    name = (data.get('name') or '').strip()
    if not name:
        abort(400, description='name required')
    code = (data.get('code') or '').strip()
    if code:
        if session.execute(select(OperatingBase.id).where(OperatingBase.code == code)).first():
            abort(409, description='base code exists')
    else:
        code = generate_code(session, 'BASE', OperatingBase)
    base = OperatingBase(code=code, name=name, created_by=int(get_jwt_identity()))
    _apply_fields(base, data)
    base.name = name
    session.add(base)
    session.commit()
    return _base_json(base), 201


@bases_bp.put('/<int:base_id>')
@require_permissions('BASE.MANAGE')
@audit_log('BASE.UPDATE', entity='OperatingBase', entity_id_key='id', diff_keys=['code', 'name', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_base(kw.get('base_id')), meta_keys=['code'])
def update_base(base_id: int):
    session = get_db()
    base = get_base_or_404(base_id)
    data = request.json or {}
    if 'name' in data and not (data.get('name') or '').strip():
        abort(400, description='name cannot be empty')
    if 'code' in data and data['code'] != base.code:
        code = (data.get('code') or '').strip()
        if not code:
            abort(400, description='code cannot be empty')
        dup = session.execute(select(OperatingBase.id).where(OperatingBase.code == code, OperatingBase.id != base.id)).first()
        if dup:
            abort(409, description='base code exists')
        base.code = code
    _apply_fields(base, data)
    session.commit()
    return _base_json(base)


@bases_bp.delete('/<int:base_id>')
@require_permissions('BASE.MANAGE')
@audit_log('BASE.DELETE', entity='OperatingBase', entity_id_arg='base_id')
def delete_base(base_id: int):
    session = get_db()
    base = get_base_or_404(base_id)
    for label, model in _DEPENDENTS:
        count = session.execute(select(func.count()).select_from(model).where(model.base_id == base.id)).scalar_one()
        if count:
            abort(409, description=f'base still has {count} {label}')
    session.delete(base)
    session.commit()
    return {'deleted': True, 'id': base_id}


def _apply_fields(base: OperatingBase, data: dict):
    for name in _TEXT_FIELDS:
        if name in data and data[name] is not None:
            setattr(base, name, data[name])
    if 'is_active' in data:
        base.is_active = parse_bool(data['is_active'], 'is_active')


def _base_json(b: OperatingBase):
    return {
        'id': b.id,
        'code': b.code,
        'name': b.name,
        'description': b.description,
        'address': b.address,
        'contact_person': b.contact_person,
        'contact_phone': b.contact_phone,
        'currency': b.currency,
        'language': b.language,
        'is_active': b.is_active,
        'created_at': iso(b.created_at),
        'updated_at': iso(b.updated_at),
    }


def _prefetch_base(base_id: int):
    b = get_db().get(OperatingBase, base_id)
    if not b:
        return {}
    return {'code': b.code, 'name': b.name, 'is_active': b.is_active}
