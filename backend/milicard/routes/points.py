from __future__ import annotations
from flask import Blueprint, request, abort, g
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select, func
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.services.code_generator import generate_code
from milicard.services.data_permissions import apply_data_permissions, get_field_permissions
from milicard.services.storage import get_storage
from milicard.utils.field_filter import filter_readable, filter_writable
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, contains, equals, flag
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import iso, parse_bool, optional_int
from milicard.models.authz import User
from milicard.models.point import Point, PointGoods, PointOrder, PointVisit

point_bp = Blueprint('points', __name__)

RESOURCE = 'point'
_TEXT_FIELDS = ('address', 'contact_person', 'contact_phone', 'notes')


def point_query(base_id: int):
    q = get_db().query(Point).filter(Point.base_id == base_id)
    return apply_data_permissions(q, RESOURCE)


def get_visible_point_or_404(base_id: int, point_id: int) -> Point:
    """A point outside the caller's data permissions is reported as missing."""
    point = point_query(base_id).filter(Point.id == point_id).one_or_none()
    if not point:
        abort(404, description='Point not found')
    return point


@point_bp.route('/<int:base_id>/points', methods=['GET', 'HEAD'])
@require_base_permissions('POINT.READ')
def list_points(base_id: int):
    q = apply_filters(point_query(base_id), {
        'name': contains(Point.name),
        'code': contains(Point.code),
        'owner_id': equals(Point.owner_id, coerce=int),
        'dealer_id': equals(Point.dealer_id, coerce=int),
        'is_active': flag(Point.is_active),
    }, request.args)
    allowed = {
        'name': Point.name,
        'code': Point.code,
        'created_at': Point.created_at,
        'updated_at': Point.updated_at,
        'id': Point.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Point.id)
    readable = get_field_permissions(RESOURCE)['readable']
    return respond_list(q, lambda p: filter_readable(_point_json(p), readable))


@point_bp.route('/<int:base_id>/points/<int:point_id>', methods=['GET', 'HEAD'])
@require_base_permissions('POINT.READ')
def get_point(base_id: int, point_id: int):
    point = get_visible_point_or_404(base_id, point_id)
    readable = get_field_permissions(RESOURCE)['readable']
    return respond_single(filter_readable(_point_json(point), readable), point.updated_at)


@point_bp.post('/<int:base_id>/points')
@require_base_permissions('POINT.MANAGE')
@audit_log('POINT.CREATE', entity='Point', entity_id_key='id', meta_keys=['code', 'name'])
def create_point(base_id: int):
    session = get_db()
    data = request.json or {}
    name = (data.get('name') or '').strip()
    if not name:
        abort(400, description='name required')
    code = (data.get('code') or '').strip()
    if code:
        if session.execute(select(Point.id).where(Point.code == code)).first():
            abort(409, description='point code exists')
    else:
        code = generate_code(session, 'POINT', Point)
    point = Point(base_id=g.base.id, code=code, name=name, created_by=int(get_jwt_identity()))
    _apply_fields(point, data)
    session.add(point)
    session.commit()
    return filter_readable(_point_json(point), get_field_permissions(RESOURCE)['readable']), 201


@point_bp.put('/<int:base_id>/points/<int:point_id>')
@require_base_permissions('POINT.MANAGE')
@audit_log('POINT.UPDATE', entity='Point', entity_id_key='id', diff_keys=['name', 'owner_id', 'dealer_id', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_point(kw.get('point_id')), meta_keys=['code'])
def update_point(base_id: int, point_id: int):
    session = get_db()
    point = get_visible_point_or_404(base_id, point_id)
    perms = get_field_permissions(RESOURCE)
    data = filter_writable(request.json or {}, perms['writable'])
    if 'name' in data:
        if not (data.get('name') or '').strip():
            abort(400, description='name cannot be empty')
        point.name = data['name'].strip()
    _apply_fields(point, data)
    session.commit()
    return filter_readable(_point_json(point), perms['readable'])


@point_bp.delete('/<int:base_id>/points/<int:point_id>')
@require_base_permissions('POINT.MANAGE')
@audit_log('POINT.DELETE', entity='Point', entity_id_arg='point_id')
def delete_point(base_id: int, point_id: int):
    session = get_db()
    point = get_visible_point_or_404(base_id, point_id)
    orders = session.execute(select(func.count()).select_from(PointOrder).where(PointOrder.point_id == point.id)).scalar_one()
    if orders:
        abort(409, description=f'point has {orders} orders')
    images = []
    for visit in list(session.execute(select(PointVisit).where(PointVisit.point_id == point.id)).scalars()):
        images.extend(visit.images or [])
        session.delete(visit)
    for config in list(session.execute(select(PointGoods).where(PointGoods.point_id == point.id)).scalars()):
        session.delete(config)
    session.delete(point)
    session.commit()
    get_storage().delete_all(images)
    return {'deleted': True, 'id': point_id}


def _check_user(data: dict, name: str):
    user_id = optional_int(data, name)
    if user_id is not None and not get_db().get(User, user_id):
        abort(400, description=f'{name} does not reference an existing user')
    return user_id


def _apply_fields(point: Point, data: dict):
    for name in _TEXT_FIELDS:
        if name in data:
            setattr(point, name, data[name])
    for name in ('owner_id', 'dealer_id'):
        if name in data:
            setattr(point, name, _check_user(data, name))
    if 'is_active' in data:
        point.is_active = parse_bool(data['is_active'], 'is_active')


def _point_json(p: Point):
    return {
        'id': p.id,
        'base_id': p.base_id,
        'code': p.code,
        'name': p.name,
        'address': p.address,
        'contact_person': p.contact_person,
        'contact_phone': p.contact_phone,
        'owner_id': p.owner_id,
        'dealer_id': p.dealer_id,
        'notes': p.notes,
        'is_active': p.is_active,
        'created_at': iso(p.created_at),
        'updated_at': iso(p.updated_at),
    }


def _prefetch_point(point_id: int):
    p = get_db().get(Point, point_id)
    if not p:
        return {}
    return {'name': p.name, 'owner_id': p.owner_id, 'dealer_id': p.dealer_id, 'is_active': p.is_active}
