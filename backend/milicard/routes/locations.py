from __future__ import annotations
from flask import Blueprint, request, abort, g
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select, func
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.services.code_generator import generate_code
from milicard.services.policy import get_in_base_or_404
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, contains, equals, flag
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import iso, parse_bool, validate_status
from milicard.models.location import Location
from milicard.models.arrival import Arrival
from milicard.models.stock_out import StockOut
from milicard.models.transfer import TransferOrder

loc_bp = Blueprint('locations', __name__)

_TEXT_FIELDS = ('description', 'address', 'contact_person', 'contact_phone')


@loc_bp.route('/<int:base_id>/locations', methods=['GET', 'HEAD'])
@require_base_permissions('LOC.READ')
def list_locations(base_id: int):
    session = get_db()
    q = session.query(Location).filter(Location.base_id == base_id)
    q = apply_filters(q, {
        'type': equals(Location.type, allowed=Location.ALL_TYPES),
        'is_active': flag(Location.is_active),
        'name': contains(Location.name),
    }, request.args)
    allowed = {
        'name': Location.name,
        'type': Location.type,
        'code': Location.code,
        'updated_at': Location.updated_at,
        'id': Location.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Location.id)
    return respond_list(q, _location_json)


@loc_bp.route('/<int:base_id>/locations/<int:location_id>', methods=['GET', 'HEAD'])
@require_base_permissions('LOC.READ')
def get_location(base_id: int, location_id: int):
    loc = get_in_base_or_404(Location, location_id, base_id, 'Location')
    return respond_single(_location_json(loc), loc.updated_at)


@loc_bp.post('/<int:base_id>/locations')
@require_base_permissions('LOC.MANAGE')
@audit_log('LOC.CREATE', entity='Location', entity_id_key='id', meta_keys=['code', 'type', 'name'])
def create_location(base_id: int):
    session = get_db()
    data = request.json or {}
    name = (data.get('name') or '').strip()
    if not name:
        abort(400, description='name required')
    loc_type = validate_status(data.get('type'), Location.ALL_TYPES, 'type')
    loc = Location(
        base_id=g.base.id,
        type=loc_type,
        code=generate_code(session, loc_type, Location),
        name=name,
        created_by=int(get_jwt_identity()),
    )
    _apply_fields(loc, data)
    session.add(loc)
    session.commit()
    return _location_json(loc), 201


@loc_bp.put('/<int:base_id>/locations/<int:location_id>')
@require_base_permissions('LOC.MANAGE')
@audit_log('LOC.UPDATE', entity='Location', entity_id_key='id', diff_keys=['name', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_location(kw.get('location_id')), meta_keys=['code'])
def update_location(base_id: int, location_id: int):
    session = get_db()
    loc = get_in_base_or_404(Location, location_id, base_id, 'Location')
    data = request.json or {}
    if 'name' in data:
        if not (data.get('name') or '').strip():
            abort(400, description='name cannot be empty')
        loc.name = data['name'].strip()
    if 'type' in data and data['type'] != loc.type:
        # the code prefix follows the type, so the type is fixed once created
        abort(400, description='type cannot change')
    _apply_fields(loc, data)
    session.commit()
    return _location_json(loc)


@loc_bp.delete('/<int:base_id>/locations/<int:location_id>')
@require_base_permissions('LOC.MANAGE')
@audit_log('LOC.DELETE', entity='Location', entity_id_arg='location_id')
def delete_location(base_id: int, location_id: int):
    session = get_db()
    loc = get_in_base_or_404(Location, location_id, base_id, 'Location')
    refs = (
        select(func.count()).select_from(Arrival).where(Arrival.location_id == loc.id),
        select(func.count()).select_from(StockOut).where(StockOut.location_id == loc.id),
        select(func.count()).select_from(TransferOrder).where(TransferOrder.to_location_id == loc.id),
    )
    if any(session.execute(stmt).scalar_one() for stmt in refs):
        abort(409, description='location has stock movements')
    session.delete(loc)
    session.commit()
    return {'deleted': True, 'id': location_id}


def _apply_fields(loc: Location, data: dict):
    for name in _TEXT_FIELDS:
        if name in data:
            setattr(loc, name, data[name])
    if 'is_active' in data:
        loc.is_active = parse_bool(data['is_active'], 'is_active')


def _location_json(loc: Location):
    return {
        'id': loc.id,
        'base_id': loc.base_id,
        'type': loc.type,
        'code': loc.code,
        'name': loc.name,
        'description': loc.description,
        'address': loc.address,
        'contact_person': loc.contact_person,
        'contact_phone': loc.contact_phone,
        'is_active': loc.is_active,
        'created_at': iso(loc.created_at),
        'updated_at': iso(loc.updated_at),
    }


def _prefetch_location(location_id: int):
    loc = get_db().get(Location, location_id)
    if not loc:
        return {}
    return {'name': loc.name, 'is_active': loc.is_active}
