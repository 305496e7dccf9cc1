from __future__ import annotations
from datetime import date
from flask import Blueprint, request, abort, g
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import func
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.services.data_permissions import apply_data_permissions
from milicard.services.inventory import record_stock_out, assert_available
from milicard.services.orders import load_goods, read_quantities
from milicard.services.policy import get_in_base_or_404
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, equals, on_or_after, on_or_before
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import required_int, optional_int, parse_date, iso
from milicard.models.stock_out import StockOut
from milicard.models.location import Location

so_bp = Blueprint('stock_outs', __name__)

_QTY_FIELDS = ('box_quantity', 'pack_quantity', 'piece_quantity')


def _so_query(base_id: int):
    q = get_db().query(StockOut).filter(StockOut.base_id == base_id)
    return apply_data_permissions(q, 'stockOut')


@so_bp.route('/<int:base_id>/stock-outs', methods=['GET', 'HEAD'])
@require_base_permissions('SO.READ')
def list_stock_outs(base_id: int):
    q = apply_filters(_so_query(base_id), {
        'type': equals(StockOut.type, allowed=StockOut.ALL_TYPES),
        'location_id': equals(StockOut.location_id, coerce=int),
        'goods_id': equals(StockOut.goods_id, coerce=int),
        'start_date': on_or_after(StockOut.out_date),
        'end_date': on_or_before(StockOut.out_date),
    }, request.args)
    allowed = {
        'out_date': StockOut.out_date,
        'type': StockOut.type,
        'total_pieces': StockOut.total_pieces,
        'created_at': StockOut.created_at,
        'id': StockOut.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, StockOut.id, default=[StockOut.out_date.desc()])
    return respond_list(q, _so_json)


@so_bp.route('/<int:base_id>/stock-outs/stats', methods=['GET'])
@require_base_permissions('SO.READ')
def stock_out_stats(base_id: int):
    session = get_db()
    q = apply_filters(_so_query(base_id), {
        'start_date': on_or_after(StockOut.out_date),
        'end_date': on_or_before(StockOut.out_date),
    }, request.args)
    count, pieces = q.with_entities(func.count(StockOut.id), func.coalesce(func.sum(StockOut.total_pieces), 0)).one()
    by_type = {t: {'count': 0, 'total_pieces': 0} for t in StockOut.ALL_TYPES}
    for t, c, p in q.with_entities(StockOut.type, func.count(StockOut.id), func.sum(StockOut.total_pieces)).group_by(StockOut.type):
        by_type[t] = {'count': int(c), 'total_pieces': int(p or 0)}
    per_location = []
    loc_rows = (
        q.join(Location, Location.id == StockOut.location_id)
        .with_entities(Location.id, Location.name, func.count(StockOut.id), func.sum(StockOut.total_pieces))
        .group_by(Location.id, Location.name)
        .order_by(Location.id)
    )
    for loc_id, name, c, p in loc_rows:
        per_location.append({'location_id': loc_id, 'location_name': name, 'count': int(c), 'total_pieces': int(p or 0)})
    return {
        'total_count': int(count),
        'total_pieces': int(pieces),
        'by_type': by_type,
        'by_location': per_location,
    }


@so_bp.route('/<int:base_id>/stock-outs/<int:so_id>', methods=['GET', 'HEAD'])
@require_base_permissions('SO.READ')
def get_stock_out(base_id: int, so_id: int):
    so = get_in_base_or_404(StockOut, so_id, base_id, 'Stock-out')
    return respond_single(_so_json(so), so.updated_at)


@so_bp.post('/<int:base_id>/stock-outs')
@require_base_permissions('SO.CREATE')
@audit_log('SO.CREATE', entity='StockOut', entity_id_key='id', meta_keys=['code', 'goods_id', 'location_id', 'total_pieces'])
def create_stock_out(base_id: int):
    session = get_db()
    data = request.json or {}
    if data.get('type', StockOut.TYPE_MANUAL) != StockOut.TYPE_MANUAL:
        abort(400, description='only MANUAL stock-outs can be created directly')
    goods = load_goods(session, required_int(data, 'goods_id'), require_active=False)
    location_id = _check_location(required_int(data, 'location_id'))
    so = record_stock_out(
        session,
        base_id=g.base.id,
        out_type=StockOut.TYPE_MANUAL,
        goods_id=goods.id,
        location_id=location_id,
        quantities=read_quantities(data, goods),
        created_by=int(get_jwt_identity()),
        out_date=parse_date(data.get('out_date'), 'out_date', default=date.today()),
        target_name=data.get('target_name'),
        remark=data.get('remark'),
    )
    session.commit()
    return _so_json(so), 201


@so_bp.put('/<int:base_id>/stock-outs/<int:so_id>')
@require_base_permissions('SO.UPDATE')
@audit_log('SO.UPDATE', entity='StockOut', entity_id_key='id', diff_keys=['location_id', 'goods_id', 'total_pieces'],
           pre_fetch=lambda a, kw: _prefetch_so(kw.get('so_id')), meta_keys=['code'])
def update_stock_out(base_id: int, so_id: int):
    session = get_db()
    so = _get_manual_or_400(base_id, so_id)
    data = request.json or {}
    goods_id = optional_int(data, 'goods_id') or so.goods_id
    goods = load_goods(session, goods_id, require_active=False)
    location_id = _check_location(optional_int(data, 'location_id') or so.location_id)
    merged = {name: data.get(name, getattr(so, name)) for name in _QTY_FIELDS}
    qty = read_quantities(merged, goods)
    assert_available(session, goods.id, location_id, qty['total_pieces'], exclude_stock_out_id=so.id)
    so.goods_id = goods.id
    so.location_id = location_id
    for name, value in qty.items():
        setattr(so, name, value)
    if 'out_date' in data:
        so.out_date = parse_date(data.get('out_date'), 'out_date')
    for name in ('target_name', 'remark'):
        if name in data:
            setattr(so, name, data[name])
    session.commit()
    return _so_json(so)


@so_bp.delete('/<int:base_id>/stock-outs/<int:so_id>')
@require_base_permissions('SO.DELETE')
@audit_log('SO.DELETE', entity='StockOut', entity_id_arg='so_id')
def delete_stock_out(base_id: int, so_id: int):
    session = get_db()
    so = _get_manual_or_400(base_id, so_id)
    session.delete(so)
    session.commit()
    return {'deleted': True, 'id': so_id}


def _get_manual_or_400(base_id: int, so_id: int) -> StockOut:
    so = get_in_base_or_404(StockOut, so_id, base_id, 'Stock-out')
    if so.type != StockOut.TYPE_MANUAL:
        abort(400, description=f'{so.type} stock-outs are managed by their order')
    return so


def _check_location(location_id: int) -> int:
    loc = get_db().get(Location, location_id)
    if not loc or loc.base_id != g.base.id:
        abort(400, description='location does not belong to this base')
    return loc.id


def _so_json(so: StockOut):
    return {
        'id': so.id,
        'base_id': so.base_id,
        'code': so.code,
        'type': so.type,
        'out_date': iso(so.out_date),
        'goods_id': so.goods_id,
        'location_id': so.location_id,
        'target_name': so.target_name,
        'related_order_id': so.related_order_id,
        'related_order_code': so.related_order_code,
        'box_quantity': so.box_quantity,
        'pack_quantity': so.pack_quantity,
        'piece_quantity': so.piece_quantity,
        'total_pieces': so.total_pieces,
        'remark': so.remark,
        'created_by': so.created_by,
        'created_at': iso(so.created_at),
        'updated_at': iso(so.updated_at),
    }


def _prefetch_so(so_id: int):
    so = get_db().get(StockOut, so_id)
    if not so:
        return {}
    return {'location_id': so.location_id, 'goods_id': so.goods_id, 'total_pieces': so.total_pieces}
