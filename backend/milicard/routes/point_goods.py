"""Goods a point may order (price per pack, per-order caps) and the stock delivered to it."""
from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import select
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.routes.points import get_visible_point_or_404
from milicard.services.catalog import point_pack_price
from milicard.services.inventory import point_stock
from milicard.services.orders import load_goods
from milicard.utils.listing import respond_aggregate
from milicard.utils.quantities import split_pieces
from milicard.utils.validation import iso, parse_bool, non_negative_int, required_int
from milicard.models.goods import Goods
from milicard.models.point import Point, PointGoods

pg_bp = Blueprint('point_goods', __name__)


def _configs(point_id: int, active_only: bool = False):
    stmt = select(PointGoods).where(PointGoods.point_id == point_id)
    if active_only:
        stmt = stmt.where(PointGoods.is_active.is_(True))
    return list(get_db().execute(stmt.order_by(PointGoods.id.asc())).scalars())


def _get_config_or_404(point: Point, pg_id: int) -> PointGoods:
    config = get_db().get(PointGoods, pg_id)
    if not config or config.point_id != point.id:
        abort(404, description='Point goods not found')
    return config


@pg_bp.route('/<int:base_id>/points/<int:point_id>/goods', methods=['GET', 'HEAD'])
@require_base_permissions('POINT.READ')
def list_point_goods(base_id: int, point_id: int):
    point = get_visible_point_or_404(base_id, point_id)
    session = get_db()
    active_only = request.args.get('include_inactive') not in ('1', 'true')
    return respond_aggregate([_config_json(session, point, c) for c in _configs(point.id, active_only)])


@pg_bp.post('/<int:base_id>/points/<int:point_id>/goods')
@require_base_permissions('POINT.MANAGE')
@audit_log('POINT_GOODS.ADD', entity='PointGoods', entity_id_key='id', meta_keys=['point_id', 'goods_id'])
def add_point_goods(base_id: int, point_id: int):
    """Adds a goods to the point, reactivating a previously removed entry."""
    session = get_db()
    point = get_visible_point_or_404(base_id, point_id)
    data = request.json or {}
    goods = load_goods(session, required_int(data, 'goods_id'))
    config = session.execute(
        select(PointGoods).where(PointGoods.point_id == point.id, PointGoods.goods_id == goods.id)
    ).scalar_one_or_none()
    status = 200
    if config is None:
        config = PointGoods(point_id=point.id, goods_id=goods.id)
        config.goods = goods
        session.add(config)
        status = 201
    elif config.is_active:
        abort(409, description=f'goods {goods.code} already assigned to this point')
    config.is_active = True
    _apply_fields(config, data)
    session.commit()
    return _config_json(session, point, config), status


@pg_bp.put('/<int:base_id>/points/<int:point_id>/goods')
@require_base_permissions('POINT.MANAGE')
@audit_log('POINT_GOODS.REPLACE', entity='Point', entity_id_arg='point_id')
def replace_point_goods(base_id: int, point_id: int):
    """Makes ``goods_ids`` the point's exact active goods list; prices and caps of kept entries survive."""
    session = get_db()
    point = get_visible_point_or_404(base_id, point_id)
    raw_ids = (request.json or {}).get('goods_ids')
    if not isinstance(raw_ids, list):
        abort(400, description='goods_ids must be a list')
    goods_ids = []
    for raw in raw_ids:
        goods = load_goods(session, required_int({'goods_id': raw}, 'goods_id'))
        if goods.id not in goods_ids:
            goods_ids.append(goods.id)
    existing = {c.goods_id: c for c in _configs(point.id)}
    for config in existing.values():
        config.is_active = config.goods_id in goods_ids
    for goods_id in goods_ids:
        if goods_id not in existing:
            session.add(PointGoods(point_id=point.id, goods_id=goods_id, is_active=True))
    session.commit()
    return {'data': [_config_json(session, point, c) for c in _configs(point.id, active_only=True)]}


@pg_bp.put('/<int:base_id>/points/<int:point_id>/goods/<int:pg_id>')
@require_base_permissions('POINT.MANAGE')
@audit_log('POINT_GOODS.UPDATE', entity='PointGoods', entity_id_key='id',
           diff_keys=['unit_price_cents', 'max_box_quantity', 'max_pack_quantity', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_config(kw.get('pg_id')))
def update_point_goods(base_id: int, point_id: int, pg_id: int):
    session = get_db()
    point = get_visible_point_or_404(base_id, point_id)
    config = _get_config_or_404(point, pg_id)
    _apply_fields(config, request.json or {})
    session.commit()
    return _config_json(session, point, config)


@pg_bp.delete('/<int:base_id>/points/<int:point_id>/goods/<int:pg_id>')
@require_base_permissions('POINT.MANAGE')
@audit_log('POINT_GOODS.REMOVE', entity='PointGoods', entity_id_arg='pg_id')
def remove_point_goods(base_id: int, point_id: int, pg_id: int):
    """Soft removal: the entry is deactivated so its price and caps come back on re-add."""
    session = get_db()
    point = get_visible_point_or_404(base_id, point_id)
    config = _get_config_or_404(point, pg_id)
    config.is_active = False
    session.commit()
    return {'deleted': True, 'id': pg_id}


@pg_bp.route('/<int:base_id>/points/<int:point_id>/inventory', methods=['GET', 'HEAD'])
@require_base_permissions('POINT.READ')
def point_inventory(base_id: int, point_id: int):
    """Goods delivered to the point so far, in pieces plus a box/pack/piece breakdown."""
    point = get_visible_point_or_404(base_id, point_id)
    session = get_db()
    stock = point_stock(session, point.id)
    goods_map = {}
    if stock:
        goods_map = {row.id: row for row in session.execute(select(Goods).where(Goods.id.in_(list(stock)))).scalars()}
    rows = []
    for goods_id in sorted(stock):
        goods = goods_map[goods_id]
        pieces = stock[goods_id]['total_pieces']
        box, pack, piece = split_pieces(pieces, goods.pack_per_box, goods.piece_per_pack)
        rows.append({
            'goods_id': goods_id,
            'goods_code': goods.code,
            'goods_name': goods.name,
            'total_pieces': pieces,
            'box_quantity': box,
            'pack_quantity': pack,
            'piece_quantity': piece,
            'last_delivered_at': iso(stock[goods_id]['last_delivered_at']),
        })
    return respond_aggregate(rows)


def _optional_count(data: dict, name: str):
    if data.get(name) in (None, ''):
        return None
    return non_negative_int(data, name)


def _apply_fields(config: PointGoods, data: dict):
    for name in ('unit_price_cents', 'max_box_quantity', 'max_pack_quantity'):
        if name in data:
            setattr(config, name, _optional_count(data, name))
    if 'is_active' in data:
        config.is_active = parse_bool(data['is_active'], 'is_active')


def _config_json(session, point: Point, c: PointGoods):
    goods = c.goods
    return {
        'id': c.id,
        'point_id': c.point_id,
        'goods_id': c.goods_id,
        'goods_code': goods.code,
        'goods_name': goods.name,
        'pack_per_box': goods.pack_per_box,
        'piece_per_pack': goods.piece_per_pack,
        'unit_price_cents': c.unit_price_cents,
        'effective_price_cents': point_pack_price(session, point.base_id, point.id, goods, c),
        'max_box_quantity': c.max_box_quantity,
        'max_pack_quantity': c.max_pack_quantity,
        'is_active': c.is_active,
        'created_at': iso(c.created_at),
        'updated_at': iso(c.updated_at),
    }


def _prefetch_config(pg_id: int):
    c = get_db().get(PointGoods, pg_id)
    if not c:
        return {}
    return {
        'unit_price_cents': c.unit_price_cents,
        'max_box_quantity': c.max_box_quantity,
        'max_pack_quantity': c.max_pack_quantity,
        'is_active': c.is_active,
    }
