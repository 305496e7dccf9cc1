from __future__ import annotations
from collections import defaultdict
from flask import Blueprint, request, abort
from sqlalchemy import select
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.services.global_settings import low_stock_rule, threshold_pieces
from milicard.services.inventory import compute_stock
from milicard.utils.filters import parse_bool_param
from milicard.utils.listing import respond_aggregate
from milicard.utils.quantities import split_pieces
from milicard.models.goods import Goods
from milicard.models.location import Location

inv_bp = Blueprint('inventory', __name__)


def _int_arg(name: str):
    raw = request.args.get(name)
    if raw in (None, ''):
        return None
    try:
        return int(raw)
    except ValueError:
        abort(400, description=f'{name} invalid')


def _flag_arg(name: str) -> bool:
    raw = request.args.get(name)
    if raw in (None, ''):
        return False
    try:
        return parse_bool_param(raw)
    except ValueError:
        abort(400, description=f'{name} invalid')


def _load(model, ids):
    if not ids:
        return {}
    return {row.id: row for row in get_db().execute(select(model).where(model.id.in_(list(ids)))).scalars()}


def _breakdown(pieces: int, goods: Goods):
    box, pack, piece = split_pieces(pieces, goods.pack_per_box, goods.piece_per_pack)
    return {'box_quantity': box, 'pack_quantity': pack, 'piece_quantity': piece}


@inv_bp.route('/<int:base_id>/inventory', methods=['GET', 'HEAD'])
@require_base_permissions('INV.READ')
def list_inventory(base_id: int):
    """Current stock per goods and location of the base, in pieces plus a box/pack/piece breakdown."""
    session = get_db()
    location_id = _int_arg('location_id')
    goods_id = _int_arg('goods_id')
    low_only = _flag_arg('low_only')
    stock = compute_stock(
        session,
        base_id=base_id,
        goods_ids=[goods_id] if goods_id is not None else None,
        location_ids=[location_id] if location_id is not None else None,
    )
    goods_map = _load(Goods, {k[0] for k in stock})
    rule = low_stock_rule()
    loc_map = _load(Location, {k[1] for k in stock})
    rows = []
    for (g_id, loc_id), pieces in sorted(stock.items()):
        goods = goods_map.get(g_id)
        loc = loc_map.get(loc_id)
        if goods is None or loc is None or loc.base_id != base_id or pieces == 0:
            continue
        threshold = threshold_pieces(rule, goods.pack_per_box, goods.piece_per_pack)
        low = threshold is not None and pieces < threshold
        if low_only and not low:
            continue
        rows.append({
            'goods_id': g_id,
            'goods_code': goods.code,
            'goods_name': goods.name,
            'location_id': loc_id,
            'location_name': loc.name,
            'location_type': loc.type,
            'total_pieces': pieces,
            **_breakdown(pieces, goods),
            'low_stock': low,
        })
    return respond_aggregate(rows)


@inv_bp.route('/<int:base_id>/inventory/summary', methods=['GET', 'HEAD'])
@require_base_permissions('INV.READ')
def inventory_summary(base_id: int):
    session = get_db()
    stock = compute_stock(session, base_id=base_id)
    loc_map = _load(Location, {k[1] for k in stock})
    per_goods = defaultdict(int)
    locations = defaultdict(set)
    for (g_id, loc_id), pieces in stock.items():
        loc = loc_map.get(loc_id)
        if loc is None or loc.base_id != base_id or pieces == 0:
            continue
        per_goods[g_id] += pieces
        locations[g_id].add(loc_id)
    goods_map = _load(Goods, per_goods)
    rows = []
    for g_id in sorted(per_goods):
        goods = goods_map[g_id]
        rows.append({
            'goods_id': g_id,
            'goods_code': goods.code,
            'goods_name': goods.name,
            'total_pieces': per_goods[g_id],
            **_breakdown(per_goods[g_id], goods),
            'location_count': len(locations[g_id]),
            'stock_value_cents': per_goods[g_id] * goods.purchase_price_cents // (goods.pack_per_box * goods.piece_per_pack),
        })
    return respond_aggregate(rows)
