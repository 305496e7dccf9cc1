"""Order line building and payment bookkeeping shared by purchase, point and distribution orders."""
from __future__ import annotations
from typing import Any, Dict, List

from flask import abort

from milicard.models.goods import Goods
from milicard.services.catalog import point_goods, point_pack_price, check_point_limits
from milicard.utils.quantities import total_pieces, box_priced_amount, pack_priced_amount
from milicard.utils.validation import required_int, non_negative_int, optional_int


def require_items(data: dict) -> List[dict]:
    items = data.get('items')
    if not isinstance(items, list) or not items:
        abort(400, description='items must be a non-empty list')
    for raw in items:
        if not isinstance(raw, dict):
            abort(400, description='items must be objects')
    return items


def load_goods(session, goods_id: int, require_active: bool = True) -> Goods:
    goods = session.get(Goods, goods_id)
    if not goods:
        abort(400, description=f'goods {goods_id} not found')
    if require_active and not goods.is_active:
        abort(400, description=f'goods {goods.code} is inactive')
    return goods


def read_quantities(raw: dict, goods: Goods, with_piece: bool = True) -> Dict[str, int]:
    box = non_negative_int(raw, 'box_quantity')
    pack = non_negative_int(raw, 'pack_quantity')
    piece = non_negative_int(raw, 'piece_quantity') if with_piece else 0
    pieces = total_pieces(box, pack, piece, goods.pack_per_box, goods.piece_per_pack)
    if pieces <= 0:
        abort(400, description=f'quantity for goods {goods.code} must be positive')
    return {'box_quantity': box, 'pack_quantity': pack, 'piece_quantity': piece, 'total_pieces': pieces}


def box_priced_line(session, raw: dict) -> Dict[str, Any]:
    """Line priced per box (purchases, distribution): pack/piece prices derive from packaging."""
    goods = load_goods(session, required_int(raw, 'goods_id'))
    qty = read_quantities(raw, goods)
    price = optional_int(raw, 'unit_price_cents')
    if price is None:
        price = goods.purchase_price_cents
    if price < 0:
        abort(400, description='unit_price_cents must be >= 0')
    amount = box_priced_amount(qty['box_quantity'], qty['pack_quantity'], qty['piece_quantity'], price, goods.pack_per_box, goods.piece_per_pack)
    return {'goods_id': goods.id, 'unit_price_cents': price, 'amount_cents': amount, **qty}


def pack_priced_line(session, raw: dict, base_id: int, point_id: int) -> Dict[str, Any]:
    """Point order line: ``(box * pack_per_box + pack) * unit price per pack``.

    Without an explicit ``unit_price_cents`` the point price applies (see ``catalog.point_pack_price``).
    """
    goods = load_goods(session, required_int(raw, 'goods_id'))
    qty = read_quantities(raw, goods, with_piece=False)
    config = point_goods(session, point_id, goods.id)
    check_point_limits(config, goods, qty['box_quantity'], qty['pack_quantity'])
    price = optional_int(raw, 'unit_price_cents')
    if price is None:
        price = point_pack_price(session, base_id, point_id, goods, config)
    if price < 0:
        abort(400, description='unit_price_cents must be >= 0')
    amount = pack_priced_amount(qty['box_quantity'], qty['pack_quantity'], price, goods.pack_per_box)
    return {
        'goods_id': goods.id,
        'box_quantity': qty['box_quantity'],
        'pack_quantity': qty['pack_quantity'],
        'unit_price_cents': price,
        'amount_cents': amount,
    }


def read_payment_amount(data: dict, unpaid_cents: int) -> int:
    amount = required_int(data, 'amount_cents')
    if amount <= 0:
        abort(400, description='amount_cents must be positive')
    if amount > unpaid_cents:
        abort(400, description=f'amount_cents exceeds unpaid amount {unpaid_cents}')
    return amount
