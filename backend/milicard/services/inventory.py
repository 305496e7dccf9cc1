"""Real-time stock derived from movements.

Stock of a goods at a location (in pieces) = arrivals + transfer-ins - stock-outs.
Nothing is stored as a running balance, so every movement table is the source of truth.
"""
from __future__ import annotations
import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, Optional, Tuple

from flask import abort
from sqlalchemy import func, select

from milicard.models.arrival import Arrival, ArrivalItem
from milicard.models.goods import Goods
from milicard.models.point import PointOrder, PointOrderItem
from milicard.models.stock_out import StockOut
from milicard.models.transfer import TransferOrder
from milicard.services.code_generator import generate_code

logger = logging.getLogger(__name__)

StockKey = Tuple[int, int]  # (goods_id, location_id)


def _restrict(stmt, goods_col, location_col, base_col, base_id, goods_ids, location_ids):
    if base_id is not None:
        stmt = stmt.where(base_col == base_id)
    if goods_ids:
        stmt = stmt.where(goods_col.in_(list(goods_ids)))
    if location_ids:
        stmt = stmt.where(location_col.in_(list(location_ids)))
    return stmt


def compute_stock(
    session,
    base_id: Optional[int] = None,
    goods_ids: Optional[Iterable[int]] = None,
    location_ids: Optional[Iterable[int]] = None,
    exclude_stock_out_id: Optional[int] = None,
) -> Dict[StockKey, int]:
    stock: Dict[StockKey, int] = defaultdict(int)

    arrived = _restrict(
        select(ArrivalItem.goods_id, Arrival.location_id, func.coalesce(func.sum(ArrivalItem.total_pieces), 0))
        .join(Arrival, Arrival.id == ArrivalItem.arrival_id),
        ArrivalItem.goods_id, Arrival.location_id, Arrival.base_id, base_id, goods_ids, location_ids,
    ).group_by(ArrivalItem.goods_id, Arrival.location_id)
    for goods_id, location_id, pieces in session.execute(arrived):
        stock[(goods_id, location_id)] += int(pieces)

    transferred_in = _restrict(
        select(TransferOrder.goods_id, TransferOrder.to_location_id, func.coalesce(func.sum(TransferOrder.total_pieces), 0)),
        TransferOrder.goods_id, TransferOrder.to_location_id, TransferOrder.to_base_id, base_id, goods_ids, location_ids,
    ).group_by(TransferOrder.goods_id, TransferOrder.to_location_id)
    for goods_id, location_id, pieces in session.execute(transferred_in):
        stock[(goods_id, location_id)] += int(pieces)

    shipped = _restrict(
        select(StockOut.goods_id, StockOut.location_id, func.coalesce(func.sum(StockOut.total_pieces), 0)),
        StockOut.goods_id, StockOut.location_id, StockOut.base_id, base_id, goods_ids, location_ids,
    )
    if exclude_stock_out_id is not None:
        shipped = shipped.where(StockOut.id != exclude_stock_out_id)
    for goods_id, location_id, pieces in session.execute(shipped.group_by(StockOut.goods_id, StockOut.location_id)):
        stock[(goods_id, location_id)] -= int(pieces)

    return dict(stock)


def available_pieces(session, goods_id: int, location_id: int, exclude_stock_out_id: Optional[int] = None) -> int:
    stock = compute_stock(session, goods_ids=[goods_id], location_ids=[location_id], exclude_stock_out_id=exclude_stock_out_id)
    return stock.get((goods_id, location_id), 0)


def assert_available(session, goods_id: int, location_id: int, pieces: int, exclude_stock_out_id: Optional[int] = None):
    available = available_pieces(session, goods_id, location_id, exclude_stock_out_id)
    if pieces > available:
        logger.info('insufficient stock goods=%s location=%s requested=%s available=%s', goods_id, location_id, pieces, available)
        abort(400, description=f'insufficient stock: requested {pieces} pieces, available {available}')
    return available


def record_stock_out(
    session,
    *,
    base_id: int,
    out_type: str,
    goods_id: int,
    location_id: int,
    quantities: dict,
    created_by: int,
    out_date=None,
    target_name: Optional[str] = None,
    related_order_id: Optional[int] = None,
    related_order_code: Optional[str] = None,
    remark: Optional[str] = None,
) -> StockOut:
    """Check availability and add a stock-out row (not committed)."""
    assert_available(session, goods_id, location_id, quantities['total_pieces'])
    out = StockOut(
        base_id=base_id,
        code=generate_code(session, 'STOCK_OUT', StockOut),
        type=out_type,
        out_date=out_date or date.today(),
        goods_id=goods_id,
        location_id=location_id,
        target_name=target_name,
        related_order_id=related_order_id,
        related_order_code=related_order_code,
        remark=remark,
        created_by=created_by,
        **quantities,
    )
    session.add(out)
    session.flush()
    logger.info('stock-out %s %s goods=%s location=%s pieces=%s', out.code, out_type, goods_id, location_id, out.total_pieces)
    return out


def point_stock(session, point_id: int) -> Dict[int, dict]:
    """Goods delivered to a point (orders DELIVERED or COMPLETED), keyed by goods id.

    Each value carries the delivered ``total_pieces`` and ``last_delivered_at``.
    """
    pieces = (PointOrderItem.box_quantity * Goods.pack_per_box + PointOrderItem.pack_quantity) * Goods.piece_per_pack
    stmt = (
        select(PointOrderItem.goods_id, func.sum(pieces), func.max(PointOrder.delivered_at))
        .join(PointOrder, PointOrder.id == PointOrderItem.point_order_id)
        .join(Goods, Goods.id == PointOrderItem.goods_id)
        .where(
            PointOrder.point_id == point_id,
            PointOrder.status.in_([PointOrder.STATUS_DELIVERED, PointOrder.STATUS_COMPLETED]),
        )
        .group_by(PointOrderItem.goods_id)
    )
    return {
        goods_id: {'total_pieces': int(total or 0), 'last_delivered_at': last}
        for goods_id, total, last in session.execute(stmt)
    }
