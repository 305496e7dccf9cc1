"""Arrival progress of purchase orders, aggregated from arrival items."""
from __future__ import annotations
from collections import defaultdict
from typing import Dict, Iterable, Tuple

from sqlalchemy import select, func

from milicard.models.arrival import Arrival, ArrivalItem
from milicard.models.purchase_order import PurchaseOrder
from milicard.models.supplier import SupplierBase

ArrivedKey = Tuple[int, int]  # (purchase_order_id, goods_id)


def arrived_pieces(session, po_ids: Iterable[int], exclude_arrival_id: int = None) -> Dict[ArrivedKey, int]:
    po_ids = list(po_ids)
    if not po_ids:
        return {}
    stmt = (
        select(Arrival.purchase_order_id, ArrivalItem.goods_id, func.coalesce(func.sum(ArrivalItem.total_pieces), 0))
        .join(Arrival, Arrival.id == ArrivalItem.arrival_id)
        .where(Arrival.purchase_order_id.in_(po_ids))
        .group_by(Arrival.purchase_order_id, ArrivalItem.goods_id)
    )
    if exclude_arrival_id is not None:
        stmt = stmt.where(Arrival.id != exclude_arrival_id)
    return {(po_id, goods_id): int(pieces) for po_id, goods_id, pieces in session.execute(stmt)}


def ordered_pieces(po: PurchaseOrder) -> Dict[int, int]:
    """Ordered pieces per goods; a goods may appear on several lines."""
    ordered: Dict[int, int] = defaultdict(int)
    for item in po.items:
        ordered[item.goods_id] += item.total_pieces
    return dict(ordered)


def arrival_status(po: PurchaseOrder, arrived: Dict[ArrivedKey, int]) -> str:
    ordered = ordered_pieces(po)
    got = {goods_id: arrived.get((po.id, goods_id), 0) for goods_id in ordered}
    if not any(got.values()):
        return PurchaseOrder.ARRIVAL_NOT_ARRIVED
    if all(got[goods_id] >= pieces for goods_id, pieces in ordered.items()):
        return PurchaseOrder.ARRIVAL_ARRIVED
    return PurchaseOrder.ARRIVAL_PARTIAL


def has_arrivals(session, po_id: int) -> bool:
    return session.execute(select(Arrival.id).where(Arrival.purchase_order_id == po_id).limit(1)).first() is not None


def active_supplier_link(session, base_id: int, supplier_id: int):
    return session.execute(
        select(SupplierBase).where(
            SupplierBase.supplier_id == supplier_id,
            SupplierBase.base_id == base_id,
            SupplierBase.is_active.is_(True),
        )
    ).scalar_one_or_none()
