from __future__ import annotations
from collections import defaultdict
from datetime import date
from flask import Blueprint, request, abort, g
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.services.code_generator import generate_code
from milicard.services.inventory import compute_stock
from milicard.services.orders import require_items, load_goods, read_quantities
from milicard.services.policy import get_in_base_or_404
from milicard.services.purchasing import arrived_pieces, ordered_pieces
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, equals, on_or_after, on_or_before
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import required_int, parse_date, iso
from milicard.models.arrival import Arrival, ArrivalItem
from milicard.models.purchase_order import PurchaseOrder
from milicard.models.location import Location

arr_bp = Blueprint('arrivals', __name__)


@arr_bp.route('/<int:base_id>/arrivals', methods=['GET', 'HEAD'])
@require_base_permissions('ARR.READ')
def list_arrivals(base_id: int):
    session = get_db()
    q = session.query(Arrival).filter(Arrival.base_id == base_id)
    q = apply_filters(q, {
        'purchase_order_id': equals(Arrival.purchase_order_id, coerce=int),
        'location_id': equals(Arrival.location_id, coerce=int),
        'start_date': on_or_after(Arrival.arrival_date),
        'end_date': on_or_before(Arrival.arrival_date),
    }, request.args)
    allowed = {
        'arrival_date': Arrival.arrival_date,
        'code': Arrival.code,
        'created_at': Arrival.created_at,
        'id': Arrival.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Arrival.id, default=[Arrival.arrival_date.desc()])
    return respond_list(q, _arrival_json)


@arr_bp.route('/<int:base_id>/arrivals/<int:arrival_id>', methods=['GET', 'HEAD'])
@require_base_permissions('ARR.READ')
def get_arrival(base_id: int, arrival_id: int):
    arrival = get_in_base_or_404(Arrival, arrival_id, base_id, 'Arrival')
    return respond_single(_arrival_json(arrival), arrival.updated_at)


@arr_bp.post('/<int:base_id>/arrivals')
@require_base_permissions('ARR.CREATE')
@audit_log('ARR.CREATE', entity='Arrival', entity_id_key='id', meta_keys=['code', 'purchase_order_id', 'location_id'])
def create_arrival(base_id: int):
    session = get_db()
    data = request.json or {}
    po = session.get(PurchaseOrder, required_int(data, 'purchase_order_id'))
    if not po or po.base_id != g.base.id:
        abort(400, description='purchase order does not belong to this base')
    if po.status != PurchaseOrder.STATUS_OPEN:
        abort(400, description='goods can only arrive against OPEN purchase orders')
    loc = session.get(Location, required_int(data, 'location_id'))
    if not loc or loc.base_id != g.base.id:
        abort(400, description='location does not belong to this base')
    code = (data.get('code') or '').strip()
    if code:
        if session.execute(select(Arrival.id).where(Arrival.code == code)).first():
            abort(409, description='arrival code exists')
    else:
        code = generate_code(session, 'ARRIVAL_ORDER', Arrival)

    ordered = ordered_pieces(po)
    already = arrived_pieces(session, [po.id])
    incoming = defaultdict(int)
    lines = []
    for raw in require_items(data):
        goods = load_goods(session, required_int(raw, 'goods_id'), require_active=False)
        if goods.id not in ordered:
            abort(400, description=f'goods {goods.code} is not on purchase order {po.code}')
        qty = read_quantities(raw, goods)
        incoming[goods.id] += qty['total_pieces']
        lines.append(ArrivalItem(goods_id=goods.id, **qty))
    for goods_id, pieces in incoming.items():
        total = already.get((po.id, goods_id), 0) + pieces
        if total > ordered[goods_id]:
            abort(400, description=f'arrived pieces {total} exceed ordered {ordered[goods_id]} for goods {goods_id}')

    arrival = Arrival(
        base_id=g.base.id,
        code=code,
        purchase_order_id=po.id,
        location_id=loc.id,
        arrival_date=parse_date(data.get('arrival_date'), 'arrival_date', default=date.today()),
        notes=data.get('notes'),
        created_by=int(get_jwt_identity()),
        items=lines,
    )
    session.add(arrival)
    session.commit()
    return _arrival_json(arrival), 201


@arr_bp.delete('/<int:base_id>/arrivals/<int:arrival_id>')
@require_base_permissions('ARR.DELETE')
@audit_log('ARR.DELETE', entity='Arrival', entity_id_arg='arrival_id')
def delete_arrival(base_id: int, arrival_id: int):
    session = get_db()
    arrival = get_in_base_or_404(Arrival, arrival_id, base_id, 'Arrival')
    po = session.get(PurchaseOrder, arrival.purchase_order_id)
    if po.status != PurchaseOrder.STATUS_OPEN:
        abort(400, description='arrivals of a closed purchase order cannot be deleted')
    removing = defaultdict(int)
    for item in arrival.items:
        removing[item.goods_id] += item.total_pieces
    stock = compute_stock(session, goods_ids=list(removing), location_ids=[arrival.location_id])
    for goods_id, pieces in removing.items():
        if stock.get((goods_id, arrival.location_id), 0) - pieces < 0:
            abort(409, description=f'goods {goods_id} from this arrival has already left the location')
    session.delete(arrival)
    session.commit()
    return {'deleted': True, 'id': arrival_id}


def _arrival_json(a: Arrival):
    return {
        'id': a.id,
        'base_id': a.base_id,
        'code': a.code,
        'purchase_order_id': a.purchase_order_id,
        'location_id': a.location_id,
        'arrival_date': iso(a.arrival_date),
        'notes': a.notes,
        'created_by': a.created_by,
        'created_at': iso(a.created_at),
        'updated_at': iso(a.updated_at),
        'items': [
            {
                'id': i.id,
                'goods_id': i.goods_id,
                'box_quantity': i.box_quantity,
                'pack_quantity': i.pack_quantity,
                'piece_quantity': i.piece_quantity,
                'total_pieces': i.total_pieces,
            }
            for i in a.items
        ],
    }
