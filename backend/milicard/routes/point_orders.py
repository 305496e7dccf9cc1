"""Point orders: PENDING -> CONFIRMED -> SHIPPING -> DELIVERED -> COMPLETED, cancel from PENDING/CONFIRMED.

Shipping writes one POINT_ORDER stock-out per goods at the chosen location, so stock drops when
the goods leave, not when the order is placed.
"""
from __future__ import annotations
from collections import defaultdict
from datetime import date, datetime, timezone
from flask import Blueprint, request, abort, g
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import func, or_
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.services.code_generator import generate_code
from milicard.services.catalog import base_pack_price, point_pack_price
from milicard.services.data_permissions import apply_data_permissions
from milicard.services.inventory import record_stock_out
from milicard.services.orders import require_items, pack_priced_line, read_payment_amount
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, contains, equals, on_or_after, on_or_before
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import validate_status, required_int, parse_date, iso
from milicard.utils.fsm import TransitionValidator
from milicard.models.goods import Goods
from milicard.models.point import Point, PointGoods, PointOrder, PointOrderItem
from milicard.models.location import Location
from milicard.models.stock_out import StockOut

pto_bp = Blueprint('point_orders', __name__)

RESOURCE = 'pointOrder'

PTO_FSM = TransitionValidator({
    PointOrder.STATUS_PENDING: {PointOrder.STATUS_CONFIRMED, PointOrder.STATUS_CANCELLED},
    PointOrder.STATUS_CONFIRMED: {PointOrder.STATUS_SHIPPING, PointOrder.STATUS_CANCELLED},
    PointOrder.STATUS_SHIPPING: {PointOrder.STATUS_DELIVERED},
    PointOrder.STATUS_DELIVERED: {PointOrder.STATUS_COMPLETED},
    PointOrder.STATUS_COMPLETED: set(),
    PointOrder.STATUS_CANCELLED: set(),
})

_DIFF = dict(diff_keys=['status'], meta_keys=['code', 'status'])


def _order_query(base_id: int):
    q = get_db().query(PointOrder).filter(PointOrder.base_id == base_id)
    return apply_data_permissions(q, RESOURCE)


def _get_order_or_404(base_id: int, order_id: int) -> PointOrder:
    order = _order_query(base_id).filter(PointOrder.id == order_id).one_or_none()
    if not order:
        abort(404, description='Point order not found')
    return order


def payment_status_for(paid: int, total: int) -> str:
    if paid <= 0:
        return PointOrder.PAYMENT_UNPAID
    if paid >= total:
        return PointOrder.PAYMENT_PAID
    return PointOrder.PAYMENT_PARTIAL


@pto_bp.route('/<int:base_id>/point-orders', methods=['GET', 'HEAD'])
@require_base_permissions('PTO.READ')
def list_point_orders(base_id: int):
    q = apply_filters(_order_query(base_id), {
        'status': equals(PointOrder.status, allowed=PointOrder.ALL_STATUSES),
        'payment_status': equals(PointOrder.payment_status, allowed=PointOrder.ALL_PAYMENT_STATUSES),
        'point_id': equals(PointOrder.point_id, coerce=int),
        'code': contains(PointOrder.code),
        'start_date': on_or_after(PointOrder.order_date),
        'end_date': on_or_before(PointOrder.order_date),
    }, request.args)
    allowed = {
        'order_date': PointOrder.order_date,
        'status': PointOrder.status,
        'total_amount_cents': PointOrder.total_amount_cents,
        'created_at': PointOrder.created_at,
        'updated_at': PointOrder.updated_at,
        'id': PointOrder.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, PointOrder.id, default=[PointOrder.order_date.desc()])
    return respond_list(q, _order_json)


@pto_bp.route('/<int:base_id>/point-orders/stats', methods=['GET'])
@require_base_permissions('PTO.READ')
def point_order_stats(base_id: int):
    q = apply_filters(_order_query(base_id), {
        'point_id': equals(PointOrder.point_id, coerce=int),
        'start_date': on_or_after(PointOrder.order_date),
        'end_date': on_or_before(PointOrder.order_date),
    }, request.args)
    by_status = {s: 0 for s in PointOrder.ALL_STATUSES}
    for status, count in q.with_entities(PointOrder.status, func.count(PointOrder.id)).group_by(PointOrder.status):
        by_status[status] = int(count)
    live = q.filter(PointOrder.status != PointOrder.STATUS_CANCELLED)
    total, paid = live.with_entities(
        func.coalesce(func.sum(PointOrder.total_amount_cents), 0),
        func.coalesce(func.sum(PointOrder.paid_amount_cents), 0),
    ).one()
    return {
        'total_orders': sum(by_status.values()),
        'by_status': by_status,
        'total_amount_cents': int(total),
        'paid_amount_cents': int(paid),
        'unpaid_amount_cents': int(total) - int(paid),
    }


AVAILABLE_LIMIT = 50


@pto_bp.get('/<int:base_id>/point-orders/available-points')
@require_base_permissions('PTO.CREATE')
def available_points(base_id: int):
    """Active points the caller may order for, by name, for the order form."""
    q = apply_data_permissions(get_db().query(Point), 'point').filter(
        Point.base_id == base_id, Point.is_active.is_(True)
    )
    keyword = (request.args.get('keyword') or '').strip()
    if keyword:
        like = f'%{keyword}%'
        q = q.filter(or_(Point.name.ilike(like), Point.code.ilike(like), Point.address.ilike(like)))
    rows = q.order_by(Point.name.asc(), Point.id.asc()).limit(AVAILABLE_LIMIT).all()
    return {'data': [{
        'id': p.id,
        'code': p.code,
        'name': p.name,
        'address': p.address,
        'contact_person': p.contact_person,
        'contact_phone': p.contact_phone,
    } for p in rows]}


@pto_bp.get('/<int:base_id>/point-orders/available-goods')
@require_base_permissions('PTO.CREATE')
def available_goods(base_id: int):
    """Goods orderable for a point with their default price per pack.

    With ``point_id`` only the point's active goods are listed, carrying its caps; otherwise every
    active goods at the base price.
    """
    session = get_db()
    keyword = (request.args.get('keyword') or '').strip()
    raw_point = request.args.get('point_id')
    if raw_point not in (None, ''):
        try:
            point_id = int(raw_point)
        except ValueError:
            abort(400, description='point_id invalid')
        point = apply_data_permissions(session.query(Point), 'point').filter(
            Point.base_id == base_id, Point.id == point_id
        ).one_or_none()
        if not point:
            abort(404, description='Point not found')
        q = session.query(PointGoods, Goods).join(Goods, Goods.id == PointGoods.goods_id).filter(
            PointGoods.point_id == point.id, PointGoods.is_active.is_(True), Goods.is_active.is_(True)
        )
        if keyword:
            q = q.filter(or_(Goods.name.ilike(f'%{keyword}%'), Goods.code.ilike(f'%{keyword}%')))
        rows = []
        for config, goods in q.order_by(Goods.code.asc()).all():
            rows.append(_available_json(goods, point_pack_price(session, base_id, point.id, goods, config), {
                'point_goods_id': config.id,
                'max_box_quantity': config.max_box_quantity,
                'max_pack_quantity': config.max_pack_quantity,
            }))
        return {'data': rows}
    q = session.query(Goods).filter(Goods.is_active.is_(True))
    if keyword:
        q = q.filter(or_(Goods.name.ilike(f'%{keyword}%'), Goods.code.ilike(f'%{keyword}%')))
    rows = q.order_by(Goods.code.asc()).limit(AVAILABLE_LIMIT).all()
    return {'data': [_available_json(goods, base_pack_price(session, base_id, goods)) for goods in rows]}


def _available_json(goods: Goods, price: int, extra=None):
    body = {
        'id': goods.id,
        'code': goods.code,
        'name': goods.name,
        'pack_per_box': goods.pack_per_box,
        'piece_per_pack': goods.piece_per_pack,
        'unit_price_cents': price,
        'point_goods_id': None,
        'max_box_quantity': None,
        'max_pack_quantity': None,
    }
    body.update(extra or {})
    return body


@pto_bp.route('/<int:base_id>/point-orders/<int:order_id>', methods=['GET', 'HEAD'])
@require_base_permissions('PTO.READ')
def get_point_order(base_id: int, order_id: int):
    order = _get_order_or_404(base_id, order_id)
    return respond_single(_order_json(order), order.updated_at)


@pto_bp.post('/<int:base_id>/point-orders')
@require_base_permissions('PTO.CREATE')
@audit_log('PTO.CREATE', entity='PointOrder', entity_id_key='id', meta_keys=['code', 'point_id', 'total_amount_cents'])
def create_point_order(base_id: int):
    session = get_db()
    data = request.json or {}
    point = session.get(Point, required_int(data, 'point_id'))
    if not point or point.base_id != g.base.id:
        abort(400, description='point does not belong to this base')
    if not point.is_active:
        abort(400, description='point is inactive')
    items = require_items(data)
    order = PointOrder(
        code=generate_code(session, 'POINT_ORDER', PointOrder),
        base_id=g.base.id,
        point_id=point.id,
        order_date=parse_date(data.get('order_date'), 'order_date', default=date.today()),
        status=PointOrder.STATUS_PENDING,
        payment_status=PointOrder.PAYMENT_UNPAID,
        paid_amount_cents=0,
        notes=data.get('notes'),
        created_by=int(get_jwt_identity()),
    )
    _replace_items(order, items)
    session.add(order)
    session.commit()
    return _order_json(order), 201


@pto_bp.put('/<int:base_id>/point-orders/<int:order_id>')
@require_base_permissions('PTO.UPDATE')
@audit_log('PTO.UPDATE', entity='PointOrder', entity_id_key='id', diff_keys=['total_amount_cents', 'order_date'],
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')), meta_keys=['code'])
def update_point_order(base_id: int, order_id: int):
    session = get_db()
    order = _get_order_or_404(base_id, order_id)
    if PTO_FSM.is_terminal(order.status):
        abort(400, description=f'{order.status} orders cannot be updated')
    data = request.json or {}
    if 'items' in data:
        if order.status != PointOrder.STATUS_PENDING:
            abort(400, description='items can only change while the order is PENDING')
        _replace_items(order, require_items(data))
        if order.paid_amount_cents > order.total_amount_cents:
            abort(400, description='total cannot drop below the paid amount')
        order.payment_status = payment_status_for(order.paid_amount_cents, order.total_amount_cents)
    if 'order_date' in data:
        order.order_date = parse_date(data.get('order_date'), 'order_date')
    if 'notes' in data:
        order.notes = data['notes']
    session.commit()
    return _order_json(order)


@pto_bp.delete('/<int:base_id>/point-orders/<int:order_id>')
@require_base_permissions('PTO.DELETE')
@audit_log('PTO.DELETE', entity='PointOrder', entity_id_arg='order_id')
def delete_point_order(base_id: int, order_id: int):
    session = get_db()
    order = _get_order_or_404(base_id, order_id)
    if order.status not in (PointOrder.STATUS_PENDING, PointOrder.STATUS_CANCELLED):
        abort(400, description='only PENDING or CANCELLED orders can be deleted')
    session.delete(order)
    session.commit()
    return {'deleted': True, 'id': order_id}


@pto_bp.post('/<int:base_id>/point-orders/<int:order_id>/confirm')
@require_base_permissions('PTO.CONFIRM')
@audit_log('PTO.CONFIRM', entity='PointOrder', entity_id_key='id',
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')), **_DIFF)
def confirm_point_order(base_id: int, order_id: int):
    order = _get_order_or_404(base_id, order_id)
    _advance(order, PointOrder.STATUS_CONFIRMED, 'confirmed')
    get_db().commit()
    return _order_json(order)


@pto_bp.post('/<int:base_id>/point-orders/<int:order_id>/ship')
@require_base_permissions('PTO.SHIP')
@audit_log('PTO.SHIP', entity='PointOrder', entity_id_key='id',
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')), **_DIFF)
def ship_point_order(base_id: int, order_id: int):
    session = get_db()
    order = _get_order_or_404(base_id, order_id)
    PTO_FSM.assert_can_transition(order.status, PointOrder.STATUS_SHIPPING)
    data = request.json or {}
    loc = session.get(Location, required_int(data, 'location_id'))
    if not loc or loc.base_id != g.base.id:
        abort(400, description='location does not belong to this base')
    point = session.get(Point, order.point_id)
    shipped = defaultdict(lambda: {'box_quantity': 0, 'pack_quantity': 0, 'piece_quantity': 0, 'total_pieces': 0})
    for item in order.items:
        goods = item.goods
        line = shipped[goods.id]
        line['box_quantity'] += item.box_quantity
        line['pack_quantity'] += item.pack_quantity
        line['total_pieces'] += (item.box_quantity * goods.pack_per_box + item.pack_quantity) * goods.piece_per_pack
    user_id = int(get_jwt_identity())
    for goods_id, qty in shipped.items():
        record_stock_out(
            session,
            base_id=g.base.id,
            out_type=StockOut.TYPE_POINT_ORDER,
            goods_id=goods_id,
            location_id=loc.id,
            quantities=qty,
            created_by=user_id,
            target_name=point.name if point else None,
            related_order_id=order.id,
            related_order_code=order.code,
        )
    order.shipping_location_id = loc.id
    _advance(order, PointOrder.STATUS_SHIPPING, 'shipped')
    session.commit()
    return _order_json(order)


@pto_bp.post('/<int:base_id>/point-orders/<int:order_id>/deliver')
@require_base_permissions('PTO.DELIVER')
@audit_log('PTO.DELIVER', entity='PointOrder', entity_id_key='id',
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')), **_DIFF)
def deliver_point_order(base_id: int, order_id: int):
    order = _get_order_or_404(base_id, order_id)
    _advance(order, PointOrder.STATUS_DELIVERED, 'delivered')
    get_db().commit()
    return _order_json(order)


@pto_bp.post('/<int:base_id>/point-orders/<int:order_id>/complete')
@require_base_permissions('PTO.COMPLETE')
@audit_log('PTO.COMPLETE', entity='PointOrder', entity_id_key='id',
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')), **_DIFF)
def complete_point_order(base_id: int, order_id: int):
    order = _get_order_or_404(base_id, order_id)
    _advance(order, PointOrder.STATUS_COMPLETED, 'completed')
    get_db().commit()
    return _order_json(order)


@pto_bp.post('/<int:base_id>/point-orders/<int:order_id>/cancel')
@require_base_permissions('PTO.CANCEL')
@audit_log('PTO.CANCEL', entity='PointOrder', entity_id_key='id',
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')), **_DIFF)
def cancel_point_order(base_id: int, order_id: int):
    order = _get_order_or_404(base_id, order_id)
    _advance(order, PointOrder.STATUS_CANCELLED, 'cancelled')
    order.cancel_reason = (request.get_json(silent=True) or {}).get('reason')
    get_db().commit()
    return _order_json(order)


@pto_bp.post('/<int:base_id>/point-orders/<int:order_id>/payments')
@require_base_permissions('PTO.PAY')
@audit_log('PTO.PAY', entity='PointOrder', entity_id_key='id', diff_keys=['paid_amount_cents', 'payment_status'],
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')), meta_keys=['code', 'payment_status'])
def pay_point_order(base_id: int, order_id: int):
    order = _get_order_or_404(base_id, order_id)
    if order.status == PointOrder.STATUS_CANCELLED:
        abort(400, description='cancelled orders cannot be paid')
    amount = read_payment_amount(request.json or {}, order.total_amount_cents - order.paid_amount_cents)
    order.paid_amount_cents += amount
    order.payment_status = payment_status_for(order.paid_amount_cents, order.total_amount_cents)
    get_db().commit()
    return _order_json(order)


def _advance(order: PointOrder, target: str, step: str):
    PTO_FSM.assert_can_transition(order.status, target)
    order.status = validate_status(target, PointOrder.ALL_STATUSES)
    setattr(order, f'{step}_at', datetime.now(timezone.utc))
    setattr(order, f'{step}_by', int(get_jwt_identity()))


def _replace_items(order: PointOrder, raw_items: list):
    session = get_db()
    lines = [pack_priced_line(session, raw, order.base_id, order.point_id) for raw in raw_items]
    order.items.clear()
    for line in lines:
        order.items.append(PointOrderItem(**line))
    order.total_amount_cents = sum(line['amount_cents'] for line in lines)


def _order_json(o: PointOrder):
    return {
        'id': o.id,
        'code': o.code,
        'base_id': o.base_id,
        'point_id': o.point_id,
        'order_date': iso(o.order_date),
        'status': o.status,
        'payment_status': o.payment_status,
        'total_amount_cents': o.total_amount_cents,
        'paid_amount_cents': o.paid_amount_cents,
        'unpaid_amount_cents': o.total_amount_cents - o.paid_amount_cents,
        'notes': o.notes,
        'shipping_location_id': o.shipping_location_id,
        'confirmed_at': iso(o.confirmed_at),
        'confirmed_by': o.confirmed_by,
        'shipped_at': iso(o.shipped_at),
        'shipped_by': o.shipped_by,
        'delivered_at': iso(o.delivered_at),
        'delivered_by': o.delivered_by,
        'completed_at': iso(o.completed_at),
        'completed_by': o.completed_by,
        'cancelled_at': iso(o.cancelled_at),
        'cancelled_by': o.cancelled_by,
        'cancel_reason': o.cancel_reason,
        'created_by': o.created_by,
        'created_at': iso(o.created_at),
        'updated_at': iso(o.updated_at),
        'items': [
            {
                'id': i.id,
                'goods_id': i.goods_id,
                'box_quantity': i.box_quantity,
                'pack_quantity': i.pack_quantity,
                'unit_price_cents': i.unit_price_cents,
                'amount_cents': i.amount_cents,
            }
            for i in o.items
        ],
    }


def _prefetch_order(order_id: int):
    o = get_db().get(PointOrder, order_id)
    if not o:
        return {}
    return {
        'status': o.status,
        'payment_status': o.payment_status,
        'paid_amount_cents': o.paid_amount_cents,
        'total_amount_cents': o.total_amount_cents,
        'order_date': iso(o.order_date),
    }
