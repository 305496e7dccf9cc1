from __future__ import annotations
from datetime import date
from flask import Blueprint, request, abort, g
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import func
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.services.code_generator import generate_code
from milicard.services.data_permissions import apply_data_permissions
from milicard.services.orders import require_items, box_priced_line, read_payment_amount
from milicard.services.policy import get_in_base_or_404
from milicard.services.purchasing import arrived_pieces, arrival_status, has_arrivals, active_supplier_link
from milicard.utils.listing import apply_pagination, respond_rows, respond_single, latest_timestamp
from milicard.utils.filters import apply_filters, contains, equals, on_or_after, on_or_before, parse_bool_param
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import validate_status, optional_int, parse_date, iso
from milicard.utils.fsm import TransitionValidator
from milicard.models.purchase_order import PurchaseOrder, PurchaseOrderItem, PurchasePayment
from milicard.models.location import Location

po_bp = Blueprint('purchase_orders', __name__)

PO_FSM = TransitionValidator({
    PurchaseOrder.STATUS_OPEN: {PurchaseOrder.STATUS_CLOSED, PurchaseOrder.STATUS_CANCELLED},
    PurchaseOrder.STATUS_CLOSED: set(),
    PurchaseOrder.STATUS_CANCELLED: set(),
})

_PAYABLE = func.coalesce(PurchaseOrder.actual_amount_cents, PurchaseOrder.total_amount_cents)


def _po_query(base_id: int):
    q = get_db().query(PurchaseOrder).filter(PurchaseOrder.base_id == base_id)
    return apply_data_permissions(q, 'purchaseOrder')


@po_bp.route('/<int:base_id>/purchase-orders', methods=['GET', 'HEAD'])
@require_base_permissions('PO.READ')
def list_purchase_orders(base_id: int):
    session = get_db()
    q = apply_filters(_po_query(base_id), {
        'supplier_id': equals(PurchaseOrder.supplier_id, coerce=int),
        'status': equals(PurchaseOrder.status, allowed=PurchaseOrder.ALL_STATUSES),
        'code': contains(PurchaseOrder.code),
        'start_date': on_or_after(PurchaseOrder.purchase_date),
        'end_date': on_or_before(PurchaseOrder.purchase_date),
    }, request.args)
    allowed = {
        'code': PurchaseOrder.code,
        'purchase_date': PurchaseOrder.purchase_date,
        'status': PurchaseOrder.status,
        'total_amount_cents': PurchaseOrder.total_amount_cents,
        'created_at': PurchaseOrder.created_at,
        'updated_at': PurchaseOrder.updated_at,
        'id': PurchaseOrder.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, PurchaseOrder.id,
                         default=[PurchaseOrder.purchase_date.desc()])
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    arrived = arrived_pieces(session, [po.id for po in rows])
    return respond_rows([_po_json(po, arrived) for po in rows], total, limit, offset, latest_timestamp(rows))


@po_bp.route('/<int:base_id>/purchase-orders/stats', methods=['GET'])
@require_base_permissions('PO.READ')
def purchase_order_stats(base_id: int):
    q = apply_filters(_po_query(base_id), {
        'start_date': on_or_after(PurchaseOrder.purchase_date),
        'end_date': on_or_before(PurchaseOrder.purchase_date),
    }, request.args)
    q = q.filter(PurchaseOrder.status != PurchaseOrder.STATUS_CANCELLED)
    count, amount, suppliers = q.with_entities(
        func.count(PurchaseOrder.id),
        func.coalesce(func.sum(PurchaseOrder.total_amount_cents), 0),
        func.count(func.distinct(PurchaseOrder.supplier_id)),
    ).one()
    return {
        'total_orders': int(count),
        'total_amount_cents': int(amount),
        'unique_suppliers': int(suppliers),
        'average_amount_cents': int(round(amount / count)) if count else 0,
    }


@po_bp.route('/<int:base_id>/purchase-orders/<int:po_id>', methods=['GET', 'HEAD'])
@require_base_permissions('PO.READ')
def get_purchase_order(base_id: int, po_id: int):
    po = _get_po_or_404(base_id, po_id)
    body = _po_json(po, arrived_pieces(get_db(), [po.id]), with_payments=True)
    return respond_single(body, po.updated_at)


@po_bp.post('/<int:base_id>/purchase-orders')
@require_base_permissions('PO.CREATE')
@audit_log('PO.CREATE', entity='PurchaseOrder', entity_id_key='id', meta_keys=['code', 'supplier_id', 'total_amount_cents'])
def create_purchase_order(base_id: int):
    session = get_db()
    data = request.json or {}
    items = require_items(data)
    po = PurchaseOrder(
        base_id=g.base.id,
        code=generate_code(session, 'PURCHASE_ORDER', PurchaseOrder),
        supplier_id=_check_supplier(data),
        target_location_id=_check_location(data),
        purchase_date=parse_date(data.get('purchase_date'), 'purchase_date', default=date.today()),
        actual_amount_cents=_actual_amount(data),
        notes=data.get('notes'),
        status=PurchaseOrder.STATUS_OPEN,
        created_by=int(get_jwt_identity()),
    )
    _replace_items(po, items)
    session.add(po)
    session.commit()
    return _po_json(po, {}), 201


@po_bp.put('/<int:base_id>/purchase-orders/<int:po_id>')
@require_base_permissions('PO.UPDATE')
@audit_log('PO.UPDATE', entity='PurchaseOrder', entity_id_key='id',
           diff_keys=['supplier_id', 'total_amount_cents', 'actual_amount_cents', 'purchase_date'],
           pre_fetch=lambda a, kw: _prefetch_po(kw.get('po_id')), meta_keys=['code'])
def update_purchase_order(base_id: int, po_id: int):
    session = get_db()
    po = _get_po_or_404(base_id, po_id)
    if po.status != PurchaseOrder.STATUS_OPEN:
        abort(400, description='only OPEN purchase orders can be updated')
    data = request.json or {}
    if 'supplier_id' in data:
        po.supplier_id = _check_supplier(data)
    if 'target_location_id' in data:
        po.target_location_id = _check_location(data)
    if 'purchase_date' in data:
        po.purchase_date = parse_date(data.get('purchase_date'), 'purchase_date')
    if 'actual_amount_cents' in data:
        po.actual_amount_cents = _actual_amount(data)
    if 'notes' in data:
        po.notes = data['notes']
    if 'items' in data:
        if has_arrivals(session, po.id):
            abort(400, description='items cannot change once goods have arrived')
        _replace_items(po, require_items(data))
    if po.paid_amount_cents > po.payable_cents:
        abort(400, description='payable amount cannot drop below the paid amount')
    session.commit()
    return _po_json(po, arrived_pieces(session, [po.id]))


@po_bp.delete('/<int:base_id>/purchase-orders/<int:po_id>')
@require_base_permissions('PO.DELETE')
@audit_log('PO.DELETE', entity='PurchaseOrder', entity_id_arg='po_id')
def delete_purchase_order(base_id: int, po_id: int):
    session = get_db()
    po = _get_po_or_404(base_id, po_id)
    if has_arrivals(session, po.id):
        abort(409, description='purchase order has arrivals')
    session.delete(po)
    session.commit()
    return {'deleted': True, 'id': po_id}


@po_bp.post('/<int:base_id>/purchase-orders/<int:po_id>/close')
@require_base_permissions('PO.CLOSE')
@audit_log('PO.CLOSE', entity='PurchaseOrder', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_po(kw.get('po_id')), meta_keys=['status'])
def close_purchase_order(base_id: int, po_id: int):
    session = get_db()
    po = _get_po_or_404(base_id, po_id)
    PO_FSM.assert_can_transition(po.status, PurchaseOrder.STATUS_CLOSED)
    po.status = validate_status(PurchaseOrder.STATUS_CLOSED, PurchaseOrder.ALL_STATUSES)
    session.commit()
    return _po_json(po, arrived_pieces(session, [po.id]))


@po_bp.post('/<int:base_id>/purchase-orders/<int:po_id>/cancel')
@require_base_permissions('PO.CLOSE')
@audit_log('PO.CANCEL', entity='PurchaseOrder', entity_id_key='id', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_po(kw.get('po_id')), meta_keys=['status'])
def cancel_purchase_order(base_id: int, po_id: int):
    session = get_db()
    po = _get_po_or_404(base_id, po_id)
    PO_FSM.assert_can_transition(po.status, PurchaseOrder.STATUS_CANCELLED)
    if has_arrivals(session, po.id):
        abort(400, description='purchase order with arrivals cannot be cancelled')
    po.status = validate_status(PurchaseOrder.STATUS_CANCELLED, PurchaseOrder.ALL_STATUSES)
    session.commit()
    return _po_json(po, {})


@po_bp.post('/<int:base_id>/purchase-orders/<int:po_id>/payments')
@require_base_permissions('PO.PAY')
@audit_log('PO.PAY', entity='PurchaseOrder', entity_id_key='id', diff_keys=['paid_amount_cents'],
           pre_fetch=lambda a, kw: _prefetch_po(kw.get('po_id')), meta_keys=['code', 'unpaid_amount_cents'])
def pay_purchase_order(base_id: int, po_id: int):
    session = get_db()
    po = _get_po_or_404(base_id, po_id)
    if po.status == PurchaseOrder.STATUS_CANCELLED:
        abort(400, description='cancelled purchase orders cannot be paid')
    data = request.json or {}
    amount = read_payment_amount(data, po.payable_cents - po.paid_amount_cents)
    po.payments.append(PurchasePayment(
        amount_cents=amount,
        paid_on=parse_date(data.get('paid_on'), 'paid_on', default=date.today()),
        method=data.get('method'),
        notes=data.get('notes'),
        created_by=int(get_jwt_identity()),
    ))
    po.paid_amount_cents += amount
    session.commit()
    return _po_json(po, arrived_pieces(session, [po.id]), with_payments=True), 201


@po_bp.route('/<int:base_id>/payables', methods=['GET', 'HEAD'])
@require_base_permissions('PO.READ')
def list_payables(base_id: int):
    q = _po_query(base_id).filter(PurchaseOrder.status != PurchaseOrder.STATUS_CANCELLED)
    q = apply_filters(q, {
        'supplier_id': equals(PurchaseOrder.supplier_id, coerce=int),
        'unpaid_only': {
            'coerce': parse_bool_param,
            'op': lambda qu, v: qu.filter(_PAYABLE > PurchaseOrder.paid_amount_cents) if v else qu,
        },
    }, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), {
        'purchase_date': PurchaseOrder.purchase_date,
        'unpaid_amount_cents': _PAYABLE - PurchaseOrder.paid_amount_cents,
        'id': PurchaseOrder.id,
    }, PurchaseOrder.id, default=[PurchaseOrder.purchase_date.asc()])
    paged_q, total, limit, offset = apply_pagination(q)
    rows = paged_q.all()
    return respond_rows([_payable_json(po) for po in rows], total, limit, offset, latest_timestamp(rows))


def _get_po_or_404(base_id: int, po_id: int) -> PurchaseOrder:
    return get_in_base_or_404(PurchaseOrder, po_id, base_id, 'Purchase order')


def _check_supplier(data: dict) -> int:
    supplier_id = optional_int(data, 'supplier_id')
    if supplier_id is None:
        abort(400, description='supplier_id required')
    if not active_supplier_link(get_db(), g.base.id, supplier_id):
        abort(400, description='supplier is not active in this base')
    return supplier_id


def _check_location(data: dict):
    location_id = optional_int(data, 'target_location_id')
    if location_id is None:
        return None
    loc = get_db().get(Location, location_id)
    if not loc or loc.base_id != g.base.id:
        abort(400, description='target location does not belong to this base')
    return location_id


def _actual_amount(data: dict):
    amount = optional_int(data, 'actual_amount_cents')
    if amount is not None and amount < 0:
        abort(400, description='actual_amount_cents must be >= 0')
    return amount


def _replace_items(po: PurchaseOrder, raw_items: list):
    session = get_db()
    lines = [box_priced_line(session, raw) for raw in raw_items]
    po.items.clear()
    for line in lines:
        po.items.append(PurchaseOrderItem(**line))
    po.total_amount_cents = sum(line['amount_cents'] for line in lines)


def _item_json(item: PurchaseOrderItem, arrived: int):
    return {
        'id': item.id,
        'goods_id': item.goods_id,
        'goods_code': item.goods.code if item.goods else None,
        'goods_name': item.goods.name if item.goods else None,
        'box_quantity': item.box_quantity,
        'pack_quantity': item.pack_quantity,
        'piece_quantity': item.piece_quantity,
        'unit_price_cents': item.unit_price_cents,
        'total_pieces': item.total_pieces,
        'amount_cents': item.amount_cents,
        'arrived_pieces': arrived,
        'diff_pieces': item.total_pieces - arrived,
    }


def _items_json(po: PurchaseOrder, arrived: dict):
    # arrivals are tracked per goods; repeated lines of one goods are filled in order
    remaining = {}
    out = []
    for item in po.items:
        left = remaining.setdefault(item.goods_id, arrived.get((po.id, item.goods_id), 0))
        used = min(left, item.total_pieces)
        remaining[item.goods_id] = left - used
        out.append(_item_json(item, used))
    return out


def _po_json(po: PurchaseOrder, arrived: dict, with_payments: bool = False):
    body = {
        'id': po.id,
        'base_id': po.base_id,
        'code': po.code,
        'supplier_id': po.supplier_id,
        'target_location_id': po.target_location_id,
        'purchase_date': iso(po.purchase_date),
        'status': po.status,
        'arrival_status': arrival_status(po, arrived),
        'total_amount_cents': po.total_amount_cents,
        'actual_amount_cents': po.actual_amount_cents,
        'paid_amount_cents': po.paid_amount_cents,
        'unpaid_amount_cents': po.payable_cents - po.paid_amount_cents,
        'notes': po.notes,
        'created_by': po.created_by,
        'created_at': iso(po.created_at),
        'updated_at': iso(po.updated_at),
        'items': _items_json(po, arrived),
    }
    if with_payments:
        body['payments'] = [
            {
                'id': p.id,
                'amount_cents': p.amount_cents,
                'paid_on': iso(p.paid_on),
                'method': p.method,
                'notes': p.notes,
                'created_by': p.created_by,
            }
            for p in po.payments
        ]
    return body


def _payable_json(po: PurchaseOrder):
    return {
        'id': po.id,
        'code': po.code,
        'supplier_id': po.supplier_id,
        'purchase_date': iso(po.purchase_date),
        'status': po.status,
        'payable_amount_cents': po.payable_cents,
        'paid_amount_cents': po.paid_amount_cents,
        'unpaid_amount_cents': po.payable_cents - po.paid_amount_cents,
    }


def _prefetch_po(po_id: int):
    po = get_db().get(PurchaseOrder, po_id)
    if not po:
        return {}
    return {
        'status': po.status,
        'supplier_id': po.supplier_id,
        'total_amount_cents': po.total_amount_cents,
        'actual_amount_cents': po.actual_amount_cents,
        'purchase_date': iso(po.purchase_date),
        'paid_amount_cents': po.paid_amount_cents,
    }
