from __future__ import annotations
from datetime import date
from flask import Blueprint, request, abort, g
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select, func
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.services.code_generator import generate_code
from milicard.services.data_permissions import apply_data_permissions
from milicard.services.orders import require_items, box_priced_line, read_payment_amount
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, contains, equals, flag, on_or_after, on_or_before, parse_bool_param
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import validate_status, required_int, parse_date, parse_bool, iso
from milicard.utils.fsm import TransitionValidator
from milicard.models.sales import Customer, DistributionOrder, DistributionOrderItem

sales_bp = Blueprint('sales', __name__)

DO_FSM = TransitionValidator({
    DistributionOrder.STATUS_NEW: {DistributionOrder.STATUS_APPROVED, DistributionOrder.STATUS_CANCELLED},
    DistributionOrder.STATUS_APPROVED: {DistributionOrder.STATUS_FULFILLED, DistributionOrder.STATUS_CANCELLED},
    DistributionOrder.STATUS_FULFILLED: {DistributionOrder.STATUS_COMPLETED},
    DistributionOrder.STATUS_COMPLETED: set(),
    DistributionOrder.STATUS_CANCELLED: set(),
})

_CUSTOMER_FIELDS = ('contact_person', 'phone', 'email', 'address', 'notes')


def _customer_query(base_id: int):
    q = get_db().query(Customer).filter(Customer.base_id == base_id)
    return apply_data_permissions(q, 'customer')


def _order_query(base_id: int):
    q = get_db().query(DistributionOrder).filter(DistributionOrder.base_id == base_id)
    return apply_data_permissions(q, 'distributionOrder')


def _get_customer_or_404(base_id: int, customer_id: int) -> Customer:
    c = _customer_query(base_id).filter(Customer.id == customer_id).one_or_none()
    if not c:
        abort(404, description='Customer not found')
    return c


def _get_order_or_404(base_id: int, order_id: int) -> DistributionOrder:
    o = _order_query(base_id).filter(DistributionOrder.id == order_id).one_or_none()
    if not o:
        abort(404, description='Distribution order not found')
    return o


# --- customers ---

@sales_bp.route('/<int:base_id>/customers', methods=['GET', 'HEAD'])
@require_base_permissions('SALES.READ')
def list_customers(base_id: int):
    q = apply_filters(_customer_query(base_id), {
        'name': contains(Customer.name),
        'code': contains(Customer.code),
        'is_active': flag(Customer.is_active),
    }, request.args)
    allowed = {'name': Customer.name, 'code': Customer.code, 'updated_at': Customer.updated_at, 'id': Customer.id}
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Customer.id)
    return respond_list(q, _customer_json)


@sales_bp.route('/<int:base_id>/customers/<int:customer_id>', methods=['GET', 'HEAD'])
@require_base_permissions('SALES.READ')
def get_customer(base_id: int, customer_id: int):
    c = _get_customer_or_404(base_id, customer_id)
    return respond_single(_customer_json(c), c.updated_at)


@sales_bp.post('/<int:base_id>/customers')
@require_base_permissions('SALES.CREATE')
@audit_log('SALES.CUSTOMER.CREATE', entity='Customer', entity_id_key='id', meta_keys=['code', 'name'])
def create_customer(base_id: int):
    session = get_db()
    data = request.json or {}
    name = (data.get('name') or '').strip()
    if not name:
        abort(400, description='name required')
    code = (data.get('code') or '').strip()
    if code:
        if session.execute(select(Customer.id).where(Customer.code == code)).first():
            abort(409, description='customer code exists')
    else:
        code = generate_code(session, 'CUSTOMER', Customer)
    c = Customer(base_id=g.base.id, code=code, name=name, created_by=int(get_jwt_identity()))
    _apply_customer_fields(c, data)
    session.add(c)
    session.commit()
    return _customer_json(c), 201


@sales_bp.put('/<int:base_id>/customers/<int:customer_id>')
@require_base_permissions('SALES.UPDATE')
@audit_log('SALES.CUSTOMER.UPDATE', entity='Customer', entity_id_key='id', diff_keys=['name', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_customer(kw.get('customer_id')), meta_keys=['code'])
def update_customer(base_id: int, customer_id: int):
    session = get_db()
    c = _get_customer_or_404(base_id, customer_id)
    data = request.json or {}
    if 'name' in data:
        if not (data.get('name') or '').strip():
            abort(400, description='name cannot be empty')
        c.name = data['name'].strip()
    _apply_customer_fields(c, data)
    session.commit()
    return _customer_json(c)


@sales_bp.delete('/<int:base_id>/customers/<int:customer_id>')
@require_base_permissions('SALES.UPDATE')
@audit_log('SALES.CUSTOMER.DELETE', entity='Customer', entity_id_arg='customer_id')
def delete_customer(base_id: int, customer_id: int):
    session = get_db()
    c = _get_customer_or_404(base_id, customer_id)
    orders = session.execute(
        select(func.count()).select_from(DistributionOrder).where(DistributionOrder.customer_id == c.id)
    ).scalar_one()
    if orders:
        abort(409, description=f'customer has {orders} orders')
    session.delete(c)
    session.commit()
    return {'deleted': True, 'id': customer_id}


# --- distribution orders ---

@sales_bp.route('/<int:base_id>/distribution-orders', methods=['GET', 'HEAD'])
@require_base_permissions('SALES.READ')
def list_orders(base_id: int):
    q = apply_filters(_order_query(base_id), {
        'status': equals(DistributionOrder.status, allowed=DistributionOrder.ALL_STATUSES),
        'customer_id': equals(DistributionOrder.customer_id, coerce=int),
        'code': contains(DistributionOrder.code),
        'start_date': on_or_after(DistributionOrder.order_date),
        'end_date': on_or_before(DistributionOrder.order_date),
    }, request.args)
    allowed = {
        'order_date': DistributionOrder.order_date,
        'status': DistributionOrder.status,
        'total_amount_cents': DistributionOrder.total_amount_cents,
        'updated_at': DistributionOrder.updated_at,
        'id': DistributionOrder.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, DistributionOrder.id,
                         default=[DistributionOrder.order_date.desc()])
    return respond_list(q, _order_json)


@sales_bp.route('/<int:base_id>/distribution-orders/<int:order_id>', methods=['GET', 'HEAD'])
@require_base_permissions('SALES.READ')
def get_order(base_id: int, order_id: int):
    o = _get_order_or_404(base_id, order_id)
    return respond_single(_order_json(o), o.updated_at)


@sales_bp.post('/<int:base_id>/distribution-orders')
@require_base_permissions('SALES.CREATE')
@audit_log('SALES.CREATE', entity='DistributionOrder', entity_id_key='id', meta_keys=['code', 'customer_id', 'total_amount_cents'])
def create_order(base_id: int):
    session = get_db()
    data = request.json or {}
    customer = session.get(Customer, required_int(data, 'customer_id'))
    if not customer or customer.base_id != g.base.id or not customer.is_active:
        abort(400, description='customer must be active in this base')
    items = require_items(data)
    o = DistributionOrder(
        code=generate_code(session, 'DISTRIBUTION_ORDER', DistributionOrder),
        base_id=g.base.id,
        customer_id=customer.id,
        order_date=parse_date(data.get('order_date'), 'order_date', default=date.today()),
        status=DistributionOrder.STATUS_NEW,
        paid_amount_cents=0,
        notes=data.get('notes'),
        created_by=int(get_jwt_identity()),
    )
    _replace_items(o, items)
    session.add(o)
    session.commit()
    return _order_json(o), 201


@sales_bp.put('/<int:base_id>/distribution-orders/<int:order_id>')
@require_base_permissions('SALES.UPDATE')
@audit_log('SALES.UPDATE', entity='DistributionOrder', entity_id_key='id', diff_keys=['total_amount_cents', 'order_date'],
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')), meta_keys=['code'])
def update_order(base_id: int, order_id: int):
    session = get_db()
    o = _get_order_or_404(base_id, order_id)
    if o.status != DistributionOrder.STATUS_NEW:
        abort(400, description='only NEW orders can be updated')
    data = request.json or {}
    if 'items' in data:
        _replace_items(o, require_items(data))
        if o.paid_amount_cents > o.total_amount_cents:
            abort(400, description='total cannot drop below the paid amount')
    if 'order_date' in data:
        o.order_date = parse_date(data.get('order_date'), 'order_date')
    if 'notes' in data:
        o.notes = data['notes']
    session.commit()
    return _order_json(o)


def _transition(base_id: int, order_id: int, target: str):
    o = _get_order_or_404(base_id, order_id)
    DO_FSM.assert_can_transition(o.status, target)
    o.status = validate_status(target, DistributionOrder.ALL_STATUSES)
    get_db().commit()
    return _order_json(o)


_STATUS_AUDIT = dict(entity='DistributionOrder', entity_id_key='id', diff_keys=['status'], meta_keys=['code', 'status'],
                     pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')))


@sales_bp.post('/<int:base_id>/distribution-orders/<int:order_id>/approve')
@require_base_permissions('SALES.APPROVE')
@audit_log('SALES.APPROVE', **_STATUS_AUDIT)
def approve_order(base_id: int, order_id: int):
    return _transition(base_id, order_id, DistributionOrder.STATUS_APPROVED)


@sales_bp.post('/<int:base_id>/distribution-orders/<int:order_id>/fulfill')
@require_base_permissions('SALES.FULFILL')
@audit_log('SALES.FULFILL', **_STATUS_AUDIT)
def fulfill_order(base_id: int, order_id: int):
    return _transition(base_id, order_id, DistributionOrder.STATUS_FULFILLED)


@sales_bp.post('/<int:base_id>/distribution-orders/<int:order_id>/complete')
@require_base_permissions('SALES.COMPLETE')
@audit_log('SALES.COMPLETE', **_STATUS_AUDIT)
def complete_order(base_id: int, order_id: int):
    return _transition(base_id, order_id, DistributionOrder.STATUS_COMPLETED)


@sales_bp.post('/<int:base_id>/distribution-orders/<int:order_id>/cancel')
@require_base_permissions('SALES.CANCEL')
@audit_log('SALES.CANCEL', **_STATUS_AUDIT)
def cancel_order(base_id: int, order_id: int):
    return _transition(base_id, order_id, DistributionOrder.STATUS_CANCELLED)


@sales_bp.post('/<int:base_id>/distribution-orders/<int:order_id>/payments')
@require_base_permissions('SALES.PAY')
@audit_log('SALES.PAY', entity='DistributionOrder', entity_id_key='id', diff_keys=['paid_amount_cents'],
           pre_fetch=lambda a, kw: _prefetch_order(kw.get('order_id')), meta_keys=['code', 'unpaid_amount_cents'])
def pay_order(base_id: int, order_id: int):
    o = _get_order_or_404(base_id, order_id)
    if o.status == DistributionOrder.STATUS_CANCELLED:
        abort(400, description='cancelled orders cannot be paid')
    o.paid_amount_cents += read_payment_amount(request.json or {}, o.total_amount_cents - o.paid_amount_cents)
    get_db().commit()
    return _order_json(o)


@sales_bp.route('/<int:base_id>/receivables', methods=['GET', 'HEAD'])
@require_base_permissions('SALES.READ')
def list_receivables(base_id: int):
    q = _order_query(base_id).filter(DistributionOrder.status != DistributionOrder.STATUS_CANCELLED)
    q = apply_filters(q, {
        'customer_id': equals(DistributionOrder.customer_id, coerce=int),
        'unpaid_only': {
            'coerce': parse_bool_param,
            'op': lambda qu, v: qu.filter(DistributionOrder.total_amount_cents > DistributionOrder.paid_amount_cents) if v else qu,
        },
    }, request.args)
    q = apply_multi_sort(q, request.args.get('sort'), {
        'order_date': DistributionOrder.order_date,
        'unpaid_amount_cents': DistributionOrder.total_amount_cents - DistributionOrder.paid_amount_cents,
        'id': DistributionOrder.id,
    }, DistributionOrder.id, default=[DistributionOrder.order_date.asc()])
    return respond_list(q, _receivable_json)


def _replace_items(o: DistributionOrder, raw_items: list):
    session = get_db()
    lines = [box_priced_line(session, raw) for raw in raw_items]
    o.items.clear()
    for line in lines:
        o.items.append(DistributionOrderItem(**line))
    o.total_amount_cents = sum(line['amount_cents'] for line in lines)


def _apply_customer_fields(c: Customer, data: dict):
    for name in _CUSTOMER_FIELDS:
        if name in data:
            setattr(c, name, data[name])
    if 'is_active' in data:
        c.is_active = parse_bool(data['is_active'], 'is_active')


def _customer_json(c: Customer):
    return {
        'id': c.id,
        'base_id': c.base_id,
        'code': c.code,
        'name': c.name,
        'contact_person': c.contact_person,
        'phone': c.phone,
        'email': c.email,
        'address': c.address,
        'notes': c.notes,
        'is_active': c.is_active,
        'created_at': iso(c.created_at),
        'updated_at': iso(c.updated_at),
    }


def _order_json(o: DistributionOrder):
    return {
        'id': o.id,
        'code': o.code,
        'base_id': o.base_id,
        'customer_id': o.customer_id,
        'order_date': iso(o.order_date),
        'status': o.status,
        'total_amount_cents': o.total_amount_cents,
        'paid_amount_cents': o.paid_amount_cents,
        'unpaid_amount_cents': o.total_amount_cents - o.paid_amount_cents,
        'notes': o.notes,
        'created_by': o.created_by,
        'created_at': iso(o.created_at),
        'updated_at': iso(o.updated_at),
        'items': [
            {
                'id': i.id,
                'goods_id': i.goods_id,
                'box_quantity': i.box_quantity,
                'pack_quantity': i.pack_quantity,
                'piece_quantity': i.piece_quantity,
                'unit_price_cents': i.unit_price_cents,
                'total_pieces': i.total_pieces,
                'amount_cents': i.amount_cents,
            }
            for i in o.items
        ],
    }


def _receivable_json(o: DistributionOrder):
    return {
        'id': o.id,
        'code': o.code,
        'customer_id': o.customer_id,
        'order_date': iso(o.order_date),
        'status': o.status,
        'total_amount_cents': o.total_amount_cents,
        'paid_amount_cents': o.paid_amount_cents,
        'unpaid_amount_cents': o.total_amount_cents - o.paid_amount_cents,
    }


def _prefetch_customer(customer_id: int):
    c = get_db().get(Customer, customer_id)
    if not c:
        return {}
    return {'name': c.name, 'is_active': c.is_active}


def _prefetch_order(order_id: int):
    o = get_db().get(DistributionOrder, order_id)
    if not o:
        return {}
    return {
        'status': o.status,
        'total_amount_cents': o.total_amount_cents,
        'paid_amount_cents': o.paid_amount_cents,
        'order_date': iso(o.order_date),
    }
