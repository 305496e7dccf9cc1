from __future__ import annotations
from datetime import date
from flask import Blueprint, request, abort, g
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import or_
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.services.code_generator import generate_code
from milicard.services.inventory import record_stock_out
from milicard.services.orders import load_goods, read_quantities
from milicard.services.policy import get_base_or_404
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, equals, on_or_after, on_or_before
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import required_int, parse_date, iso
from milicard.models.transfer import TransferOrder
from milicard.models.stock_out import StockOut
from milicard.models.location import Location

transfer_bp = Blueprint('transfers', __name__)


def _direction(q, value: str, base_id: int):
    if value == 'in':
        return q.filter(TransferOrder.to_base_id == base_id)
    return q.filter(TransferOrder.from_base_id == base_id)


@transfer_bp.route('/<int:base_id>/transfers', methods=['GET', 'HEAD'])
@require_base_permissions('INV.READ')
def list_transfers(base_id: int):
    session = get_db()
    q = session.query(TransferOrder).filter(
        or_(TransferOrder.from_base_id == base_id, TransferOrder.to_base_id == base_id)
    )
    q = apply_filters(q, {
        'direction': {'validate': lambda v: v in ('in', 'out'), 'op': lambda qu, v: _direction(qu, v, base_id)},
        'goods_id': equals(TransferOrder.goods_id, coerce=int),
        'start_date': on_or_after(TransferOrder.transfer_date),
        'end_date': on_or_before(TransferOrder.transfer_date),
    }, request.args)
    allowed = {
        'transfer_date': TransferOrder.transfer_date,
        'created_at': TransferOrder.created_at,
        'id': TransferOrder.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, TransferOrder.id, default=[TransferOrder.transfer_date.desc()])
    return respond_list(q, _transfer_json)


@transfer_bp.route('/<int:base_id>/transfers/<int:transfer_id>', methods=['GET', 'HEAD'])
@require_base_permissions('INV.READ')
def get_transfer(base_id: int, transfer_id: int):
    t = get_db().get(TransferOrder, transfer_id)
    if not t or base_id not in (t.from_base_id, t.to_base_id):
        abort(404, description='Transfer not found')
    return respond_single(_transfer_json(t), t.updated_at)


@transfer_bp.post('/<int:base_id>/transfers')
@require_base_permissions('INV.TRANSFER')
@audit_log('INV.TRANSFER', entity='TransferOrder', entity_id_key='id',
           meta_keys=['code', 'to_base_id', 'goods_id', 'total_pieces'])
def create_transfer(base_id: int):
    """Move stock from a location of this base to a location of ``to_base_id`` (may be the same base)."""
    session = get_db()
    data = request.json or {}
    source = _location_in(required_int(data, 'from_location_id'), g.base.id, 'from_location_id')
    target_base = get_base_or_404(required_int(data, 'to_base_id'))
    target = _location_in(required_int(data, 'to_location_id'), target_base.id, 'to_location_id')
    if source.id == target.id:
        abort(400, description='source and target locations must differ')
    goods = load_goods(session, required_int(data, 'goods_id'), require_active=False)
    qty = read_quantities(data, goods)
    user_id = int(get_jwt_identity())
    transfer = TransferOrder(
        code=generate_code(session, 'TRANSFER_ORDER', TransferOrder),
        from_base_id=g.base.id,
        from_location_id=source.id,
        to_base_id=target_base.id,
        to_location_id=target.id,
        goods_id=goods.id,
        transfer_date=parse_date(data.get('transfer_date'), 'transfer_date', default=date.today()),
        notes=data.get('notes'),
        created_by=user_id,
        **qty,
    )
    session.add(transfer)
    session.flush()
    out = record_stock_out(
        session,
        base_id=g.base.id,
        out_type=StockOut.TYPE_TRANSFER,
        goods_id=goods.id,
        location_id=source.id,
        quantities=qty,
        created_by=user_id,
        out_date=transfer.transfer_date,
        target_name=f'{target_base.name} / {target.name}',
        related_order_id=transfer.id,
        related_order_code=transfer.code,
    )
    transfer.stock_out_id = out.id
    session.commit()
    return _transfer_json(transfer), 201


def _location_in(location_id: int, base_id: int, field: str) -> Location:
    loc = get_db().get(Location, location_id)
    if not loc or loc.base_id != base_id:
        abort(400, description=f'{field} does not belong to base {base_id}')
    return loc


def _transfer_json(t: TransferOrder):
    return {
        'id': t.id,
        'code': t.code,
        'from_base_id': t.from_base_id,
        'from_location_id': t.from_location_id,
        'to_base_id': t.to_base_id,
        'to_location_id': t.to_location_id,
        'goods_id': t.goods_id,
        'transfer_date': iso(t.transfer_date),
        'box_quantity': t.box_quantity,
        'pack_quantity': t.pack_quantity,
        'piece_quantity': t.piece_quantity,
        'total_pieces': t.total_pieces,
        'stock_out_id': t.stock_out_id,
        'notes': t.notes,
        'created_by': t.created_by,
        'created_at': iso(t.created_at),
        'updated_at': iso(t.updated_at),
    }
