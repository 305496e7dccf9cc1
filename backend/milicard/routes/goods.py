from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select, func
from milicard import get_db
from milicard.decorators.auth import require_permissions
from milicard.decorators.audit import audit_log
from milicard.services.catalog import load_category
from milicard.services.code_generator import generate_code
from milicard.services.data_permissions import get_field_permissions
from milicard.utils.field_filter import filter_readable, filter_writable
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, contains, equals, flag
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import iso, parse_bool, non_negative_int, optional_int, positive_int
from milicard.models.goods import Goods
from milicard.models.purchase_order import PurchaseOrderItem
from milicard.models.arrival import ArrivalItem
from milicard.models.stock_out import StockOut
from milicard.models.point import PointOrderItem
from milicard.models.sales import DistributionOrderItem

goods_bp = Blueprint('goods', __name__)

RESOURCE = 'goods'
_REFERENCES = (
    ('purchase items', PurchaseOrderItem.goods_id),
    ('arrival items', ArrivalItem.goods_id),
    ('stock-outs', StockOut.goods_id),
    ('point order items', PointOrderItem.goods_id),
    ('distribution order items', DistributionOrderItem.goods_id),
)


@goods_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('GOODS.READ')
def list_goods():
    session = get_db()
    q = apply_filters(session.query(Goods), {
        'name': contains(Goods.name),
        'code': contains(Goods.code),
        'category_id': equals(Goods.category_id, coerce=int),
        'is_active': flag(Goods.is_active),
    }, request.args)
    allowed = {
        'name': Goods.name,
        'code': Goods.code,
        'category_id': Goods.category_id,
        'retail_price_cents': Goods.retail_price_cents,
        'purchase_price_cents': Goods.purchase_price_cents,
        'created_at': Goods.created_at,
        'updated_at': Goods.updated_at,
        'id': Goods.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, Goods.id)
    readable = get_field_permissions(RESOURCE)['readable']
    return respond_list(q, lambda g_: filter_readable(_goods_json(g_), readable))


@goods_bp.route('/<int:goods_id>', methods=['GET', 'HEAD'])
@require_permissions('GOODS.READ')
def get_goods(goods_id: int):
    goods = _get_or_404(goods_id)
    readable = get_field_permissions(RESOURCE)['readable']
    return respond_single(filter_readable(_goods_json(goods), readable), goods.updated_at)


@goods_bp.post('')
@require_permissions('GOODS.MANAGE')
@audit_log('GOODS.CREATE', entity='Goods', entity_id_key='id', meta_keys=['code', 'name'])
def create_goods():
    session = get_db()
    data = filter_writable(request.json or {}, get_field_permissions(RESOURCE)['writable'])
    name = (data.get('name') or '').strip()
    if not name:
        abort(400, description='name required')
    code = (data.get('code') or '').strip()
    if code:
        if session.execute(select(Goods.id).where(Goods.code == code)).first():
            abort(409, description='goods code exists')
    else:
        code = generate_code(session, 'GOODS', Goods)
    goods = Goods(code=code, name=name, created_by=int(get_jwt_identity()))
    _apply_fields(goods, data)
    session.add(goods)
    session.commit()
    return _goods_json(goods), 201


@goods_bp.put('/<int:goods_id>')
@require_permissions('GOODS.MANAGE')
@audit_log('GOODS.UPDATE', entity='Goods', entity_id_key='id',
           diff_keys=['name', 'retail_price_cents', 'purchase_price_cents', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_goods(kw.get('goods_id')), meta_keys=['code'])
def update_goods(goods_id: int):
    session = get_db()
    goods = _get_or_404(goods_id)
    data = filter_writable(request.json or {}, get_field_permissions(RESOURCE)['writable'])
    if 'name' in data and not (data.get('name') or '').strip():
        abort(400, description='name cannot be empty')
    if 'code' in data and data['code'] and data['code'] != goods.code:
        dup = session.execute(select(Goods.id).where(Goods.code == data['code'], Goods.id != goods.id)).first()
        if dup:
            abort(409, description='goods code exists')
        goods.code = data['code']
    _apply_fields(goods, data)
    session.commit()
    return _goods_json(goods)


@goods_bp.delete('/<int:goods_id>')
@require_permissions('GOODS.MANAGE')
@audit_log('GOODS.DELETE', entity='Goods', entity_id_arg='goods_id')
def delete_goods(goods_id: int):
    session = get_db()
    goods = _get_or_404(goods_id)
    for label, column in _REFERENCES:
        if session.execute(select(func.count()).select_from(column.class_).where(column == goods.id)).scalar_one():
            abort(409, description=f'goods is referenced by {label}')
    session.delete(goods)
    session.commit()
    return {'deleted': True, 'id': goods_id}


def _get_or_404(goods_id: int) -> Goods:
    goods = get_db().get(Goods, goods_id)
    if not goods:
        abort(404, description='Goods not found')
    return goods


def _apply_fields(goods: Goods, data: dict):
    if data.get('name'):
        goods.name = data['name'].strip()
    for name in ('image_url', 'notes'):
        if name in data:
            setattr(goods, name, data[name])
    if 'category_id' in data:
        goods.category = load_category(get_db(), optional_int(data, 'category_id'))
    if 'name_i18n' in data:
        if data['name_i18n'] is not None and not isinstance(data['name_i18n'], dict):
            abort(400, description='name_i18n must be an object')
        goods.name_i18n = data['name_i18n'] or {}
    for name in ('retail_price_cents', 'purchase_price_cents'):
        if name in data:
            setattr(goods, name, non_negative_int(data, name))
    for name in ('pack_per_box', 'piece_per_pack'):
        if name in data:
            setattr(goods, name, positive_int(data, name))
    if 'is_active' in data:
        goods.is_active = parse_bool(data['is_active'], 'is_active')


def _goods_json(g_: Goods):
    return {
        'id': g_.id,
        'code': g_.code,
        'name': g_.name,
        'name_i18n': g_.name_i18n or {},
        'category_id': g_.category_id,
        'category': _category_json(g_.category),
        'retail_price_cents': g_.retail_price_cents,
        'purchase_price_cents': g_.purchase_price_cents,
        'pack_per_box': g_.pack_per_box,
        'piece_per_pack': g_.piece_per_pack,
        'image_url': g_.image_url,
        'notes': g_.notes,
        'is_active': g_.is_active,
        'created_at': iso(g_.created_at),
        'updated_at': iso(g_.updated_at),
    }


def _category_json(c):
    if c is None:
        return None
    return {'id': c.id, 'code': c.code, 'name': c.name}


def _prefetch_goods(goods_id: int):
    g_ = get_db().get(Goods, goods_id)
    if not g_:
        return {}
    return {
        'name': g_.name,
        'retail_price_cents': g_.retail_price_cents,
        'purchase_price_cents': g_.purchase_price_cents,
        'is_active': g_.is_active,
    }
