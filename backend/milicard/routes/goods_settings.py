"""Per-base goods settings: local prices and alias layered over the shared catalog."""
from __future__ import annotations
from flask import Blueprint, request, abort, g
from sqlalchemy import select, or_
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.services.orders import load_goods
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, flag
from milicard.utils.validation import iso, parse_bool, non_negative_int, required_int
from milicard.models.goods import Goods, GoodsLocalSetting

gls_bp = Blueprint('goods_settings', __name__)


def _get_or_404(base_id: int, setting_id: int) -> GoodsLocalSetting:
    setting = get_db().get(GoodsLocalSetting, setting_id)
    if not setting or setting.base_id != base_id:
        abort(404, description='Goods setting not found')
    return setting


@gls_bp.route('/<int:base_id>/goods-settings', methods=['GET', 'HEAD'])
@require_base_permissions('GOODS.READ')
def list_goods_settings(base_id: int):
    q = get_db().query(GoodsLocalSetting).join(Goods, Goods.id == GoodsLocalSetting.goods_id).filter(
        GoodsLocalSetting.base_id == base_id
    )
    keyword = (request.args.get('search') or '').strip()
    if keyword:
        like = f'%{keyword}%'
        q = q.filter(or_(Goods.name.ilike(like), Goods.code.ilike(like), GoodsLocalSetting.alias.ilike(like)))
    q = apply_filters(q, {'is_active': flag(GoodsLocalSetting.is_active)}, request.args)
    q = q.order_by(Goods.code.asc(), GoodsLocalSetting.id.asc())
    return respond_list(q, _setting_json)


@gls_bp.get('/<int:base_id>/goods-settings/available-goods')
@require_base_permissions('GOODS.READ')
def available_goods_for_settings(base_id: int):
    """Active catalog goods that have no setting in this base yet."""
    configured = select(GoodsLocalSetting.goods_id).where(GoodsLocalSetting.base_id == base_id)
    rows = get_db().execute(
        select(Goods).where(Goods.is_active.is_(True), Goods.id.not_in(configured)).order_by(Goods.code.asc())
    ).scalars()
    return {'data': [{
        'id': goods.id,
        'code': goods.code,
        'name': goods.name,
        'retail_price_cents': goods.retail_price_cents,
        'pack_per_box': goods.pack_per_box,
        'piece_per_pack': goods.piece_per_pack,
    } for goods in rows]}


@gls_bp.route('/<int:base_id>/goods-settings/<int:setting_id>', methods=['GET', 'HEAD'])
@require_base_permissions('GOODS.READ')
def get_goods_setting(base_id: int, setting_id: int):
    setting = _get_or_404(base_id, setting_id)
    return respond_single(_setting_json(setting), setting.updated_at)


@gls_bp.post('/<int:base_id>/goods-settings')
@require_base_permissions('GOODS.MANAGE')
@audit_log('GOODS_SETTING.CREATE', entity='GoodsLocalSetting', entity_id_key='id', meta_keys=['goods_id'])
def create_goods_setting(base_id: int):
    session = get_db()
    data = request.json or {}
    goods = load_goods(session, required_int(data, 'goods_id'), require_active=False)
    exists = session.execute(select(GoodsLocalSetting.id).where(
        GoodsLocalSetting.base_id == g.base.id, GoodsLocalSetting.goods_id == goods.id
    )).first()
    if exists:
        abort(409, description=f'goods {goods.code} already configured for this base')
    setting = GoodsLocalSetting(base_id=g.base.id, goods_id=goods.id, retail_price_cents=goods.retail_price_cents)
    setting.goods = goods
    _apply_fields(setting, data)
    session.add(setting)
    session.commit()
    return _setting_json(setting), 201


@gls_bp.put('/<int:base_id>/goods-settings/<int:setting_id>')
@require_base_permissions('GOODS.MANAGE')
@audit_log('GOODS_SETTING.UPDATE', entity='GoodsLocalSetting', entity_id_key='id',
           diff_keys=['retail_price_cents', 'pack_price_cents', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_setting(kw.get('setting_id')))
def update_goods_setting(base_id: int, setting_id: int):
    session = get_db()
    setting = _get_or_404(base_id, setting_id)
    _apply_fields(setting, request.json or {})
    session.commit()
    return _setting_json(setting)


@gls_bp.delete('/<int:base_id>/goods-settings/<int:setting_id>')
@require_base_permissions('GOODS.MANAGE')
@audit_log('GOODS_SETTING.DELETE', entity='GoodsLocalSetting', entity_id_arg='setting_id')
def delete_goods_setting(base_id: int, setting_id: int):
    session = get_db()
    setting = _get_or_404(base_id, setting_id)
    session.delete(setting)
    session.commit()
    return {'deleted': True, 'id': setting_id}


def _optional_price(data: dict, name: str):
    if data.get(name) in (None, ''):
        return None
    return non_negative_int(data, name)


def _apply_fields(setting: GoodsLocalSetting, data: dict):
    if 'retail_price_cents' in data:
        setting.retail_price_cents = non_negative_int(data, 'retail_price_cents')
    for name in ('purchase_price_cents', 'pack_price_cents'):
        if name in data:
            setattr(setting, name, _optional_price(data, name))
    if 'alias' in data:
        setting.alias = (data.get('alias') or '').strip() or None
    if 'is_active' in data:
        setting.is_active = parse_bool(data['is_active'], 'is_active')


def _setting_json(s: GoodsLocalSetting):
    goods = s.goods
    return {
        'id': s.id,
        'base_id': s.base_id,
        'goods_id': s.goods_id,
        'goods_code': goods.code if goods else None,
        'goods_name': goods.name if goods else None,
        'alias': s.alias,
        'retail_price_cents': s.retail_price_cents,
        'purchase_price_cents': s.purchase_price_cents,
        'pack_price_cents': s.pack_price_cents,
        'is_active': s.is_active,
        'created_at': iso(s.created_at),
        'updated_at': iso(s.updated_at),
    }


def _prefetch_setting(setting_id: int):
    s = get_db().get(GoodsLocalSetting, setting_id)
    if not s:
        return {}
    return {'retail_price_cents': s.retail_price_cents, 'pack_price_cents': s.pack_price_cents, 'is_active': s.is_active}
