"""Catalog lookups shared by goods, point goods and point orders.

Default point-order price per pack, first match wins:
  1. the point's own ``PointGoods.unit_price_cents``;
  2. the base setting's ``pack_price_cents``;
  3. the base setting's retail box price divided by ``pack_per_box``;
  4. the goods retail box price divided by ``pack_per_box``.
"""
from __future__ import annotations
from typing import Optional

from flask import abort
from sqlalchemy import select

from milicard.models.goods import Category, Goods, GoodsLocalSetting
from milicard.models.point import PointGoods
from milicard.utils.quantities import default_pack_price


def load_category(session, category_id: Optional[int]) -> Optional[Category]:
    if category_id is None:
        return None
    category = session.get(Category, category_id)
    if not category:
        abort(400, description=f'category {category_id} not found')
    if not category.is_active:
        abort(400, description=f'category {category.code} is inactive')
    return category


def base_setting(session, base_id: int, goods_id: int) -> Optional[GoodsLocalSetting]:
    return session.execute(
        select(GoodsLocalSetting).where(
            GoodsLocalSetting.base_id == base_id,
            GoodsLocalSetting.goods_id == goods_id,
            GoodsLocalSetting.is_active.is_(True),
        )
    ).scalar_one_or_none()


def point_goods(session, point_id: int, goods_id: int) -> Optional[PointGoods]:
    return session.execute(
        select(PointGoods).where(
            PointGoods.point_id == point_id,
            PointGoods.goods_id == goods_id,
            PointGoods.is_active.is_(True),
        )
    ).scalar_one_or_none()


def base_pack_price(session, base_id: int, goods: Goods) -> int:
    setting = base_setting(session, base_id, goods.id)
    if setting is not None:
        if setting.pack_price_cents is not None:
            return setting.pack_price_cents
        return default_pack_price(setting.retail_price_cents, goods.pack_per_box)
    return default_pack_price(goods.retail_price_cents, goods.pack_per_box)


def point_pack_price(session, base_id: int, point_id: int, goods: Goods, config: Optional[PointGoods] = None) -> int:
    config = config if config is not None else point_goods(session, point_id, goods.id)
    if config is not None and config.unit_price_cents is not None:
        return config.unit_price_cents
    return base_pack_price(session, base_id, goods)


def check_point_limits(config: Optional[PointGoods], goods: Goods, box: int, pack: int):
    if config is None:
        return
    if config.max_box_quantity is not None and box > config.max_box_quantity:
        abort(400, description=f'goods {goods.code} allows at most {config.max_box_quantity} boxes per order')
    if config.max_pack_quantity is not None and pack > config.max_pack_quantity:
        abort(400, description=f'goods {goods.code} allows at most {config.max_pack_quantity} packs per order')
