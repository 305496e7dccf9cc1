from __future__ import annotations
from typing import Optional, Dict, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, Text, JSON, CheckConstraint, ForeignKey, UniqueConstraint

from .authz import Base, TimestampMixin


class Category(TimestampMixin, Base):
    """Goods category (trading cards, boosters, accessories ...); codes are stored upper-case."""
    __tablename__ = 'categories'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    name_i18n: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    description: Mapped[Optional[str]] = mapped_column(Text)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Goods(TimestampMixin, Base):
    __tablename__ = 'goods'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    name_i18n: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey('categories.id'), nullable=True, index=True)
    # prices are per box
    retail_price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    purchase_price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pack_per_box: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    piece_per_pack: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    image_url: Mapped[Optional[str]] = mapped_column(String(512))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    category = relationship('Category')

    __table_args__ = (
        CheckConstraint('pack_per_box >= 1', name='ck_goods_pack_per_box'),
        CheckConstraint('piece_per_pack >= 1', name='ck_goods_piece_per_pack'),
    )


class GoodsLocalSetting(TimestampMixin, Base):
    """Per-base overrides of a catalog goods: local prices (per box, pack price per pack) and alias."""
    __tablename__ = 'goods_local_settings'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), nullable=False, index=True)
    goods_id: Mapped[int] = mapped_column(ForeignKey('goods.id'), nullable=False, index=True)
    retail_price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    purchase_price_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    pack_price_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    alias: Mapped[Optional[str]] = mapped_column(String(128))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    goods = relationship('Goods')

    __table_args__ = (UniqueConstraint('goods_id', 'base_id', name='uq_goods_local_setting'),)
