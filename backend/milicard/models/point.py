from __future__ import annotations
from datetime import date, datetime
from typing import Optional, List
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, Text, Date, DateTime, Float, JSON, ForeignKey, UniqueConstraint

from .authz import Base, TimestampMixin


class Point(TimestampMixin, Base):
    """Retail / live-sales shop served by a base."""
    __tablename__ = 'points'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    address: Mapped[Optional[str]] = mapped_column(String(255))
    contact_person: Mapped[Optional[str]] = mapped_column(String(64))
    contact_phone: Mapped[Optional[str]] = mapped_column(String(32))
    owner_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True, index=True)
    dealer_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class PointOrder(TimestampMixin, Base):
    __tablename__ = 'point_orders'
    STATUS_PENDING = 'PENDING'
    STATUS_CONFIRMED = 'CONFIRMED'
    STATUS_SHIPPING = 'SHIPPING'
    STATUS_DELIVERED = 'DELIVERED'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    ALL_STATUSES = (
        STATUS_PENDING,
        STATUS_CONFIRMED,
        STATUS_SHIPPING,
        STATUS_DELIVERED,
        STATUS_COMPLETED,
        STATUS_CANCELLED,
    )
    PAYMENT_UNPAID = 'UNPAID'
    PAYMENT_PARTIAL = 'PARTIAL'
    PAYMENT_PAID = 'PAID'
    ALL_PAYMENT_STATUSES = (PAYMENT_UNPAID, PAYMENT_PARTIAL, PAYMENT_PAID)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), nullable=False, index=True)
    point_id: Mapped[int] = mapped_column(ForeignKey('points.id'), nullable=False, index=True)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default=PAYMENT_UNPAID, index=True)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    paid_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    shipping_location_id: Mapped[Optional[int]] = mapped_column(ForeignKey('locations.id'), nullable=True)
    confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    confirmed_by: Mapped[Optional[int]] = mapped_column(Integer)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    shipped_by: Mapped[Optional[int]] = mapped_column(Integer)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    delivered_by: Mapped[Optional[int]] = mapped_column(Integer)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    completed_by: Mapped[Optional[int]] = mapped_column(Integer)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    cancelled_by: Mapped[Optional[int]] = mapped_column(Integer)
    cancel_reason: Mapped[Optional[str]] = mapped_column(String(255))
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    items = relationship('PointOrderItem', back_populates='order', cascade='all, delete-orphan', order_by='PointOrderItem.id')


class PointOrderItem(Base):
    __tablename__ = 'point_order_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    point_order_id: Mapped[int] = mapped_column(ForeignKey('point_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    goods_id: Mapped[int] = mapped_column(ForeignKey('goods.id'), nullable=False, index=True)
    box_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pack_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # price per pack
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order = relationship('PointOrder', back_populates='items')
    goods = relationship('Goods')


class PointGoods(TimestampMixin, Base):
    """Goods a point may order, with an optional point price (per pack) and per-order caps."""
    __tablename__ = 'point_goods'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    point_id: Mapped[int] = mapped_column(ForeignKey('points.id', ondelete='CASCADE'), nullable=False, index=True)
    goods_id: Mapped[int] = mapped_column(ForeignKey('goods.id'), nullable=False, index=True)
    unit_price_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_box_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_pack_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    goods = relationship('Goods')

    __table_args__ = (UniqueConstraint('point_id', 'goods_id', name='uq_point_goods'),)


class PointVisit(TimestampMixin, Base):
    __tablename__ = 'point_visits'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), nullable=False, index=True)
    point_id: Mapped[int] = mapped_column(ForeignKey('points.id', ondelete='CASCADE'), nullable=False, index=True)
    visitor_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    visit_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    images: Mapped[List[str]] = mapped_column(JSON, default=list)
