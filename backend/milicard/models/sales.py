from __future__ import annotations
from datetime import date
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, Text, Date, ForeignKey

from .authz import Base, TimestampMixin


class Customer(TimestampMixin, Base):
    __tablename__ = 'customers'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    contact_person: Mapped[Optional[str]] = mapped_column(String(64))
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    email: Mapped[Optional[str]] = mapped_column(String(128))
    address: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class DistributionOrder(TimestampMixin, Base):
    __tablename__ = 'distribution_orders'
    # Lifecycle status constants
    STATUS_NEW = 'NEW'
    STATUS_APPROVED = 'APPROVED'
    STATUS_FULFILLED = 'FULFILLED'
    STATUS_COMPLETED = 'COMPLETED'
    STATUS_CANCELLED = 'CANCELLED'
    ALL_STATUSES = (
        STATUS_NEW,
        STATUS_APPROVED,
        STATUS_FULFILLED,
        STATUS_COMPLETED,
        STATUS_CANCELLED
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), index=True, nullable=False)
    customer_id: Mapped[int] = mapped_column(ForeignKey('customers.id'), nullable=False, index=True)
    order_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_NEW, index=True)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    paid_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    items = relationship('DistributionOrderItem', back_populates='order', cascade='all, delete-orphan', order_by='DistributionOrderItem.id')


class DistributionOrderItem(Base):
    __tablename__ = 'distribution_order_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    distribution_order_id: Mapped[int] = mapped_column(ForeignKey('distribution_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    goods_id: Mapped[int] = mapped_column(ForeignKey('goods.id'), nullable=False, index=True)
    box_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pack_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    piece_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # price per box, same pricing rule as purchase items
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_pieces: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    order = relationship('DistributionOrder', back_populates='items')
