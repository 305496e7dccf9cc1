from __future__ import annotations
from datetime import date, datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Date, DateTime, ForeignKey, func

from .authz import Base, TimestampMixin


class PurchaseOrder(TimestampMixin, Base):
    __tablename__ = 'purchase_orders'
    # Status constants
    STATUS_OPEN = 'OPEN'
    STATUS_CLOSED = 'CLOSED'
    STATUS_CANCELLED = 'CANCELLED'
    ALL_STATUSES = (STATUS_OPEN, STATUS_CLOSED, STATUS_CANCELLED)
    # Derived from arrivals, never stored
    ARRIVAL_NOT_ARRIVED = 'NOT_ARRIVED'
    ARRIVAL_PARTIAL = 'PARTIAL'
    ARRIVAL_ARRIVED = 'ARRIVED'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), index=True, nullable=False)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    supplier_id: Mapped[int] = mapped_column(ForeignKey('suppliers.id'), nullable=False, index=True)
    target_location_id: Mapped[Optional[int]] = mapped_column(ForeignKey('locations.id'), nullable=True)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    actual_amount_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    paid_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_OPEN, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    items = relationship('PurchaseOrderItem', back_populates='purchase_order', cascade='all, delete-orphan', order_by='PurchaseOrderItem.id')
    payments = relationship('PurchasePayment', back_populates='purchase_order', cascade='all, delete-orphan', order_by='PurchasePayment.id')

    @property
    def payable_cents(self) -> int:
        return self.actual_amount_cents if self.actual_amount_cents is not None else self.total_amount_cents


class PurchaseOrderItem(Base):
    __tablename__ = 'purchase_order_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    goods_id: Mapped[int] = mapped_column(ForeignKey('goods.id'), nullable=False, index=True)
    box_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pack_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    piece_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # price per box; pack/piece prices are derived from the goods packaging
    unit_price_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_pieces: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    purchase_order = relationship('PurchaseOrder', back_populates='items')
    goods = relationship('Goods')


class PurchasePayment(Base):
    __tablename__ = 'purchase_payments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    purchase_order_id: Mapped[int] = mapped_column(ForeignKey('purchase_orders.id', ondelete='CASCADE'), nullable=False, index=True)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    paid_on: Mapped[date] = mapped_column(Date, nullable=False)
    method: Mapped[Optional[str]] = mapped_column(String(32))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    purchase_order = relationship('PurchaseOrder', back_populates='payments')
