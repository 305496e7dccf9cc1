from __future__ import annotations
from datetime import date
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Date, ForeignKey

from .authz import Base, TimestampMixin


class Arrival(TimestampMixin, Base):
    """One physical delivery against a purchase order; an order may have several."""
    __tablename__ = 'arrivals'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    purchase_order_id: Mapped[int] = mapped_column(ForeignKey('purchase_orders.id'), nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(ForeignKey('locations.id'), nullable=False, index=True)
    arrival_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
    items = relationship('ArrivalItem', back_populates='arrival', cascade='all, delete-orphan', order_by='ArrivalItem.id')


class ArrivalItem(Base):
    __tablename__ = 'arrival_items'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    arrival_id: Mapped[int] = mapped_column(ForeignKey('arrivals.id', ondelete='CASCADE'), nullable=False, index=True)
    goods_id: Mapped[int] = mapped_column(ForeignKey('goods.id'), nullable=False, index=True)
    box_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pack_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    piece_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_pieces: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    arrival = relationship('Arrival', back_populates='items')
