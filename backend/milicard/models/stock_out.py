from __future__ import annotations
from datetime import date
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Date, ForeignKey

from .authz import Base, TimestampMixin


class StockOut(TimestampMixin, Base):
    __tablename__ = 'stock_outs'
    TYPE_POINT_ORDER = 'POINT_ORDER'
    TYPE_TRANSFER = 'TRANSFER'
    TYPE_MANUAL = 'MANUAL'
    ALL_TYPES = (TYPE_POINT_ORDER, TYPE_TRANSFER, TYPE_MANUAL)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    out_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    goods_id: Mapped[int] = mapped_column(ForeignKey('goods.id'), nullable=False, index=True)
    location_id: Mapped[int] = mapped_column(ForeignKey('locations.id'), nullable=False, index=True)
    target_name: Mapped[Optional[str]] = mapped_column(String(128))
    related_order_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    related_order_code: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)
    box_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pack_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    piece_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_pieces: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    remark: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
