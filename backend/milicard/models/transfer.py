from __future__ import annotations
from datetime import date
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Text, Date, ForeignKey

from .authz import Base, TimestampMixin


class TransferOrder(TimestampMixin, Base):
    """Inter-base move; the outbound half is a TRANSFER stock-out at the source location."""
    __tablename__ = 'transfer_orders'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    from_base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), nullable=False, index=True)
    from_location_id: Mapped[int] = mapped_column(ForeignKey('locations.id'), nullable=False)
    to_base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), nullable=False, index=True)
    to_location_id: Mapped[int] = mapped_column(ForeignKey('locations.id'), nullable=False, index=True)
    goods_id: Mapped[int] = mapped_column(ForeignKey('goods.id'), nullable=False, index=True)
    transfer_date: Mapped[date] = mapped_column(Date, nullable=False)
    box_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pack_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    piece_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_pieces: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    stock_out_id: Mapped[Optional[int]] = mapped_column(ForeignKey('stock_outs.id'), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False)
