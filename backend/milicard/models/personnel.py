from __future__ import annotations
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, Text, ForeignKey

from .authz import Base, TimestampMixin


class Personnel(TimestampMixin, Base):
    __tablename__ = 'personnel'
    ROLE_ANCHOR = 'ANCHOR'
    ROLE_WAREHOUSE_KEEPER = 'WAREHOUSE_KEEPER'
    ALL_ROLES = (ROLE_ANCHOR, ROLE_WAREHOUSE_KEEPER)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    email: Mapped[Optional[str]] = mapped_column(String(128))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
