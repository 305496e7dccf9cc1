from __future__ import annotations
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Boolean, Text, ForeignKey, UniqueConstraint

from .authz import Base, TimestampMixin


class Supplier(TimestampMixin, Base):
    __tablename__ = 'suppliers'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    contact_person: Mapped[Optional[str]] = mapped_column(String(64))
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    email: Mapped[Optional[str]] = mapped_column(String(128))
    address: Mapped[Optional[str]] = mapped_column(String(255))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    base_links = relationship('SupplierBase', back_populates='supplier', cascade='all, delete-orphan')


class SupplierBase(TimestampMixin, Base):
    """Supplier availability inside one base; deleting a supplier from a base only deactivates this link."""
    __tablename__ = 'supplier_bases'
    DEFAULT_PAYMENT_TERMS = 'NET_30'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    supplier_id: Mapped[int] = mapped_column(ForeignKey('suppliers.id', ondelete='CASCADE'), nullable=False, index=True)
    base_id: Mapped[int] = mapped_column(ForeignKey('bases.id'), nullable=False, index=True)
    payment_terms: Mapped[str] = mapped_column(String(32), nullable=False, default=DEFAULT_PAYMENT_TERMS)
    credit_limit_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    supplier = relationship('Supplier', back_populates='base_links')

    __table_args__ = (UniqueConstraint('supplier_id', 'base_id', name='uq_supplier_base'),)
