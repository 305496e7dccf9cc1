from __future__ import annotations
from decimal import Decimal
from typing import Optional, Any
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, Text, JSON, Numeric, ForeignKey, UniqueConstraint

from .authz import Base, TimestampMixin


class CurrencyRate(TimestampMixin, Base):
    __tablename__ = 'currency_rates'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # stored upper-case, e.g. USD
    currency_code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False, index=True)
    currency_name: Mapped[str] = mapped_column(String(64), nullable=False)
    # units of this currency per 1 CNY
    fixed_rate: Mapped[Decimal] = mapped_column(Numeric(18, 6), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class GlobalSetting(TimestampMixin, Base):
    __tablename__ = 'global_settings'
    TYPE_STRING = 'string'
    TYPE_NUMBER = 'number'
    TYPE_BOOLEAN = 'boolean'
    TYPE_JSON = 'json'
    ALL_TYPES = (TYPE_STRING, TYPE_NUMBER, TYPE_BOOLEAN, TYPE_JSON)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    value_type: Mapped[str] = mapped_column(String(16), nullable=False, default=TYPE_STRING)
    description: Mapped[Optional[str]] = mapped_column(Text)
    category: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # system settings may change value but never key, and cannot be deleted
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_by: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)


class Translation(TimestampMixin, Base):
    __tablename__ = 'translations'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(191), nullable=False, index=True)
    language: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    namespace: Mapped[str] = mapped_column(String(64), nullable=False, default='common', index=True)

    __table_args__ = (UniqueConstraint('key', 'language', name='uq_translation_key_language'),)
