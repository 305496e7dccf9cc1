from __future__ import annotations
from typing import Optional, Any
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, JSON, ForeignKey, UniqueConstraint

from .authz import Base, TimestampMixin


class DataPermissionRule(TimestampMixin, Base):
    """Row-level visibility rule: ``<resource>.<field> <operator> <resolved value>`` for holders of ``role_id``."""
    __tablename__ = 'data_permission_rules'
    OPERATORS = ('eq', 'in', 'contains', 'notEq')
    VALUE_TYPES = (
        'currentUser',
        'currentBase',
        'currentUserBases',
        'currentUserPoints',
        'currentUserDealerPoints',
        'fixed',
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False, index=True)
    resource: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    field: Mapped[str] = mapped_column(String(64), nullable=False)
    operator: Mapped[str] = mapped_column(String(16), nullable=False, default='eq')
    value_type: Mapped[str] = mapped_column(String(32), nullable=False)
    value: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(255))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class FieldPermission(TimestampMixin, Base):
    __tablename__ = 'field_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role_id: Mapped[int] = mapped_column(ForeignKey('roles.id', ondelete='CASCADE'), nullable=False, index=True)
    resource: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    field: Mapped[str] = mapped_column(String(64), nullable=False)
    can_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    can_write: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (UniqueConstraint('role_id', 'resource', 'field', name='uq_field_permission'),)
