"""Role driven row filters (data permissions) and column visibility (field permissions).

Callers with an admin-level role get neither. For everyone else:
  * every active rule of the caller's roles for a resource becomes one clause, clauses are OR'd,
    and no rules means no filter;
  * field permissions of all caller roles are unioned, and a resource nobody configured stays fully visible.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from flask import abort, g, has_request_context, request
from sqlalchemy import false, or_, select, true

from milicard import get_db
from milicard.models.data_permission import DataPermissionRule, FieldPermission
from milicard.models.point import Point, PointOrder, PointVisit
from milicard.models.purchase_order import PurchaseOrder
from milicard.models.sales import Customer, DistributionOrder
from milicard.models.stock_out import StockOut
from milicard.models.goods import Goods
from milicard.services.policy import current_base_ids, current_role_ids, current_user_id, is_admin_caller
from milicard.utils.field_filter import WILDCARD

logger = logging.getLogger(__name__)

RESOURCE_MODELS = {
    'point': Point,
    'pointOrder': PointOrder,
    'pointVisit': PointVisit,
    'purchaseOrder': PurchaseOrder,
    'stockOut': StockOut,
    'customer': Customer,
    'distributionOrder': DistributionOrder,
    'goods': Goods,
}


def model_for_resource(resource: str):
    model = RESOURCE_MODELS.get(resource)
    if model is None:
        abort(400, description=f'unknown resource {resource}')
    return model


def assert_field_exists(resource: str, field: str):
    model = model_for_resource(resource)
    if field not in model.__table__.columns:
        abort(400, description=f'unknown field {field} for {resource}')


def _current_base_id() -> Optional[int]:
    base = g.get('base') if has_request_context() else None
    if base is not None:
        return base.id
    if has_request_context() and request.view_args:
        return request.view_args.get('base_id')
    return None


def resolve_rule_value(rule: DataPermissionRule) -> Any:
    session = get_db()
    vt = rule.value_type
    if vt == 'currentUser':
        return current_user_id()
    if vt == 'currentBase':
        return _current_base_id()
    if vt == 'currentUserBases':
        return current_base_ids()
    if vt == 'currentUserPoints':
        return list(session.execute(select(Point.id).where(Point.owner_id == current_user_id())).scalars())
    if vt == 'currentUserDealerPoints':
        return list(session.execute(select(Point.id).where(Point.dealer_id == current_user_id())).scalars())
    if vt == 'fixed':
        return rule.value
    logger.warning('data permission rule %s has unknown value type %s', rule.id, vt)
    return None


def rule_clause(model, rule: DataPermissionRule):
    column = getattr(model, rule.field, None)
    if column is None:
        logger.warning('data permission rule %s references missing field %s.%s', rule.id, rule.resource, rule.field)
        return false()
    value = resolve_rule_value(rule)
    if rule.value_type == 'currentUserBases' and not value:
        # unrestricted caller
        return true()
    op = rule.operator
    if op == 'in' or (op == 'eq' and isinstance(value, list)):
        values = value if isinstance(value, list) else [value]
        return column.in_(values) if values else false()
    if op == 'notEq':
        if isinstance(value, list):
            return column.not_in(value) if value else true()
        return column != value
    if op == 'contains':
        return column.ilike(f'%{value}%')
    if value is None:
        return false()
    return column == value


def active_rules(resource: str) -> List[DataPermissionRule]:
    role_ids = current_role_ids()
    if not role_ids:
        return []
    stmt = select(DataPermissionRule).where(
        DataPermissionRule.role_id.in_(role_ids),
        DataPermissionRule.resource == resource,
        DataPermissionRule.is_active.is_(True),
    ).order_by(DataPermissionRule.id)
    return list(get_db().execute(stmt).scalars())


def build_data_filter(resource: str):
    """Return a where-clause for the caller, or None when no restriction applies."""
    if is_admin_caller():
        return None
    rules = active_rules(resource)
    if not rules:
        return None
    model = model_for_resource(resource)
    return or_(*[rule_clause(model, r) for r in rules])


def apply_data_permissions(query, resource: str):
    clause = build_data_filter(resource)
    if clause is None:
        return query
    return query.filter(clause)


def get_field_permissions(resource: str) -> Dict[str, List[str]]:
    if is_admin_caller():
        return {'readable': [WILDCARD], 'writable': [WILDCARD]}
    role_ids = current_role_ids()
    if not role_ids:
        return {'readable': [WILDCARD], 'writable': [WILDCARD]}
    rows = list(get_db().execute(
        select(FieldPermission).where(FieldPermission.role_id.in_(role_ids), FieldPermission.resource == resource)
    ).scalars())
    if not rows:
        return {'readable': [WILDCARD], 'writable': [WILDCARD]}
    readable = sorted({r.field for r in rows if r.can_read})
    writable = sorted({r.field for r in rows if r.can_write})
    return {'readable': readable, 'writable': writable}
