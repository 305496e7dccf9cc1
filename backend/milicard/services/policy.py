from __future__ import annotations
from typing import List, Set, Type
from flask import abort, current_app
from flask_jwt_extended import get_jwt, get_jwt_identity
from sqlalchemy import select
from milicard.models.authz import UserRole, RolePermission, GroupRole, UserGroup, Permission, Role, Group
from milicard.models.operating_base import OperatingBase
from milicard import get_db

OWNER_ROLE = 'Owner'


def current_permissions() -> Set[str]:
    claims = get_jwt()
    return set(claims.get('perms', []))


def has_permissions(*codes: str) -> bool:
    perms = current_permissions()
    return all(c in perms for c in codes)


def current_user_id() -> int:
    return int(get_jwt_identity())


def current_base_ids() -> List[int]:
    """Bases the caller is scoped to; empty means unrestricted."""
    return list(get_jwt().get('base_ids') or [])


def current_role_ids() -> List[int]:
    return list(get_jwt().get('roles') or [])


def compute_effective_permissions(user_id: int):
    session = get_db()
    # Direct roles
    direct_role_ids = [r.role_id for r in session.execute(select(UserRole).where(UserRole.user_id==user_id)).scalars()]
    # Group roles
    group_ids = [ug.group_id for ug in session.execute(select(UserGroup).where(UserGroup.user_id==user_id)).scalars()]
    group_role_ids = []
    if group_ids:
        group_role_ids = [gr.role_id for gr in session.execute(select(GroupRole).where(GroupRole.group_id.in_(group_ids))).scalars()]
    role_ids = set(direct_role_ids + group_role_ids)
    perm_codes = set()
    if role_ids:
        role_perms = session.execute(select(RolePermission).where(RolePermission.role_id.in_(role_ids))).scalars().all()
        perm_ids = [rp.permission_id for rp in role_perms]
        if perm_ids:
            for p in session.execute(select(Permission).where(Permission.id.in_(perm_ids))).scalars():
                perm_codes.add(p.code)
    # Owner wildcard: expands to every known permission
    owner_role = session.execute(select(Role).where(Role.name==OWNER_ROLE)).scalar_one_or_none()
    if owner_role and owner_role.id in role_ids:
        for p in session.execute(select(Permission)).scalars():
            perm_codes.add(p.code)
    return {
        'roles': sorted(role_ids),
        'perms': sorted(perm_codes),
        'groups': group_ids,
    }


def compute_base_ids(user_id: int):
    """Aggregate allowed base ids from group.base_scope JSON: {"allow": [ids...]}. Unique & sorted."""
    session = get_db()
    base_ids = set()
    group_ids = [ug.group_id for ug in session.execute(select(UserGroup).where(UserGroup.user_id==user_id)).scalars()]
    if group_ids:
        for grp in session.execute(select(Group).where(Group.id.in_(group_ids))).scalars():
            scope = grp.base_scope or {}
            allow = scope.get('allow') if isinstance(scope, dict) else None
            if isinstance(allow, list):
                for b in allow:
                    if isinstance(b, int):
                        base_ids.add(b)
    return sorted(base_ids)


def is_admin_caller() -> bool:
    """Owner, or any role at or above the configured admin level, bypasses data/field rules."""
    role_ids = current_role_ids()
    if not role_ids:
        return False
    session = get_db()
    admin_level = int(current_app.config.get('AUTHZ_ADMIN_LEVEL', 1))
    for role in session.execute(select(Role).where(Role.id.in_(role_ids))).scalars():
        if role.name == OWNER_ROLE or role.level <= admin_level:
            return True
    return False


def filter_query_by_bases(query, model_base_column, base_ids=None):
    """Return query filtered by the caller's base scope (no-op when unrestricted)."""
    if base_ids is None:
        base_ids = current_base_ids()
    if base_ids:
        return query.filter(model_base_column.in_(base_ids))
    return query


def count_owner_users(session=None) -> int:
    """Return number of distinct users who possess the Owner role via direct or group assignment."""
    if session is None:
        session = get_db()
    owner_role = session.execute(select(Role).where(Role.name==OWNER_ROLE)).scalar_one_or_none()
    if not owner_role:
        return 0
    direct_user_ids = [ur.user_id for ur in session.execute(select(UserRole).where(UserRole.role_id==owner_role.id)).scalars()]
    group_ids_with_owner = [gr.group_id for gr in session.execute(select(GroupRole).where(GroupRole.role_id==owner_role.id)).scalars()]
    group_user_ids = []
    if group_ids_with_owner:
        group_user_ids = [ug.user_id for ug in session.execute(select(UserGroup).where(UserGroup.group_id.in_(group_ids_with_owner))).scalars()]
    return len(set(direct_user_ids + group_user_ids))


def assert_not_removing_last_owner(target_user_id: int, new_direct_role_ids: set[int]):
    """Ensure that after applying new_direct_role_ids for target_user_id we still have at least one Owner overall."""
    session = get_db()
    owner_role = session.execute(select(Role).where(Role.name==OWNER_ROLE)).scalar_one_or_none()
    if not owner_role:
        return
    if owner_role.id in new_direct_role_ids:
        return
    current_owner_count = count_owner_users(session)
    had_owner = session.execute(select(UserRole).where(UserRole.user_id==target_user_id, UserRole.role_id==owner_role.id)).scalar_one_or_none() is not None
    if had_owner and current_owner_count <= 1:
        abort(400, description='Cannot remove last Owner role')


def assert_base_access(base_id: int):
    base_ids = current_base_ids()
    if not base_ids:
        return  # No scoping
    if base_id not in base_ids:
        abort(403, description='Base access denied')


def get_base_or_404(base_id: int) -> OperatingBase:
    assert_base_access(base_id)
    base = get_db().get(OperatingBase, base_id)
    if not base:
        abort(404, description='Base not found')
    return base


def get_in_base_or_404(model: Type, entity_id: int, base_id: int, label: str = None):
    """Fetch a base-owned row; rows of other bases are reported as missing."""
    obj = get_db().get(model, entity_id)
    if not obj or obj.base_id != base_id:
        abort(404, description=f'{label or model.__name__} not found')
    return obj
