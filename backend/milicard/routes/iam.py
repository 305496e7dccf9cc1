from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from milicard.models.authz import User, Role, Permission, RolePermission, UserRole, Group, GroupRole, UserGroup
from milicard.models.audit import AuditLog
from sqlalchemy import select, delete
from milicard import get_db
from milicard.services.policy import compute_effective_permissions, assert_not_removing_last_owner, compute_base_ids
from milicard.utils.listing import respond_list
from milicard.utils.filters import apply_filters, contains, equals, flag
from milicard.utils.validation import parse_bool, iso
from milicard.decorators.audit import audit_log
from milicard.decorators.auth import require_permissions

iam_bp = Blueprint('iam', __name__)


def _role_json(r: Role):
    return {
        'id': r.id,
        'name': r.name,
        'level': r.level,
        'is_system': r.is_system,
        'permissions': sorted(rp.permission.code for rp in r.permissions),
    }


def _group_json(grp: Group):
    return {
        'id': grp.id,
        'name': grp.name,
        'roles': [gr.role.name for gr in grp.roles],
        'base_scope': grp.base_scope or {},
    }


def _user_json(u: User):
    return {
        'id': u.id,
        'name': u.name,
        'email': u.email,
        'phone': u.phone,
        'is_active': u.is_active,
        'locale': u.locale,
        'tz': u.tz,
        'role_ids': sorted(ur.role_id for ur in u.user_roles),
        'group_ids': sorted(ug.group_id for ug in u.user_groups),
        'created_at': iso(u.created_at),
        'updated_at': iso(u.updated_at),
    }


def _check_base_scope(scope):
    if scope is not None and not isinstance(scope, dict):
        abort(400, description='base_scope must be object with optional allow array')
    allow = scope.get('allow') if scope else None
    if allow is not None and (not isinstance(allow, list) or any(not isinstance(x, int) or isinstance(x, bool) for x in allow)):
        abort(400, description='base_scope.allow must be list[int]')
    return scope


def _check_level(raw) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int) or raw < 0:
        abort(400, description='level must be a non-negative int')
    return raw


@iam_bp.route('/permissions', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.ROLE.MANAGE')
def list_permissions():
    q = apply_filters(get_db().query(Permission), {'service': equals(Permission.service)}, request.args)
    q = q.order_by(Permission.id.asc())
    return respond_list(q, lambda p: {
        'id': p.id, 'code': p.code, 'service': p.service, 'action': p.action, 'description_i18n': p.description_i18n,
    })


@iam_bp.route('/roles', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.ROLE.MANAGE')
def list_roles():
    q = get_db().query(Role).order_by(Role.level.asc(), Role.id.asc())
    return respond_list(q, _role_json)


@iam_bp.post('/roles')
@require_permissions('ADMIN.ROLE.MANAGE')
@audit_log('ROLE.CREATE', entity='Role', entity_id_key='id', meta_keys=['name', 'level'])
def create_role():
    data = request.json or {}
    name = data.get('name')
    if not name:
        abort(400, description='name required')
    session = get_db()
    if session.execute(select(Role).where(Role.name==name)).scalar_one_or_none():
        abort(409, description='role exists')
    role = Role(
        name=name,
        level=_check_level(data.get('level', 10)),
        is_system=False,
        description_i18n=data.get('description_i18n') or {},
    )
    session.add(role)
    session.commit()
    return {'id': role.id, 'name': role.name, 'level': role.level}, 201


@iam_bp.put('/roles/<int:role_id>/permissions')
@require_permissions('ADMIN.ROLE.MANAGE')
@audit_log(
    'ROLE.PERM.REPLACE',
    entity='Role',
    entity_id_key='id',
    meta_builder=lambda data, rv, a, kw: {'count': len(data.get('permissions', []))},
)
def replace_role_permissions(role_id: int):
    session = get_db()
    role = session.get(Role, role_id)
    if not role:
        abort(404, description='Role not found')
    data = request.json or {}
    codes = data.get('permissions') or []
    perms = session.execute(select(Permission).where(Permission.code.in_(codes))).scalars().all()
    missing = set(codes) - {p.code for p in perms}
    if missing:
        abort(400, description=f'Unknown permission codes: {sorted(missing)}')
    session.execute(delete(RolePermission).where(RolePermission.role_id==role.id))
    for p in perms:
        session.add(RolePermission(role_id=role.id, permission_id=p.id))
    session.commit()
    # bulk delete bypasses the cached collection
    session.expire(role)
    return {'id': role.id, 'permissions': sorted(set(codes))}


# --- Users ---

@iam_bp.route('/users', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.USER.MANAGE')
def list_users():
    q = apply_filters(get_db().query(User), {
        'name': contains(User.name),
        'email': contains(User.email),
        'is_active': flag(User.is_active),
    }, request.args)
    return respond_list(q.order_by(User.id.asc()), _user_json)


@iam_bp.post('/users')
@require_permissions('ADMIN.USER.MANAGE')
@audit_log('USER.CREATE', entity='User', entity_id_key='id', meta_keys=['email'])
def create_user():
    data = request.json or {}
    name = (data.get('name') or '').strip()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    if not name or not email or not password:
        abort(400, description='name, email & password required')
    session = get_db()
    if session.execute(select(User.id).where(User.email==email)).first():
        abort(409, description='email in use')
    user = User(name=name, email=email, phone=data.get('phone'), locale=data.get('locale') or 'zh-CN', is_active=True)
    if data.get('tz'):
        user.tz = data['tz']
    user.set_password(password)
    session.add(user)
    session.commit()
    return _user_json(user), 201


@iam_bp.put('/users/<int:user_id>')
@require_permissions('ADMIN.USER.MANAGE')
@audit_log('USER.UPDATE', entity='User', entity_id_key='id', diff_keys=['name', 'is_active', 'locale'],
           pre_fetch=lambda a, kw: _prefetch_user(kw.get('user_id')))
def update_user(user_id: int):
    session = get_db()
    user = session.get(User, user_id)
    if not user:
        abort(404, description='User not found')
    data = request.json or {}
    if 'name' in data:
        if not (data.get('name') or '').strip():
            abort(400, description='name cannot be empty')
        user.name = data['name'].strip()
    for name in ('phone', 'locale', 'tz'):
        if name in data:
            setattr(user, name, data[name])
    if 'is_active' in data:
        user.is_active = parse_bool(data['is_active'], 'is_active')
    if data.get('password'):
        user.set_password(data['password'])
    session.commit()
    return _user_json(user)


def _prefetch_user(user_id: int):
    user = get_db().get(User, user_id)
    if not user:
        return {}
    return {'name': user.name, 'is_active': user.is_active, 'locale': user.locale}


@iam_bp.put('/users/<int:user_id>/roles')
@require_permissions('ADMIN.USER.MANAGE')
@audit_log('USER.ROLES.SET', entity='User', entity_id_key='user_id', meta_keys=['role_ids'])
def set_user_roles(user_id: int):
    session = get_db()
    user = session.get(User, user_id)
    if not user:
        abort(404, description='User not found')
    data = request.json or {}
    role_ids = set(data.get('role_ids') or [])
    roles = session.execute(select(Role).where(Role.id.in_(list(role_ids)))).scalars().all() if role_ids else []
    missing = role_ids - {r.id for r in roles}
    if missing:
        abort(400, description=f'Unknown role ids: {sorted(missing)}')
    assert_not_removing_last_owner(user.id, role_ids)
    session.execute(delete(UserRole).where(UserRole.user_id==user.id))
    for rid in role_ids:
        session.add(UserRole(user_id=user.id, role_id=rid))
    session.commit()
    session.expire(user)
    return {'user_id': user.id, 'role_ids': sorted(role_ids)}


@iam_bp.put('/users/<int:user_id>/groups')
@require_permissions('ADMIN.USER.MANAGE')
@audit_log('USER.GROUPS.SET', entity='User', entity_id_key='user_id', meta_keys=['group_ids'])
def set_user_groups(user_id: int):
    session = get_db()
    user = session.get(User, user_id)
    if not user:
        abort(404, description='User not found')
    data = request.json or {}
    group_ids = set(data.get('group_ids') or [])
    groups = session.execute(select(Group).where(Group.id.in_(list(group_ids)))).scalars().all() if group_ids else []
    missing = group_ids - {grp.id for grp in groups}
    if missing:
        abort(400, description=f'Unknown group ids: {sorted(missing)}')
    session.execute(delete(UserGroup).where(UserGroup.user_id==user.id))
    for gid in group_ids:
        session.add(UserGroup(user_id=user.id, group_id=gid))
    session.commit()
    session.expire(user)
    return {'user_id': user.id, 'group_ids': sorted(group_ids)}


# --- Auth ---

@iam_bp.post('/auth/login')
def login():
    data = request.json or {}
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    session = get_db()
    user = session.execute(select(User).where(User.email==email.strip().lower())).scalar_one_or_none()
    if not user or not user.is_active or not user.verify_password(password):
        abort(401, description='invalid credentials')
    eff = compute_effective_permissions(user.id)
    claims = {
        'roles': eff['roles'],
        'perms': eff['perms'],
        'groups': eff['groups'],
        'base_ids': compute_base_ids(user.id),
        'locale': user.locale,
    }
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id), additional_claims=claims)
    return {'access_token': token}


@iam_bp.get('/auth/me')
@jwt_required()
def me():
    user = get_db().get(User, int(get_jwt_identity()))
    if not user:
        abort(404, description='User not found')
    eff = compute_effective_permissions(user.id)
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'roles': eff['roles'],
        'perms': eff['perms'],
        'groups': eff['groups'],
        'locale': user.locale,
        'base_ids': compute_base_ids(user.id),
    }


# --- Group Management ---

@iam_bp.route('/groups', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.GROUP.MANAGE')
def list_groups():
    q = get_db().query(Group).order_by(Group.id.asc())
    return respond_list(q, _group_json)


@iam_bp.post('/groups')
@require_permissions('ADMIN.GROUP.MANAGE')
@audit_log('GROUP.CREATE', entity='Group', entity_id_key='id', meta_keys=['name', 'base_scope'])
def create_group():
    data = request.json or {}
    name = data.get('name')
    if not name:
        abort(400, description='name required')
    session = get_db()
    if session.execute(select(Group).where(Group.name==name)).scalar_one_or_none():
        abort(409, description='group exists')
    grp = Group(
        name=name,
        description_i18n=data.get('description_i18n') or {},
        base_scope=_check_base_scope(data.get('base_scope')),
    )
    session.add(grp)
    session.commit()
    return {'id': grp.id, 'name': grp.name, 'base_scope': grp.base_scope or {}}, 201


@iam_bp.put('/groups/<int:group_id>')
@require_permissions('ADMIN.GROUP.MANAGE')
@audit_log(
    'GROUP.UPDATE',
    entity='Group',
    entity_id_key='id',
    meta_keys=['name'],
    diff_keys=['name', 'base_scope'],
    pre_fetch=lambda a, kw: _prefetch_group_update(kw.get('group_id')),
)
def update_group(group_id: int):
    session = get_db()
    grp = session.get(Group, group_id)
    if not grp:
        abort(404, description='Group not found')
    data = request.json or {}
    if 'name' in data:
        new_name = data['name']
        if not new_name:
            abort(400, description='name cannot be empty')
        existing = session.execute(select(Group).where(Group.name==new_name, Group.id!=grp.id)).scalar_one_or_none()
        if existing:
            abort(409, description='group name in use')
        grp.name = new_name
    if 'description_i18n' in data:
        grp.description_i18n = data['description_i18n'] or {}
    if 'base_scope' in data:
        grp.base_scope = _check_base_scope(data['base_scope'])
    session.commit()
    return {'id': grp.id, 'name': grp.name, 'base_scope': grp.base_scope or {}}


def _prefetch_group_update(group_id: int):  # helper for audit decorator pre_fetch
    grp = get_db().get(Group, group_id)
    if not grp:
        return {}
    return {'name': grp.name, 'base_scope': grp.base_scope or {}}


@iam_bp.delete('/groups/<int:group_id>')
@require_permissions('ADMIN.GROUP.MANAGE')
@audit_log('GROUP.DELETE', entity='Group', entity_id_arg='group_id', meta_keys=['name'])
def delete_group(group_id: int):
    session = get_db()
    grp = session.get(Group, group_id)
    if not grp:
        abort(404, description='Group not found')
    name = grp.name
    session.delete(grp)
    session.commit()
    return {'deleted': True, 'id': group_id, 'name': name}


@iam_bp.put('/groups/<int:group_id>/roles')
@require_permissions('ADMIN.GROUP.MANAGE')
@audit_log('GROUP.ROLES.SET', entity='Group', entity_id_key='group_id', meta_keys=['role_ids'])
def set_group_roles(group_id: int):
    session = get_db()
    grp = session.get(Group, group_id)
    if not grp:
        abort(404, description='Group not found')
    data = request.json or {}
    role_ids = set(data.get('role_ids') or [])
    roles = session.execute(select(Role).where(Role.id.in_(list(role_ids)))).scalars().all() if role_ids else []
    missing = role_ids - {r.id for r in roles}
    if missing:
        abort(400, description=f'Unknown role ids: {sorted(missing)}')
    session.execute(delete(GroupRole).where(GroupRole.group_id==grp.id))
    for rid in role_ids:
        session.add(GroupRole(group_id=grp.id, role_id=rid))
    session.commit()
    session.expire(grp)
    return {'group_id': grp.id, 'role_ids': sorted(role_ids)}


# --- Audit Log Listing ---

@iam_bp.route('/audit/logs', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.SETTINGS.MANAGE')
def list_audit_logs():
    q = apply_filters(get_db().query(AuditLog), {
        'actor_user_id': equals(AuditLog.actor_user_id, coerce=int),
        'action': equals(AuditLog.action),
        'entity': equals(AuditLog.entity),
        'entity_id': equals(AuditLog.entity_id),
        'base_id': equals(AuditLog.base_id, coerce=int),
    }, request.args)
    q = q.order_by(AuditLog.id.desc())
    return respond_list(q, lambda r: {
        'id': r.id,
        'actor_user_id': r.actor_user_id,
        'action': r.action,
        'entity': r.entity,
        'entity_id': r.entity_id,
        'base_id': r.base_id,
        'meta': r.meta,
        'created_at': iso(r.created_at),
    })
