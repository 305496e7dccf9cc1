"""Test seeding utilities to reduce duplication.

These helpers centralize creation of users, roles, permissions, groups with base scopes
and the master data (bases, locations, goods, suppliers, points) most flows start from.
"""
from typing import Iterable, Dict, List, Optional
from milicard import get_db
from milicard.models.authz import User, Role, Permission, RolePermission, Group, GroupRole, UserGroup, UserRole
from milicard.services.code_generator import build_code


def ensure_permissions(codes: Iterable[str]):
    """Ensure each permission code exists; return dict code->Permission."""
    session = get_db()
    out: Dict[str, Permission] = {}
    for code in codes:
        obj = session.query(Permission).filter_by(code=code).one_or_none()
        if not obj:
            if '.' not in code:
                raise ValueError(f"Permission code '{code}' missing SERVICE.ACTION pattern")
            service, action = code.split('.', 1)
            obj = Permission(code=code, service=service, action=action, description_i18n={'en': code})
            session.add(obj); session.flush()
        out[code] = obj
    session.commit()
    return out


def ensure_user(email: str, name: Optional[str] = None, password: str = 'pw') -> User:
    session = get_db()
    u = session.query(User).filter_by(email=email).one_or_none()
    if not u:
        u = User(name=name or email.split('@')[0], email=email, password_hash='')
        u.set_password(password)
        session.add(u); session.commit(); session.refresh(u)
    return u


def ensure_role(name: str, perm_codes: Iterable[str] = (), level: int = 10) -> Role:
    session = get_db()
    role = session.query(Role).filter_by(name=name).one_or_none()
    perms = ensure_permissions(perm_codes) if perm_codes else {}
    if not role:
        role = Role(name=name, level=level, is_system=False, description_i18n={'en': name})
        session.add(role); session.flush()
    existing_perm_ids = {rp.permission_id for rp in session.query(RolePermission).filter_by(role_id=role.id)}
    for p in perms.values():
        if p.id not in existing_perm_ids:
            session.add(RolePermission(role_id=role.id, permission_id=p.id))
    session.commit()
    return role


def ensure_user_role_assignment(user: User, role: Role):
    session = get_db()
    if not session.query(UserRole).filter_by(user_id=user.id, role_id=role.id).one_or_none():
        session.add(UserRole(user_id=user.id, role_id=role.id)); session.commit()


def ensure_group(name: str, role: Role, base_ids: List[int]) -> Group:
    session = get_db()
    g = session.query(Group).filter_by(name=name).one_or_none()
    if not g:
        g = Group(name=name, description_i18n={'en': name}, base_scope={'allow': base_ids})
        session.add(g); session.flush()
        session.add(GroupRole(group_id=g.id, role_id=role.id)); session.commit()
    return g


def ensure_user_group_membership(user: User, group: Group):
    session = get_db()
    if not session.query(UserGroup).filter_by(user_id=user.id, group_id=group.id).one_or_none():
        session.add(UserGroup(user_id=user.id, group_id=group.id)); session.commit()


def seed_user_with_role_and_group(email: str, role_name: str, perm_codes: Iterable[str], group_name: str, base_ids: List[int]):
    """High level convenience: user + role(with perms) + group association + base scope."""
    user = ensure_user(email)
    role = ensure_role(role_name, perm_codes)
    ensure_user_role_assignment(user, role)
    group = ensure_group(group_name, role, base_ids)
    ensure_user_group_membership(user, group)
    return user, role, group


# ---------------- Master data helpers ---------------- #
def make_base(name: str = 'Base A', **fields):
    from milicard.models.operating_base import OperatingBase
    session = get_db()
    base = OperatingBase(code=fields.pop('code', None) or build_code('BASE'), name=name, **fields)
    session.add(base); session.commit()
    return base


def make_location(base, loc_type: str = 'WAREHOUSE', name: str = 'Main warehouse', **fields):
    from milicard.models.location import Location
    session = get_db()
    loc = Location(base_id=base.id, type=loc_type, code=build_code(loc_type), name=name, **fields)
    session.add(loc); session.commit()
    return loc


def make_goods(name: str = 'Booster Pack', pack_per_box: int = 10, piece_per_pack: int = 10,
               purchase_price_cents: int = 10000, retail_price_cents: int = 20000, **fields):
    """Default packaging: 1 box = 10 packs = 100 pieces."""
    from milicard.models.goods import Goods
    session = get_db()
    goods = Goods(
        code=fields.pop('code', None) or build_code('GOODS'),
        name=name,
        pack_per_box=pack_per_box,
        piece_per_pack=piece_per_pack,
        purchase_price_cents=purchase_price_cents,
        retail_price_cents=retail_price_cents,
        **fields,
    )
    session.add(goods); session.commit()
    return goods


def make_category(code: str = 'BOOSTER', name: str = 'Booster', **fields):
    from milicard.models.goods import Category
    session = get_db()
    category = Category(code=code, name=name, **fields)
    session.add(category); session.commit()
    return category


def make_point_goods(point, goods, **fields):
    """Assign ``goods`` to ``point``; fields: unit_price_cents, max_box_quantity, max_pack_quantity."""
    from milicard.models.point import PointGoods
    session = get_db()
    config = PointGoods(point_id=point.id, goods_id=goods.id, is_active=fields.pop('is_active', True), **fields)
    session.add(config); session.commit()
    return config


def link_supplier(base, name: str = 'Card Factory'):
    """Create a supplier active in ``base``; returns the Supplier."""
    from milicard.models.supplier import Supplier, SupplierBase
    session = get_db()
    supplier = Supplier(code=build_code('SUPPLIER'), name=name)
    session.add(supplier); session.flush()
    session.add(SupplierBase(supplier_id=supplier.id, base_id=base.id))
    session.commit()
    return supplier


def make_point(base, name: str = 'Corner Shop', owner_id: int = None, dealer_id: int = None, **fields):
    from milicard.models.point import Point
    session = get_db()
    point = Point(base_id=base.id, code=build_code('POINT'), name=name, owner_id=owner_id, dealer_id=dealer_id, **fields)
    session.add(point); session.commit()
    return point


__all__ = [
    'ensure_permissions', 'ensure_user', 'ensure_role', 'ensure_user_role_assignment', 'ensure_group',
    'ensure_user_group_membership', 'seed_user_with_role_and_group', 'make_base', 'make_location',
    'make_goods', 'make_category', 'link_supplier', 'make_point', 'make_point_goods',
]
