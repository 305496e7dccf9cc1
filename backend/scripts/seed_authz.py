#!/usr/bin/env python
"""Idempotent seed script for permissions, roles, the initial Owner and system settings.

Usage:
    python backend/scripts/seed_authz.py               # seed normally
    python backend/scripts/seed_authz.py --show-roles  # print role -> permission counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run     # run logic then rollback (no DB changes)
    python backend/scripts/seed_authz.py --export-json roles.json
"""
from __future__ import annotations
import os, sys, argparse, textwrap, json, hashlib, difflib
from sqlalchemy import select, inspect

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from milicard import create_app, get_db  # type: ignore
from milicard.models.authz import Base, Permission, Role, RolePermission, User, UserRole
from milicard.constants.permissions import SERVICE_ACTIONS, ROLE_PRESETS, ROLE_LEVELS, build_all_permission_codes
from milicard.services.global_settings import seed_system_settings


def ensure_permissions(session):
    existing = {p.code for p in session.execute(select(Permission)).scalars().all()}
    created = 0
    for svc, actions in SERVICE_ACTIONS.items():
        for act in actions:
            code = f"{svc}.{act}"
            if code not in existing:
                session.add(Permission(code=code, service=svc, action=act, description_i18n={"en": code.replace('.', ' - ')}))
                created += 1
    session.flush()
    return created


def ensure_roles(session):
    existing_roles = {r.name: r for r in session.execute(select(Role)).scalars().all()}
    created = 0
    for role_name in ROLE_PRESETS:
        role = existing_roles.get(role_name)
        if role is None:
            role = Role(name=role_name, level=ROLE_LEVELS[role_name], is_system=True, description_i18n={"en": role_name})
            session.add(role)
            existing_roles[role_name] = role
            created += 1
        else:
            role.level = ROLE_LEVELS[role_name]
    session.flush()

    all_codes = set(build_all_permission_codes())
    perms_map = {p.code: p for p in session.execute(select(Permission)).scalars()}
    for role_name, raw_codes in ROLE_PRESETS.items():
        role = existing_roles[role_name]
        desired_codes = all_codes if '*' in raw_codes else set(raw_codes)
        current_codes = {rp.permission.code for rp in role.permissions}
        for code in sorted(desired_codes - current_codes):
            if code not in perms_map:
                print(f"[WARN] Missing permission referenced by role {role_name}: {code}")
                continue
            session.add(RolePermission(role=role, permission=perms_map[code]))
    session.flush()
    return created


def ensure_initial_admin(session):
    owner_role = session.execute(select(Role).where(Role.name == 'Owner')).scalar_one_or_none()
    if not owner_role:
        print('[WARN] Owner role missing; skipping admin user creation')
        return None
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com').lower()
    user = session.execute(select(User).where(User.email == admin_email)).scalar_one_or_none()
    if user:
        return user
    user = User(name='Owner', email=admin_email, password_hash='')
    user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
    session.add(user)
    session.flush()
    session.add(UserRole(user_id=user.id, role_id=owner_role.id))
    session.flush()
    print(f"[INFO] Created initial admin user {admin_email} with temporary password.")
    return user


def build_role_permission_map(session):
    return {
        role.name: sorted({rp.permission.code for rp in role.permissions})
        for role in session.execute(select(Role).order_by(Role.level, Role.id)).scalars()
    }


def roles_checksum(role_perm_map) -> str:
    canonical = json.dumps(role_perm_map, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(canonical.encode('utf-8')).hexdigest()


def validate(session, role_perm_map):
    problems = []
    for code in session.execute(select(Permission.code)).scalars():
        svc, _, action = code.partition('.')
        if svc not in SERVICE_ACTIONS:
            problems.append(f"Unknown service '{svc}' in code: {code}")
            continue
        allowed_actions = set(SERVICE_ACTIONS[svc])
        if action not in allowed_actions:
            suggestion = difflib.get_close_matches(action, allowed_actions, n=1)
            hint = f" (did you mean {suggestion[0]})" if suggestion else ''
            problems.append(f"Unknown action '{action}' for service '{svc}' in code: {code}{hint}")
    known = set(build_all_permission_codes())
    for role_name, codes in role_perm_map.items():
        for code in codes:
            if code not in known:
                problems.append(f"Role '{role_name}' references unknown permission code: {code}")
    return problems


def seed_all(session):
    """Run every idempotent step; returns counts of created rows."""
    return {
        'permissions': ensure_permissions(session),
        'roles': ensure_roles(session),
        'admin': ensure_initial_admin(session) is not None,
        'settings': seed_system_settings(session),
    }


def print_role_summary(role_perm_map):
    if not role_perm_map:
        print("[INFO] No roles present.")
        return
    name_w = max(len(name) for name in role_perm_map)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name, perms in role_perm_map.items():
        print(f"{name.ljust(name_w)} | {str(len(perms)).rjust(5)} | {', '.join(perms[:8])}")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        description="Seed RBAC permissions, roles, the Owner account and system settings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show roles: seed_authz.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--export-json', nargs='?', const='-', metavar='FILE', help='Export role->permissions JSON (to FILE or stdout if omitted)')
    p.add_argument('--validate', action='store_true', help='Validate permission codes & role references; exits non-zero on problems')
    p.add_argument('--fail-if-changed', metavar='CHECKSUM', help='Exit 4 if computed roles checksum differs from provided value')
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    app = create_app()
    with app.app_context():
        session = get_db()
        engine = session.get_bind()
        if not inspect(engine).has_table('permissions'):
            # bootstrap for a fresh database; real environments run `alembic upgrade head`
            Base.metadata.create_all(engine)
        try:
            counts = seed_all(session)
            role_perm_map = build_role_permission_map(session)
            checksum = roles_checksum(role_perm_map)
            if args.validate:
                problems = validate(session, role_perm_map)
                if problems:
                    print('\n[VALIDATION] FAIL:')
                    for problem in problems:
                        print(' -', problem)
                    session.rollback()
                    sys.exit(2)
                print('[VALIDATION] OK: All permission codes & role references valid.')
            if args.fail_if_changed and checksum != args.fail_if_changed:
                print(f"[CHECKSUM] MISMATCH: expected {args.fail_if_changed} got {checksum}")
                session.rollback()
                sys.exit(4)
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) would create: {counts}")
            else:
                session.commit()
                print(f"[DONE] created: {counts}")
            if args.show_roles:
                print('\nRole Permission Summary:')
                print_role_summary(role_perm_map)
            if args.export_json is not None:
                payload = {
                    'roles': role_perm_map,
                    'meta': {
                        'distinct_permissions': len({p for plist in role_perm_map.values() for p in plist}),
                        'roles_checksum_sha256': checksum,
                        'dry_run': args.dry_run,
                    },
                }
                if args.export_json == '-':
                    print(json.dumps(payload, indent=2, sort_keys=True))
                else:
                    with open(args.export_json, 'w', encoding='utf-8') as f:
                        json.dump(payload, f, indent=2, sort_keys=True)
                    print(f"[INFO] Exported JSON to {args.export_json}")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
