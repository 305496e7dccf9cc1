"""CLI scripts run against their own file database; they build the app from the environment."""
import importlib.util
import json
import pathlib
from datetime import datetime, timedelta, timezone

import pytest

import milicard
from milicard import create_app, get_db

SCRIPTS = pathlib.Path(__file__).resolve().parents[1] / 'scripts'


def _load(name: str):
    spec = importlib.util.spec_from_file_location(f'scripts_{name}', SCRIPTS / f'{name}.py')
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture()
def file_db(tmp_path, monkeypatch):
    monkeypatch.setenv('DATABASE_URL', f"sqlite:///{tmp_path / 'scripts.db'}")
    monkeypatch.setenv('UPLOAD_PATH', str(tmp_path / 'uploads'))
    monkeypatch.setenv('SEED_ADMIN_EMAIL', 'root@example.com')
    yield tmp_path
    if milicard.SessionLocal is not None:
        milicard.SessionLocal.remove()
    if milicard.db_engine is not None:
        milicard.db_engine.dispose()


def test_seed_authz_is_idempotent(file_db, capsys):
    from milicard.models.authz import Role, User, Permission
    from milicard.models.settings import GlobalSetting
    from milicard.constants.permissions import ALL_PERMISSION_CODES, ROLE_PRESETS

    seed = _load('seed_authz')
    seed.main([])
    assert '[DONE]' in capsys.readouterr().out
    export = file_db / 'roles.json'
    seed.main(['--validate', '--export-json', str(export)])
    out = capsys.readouterr().out
    assert "created: {'permissions': 0, 'roles': 0, 'admin': True, 'settings': 0}" in out
    assert '[VALIDATION] OK' in out

    payload = json.loads(export.read_text(encoding='utf-8'))
    assert sorted(payload['roles']) == sorted(ROLE_PRESETS)
    assert len(payload['roles']['Owner']) == len(ALL_PERMISSION_CODES)
    assert payload['meta']['roles_checksum_sha256'] == seed.roles_checksum(payload['roles'])

    app = create_app()
    with app.app_context():
        session = get_db()
        assert session.query(Permission).count() == len(ALL_PERMISSION_CODES)
        assert session.query(Role).count() == len(ROLE_PRESETS)
        assert session.query(User).filter_by(email='root@example.com').one().verify_password('ChangeMe123!')
        assert session.query(GlobalSetting).filter_by(is_system=True).count() == 2


def test_seed_authz_checksum_guard(file_db, capsys):
    seed = _load('seed_authz')
    seed.main(['--dry-run'])
    assert '[DRY-RUN]' in capsys.readouterr().out
    with pytest.raises(SystemExit) as exc:
        seed.main(['--fail-if-changed', 'not-a-checksum'])
    assert exc.value.code == 4


def test_cleanup_visits_script(file_db, capsys):
    from milicard.models.authz import Base, User
    from milicard.models.operating_base import OperatingBase
    from milicard.models.point import Point, PointVisit

    app = create_app()
    with app.app_context():
        session = get_db()
        Base.metadata.create_all(session.get_bind())
        user = User(name='Visitor', email='v@example.com', password_hash='')
        user.set_password('pw')
        base = OperatingBase(code='BASE-SCRIPTS0001', name='Script base')
        session.add_all([user, base])
        session.flush()
        point = Point(base_id=base.id, code='POINT-SCRIPTS0001', name='Shop')
        session.add(point)
        session.flush()
        now = datetime.now(timezone.utc)
        session.add_all([
            PointVisit(base_id=base.id, point_id=point.id, visitor_id=user.id, visit_date=now - timedelta(days=40), images=[]),
            PointVisit(base_id=base.id, point_id=point.id, visitor_id=user.id, visit_date=now - timedelta(days=3), images=[]),
        ])
        session.commit()

    cleanup = _load('cleanup_visits')
    assert cleanup.main(['--days', '0']) == 2
    assert cleanup.main(['--days', '30']) == 0
    assert '[DONE] Removed 1 visits older than 30 days' in capsys.readouterr().out
    assert cleanup.main([]) == 0
    assert '[DONE] Removed 0 visits older than 7 days' in capsys.readouterr().out


def test_generate_spec_out_and_check(tmp_path, capsys):
    gen = _load('generate_spec')
    out = tmp_path / 'spec' / 'openapi.json'
    assert gen.main(['--out', str(out)]) == 0
    assert gen.main(['--check', str(out)]) == 0
    assert 'Spec OK' in capsys.readouterr().out
    stale = json.loads(out.read_text(encoding='utf-8'))
    stale['info']['version'] = '0.0.0'
    out.write_text(json.dumps(stale), encoding='utf-8')
    assert gen.main(['--check', str(out)]) == 2
