from tests.test_utils_seed import ensure_user, ensure_role, ensure_user_role_assignment


def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    # Flask default 404 should be wrapped by error handler
    assert resp.status_code == 404
    body = resp.get_json()
    assert 'error' in body
    assert body['error']['status'] == 404
    assert 'detail' in body['error']


def test_missing_token_is_401(client):
    resp = client.get('/goods')
    assert resp.status_code == 401


def test_missing_permission_is_403(client):
    from tests.test_lifecycle_helpers import jwt_headers
    user = ensure_user('noperm@example.com')
    resp = client.get('/goods', headers=jwt_headers(user.id, ['BASE.READ']))
    assert resp.status_code == 403
    assert resp.get_json()['error']['detail'] == 'Missing permission'


def test_internal_error_shape(client, monkeypatch):
    user = ensure_user('err@example.com')
    role = ensure_role('ErrRole', ['ADMIN.ROLE.MANAGE'])
    ensure_user_role_assignment(user, role)
    token = client.post('/iam/auth/login', json={'email': 'err@example.com', 'password': 'pw'}).get_json()['access_token']
    # Monkeypatch AFTER login so auth works; only break roles listing
    import milicard.routes.iam as iam_mod

    class BoomSession:
        def query(self, *a, **k):
            raise RuntimeError('explode')

    monkeypatch.setattr(iam_mod, 'get_db', lambda: BoomSession())
    resp = client.get('/iam/roles', headers={'Authorization': f'Bearer {token}'})
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error'] == {'status': 500, 'title': 'Internal Server Error', 'detail': 'Unexpected error'}


def test_healthz(client):
    assert client.get('/healthz').get_json() == {'status': 'ok'}
