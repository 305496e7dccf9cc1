from tests.test_lifecycle_helpers import admin_headers, jwt_headers
from tests.test_utils_seed import (
    ensure_user, ensure_role, ensure_permissions, ensure_user_role_assignment, seed_user_with_role_and_group, make_base,
)


def _login(client, email, password='pw'):
    resp = client.post('/iam/auth/login', json={'email': email, 'password': password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()['access_token']


def test_login_and_me_carry_permissions_and_base_scope(client):
    base = make_base()
    seed_user_with_role_and_group('keeper@example.com', 'Keeper', ['INV.READ', 'ARR.CREATE'], 'Keepers', [base.id])
    token = _login(client, 'keeper@example.com')
    me = client.get('/iam/auth/me', headers={'Authorization': f'Bearer {token}'}).get_json()
    assert me['email'] == 'keeper@example.com'
    assert me['perms'] == ['ARR.CREATE', 'INV.READ']
    assert me['base_ids'] == [base.id]
    assert len(me['roles']) == 1


def test_login_rejects_bad_credentials(client):
    ensure_user('someone@example.com')
    resp = client.post('/iam/auth/login', json={'email': 'someone@example.com', 'password': 'wrong'})
    assert resp.status_code == 401
    assert resp.get_json()['error']['detail'] == 'invalid credentials'
    resp = client.post('/iam/auth/login', json={'email': 'someone@example.com'})
    assert resp.status_code == 400


def test_owner_role_expands_to_every_permission(client):
    ensure_permissions(['GOODS.READ', 'PO.PAY'])
    user = ensure_user('owner@example.com')
    ensure_user_role_assignment(user, ensure_role('Owner', level=0))
    me = client.get('/iam/auth/me', headers={'Authorization': f'Bearer {_login(client, "owner@example.com")}'}).get_json()
    assert {'GOODS.READ', 'PO.PAY'} <= set(me['perms'])


def test_roles_create_and_replace_permissions(client):
    _, headers = admin_headers()
    ensure_permissions(['INV.READ', 'SO.CREATE'])
    resp = client.post('/iam/roles', json={'name': 'Stocker', 'level': 3}, headers=headers)
    assert resp.status_code == 201
    role = resp.get_json()
    assert role['level'] == 3
    assert client.post('/iam/roles', json={'name': 'Stocker'}, headers=headers).status_code == 409
    assert client.post('/iam/roles', json={'name': 'Bad', 'level': -1}, headers=headers).status_code == 400

    resp = client.put(f'/iam/roles/{role["id"]}/permissions', json={'permissions': ['SO.CREATE', 'INV.READ']}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json() == {'id': role['id'], 'permissions': ['INV.READ', 'SO.CREATE']}
    resp = client.put(f'/iam/roles/{role["id"]}/permissions', json={'permissions': ['NOPE.READ']}, headers=headers)
    assert resp.status_code == 400

    client.put(f'/iam/roles/{role["id"]}/permissions', json={'permissions': ['INV.READ']}, headers=headers)
    listed = client.get('/iam/roles', headers=headers).get_json()['data']
    stocker = next(r for r in listed if r['name'] == 'Stocker')
    assert stocker['permissions'] == ['INV.READ']


def test_users_crud_and_role_assignment(client):
    _, headers = admin_headers()
    role = ensure_role('Dealer', level=5)
    resp = client.post('/iam/users', json={'name': 'Dana', 'email': 'Dana@Example.com', 'password': 'secret'}, headers=headers)
    assert resp.status_code == 201
    user = resp.get_json()
    assert user['email'] == 'dana@example.com'
    assert user['role_ids'] == []
    dup = client.post('/iam/users', json={'name': 'Dana', 'email': 'dana@example.com', 'password': 'x'}, headers=headers)
    assert dup.status_code == 409
    assert client.post('/iam/users', json={'name': 'No mail'}, headers=headers).status_code == 400

    resp = client.put(f'/iam/users/{user["id"]}/roles', json={'role_ids': [role.id]}, headers=headers)
    assert resp.get_json() == {'user_id': user['id'], 'role_ids': [role.id]}
    assert client.put(f'/iam/users/{user["id"]}/roles', json={'role_ids': [9999]}, headers=headers).status_code == 400

    resp = client.put(f'/iam/users/{user["id"]}', json={'name': 'Dana L', 'is_active': False}, headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['name'] == 'Dana L' and body['is_active'] is False
    assert body['role_ids'] == [role.id]
    # inactive users cannot log in
    assert client.post('/iam/auth/login', json={'email': 'dana@example.com', 'password': 'secret'}).status_code == 401


def test_cannot_remove_last_owner(client):
    _, headers = admin_headers()
    owner = ensure_role('Owner', level=0)
    user = ensure_user('only-owner@example.com')
    ensure_user_role_assignment(user, owner)
    resp = client.put(f'/iam/users/{user.id}/roles', json={'role_ids': []}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'Cannot remove last Owner role'


def test_groups_scope_validation_and_membership(client):
    _, headers = admin_headers()
    base = make_base()
    assert client.post('/iam/groups', json={'name': 'G', 'base_scope': {'allow': ['x']}}, headers=headers).status_code == 400
    resp = client.post('/iam/groups', json={'name': 'North', 'base_scope': {'allow': [base.id]}}, headers=headers)
    assert resp.status_code == 201
    grp = resp.get_json()
    assert client.post('/iam/groups', json={'name': 'North'}, headers=headers).status_code == 409

    role = ensure_role('Viewer', ['BASE.READ'])
    client.put(f'/iam/groups/{grp["id"]}/roles', json={'role_ids': [role.id]}, headers=headers)
    user = ensure_user('member@example.com')
    resp = client.put(f'/iam/users/{user.id}/groups', json={'group_ids': [grp['id']]}, headers=headers)
    assert resp.get_json() == {'user_id': user.id, 'group_ids': [grp['id']]}

    me = client.get('/iam/auth/me', headers={'Authorization': f'Bearer {_login(client, "member@example.com")}'}).get_json()
    assert me['base_ids'] == [base.id]
    assert me['perms'] == ['BASE.READ']

    groups = client.get('/iam/groups', headers=headers).get_json()['data']
    assert groups[0]['roles'] == ['Viewer']
    resp = client.delete(f'/iam/groups/{grp["id"]}', headers=headers)
    assert resp.get_json()['deleted'] is True


def test_permissions_listing_requires_role_admin(client):
    user = ensure_user('plain@example.com')
    ensure_permissions(['GOODS.READ', 'GOODS.MANAGE', 'PO.READ'])
    assert client.get('/iam/permissions', headers=jwt_headers(user.id, ['GOODS.READ'])).status_code == 403
    body = client.get('/iam/permissions?service=GOODS', headers=jwt_headers(user.id, ['ADMIN.ROLE.MANAGE'])).get_json()
    assert sorted(p['code'] for p in body['data']) == ['GOODS.MANAGE', 'GOODS.READ']


def test_audit_logs_record_successful_mutations(client):
    admin, headers = admin_headers()
    client.post('/iam/roles', json={'name': 'Audited', 'level': 4}, headers=headers)
    # a rejected call leaves no trace
    client.post('/iam/roles', json={'name': 'Audited'}, headers=headers)
    rows = client.get('/iam/audit/logs?action=ROLE.CREATE', headers=headers).get_json()['data']
    assert len(rows) == 1
    assert rows[0]['actor_user_id'] == admin.id
    assert rows[0]['entity'] == 'Role'
    assert rows[0]['meta'] == {'name': 'Audited', 'level': 4}
