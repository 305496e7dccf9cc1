from tests.test_lifecycle_helpers import admin_headers, jwt_headers, stocked_setup
from tests.test_utils_seed import ensure_user, ensure_role, make_point, make_base


def test_rule_crud_validation(client):
    _, headers = admin_headers()
    role = ensure_role('Dealer', level=5)
    url = '/iam/data-permission-rules'
    rule = client.post(url, json={
        'role_id': role.id, 'resource': 'point', 'field': 'dealer_id', 'operator': 'eq', 'value_type': 'currentUser',
    }, headers=headers)
    assert rule.status_code == 201
    rule = rule.get_json()
    assert rule['is_active'] is True

    bad = [
        ({'resource': 'spaceship', 'field': 'id', 'value_type': 'currentUser'}, 'unknown resource spaceship'),
        ({'resource': 'point', 'field': 'colour', 'value_type': 'currentUser'}, 'unknown field colour for point'),
        ({'resource': 'point', 'field': 'id', 'operator': 'like', 'value_type': 'currentUser'}, 'operator invalid'),
        ({'resource': 'point', 'field': 'id', 'value_type': 'whoever'}, 'value_type invalid'),
        ({'resource': 'point', 'field': 'id', 'value_type': 'fixed'}, 'value required for fixed rules'),
    ]
    for payload, detail in bad:
        resp = client.post(url, json={'role_id': role.id, **payload}, headers=headers)
        assert resp.status_code == 400
        assert resp.get_json()['error']['detail'] == detail
    assert client.post(url, json={'role_id': 999, 'resource': 'point', 'field': 'id', 'value_type': 'currentUser'},
                       headers=headers).get_json()['error']['detail'] == 'role 999 not found'

    resp = client.put(f'{url}/{rule["id"]}', json={'is_active': False}, headers=headers)
    assert resp.get_json()['is_active'] is False
    assert [r['id'] for r in client.get(f'{url}?role_id={role.id}', headers=headers).get_json()['data']] == [rule['id']]
    assert client.delete(f'{url}/{rule["id"]}', headers=headers).get_json()['deleted'] is True
    assert client.get(f'{url}/{rule["id"]}', headers=headers).status_code == 404


def test_rules_are_ored_per_resource(client):
    _, admin = admin_headers()
    dealer = ensure_user('dealer@example.com')
    role = ensure_role('Dealer', level=5)
    for field, value_type in (('dealer_id', 'currentUser'), ('owner_id', 'currentUser')):
        client.post('/iam/data-permission-rules', json={
            'role_id': role.id, 'resource': 'point', 'field': field, 'value_type': value_type,
        }, headers=admin)
    base = make_base()
    dealt = make_point(base, 'Dealt', dealer_id=dealer.id)
    owned = make_point(base, 'Owned', owner_id=dealer.id)
    make_point(base, 'Unrelated')
    headers = jwt_headers(dealer.id, ['POINT.READ'], roles=[role.id])
    listed = client.get(f'/bases/{base.id}/points', headers=headers).get_json()['data']
    assert sorted(p['id'] for p in listed) == sorted([dealt.id, owned.id])


def test_point_order_rule_follows_dealer_points(client):
    _, admin = admin_headers()
    dealer = ensure_user('dealer@example.com')
    role = ensure_role('Dealer', level=5)
    client.post('/iam/data-permission-rules', json={
        'role_id': role.id, 'resource': 'pointOrder', 'field': 'point_id', 'operator': 'in', 'value_type': 'currentUserDealerPoints',
    }, headers=admin)
    base, warehouse, goods, supplier = stocked_setup()
    mine = make_point(base, 'Mine', dealer_id=dealer.id)
    other = make_point(base, 'Other')
    url = f'/bases/{base.id}/point-orders'
    items = [{'goods_id': goods.id, 'box_quantity': 1}]
    first = client.post(url, json={'point_id': mine.id, 'items': items}, headers=admin).get_json()
    second = client.post(url, json={'point_id': other.id, 'items': items}, headers=admin).get_json()
    headers = jwt_headers(dealer.id, ['PTO.READ'], roles=[role.id])
    assert [o['id'] for o in client.get(url, headers=headers).get_json()['data']] == [first['id']]
    assert client.get(f'{url}/{second["id"]}', headers=headers).status_code == 404


def test_replace_field_permissions(client):
    _, headers = admin_headers()
    role = ensure_role('Anchor', level=4)
    resp = client.put('/iam/field-permissions', json={
        'role_id': role.id, 'resource': 'goods',
        'fields': [{'field': 'name'}, {'field': 'retail_price_cents', 'can_write': True}],
    }, headers=headers)
    assert resp.status_code == 200
    assert [(f['field'], f['can_read'], f['can_write']) for f in resp.get_json()['fields']] == [
        ('name', True, False), ('retail_price_cents', True, True),
    ]
    resp = client.put('/iam/field-permissions', json={'role_id': role.id, 'resource': 'goods', 'fields': [{'field': 'code'}]},
                      headers=headers)
    assert [f['field'] for f in resp.get_json()['fields']] == ['code']
    listed = client.get(f'/iam/field-permissions?role_id={role.id}', headers=headers).get_json()['data']
    assert [f['field'] for f in listed] == ['code']

    dup = client.put('/iam/field-permissions', json={'role_id': role.id, 'resource': 'goods',
                                                     'fields': [{'field': 'name'}, {'field': 'name'}]}, headers=headers)
    assert dup.get_json()['error']['detail'] == 'duplicate field name'
    assert client.put('/iam/field-permissions', json={'role_id': role.id, 'resource': 'goods', 'fields': 'name'},
                      headers=headers).status_code == 400

    user = ensure_user('anchor@example.com')
    me = client.get('/iam/field-permissions/me?resource=goods', headers=jwt_headers(user.id, [], roles=[role.id])).get_json()
    assert me == {'resource': 'goods', 'readable': ['code'], 'writable': []}
    unrestricted = client.get('/iam/field-permissions/me?resource=point', headers=jwt_headers(user.id, [], roles=[role.id])).get_json()
    assert unrestricted['readable'] == ['*']
