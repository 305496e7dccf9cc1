from milicard import get_db
from milicard.services.global_settings import seed_system_settings, get_value, low_stock_rule, threshold_pieces, LOW_STOCK_KEY
from tests.test_lifecycle_helpers import admin_headers


def test_setting_crud_and_type_checks(client):
    user, headers = admin_headers()
    resp = client.post('/settings/global-settings', json={'key': 'ui.theme', 'value': 'dark', 'category': 'ui'}, headers=headers)
    assert resp.status_code == 201
    setting = resp.get_json()
    assert setting['value_type'] == 'string'
    assert setting['created_by'] == user.id
    assert client.post('/settings/global-settings', json={'key': 'ui.theme', 'value': 'x'}, headers=headers).status_code == 409
    resp = client.post('/settings/global-settings', json={'key': 'ui.scale', 'value': 'big', 'value_type': 'number'}, headers=headers)
    assert resp.get_json()['error']['detail'] == 'value does not match value_type number'
    assert client.post('/settings/global-settings', json={'key': 'ui.empty'}, headers=headers).status_code == 400

    url = f'/settings/global-settings/{setting["id"]}'
    resp = client.put(url, json={'value': {'mode': 'dark'}, 'value_type': 'json'}, headers=headers)
    assert resp.get_json()['value'] == {'mode': 'dark'}
    assert client.get('/settings/global-settings/key/ui.theme', headers=headers).get_json()['id'] == setting['id']
    assert client.get('/settings/global-settings?category=ui', headers=headers).get_json()['pagination']['total'] == 1
    assert client.get('/settings/global-settings/categories', headers=headers).get_json() == {'data': ['ui']}
    assert client.delete(url, headers=headers).get_json()['deleted'] is True


def test_system_settings_are_protected(client):
    _, headers = admin_headers()
    session = get_db()
    assert seed_system_settings(session) == 2
    session.commit()
    assert seed_system_settings(session) == 0

    setting = client.get(f'/settings/global-settings/key/{LOW_STOCK_KEY}', headers=headers).get_json()
    assert setting['is_system'] is True
    url = f'/settings/global-settings/{setting["id"]}'
    resp = client.put(url, json={'key': 'stock.renamed'}, headers=headers)
    assert resp.get_json()['error']['detail'] == 'system setting key cannot change'
    assert client.delete(url, headers=headers).status_code == 400
    resp = client.put(url, json={'value': {'value': 3, 'unit': 'pack', 'enabled': True}}, headers=headers)
    assert resp.status_code == 200
    assert low_stock_rule() == (3, 'pack')
    assert threshold_pieces(low_stock_rule(), 10, 12) == 36


def test_batch_values(client):
    _, headers = admin_headers()
    resp = client.put('/settings/global-settings/values', json={'values': {'a.flag': True, 'a.limit': 7}}, headers=headers)
    assert resp.get_json() == {'results': {'a.flag': 'created', 'a.limit': 'created'}}
    resp = client.put('/settings/global-settings/values', json={'values': {'a.limit': 9}}, headers=headers)
    assert resp.get_json() == {'results': {'a.limit': 'updated'}}
    # the stored type sticks
    assert client.put('/settings/global-settings/values', json={'values': {'a.limit': 'nine'}}, headers=headers).status_code == 400
    body = client.get('/settings/global-settings/values?keys=a.flag,a.limit,a.missing', headers=headers).get_json()
    assert body == {'data': {'a.flag': True, 'a.limit': 9}}
    assert client.get('/settings/global-settings/values', headers=headers).status_code == 400
    assert client.put('/settings/global-settings/values', json={'values': {}}, headers=headers).status_code == 400

    client.put(f'/settings/global-settings/{client.get("/settings/global-settings/key/a.flag", headers=headers).get_json()["id"]}',
               json={'is_active': False}, headers=headers)
    assert get_value('a.flag', default='off') == 'off'
