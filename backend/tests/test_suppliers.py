from tests.test_lifecycle_helpers import admin_headers
from tests.test_utils_seed import make_base


def test_supplier_create_link_and_unlink(client):
    _, headers = admin_headers()
    north = make_base('North')
    south = make_base('South')
    resp = client.post(f'/bases/{north.id}/suppliers', json={'name': 'Card Co', 'phone': '555'}, headers=headers)
    assert resp.status_code == 201
    supplier = resp.get_json()
    assert supplier['code'].startswith('SUPPLIER-')
    assert supplier['payment_terms'] == 'NET_30'
    assert supplier['linked'] is True
    assert supplier['base_id'] == north.id

    # the same supplier shared with another base with its own terms
    resp = client.post(f'/bases/{south.id}/suppliers', json={
        'supplier_id': supplier['id'], 'payment_terms': 'NET_60', 'credit_limit_cents': 500000,
    }, headers=headers)
    assert resp.status_code == 201
    assert resp.get_json()['payment_terms'] == 'NET_60'
    assert resp.get_json()['credit_limit_cents'] == 500000
    assert client.post(f'/bases/{south.id}/suppliers', json={'supplier_id': 999}, headers=headers).status_code == 404
    assert client.post(f'/bases/{south.id}/suppliers', json={'name': 'X', 'code': supplier['code']}, headers=headers).status_code == 409

    resp = client.put(f'/bases/{north.id}/suppliers/{supplier["id"]}', json={'name': 'Card Company'}, headers=headers)
    assert resp.get_json()['name'] == 'Card Company'

    assert client.delete(f'/bases/{north.id}/suppliers/{supplier["id"]}', headers=headers).get_json()['deleted'] is True
    assert client.get(f'/bases/{north.id}/suppliers/{supplier["id"]}', headers=headers).status_code == 404
    assert client.get(f'/bases/{north.id}/suppliers', headers=headers).get_json()['data'] == []
    south_rows = client.get(f'/bases/{south.id}/suppliers', headers=headers).get_json()['data']
    assert [r['name'] for r in south_rows] == ['Card Company']

    # linking again reactivates the old link
    resp = client.post(f'/bases/{north.id}/suppliers', json={'supplier_id': supplier['id']}, headers=headers)
    assert resp.status_code == 201
    assert client.get(f'/bases/{north.id}/suppliers/{supplier["id"]}', headers=headers).status_code == 200
