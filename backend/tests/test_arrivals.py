from tests.test_lifecycle_helpers import admin_headers, stocked_setup, create_resource_and_assert, receive_stock
from tests.test_utils_seed import make_goods, make_location, make_base


def _po(client, headers, base, supplier, goods, box=2):
    return create_resource_and_assert(client, f'/bases/{base.id}/purchase-orders', {
        'supplier_id': supplier.id, 'items': [{'goods_id': goods.id, 'box_quantity': box}],
    }, headers)


def test_partial_then_full_arrival_updates_progress(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    po = _po(client, headers, base, supplier, goods)  # 200 pieces
    url = f'/bases/{base.id}/arrivals'
    first = create_resource_and_assert(client, url, {
        'purchase_order_id': po['id'], 'location_id': warehouse.id,
        'items': [{'goods_id': goods.id, 'box_quantity': 1, 'pack_quantity': 2}],
    }, headers)
    assert first['code'].startswith('AO-')
    assert first['items'][0]['total_pieces'] == 120

    body = client.get(f'/bases/{base.id}/purchase-orders/{po["id"]}', headers=headers).get_json()
    assert body['arrival_status'] == 'PARTIAL'
    assert body['items'][0]['arrived_pieces'] == 120
    assert body['items'][0]['diff_pieces'] == 80

    resp = client.post(url, json={'purchase_order_id': po['id'], 'location_id': warehouse.id,
                                  'items': [{'goods_id': goods.id, 'box_quantity': 1}]}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == f'arrived pieces 220 exceed ordered 200 for goods {goods.id}'

    create_resource_and_assert(client, url, {
        'purchase_order_id': po['id'], 'location_id': warehouse.id, 'code': 'AO-MANUAL-1',
        'items': [{'goods_id': goods.id, 'pack_quantity': 8}],
    }, headers)
    body = client.get(f'/bases/{base.id}/purchase-orders/{po["id"]}', headers=headers).get_json()
    assert body['arrival_status'] == 'ARRIVED'

    listed = client.get(f'{url}?purchase_order_id={po["id"]}', headers=headers).get_json()
    assert listed['pagination']['total'] == 2


def test_arrival_validation(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    po = _po(client, headers, base, supplier, goods)
    url = f'/bases/{base.id}/arrivals'
    other_goods = make_goods(name='Not ordered')
    resp = client.post(url, json={'purchase_order_id': po['id'], 'location_id': warehouse.id,
                                  'items': [{'goods_id': other_goods.id, 'box_quantity': 1}]}, headers=headers)
    assert resp.status_code == 400
    assert 'is not on purchase order' in resp.get_json()['error']['detail']

    foreign = make_location(make_base('Elsewhere'))
    resp = client.post(url, json={'purchase_order_id': po['id'], 'location_id': foreign.id,
                                  'items': [{'goods_id': goods.id, 'box_quantity': 1}]}, headers=headers)
    assert resp.get_json()['error']['detail'] == 'location does not belong to this base'

    create_resource_and_assert(client, url, {'purchase_order_id': po['id'], 'location_id': warehouse.id, 'code': 'AO-X',
                                             'items': [{'goods_id': goods.id, 'box_quantity': 1}]}, headers)
    resp = client.post(url, json={'purchase_order_id': po['id'], 'location_id': warehouse.id, 'code': 'AO-X',
                                  'items': [{'goods_id': goods.id, 'box_quantity': 1}]}, headers=headers)
    assert resp.status_code == 409

    # arrivals lock the order items and block cancellation / deletion
    po_url = f'/bases/{base.id}/purchase-orders/{po["id"]}'
    assert client.put(po_url, json={'items': [{'goods_id': goods.id, 'box_quantity': 3}]}, headers=headers).status_code == 400
    assert client.post(f'{po_url}/cancel', headers=headers, json={}).status_code == 400
    assert client.delete(po_url, headers=headers).status_code == 409

    client.post(f'{po_url}/close', headers=headers, json={})
    resp = client.post(url, json={'purchase_order_id': po['id'], 'location_id': warehouse.id,
                                  'items': [{'goods_id': goods.id, 'box_quantity': 1}]}, headers=headers)
    assert resp.get_json()['error']['detail'] == 'goods can only arrive against OPEN purchase orders'


def test_delete_arrival_guards(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    po, arrival = receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=1)
    client.post(f'/bases/{base.id}/stock-outs', json={'goods_id': goods.id, 'location_id': warehouse.id, 'pack_quantity': 1}, headers=headers)
    resp = client.delete(f'/bases/{base.id}/arrivals/{arrival["id"]}', headers=headers)
    assert resp.status_code == 409

    po2, arrival2 = receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=1)
    resp = client.delete(f'/bases/{base.id}/arrivals/{arrival2["id"]}', headers=headers)
    assert resp.get_json() == {'deleted': True, 'id': arrival2['id']}
    body = client.get(f'/bases/{base.id}/purchase-orders/{po2["id"]}', headers=headers).get_json()
    assert body['arrival_status'] == 'NOT_ARRIVED'
