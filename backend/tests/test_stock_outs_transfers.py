from tests.test_lifecycle_helpers import admin_headers, stocked_setup, receive_stock, create_resource_and_assert
from tests.test_utils_seed import make_location, make_base


def test_manual_stock_out_crud_and_availability(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=1)  # 100 pieces
    url = f'/bases/{base.id}/stock-outs'
    so = create_resource_and_assert(client, url, {
        'goods_id': goods.id, 'location_id': warehouse.id, 'pack_quantity': 6, 'target_name': 'Live show', 'remark': 'giveaway',
    }, headers)
    assert so['type'] == 'MANUAL'
    assert so['code'].startswith('SO-')
    assert so['total_pieces'] == 60

    resp = client.post(url, json={'goods_id': goods.id, 'location_id': warehouse.id, 'pack_quantity': 5}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'insufficient stock: requested 50 pieces, available 40'
    assert client.post(url, json={'type': 'TRANSFER', 'goods_id': goods.id, 'location_id': warehouse.id,
                                  'piece_quantity': 1}, headers=headers).status_code == 400

    # the row being edited does not count against its own availability
    resp = client.put(f'{url}/{so["id"]}', json={'pack_quantity': 10}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['total_pieces'] == 100
    assert client.put(f'{url}/{so["id"]}', json={'piece_quantity': 1}, headers=headers).status_code == 400

    assert client.delete(f'{url}/{so["id"]}', headers=headers).get_json()['deleted'] is True
    assert client.get(f'{url}/{so["id"]}', headers=headers).status_code == 404


def test_stock_out_stats(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    room = make_location(base, 'LIVE_ROOM', 'Studio')
    receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=2)
    url = f'/bases/{base.id}/stock-outs'
    client.post(url, json={'goods_id': goods.id, 'location_id': warehouse.id, 'piece_quantity': 30}, headers=headers)
    client.post(f'/bases/{base.id}/transfers', json={
        'from_location_id': warehouse.id, 'to_base_id': base.id, 'to_location_id': room.id,
        'goods_id': goods.id, 'box_quantity': 1,
    }, headers=headers)
    stats = client.get(f'{url}/stats', headers=headers).get_json()
    assert stats['total_count'] == 2
    assert stats['total_pieces'] == 130
    assert stats['by_type']['MANUAL'] == {'count': 1, 'total_pieces': 30}
    assert stats['by_type']['TRANSFER'] == {'count': 1, 'total_pieces': 100}
    assert stats['by_type']['POINT_ORDER'] == {'count': 0, 'total_pieces': 0}
    assert stats['by_location'] == [{'location_id': warehouse.id, 'location_name': warehouse.name, 'count': 2, 'total_pieces': 130}]


def test_transfer_between_bases_moves_stock(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    target_base = make_base('Target')
    target_loc = make_location(target_base, 'WAREHOUSE', 'Target WH')
    receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=2)
    transfer = create_resource_and_assert(client, f'/bases/{base.id}/transfers', {
        'from_location_id': warehouse.id, 'to_base_id': target_base.id, 'to_location_id': target_loc.id,
        'goods_id': goods.id, 'box_quantity': 1, 'pack_quantity': 5,
    }, headers)
    assert transfer['code'].startswith('TO-')
    assert transfer['total_pieces'] == 150
    assert transfer['stock_out_id']

    src = client.get(f'/bases/{base.id}/inventory', headers=headers).get_json()['data']
    dst = client.get(f'/bases/{target_base.id}/inventory', headers=headers).get_json()['data']
    assert [r['total_pieces'] for r in src] == [50]
    assert [(r['location_id'], r['total_pieces']) for r in dst] == [(target_loc.id, 150)]

    # the generated stock-out belongs to the transfer and cannot be edited directly
    so_url = f'/bases/{base.id}/stock-outs/{transfer["stock_out_id"]}'
    so = client.get(so_url, headers=headers).get_json()
    assert so['type'] == 'TRANSFER'
    assert so['related_order_code'] == transfer['code']
    assert client.delete(so_url, headers=headers).status_code == 400

    assert [t['id'] for t in client.get(f'/bases/{target_base.id}/transfers?direction=in', headers=headers).get_json()['data']] == [transfer['id']]
    assert client.get(f'/bases/{target_base.id}/transfers?direction=out', headers=headers).get_json()['data'] == []
    assert client.get(f'/bases/{target_base.id}/transfers/{transfer["id"]}', headers=headers).status_code == 200
    third = make_base('Third')
    assert client.get(f'/bases/{third.id}/transfers/{transfer["id"]}', headers=headers).status_code == 404


def test_transfer_validation(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=1)
    url = f'/bases/{base.id}/transfers'
    same = client.post(url, json={'from_location_id': warehouse.id, 'to_base_id': base.id, 'to_location_id': warehouse.id,
                                  'goods_id': goods.id, 'box_quantity': 1}, headers=headers)
    assert same.status_code == 400
    room = make_location(base, 'LIVE_ROOM', 'Studio')
    too_much = client.post(url, json={'from_location_id': warehouse.id, 'to_base_id': base.id, 'to_location_id': room.id,
                                      'goods_id': goods.id, 'box_quantity': 2}, headers=headers)
    assert too_much.status_code == 400
    assert too_much.get_json()['error']['detail'].startswith('insufficient stock')
    assert client.get(f'/bases/{base.id}/transfers', headers=headers).get_json()['data'] == []
    missing_base = client.post(url, json={'from_location_id': warehouse.id, 'to_base_id': 999, 'to_location_id': room.id,
                                          'goods_id': goods.id, 'box_quantity': 1}, headers=headers)
    assert missing_base.status_code == 404
