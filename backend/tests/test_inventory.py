from tests.test_lifecycle_helpers import admin_headers, stocked_setup, receive_stock
from tests.test_utils_seed import make_location, make_base
from milicard import get_db
from milicard.services.global_settings import seed_system_settings


def test_stock_is_arrivals_minus_stock_outs(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=3, pack=1, piece=4)  # 314
    client.post(f'/bases/{base.id}/stock-outs', json={
        'goods_id': goods.id, 'location_id': warehouse.id, 'box_quantity': 1, 'piece_quantity': 6,
    }, headers=headers)  # 106
    rows = client.get(f'/bases/{base.id}/inventory', headers=headers).get_json()['data']
    assert len(rows) == 1
    row = rows[0]
    assert row['total_pieces'] == 208
    assert (row['box_quantity'], row['pack_quantity'], row['piece_quantity']) == (2, 0, 8)
    assert row['goods_code'] == goods.code
    assert row['location_type'] == 'WAREHOUSE'
    # no threshold configured
    assert row['low_stock'] is False


def test_inventory_filters_and_low_stock(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    room = make_location(base, 'LIVE_ROOM', 'Studio')
    receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=10)
    receive_stock(client, headers, base.id, supplier.id, room.id, goods.id, box=2)
    session = get_db()
    seed_system_settings(session)
    session.commit()
    url = f'/bases/{base.id}/inventory'

    rows = client.get(f'{url}?location_id={room.id}', headers=headers).get_json()['data']
    assert [r['location_id'] for r in rows] == [room.id]
    # default threshold: 5 boxes
    low = client.get(f'{url}?low_only=true', headers=headers).get_json()['data']
    assert [(r['location_id'], r['low_stock']) for r in low] == [(room.id, True)]
    assert client.get(f'{url}?location_id=abc', headers=headers).status_code == 400

    summary = client.get(f'{url}/summary', headers=headers).get_json()['data']
    assert summary[0]['total_pieces'] == 1200
    assert summary[0]['location_count'] == 2
    assert summary[0]['stock_value_cents'] == 12 * 10000


def test_inventory_etag_is_content_based(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=1)
    url = f'/bases/{base.id}/inventory'
    first = client.get(url, headers=headers)
    etag = first.headers['ETag']
    assert client.get(url, headers={**headers, 'If-None-Match': etag}).status_code == 304
    client.post(f'/bases/{base.id}/stock-outs', json={'goods_id': goods.id, 'location_id': warehouse.id, 'piece_quantity': 1}, headers=headers)
    assert client.get(url, headers={**headers, 'If-None-Match': etag}).status_code == 200


def test_inventory_stays_inside_its_base(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=1)
    other = make_base('Empty')
    assert client.get(f'/bases/{other.id}/inventory', headers=headers).get_json()['data'] == []
