"""Point goods assignment, point pricing and caps on orders, point inventory and the order form lookups."""
from milicard import get_db
from milicard.models.data_permission import DataPermissionRule
from milicard.models.point import PointGoods
from tests.test_lifecycle_helpers import (
    admin_headers, jwt_headers, stocked_setup, receive_stock, create_resource_and_assert, assert_transition,
)
from tests.test_utils_seed import ensure_user, ensure_role, make_base, make_goods, make_point, make_point_goods


def test_assign_update_and_remove_point_goods(client):
    _, headers = admin_headers()
    base = make_base()
    point = make_point(base)
    goods = make_goods()
    url = f'/bases/{base.id}/points/{point.id}/goods'

    resp = client.post(url, json={'goods_id': goods.id, 'unit_price_cents': 1800, 'max_box_quantity': 2}, headers=headers)
    assert resp.status_code == 201
    config = resp.get_json()
    assert config['unit_price_cents'] == 1800
    assert config['effective_price_cents'] == 1800
    assert client.post(url, json={'goods_id': goods.id}, headers=headers).status_code == 409

    resp = client.put(f'{url}/{config["id"]}', json={'unit_price_cents': None}, headers=headers)
    assert resp.get_json()['unit_price_cents'] is None
    # retail 20000 per box, 10 packs per box
    assert resp.get_json()['effective_price_cents'] == 2000

    assert client.delete(f'{url}/{config["id"]}', headers=headers).get_json()['deleted'] is True
    assert client.get(url, headers=headers).get_json()['data'] == []
    assert len(client.get(f'{url}?include_inactive=true', headers=headers).get_json()['data']) == 1

    # re-adding reactivates the same row and keeps its caps
    resp = client.post(url, json={'goods_id': goods.id}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['id'] == config['id']
    assert resp.get_json()['max_box_quantity'] == 2

    other_point = make_point(base, 'Other Shop')
    assert client.put(f'/bases/{base.id}/points/{other_point.id}/goods/{config["id"]}', json={}, headers=headers).status_code == 404


def test_replace_point_goods_list(client):
    _, headers = admin_headers()
    base = make_base()
    point = make_point(base)
    kept, dropped, added = make_goods(name='Kept'), make_goods(name='Dropped'), make_goods(name='Added')
    make_point_goods(point, kept, unit_price_cents=1500)
    make_point_goods(point, dropped)
    url = f'/bases/{base.id}/points/{point.id}/goods'

    resp = client.put(url, json={'goods_ids': [kept.id, added.id, added.id]}, headers=headers)
    assert resp.status_code == 200
    rows = {r['goods_id']: r for r in resp.get_json()['data']}
    assert set(rows) == {kept.id, added.id}
    assert rows[kept.id]['unit_price_cents'] == 1500
    assert client.put(url, json={'goods_ids': 'all'}, headers=headers).status_code == 400
    assert client.put(url, json={'goods_ids': [999]}, headers=headers).status_code == 400


def _order(client, headers, base, point, items):
    return client.post(f'/bases/{base.id}/point-orders', json={'point_id': point.id, 'items': items}, headers=headers)


def test_point_order_prices_follow_point_then_base_then_catalog(client):
    _, headers = admin_headers()
    base = make_base()
    point = make_point(base)
    priced, base_priced, plain = make_goods(name='Priced'), make_goods(name='Base priced'), make_goods(name='Plain')
    make_point_goods(point, priced, unit_price_cents=1700)
    make_point_goods(point, base_priced)
    client.post(f'/bases/{base.id}/goods-settings', json={'goods_id': base_priced.id, 'pack_price_cents': 1900}, headers=headers)

    resp = _order(client, headers, base, point, [
        {'goods_id': priced.id, 'pack_quantity': 1},
        {'goods_id': base_priced.id, 'pack_quantity': 1},
        {'goods_id': plain.id, 'pack_quantity': 1},
    ])
    assert resp.status_code == 201, resp.get_json()
    prices = {i['goods_id']: i['unit_price_cents'] for i in resp.get_json()['items']}
    assert prices == {priced.id: 1700, base_priced.id: 1900, plain.id: 2000}

    # an explicit line price still wins
    resp = _order(client, headers, base, point, [{'goods_id': priced.id, 'pack_quantity': 1, 'unit_price_cents': 1000}])
    assert resp.get_json()['items'][0]['unit_price_cents'] == 1000


def test_point_order_respects_max_quantities(client):
    _, headers = admin_headers()
    base = make_base()
    point = make_point(base)
    goods = make_goods(code='STAR')
    make_point_goods(point, goods, max_box_quantity=2, max_pack_quantity=5)

    resp = _order(client, headers, base, point, [{'goods_id': goods.id, 'box_quantity': 3}])
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'goods STAR allows at most 2 boxes per order'
    resp = _order(client, headers, base, point, [{'goods_id': goods.id, 'pack_quantity': 6}])
    assert resp.get_json()['error']['detail'] == 'goods STAR allows at most 5 packs per order'
    assert _order(client, headers, base, point, [{'goods_id': goods.id, 'box_quantity': 2, 'pack_quantity': 5}]).status_code == 201


def test_point_inventory_counts_delivered_orders_only(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=5)
    point = make_point(base)
    url = f'/bases/{base.id}/point-orders'
    delivered = create_resource_and_assert(client, url, {
        'point_id': point.id, 'items': [{'goods_id': goods.id, 'box_quantity': 1, 'pack_quantity': 3}],
    }, headers)
    order_url = f'{url}/{delivered["id"]}'
    assert_transition(client, f'{order_url}/confirm', headers, 200)
    assert_transition(client, f'{order_url}/ship', headers, 200, json={'location_id': warehouse.id})
    assert_transition(client, f'{order_url}/deliver', headers, 200)
    # still pending, not counted
    create_resource_and_assert(client, url, {'point_id': point.id, 'items': [{'goods_id': goods.id, 'box_quantity': 2}]}, headers)

    rows = client.get(f'/bases/{base.id}/points/{point.id}/inventory', headers=headers).get_json()['data']
    assert len(rows) == 1
    assert rows[0]['total_pieces'] == 130
    assert (rows[0]['box_quantity'], rows[0]['pack_quantity'], rows[0]['piece_quantity']) == (1, 3, 0)
    assert rows[0]['last_delivered_at']


def test_available_points_honour_data_permissions(client):
    owner = ensure_user('owner@example.com')
    role = ensure_role('PointOwner', level=10)
    session = get_db()
    session.add(DataPermissionRule(role_id=role.id, resource='point', field='owner_id', operator='eq', value_type='currentUser'))
    session.commit()
    base = make_base()
    mine = make_point(base, 'Mine', owner_id=owner.id)
    make_point(base, 'Mine closed', owner_id=owner.id, is_active=False)
    make_point(base, 'Theirs')
    headers = jwt_headers(owner.id, ['PTO.CREATE'], roles=[role.id])

    rows = client.get(f'/bases/{base.id}/point-orders/available-points', headers=headers).get_json()['data']
    assert [p['id'] for p in rows] == [mine.id]
    _, admin = admin_headers()
    rows = client.get(f'/bases/{base.id}/point-orders/available-points?keyword=theirs', headers=admin).get_json()['data']
    assert [p['name'] for p in rows] == ['Theirs']


def test_available_goods_for_a_point(client):
    _, headers = admin_headers()
    base = make_base()
    point = make_point(base)
    assigned, other = make_goods(name='Assigned', code='A-1'), make_goods(name='Other', code='B-1')
    config = make_point_goods(point, assigned, unit_price_cents=1500, max_pack_quantity=4)
    url = f'/bases/{base.id}/point-orders/available-goods'

    rows = client.get(f'{url}?point_id={point.id}', headers=headers).get_json()['data']
    assert [(r['id'], r['unit_price_cents'], r['max_pack_quantity'], r['point_goods_id']) for r in rows] == [
        (assigned.id, 1500, 4, config.id),
    ]
    rows = client.get(url, headers=headers).get_json()['data']
    assert [(r['code'], r['unit_price_cents'], r['point_goods_id']) for r in rows] == [('A-1', 2000, None), ('B-1', 2000, None)]
    assert [r['id'] for r in client.get(f'{url}?keyword=oth', headers=headers).get_json()['data']] == [other.id]
    assert client.get(f'{url}?point_id=x', headers=headers).status_code == 400
    assert client.get(f'{url}?point_id=999', headers=headers).status_code == 404


def test_deleting_a_point_drops_its_goods(client):
    _, headers = admin_headers()
    base = make_base()
    point = make_point(base)
    make_point_goods(point, make_goods())
    assert client.delete(f'/bases/{base.id}/points/{point.id}', headers=headers).status_code == 200
    assert get_db().query(PointGoods).count() == 0
