from tests.test_lifecycle_helpers import admin_headers, jwt_headers, stocked_setup, receive_stock
from tests.test_utils_seed import ensure_user, ensure_role, make_category, make_goods
from milicard import get_db
from milicard.models.data_permission import FieldPermission


def test_goods_crud(client):
    _, headers = admin_headers()
    booster = make_category('BOOSTER', 'Booster')
    resp = client.post('/goods', json={
        'name': 'Star Booster',
        'name_i18n': {'en-US': 'Star Booster', 'zh-CN': '星之补充包'},
        'category_id': booster.id,
        'retail_price_cents': 24000,
        'purchase_price_cents': 12000,
        'pack_per_box': 24,
        'piece_per_pack': 5,
    }, headers=headers)
    assert resp.status_code == 201
    goods = resp.get_json()
    assert goods['code'].startswith('GOODS-')
    assert goods['pack_per_box'] == 24
    assert goods['name_i18n']['zh-CN'] == '星之补充包'
    assert goods['category'] == {'id': booster.id, 'code': 'BOOSTER', 'name': 'Booster'}

    assert client.post('/goods', json={'name': 'Dup', 'code': goods['code']}, headers=headers).status_code == 409
    resp = client.post('/goods', json={'name': 'Bad', 'pack_per_box': 0}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'pack_per_box must be >= 1'
    assert client.post('/goods', json={'name': 'Bad', 'retail_price_cents': -1}, headers=headers).status_code == 400

    resp = client.put(f'/goods/{goods["id"]}', json={'retail_price_cents': 25000, 'is_active': False}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['retail_price_cents'] == 25000
    assert resp.get_json()['is_active'] is False

    assert client.delete(f'/goods/{goods["id"]}', headers=headers).get_json()['deleted'] is True
    assert client.get(f'/goods/{goods["id"]}', headers=headers).status_code == 404


def test_referenced_goods_cannot_be_deleted(client):
    _, headers = admin_headers()
    base, warehouse, goods, supplier = stocked_setup()
    receive_stock(client, headers, base.id, supplier.id, warehouse.id, goods.id, box=1)
    resp = client.delete(f'/goods/{goods.id}', headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()['error']['detail'] == 'goods is referenced by purchase items'


def test_field_permissions_hide_and_protect_columns(client):
    user = ensure_user('viewer@example.com')
    role = ensure_role('PriceBlind', level=5)
    session = get_db()
    session.add_all([
        FieldPermission(role_id=role.id, resource='goods', field='name', can_read=True, can_write=True),
        FieldPermission(role_id=role.id, resource='goods', field='code', can_read=True, can_write=False),
        FieldPermission(role_id=role.id, resource='goods', field='purchase_price_cents', can_read=False, can_write=False),
    ])
    session.commit()
    goods = make_goods(name='Secret Price')
    headers = jwt_headers(user.id, ['GOODS.READ', 'GOODS.MANAGE'], roles=[role.id])

    row = client.get(f'/goods/{goods.id}', headers=headers).get_json()
    assert set(row) == {'id', 'name', 'code'}
    listed = client.get('/goods', headers=headers).get_json()['data']
    assert 'purchase_price_cents' not in listed[0]

    # non-writable keys are dropped before validation
    resp = client.put(f'/goods/{goods.id}', json={'name': 'Renamed', 'purchase_price_cents': 1}, headers=headers)
    assert resp.status_code == 200
    assert resp.get_json()['name'] == 'Renamed'
    assert resp.get_json()['purchase_price_cents'] == 10000

    me = client.get('/iam/field-permissions/me?resource=goods', headers=headers).get_json()
    assert me == {'resource': 'goods', 'readable': ['code', 'name'], 'writable': ['name']}


def test_admin_level_role_sees_every_field(client):
    user = ensure_user('manager@example.com')
    role = ensure_role('BaseManager', level=1)
    session = get_db()
    session.add(FieldPermission(role_id=role.id, resource='goods', field='name', can_read=True, can_write=True))
    session.commit()
    goods = make_goods()
    headers = jwt_headers(user.id, ['GOODS.READ'], roles=[role.id])
    row = client.get(f'/goods/{goods.id}', headers=headers).get_json()
    assert 'purchase_price_cents' in row
