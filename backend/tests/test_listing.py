"""Pagination, conditional GET, HEAD, filter and sort behaviour shared by every list endpoint."""
from tests.test_lifecycle_helpers import admin_headers
from tests.test_utils_seed import make_category, make_goods


def _seed_goods():
    booster = make_category('BOOSTER', 'Booster')
    deck = make_category('DECK', 'Deck')
    make_goods(name='Alpha Booster', category_id=booster.id, retail_price_cents=300)
    make_goods(name='Beta Deck', category_id=deck.id, retail_price_cents=100)
    make_goods(name='Gamma Booster', category_id=booster.id, retail_price_cents=200, is_active=False)
    return booster, deck


def test_pagination_meta(client):
    _, headers = admin_headers()
    _seed_goods()
    resp = client.get('/goods?limit=2&offset=1', headers=headers)
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['pagination'] == {'total': 3, 'limit': 2, 'offset': 1, 'returned': 2}


def test_pagination_clamps_and_rejects(client):
    _, headers = admin_headers()
    _seed_goods()
    body = client.get('/goods?limit=1000&offset=-5', headers=headers).get_json()
    assert body['pagination']['limit'] == 200
    assert body['pagination']['offset'] == 0
    resp = client.get('/goods?limit=abc', headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'limit/offset must be int'


def test_etag_conditional_goods(client):
    _, headers = admin_headers()
    _seed_goods()
    first = client.get('/goods?limit=5', headers=headers)
    assert first.status_code == 200
    etag = first.headers.get('ETag')
    assert etag
    assert first.headers.get('X-Last-Modified-ISO')
    second = client.get('/goods?limit=5', headers={**headers, 'If-None-Match': etag})
    assert second.status_code == 304
    assert second.headers.get('ETag') == etag
    lm = first.headers.get('Last-Modified')
    assert lm
    third = client.get('/goods?limit=5', headers={**headers, 'If-Modified-Since': lm})
    assert third.status_code == 304
    assert third.headers.get('ETag') == etag


def test_head_list_and_single(client):
    _, headers = admin_headers()
    goods = make_goods()
    get_resp = client.get('/goods', headers=headers)
    head_resp = client.head('/goods', headers=headers)
    assert head_resp.status_code == 200
    assert head_resp.data == b''
    assert head_resp.headers.get('ETag') == get_resp.headers.get('ETag')
    single = client.head(f'/goods/{goods.id}', headers=headers)
    assert single.status_code == 200
    assert single.data == b''
    assert single.headers.get('ETag')


def test_filters(client):
    _, headers = admin_headers()
    _, deck = _seed_goods()
    names = lambda resp: sorted(r['name'] for r in resp.get_json()['data'])
    assert names(client.get('/goods?name=booster', headers=headers)) == ['Alpha Booster', 'Gamma Booster']
    assert names(client.get(f'/goods?category_id={deck.id}', headers=headers)) == ['Beta Deck']
    assert names(client.get('/goods?is_active=false', headers=headers)) == ['Gamma Booster']
    assert names(client.get('/goods?is_active=yes', headers=headers)) == ['Alpha Booster', 'Beta Deck']
    resp = client.get('/goods?is_active=maybe', headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'is_active invalid'


def test_multi_sort(client):
    _, headers = admin_headers()
    _seed_goods()
    body = client.get('/goods?sort=category_id,-retail_price_cents', headers=headers).get_json()
    assert [r['name'] for r in body['data']] == ['Alpha Booster', 'Gamma Booster', 'Beta Deck']
    body = client.get('/goods?sort=retail_price_cents', headers=headers).get_json()
    assert [r['retail_price_cents'] for r in body['data']] == [100, 200, 300]
    resp = client.get('/goods?sort=password', headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['detail'] == 'Invalid sort field password'
