from milicard.services.translations import resolve_request_language, translate
from tests.test_lifecycle_helpers import admin_headers


def _seed(client, headers):
    resp = client.put('/i18n/translations', json={'items': [
        {'key': 'menu.goods', 'language': 'zh-CN', 'value': '商品'},
        {'key': 'menu.points', 'language': 'zh-CN', 'value': '点位', 'namespace': 'menu'},
        {'key': 'menu.goods', 'language': 'en-US', 'value': 'Goods'},
    ]}, headers=headers)
    assert resp.status_code == 200
    return resp.get_json()


def test_request_language_resolution():
    assert resolve_request_language({'X-Language': 'en-us'}, 'zh-CN') == 'en-US'
    assert resolve_request_language({'Accept-Language': 'fr-FR,vi;q=0.8'}, 'zh-CN') == 'vi-VN'
    assert resolve_request_language({'X-Language': 'klingon', 'Accept-Language': 'th'}, 'zh-CN') == 'th-TH'
    assert resolve_request_language({}, 'zh-CN') == 'zh-CN'


def test_upsert_bundle_and_missing(client):
    _, headers = admin_headers()
    assert _seed(client, headers) == {'created': 3, 'updated': 0, 'languages': ['en-US', 'zh-CN']}
    again = client.put('/i18n/translations', json={'items': [{'key': 'menu.goods', 'language': 'en-US', 'value': 'Products'}]},
                       headers=headers).get_json()
    assert again == {'created': 0, 'updated': 1, 'languages': ['en-US']}

    body = client.get('/i18n/translations?lang=en-US', headers=headers).get_json()
    assert body['data'] == {'menu.goods': 'Products'}
    body = client.get('/i18n/translations?lang=zh-CN&namespace=menu', headers=headers).get_json()
    assert body['data'] == {'menu.points': '点位'}
    missing = client.get('/i18n/missing?lang=en-US', headers=headers).get_json()
    assert missing['data'] == ['menu.points']
    assert client.get('/i18n/translations?lang=de-DE', headers=headers).status_code == 400
    resp = client.put('/i18n/translations', json={'items': [{'key': 'x', 'language': 'xx', 'value': 'y'}]}, headers=headers)
    assert resp.get_json()['error']['detail'] == 'unsupported language xx'


def test_translate_uses_request_language_and_cache(client):
    _, headers = admin_headers()
    _seed(client, headers)
    body = client.get('/i18n/translate?key=menu.goods', headers={**headers, 'X-Language': 'en-US'}).get_json()
    assert body == {'key': 'menu.goods', 'language': 'en-US', 'value': 'Goods'}
    # unknown keys fall back to the key itself
    assert client.get('/i18n/translate?key=menu.nothing&lang=en-US', headers=headers).get_json()['value'] == 'menu.nothing'
    assert translate('menu.goods', 'zh-CN') == '商品'

    rows = client.put('/i18n/translations', json={'items': [{'key': 'menu.goods', 'language': 'zh-CN', 'value': '货品'}]},
                      headers=headers)
    assert rows.status_code == 200
    assert translate('menu.goods', 'zh-CN') == '货品'

    languages = client.get('/i18n/languages', headers={**headers, 'Accept-Language': 'th-TH'}).get_json()
    assert languages['default'] == 'zh-CN'
    assert languages['current'] == 'th-TH'
    assert [lang['code'] for lang in languages['data']] == ['zh-CN', 'en-US', 'vi-VN', 'th-TH']
