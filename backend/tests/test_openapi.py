import re

from milicard.constants.permissions import ALL_PERMISSION_CODES, ROLE_PRESETS
from milicard.openapi_parts.constants import ACTION_REGISTRY, ENTITIES, SORT_DETAILS, sort_param_name

_VAR = re.compile(r'\{[^}]+\}|<[^>]+>')


def _normalize(path: str) -> str:
    return _VAR.sub('{}', path)


def test_openapi_spec_available(client):
    resp = client.get('/openapi.json')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['openapi'].startswith('3.')
    assert body['info']['title'] == 'Milicard API'
    assert '/iam/auth/login' in body['paths']


def test_docs_page(client):
    resp = client.get('/docs')
    assert resp.status_code == 200
    assert b'redoc' in resp.data.lower()


def test_every_documented_path_is_routed(client, app_instance):
    spec = client.get('/openapi.json').get_json()
    routed = {_normalize(rule.rule) for rule in app_instance.url_map.iter_rules()}
    missing = sorted(p for p in spec['paths'] if _normalize(p) not in routed)
    assert not missing, f'documented but not routed: {missing}'


def test_sort_parameter_components_and_usage(client):
    spec = client.get('/openapi.json').get_json()
    comps = spec['components']['parameters']
    for schema_name, prefix, coll, _, _ in ENTITIES:
        if not SORT_DETAILS.get(schema_name):
            continue
        comp = sort_param_name(schema_name)
        assert comp in comps, f'missing parameter component: {comp}'
        params = spec['paths'][f'{prefix}/{coll}']['get']['parameters']
        assert any(p.get('$ref', '').endswith(comp) for p in params), f'{coll} missing ref to {comp}'


def test_list_caching_headers_documented(client):
    spec = client.get('/openapi.json').get_json()
    for p in ['/bases/{base_id}/point-orders', '/goods', '/bases/{base_id}/stock-outs', '/settings/currency-rates']:
        hdrs = spec['paths'][p]['get']['responses']['200'].get('headers', {})
        for h in ['ETag', 'Last-Modified', 'X-Last-Modified-ISO']:
            assert h in hdrs, f'{p} missing header doc {h}'
    latest = spec['paths']['/bases/{base_id}/point-visits/latest']['get']
    assert 'ETag' in latest['responses']['200']['headers']


def test_required_permissions_are_known_codes(client):
    spec = client.get('/openapi.json').get_json()
    known = set(ALL_PERMISSION_CODES)
    for path, ops in spec['paths'].items():
        for method, op in ops.items():
            for code in op.get('x-required-permissions', []):
                assert code in known, f'{method.upper()} {path} requires unknown permission {code}'


def test_action_permissions_exist_in_some_role():
    perms = {a['permission'] for actions in ACTION_REGISTRY.values() for a in actions}
    role_perms = set().union(*(set(codes) for name, codes in ROLE_PRESETS.items() if name != 'Owner'))
    missing = sorted(perms - role_perms)
    assert not missing, f'action permissions not present in any concrete role: {missing}'


def test_spec_is_deterministic(app_context):
    from milicard.openapi import build_openapi_spec
    assert build_openapi_spec() == build_openapi_spec()
