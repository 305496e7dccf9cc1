"""Reusable test helpers for order lifecycles to reduce duplication.

Patterns unified:
 - Auth header creation using direct JWT claims (bypassing /login).
 - Creation + transition sequencing with assertion helpers.
 - Stocking a location through the purchase -> arrival flow, since stock is derived from movements.
"""
from __future__ import annotations
from typing import Dict, List, Optional
from flask_jwt_extended import create_access_token
from tests.test_utils_seed import ensure_user, make_base, make_location, make_goods, link_supplier
from milicard.constants.permissions import build_all_permission_codes

ALL_PERMS = build_all_permission_codes()

# ---------- Generic Auth Helpers ---------- #

def jwt_headers(user_id: int, perms: List[str], base_ids: Optional[List[int]] = None, roles: Optional[List[int]] = None):
    token = create_access_token(identity=str(user_id), additional_claims={
        'perms': perms,
        'roles': roles or [],
        'groups': [],
        'base_ids': base_ids or [],
    })
    return {'Authorization': f'Bearer {token}'}


def admin_headers(email: str = 'admin@example.com', **kwargs):
    """All permissions, unrestricted base scope; returns (user, headers)."""
    user = ensure_user(email)
    return user, jwt_headers(user.id, ALL_PERMS, **kwargs)

# ---------- Assertion Helpers ---------- #

def assert_transition(client, url: str, headers: Dict[str, str], expected_status: int, expected_body_key: str = 'status',
                      expected_body_value: str = None, json: dict = None):
    resp = client.post(url, headers=headers, json=json or {})
    assert resp.status_code == expected_status, resp.get_json()
    if expected_status < 400 and expected_body_value is not None:
        body = resp.get_json()
        assert body[expected_body_key] == expected_body_value
    return resp


def create_resource_and_assert(client, url: str, payload: dict, headers: Dict[str, str], expected_status_field: str = 'status',
                               expected_initial_status: str = None):
    resp = client.post(url, json=payload, headers=headers)
    assert resp.status_code == 201, resp.get_json()
    body = resp.get_json()
    if expected_initial_status:
        assert body[expected_status_field] == expected_initial_status
    return body

# ---------- Domain Specific Wrappers ---------- #

def stocked_setup(**goods_fields):
    """Base + warehouse + goods + active supplier; nothing received yet."""
    base = make_base()
    warehouse = make_location(base)
    goods = make_goods(**goods_fields)
    supplier = link_supplier(base)
    return base, warehouse, goods, supplier


def receive_stock(client, headers, base_id: int, supplier_id: int, location_id: int, goods_id: int,
                  box: int = 0, pack: int = 0, piece: int = 0):
    """Order and fully receive a quantity at a location; returns (purchase_order, arrival) bodies."""
    qty = {'box_quantity': box, 'pack_quantity': pack, 'piece_quantity': piece}
    po = create_resource_and_assert(client, f'/bases/{base_id}/purchase-orders', {
        'supplier_id': supplier_id,
        'items': [{'goods_id': goods_id, **qty}],
    }, headers, expected_initial_status='OPEN')
    arrival = create_resource_and_assert(client, f'/bases/{base_id}/arrivals', {
        'purchase_order_id': po['id'],
        'location_id': location_id,
        'items': [{'goods_id': goods_id, **qty}],
    }, headers)
    return po, arrival


__all__ = [
    'ALL_PERMS', 'jwt_headers', 'admin_headers', 'assert_transition', 'create_resource_and_assert',
    'stocked_setup', 'receive_stock',
]
