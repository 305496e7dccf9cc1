"""Suppliers are global; a base sees the ones linked to it through ``supplier_bases``.

Deleting a supplier from a base only deactivates the link, so purchase history keeps resolving.
"""
from __future__ import annotations
from flask import Blueprint, request, abort, g
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import select
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.services.code_generator import generate_code
from milicard.services.purchasing import active_supplier_link
from milicard.utils.listing import respond_list, respond_single, canonicalize_timestamp
from milicard.utils.filters import apply_filters, contains
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import iso, parse_bool, optional_int, non_negative_int
from milicard.models.supplier import Supplier, SupplierBase

sup_bp = Blueprint('suppliers', __name__)

_SUPPLIER_FIELDS = ('contact_person', 'phone', 'email', 'address', 'notes')


@sup_bp.route('/<int:base_id>/suppliers', methods=['GET', 'HEAD'])
@require_base_permissions('SUP.READ')
def list_suppliers(base_id: int):
    session = get_db()
    q = (
        session.query(SupplierBase)
        .join(Supplier, Supplier.id == SupplierBase.supplier_id)
        .filter(SupplierBase.base_id == base_id, SupplierBase.is_active.is_(True))
    )
    q = apply_filters(q, {'name': contains(Supplier.name)}, request.args)
    allowed = {
        'name': Supplier.name,
        'code': Supplier.code,
        'updated_at': SupplierBase.updated_at,
        'id': Supplier.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, SupplierBase.id)
    return respond_list(q, _link_json)


@sup_bp.route('/<int:base_id>/suppliers/<int:supplier_id>', methods=['GET', 'HEAD'])
@require_base_permissions('SUP.READ')
def get_supplier(base_id: int, supplier_id: int):
    link = _get_link_or_404(base_id, supplier_id)
    return respond_single(_link_json(link), _latest(link))


@sup_bp.post('/<int:base_id>/suppliers')
@require_base_permissions('SUP.MANAGE')
@audit_log('SUP.CREATE', entity='Supplier', entity_id_key='id', meta_keys=['code', 'name', 'payment_terms'])
def create_supplier(base_id: int):
    """Create a supplier and link it, or link an existing ``supplier_id`` (re-activating an old link)."""
    session = get_db()
    data = request.json or {}
    existing_id = optional_int(data, 'supplier_id')
    if existing_id is not None:
        supplier = session.get(Supplier, existing_id)
        if not supplier:
            abort(404, description='Supplier not found')
    else:
        name = (data.get('name') or '').strip()
        if not name:
            abort(400, description='name required')
        code = (data.get('code') or '').strip()
        if code:
            if session.execute(select(Supplier.id).where(Supplier.code == code)).first():
                abort(409, description='supplier code exists')
        else:
            code = generate_code(session, 'SUPPLIER', Supplier)
        supplier = Supplier(code=code, name=name, created_by=int(get_jwt_identity()))
        _apply_supplier_fields(supplier, data)
        session.add(supplier)
        session.flush()
    link = session.execute(
        select(SupplierBase).where(SupplierBase.supplier_id == supplier.id, SupplierBase.base_id == g.base.id)
    ).scalar_one_or_none()
    if link is None:
        link = SupplierBase(supplier_id=supplier.id, base_id=g.base.id)
        session.add(link)
    link.is_active = True
    _apply_link_fields(link, data)
    session.commit()
    return _link_json(link), 201


@sup_bp.put('/<int:base_id>/suppliers/<int:supplier_id>')
@require_base_permissions('SUP.MANAGE')
@audit_log('SUP.UPDATE', entity='Supplier', entity_id_key='id', diff_keys=['name', 'payment_terms', 'credit_limit_cents'],
           pre_fetch=lambda a, kw: _prefetch_link(kw.get('base_id'), kw.get('supplier_id')), meta_keys=['code'])
def update_supplier(base_id: int, supplier_id: int):
    session = get_db()
    link = _get_link_or_404(base_id, supplier_id)
    data = request.json or {}
    supplier = link.supplier
    if 'name' in data:
        if not (data.get('name') or '').strip():
            abort(400, description='name cannot be empty')
        supplier.name = data['name'].strip()
    _apply_supplier_fields(supplier, data)
    _apply_link_fields(link, data)
    session.commit()
    return _link_json(link)


@sup_bp.delete('/<int:base_id>/suppliers/<int:supplier_id>')
@require_base_permissions('SUP.MANAGE')
@audit_log('SUP.UNLINK', entity='Supplier', entity_id_arg='supplier_id')
def delete_supplier(base_id: int, supplier_id: int):
    session = get_db()
    link = _get_link_or_404(base_id, supplier_id)
    link.is_active = False
    session.commit()
    return {'deleted': True, 'id': supplier_id}


def _get_link_or_404(base_id: int, supplier_id: int) -> SupplierBase:
    link = active_supplier_link(get_db(), base_id, supplier_id)
    if not link:
        abort(404, description='Supplier not found')
    return link


def _apply_supplier_fields(supplier: Supplier, data: dict):
    for name in _SUPPLIER_FIELDS:
        if name in data:
            setattr(supplier, name, data[name])
    if 'is_active' in data:
        supplier.is_active = parse_bool(data['is_active'], 'is_active')


def _apply_link_fields(link: SupplierBase, data: dict):
    if data.get('payment_terms'):
        link.payment_terms = data['payment_terms']
    if 'credit_limit_cents' in data:
        link.credit_limit_cents = non_negative_int(data, 'credit_limit_cents')


def _latest(link: SupplierBase):
    stamps = [s for s in (link.updated_at, link.supplier.updated_at) if s is not None]
    return max(canonicalize_timestamp(s) for s in stamps) if stamps else None


def _link_json(link: SupplierBase):
    s = link.supplier
    return {
        'id': s.id,
        'code': s.code,
        'name': s.name,
        'contact_person': s.contact_person,
        'phone': s.phone,
        'email': s.email,
        'address': s.address,
        'notes': s.notes,
        'is_active': s.is_active,
        'base_id': link.base_id,
        'payment_terms': link.payment_terms,
        'credit_limit_cents': link.credit_limit_cents,
        'linked': link.is_active,
        'updated_at': iso(link.updated_at),
    }


def _prefetch_link(base_id: int, supplier_id: int):
    link = active_supplier_link(get_db(), base_id, supplier_id)
    if not link:
        return {}
    return {'name': link.supplier.name, 'payment_terms': link.payment_terms, 'credit_limit_cents': link.credit_limit_cents}
