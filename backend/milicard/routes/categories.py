from __future__ import annotations
from flask import Blueprint, request, abort
from sqlalchemy import select, func, or_
from milicard import get_db
from milicard.decorators.auth import require_permissions
from milicard.decorators.audit import audit_log
from milicard.utils.listing import respond_list, respond_single
from milicard.utils.filters import apply_filters, flag
from milicard.utils.validation import iso, parse_bool, non_negative_int
from milicard.models.goods import Category, Goods

category_bp = Blueprint('categories', __name__)


def _search(q):
    keyword = (request.args.get('search') or '').strip()
    if keyword:
        like = f'%{keyword}%'
        q = q.filter(or_(Category.code.ilike(like), Category.name.ilike(like)))
    return q


@category_bp.route('', methods=['GET', 'HEAD'])
@require_permissions('GOODS.READ')
def list_categories():
    q = apply_filters(_search(get_db().query(Category)), {
        'is_active': flag(Category.is_active),
    }, request.args)
    q = q.order_by(Category.sort_order.asc(), Category.code.asc(), Category.id.asc())
    return respond_list(q, _category_json)


@category_bp.get('/all')
@require_permissions('GOODS.READ')
def all_categories():
    """Active categories for pickers, unpaginated."""
    rows = get_db().execute(
        select(Category).where(Category.is_active.is_(True)).order_by(Category.sort_order.asc(), Category.code.asc())
    ).scalars()
    return {'data': [_category_json(c) for c in rows]}


@category_bp.route('/<int:category_id>', methods=['GET', 'HEAD'])
@require_permissions('GOODS.READ')
def get_category(category_id: int):
    category = _get_or_404(category_id)
    return respond_single(_category_json(category), category.updated_at)


@category_bp.post('')
@require_permissions('GOODS.MANAGE')
@audit_log('CATEGORY.CREATE', entity='Category', entity_id_key='id', meta_keys=['code', 'name'])
def create_category():
    session = get_db()
    data = request.json or {}
    code = (data.get('code') or '').strip().upper()
    name = (data.get('name') or '').strip()
    if not code or not name:
        abort(400, description='code and name required')
    if session.execute(select(Category.id).where(Category.code == code)).first():
        abort(409, description='category code exists')
    category = Category(code=code, name=name)
    _apply_fields(category, data)
    session.add(category)
    session.commit()
    return _category_json(category), 201


@category_bp.put('/<int:category_id>')
@require_permissions('GOODS.MANAGE')
@audit_log('CATEGORY.UPDATE', entity='Category', entity_id_key='id', diff_keys=['name', 'is_active'],
           pre_fetch=lambda a, kw: _prefetch_category(kw.get('category_id')), meta_keys=['code'])
def update_category(category_id: int):
    session = get_db()
    category = _get_or_404(category_id)
    data = request.json or {}
    if 'code' in data:
        code = (data.get('code') or '').strip().upper()
        if not code:
            abort(400, description='code cannot be empty')
        if code != category.code:
            if session.execute(select(Category.id).where(Category.code == code, Category.id != category.id)).first():
                abort(409, description='category code exists')
            category.code = code
    if 'name' in data:
        if not (data.get('name') or '').strip():
            abort(400, description='name cannot be empty')
        category.name = data['name'].strip()
    _apply_fields(category, data)
    session.commit()
    return _category_json(category)


@category_bp.delete('/<int:category_id>')
@require_permissions('GOODS.MANAGE')
@audit_log('CATEGORY.DELETE', entity='Category', entity_id_arg='category_id')
def delete_category(category_id: int):
    session = get_db()
    category = _get_or_404(category_id)
    used = session.execute(select(func.count()).select_from(Goods).where(Goods.category_id == category.id)).scalar_one()
    if used:
        abort(409, description=f'category has {used} goods')
    session.delete(category)
    session.commit()
    return {'deleted': True, 'id': category_id}


def _get_or_404(category_id: int) -> Category:
    category = get_db().get(Category, category_id)
    if not category:
        abort(404, description='Category not found')
    return category


def _apply_fields(category: Category, data: dict):
    if 'description' in data:
        category.description = data['description']
    if 'name_i18n' in data:
        if data['name_i18n'] is not None and not isinstance(data['name_i18n'], dict):
            abort(400, description='name_i18n must be an object')
        category.name_i18n = data['name_i18n'] or {}
    if 'sort_order' in data:
        category.sort_order = non_negative_int(data, 'sort_order')
    if 'is_active' in data:
        category.is_active = parse_bool(data['is_active'], 'is_active')


def _category_json(c: Category):
    return {
        'id': c.id,
        'code': c.code,
        'name': c.name,
        'name_i18n': c.name_i18n or {},
        'description': c.description,
        'sort_order': c.sort_order,
        'is_active': c.is_active,
        'created_at': iso(c.created_at),
        'updated_at': iso(c.updated_at),
    }


def _prefetch_category(category_id: int):
    c = get_db().get(Category, category_id)
    if not c:
        return {}
    return {'name': c.name, 'is_active': c.is_active}
