from __future__ import annotations
from datetime import datetime, timezone
from flask import Blueprint, request, abort, g
from flask_jwt_extended import get_jwt_identity
from sqlalchemy import func
from milicard import get_db
from milicard.decorators.auth import require_base_permissions
from milicard.decorators.audit import audit_log
from milicard.routes.points import get_visible_point_or_404
from milicard.services.data_permissions import apply_data_permissions
from milicard.services.storage import get_storage, check_uploads
from milicard.utils.listing import respond_list, respond_single, respond_aggregate
from milicard.utils.filters import apply_filters, equals
from milicard.utils.sorting import apply_multi_sort
from milicard.utils.validation import required_int, parse_datetime, iso
from milicard.models.point import PointVisit

visit_bp = Blueprint('point_visits', __name__)

RESOURCE = 'pointVisit'
UPLOAD_FOLDER = 'point-visits'
MAX_UPLOAD_IMAGES = 3


def _visit_query(base_id: int):
    q = get_db().query(PointVisit).filter(PointVisit.base_id == base_id)
    return apply_data_permissions(q, RESOURCE)


def _get_visit_or_404(base_id: int, visit_id: int) -> PointVisit:
    visit = _visit_query(base_id).filter(PointVisit.id == visit_id).one_or_none()
    if not visit:
        abort(404, description='Point visit not found')
    return visit


def _payload() -> dict:
    """JSON body, or form fields when images are uploaded as multipart."""
    if request.mimetype == 'multipart/form-data':
        return request.form.to_dict()
    return request.get_json(silent=True) or {}


def _coordinate(data: dict, name: str, bound: float):
    raw = data.get(name)
    if raw in (None, ''):
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        abort(400, description=f'{name} must be a number')
    if not -bound <= value <= bound:
        abort(400, description=f'{name} out of range')
    return value


def _checked_uploads():
    return check_uploads(request.files.getlist('images'), MAX_UPLOAD_IMAGES)


def _commit_or_discard(session, storage, saved):
    try:
        session.commit()
    except Exception:
        storage.delete_all(saved)
        raise


def _image_urls(data: dict):
    urls = data.get('images') or []
    if not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
        abort(400, description='images must be a list of URLs')
    return urls


@visit_bp.route('/<int:base_id>/point-visits', methods=['GET', 'HEAD'])
@require_base_permissions('VISIT.READ')
def list_visits(base_id: int):
    q = apply_filters(_visit_query(base_id), {
        'point_id': equals(PointVisit.point_id, coerce=int),
        'visitor_id': equals(PointVisit.visitor_id, coerce=int),
    }, request.args)
    allowed = {
        'visit_date': PointVisit.visit_date,
        'created_at': PointVisit.created_at,
        'id': PointVisit.id,
    }
    q = apply_multi_sort(q, request.args.get('sort'), allowed, PointVisit.id, default=[PointVisit.visit_date.desc()])
    return respond_list(q, _visit_json)


@visit_bp.route('/<int:base_id>/point-visits/latest', methods=['GET', 'HEAD'])
@require_base_permissions('VISIT.READ')
def latest_visits(base_id: int):
    """Most recent visit of every visited point."""
    q = _visit_query(base_id)
    newest = (
        q.with_entities(PointVisit.point_id.label('point_id'), func.max(PointVisit.visit_date).label('visit_date'))
        .group_by(PointVisit.point_id)
        .subquery()
    )
    rows = (
        q.join(newest, (PointVisit.point_id == newest.c.point_id) & (PointVisit.visit_date == newest.c.visit_date))
        .order_by(PointVisit.point_id, PointVisit.id.desc())
        .all()
    )
    seen = set()
    latest = []
    for visit in rows:
        if visit.point_id in seen:
            continue
        seen.add(visit.point_id)
        latest.append(_visit_json(visit))
    return respond_aggregate(latest)


@visit_bp.route('/<int:base_id>/point-visits/<int:visit_id>', methods=['GET', 'HEAD'])
@require_base_permissions('VISIT.READ')
def get_visit(base_id: int, visit_id: int):
    visit = _get_visit_or_404(base_id, visit_id)
    return respond_single(_visit_json(visit), visit.updated_at)


@visit_bp.post('/<int:base_id>/point-visits')
@require_base_permissions('VISIT.CREATE')
@audit_log('VISIT.CREATE', entity='PointVisit', entity_id_key='id', meta_keys=['point_id', 'visit_date'])
def create_visit(base_id: int):
    session = get_db()
    data = _payload()
    point = get_visible_point_or_404(g.base.id, required_int(data, 'point_id'))
    visit = PointVisit(
        base_id=g.base.id,
        point_id=point.id,
        visitor_id=int(get_jwt_identity()),
        visit_date=parse_datetime(data.get('visit_date'), 'visit_date', default=datetime.now(timezone.utc)),
        latitude=_coordinate(data, 'latitude', 90),
        longitude=_coordinate(data, 'longitude', 180),
        notes=data.get('notes'),
    )
    images = [] if request.mimetype == 'multipart/form-data' else _image_urls(data)
    uploads = _checked_uploads()
    storage = get_storage()
    saved = storage.save_all(uploads, UPLOAD_FOLDER)
    visit.images = images + saved
    session.add(visit)
    _commit_or_discard(session, storage, saved)
    return _visit_json(visit), 201


@visit_bp.put('/<int:base_id>/point-visits/<int:visit_id>')
@require_base_permissions('VISIT.CREATE')
@audit_log('VISIT.UPDATE', entity='PointVisit', entity_id_key='id', diff_keys=['notes', 'visit_date'],
           pre_fetch=lambda a, kw: _prefetch_visit(kw.get('visit_id')), meta_keys=['point_id'])
def update_visit(base_id: int, visit_id: int):
    session = get_db()
    visit = _get_visit_or_404(base_id, visit_id)
    data = _payload()
    if 'visit_date' in data:
        visit.visit_date = parse_datetime(data.get('visit_date'), 'visit_date')
    if 'latitude' in data:
        visit.latitude = _coordinate(data, 'latitude', 90)
    if 'longitude' in data:
        visit.longitude = _coordinate(data, 'longitude', 180)
    if 'notes' in data:
        visit.notes = data['notes']
    removed = []
    if 'images' in data and request.mimetype != 'multipart/form-data':
        keep = _image_urls(data)
        removed = [url for url in visit.images or [] if url not in keep]
        visit.images = keep
    uploads = _checked_uploads()
    storage = get_storage()
    added = storage.save_all(uploads, UPLOAD_FOLDER)
    if added:
        visit.images = list(visit.images or []) + added
    _commit_or_discard(session, storage, added)
    # stored files go only once the row no longer references them
    storage.delete_all(removed)
    return _visit_json(visit)


@visit_bp.delete('/<int:base_id>/point-visits/<int:visit_id>')
@require_base_permissions('VISIT.DELETE')
@audit_log('VISIT.DELETE', entity='PointVisit', entity_id_arg='visit_id')
def delete_visit(base_id: int, visit_id: int):
    session = get_db()
    visit = _get_visit_or_404(base_id, visit_id)
    images = list(visit.images or [])
    session.delete(visit)
    session.commit()
    removed = get_storage().delete_all(images)
    return {'deleted': True, 'id': visit_id, 'images_removed': removed}


def _visit_json(v: PointVisit):
    return {
        'id': v.id,
        'base_id': v.base_id,
        'point_id': v.point_id,
        'visitor_id': v.visitor_id,
        'visit_date': iso(v.visit_date),
        'latitude': v.latitude,
        'longitude': v.longitude,
        'notes': v.notes,
        'images': list(v.images or []),
        'created_at': iso(v.created_at),
        'updated_at': iso(v.updated_at),
    }


def _prefetch_visit(visit_id: int):
    v = get_db().get(PointVisit, visit_id)
    if not v:
        return {}
    return {'notes': v.notes, 'visit_date': iso(v.visit_date)}
