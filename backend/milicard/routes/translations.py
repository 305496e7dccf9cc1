from __future__ import annotations
from flask import Blueprint, request, abort, current_app
from flask_jwt_extended import jwt_required
from sqlalchemy import select
from milicard import get_db
from milicard.decorators.auth import require_permissions
from milicard.decorators.audit import audit_log
from milicard.services.translations import (
    SUPPORTED_LANGUAGES, LANGUAGE_NAMES, current_language, load_bundle, translate, invalidate, missing_keys,
)
from milicard.models.settings import Translation

i18n_bp = Blueprint('i18n', __name__)

DEFAULT_NAMESPACE = 'common'


def _language_arg(name: str = 'lang') -> str:
    lang = request.args.get(name) or current_language()
    if lang not in SUPPORTED_LANGUAGES:
        abort(400, description=f'unsupported language {lang}')
    return lang


@i18n_bp.get('/languages')
@jwt_required()
def languages():
    return {
        'default': current_app.config['DEFAULT_LANGUAGE'],
        'current': current_language(),
        'data': [{'code': code, 'name': LANGUAGE_NAMES[code]} for code in SUPPORTED_LANGUAGES],
    }


@i18n_bp.get('/translations')
@jwt_required()
def bundle():
    lang = _language_arg()
    namespace = request.args.get('namespace') or None
    return {'language': lang, 'namespace': namespace, 'data': load_bundle(lang, namespace)}


@i18n_bp.get('/translate')
@jwt_required()
def translate_key():
    key = (request.args.get('key') or '').strip()
    if not key:
        abort(400, description='key required')
    lang = _language_arg()
    return {'key': key, 'language': lang, 'value': translate(key, lang)}


@i18n_bp.get('/missing')
@jwt_required()
def missing():
    lang = _language_arg()
    keys = missing_keys(lang)
    return {'language': lang, 'data': keys, 'count': len(keys)}


@i18n_bp.put('/translations')
@require_permissions('I18N.MANAGE')
@audit_log('I18N.UPSERT', entity='Translation', meta_keys=['created', 'updated', 'languages'])
def upsert_translations():
    """Batch upsert of ``{"items": [{key, language, value, namespace?}, ...]}`` keyed on (key, language)."""
    session = get_db()
    items = (request.json or {}).get('items')
    if not isinstance(items, list) or not items:
        abort(400, description='items must be a non-empty list')
    created = updated = 0
    touched = set()
    for raw in items:
        if not isinstance(raw, dict):
            abort(400, description='items must be objects')
        key = (raw.get('key') or '').strip()
        lang = raw.get('language')
        value = raw.get('value')
        if not key or not isinstance(value, str):
            abort(400, description='key and value required')
        if lang not in SUPPORTED_LANGUAGES:
            abort(400, description=f'unsupported language {lang}')
        namespace = raw.get('namespace') or DEFAULT_NAMESPACE
        row = session.execute(
            select(Translation).where(Translation.key == key, Translation.language == lang)
        ).scalar_one_or_none()
        if row is None:
            session.add(Translation(key=key, language=lang, value=value, namespace=namespace))
            # visible to later items of the same batch
            session.flush()
            created += 1
        else:
            row.value = value
            row.namespace = namespace
            updated += 1
        touched.add(lang)
    session.commit()
    for lang in touched:
        invalidate(lang)
    return {'created': created, 'updated': updated, 'languages': sorted(touched)}


@i18n_bp.delete('/translations/<int:translation_id>')
@require_permissions('I18N.MANAGE')
@audit_log('I18N.DELETE', entity='Translation', entity_id_arg='translation_id', meta_keys=['key', 'language'])
def delete_translation(translation_id: int):
    session = get_db()
    row = session.get(Translation, translation_id)
    if not row:
        abort(404, description='Translation not found')
    key, lang = row.key, row.language
    session.delete(row)
    session.commit()
    invalidate(lang)
    return {'deleted': True, 'id': translation_id, 'key': key, 'language': lang}
