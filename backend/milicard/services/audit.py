from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from flask import request, has_request_context
from flask_jwt_extended import get_jwt_identity, get_jwt
from milicard import get_db
from milicard.models.audit import AuditLog

logger = logging.getLogger(__name__)


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None):
    """Persist an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. ROLE.CREATE, PO.CLOSE, PTO.SHIP
      entity: optional entity name (Role, PurchaseOrder, etc.)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (will be shallow copied)

    The base id is taken from the ``base_id`` URL segment when present.
    """
    session = get_db()
    claims = {}
    actor = None
    try:
        claims = get_jwt() or {}
        ident = get_jwt_identity()
        actor = int(ident) if ident is not None else None
    except RuntimeError:
        # no JWT context (e.g. scripts); keep an anonymous actor
        claims, actor = {}, None
    base_id = (request.view_args or {}).get('base_id') if has_request_context() else None
    log = AuditLog(
        actor_user_id=actor or 0,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        base_id=base_id,
        perms_snapshot={'perms': claims.get('perms', [])},
        meta=dict(meta or {}),
    )
    session.add(log)
    logger.debug('audit %s %s:%s by %s', action, entity, entity_id, actor)
    # No commit here; caller's transaction boundary controls durability.
    return log
