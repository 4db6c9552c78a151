from __future__ import annotations
import logging
from typing import Any, Dict, Optional
from flask import g, has_app_context
from backoffice import get_db
from backoffice.models.audit import AuditLog

logger = logging.getLogger(__name__)


def add_audit(action: str, entity: Optional[str] = None, entity_id: Optional[str] = None, meta: Optional[Dict[str, Any]] = None, actor_email: Optional[str] = None):
    """Stage an audit log entry within the current DB session.

    Parameters:
      action: short action code e.g. TICKET.UPDATE, COSTS.CLEAR, USER.UPDATE
      entity: optional entity name (Ticket, User, Category)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (shallow copied)
      actor_email: defaults to the caller resolved for the current request
    """
    if actor_email is None and has_app_context():
        caller = g.get('caller')
        actor_email = caller.email if caller else ''
    log = AuditLog(
        actor_email=actor_email or '',
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    get_db().add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
