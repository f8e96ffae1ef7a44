import json
from typing import Any

from flask import g, has_app_context
from sqlalchemy.orm import Session

from app.chirp.models import Account, AuditEvent


def record_event(
    s: Session,
    *,
    actor: Account | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> AuditEvent:
    """
    Append-only audit event helper. Callers must not pass secrets in `metadata`.
    """
    rid = request_id or (getattr(g, "request_id", None) if has_app_context() else None)
    ev = AuditEvent(
        request_id=rid,
        actor_account_id=actor.id if actor else None,
        actor_email=actor.email if actor else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=json.dumps(metadata, sort_keys=True) if metadata else None,
    )
    s.add(ev)
    return ev
