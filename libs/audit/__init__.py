"""Record lifecycle transitions in the audit trail."""
from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from infra import AuditLog


def record_audit(
    db: Session,
    *,
    entity: str,
    entity_id: str,
    action: str,
    actor_id: Optional[str] = None,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Add an :class:`AuditLog` row to ``db`` without committing.

    ``actor_id`` is ``None`` for system initiated transitions such as
    payment webhooks.
    """

    entry = AuditLog(
        entity=entity,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        from_status=from_status,
        to_status=to_status,
        details=details or {},
    )
    db.add(entry)
    return entry


__all__ = ["record_audit"]
