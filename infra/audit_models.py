"""Audit trail of lifecycle transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, Optional

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class AuditLog(Base):
    """One status change (or creation/deletion) of a booking, stream or payment."""

    __tablename__ = "audit_logs"

    id: int = Column(Integer, primary_key=True)
    entity: str = Column(String(32), nullable=False, index=True)
    entity_id: str = Column(String(36), nullable=False, index=True)
    action: str = Column(String(64), nullable=False)
    actor_id: Optional[str] = Column(String(36), nullable=True, index=True)
    from_status: Optional[str] = Column(String(16), nullable=True)
    to_status: Optional[str] = Column(String(16), nullable=True)
    details: Dict[str, object] = Column(JSON, nullable=False, default=dict)
    created_at: datetime = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


__all__ = ["Base", "AuditLog"]
