# Overview: Service-layer operations for the append-only admin audit log.

"""
Audit Log Service

Every successful booking transition appends exactly one AdminLog entry
describing actor, action and timestamp.

FAILURE POLICY:
- The state change is committed first; the entry is written in its own
  transaction right after.
- A failing audit write is logged and swallowed. It never rolls back or
  blocks the transition it describes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from ..models import AdminLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    actor_id: int | None
    actor_role: str
    action: str
    subject_type: str
    subject_id: int | None
    timestamp: datetime
    details: dict = field(default_factory=dict)


class DatabaseAuditSink:
    """Writes entries to the admin_logs table."""

    def __init__(self, session):
        self.session = session

    def append(self, entry: AuditEntry) -> AdminLog:
        log = AdminLog(
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            action=entry.action,
            subject_type=entry.subject_type,
            subject_id=entry.subject_id,
            details=entry.details,
            created_at=entry.timestamp,
        )
        self.session.add(log)
        self.session.commit()
        return log


def record(ctx, action: str, *, subject_type: str, subject_id: int | None, **details) -> bool:
    """
    Append an audit entry for the current actor.

    Returns False if the sink failed; the caller's transition stands either way.
    """
    actor = ctx.actor
    entry = AuditEntry(
        actor_id=actor.id if actor else None,
        actor_role=actor.role if actor else "anonymous",
        action=action,
        subject_type=subject_type,
        subject_id=subject_id,
        timestamp=ctx.now(),
        details=details,
    )
    try:
        ctx.audit.append(entry)
    except SQLAlchemyError:
        ctx.session.rollback()
        logger.warning(
            "Audit write failed for %s on %s %s; transition kept",
            action, subject_type, subject_id, exc_info=True,
        )
        return False
    return True


def list_entries(session, *, subject_type: str, subject_id: int) -> list[AdminLog]:
    return (
        session.query(AdminLog)
        .filter_by(subject_type=subject_type, subject_id=subject_id)
        .order_by(AdminLog.created_at.asc(), AdminLog.id.asc())
        .all()
    )
