# Overview: Per-request service context passed explicitly into every service call.

"""
ServiceContext replaces module-level store clients and implicit request
globals. Routes build one per request (see decorators.require_auth); tests
and CLI commands build their own with a pinned clock or a system actor.

    ctx.session   SQLAlchemy session (data-access collaborator)
    ctx.actor     verified Actor(id, role), or None when unauthenticated
    ctx.audit     append-only audit sink
    ctx.notifier  fire-and-forget notification hooks
    ctx.clock     callable returning UTC-naive "now"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Protocol

from sqlalchemy.orm import Session

from .services.audit_service import AuditEntry, DatabaseAuditSink
from .services.notification_service import LoggingNotifier
from .time_utils import utcnow


@dataclass(frozen=True)
class Actor:
    """Identity resolved from a bearer token."""
    id: int | None
    role: str


# Used by CLI commands and availability-triggered sweeps
SYSTEM_ACTOR = Actor(id=None, role="system")


class AuditSink(Protocol):
    """Append-only audit store."""

    def append(self, entry: AuditEntry) -> Any:
        ...


class Notifier(Protocol):
    """Fire-and-forget notification hooks."""

    def notify(self, event: str, **payload) -> None:
        ...


@dataclass
class ServiceContext:
    session: Session
    actor: Actor | None
    audit: AuditSink
    notifier: Notifier
    clock: Callable[[], datetime] = field(default=utcnow)

    def now(self) -> datetime:
        return self.clock()

    def as_system(self) -> "ServiceContext":
        """Same collaborators, acting as the platform itself."""
        return ServiceContext(
            session=self.session,
            actor=SYSTEM_ACTOR,
            audit=self.audit,
            notifier=self.notifier,
            clock=self.clock,
        )


def build_context(
    session: Session,
    actor: Actor | None,
    *,
    clock: Callable[[], datetime] = utcnow,
) -> ServiceContext:
    """Default wiring: database audit sink and logging notifier."""
    return ServiceContext(
        session=session,
        actor=actor,
        audit=DatabaseAuditSink(session),
        notifier=LoggingNotifier(),
        clock=clock,
    )
