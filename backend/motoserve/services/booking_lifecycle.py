# Overview: Booking status state machine: states, allowed transitions, guarded updates.

"""
Booking Lifecycle

================================================================================
STATE MACHINE
================================================================================

    pending -> confirmed -> assigned -> started -> completed
       |           |           |
       +-----------+-----------+--> cancelled
                               |
                               +--> no-show
                   assigned -> assigned   (worker reassignment)

RULES:
1. Cannot skip states (pending -> started is forbidden)
2. completed, cancelled and no-show are terminal
3. Cancellation is refused once work has started
4. Every status change is a conditional UPDATE:
       UPDATE bookings SET ... WHERE id = :id AND status = :expected
   Zero rows affected means another request won the race; that is reported
   as InvalidStateTransition with the status actually stored, never as
   success.
================================================================================
"""

from __future__ import annotations

from typing import Literal

from sqlalchemy import select

from ..errors import InvalidStateTransition, NotFound
from ..models import Booking
from .concurrency import conditional_update


PENDING = "pending"
CONFIRMED = "confirmed"
ASSIGNED = "assigned"
STARTED = "started"
COMPLETED = "completed"
CANCELLED = "cancelled"
NO_SHOW = "no-show"

VALID_STATUSES = {PENDING, CONFIRMED, ASSIGNED, STARTED, COMPLETED, CANCELLED, NO_SHOW}
BookingStatus = Literal["pending", "confirmed", "assigned", "started", "completed", "cancelled", "no-show"]

TERMINAL_STATUSES = {COMPLETED, CANCELLED, NO_SHOW}
CANCELLABLE_STATUSES = {PENDING, CONFIRMED, ASSIGNED}

# Statuses in which worker_id must be set
WORKER_BOUND_STATUSES = {ASSIGNED, STARTED, COMPLETED}

VALID_TRANSITIONS = {
    (PENDING, CONFIRMED),
    (PENDING, CANCELLED),
    (CONFIRMED, ASSIGNED),
    (CONFIRMED, CANCELLED),
    (ASSIGNED, ASSIGNED),
    (ASSIGNED, STARTED),
    (ASSIGNED, CANCELLED),
    (ASSIGNED, NO_SHOW),
    (STARTED, COMPLETED),
}


def can_transition(from_status: str, to_status: str) -> bool:
    """Check a transition against the state machine. Unknown statuses are never valid."""
    if from_status not in VALID_STATUSES or to_status not in VALID_STATUSES:
        return False
    return (from_status, to_status) in VALID_TRANSITIONS


def load_booking(ctx, booking_id: int) -> Booking:
    booking = ctx.session.get(Booking, booking_id)
    if booking is None:
        raise NotFound(f"Booking {booking_id} not found")
    return booking


def require_status(booking: Booking, allowed: set[str] | str, action: str) -> None:
    """Precondition check against the loaded row; the UPDATE re-checks atomically."""
    if isinstance(allowed, str):
        allowed = {allowed}
    if booking.status not in allowed:
        raise InvalidStateTransition(booking.id, booking.status, action)


def current_status(session, booking_id: int) -> str | None:
    table = Booking.__table__
    return session.execute(
        select(table.c.status).where(table.c.id == booking_id)
    ).scalar_one_or_none()


def transition(ctx, booking: Booking, to_status: str, *, action: str, expected: str | None = None,
               conditions=(), **values) -> Booking:
    """
    Move booking from `expected` (default: its loaded status) to `to_status`.

    Extra column values are written in the same UPDATE. On a lost race the
    transaction is rolled back and InvalidStateTransition carries the stored
    status.
    """
    from_status = expected or booking.status
    booking_id = booking.id

    if not can_transition(from_status, to_status):
        raise InvalidStateTransition(booking_id, from_status, action)

    table = Booking.__table__
    updated = conditional_update(
        ctx.session,
        Booking,
        booking,
        table.c.status == from_status,
        *conditions,
        status=to_status,
        **values,
    )
    if not updated:
        ctx.session.rollback()
        raise InvalidStateTransition(booking_id, current_status(ctx.session, booking_id), action)

    return booking


def guarded_update(ctx, booking: Booking, allowed: set[str], *, action: str, conditions=(), **values) -> Booking:
    """
    Write column values while the booking is still in one of `allowed`.

    Same compare-and-set as transition() without a status change; a row
    that moved on meanwhile raises InvalidStateTransition.
    """
    booking_id = booking.id
    table = Booking.__table__
    updated = conditional_update(
        ctx.session,
        Booking,
        booking,
        table.c.status.in_(sorted(allowed)),
        *conditions,
        **values,
    )
    if not updated:
        ctx.session.rollback()
        raise InvalidStateTransition(booking_id, current_status(ctx.session, booking_id), action)

    return booking
