# Overview: Worker assignment policy, reassignment, and the re-assignment sweep.

"""
Worker Assignment Policy

WHY: A confirmed booking needs a mechanic from the booking's shop. The
policy is deliberately simple and deterministic:

    candidates = workers WHERE shop_id = :shop AND is_available
                 ORDER BY rating DESC, id ASC
                 LIMIT 5
    selected   = candidates[0]

Tie-break: equal ratings go to the lowest worker id.

SOFT FAILURE:
If no candidate exists the booking simply stays `confirmed`. Nothing is
scheduled; run_assignment_sweep() retries every confirmed booking and is
triggered externally (CLI / cron, the shop sweep endpoint) or by a worker
becoming available again.

HANDOFF:
A worker who becomes unavailable gives up every booking still `assigned`
to them. Each one goes through reassign_worker() as the system actor, which
records a WorkerReassignment with reason "Worker emergency: ...". Work that
has already started stays with its worker.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from ..errors import InvalidStateTransition, NotFound, ValidationFailure
from ..models import Booking, Shop, Worker, WorkerReassignment
from ..policies import authorize
from . import audit_service
from . import booking_lifecycle as lifecycle
from .concurrency import commit_or_fail

logger = logging.getLogger(__name__)


CANDIDATE_LIMIT = 5
ESTIMATED_SERVICE_DURATION = timedelta(minutes=30)


@dataclass
class AssignmentResult:
    booking: Booking
    worker: Worker | None

    @property
    def assigned(self) -> bool:
        return self.worker is not None

    def to_dict(self) -> dict:
        return {
            "booking_id": self.booking.id,
            "worker_assigned": self.assigned,
            "worker": self.worker.to_dict() if self.worker else None,
            "status": self.booking.status,
        }


def find_candidates(ctx, shop_id: int, *, exclude_worker_id: int | None = None,
                    limit: int = CANDIDATE_LIMIT) -> list[Worker]:
    q = ctx.session.query(Worker).filter(
        Worker.shop_id == shop_id,
        Worker.is_available.is_(True),
    )
    if exclude_worker_id is not None:
        q = q.filter(Worker.id != exclude_worker_id)
    return q.order_by(Worker.rating.desc(), Worker.id.asc()).limit(limit).all()


def select_worker(candidates: list[Worker]) -> Worker | None:
    """Highest-rated candidate; candidates arrive already ranked."""
    return candidates[0] if candidates else None


def _assign(ctx, booking: Booking) -> AssignmentResult:
    """
    Assign the best available worker to a confirmed booking.

    Caller has already authorized. Commits on success.
    """
    lifecycle.require_status(booking, lifecycle.CONFIRMED, "assign a worker to")

    worker = select_worker(find_candidates(ctx, booking.shop_id))
    if worker is None:
        logger.info("No available worker for booking %s at shop %s; left confirmed",
                    booking.id, booking.shop_id)
        return AssignmentResult(booking=booking, worker=None)

    now = ctx.now()
    lifecycle.transition(
        ctx, booking, lifecycle.ASSIGNED,
        action="assign a worker to",
        worker_id=worker.id,
        assigned_at=now,
        estimated_completion_time=now + ESTIMATED_SERVICE_DURATION,
    )
    commit_or_fail(ctx.session, "assign worker")

    audit_service.record(
        ctx, "worker_assigned",
        subject_type="booking", subject_id=booking.id,
        worker_id=worker.id, shop_id=booking.shop_id,
    )
    ctx.notifier.notify("worker_assigned", booking_id=booking.id, worker_id=worker.id,
                        customer_id=booking.customer_id)

    return AssignmentResult(booking=booking, worker=worker)


def assign_worker(ctx, booking_id: int) -> AssignmentResult:
    """Assign (or retry assigning) a worker to a confirmed booking."""
    booking = lifecycle.load_booking(ctx, booking_id)
    authorize(ctx, "booking.assign", booking)
    return _assign(ctx, booking)


def assign_after_confirm(ctx, booking: Booking) -> AssignmentResult:
    """Automatic assignment step that follows a successful confirm."""
    return _assign(ctx, booking)


def reassign_worker(ctx, booking_id: int, *, new_worker_id: int | None = None,
                    reason: str | None = None) -> AssignmentResult:
    """
    Move an assigned booking to another worker of the same shop.

    With new_worker_id, that worker must belong to the shop and be available.
    Without it, the best candidate other than the current worker is chosen;
    if there is none the booking keeps its current worker.
    """
    booking = lifecycle.load_booking(ctx, booking_id)
    authorize(ctx, "booking.reassign", booking)
    lifecycle.require_status(booking, lifecycle.ASSIGNED, "reassign")

    old_worker_id = booking.worker_id

    if new_worker_id is not None:
        if new_worker_id == old_worker_id:
            raise ValidationFailure("New worker must differ from the current worker")
        worker = ctx.session.get(Worker, new_worker_id)
        if worker is None or worker.shop_id != booking.shop_id:
            raise NotFound(f"Worker {new_worker_id} not found in shop {booking.shop_id}")
        if not worker.is_available:
            raise ValidationFailure(f"Worker {new_worker_id} is not available")
    else:
        worker = select_worker(find_candidates(ctx, booking.shop_id, exclude_worker_id=old_worker_id))
        if worker is None:
            logger.info("No replacement worker for booking %s; keeping worker %s",
                        booking.id, old_worker_id)
            return AssignmentResult(booking=booking, worker=None)

    table = Booking.__table__
    now = ctx.now()
    lifecycle.transition(
        ctx, booking, lifecycle.ASSIGNED,
        action="reassign",
        conditions=(table.c.worker_id == old_worker_id,),
        worker_id=worker.id,
        assigned_at=now,
        estimated_completion_time=now + ESTIMATED_SERVICE_DURATION,
    )
    ctx.session.add(WorkerReassignment(
        booking_id=booking_id,
        old_worker_id=old_worker_id,
        new_worker_id=worker.id,
        reason=reason or "Worker unavailable",
        reassigned_by=ctx.actor.id,
        reassigned_at=now,
    ))
    commit_or_fail(ctx.session, "reassign worker")

    audit_service.record(
        ctx, "booking_reassigned",
        subject_type="booking", subject_id=booking_id,
        old_worker_id=old_worker_id, new_worker_id=worker.id, reason=reason,
    )
    ctx.notifier.notify("worker_reassigned", booking_id=booking_id,
                        old_worker_id=old_worker_id, new_worker_id=worker.id)

    return AssignmentResult(booking=booking, worker=worker)


def _sweep(ctx, shop_id: int | None) -> list[AssignmentResult]:
    q = ctx.session.query(Booking).filter(Booking.status == lifecycle.CONFIRMED)
    if shop_id is not None:
        q = q.filter(Booking.shop_id == shop_id)
    pending = q.order_by(Booking.created_at.asc(), Booking.id.asc()).all()

    results = []
    for booking in pending:
        try:
            results.append(_assign(ctx, booking))
        except InvalidStateTransition:
            # Another request moved it first (assigned or cancelled)
            logger.info("Booking %s changed during sweep; skipped", booking.id)
    assigned = sum(1 for r in results if r.assigned)
    logger.info("Assignment sweep (shop=%s): %d/%d bookings assigned", shop_id, assigned, len(pending))
    return results


def run_assignment_sweep(ctx, shop_id: int | None = None) -> list[AssignmentResult]:
    """
    Retry assignment for every confirmed booking, oldest first.

    shop_id=None sweeps all shops (admin / system only).
    """
    shop = None
    if shop_id is not None:
        shop = ctx.session.get(Shop, shop_id)
        if shop is None:
            raise NotFound(f"Shop {shop_id} not found")
    authorize(ctx, "shop.assignment_sweep", shop)
    return _sweep(ctx, shop_id)


def _hand_off(ctx, worker: Worker, reason: str) -> list[AssignmentResult]:
    """Reassign every assigned booking of a worker who just became unavailable."""
    bookings = (
        ctx.session.query(Booking)
        .filter(Booking.worker_id == worker.id, Booking.status == lifecycle.ASSIGNED)
        .order_by(Booking.created_at.asc(), Booking.id.asc())
        .all()
    )

    results = []
    for booking in bookings:
        try:
            results.append(reassign_worker(ctx, booking.id, reason=f"Worker emergency: {reason}"))
        except InvalidStateTransition:
            logger.info("Booking %s changed during handoff; skipped", booking.id)
    kept = [r.booking.id for r in results if not r.assigned]
    if kept:
        logger.warning("No replacement for worker %s; bookings %s keep their worker", worker.id, kept)
    return results


def set_worker_availability(ctx, worker_id: int, is_available: bool, *,
                            reason: str | None = None) -> tuple[Worker, list[AssignmentResult]]:
    """
    Toggle a worker's availability.

    A worker becoming available triggers a sweep of their shop's confirmed
    bookings. A worker becoming unavailable hands each of their assigned
    bookings to the best other available worker of the shop; a booking with
    no replacement keeps its worker. Both run as the system actor.
    """
    worker = ctx.session.get(Worker, worker_id)
    if worker is None:
        raise NotFound(f"Worker {worker_id} not found")
    authorize(ctx, "worker.availability", worker)

    if not isinstance(is_available, bool):
        raise ValidationFailure("is_available must be a boolean")

    was_available = worker.is_available
    worker.is_available = is_available
    commit_or_fail(ctx.session, "update worker availability")

    audit_service.record(
        ctx, "worker_availability_changed",
        subject_type="worker", subject_id=worker_id,
        is_available=is_available, reason=reason,
    )

    results: list[AssignmentResult] = []
    if is_available and not was_available:
        results = _sweep(ctx.as_system(), worker.shop_id)
    elif was_available and not is_available:
        results = _hand_off(ctx.as_system(), worker, reason or "marked unavailable")
    return worker, results
