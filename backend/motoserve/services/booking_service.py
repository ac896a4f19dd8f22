# Overview: Service-layer operations for bookings; drives the booking state machine.

"""
Booking Service

================================================================================
PURPOSE: Orchestrate booking status transitions and their side effects
================================================================================

TRANSITIONS (who / precondition / side effects):

    confirm   owning customer     pending    -> confirmed, then automatic assign
    assign    (see assignment_service)       confirmed  -> assigned (soft-fail)
    start     assigned worker     assigned   -> started, started_at, +30 min ETA
    complete  assigned worker     started    -> completed, duration, total cost,
              or admin                          invoice (exactly once)
    cancel    owning customer     pending | confirmed | assigned -> cancelled,
                                  one token consumed, CancellationRecord
    no-show   shop owner / admin  assigned   -> no-show

AUDIT:
Every transition that succeeds appends one AdminLog entry after its commit.
Audit failures are logged, never surfaced (see audit_service).

CONCURRENCY:
Each transition is one conditional UPDATE keyed on the expected prior
status. A second `complete` on the same booking finds the status is no
longer `started`, fails with InvalidStateTransition, and never reaches the
invoice insert.
================================================================================
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from ..errors import NotFound, QuotaExhausted, ValidationFailure
from ..models import Booking, CancellationRecord, Invoice, Shop, ShopService
from ..policies import authorize
from ..time_utils import parse_iso_datetime, to_naive_utc
from . import assignment_service
from . import audit_service
from . import booking_lifecycle as lifecycle
from . import cancellation_service
from . import commission_service
from .concurrency import commit_or_fail

logger = logging.getLogger(__name__)


ESTIMATED_SERVICE_DURATION = assignment_service.ESTIMATED_SERVICE_DURATION
CUSTOMER_BOOKINGS_LIMIT = 10
# Client-supplied timestamps may run this far ahead of the server clock
CLOCK_SKEW_ALLOWANCE = timedelta(minutes=2)


def _parse_timestamp(value, field: str, now: datetime) -> datetime:
    """Optional client timestamp; defaults to now and may not lie in the future."""
    if value is None or value == "":
        return now
    if isinstance(value, datetime):
        parsed = to_naive_utc(value)
    else:
        try:
            parsed = parse_iso_datetime(str(value))
        except ValueError:
            raise ValidationFailure(f"{field} must be an ISO-8601 datetime")
    if parsed > now + CLOCK_SKEW_ALLOWANCE:
        raise ValidationFailure(f"{field} cannot be in the future")
    return parsed


# =============================================================================
# CREATION / READS
# =============================================================================

def create_booking(ctx, shop_id: int, service_id: int) -> Booking:
    """
    Create a pending booking for the calling customer.

    The service must belong to the shop; its base cost is copied onto the
    booking so later price changes do not affect it.
    """
    authorize(ctx, "booking.create")

    if not shop_id or not service_id:
        raise ValidationFailure("shop_id and service_id are required")

    shop = ctx.session.get(Shop, shop_id)
    if shop is None or not shop.is_active:
        raise NotFound(f"Shop {shop_id} not found")

    service = ctx.session.query(ShopService).filter_by(id=service_id, shop_id=shop_id).first()
    if service is None or not service.is_active:
        raise NotFound(f"Service {service_id} not found at shop {shop_id}")

    booking = Booking(
        customer_id=ctx.actor.id,
        shop_id=shop_id,
        service_id=service_id,
        status=lifecycle.PENDING,
        service_cost_cents=service.base_cost_cents,
        extra_charges_cents=0,
        created_at=ctx.now(),
    )
    ctx.session.add(booking)
    commit_or_fail(ctx.session, "create booking")

    audit_service.record(
        ctx, "booking_created",
        subject_type="booking", subject_id=booking.id,
        shop_id=shop_id, service_id=service_id,
    )
    ctx.notifier.notify("booking_created", booking_id=booking.id, customer_id=booking.customer_id)
    return booking


def get_booking(ctx, booking_id: int) -> Booking:
    booking = lifecycle.load_booking(ctx, booking_id)
    authorize(ctx, "booking.view", booking)
    return booking


def list_customer_bookings(ctx, *, limit: int = CUSTOMER_BOOKINGS_LIMIT) -> list[Booking]:
    """Most recent bookings of the calling customer."""
    authorize(ctx, "booking.list")
    return (
        ctx.session.query(Booking)
        .filter_by(customer_id=ctx.actor.id)
        .order_by(Booking.created_at.desc(), Booking.id.desc())
        .limit(limit)
        .all()
    )


# =============================================================================
# TRANSITIONS
# =============================================================================

def confirm_booking(ctx, booking_id: int) -> assignment_service.AssignmentResult:
    """
    Confirm a pending booking (pending -> confirmed) and try to assign a worker.

    Finding no worker is not an error: the booking stays confirmed and the
    result reports worker_assigned=False.
    """
    booking = lifecycle.load_booking(ctx, booking_id)
    authorize(ctx, "booking.confirm", booking)
    lifecycle.require_status(booking, lifecycle.PENDING, "confirm")

    lifecycle.transition(ctx, booking, lifecycle.CONFIRMED, action="confirm", confirmed_at=ctx.now())
    commit_or_fail(ctx.session, "confirm booking")

    audit_service.record(
        ctx, "booking_confirmed",
        subject_type="booking", subject_id=booking_id,
        customer_id=booking.customer_id,
    )
    ctx.notifier.notify("booking_confirmed", booking_id=booking_id, customer_id=booking.customer_id)

    return assignment_service.assign_after_confirm(ctx, booking)


def start_booking(ctx, booking_id: int, *, started_at=None) -> Booking:
    """Assigned worker starts the job (assigned -> started)."""
    booking = lifecycle.load_booking(ctx, booking_id)
    authorize(ctx, "booking.start", booking)
    lifecycle.require_status(booking, lifecycle.ASSIGNED, "start")

    started = _parse_timestamp(started_at, "started_at", ctx.now())

    lifecycle.transition(
        ctx, booking, lifecycle.STARTED,
        action="start",
        started_at=started,
        estimated_completion_time=started + ESTIMATED_SERVICE_DURATION,
    )
    commit_or_fail(ctx.session, "start service")

    audit_service.record(
        ctx, "service_started",
        subject_type="booking", subject_id=booking_id,
        worker_id=booking.worker_id, started_at=started.isoformat(),
    )
    ctx.notifier.notify("service_started", booking_id=booking_id, customer_id=booking.customer_id)
    return booking


def add_extra_charges(ctx, booking_id: int, service_ids, *, notes: str | None = None) -> Booking:
    """
    Price additional services found during the job.

    The extra charge is the sum of the base costs of the given services of
    the booking's shop; it replaces any earlier extra charge. Allowed while
    the booking is assigned or started.
    """
    booking = lifecycle.load_booking(ctx, booking_id)
    authorize(ctx, "booking.extra_charges", booking)
    lifecycle.require_status(booking, {lifecycle.ASSIGNED, lifecycle.STARTED}, "add extra services to")

    if not isinstance(service_ids, list) or not service_ids:
        raise ValidationFailure("extra service_ids must be a non-empty list")
    if not all(isinstance(sid, int) and not isinstance(sid, bool) for sid in service_ids):
        raise ValidationFailure("extra service_ids must be integers")

    services = ctx.session.query(ShopService).filter(
        ShopService.id.in_(service_ids),
        ShopService.shop_id == booking.shop_id,
    ).all()
    found = {s.id for s in services}
    missing = sorted(set(service_ids) - found)
    if missing:
        raise NotFound(f"Services not found at shop {booking.shop_id}: {missing}")

    extra = sum(s.base_cost_cents for s in services)
    values = {"extra_charges_cents": extra}
    if notes is not None:
        values["notes"] = notes
    lifecycle.guarded_update(
        ctx, booking, {lifecycle.ASSIGNED, lifecycle.STARTED},
        action="add extra services to",
        conditions=(Booking.__table__.c.worker_id == booking.worker_id,),
        **values,
    )
    commit_or_fail(ctx.session, "add extra services")

    audit_service.record(
        ctx, "extra_services_added",
        subject_type="booking", subject_id=booking_id,
        extra_service_ids=sorted(found), extra_charges_cents=extra,
    )
    return booking


def complete_booking(ctx, booking_id: int, *, completed_at=None,
                     notes: str | None = None) -> tuple[Booking, Invoice]:
    """
    Complete a started booking and issue its invoice.

    The status update, the total cost and the invoice insert are one
    transaction. Not retryable: once completed, any further attempt fails
    with InvalidStateTransition.
    """
    booking = lifecycle.load_booking(ctx, booking_id)
    authorize(ctx, "booking.complete", booking)
    lifecycle.require_status(booking, lifecycle.STARTED, "complete")

    now = ctx.now()
    completed = _parse_timestamp(completed_at, "completed_at", now)
    started = to_naive_utc(booking.started_at) or completed
    if completed < started:
        raise ValidationFailure("completed_at cannot be earlier than started_at")

    duration_minutes = commission_service.round_half_up((completed - started) / timedelta(minutes=1))
    total_cost = booking.service_cost_cents + (booking.extra_charges_cents or 0)

    values = {
        "completed_at": completed,
        "service_duration_minutes": duration_minutes,
        "total_cost_cents": total_cost,
    }
    if notes is not None:
        values["notes"] = notes
    lifecycle.transition(ctx, booking, lifecycle.COMPLETED, action="complete", **values)

    invoice = commission_service.build_invoice(booking, issued_at=now)
    ctx.session.add(invoice)
    commit_or_fail(ctx.session, "complete service")

    audit_service.record(
        ctx, "service_completed",
        subject_type="booking", subject_id=booking_id,
        total_cost_cents=total_cost, duration_minutes=duration_minutes, invoice_id=invoice.id,
    )
    ctx.notifier.notify(
        "invoice_issued",
        booking_id=booking_id, invoice_id=invoice.id,
        customer_id=invoice.customer_id, total_amount_cents=invoice.total_amount_cents,
    )
    return booking, invoice


def cancel_booking(ctx, booking_id: int, *, reason: str | None) -> CancellationRecord:
    """
    Cancel a booking on behalf of its customer.

    Allowed from pending, confirmed and assigned; refused once work has
    started. Consumes one cancellation token. Ledger decrement, record insert
    and status change commit together or not at all.
    """
    booking = lifecycle.load_booking(ctx, booking_id)
    authorize(ctx, "booking.cancel", booking)

    if not reason or not str(reason).strip():
        raise ValidationFailure("Cancellation reason is required")

    lifecycle.require_status(booking, lifecycle.CANCELLABLE_STATUSES, "cancel")
    prior_status = booking.status
    refund_percentage, refund_amount = cancellation_service.refund_for(
        prior_status, booking.service_cost_cents
    )

    now = ctx.now()
    ledger = cancellation_service.load_current_ledger(ctx, booking.customer_id)
    try:
        cancellation_service.consume_token(ctx, ledger)
    except QuotaExhausted:
        ctx.session.rollback()
        raise

    lifecycle.transition(
        ctx, booking, lifecycle.CANCELLED,
        action="cancel",
        expected=prior_status,
        worker_id=None,
        cancelled_at=now,
    )
    record = CancellationRecord(
        booking_id=booking_id,
        customer_id=ctx.actor.id,
        cancelled_at=now,
        tokens_deducted=cancellation_service.TOKENS_PER_CANCELLATION,
        refund_percentage=refund_percentage,
        refund_amount_cents=refund_amount,
        reason=str(reason).strip(),
    )
    ctx.session.add(record)
    commit_or_fail(ctx.session, "cancel booking")

    audit_service.record(
        ctx, "booking_cancelled",
        subject_type="booking", subject_id=booking_id,
        previous_status=prior_status,
        tokens_deducted=record.tokens_deducted,
        refund_amount_cents=refund_amount,
        reason=record.reason,
    )
    ctx.notifier.notify(
        "booking_cancelled",
        booking_id=booking_id, customer_id=record.customer_id, refund_amount_cents=refund_amount,
    )
    return record


def mark_no_show(ctx, booking_id: int) -> Booking:
    """Shop owner or admin records that the customer never arrived (assigned -> no-show)."""
    booking = lifecycle.load_booking(ctx, booking_id)
    authorize(ctx, "booking.no_show", booking)
    lifecycle.require_status(booking, lifecycle.ASSIGNED, "mark as no-show")

    worker_id = booking.worker_id
    lifecycle.transition(ctx, booking, lifecycle.NO_SHOW, action="mark as no-show", worker_id=None)
    commit_or_fail(ctx.session, "mark no-show")

    audit_service.record(
        ctx, "booking_no_show",
        subject_type="booking", subject_id=booking_id,
        worker_id=worker_id, shop_id=booking.shop_id,
    )
    return booking


def get_invoice_for_booking(ctx, booking_id: int) -> tuple[Invoice, list[dict]]:
    """Invoice of a completed booking plus its line items."""
    booking = lifecycle.load_booking(ctx, booking_id)
    authorize(ctx, "invoice.view", booking)

    invoice = booking.invoice
    if invoice is None:
        raise NotFound(f"No invoice for booking {booking_id}")
    service_name = booking.service.name if booking.service else None
    return invoice, commission_service.invoice_line_items(invoice, service_name)
