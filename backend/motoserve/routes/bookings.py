# Overview: Flask API routes for bookings; parses input and returns JSON responses.

"""
Booking Routes

Lifecycle endpoints for a booking:
    pending -> confirmed -> assigned -> started -> completed
plus cancellation, no-show and worker (re)assignment.

Authorization and state checks live in the services; these handlers only
parse input and serialise results. Errors are rendered by the handlers in
errors.register_error_handlers.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import assignment_service, booking_service
from ..validation import int_list, json_body, optional_int, optional_str, require_int


bookings_bp = Blueprint("bookings", __name__, url_prefix="/api/bookings")


@bookings_bp.post("")
@require_auth
def create_booking_route():
    """Customer books a service at a shop. Body: {shop_id, service_id}."""
    payload = json_body()
    booking = booking_service.create_booking(
        g.ctx,
        shop_id=require_int(payload, "shop_id"),
        service_id=require_int(payload, "service_id"),
    )
    return jsonify({"booking": booking.to_dict()}), 201


@bookings_bp.get("")
@require_auth
def list_bookings_route():
    limit = request.args.get("limit", default=booking_service.CUSTOMER_BOOKINGS_LIMIT, type=int)
    limit = max(1, min(limit, 100))
    bookings = booking_service.list_customer_bookings(g.ctx, limit=limit)
    return jsonify({"bookings": [b.to_dict() for b in bookings]})


@bookings_bp.get("/<int:booking_id>")
@require_auth
def get_booking_route(booking_id: int):
    booking = booking_service.get_booking(g.ctx, booking_id)
    return jsonify({"booking": booking.to_dict()})


@bookings_bp.post("/<int:booking_id>/confirm")
@require_auth
def confirm_booking_route(booking_id: int):
    """
    Confirm a pending booking; a worker is assigned automatically when one is free.

    worker_assigned=false means the booking stays confirmed until a sweep finds a worker.
    """
    result = booking_service.confirm_booking(g.ctx, booking_id)
    return jsonify({"booking": result.booking.to_dict(), **result.to_dict()})


@bookings_bp.post("/<int:booking_id>/assign")
@require_auth
def assign_worker_route(booking_id: int):
    result = assignment_service.assign_worker(g.ctx, booking_id)
    return jsonify({"booking": result.booking.to_dict(), **result.to_dict()})


@bookings_bp.post("/<int:booking_id>/reassign")
@require_auth
def reassign_worker_route(booking_id: int):
    """Body: {new_worker_id?, reason?}. Without new_worker_id the next best worker is chosen."""
    payload = json_body()
    result = assignment_service.reassign_worker(
        g.ctx,
        booking_id,
        new_worker_id=optional_int(payload, "new_worker_id"),
        reason=optional_str(payload, "reason", max_length=500),
    )
    return jsonify({"booking": result.booking.to_dict(), **result.to_dict()})


@bookings_bp.post("/<int:booking_id>/start")
@require_auth
def start_booking_route(booking_id: int):
    payload = json_body()
    booking = booking_service.start_booking(
        g.ctx, booking_id, started_at=optional_str(payload, "started_at", max_length=64)
    )
    return jsonify({"booking": booking.to_dict()})


@bookings_bp.post("/<int:booking_id>/extra-charges")
@require_auth
def add_extra_charges_route(booking_id: int):
    """Body: {service_ids: [..], notes?}. Replaces any earlier extra charge."""
    payload = json_body()
    booking = booking_service.add_extra_charges(
        g.ctx,
        booking_id,
        int_list(payload, "service_ids"),
        notes=optional_str(payload, "notes"),
    )
    return jsonify({"booking": booking.to_dict()})


@bookings_bp.post("/<int:booking_id>/complete")
@require_auth
def complete_booking_route(booking_id: int):
    """Complete a started booking. Returns the booking and its newly issued invoice."""
    payload = json_body()
    booking, invoice = booking_service.complete_booking(
        g.ctx,
        booking_id,
        completed_at=optional_str(payload, "completed_at", max_length=64),
        notes=optional_str(payload, "notes"),
    )
    return jsonify({"booking": booking.to_dict(), "invoice": invoice.to_dict()})


@bookings_bp.post("/<int:booking_id>/cancel")
@require_auth
def cancel_booking_route(booking_id: int):
    """Body: {reason}. Consumes one cancellation token."""
    payload = json_body()
    record = booking_service.cancel_booking(
        g.ctx, booking_id, reason=optional_str(payload, "reason", max_length=500)
    )
    return jsonify({"cancellation": record.to_dict()})


@bookings_bp.post("/<int:booking_id>/no-show")
@require_auth
def no_show_route(booking_id: int):
    booking = booking_service.mark_no_show(g.ctx, booking_id)
    return jsonify({"booking": booking.to_dict()})
