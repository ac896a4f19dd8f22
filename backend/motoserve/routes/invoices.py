# Overview: Flask API route for reading the invoice of a completed booking.

from flask import Blueprint, g, jsonify

from ..decorators import require_auth
from ..services import booking_service


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("/<int:booking_id>")
@require_auth
def get_invoice_route(booking_id: int):
    invoice, line_items = booking_service.get_invoice_for_booking(g.ctx, booking_id)
    return jsonify({"invoice": {**invoice.to_dict(), "line_items": line_items}})
