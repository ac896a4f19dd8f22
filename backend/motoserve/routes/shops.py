# Overview: Flask API routes for shop-level operations: assignment sweep and worker availability.

"""
Shop Routes

The assignment sweep retries every confirmed booking of a shop that is still
waiting for a worker. It is also run automatically when a worker of the shop
becomes available again. A worker going unavailable has their assigned
bookings handed to other workers of the shop instead.
"""

from flask import Blueprint, g, jsonify

from ..decorators import require_auth
from ..services import assignment_service
from ..validation import json_body, optional_str, require_bool


shops_bp = Blueprint("shops", __name__, url_prefix="/api")


@shops_bp.post("/shops/<int:shop_id>/assignment-sweep")
@require_auth
def assignment_sweep_route(shop_id: int):
    results = assignment_service.run_assignment_sweep(g.ctx, shop_id)
    return jsonify({
        "shop_id": shop_id,
        "processed": len(results),
        "assigned": sum(1 for r in results if r.assigned),
        "results": [r.to_dict() for r in results],
    })


@shops_bp.patch("/workers/<int:worker_id>/availability")
@require_auth
def worker_availability_route(worker_id: int):
    """Body: {is_available: bool, reason?: str}."""
    payload = json_body()
    is_available = require_bool(payload, "is_available")
    worker, results = assignment_service.set_worker_availability(
        g.ctx, worker_id, is_available, reason=optional_str(payload, "reason", max_length=500)
    )
    moved = [r.to_dict() for r in results if r.assigned]
    return jsonify({
        "worker": worker.to_dict(),
        "assigned_bookings": moved if is_available else [],
        "reassigned_bookings": [] if is_available else moved,
    })
