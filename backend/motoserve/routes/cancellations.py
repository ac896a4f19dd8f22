# Overview: Flask API routes for the caller's cancellation tokens and history.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import cancellation_service


cancellations_bp = Blueprint("cancellations", __name__, url_prefix="/api/cancellations")


@cancellations_bp.get("/tokens")
@require_auth
def token_summary_route():
    """Token balance for this month (the monthly reset is applied first)."""
    return jsonify(cancellation_service.get_token_summary(g.ctx))


@cancellations_bp.get("/history")
@require_auth
def cancellation_history_route():
    limit = request.args.get("limit", default=cancellation_service.HISTORY_LIMIT, type=int)
    limit = max(1, min(limit, 100))
    records = cancellation_service.list_cancellation_history(g.ctx, limit=limit)
    return jsonify({"cancellations": [r.to_dict() for r in records]})
