# Overview: Flask API routes for admin analytics; parses input and returns JSON responses.

"""
Admin Analytics Routes

Provides per-shop abuse trends, platform-wide metrics and invoiced revenue.
Admin only (enforced by the analytics.view policy).
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import analytics_service


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api/admin/analytics")


@analytics_bp.get("/abuse-trends")
@require_auth
def abuse_trends_route():
    limit = request.args.get("limit", default=analytics_service.TRENDS_LIMIT, type=int)
    limit = max(1, min(limit, 100))
    return jsonify(analytics_service.abuse_trends(g.ctx, limit=limit))


@analytics_bp.get("/metrics")
@require_auth
def platform_metrics_route():
    return jsonify({"metrics": analytics_service.platform_metrics(g.ctx)})


@analytics_bp.get("/revenue")
@require_auth
def revenue_route():
    return jsonify(analytics_service.revenue_summary(g.ctx))
