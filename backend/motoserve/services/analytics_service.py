# Overview: Service-layer operations for admin analytics: abuse scoring, platform metrics, revenue.

"""
Abuse Scoring & Platform Analytics

================================================================================
ABUSE SCORING (per shop)
================================================================================

Input: the shop's most recent 100 bookings, restricted to those created in
the trailing 30 days ("recent").

    no-show rate      = count(status == 'no-show')   / count(recent)
    cancellation rate = count(status == 'cancelled') / count(recent)

    no-show rate      > 0.20  -> "High No-Show Rate"       (high if > 0.40)
    cancellation rate > 0.15  -> "High Cancellation Rate"  (high if > 0.30)
    shop.rating       < 3     -> "Low Customer Rating"     (high if < 2)
                                 count = floor((5 - rating) * 10)

Flags from every shop are merged, stable-sorted by severity
(high, medium, low) and the top 20 returned with the total count.

A shop with no recent bookings gets no rate flags. A shop without a rating
yet gets no rating flag.

HIGH RISK (platform metric):
A shop is high risk when its all-time no-show fraction exceeds 0.70.
================================================================================
"""

from __future__ import annotations

import logging
import math
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func

from ..models import Booking, Invoice, Shop
from ..policies import authorize
from ..time_utils import to_naive_utc, to_utc_z
from . import booking_lifecycle as lifecycle

logger = logging.getLogger(__name__)


RECENT_BOOKING_LIMIT = 100
ABUSE_WINDOW = timedelta(days=30)
REVENUE_WINDOW = timedelta(days=30)
TRENDS_LIMIT = 20

NO_SHOW_FLAG_RATE = 0.20
NO_SHOW_HIGH_RATE = 0.40
CANCELLATION_FLAG_RATE = 0.15
CANCELLATION_HIGH_RATE = 0.30
LOW_RATING_THRESHOLD = 3
LOW_RATING_HIGH_THRESHOLD = 2
HIGH_RISK_NO_SHOW_RATE = 0.70

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}

HIGH_NO_SHOW = "High No-Show Rate"
HIGH_CANCELLATION = "High Cancellation Rate"
LOW_RATING = "Low Customer Rating"


def _flag(shop: Shop, abuse_type: str, count: int, severity: str,
          last_incident: datetime | None, rate: float | None = None) -> dict:
    return {
        "shop_id": shop.id,
        "shop_name": shop.name,
        "abuse_type": abuse_type,
        "count": count,
        "rate": round(rate, 3) if rate is not None else None,
        "severity": severity,
        "last_incident": to_utc_z(last_incident),
    }


def _latest(bookings: list[Booking], status: str) -> datetime | None:
    stamps = [b.created_at for b in bookings if b.status == status and b.created_at]
    return max(stamps) if stamps else None


def low_rating_count(rating: float) -> int:
    """floor((5 - rating) * 10), computed on the decimal rating to avoid float drift."""
    return math.floor((Decimal(5) - Decimal(str(rating))) * 10)


def shop_abuse_flags(shop: Shop, bookings: list[Booking], now: datetime) -> list[dict]:
    """
    Abuse flags for one shop.

    `bookings` is the shop's most recent bookings (newest first, at most
    RECENT_BOOKING_LIMIT); only those created inside ABUSE_WINDOW count.
    """
    cutoff = now - ABUSE_WINDOW
    recent = [b for b in bookings if b.created_at and to_naive_utc(b.created_at) > cutoff]

    flags = []
    if recent:
        total = len(recent)

        no_shows = sum(1 for b in recent if b.status == lifecycle.NO_SHOW)
        no_show_rate = no_shows / total
        if no_show_rate > NO_SHOW_FLAG_RATE:
            severity = "high" if no_show_rate > NO_SHOW_HIGH_RATE else "medium"
            flags.append(_flag(shop, HIGH_NO_SHOW, no_shows, severity,
                               _latest(recent, lifecycle.NO_SHOW), no_show_rate))

        cancellations = sum(1 for b in recent if b.status == lifecycle.CANCELLED)
        cancellation_rate = cancellations / total
        if cancellation_rate > CANCELLATION_FLAG_RATE:
            severity = "high" if cancellation_rate > CANCELLATION_HIGH_RATE else "medium"
            flags.append(_flag(shop, HIGH_CANCELLATION, cancellations, severity,
                               _latest(recent, lifecycle.CANCELLED), cancellation_rate))

    if shop.rating is not None and shop.rating < LOW_RATING_THRESHOLD:
        severity = "high" if shop.rating < LOW_RATING_HIGH_THRESHOLD else "medium"
        flags.append(_flag(shop, LOW_RATING, low_rating_count(shop.rating), severity, now))

    return flags


def sort_by_severity(flags: list[dict]) -> list[dict]:
    """Stable sort: high, medium, low; original order kept within a severity."""
    return sorted(flags, key=lambda f: SEVERITY_ORDER.get(f["severity"], len(SEVERITY_ORDER)))


def abuse_trends(ctx, *, now: datetime | None = None, limit: int = TRENDS_LIMIT) -> dict:
    authorize(ctx, "analytics.view")
    now = now or ctx.now()

    flags: list[dict] = []
    shops = ctx.session.query(Shop).order_by(Shop.id.asc()).all()
    for shop in shops:
        bookings = (
            ctx.session.query(Booking)
            .filter(Booking.shop_id == shop.id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .limit(RECENT_BOOKING_LIMIT)
            .all()
        )
        flags.extend(shop_abuse_flags(shop, bookings, now))

    ranked = sort_by_severity(flags)
    logger.info("Abuse scoring: %d flags across %d shops", len(ranked), len(shops))
    return {
        "trends": ranked[:limit],
        "total_trends": len(ranked),
    }


def high_risk_shop_count(ctx) -> int:
    """Shops whose all-time no-show fraction exceeds HIGH_RISK_NO_SHOW_RATE."""
    totals = dict(
        ctx.session.query(Booking.shop_id, func.count(Booking.id))
        .group_by(Booking.shop_id)
        .all()
    )
    no_shows = dict(
        ctx.session.query(Booking.shop_id, func.count(Booking.id))
        .filter(Booking.status == lifecycle.NO_SHOW)
        .group_by(Booking.shop_id)
        .all()
    )
    return sum(
        1 for shop_id, total in totals.items()
        if total and no_shows.get(shop_id, 0) / total > HIGH_RISK_NO_SHOW_RATE
    )


def platform_metrics(ctx) -> dict:
    authorize(ctx, "analytics.view")

    total_shops = ctx.session.query(func.count(Shop.id)).scalar() or 0
    total_bookings = ctx.session.query(func.count(Booking.id)).scalar() or 0
    average_rating = ctx.session.query(func.avg(Shop.rating)).filter(Shop.rating.isnot(None)).scalar()
    total_revenue = ctx.session.query(func.coalesce(func.sum(Invoice.total_amount_cents), 0)).scalar()

    return {
        "total_shops": total_shops,
        "total_bookings": total_bookings,
        "average_rating": round(float(average_rating), 1) if average_rating is not None else 0.0,
        "total_revenue_cents": int(total_revenue or 0),
        "high_risk_shops": high_risk_shop_count(ctx),
    }


def revenue_summary(ctx, *, now: datetime | None = None) -> dict:
    """
    Invoiced revenue over the trailing 30 days, grouped by issue date.

    Commission figures are the ones stored on each invoice, so the daily
    totals carry the same per-invoice rounding as the invoices themselves.
    """
    authorize(ctx, "analytics.view")
    now = now or ctx.now()

    invoices = (
        ctx.session.query(Invoice)
        .filter(Invoice.issued_at >= now - REVENUE_WINDOW)
        .order_by(Invoice.issued_at.asc(), Invoice.id.asc())
        .all()
    )

    by_date: OrderedDict[str, dict] = OrderedDict()
    for invoice in invoices:
        day = to_naive_utc(invoice.issued_at).date().isoformat()
        row = by_date.setdefault(day, {
            "date": day,
            "revenue_cents": 0,
            "bookings": 0,
            "platform_commission_cents": 0,
            "shop_commission_cents": 0,
        })
        row["revenue_cents"] += invoice.total_amount_cents
        row["bookings"] += 1
        row["platform_commission_cents"] += invoice.platform_commission_cents
        row["shop_commission_cents"] += invoice.shop_commission_cents

    data = list(by_date.values())
    total_revenue = sum(d["revenue_cents"] for d in data)
    return {
        "data": data,
        "summary": {
            "total_revenue_cents": total_revenue,
            "total_bookings": sum(d["bookings"] for d in data),
            "total_platform_commission_cents": sum(d["platform_commission_cents"] for d in data),
            "total_shop_commission_cents": sum(d["shop_commission_cents"] for d in data),
            "average_daily_revenue_cents": round(total_revenue / len(data)) if data else 0,
        },
    }
