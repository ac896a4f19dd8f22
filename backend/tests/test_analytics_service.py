"""
Abuse scoring and platform metrics tests.

Verifies:
- No-show / cancellation thresholds and severities over the trailing 30 days
- Low-rating flag with its synthetic count
- Severity ordering, top-20 truncation and total count
- All-time high-risk shop metric
"""

from datetime import timedelta

import pytest

from motoserve.errors import AuthorizationDenied
from motoserve.models import Booking, Invoice, Shop
from motoserve.services import analytics_service

from conftest import NOW


def _add_bookings(db_session, seed, shop, statuses, *, age=timedelta(days=1)):
    customer_id = seed.customer.id
    service_id = seed.service.id if shop.id == seed.shop.id else seed.other_service.id
    for i, status in enumerate(statuses):
        db_session.add(Booking(
            customer_id=customer_id,
            shop_id=shop.id,
            service_id=service_id,
            status=status,
            service_cost_cents=1000,
            extra_charges_cents=0,
            created_at=NOW - age - timedelta(minutes=i),
        ))
    db_session.commit()


def _flags_for(report, shop):
    return [t for t in report["trends"] if t["shop_id"] == shop.id]


class TestShopAbuseFlags:

    def test_no_show_medium(self, db_session, seed, make_ctx):
        _add_bookings(db_session, seed, seed.shop, ["no-show"] * 7 + ["completed"] * 23)

        report = analytics_service.abuse_trends(make_ctx(seed.admin))

        flags = _flags_for(report, seed.shop)
        assert len(flags) == 1
        assert flags[0]["abuse_type"] == "High No-Show Rate"
        assert flags[0]["severity"] == "medium"
        assert flags[0]["count"] == 7

    def test_no_show_high(self, db_session, seed, make_ctx):
        _add_bookings(db_session, seed, seed.shop, ["no-show"] * 13 + ["completed"] * 17)

        flags = _flags_for(analytics_service.abuse_trends(make_ctx(seed.admin)), seed.shop)

        assert [(f["abuse_type"], f["severity"]) for f in flags] == [("High No-Show Rate", "high")]

    def test_exactly_at_threshold_is_not_flagged(self, db_session, seed, make_ctx):
        # 6/30 = 0.20 is not > 0.20
        _add_bookings(db_session, seed, seed.shop, ["no-show"] * 6 + ["completed"] * 24)

        assert _flags_for(analytics_service.abuse_trends(make_ctx(seed.admin)), seed.shop) == []

    def test_cancellation_rate(self, db_session, seed, make_ctx):
        # 4/20 = 0.20 -> medium; 7/20 = 0.35 -> high
        _add_bookings(db_session, seed, seed.shop, ["cancelled"] * 4 + ["completed"] * 16)
        _add_bookings(db_session, seed, seed.other_shop, ["cancelled"] * 7 + ["completed"] * 13)

        report = analytics_service.abuse_trends(make_ctx(seed.admin))

        assert _flags_for(report, seed.shop)[0]["severity"] == "medium"
        assert _flags_for(report, seed.other_shop)[0]["severity"] == "high"
        assert _flags_for(report, seed.shop)[0]["abuse_type"] == "High Cancellation Rate"

    def test_bookings_outside_window_ignored(self, db_session, seed, make_ctx):
        _add_bookings(db_session, seed, seed.shop, ["no-show"] * 10, age=timedelta(days=31))
        _add_bookings(db_session, seed, seed.shop, ["completed"] * 10)

        assert _flags_for(analytics_service.abuse_trends(make_ctx(seed.admin)), seed.shop) == []

    def test_only_latest_hundred_bookings_considered(self, db_session, seed, make_ctx):
        # 100 newest are clean; 50 older no-shows fall outside the sample
        _add_bookings(db_session, seed, seed.shop, ["completed"] * 100, age=timedelta(days=1))
        _add_bookings(db_session, seed, seed.shop, ["no-show"] * 50, age=timedelta(days=2))

        assert _flags_for(analytics_service.abuse_trends(make_ctx(seed.admin)), seed.shop) == []

    @pytest.mark.parametrize(
        "rating,count,severity",
        [
            (2.9, 21, "medium"),
            (2.0, 30, "medium"),
            (1.5, 35, "high"),
        ],
    )
    def test_low_rating(self, db_session, seed, make_ctx, rating, count, severity):
        seed.other_shop.rating = rating
        db_session.commit()

        flags = _flags_for(analytics_service.abuse_trends(make_ctx(seed.admin)), seed.other_shop)

        assert flags == [{
            "shop_id": seed.other_shop.id,
            "shop_name": seed.other_shop.name,
            "abuse_type": "Low Customer Rating",
            "count": count,
            "rate": None,
            "severity": severity,
            "last_incident": "2026-10-15T12:00:00Z",
        }]

    def test_unrated_shop_not_flagged(self, db_session, seed, make_ctx):
        seed.other_shop.rating = None
        db_session.commit()
        assert _flags_for(analytics_service.abuse_trends(make_ctx(seed.admin)), seed.other_shop) == []


class TestAbuseTrendOrdering:

    def test_high_before_medium_stable_and_truncated(self, db_session, seed, make_ctx):
        owner_id = seed.owner.id
        shops = []
        for i in range(25):
            shop = Shop(owner_id=owner_id, name=f"Shop {i}", rating=1.0 if i % 2 else 2.5)
            db_session.add(shop)
            shops.append(shop)
        db_session.commit()

        report = analytics_service.abuse_trends(make_ctx(seed.admin))

        assert report["total_trends"] == 25
        assert len(report["trends"]) == 20
        severities = [t["severity"] for t in report["trends"]]
        assert severities == ["high"] * 12 + ["medium"] * 8
        high_ids = [t["shop_id"] for t in report["trends"] if t["severity"] == "high"]
        assert high_ids == sorted(high_ids)

    def test_admin_only(self, db_session, seed, make_ctx):
        with pytest.raises(AuthorizationDenied):
            analytics_service.abuse_trends(make_ctx(seed.owner))


class TestPlatformMetrics:

    def test_metrics(self, db_session, seed, make_ctx):
        seed.other_shop.rating = 4.0
        # main shop: 8/10 no-shows all-time -> high risk; other shop: 1/4
        _add_bookings(db_session, seed, seed.shop, ["no-show"] * 8 + ["completed"] * 2,
                      age=timedelta(days=90))
        _add_bookings(db_session, seed, seed.other_shop, ["no-show"] + ["completed"] * 3)
        completed = db_session.query(Booking).filter_by(shop_id=seed.shop.id, status="completed").first()
        db_session.add(Invoice(
            booking_id=completed.id, customer_id=seed.customer.id, shop_id=seed.shop.id,
            base_cost_cents=1000, extra_charges_cents=0, total_amount_cents=1000,
            platform_commission_cents=300, shop_commission_cents=700, issued_at=NOW,
        ))
        db_session.commit()

        metrics = analytics_service.platform_metrics(make_ctx(seed.admin))

        assert metrics == {
            "total_shops": 2,
            "total_bookings": 14,
            "average_rating": 4.3,  # (4.6 + 4.0) / 2
            "total_revenue_cents": 1000,
            "high_risk_shops": 1,
        }

    def test_revenue_summary_groups_by_day(self, db_session, seed, make_ctx):
        _add_bookings(db_session, seed, seed.shop, ["completed"] * 3)
        bookings = db_session.query(Booking).order_by(Booking.id).all()
        for booking, issued, total in zip(
            bookings,
            [NOW - timedelta(days=1), NOW - timedelta(days=1), NOW - timedelta(days=40)],
            [1000, 500, 9999],
        ):
            db_session.add(Invoice(
                booking_id=booking.id, customer_id=seed.customer.id, shop_id=seed.shop.id,
                base_cost_cents=total, extra_charges_cents=0, total_amount_cents=total,
                platform_commission_cents=round(total * 0.3), shop_commission_cents=round(total * 0.7),
                issued_at=issued,
            ))
        db_session.commit()

        report = analytics_service.revenue_summary(make_ctx(seed.admin))

        assert report["data"] == [{
            "date": "2026-10-14",
            "revenue_cents": 1500,
            "bookings": 2,
            "platform_commission_cents": 450,
            "shop_commission_cents": 1050,
        }]
        assert report["summary"]["total_revenue_cents"] == 1500
        assert report["summary"]["average_daily_revenue_cents"] == 1500
