"""
Commission calculator tests.

Verifies:
- 30/70 split on even totals
- Each term rounds half-up independently
- Invoice construction copies costs and the split from the booking
"""

from datetime import datetime

import pytest

from motoserve.models import Booking
from motoserve.services import commission_service
from motoserve.services.commission_service import calculate_commission, round_half_up


class TestCalculateCommission:

    def test_even_total_splits_thirty_seventy(self):
        split = calculate_commission(1000)
        assert split.platform_commission_cents == 300
        assert split.shop_commission_cents == 700
        assert split.total_amount_cents == 1000

    def test_zero_total(self):
        split = calculate_commission(0)
        assert (split.platform_commission_cents, split.shop_commission_cents) == (0, 0)

    @pytest.mark.parametrize(
        "total,platform,shop",
        [
            (5, 2, 4),        # 1.5 -> 2, 3.5 -> 4: sums to 6
            (15, 5, 11),      # 4.5 -> 5, 10.5 -> 11: sums to 16
            (1, 0, 1),        # 0.3 -> 0, 0.7 -> 1
            (101, 30, 71),    # 30.3 -> 30, 70.7 -> 71
        ],
    )
    def test_terms_round_independently(self, total, platform, shop):
        split = calculate_commission(total)
        assert split.platform_commission_cents == platform
        assert split.shop_commission_cents == shop

    def test_drift_is_not_corrected(self):
        split = calculate_commission(5)
        assert split.platform_commission_cents + split.shop_commission_cents == 6


class TestRoundHalfUp:

    def test_half_rounds_away_from_zero(self):
        # Python's round() would give 2 for 2.5
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1

    def test_below_half_rounds_down(self):
        assert round_half_up(2.49) == 2


class TestBuildInvoice:

    def test_invoice_carries_costs_and_split(self):
        booking = Booking(
            id=42,
            customer_id=7,
            shop_id=3,
            service_id=1,
            service_cost_cents=1000,
            extra_charges_cents=250,
            total_cost_cents=1250,
        )
        issued = datetime(2026, 10, 15, 12, 0, 0)

        invoice = commission_service.build_invoice(booking, issued_at=issued)

        assert invoice.booking_id == 42
        assert invoice.customer_id == 7
        assert invoice.shop_id == 3
        assert invoice.base_cost_cents == 1000
        assert invoice.extra_charges_cents == 250
        assert invoice.total_amount_cents == 1250
        assert invoice.platform_commission_cents == 375
        assert invoice.shop_commission_cents == 875
        assert invoice.status == "issued"
        assert invoice.issued_at == issued

    def test_line_items_list_extras_only_when_charged(self):
        booking = Booking(id=1, customer_id=1, shop_id=1, service_id=1,
                          service_cost_cents=1000, extra_charges_cents=0, total_cost_cents=1000)
        invoice = commission_service.build_invoice(booking, issued_at=datetime(2026, 10, 15))

        items = commission_service.invoice_line_items(invoice, "General service")
        assert items == [{
            "description": "General service",
            "quantity": 1,
            "rate_cents": 1000,
            "amount_cents": 1000,
        }]
