# Overview: Commission split and invoice construction for completed bookings.

"""
Commission Calculator

The platform keeps 30% of a completed booking's total; the shop keeps 70%.

ROUNDING:
Each term is rounded half-up to the nearest minor unit independently. For
totals that do not split evenly, platform + shop may differ from the total
by one unit. That drift is accepted product behavior: do not "fix" it by
deriving one term from the other without product sign-off.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from ..models import Booking, Invoice


PLATFORM_COMMISSION_RATE = Decimal("0.30")
SHOP_COMMISSION_RATE = Decimal("0.70")

INVOICE_STATUS_ISSUED = "issued"


@dataclass(frozen=True)
class CommissionSplit:
    total_amount_cents: int
    platform_commission_cents: int
    shop_commission_cents: int


def round_half_up(value) -> int:
    """Round to the nearest integer, halves away from zero (not banker's rounding)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_commission(total_amount_cents: int) -> CommissionSplit:
    total = Decimal(total_amount_cents)
    return CommissionSplit(
        total_amount_cents=total_amount_cents,
        platform_commission_cents=round_half_up(total * PLATFORM_COMMISSION_RATE),
        shop_commission_cents=round_half_up(total * SHOP_COMMISSION_RATE),
    )


def build_invoice(booking: Booking, *, issued_at: datetime) -> Invoice:
    """
    Build (not persist) the invoice for a completed booking.

    Caller adds it to the session in the same transaction as the completion,
    so a booking can never be completed without its invoice or vice versa.
    """
    total = booking.total_cost_cents
    if total is None:
        total = booking.service_cost_cents + (booking.extra_charges_cents or 0)
    split = calculate_commission(total)

    return Invoice(
        booking_id=booking.id,
        customer_id=booking.customer_id,
        shop_id=booking.shop_id,
        base_cost_cents=booking.service_cost_cents,
        extra_charges_cents=booking.extra_charges_cents or 0,
        total_amount_cents=split.total_amount_cents,
        platform_commission_cents=split.platform_commission_cents,
        shop_commission_cents=split.shop_commission_cents,
        status=INVOICE_STATUS_ISSUED,
        issued_at=issued_at,
    )


def invoice_line_items(invoice: Invoice, service_name: str | None) -> list[dict]:
    items = [{
        "description": service_name or "Service",
        "quantity": 1,
        "rate_cents": invoice.base_cost_cents,
        "amount_cents": invoice.base_cost_cents,
    }]
    if invoice.extra_charges_cents > 0:
        items.append({
            "description": "Additional Services",
            "quantity": 1,
            "rate_cents": invoice.extra_charges_cents,
            "amount_cents": invoice.extra_charges_cents,
        })
    return items
