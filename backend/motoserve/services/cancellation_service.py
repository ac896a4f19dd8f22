# Overview: Service-layer operations for the cancellation token ledger.

"""
Cancellation Token Ledger

================================================================================
PURPOSE: Gate penalty-free cancellations with a monthly per-customer quota
================================================================================

RULES:
1. Each customer has one ledger row, created lazily with
   {tokens_available: 3, tokens_used: 0, last_reset_at: now}.
2. Before any read or cancellation, if last_reset_at falls in a different
   (month, year) than now, the ledger resets to 3 / 0 and is re-stamped.
   A second read in the same month is a no-op.
3. A cancellation is permitted only if tokens_available > 0 after the reset
   check. Each permitted cancellation consumes exactly one token, in the same
   transaction as its CancellationRecord and the booking status change.
4. consecutive_cancellations is derived on read (records since the first of
   the current month); it is never stored.

The token decrement is itself a conditional UPDATE
(... WHERE tokens_available > 0), so two concurrent cancellations cannot
drive the balance negative.
================================================================================
"""

from __future__ import annotations

import logging
from datetime import datetime

from ..errors import QuotaExhausted
from ..models import CancellationRecord, CancellationTokenLedger
from ..policies import authorize
from ..time_utils import month_start, to_naive_utc
from .commission_service import round_half_up
from .concurrency import commit_or_fail, conditional_update
from . import booking_lifecycle as lifecycle

logger = logging.getLogger(__name__)


MONTHLY_TOKEN_QUOTA = 3
TOKENS_PER_CANCELLATION = 1
HISTORY_LIMIT = 20

# Refund share of the service cost, by status at cancellation time
REFUND_PERCENTAGE_BY_STATUS = {
    lifecycle.PENDING: 100,
    lifecycle.CONFIRMED: 100,
    lifecycle.ASSIGNED: 50,
}


def get_or_create_ledger(ctx, customer_id: int) -> CancellationTokenLedger:
    """Return the customer's ledger, creating it at full quota on first access."""
    ledger = ctx.session.query(CancellationTokenLedger).filter_by(customer_id=customer_id).first()
    if ledger is None:
        ledger = CancellationTokenLedger(
            customer_id=customer_id,
            tokens_available=MONTHLY_TOKEN_QUOTA,
            tokens_used=0,
            last_reset_at=ctx.now(),
        )
        ctx.session.add(ledger)
        ctx.session.flush()
    return ledger


def needs_reset(last_reset_at: datetime, now: datetime) -> bool:
    last = to_naive_utc(last_reset_at)
    return (last.year, last.month) != (now.year, now.month)


def apply_monthly_reset(ledger: CancellationTokenLedger, now: datetime) -> bool:
    """
    Reset the ledger if the calendar month changed since the last reset.

    Returns True if a reset happened. Idempotent within a month.
    """
    if not needs_reset(ledger.last_reset_at, now):
        return False
    ledger.tokens_available = MONTHLY_TOKEN_QUOTA
    ledger.tokens_used = 0
    ledger.last_reset_at = now
    logger.info("Cancellation tokens reset for customer %s", ledger.customer_id)
    return True


def load_current_ledger(ctx, customer_id: int) -> CancellationTokenLedger:
    """Ledger with the monthly reset already applied (not yet committed)."""
    ledger = get_or_create_ledger(ctx, customer_id)
    apply_monthly_reset(ledger, ctx.now())
    return ledger


def consume_token(ctx, ledger: CancellationTokenLedger) -> None:
    """
    Decrement tokens_available / increment tokens_used by one.

    Raises QuotaExhausted if no token is left. Does not commit.
    """
    available = ledger.tokens_available
    if available < TOKENS_PER_CANCELLATION:
        raise QuotaExhausted(
            f"No cancellation tokens remaining this month (have {available})",
            tokens_available=available,
        )

    table = CancellationTokenLedger.__table__
    updated = conditional_update(
        ctx.session,
        CancellationTokenLedger,
        ledger,
        table.c.tokens_available >= TOKENS_PER_CANCELLATION,
        tokens_available=table.c.tokens_available - TOKENS_PER_CANCELLATION,
        tokens_used=table.c.tokens_used + TOKENS_PER_CANCELLATION,
    )
    if not updated:
        ctx.session.rollback()
        raise QuotaExhausted("No cancellation tokens remaining this month", tokens_available=0)


def refund_for(status: str, service_cost_cents: int) -> tuple[int, int]:
    """Return (refund_percentage, refund_amount_cents) for a booking in `status`."""
    percentage = REFUND_PERCENTAGE_BY_STATUS.get(status, 0)
    return percentage, round_half_up(service_cost_cents * percentage / 100)


def count_cancellations_this_month(ctx, customer_id: int) -> int:
    return ctx.session.query(CancellationRecord).filter(
        CancellationRecord.customer_id == customer_id,
        CancellationRecord.cancelled_at >= month_start(ctx.now()),
    ).count()


def get_token_summary(ctx) -> dict:
    """
    Token balance for the calling customer.

    Applies (and persists) the monthly reset before reporting.
    """
    authorize(ctx, "cancellations.view")
    customer_id = ctx.actor.id

    ledger = load_current_ledger(ctx, customer_id)
    commit_or_fail(ctx.session, "load cancellation tokens")

    return {
        "tokens_available": ledger.tokens_available,
        "tokens_used": ledger.tokens_used,
        "last_reset_at": ledger.to_dict()["last_reset_at"],
        "consecutive_cancellations": count_cancellations_this_month(ctx, customer_id),
    }


def list_cancellation_history(ctx, *, limit: int = HISTORY_LIMIT) -> list[CancellationRecord]:
    authorize(ctx, "cancellations.view")
    return (
        ctx.session.query(CancellationRecord)
        .filter_by(customer_id=ctx.actor.id)
        .order_by(CancellationRecord.cancelled_at.desc(), CancellationRecord.id.desc())
        .limit(limit)
        .all()
    )
