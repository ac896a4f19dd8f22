"""
Cancellation token ledger tests.

Verifies:
- Ledger is created lazily at the monthly quota
- Monthly reset happens once per calendar month (idempotent)
- Cancellation succeeds iff a token is left; one record and one decrement each
- Refund depends on the status at cancellation time
"""

from datetime import datetime

import pytest

from motoserve.errors import InvalidStateTransition, QuotaExhausted, ValidationFailure
from motoserve.models import Booking, CancellationRecord, CancellationTokenLedger
from motoserve.services import booking_service, cancellation_service

from conftest import NOW


def _booking(db_session, seed, status="pending", customer=None, cost=1000):
    customer = customer or seed.customer
    booking = Booking(
        customer_id=customer.id,
        shop_id=seed.shop.id,
        service_id=seed.service.id,
        status=status,
        service_cost_cents=cost,
        extra_charges_cents=0,
        created_at=NOW,
        worker_id=seed.top.id if status in ("assigned", "started") else None,
    )
    db_session.add(booking)
    db_session.commit()
    return booking


class TestLedgerLifecycle:

    def test_ledger_created_lazily_at_full_quota(self, db_session, seed, make_ctx):
        assert db_session.query(CancellationTokenLedger).count() == 0

        summary = cancellation_service.get_token_summary(make_ctx(seed.customer))

        assert summary["tokens_available"] == 3
        assert summary["tokens_used"] == 0
        assert summary["consecutive_cancellations"] == 0
        assert db_session.query(CancellationTokenLedger).count() == 1

    def test_reset_in_new_month(self, db_session, seed, make_ctx):
        ledger = CancellationTokenLedger(
            customer_id=seed.customer.id,
            tokens_available=0,
            tokens_used=3,
            last_reset_at=datetime(2026, 9, 3, 8, 0, 0),
        )
        db_session.add(ledger)
        db_session.commit()

        summary = cancellation_service.get_token_summary(make_ctx(seed.customer))

        assert summary["tokens_available"] == 3
        assert summary["tokens_used"] == 0
        db_session.refresh(ledger)
        assert ledger.last_reset_at.replace(tzinfo=None) == NOW

    def test_same_month_in_a_different_year_still_resets(self, db_session, seed, make_ctx):
        db_session.add(CancellationTokenLedger(
            customer_id=seed.customer.id,
            tokens_available=1,
            tokens_used=2,
            last_reset_at=datetime(2025, 10, 20),
        ))
        db_session.commit()

        summary = cancellation_service.get_token_summary(make_ctx(seed.customer))
        assert summary["tokens_available"] == 3

    def test_reset_is_idempotent_within_month(self, db_session, seed, make_ctx):
        db_session.add(CancellationTokenLedger(
            customer_id=seed.customer.id,
            tokens_available=0,
            tokens_used=3,
            last_reset_at=datetime(2026, 9, 30, 23, 0, 0),
        ))
        db_session.commit()
        ctx = make_ctx(seed.customer)

        cancellation_service.get_token_summary(ctx)
        booking = _booking(db_session, seed)
        booking_service.cancel_booking(ctx, booking.id, reason="Changed plans")

        later = make_ctx(seed.customer, clock=lambda: datetime(2026, 10, 28, 9, 0, 0))
        summary = cancellation_service.get_token_summary(later)

        assert summary["tokens_available"] == 2
        assert summary["tokens_used"] == 1

    def test_apply_monthly_reset_reports_whether_it_reset(self):
        ledger = CancellationTokenLedger(customer_id=1, tokens_available=1, tokens_used=2,
                                         last_reset_at=datetime(2026, 9, 1))
        assert cancellation_service.apply_monthly_reset(ledger, NOW) is True
        assert cancellation_service.apply_monthly_reset(ledger, NOW) is False
        assert ledger.tokens_available == 3


class TestCancellation:

    def test_cancel_consumes_one_token_and_writes_one_record(self, db_session, seed, make_ctx):
        booking = _booking(db_session, seed)
        ctx = make_ctx(seed.customer)

        record = booking_service.cancel_booking(ctx, booking.id, reason="Found another slot")

        ledger = db_session.query(CancellationTokenLedger).filter_by(customer_id=seed.customer.id).one()
        assert ledger.tokens_available == 2
        assert ledger.tokens_used == 1
        assert db_session.query(CancellationRecord).filter_by(booking_id=booking.id).count() == 1
        assert record.tokens_deducted == 1
        assert record.refund_percentage == 100
        assert record.refund_amount_cents == 1000

        db_session.refresh(booking)
        assert booking.status == "cancelled"
        assert booking.cancelled_at is not None
        assert "booking_cancelled" in ctx.notifier.names()

    def test_cancel_from_assigned_refunds_half_and_clears_worker(self, db_session, seed, make_ctx):
        booking = _booking(db_session, seed, status="assigned", cost=999)

        record = booking_service.cancel_booking(make_ctx(seed.customer), booking.id, reason="Too late")

        assert record.refund_percentage == 50
        assert record.refund_amount_cents == 500  # 499.5 rounds half-up
        db_session.refresh(booking)
        assert booking.worker_id is None

    def test_quota_exhausted_after_three(self, db_session, seed, make_ctx):
        ctx = make_ctx(seed.customer)
        for _ in range(3):
            booking_service.cancel_booking(ctx, _booking(db_session, seed).id, reason="x")

        fourth = _booking(db_session, seed)
        with pytest.raises(QuotaExhausted) as exc:
            booking_service.cancel_booking(ctx, fourth.id, reason="x")

        assert exc.value.tokens_available == 0
        db_session.refresh(fourth)
        assert fourth.status == "pending"
        assert db_session.query(CancellationRecord).count() == 3

        summary = cancellation_service.get_token_summary(ctx)
        assert summary["consecutive_cancellations"] == 3

    def test_quota_returns_next_month(self, db_session, seed, make_ctx):
        ctx = make_ctx(seed.customer)
        for _ in range(3):
            booking_service.cancel_booking(ctx, _booking(db_session, seed).id, reason="x")

        november = make_ctx(seed.customer, clock=lambda: datetime(2026, 11, 2, 10, 0, 0))
        booking_service.cancel_booking(november, _booking(db_session, seed).id, reason="x")

        summary = cancellation_service.get_token_summary(november)
        assert summary["tokens_available"] == 2
        assert summary["consecutive_cancellations"] == 1

    @pytest.mark.parametrize("status", ["started", "completed", "cancelled", "no-show"])
    def test_cannot_cancel_after_work_started(self, db_session, seed, make_ctx, status):
        booking = _booking(db_session, seed, status=status)

        with pytest.raises(InvalidStateTransition) as exc:
            booking_service.cancel_booking(make_ctx(seed.customer), booking.id, reason="x")

        assert exc.value.current_status == status
        assert db_session.query(CancellationRecord).count() == 0

    def test_reason_required(self, db_session, seed, make_ctx):
        booking = _booking(db_session, seed)
        with pytest.raises(ValidationFailure):
            booking_service.cancel_booking(make_ctx(seed.customer), booking.id, reason="  ")

    def test_history_is_newest_first_and_scoped_to_caller(self, db_session, seed, make_ctx):
        early = make_ctx(seed.customer, clock=lambda: datetime(2026, 10, 2))
        late = make_ctx(seed.customer, clock=lambda: datetime(2026, 10, 9))
        first = _booking(db_session, seed)
        second = _booking(db_session, seed)
        booking_service.cancel_booking(early, first.id, reason="first")
        booking_service.cancel_booking(late, second.id, reason="second")
        booking_service.cancel_booking(
            make_ctx(seed.other_customer),
            _booking(db_session, seed, customer=seed.other_customer).id,
            reason="not mine",
        )

        history = cancellation_service.list_cancellation_history(make_ctx(seed.customer))

        assert [r.reason for r in history] == ["second", "first"]
