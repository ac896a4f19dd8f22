"""
Audit log tests.

Verifies:
- Entries record actor, action, subject and timestamp
- The log is append-only at the ORM level
- A failing sink is reported, not raised
"""

import pytest

from motoserve.context import SYSTEM_ACTOR, Actor, build_context
from motoserve.models import AdminLog
from motoserve.services import audit_service
from motoserve.services.notification_service import LoggingNotifier

from conftest import NOW, FailingAuditSink


class TestAuditLog:

    def test_record_writes_entry(self, db_session, seed, make_ctx):
        ok = audit_service.record(make_ctx(seed.owner), "booking_no_show",
                                  subject_type="booking", subject_id=7, worker_id=3)

        assert ok is True
        entry = db_session.query(AdminLog).one()
        assert entry.actor_id == seed.owner.id
        assert entry.actor_role == "owner"
        assert entry.action == "booking_no_show"
        assert entry.subject_id == 7
        assert entry.details == {"worker_id": 3}
        assert entry.created_at.replace(tzinfo=None) == NOW

    def test_system_entries_have_no_actor_id(self, db_session, seed, make_ctx):
        audit_service.record(make_ctx(system=True), "worker_assigned", subject_type="booking", subject_id=1)
        entry = db_session.query(AdminLog).one()
        assert (entry.actor_id, entry.actor_role) == (None, "system")

    def test_entries_cannot_be_updated(self, db_session, seed, make_ctx):
        audit_service.record(make_ctx(seed.admin), "booking_confirmed", subject_type="booking", subject_id=1)
        entry = db_session.query(AdminLog).one()

        entry.action = "something_else"
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()

    def test_entries_cannot_be_deleted(self, db_session, seed, make_ctx):
        audit_service.record(make_ctx(seed.admin), "booking_confirmed", subject_type="booking", subject_id=1)
        db_session.delete(db_session.query(AdminLog).one())
        with pytest.raises(ValueError):
            db_session.flush()
        db_session.rollback()

    def test_failing_sink_returns_false(self, db_session, seed, make_ctx):
        sink = FailingAuditSink()
        assert audit_service.record(make_ctx(seed.admin, audit=sink), "x",
                                    subject_type="booking", subject_id=1) is False
        assert sink.attempts == 1

    def test_list_entries_filters_by_subject(self, db_session, seed, make_ctx):
        ctx = make_ctx(seed.admin)
        audit_service.record(ctx, "booking_confirmed", subject_type="booking", subject_id=1)
        audit_service.record(ctx, "worker_availability_changed", subject_type="worker", subject_id=1)
        audit_service.record(ctx, "booking_cancelled", subject_type="booking", subject_id=1)
        audit_service.record(ctx, "booking_confirmed", subject_type="booking", subject_id=2)

        entries = audit_service.list_entries(db_session, subject_type="booking", subject_id=1)
        assert [e.action for e in entries] == ["booking_confirmed", "booking_cancelled"]


class TestContextWiring:

    def test_default_collaborators(self, db_session):
        ctx = build_context(db_session, Actor(id=1, role="admin"), clock=lambda: NOW)

        assert isinstance(ctx.audit, audit_service.DatabaseAuditSink)
        assert isinstance(ctx.notifier, LoggingNotifier)
        assert ctx.now() == NOW

    def test_system_context_keeps_collaborators(self, db_session):
        ctx = build_context(db_session, Actor(id=1, role="owner"))
        system = ctx.as_system()

        assert system.actor == SYSTEM_ACTOR
        assert system.audit is ctx.audit
        assert system.notifier is ctx.notifier
