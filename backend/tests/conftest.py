"""
Pytest fixtures for MotoServe backend tests.

Provides test database setup, a seeded shop with workers, a pinned-clock
service context factory, and bearer-token headers for HTTP tests.
"""

from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import OperationalError

from motoserve import create_app
from motoserve.context import Actor, SYSTEM_ACTOR, ServiceContext
from motoserve.extensions import db
from motoserve.models import Shop, ShopService, User, Worker
from motoserve.services import session_service
from motoserve.services.audit_service import DatabaseAuditSink


# Mid-month so "this month" and "last month" are unambiguous
NOW = datetime(2026, 10, 15, 12, 0, 0)


class RecordingNotifier:
    """Collects notification hooks instead of logging them."""

    def __init__(self):
        self.events = []

    def notify(self, event, **payload):
        self.events.append((event, payload))

    def names(self):
        return [name for name, _ in self.events]


class FailingAuditSink:
    """Audit store that is always unreachable."""

    def __init__(self):
        self.attempts = 0

    def append(self, entry):
        self.attempts += 1
        raise OperationalError("INSERT INTO admin_logs", {}, Exception("audit store unreachable"))


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _user(session, name, role):
    user = User(name=name, email=f"{name.lower()}@motoserve.test", role=role, is_active=True)
    session.add(user)
    session.flush()
    return user


@pytest.fixture(scope='function')
def seed(db_session):
    """
    One shop with three workers, plus a second shop for ownership checks.

    Workers of the main shop:
        top      rating 4.8, available
        best     rating 4.9, NOT available
        low      rating 4.5, available
    """
    s = SimpleNamespace()
    s.admin = _user(db_session, "Admin", "admin")
    s.owner = _user(db_session, "Owner", "owner")
    s.other_owner = _user(db_session, "OtherOwner", "owner")
    s.customer = _user(db_session, "Customer", "customer")
    s.other_customer = _user(db_session, "OtherCustomer", "customer")

    s.shop = Shop(owner_id=s.owner.id, name="Ride Right Garage", rating=4.6, is_active=True)
    s.other_shop = Shop(owner_id=s.other_owner.id, name="Chain Gang Motors", rating=4.1, is_active=True)
    db_session.add_all([s.shop, s.other_shop])
    db_session.flush()

    s.service = ShopService(shop_id=s.shop.id, name="General service", base_cost_cents=1000, is_active=True)
    s.extra_service = ShopService(shop_id=s.shop.id, name="Brake pads", base_cost_cents=250, is_active=True)
    s.other_service = ShopService(shop_id=s.other_shop.id, name="Oil change", base_cost_cents=700, is_active=True)
    db_session.add_all([s.service, s.extra_service, s.other_service])
    db_session.flush()

    s.top_user = _user(db_session, "TopWorker", "worker")
    s.best_user = _user(db_session, "BestWorker", "worker")
    s.low_user = _user(db_session, "LowWorker", "worker")
    s.other_worker_user = _user(db_session, "OtherWorker", "worker")

    s.top = Worker(shop_id=s.shop.id, user_id=s.top_user.id, name="Top", rating=4.8, is_available=True)
    s.best = Worker(shop_id=s.shop.id, user_id=s.best_user.id, name="Best", rating=4.9, is_available=False)
    s.low = Worker(shop_id=s.shop.id, user_id=s.low_user.id, name="Low", rating=4.5, is_available=True)
    s.other_worker = Worker(shop_id=s.other_shop.id, user_id=s.other_worker_user.id,
                            name="Elsewhere", rating=5.0, is_available=True)
    db_session.add_all([s.top, s.best, s.low, s.other_worker])
    db_session.commit()
    return s


@pytest.fixture(scope='function')
def make_ctx(db_session):
    """
    Factory for ServiceContext objects with a pinned clock.

    make_ctx(user) acts as that user; make_ctx(system=True) acts as the
    platform; make_ctx() has no actor.
    """
    def _make(user=None, *, system=False, clock=None, audit=None, notifier=None):
        if system:
            actor = SYSTEM_ACTOR
        elif user is not None:
            actor = Actor(id=user.id, role=user.role)
        else:
            actor = None
        return ServiceContext(
            session=db_session,
            actor=actor,
            audit=audit if audit is not None else DatabaseAuditSink(db_session),
            notifier=notifier if notifier is not None else RecordingNotifier(),
            clock=clock or (lambda: NOW),
        )
    return _make


@pytest.fixture(scope='function')
def headers_for(db_session):
    """Factory: Authorization headers carrying a fresh session token for a user."""
    def _headers(user):
        _, token = session_service.create_session(db_session, user.id)
        return auth_headers(token)
    return _headers


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
