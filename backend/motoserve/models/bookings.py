from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Booking(db.Model):
    """
    A customer's request for a service at one shop.

    LIFECYCLE:
        pending -> confirmed -> assigned -> started -> completed
        pending | confirmed | assigned -> cancelled
        assigned -> no-show

    INVARIANTS:
    - worker_id is set only while status is assigned, started or completed
    - total_cost_cents = service_cost_cents + extra_charges_cents, written
      once at completion (NULL before that)
    - status changes go through conditional UPDATEs keyed on the expected
      prior status (see services/booking_lifecycle.py)
    """
    __tablename__ = "bookings"
    __table_args__ = (
        db.Index("ix_bookings_shop_created", "shop_id", "created_at"),
        db.Index("ix_bookings_shop_status", "shop_id", "status"),
        db.Index("ix_bookings_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("shop_services.id"), nullable=False)
    worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # Money in minor units
    service_cost_cents = db.Column(db.Integer, nullable=False)
    extra_charges_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cost_cents = db.Column(db.Integer, nullable=True)

    service_duration_minutes = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    estimated_completion_time = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("User", foreign_keys=[customer_id], backref=db.backref("bookings", lazy=True))
    shop = db.relationship("Shop", backref=db.backref("bookings", lazy=True))
    service = db.relationship("ShopService")
    worker = db.relationship("Worker", backref=db.backref("bookings", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Booking id={self.id} status={self.status} shop_id={self.shop_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "shop_id": self.shop_id,
            "service_id": self.service_id,
            "worker_id": self.worker_id,
            "status": self.status,
            "service_cost_cents": self.service_cost_cents,
            "extra_charges_cents": self.extra_charges_cents,
            "total_cost_cents": self.total_cost_cents,
            "service_duration_minutes": self.service_duration_minutes,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "confirmed_at": to_utc_z(self.confirmed_at),
            "assigned_at": to_utc_z(self.assigned_at),
            "started_at": to_utc_z(self.started_at),
            "completed_at": to_utc_z(self.completed_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "estimated_completion_time": to_utc_z(self.estimated_completion_time),
            "version_id": self.version_id,
        }


class WorkerReassignment(db.Model):
    """History of worker swaps on an assigned booking."""
    __tablename__ = "worker_reassignments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)
    old_worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=True)
    new_worker_id = db.Column(db.Integer, db.ForeignKey("workers.id"), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    reassigned_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reassigned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    booking = db.relationship("Booking", backref=db.backref("reassignments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "old_worker_id": self.old_worker_id,
            "new_worker_id": self.new_worker_id,
            "reason": self.reason,
            "reassigned_by": self.reassigned_by,
            "reassigned_at": to_utc_z(self.reassigned_at),
        }
