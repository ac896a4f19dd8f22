from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Invoice(db.Model):
    """
    Invoice issued when a booking completes.

    Exactly one per booking (unique booking_id). The commission split is
    fixed at creation: 30% platform, 70% shop, each rounded independently.
    """
    __tablename__ = "invoices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)

    base_cost_cents = db.Column(db.Integer, nullable=False)
    extra_charges_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    platform_commission_cents = db.Column(db.Integer, nullable=False)
    shop_commission_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="issued")  # issued, paid
    issued_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    booking = db.relationship("Booking", backref=db.backref("invoice", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "customer_id": self.customer_id,
            "shop_id": self.shop_id,
            "base_cost_cents": self.base_cost_cents,
            "extra_charges_cents": self.extra_charges_cents,
            "total_amount_cents": self.total_amount_cents,
            "platform_commission_cents": self.platform_commission_cents,
            "shop_commission_cents": self.shop_commission_cents,
            "status": self.status,
            "issued_at": to_utc_z(self.issued_at),
        }


class CancellationTokenLedger(db.Model):
    """
    Monthly cancellation quota for one customer.

    Lazily created at the full quota. Reset to the full quota the first time
    it is read in a new calendar month.
    """
    __tablename__ = "customer_cancellation_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)
    tokens_available = db.Column(db.Integer, nullable=False)
    tokens_used = db.Column(db.Integer, nullable=False, default=0)
    last_reset_at = db.Column(db.DateTime(timezone=True), nullable=False)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("User", backref=db.backref("cancellation_ledger", uselist=False))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "tokens_available": self.tokens_available,
            "tokens_used": self.tokens_used,
            "last_reset_at": to_utc_z(self.last_reset_at),
        }


class CancellationRecord(db.Model):
    """
    Audit row for one cancellation. IMMUTABLE: never updated or deleted.
    """
    __tablename__ = "cancellation_records"
    __table_args__ = (
        db.Index("ix_cancellation_records_customer_cancelled", "customer_id", "cancelled_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, unique=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=False)
    tokens_deducted = db.Column(db.Integer, nullable=False, default=1)
    refund_percentage = db.Column(db.Integer, nullable=False)
    refund_amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.Text, nullable=False)

    booking = db.relationship("Booking", backref=db.backref("cancellation", uselist=False))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "customer_id": self.customer_id,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "tokens_deducted": self.tokens_deducted,
            "refund_percentage": self.refund_percentage,
            "refund_amount_cents": self.refund_amount_cents,
            "reason": self.reason,
        }
