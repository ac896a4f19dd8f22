from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Shop(db.Model):
    """
    Service shop: the tenant boundary.

    MULTI-TENANT: workers, services and bookings are all scoped by shop_id.
    A shop owner may only act on rows belonging to shops they own.
    """
    __tablename__ = "shops"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)

    # Average customer rating, 0-5; None until the first review
    rating = db.Column(db.Float, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    owner = db.relationship("User", backref=db.backref("shops", lazy=True))

    def __repr__(self) -> str:
        return f"<Shop id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "rating": self.rating,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ShopService(db.Model):
    """A priced service offered by one shop (oil change, chain service, ...)."""
    __tablename__ = "shop_services"
    __table_args__ = (
        db.UniqueConstraint("shop_id", "name", name="uq_shop_services_shop_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    base_cost_cents = db.Column(db.Integer, nullable=False)
    estimated_minutes = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    shop = db.relationship("Shop", backref=db.backref("services", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "name": self.name,
            "base_cost_cents": self.base_cost_cents,
            "estimated_minutes": self.estimated_minutes,
            "is_active": self.is_active,
        }


class Worker(db.Model):
    """
    Mechanic employed by exactly one shop.

    is_available is the only gate for assignment eligibility; candidates are
    ranked by rating.
    """
    __tablename__ = "workers"
    __table_args__ = (
        # Candidate lookup: shop + availability, ordered by rating
        db.Index("ix_workers_shop_available_rating", "shop_id", "is_available", "rating"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shop_id = db.Column(db.Integer, db.ForeignKey("shops.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, unique=True)

    name = db.Column(db.String(120), nullable=False)
    rating = db.Column(db.Float, nullable=False, default=0.0)
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    phone = db.Column(db.String(32), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    shop = db.relationship("Shop", backref=db.backref("workers", lazy=True))
    user = db.relationship("User", backref=db.backref("worker_profile", uselist=False))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Worker id={self.id} shop_id={self.shop_id} rating={self.rating}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shop_id": self.shop_id,
            "user_id": self.user_id,
            "name": self.name,
            "rating": self.rating,
            "is_available": self.is_available,
            "phone": self.phone,
            "location": {"latitude": self.latitude, "longitude": self.longitude},
        }
