from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class AdminLog(db.Model):
    """
    Audit entry for a state-changing action (assignment, status change,
    completion, cancellation).

    IMMUTABLE: append-only. The ORM refuses updates and deletes below.
    """
    __tablename__ = "admin_logs"
    __table_args__ = (
        db.Index("ix_admin_logs_subject", "subject_type", "subject_id"),
        db.Index("ix_admin_logs_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # NULL actor_id means the system acted (CLI sweep, availability trigger)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    actor_role = db.Column(db.String(16), nullable=False)

    action = db.Column(db.String(64), nullable=False, index=True)  # booking_confirmed, worker_assigned, ...
    subject_type = db.Column(db.String(32), nullable=False)         # booking, worker, shop
    subject_id = db.Column(db.Integer, nullable=True)
    details = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor_id": self.actor_id,
            "actor_role": self.actor_role,
            "action": self.action,
            "subject_type": self.subject_type,
            "subject_id": self.subject_id,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(AdminLog, "before_update")
def _refuse_admin_log_update(mapper, connection, target):
    raise ValueError(f"AdminLog {target.id} is append-only and cannot be updated")


@event.listens_for(AdminLog, "before_delete")
def _refuse_admin_log_delete(mapper, connection, target):
    raise ValueError(f"AdminLog {target.id} is append-only and cannot be deleted")
