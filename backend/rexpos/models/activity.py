from __future__ import annotations

from ..extensions import db
from rexpos.time_utils import to_utc_z


class ActivityLog(db.Model):
    """
    Append-only audit trail.

    Rows are written inside the same transaction as the change they describe
    and are never updated or deleted.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_store_created", "store_id", "created_at"),
        db.Index("ix_activity_logs_module", "module"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)
    # CREATE, UPDATE, DELETE, LOGIN, LOGOUT
    action = db.Column(db.String(16), nullable=False)
    module = db.Column(db.String(64), nullable=False)
    record_id = db.Column(db.Integer, nullable=True)
    changes = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user": (
                {"id": self.user.id, "full_name": self.user.full_name, "email": self.user.email}
                if self.user else None
            ),
            "store_id": self.store_id,
            "action": self.action,
            "module": self.module,
            "record_id": self.record_id,
            "changes": self.changes,
            "ip_address": self.ip_address,
            "created_at": to_utc_z(self.created_at),
        }
