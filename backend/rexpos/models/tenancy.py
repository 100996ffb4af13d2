from __future__ import annotations

from ..extensions import db
from rexpos.time_utils import to_utc_z, utcnow


class Store(db.Model):
    """
    Tenant boundary: a business location.

    Every catalog, purchasing, sales and accounting row carries store_id and
    every query is scoped by it. There is no cross-store aggregation.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.Index("ix_stores_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    # Upper-cased short code, globally unique
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    address = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=False)

    # Settings
    currency = db.Column(db.String(8), nullable=False, default="PKR")
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)  # 100 bps = 1%
    timezone = db.Column(db.String(64), nullable=False, default="Asia/Karachi")
    logo_url = db.Column(db.String(512), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Store id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "settings": {
                "currency": self.currency,
                "tax_rate_bps": self.tax_rate_bps,
                "timezone": self.timezone,
                "logo_url": self.logo_url,
            },
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class UserStore(db.Model):
    """Store-level access grant: which stores a user may operate in, and as what."""
    __tablename__ = "user_stores"
    __table_args__ = (
        db.UniqueConstraint("user_id", "store_id", name="uq_user_stores_user_store"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    # OWNER, MANAGER, CASHIER
    role = db.Column(db.String(16), nullable=False, default="CASHIER")
    permissions = db.Column(db.JSON, nullable=False, default=list)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", backref=db.backref("store_assignments", lazy=True))
    store = db.relationship("Store")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "store_id": self.store_id,
            "store": self.store.to_dict() if self.store else None,
            "role": self.role,
            "permissions": list(self.permissions or []),
            "is_active": self.is_active,
            "assigned_at": to_utc_z(self.assigned_at),
        }
