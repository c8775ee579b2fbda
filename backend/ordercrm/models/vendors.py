from __future__ import annotations

from ..extensions import db
from ordercrm.time_utils import to_utc_z


class Vendor(db.Model):
    """
    A supplying business with its own login.

    Credentials are bcrypt hashed like User passwords. The optional user_id
    links the vendor to a vendor-role User row kept for audit.
    """
    __tablename__ = "vendors"
    __table_args__ = (
        db.Index("ix_vendors_active_status", "is_active", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(100), nullable=False)
    contact_person = db.Column(db.String(100), nullable=True)
    # Blank emails are stored as NULL so uniqueness only applies to real addresses
    email = db.Column(db.String(255), nullable=True, unique=True)
    phone = db.Column(db.String(20), nullable=True)
    address = db.Column(db.String(200), nullable=True)
    city = db.Column(db.String(50), nullable=True)
    country = db.Column(db.String(50), nullable=True)

    # active | inactive
    status = db.Column(db.String(16), nullable=False, default="active")

    username = db.Column(db.String(30), nullable=False, unique=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    last_online_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_orders_read_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("vendor_profile", lazy=True, uselist=False))

    def __repr__(self) -> str:
        return f"<Vendor id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "country": self.country,
            "status": self.status,
            "username": self.username,
            "user_id": self.user_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_online_at": to_utc_z(self.last_online_at) if self.last_online_at else None,
            "last_orders_read_at": to_utc_z(self.last_orders_read_at) if self.last_orders_read_at else None,
        }

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "email": self.email,
        }
