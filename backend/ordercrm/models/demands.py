from __future__ import annotations

from ..extensions import db
from ordercrm.time_utils import to_utc_z, utcnow


DEMAND_STATUSES = ("pending", "confirmed", "rejected")


class Demand(db.Model):
    """
    A client's request for a product quantity, outside the vendor order flow.

    Confirming a demand takes goods out of stock (see reconciliation_service);
    stock_adjusted guards against applying that twice.
    """
    __tablename__ = "demands"
    __table_args__ = (
        db.Index("ix_demands_user_created", "user_id", "created_at"),
        db.Index("ix_demands_product_status", "product_id", "status"),
        db.CheckConstraint("quantity >= 1", name="ck_demands_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=1)
    notes = db.Column(db.String(500), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending")
    stock_adjusted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "user_id": self.user_id,
            "username": self.user.username if self.user else None,
            "quantity": self.quantity,
            "notes": self.notes,
            "status": self.status,
            "stock_adjusted": self.stock_adjusted,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class WhatsAppRecipient(db.Model):
    """Saved phone numbers offered when sending demand reports."""
    __tablename__ = "whatsapp_recipients"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    phone = db.Column(db.String(32), nullable=False, index=True)
    name = db.Column(db.String(100), nullable=False, default="")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "phone": self.phone,
            "name": self.name,
            "created_at": to_utc_z(self.created_at),
        }
