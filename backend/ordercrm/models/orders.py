from __future__ import annotations

from ..extensions import db
from ordercrm.time_utils import to_utc_z, utcnow


ORDER_STATUSES = ("pending", "confirmed", "shipped", "delivered", "cancelled")
PRICE_APPROVAL_STATUSES = ("pending", "approved", "rejected")


class LogisticsFields:
    """Free-form shipping/invoice fields shared by orders and their items."""

    confirmation_date = db.Column(db.String(100), nullable=True)
    estimated_date_ready = db.Column(db.String(100), nullable=True)
    invoice_number = db.Column(db.String(100), nullable=True)
    transfer_amount_cents = db.Column(db.Integer, nullable=True)
    shipping_date_to_agent = db.Column(db.String(100), nullable=True)
    shipping_date_to_destination = db.Column(db.String(100), nullable=True)
    arrival_date = db.Column(db.String(100), nullable=True)

    def logistics_dict(self) -> dict:
        return {
            "confirmation_date": self.confirmation_date,
            "estimated_date_ready": self.estimated_date_ready,
            "invoice_number": self.invoice_number,
            "transfer_amount_cents": self.transfer_amount_cents,
            "shipping_date_to_agent": self.shipping_date_to_agent,
            "shipping_date_to_destination": self.shipping_date_to_destination,
            "arrival_date": self.arrival_date,
        }


LOGISTICS_FIELDS = (
    "confirmation_date",
    "estimated_date_ready",
    "invoice_number",
    "transfer_amount_cents",
    "shipping_date_to_agent",
    "shipping_date_to_destination",
    "arrival_date",
)


class Order(LogisticsFields, db.Model):
    """
    Vendor-addressed order, the aggregate root for its items.

    stock_adjusted marks that the order-level confirmation has been
    reconciled into Product.stock. It is only flipped through an atomic
    conditional UPDATE (see reconciliation_service).
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_vendor_active", "vendor_id", "is_active"),
        db.Index("ix_orders_status", "status"),
        db.Index("ix_orders_order_date", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    order_number = db.Column(db.String(50), nullable=False, unique=True, index=True)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending")

    # Aggregate of item approvals; admins may also set it directly
    price_approval_status = db.Column(db.String(16), nullable=False, default="pending")
    price_approval_rejection_reason = db.Column(db.String(500), nullable=True)

    total_amount_cents = db.Column(db.Integer, nullable=True)
    price_cents = db.Column(db.Integer, nullable=True)

    expected_delivery_date = db.Column(db.String(100), nullable=True)
    actual_delivery_date = db.Column(db.String(100), nullable=True)

    ship_street = db.Column(db.String(200), nullable=True)
    ship_city = db.Column(db.String(100), nullable=True)
    ship_state = db.Column(db.String(100), nullable=True)
    ship_zip_code = db.Column(db.String(20), nullable=True)
    ship_country = db.Column(db.String(100), nullable=True)

    notes = db.Column(db.String(1000), nullable=True)
    image_path = db.Column(db.String(500), nullable=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    stock_adjusted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    vendor = db.relationship("Vendor", backref=db.backref("orders", lazy="dynamic"))
    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="(OrderItem.position, OrderItem.id)",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"

    @property
    def active_items(self) -> list["OrderItem"]:
        return [item for item in self.items if item.is_active]

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "vendor_id": self.vendor_id,
            "vendor": self.vendor.to_summary() if self.vendor else None,
            "items": [item.to_dict() for item in self.active_items],
            "status": self.status,
            "price_approval_status": self.price_approval_status,
            "price_approval_rejection_reason": self.price_approval_rejection_reason,
            "total_amount_cents": self.total_amount_cents,
            "price_cents": self.price_cents,
            "expected_delivery_date": self.expected_delivery_date,
            "actual_delivery_date": self.actual_delivery_date,
            "shipping_address": {
                "street": self.ship_street,
                "city": self.ship_city,
                "state": self.ship_state,
                "zip_code": self.ship_zip_code,
                "country": self.ship_country,
            },
            "notes": self.notes,
            "image_path": self.image_path,
            "order_date": to_utc_z(self.order_date),
            "is_active": self.is_active,
            "stock_adjusted": self.stock_adjusted,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        data.update(self.logistics_dict())
        return data


class OrderItem(LogisticsFields, db.Model):
    """
    Line item owned by an Order; no lifecycle outside its parent.

    Public APIs address items by index: the zero-based position among the
    order's active items.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.Index("ix_order_items_order_position", "order_id", "position"),
        db.Index("ix_order_items_product", "product_id"),
        db.CheckConstraint("quantity >= 1", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    item_number = db.Column(db.String(50), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=True)
    total_price_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending")
    price_approval_status = db.Column(db.String(16), nullable=False, default="pending")
    price_approval_rejection_reason = db.Column(db.String(500), nullable=True)

    notes = db.Column(db.String(500), nullable=True)
    image_path = db.Column(db.String(500), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    # Set when this item's quantity is reflected in Product.stock
    stock_adjusted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    order = db.relationship("Order", back_populates="items")
    product = db.relationship("Product")

    def __repr__(self) -> str:
        return f"<OrderItem id={self.id} order_id={self.order_id} item_number={self.item_number!r} qty={self.quantity}>"

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "product": self.product.to_summary() if self.product else None,
            "item_number": self.item_number,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "status": self.status,
            "price_approval_status": self.price_approval_status,
            "price_approval_rejection_reason": self.price_approval_rejection_reason,
            "notes": self.notes,
            "image_path": self.image_path,
            "stock_adjusted": self.stock_adjusted,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        data.update(self.logistics_dict())
        return data


class DocumentSequence(db.Model):
    """Monotonic counters for generated document numbers (ORD-000001)."""
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_document_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
