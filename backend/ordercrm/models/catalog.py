from __future__ import annotations

from ..extensions import db
from ordercrm.time_utils import to_utc_z


class Product(db.Model):
    """
    Catalog entry keyed by item number.

    STOCK: stock is only mutated by reconciliation (atomic SQL increments) or
    by an explicit admin edit. Never read-modify-write it in Python.

    IMAGES: ordered newest-first. Assign a new list rather than mutating in
    place; JSON columns do not track in-place changes.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_active_visible", "is_active", "visible_to_clients"),
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    item_number = db.Column(db.String(50), nullable=False, unique=True, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=False)

    images = db.Column(db.JSON, nullable=False, default=list)
    specifications = db.Column(db.JSON, nullable=False, default=dict)

    # Authoritative storage in cents (frontend may only format for display)
    selling_price_cents = db.Column(db.Integer, nullable=True)

    stock = db.Column(db.Integer, nullable=True, default=0)
    reorder_level = db.Column(db.Integer, nullable=True)

    visible_to_clients = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} item_number={self.item_number!r} stock={self.stock}>"

    def to_dict(self, *, include_commercial: bool = True, stock: int | None = None) -> dict:
        data = {
            "id": self.id,
            "item_number": self.item_number,
            "name": self.name,
            "description": self.description,
            "images": list(self.images or []),
            "specifications": dict(self.specifications or {}),
            "reorder_level": self.reorder_level,
            "visible_to_clients": self.visible_to_clients,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_commercial:
            data["selling_price_cents"] = self.selling_price_cents
            data["stock"] = stock if stock is not None else (self.stock or 0)
        return data

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "item_number": self.item_number}


class ProductPurchase(db.Model):
    """
    Denormalized purchase history row.

    Created when an order item is reconciled into stock and removed when that
    reconciliation is reversed. Manual rows (order_id NULL) are admin entries.
    """
    __tablename__ = "product_purchases"
    __table_args__ = (
        db.Index("ix_purchases_product_date", "product_id", "purchase_date"),
        db.Index("ix_purchases_vendor", "vendor_id"),
        db.Index("ix_purchases_order", "order_id"),
        db.Index("ix_purchases_order_item", "order_item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    vendor_id = db.Column(db.Integer, db.ForeignKey("vendors.id"), nullable=False)
    vendor_name = db.Column(db.String(100), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True)

    notes = db.Column(db.String(500), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("purchases", lazy="dynamic"))
    order = db.relationship("Order")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
            "total_amount_cents": self.total_amount_cents,
            "purchase_date": to_utc_z(self.purchase_date),
            "order_id": self.order_id,
            "order_number": self.order.order_number if self.order else None,
            "order_item_id": self.order_item_id,
            "notes": self.notes,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
