# Overview: Service-layer operations for product purchase history rows.

"""
Purchase rows are mostly written by stock reconciliation. Staff may also
record purchases by hand (order_id NULL), correct them, and soft delete
them. Manual rows never touch Product.stock.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Order, Product, ProductPurchase, Vendor
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    enforce_money_fields,
    validate_payload,
)
from ordercrm.time_utils import parse_iso_datetime, utcnow


CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"product_id", "vendor_id", "quantity", "price_cents", "purchase_date", "order_id", "notes"},
    required_on_create={"product_id", "vendor_id", "quantity", "price_cents"},
)

UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "price_cents", "purchase_date", "notes"},
)

SORT_FIELDS = {
    "purchase_date": ProductPurchase.purchase_date,
    "quantity": ProductPurchase.quantity,
    "price_cents": ProductPurchase.price_cents,
    "total_amount_cents": ProductPurchase.total_amount_cents,
    "created_at": ProductPurchase.created_at,
}


class PurchaseNotFoundError(Exception):
    pass


def _check_amounts(patch: dict) -> None:
    if "quantity" in patch and (patch["quantity"] is None or patch["quantity"] < 1):
        raise ValidationError("Quantity must be at least 1", field="quantity")
    enforce_money_fields(patch, "price_cents")


def _date_arg(name: str, raw):
    if raw in (None, ""):
        return None
    try:
        value = parse_iso_datetime(raw)
    except ValueError:
        value = None
    if value is None:
        raise ValidationError(f"{name} must be an ISO-8601 date", field=name)
    return value


def _filtered(query, *, product_id=None, vendor_id=None, start_date=None, end_date=None):
    query = query.filter(ProductPurchase.is_active.is_(True))
    if product_id not in (None, ""):
        query = query.filter(ProductPurchase.product_id == coerce_int("product_id", product_id))
    if vendor_id not in (None, ""):
        query = query.filter(ProductPurchase.vendor_id == coerce_int("vendor_id", vendor_id))

    start = _date_arg("start_date", start_date)
    end = _date_arg("end_date", end_date)
    if start is not None:
        query = query.filter(ProductPurchase.purchase_date >= start)
    if end is not None:
        query = query.filter(ProductPurchase.purchase_date <= end)
    return query


def list_purchases(
    *,
    product_id=None,
    vendor_id=None,
    start_date=None,
    end_date=None,
    sort_by: str = "purchase_date",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> tuple[list[ProductPurchase], int]:
    query = _filtered(
        db.session.query(ProductPurchase),
        product_id=product_id,
        vendor_id=vendor_id,
        start_date=start_date,
        end_date=end_date,
    )
    total = query.count()
    sort_column = SORT_FIELDS.get(sort_by, ProductPurchase.purchase_date)
    ordering = sort_column.asc() if sort_order == "asc" else sort_column.desc()
    purchases = (
        query.order_by(ordering, ProductPurchase.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return purchases, total


def statistics_overview(*, product_id=None, vendor_id=None, start_date=None, end_date=None) -> dict:
    """Totals over active purchase rows, narrowed by the same filters as the listing."""
    query = _filtered(
        db.session.query(
            func.count(ProductPurchase.id),
            func.coalesce(func.sum(ProductPurchase.quantity), 0),
            func.coalesce(func.sum(ProductPurchase.total_amount_cents), 0),
            func.count(func.distinct(ProductPurchase.vendor_id)),
            func.count(func.distinct(ProductPurchase.product_id)),
        ),
        product_id=product_id,
        vendor_id=vendor_id,
        start_date=start_date,
        end_date=end_date,
    )
    count, quantity, amount, vendors, products = query.one()
    return {
        "total_purchases": count,
        "total_quantity": int(quantity),
        "total_amount_cents": int(amount),
        "average_price_cents": round(amount / quantity) if quantity else 0,
        "unique_vendors": vendors,
        "unique_products": products,
    }


def get_purchase(purchase_id: int) -> ProductPurchase:
    purchase = db.session.get(ProductPurchase, purchase_id)
    if not purchase or not purchase.is_active:
        raise PurchaseNotFoundError("Product purchase not found")
    return purchase


def create_purchase(data: dict) -> ProductPurchase:
    patch = validate_payload(model=ProductPurchase, payload=data, policy=CREATE_POLICY, partial=False)
    _check_amounts(patch)

    product = db.session.get(Product, patch["product_id"])
    if not product or not product.is_active:
        raise ValidationError("Product not found", field="product_id")
    vendor = db.session.get(Vendor, patch["vendor_id"])
    if not vendor or not vendor.is_active:
        raise ValidationError("Vendor not found", field="vendor_id")
    if patch.get("order_id") is not None and not db.session.get(Order, patch["order_id"]):
        raise ValidationError("Order not found", field="order_id")

    purchase = ProductPurchase(
        vendor_name=vendor.name,
        total_amount_cents=patch["quantity"] * patch["price_cents"],
        is_active=True,
        **patch,
    )
    if purchase.purchase_date is None:
        purchase.purchase_date = utcnow()
    db.session.add(purchase)
    db.session.commit()
    return purchase


def update_purchase(purchase_id: int, data: dict) -> ProductPurchase:
    purchase = get_purchase(purchase_id)
    patch = validate_payload(model=ProductPurchase, payload=data, policy=UPDATE_POLICY, partial=True)
    _check_amounts(patch)

    for key, value in patch.items():
        setattr(purchase, key, value)
    purchase.total_amount_cents = purchase.quantity * purchase.price_cents
    db.session.commit()
    return purchase


def delete_purchase(purchase_id: int) -> ProductPurchase:
    purchase = db.session.get(ProductPurchase, purchase_id)
    if not purchase:
        raise PurchaseNotFoundError("Product purchase not found")
    purchase.is_active = False
    db.session.commit()
    return purchase
