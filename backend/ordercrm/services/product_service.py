# Overview: Service-layer operations for the product catalog.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Order, OrderItem, Product, ProductPurchase, Vendor
from ..principals import is_vendor
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    enforce_money_fields,
    validate_payload,
)
from ordercrm.time_utils import to_utc_z
from . import reconciliation_service as recon


class ProductNotFoundError(Exception):
    """Product missing or inactive."""
    pass


class ProductConflictError(Exception):
    """Active product with the same item number exists."""
    pass


_PRODUCT_FIELDS = {
    "item_number",
    "name",
    "description",
    "specifications",
    "reorder_level",
    "visible_to_clients",
}

# Vendors never see or set commercial fields
STAFF_POLICY = ModelValidationPolicy(
    writable_fields=_PRODUCT_FIELDS | {"selling_price_cents", "stock"},
    required_on_create={"item_number", "name"},
)
VENDOR_POLICY = ModelValidationPolicy(
    writable_fields=_PRODUCT_FIELDS,
    required_on_create={"item_number", "name"},
)


def _policy_for(principal) -> ModelValidationPolicy:
    return VENDOR_POLICY if is_vendor(principal) else STAFF_POLICY


def default_description(name: str, item_number: str) -> str:
    return name if name == item_number else f"{name} ({item_number})"


def _validate(payload: dict, principal, *, partial: bool) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    # Blank descriptions are generated from name and item number
    description = payload.get("description")
    description_blank = "description" in payload and (
        description is None or (isinstance(description, str) and not description.strip())
    )
    if description_blank:
        payload.pop("description")

    patch = validate_payload(model=Product, payload=payload, policy=_policy_for(principal), partial=partial)

    errors = []
    for field in ("stock", "reorder_level"):
        if patch.get(field) is not None and patch[field] < 0:
            errors.append({"field": field, "message": f"{field} must be >= 0"})
    specs = patch.get("specifications")
    if "specifications" in patch:
        if specs is None:
            patch["specifications"] = {}
        elif not isinstance(specs, dict):
            errors.append({"field": "specifications", "message": "specifications must be an object"})
        else:
            patch["specifications"] = {str(k): "" if v is None else str(v) for k, v in specs.items()}
    if errors:
        raise ValidationError("Validation failed", errors=errors)
    enforce_money_fields(patch, "selling_price_cents")

    patch["_description_blank"] = description_blank
    return patch


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product or not product.is_active:
        raise ProductNotFoundError("Product not found")
    return product


def serialize(products: list[Product], principal) -> list[dict]:
    """to_dict for a page of products, with derived stock and vendor redaction."""
    include_commercial = not is_vendor(principal)
    stock = recon.effective_stock(products) if include_commercial else {}
    return [
        p.to_dict(include_commercial=include_commercial, stock=stock.get(p.id))
        for p in products
    ]


def list_products(
    *,
    search: str | None = None,
    visible: bool | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Product], int]:
    query = db.session.query(Product).filter(Product.is_active.is_(True))
    if visible is not None:
        query = query.filter(Product.visible_to_clients.is_(visible))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Product.name.ilike(pattern),
                Product.description.ilike(pattern),
                Product.item_number.ilike(pattern),
            )
        )

    total = query.count()
    sort_column = {
        "created_at": Product.created_at,
        "updated_at": Product.updated_at,
        "name": Product.name,
        "item_number": Product.item_number,
    }.get(sort_by, Product.created_at)
    ordering = sort_column.asc() if sort_order == "asc" else sort_column.desc()
    products = (
        query.order_by(ordering, Product.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return products, total


def create_product(payload: dict, principal) -> tuple[Product, bool]:
    """
    Create a product, or reactivate a soft-deleted one with the same item
    number. Returns (product, reactivated).
    """
    patch = _validate(payload, principal, partial=False)
    patch.pop("_description_blank")

    if not patch.get("description"):
        patch["description"] = default_description(patch["name"], patch["item_number"])

    existing = db.session.query(Product).filter(Product.item_number == patch["item_number"]).first()
    if existing:
        if existing.is_active:
            raise ProductConflictError("Item number already exists")
        for key, value in patch.items():
            setattr(existing, key, value)
        existing.is_active = True
        db.session.commit()
        return existing, True

    patch.setdefault("specifications", {})
    product = Product(images=[], is_active=True, **patch)
    if product.visible_to_clients is None:
        product.visible_to_clients = True
    if product.stock is None:
        product.stock = 0
    db.session.add(product)
    db.session.commit()
    return product, False


def update_product(product_id: int, payload: dict, principal) -> Product:
    product = get_product(product_id)
    patch = _validate(payload, principal, partial=True)
    description_blank = patch.pop("_description_blank")

    new_item_number = patch.get("item_number")
    if new_item_number and new_item_number != product.item_number:
        taken = db.session.query(Product.id).filter(
            Product.item_number == new_item_number,
            Product.id != product.id,
        ).first()
        if taken:
            raise ProductConflictError("Item number already exists")

    if description_blank:
        patch["description"] = default_description(
            patch.get("name", product.name),
            patch.get("item_number", product.item_number),
        )

    for key, value in patch.items():
        setattr(product, key, value)
    db.session.commit()
    return product


def delete_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise ProductNotFoundError("Product not found")
    product.is_active = False
    db.session.commit()
    return product


def prepend_image(product: Product, path: str) -> None:
    """Newest image first. Assigns a new list so the JSON column is flagged dirty."""
    images = [img for img in (product.images or []) if img != path]
    product.images = [path] + images


def resolve_order_product(*, product_id=None, item_number=None, name=None, field_prefix: str = "") -> Product:
    """
    Product for an order line: by id, then by item number, else a
    placeholder product is created under that item number.

    Does not commit.
    """
    if product_id not in (None, ""):
        pid = coerce_int(f"{field_prefix}product_id", product_id)
        product = db.session.get(Product, pid)
        if product and product.is_active:
            return product

    item_number = str(item_number).strip() if item_number is not None else ""
    if not item_number:
        raise ValidationError("Valid product ID or item number is required", field=f"{field_prefix}product_id")
    if len(item_number) > 50:
        raise ValidationError("Item number too long", field=f"{field_prefix}item_number")

    product = db.session.query(Product).filter(Product.item_number == item_number).first()
    if product:
        if not product.is_active:
            product.is_active = True
        return product

    name = (str(name).strip() if name else "") or item_number
    product = Product(
        item_number=item_number,
        name=name[:200],
        description=default_description(name[:200], item_number),
        images=[],
        specifications={},
        stock=0,
        visible_to_clients=True,
        is_active=True,
    )
    db.session.add(product)
    db.session.flush()
    return product


# ---------------------------------------------------------------------------
# Purchase history
# ---------------------------------------------------------------------------

def _statistics(rows: list[dict]) -> dict:
    total_quantity = sum(r["quantity"] or 0 for r in rows)
    total_amount = sum(r["total_amount_cents"] or 0 for r in rows)
    return {
        "total_purchases": len(rows),
        "total_quantity": total_quantity,
        "total_amount_cents": total_amount,
        "average_price_cents": round(total_amount / total_quantity) if total_quantity else 0,
        "unique_vendors": len({r["vendor_id"] for r in rows}),
        "last_purchase": rows[0] if rows else None,
    }


def _history_from_orders(product_id: int, *, confirmed_only: bool = True) -> list[dict]:
    """Non-persistent history built from order items; confirmed orders only unless told otherwise."""
    query = (
        db.session.query(OrderItem, Order, Vendor)
        .join(Order, Order.id == OrderItem.order_id)
        .outerjoin(Vendor, Vendor.id == Order.vendor_id)
        .filter(
            OrderItem.product_id == product_id,
            OrderItem.is_active.is_(True),
            Order.is_active.is_(True),
        )
    )
    if confirmed_only:
        query = query.filter(Order.status == "confirmed")
    rows = query.order_by(Order.order_date.desc(), OrderItem.id.desc()).all()
    history = []
    for item, order, vendor in rows:
        price = item.unit_price_cents or 0
        history.append({
            "id": None,
            "product_id": product_id,
            "vendor_id": order.vendor_id,
            "vendor_name": vendor.name if vendor else "Unknown",
            "quantity": item.quantity,
            "price_cents": price,
            "total_amount_cents": item.total_price_cents if item.total_price_cents is not None else price * item.quantity,
            "purchase_date": to_utc_z(order.order_date),
            "order_id": order.id,
            "order_number": order.order_number,
            "order_item_id": item.id,
            "notes": order.notes or "",
        })
    return history


def purchase_history(product_id: int) -> dict:
    product = get_product(product_id)
    purchases = (
        db.session.query(ProductPurchase)
        .filter(ProductPurchase.product_id == product.id, ProductPurchase.is_active.is_(True))
        .order_by(ProductPurchase.purchase_date.desc(), ProductPurchase.id.desc())
        .all()
    )
    rows = [p.to_dict() for p in purchases] if purchases else _history_from_orders(product.id)
    return {"purchases": rows, "statistics": _statistics(rows)}


def product_statistics(product_id: int) -> dict:
    """
    Ordering statistics for a product across every active order that holds
    it, whatever the order status. Unlike purchase_history this never reads
    purchase rows, so pending and shipped orders count too.
    """
    product = get_product(product_id)
    rows = _history_from_orders(product.id, confirmed_only=False)
    return {**_statistics(rows), "purchases": rows}
