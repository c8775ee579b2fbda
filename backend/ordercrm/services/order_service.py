# Overview: Service-layer operations for orders and their items.

"""
Order aggregate.

An Order owns its OrderItems. Every mutation goes through this module so the
same sequence runs each time:

1. ownership check (vendors only touch their own orders)
2. field changes
3. item totals, order total and price-approval aggregate recomputed
4. order status re-derived from the active items
5. stock reconciliation for item- and order-level transitions
6. updated_at touched, one commit

Public APIs address items by index: the zero-based position among the
order's active items.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import and_, exists, func, or_, select

from ..extensions import db
from ..models import (
    Order,
    OrderItem,
    Vendor,
    ORDER_STATUSES,
    PRICE_APPROVAL_STATUSES,
    LOGISTICS_FIELDS,
)
from ..principals import AdminPrincipal, VendorPrincipal, is_vendor
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    coerce_int,
    enforce_money_fields,
    validate_payload,
)
from ordercrm.time_utils import today_iso, utcnow
from . import product_service
from . import reconciliation_service as recon
from .concurrency import run_with_retry
from .document_service import next_order_number
from .status_derivation import (
    derive_order_status,
    derive_price_approval,
    item_total_cents,
    order_total_cents,
)


class OrderError(Exception):
    """Base class for order failures."""
    pass


class OrderNotFoundError(OrderError):
    """Order or item missing, inactive, or out of range."""
    pass


class OrderAccessError(OrderError):
    """Wrong owner, or a change the principal may not make."""
    pass


class OrderConflictError(OrderError):
    """Duplicate order number."""
    pass


PRICE_APPROVAL_FIELDS = ("price_approval_status", "price_approval_rejection_reason")

ORDER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "status",
        "price_approval_status",
        "price_approval_rejection_reason",
        "price_cents",
        "notes",
        "expected_delivery_date",
        "actual_delivery_date",
        *LOGISTICS_FIELDS,
    },
    ignore_unknown=True,
)

ORDER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "order_number",
        "price_cents",
        "notes",
        "expected_delivery_date",
        *LOGISTICS_FIELDS,
    },
    ignore_unknown=True,
)

ITEM_PATCH_POLICY = ModelValidationPolicy(
    writable_fields={
        "status",
        "price_approval_status",
        "price_approval_rejection_reason",
        "notes",
        "quantity",
        "unit_price_cents",
        *LOGISTICS_FIELDS,
    },
    ignore_unknown=True,
)

SHIPPING_FIELDS = {
    "street": "ship_street",
    "city": "ship_city",
    "state": "ship_state",
    "zip_code": "ship_zip_code",
    "country": "ship_country",
}

SORT_FIELDS = {
    "order_date": Order.order_date,
    "created_at": Order.created_at,
    "updated_at": Order.updated_at,
    "order_number": Order.order_number,
    "status": Order.status,
}

# Metadata carried to the new order's item by a quantity transfer
TRANSFER_ITEM_FIELDS = (
    "product_id",
    "item_number",
    "unit_price_cents",
    "price_approval_status",
    "price_approval_rejection_reason",
    "notes",
    "image_path",
    *LOGISTICS_FIELDS,
)


# ---------------------------------------------------------------------------
# Lookup / access
# ---------------------------------------------------------------------------

def ensure_access(order: Order, principal) -> None:
    if isinstance(principal, VendorPrincipal) and order.vendor_id != principal.vendor.id:
        raise OrderAccessError("Access denied. You can only access your own orders.")


def get_order(order_id: int, principal) -> Order:
    order = db.session.get(Order, order_id)
    if not order or not order.is_active:
        raise OrderNotFoundError("Order not found")
    ensure_access(order, principal)
    return order


def get_item_by_index(order: Order, item_index) -> OrderItem:
    try:
        index = coerce_int("item_index", item_index)
    except ValidationError:
        raise OrderNotFoundError("Item not found")
    items = order.active_items
    if index < 0 or index >= len(items):
        raise OrderNotFoundError("Item not found")
    return items[index]


# ---------------------------------------------------------------------------
# Field validation helpers
# ---------------------------------------------------------------------------

def _check_choices(patch: dict, *, prefix: str = "") -> None:
    errors = []
    status = patch.get("status")
    if status is not None and status not in ORDER_STATUSES:
        errors.append({"field": f"{prefix}status", "message": "Invalid status"})
    approval = patch.get("price_approval_status")
    if approval is not None and approval not in PRICE_APPROVAL_STATUSES:
        errors.append({"field": f"{prefix}price_approval_status", "message": "Invalid price approval status"})
    if "quantity" in patch and (patch["quantity"] is None or patch["quantity"] < 1):
        errors.append({"field": f"{prefix}quantity", "message": "Quantity must be at least 1"})
    if errors:
        raise ValidationError("Validation failed", errors=errors)
    enforce_money_fields(patch, "unit_price_cents", "price_cents", "transfer_amount_cents")


def _validate_item_patch(raw, *, prefix: str) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError("Item must be an object", field=prefix.rstrip("."))
    patch = validate_payload(model=OrderItem, payload=raw, policy=ITEM_PATCH_POLICY, partial=True)
    _check_choices(patch, prefix=prefix)
    return patch


def _guard_price_approval(principal, target, patch: dict) -> None:
    """Vendors may not change price-approval fields (re-sending the same value is fine)."""
    if not is_vendor(principal):
        return
    for field in PRICE_APPROVAL_FIELDS:
        if field in patch and patch[field] != getattr(target, field, None):
            raise OrderAccessError("Access denied. Only admins can change price approval.")


def _apply_shipping(order: Order, shipping) -> None:
    if shipping is None:
        return
    if not isinstance(shipping, dict):
        raise ValidationError("shipping_address must be an object", field="shipping_address")
    for key, column in SHIPPING_FIELDS.items():
        if key in shipping:
            value = shipping[key]
            if value is not None:
                value = str(value).strip() or None
            setattr(order, column, value)


# ---------------------------------------------------------------------------
# Derived state
# ---------------------------------------------------------------------------

def recalculate(order: Order) -> None:
    """Item totals, order total and the order's price-approval aggregate."""
    active = order.active_items
    for item in active:
        item.total_price_cents = item_total_cents(item.unit_price_cents, item.quantity)
    order.total_amount_cents = order_total_cents(item.total_price_cents for item in active)
    order.price_approval_status = derive_price_approval(
        (item.price_approval_status for item in active),
        order.price_approval_status,
    )


def resync_status(order: Order) -> bool:
    """
    Re-derive the order status from its items and reconcile the transition.

    Returns True when the status changed. Does not commit.
    """
    derived = derive_order_status((item.status for item in order.active_items), order.status)
    if derived == order.status:
        return False
    previous = order.status
    order.status = derived
    db.session.flush()
    recon.reconcile_order_transition(order, previous)
    order.updated_at = utcnow()
    return True


def _touch(order: Order) -> None:
    order.updated_at = utcnow()


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

def _apply_item_patch(order: Order, item: OrderItem, patch: dict, principal, transitions: list) -> None:
    _guard_price_approval(principal, item, patch)

    previous_status = item.status
    previous_quantity = item.quantity
    previous_approval = item.price_approval_status

    for key, value in patch.items():
        setattr(item, key, value)

    if (
        isinstance(principal, AdminPrincipal)
        and item.price_approval_status == "approved"
        and previous_approval != "approved"
        and "confirmation_date" not in patch
    ):
        item.confirmation_date = today_iso()

    item.total_price_cents = item_total_cents(item.unit_price_cents, item.quantity)
    item.updated_at = utcnow()
    transitions.append((item, previous_status, previous_quantity))


def _new_item(order: Order, raw: dict, *, position: int, prefix: str, principal) -> OrderItem:
    patch = _validate_item_patch(raw, prefix=prefix)
    if "quantity" not in patch:
        raise ValidationError("Quantity must be at least 1", field=f"{prefix}quantity")
    if is_vendor(principal):
        for field in PRICE_APPROVAL_FIELDS:
            if patch.get(field) not in (None, "pending"):
                raise OrderAccessError("Access denied. Only admins can change price approval.")

    product = product_service.resolve_order_product(
        product_id=raw.get("product_id"),
        item_number=raw.get("item_number"),
        name=raw.get("name"),
        field_prefix=prefix,
    )
    item = OrderItem(
        product_id=product.id,
        item_number=product.item_number,
        position=position,
        status="pending",
        price_approval_status="pending",
        is_active=True,
        stock_adjusted=False,
    )
    for key, value in patch.items():
        setattr(item, key, value)
    if item.status is None:
        item.status = "pending"
    if item.price_approval_status is None:
        item.price_approval_status = "pending"
    item.total_price_cents = item_total_cents(item.unit_price_cents, item.quantity)
    order.items.append(item)
    return item


def _replace_items(order: Order, entries, principal, transitions: list, deactivated: list) -> None:
    """
    Bulk replace: entries with an id update that item, entries without one
    are appended, active items left out are deactivated.
    """
    if not isinstance(entries, list):
        raise ValidationError("items must be an array", field="items")

    by_id = {item.id: item for item in order.items}
    kept_ids: set[int] = set()

    for index, raw in enumerate(entries):
        prefix = f"items[{index}]."
        if not isinstance(raw, dict):
            raise ValidationError("Item must be an object", field=f"items[{index}]")
        raw_id = raw.get("id")
        if raw_id is not None:
            item_id = coerce_int(f"{prefix}id", raw_id)
            item = by_id.get(item_id)
            if item is None:
                raise ValidationError("Item does not belong to this order", field=f"{prefix}id")
            patch = _validate_item_patch(raw, prefix=prefix)
            if not item.is_active:
                item.is_active = True
            item.position = index
            kept_ids.add(item_id)
            _apply_item_patch(order, item, patch, principal, transitions)
        else:
            item = _new_item(order, raw, position=index, prefix=prefix, principal=principal)
            transitions.append((item, "pending", item.quantity))

    for item in order.items:
        if item.id is not None and item.is_active and item.id not in kept_ids:
            item.is_active = False
            item.updated_at = utcnow()
            deactivated.append(item)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _active_item_count():
    return (
        select(func.count(OrderItem.id))
        .where(OrderItem.order_id == Order.id, OrderItem.is_active.is_(True))
        .correlate(Order)
        .scalar_subquery()
    )


def list_orders(
    principal,
    *,
    search: str | None = None,
    search_type: str = "all",
    status: str | None = None,
    vendor_id=None,
    sort_by: str = "order_date",
    sort_order: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Order], int]:
    """
    Active orders matching the filters, newest first by default.

    Vendors are pinned to their own orders whatever vendor_id says.
    Returns (orders, total).
    """
    query = db.session.query(Order).filter(Order.is_active.is_(True))

    if isinstance(principal, VendorPrincipal):
        query = query.filter(Order.vendor_id == principal.vendor.id)
    elif vendor_id not in (None, ""):
        query = query.filter(Order.vendor_id == coerce_int("vendor_id", vendor_id))

    if status:
        query = query.filter(Order.status == status)

    if search:
        pattern = f"%{search.strip()}%"
        if search_type == "invoice_number":
            item_invoice = exists().where(
                and_(
                    OrderItem.order_id == Order.id,
                    OrderItem.is_active.is_(True),
                    OrderItem.invoice_number.ilike(pattern),
                )
            )
            query = query.filter(or_(Order.invoice_number.ilike(pattern), item_invoice))
        elif search_type == "item_count":
            try:
                count = int(search.strip())
            except ValueError:
                count = None
            if count is not None:
                query = query.filter(_active_item_count() == count)
        else:
            item_match = exists().where(
                and_(
                    OrderItem.order_id == Order.id,
                    OrderItem.is_active.is_(True),
                    OrderItem.item_number.ilike(pattern),
                )
            )
            query = query.filter(
                or_(
                    Order.order_number.ilike(pattern),
                    Order.invoice_number.ilike(pattern),
                    Order.notes.ilike(pattern),
                    item_match,
                )
            )

    total = query.count()

    sort_column = SORT_FIELDS.get(sort_by, Order.order_date)
    ordering = sort_column.asc() if sort_order == "asc" else sort_column.desc()
    orders = (
        query.order_by(ordering, Order.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return orders, total


def resync_listed(orders: list[Order]) -> None:
    """
    Read-path status resync. Persisted best-effort: a failure is logged and
    the listing is still served.
    """
    try:
        changed = [order for order in orders if resync_status(order)]
        if changed:
            db.session.commit()
    except Exception:  # noqa: BLE001
        db.session.rollback()
        current_app.logger.warning("Failed to resync order statuses", exc_info=True)


def vendor_orders(vendor_id: int, principal) -> list[Order]:
    if isinstance(principal, VendorPrincipal) and principal.vendor.id != vendor_id:
        raise OrderAccessError("Access denied. You can only view your own orders.")
    return (
        db.session.query(Order)
        .filter(Order.vendor_id == vendor_id, Order.is_active.is_(True))
        .order_by(Order.order_date.desc(), Order.id.desc())
        .all()
    )


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def _allocate_order_number() -> str:
    while True:
        candidate = next_order_number()
        taken = db.session.query(Order.id).filter(Order.order_number == candidate).first()
        if not taken:
            return candidate


def create_order(data: dict, principal) -> Order:
    """
    Create an order with its items.

    Each item resolves its product by product_id, then item_number, and
    otherwise gets a placeholder product. Prices are optional; totals are
    computed from whatever unit prices were supplied.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    patch = validate_payload(model=Order, payload=data, policy=ORDER_CREATE_POLICY, partial=True)
    _check_choices(patch)

    if isinstance(principal, VendorPrincipal):
        requested = data.get("vendor_id")
        if requested not in (None, "") and coerce_int("vendor_id", requested) != principal.vendor.id:
            raise OrderAccessError("Access denied. Vendors can only create their own orders.")
        vendor = principal.vendor
    else:
        if data.get("vendor_id") in (None, ""):
            raise ValidationError("Valid vendor ID is required", field="vendor_id")
        vendor = db.session.get(Vendor, coerce_int("vendor_id", data.get("vendor_id")))
        if vendor is None or not vendor.is_active:
            raise ValidationError("Vendor not found", field="vendor_id")

    items = data.get("items")
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required", field="items")

    order_number = patch.pop("order_number", None)
    if order_number:
        if db.session.query(Order.id).filter(Order.order_number == order_number).first():
            raise OrderConflictError("Order number already exists")
    else:
        order_number = _allocate_order_number()

    now = utcnow()
    order = Order(
        order_number=order_number,
        vendor_id=vendor.id,
        status="pending",
        price_approval_status="pending",
        order_date=now,
        is_active=True,
        stock_adjusted=False,
        created_at=now,
        updated_at=now,
    )
    for key, value in patch.items():
        setattr(order, key, value)
    _apply_shipping(order, data.get("shipping_address"))
    db.session.add(order)

    transitions = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError("Item must be an object", field=f"items[{index}]")
        item = _new_item(order, raw, position=index, prefix=f"items[{index}].", principal=principal)
        transitions.append((item, "pending", item.quantity))

    recalculate(order)
    order.status = derive_order_status((item.status for item in order.active_items), "pending")
    db.session.flush()

    for item, previous_status, _ in transitions:
        recon.reconcile_item_transition(order, item, previous_status)
    recon.reconcile_order_transition(order, "pending")

    db.session.commit()
    return order


def update_order(order_id: int, data: dict, principal) -> Order:
    """
    Patch order-level fields and/or items.

    Item changes come either as a single-item patch (item_index + item) or
    as a bulk replace (items); sending both is rejected.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    has_single = "item_index" in data or "item" in data
    has_bulk = "items" in data
    if has_single and has_bulk:
        raise ValidationError(
            "Send either item_index/item or items, not both",
            errors=[
                {"field": "items", "message": "Cannot be combined with item_index/item"},
                {"field": "item_index", "message": "Cannot be combined with items"},
            ],
        )

    order = get_order(order_id, principal)
    previous_status = order.status

    patch = validate_payload(model=Order, payload=data, policy=ORDER_UPDATE_POLICY, partial=True)
    _check_choices(patch)
    _guard_price_approval(principal, order, patch)

    transitions: list = []
    deactivated: list = []
    items_changed = False

    if has_single:
        if "item_index" not in data or "item" not in data:
            raise ValidationError("item_index and item are both required", field="item_index")
        item = get_item_by_index(order, data["item_index"])
        item_patch = _validate_item_patch(data["item"], prefix="item.")
        _apply_item_patch(order, item, item_patch, principal, transitions)
        items_changed = True
    elif has_bulk:
        _replace_items(order, data["items"], principal, transitions, deactivated)
        items_changed = True

    for key, value in patch.items():
        setattr(order, key, value)
    _apply_shipping(order, data.get("shipping_address"))

    if items_changed:
        if not order.active_items:
            raise ValidationError("An order needs at least one active item", field="items")
        recalculate(order)
        order.status = derive_order_status((item.status for item in order.active_items), order.status)

    db.session.flush()

    for item in deactivated:
        recon.reverse_item(order, item)
    for item, previous_item_status, previous_quantity in transitions:
        # Bring an adjusted item to its new quantity first so a reversal
        # below takes back exactly what is counted
        if item.stock_adjusted:
            recon.resize_item(order, item, previous_quantity)
            recon.sync_item_purchase(item)
        recon.reconcile_item_transition(order, item, previous_item_status)
    recon.reconcile_order_transition(order, previous_status)

    _touch(order)
    db.session.commit()
    return order


def delete_order(order_id: int, principal) -> Order:
    """Soft delete; every stock effect of the order is reversed."""
    order = get_order(order_id, principal)
    recon.reverse_order(order, include_item_confirmations=True)
    order.is_active = False
    _touch(order)
    db.session.commit()
    return order


def confirm_item(order_id: int, item_index, principal) -> tuple[Order, bool]:
    """
    Confirm one item and reconcile just that item into stock.

    Returns (order, applied); applied is False when the item was already
    reconciled.
    """
    order = get_order(order_id, principal)
    item = get_item_by_index(order, item_index)

    item.status = "confirmed"
    item.updated_at = utcnow()
    db.session.flush()
    applied = recon.apply_item(order, item)

    recalculate(order)
    resync_status(order)
    _touch(order)
    db.session.commit()
    return order, applied


def transfer_item_quantity(order_id: int, item_index, quantity, principal) -> tuple[Order, Order]:
    """
    Split `quantity` off an item into a new single-item order for the same
    vendor. One transaction: either both orders change or neither does.
    A lock or stale-row failure reloads the order and runs the split again.
    Moving the whole quantity of the last active item soft deletes the
    source order and reverses whatever it had counted.

    Returns (source_order, new_order).
    """
    def _op():
        return _split_item(order_id, item_index, quantity, principal)

    return run_with_retry(_op)


def _split_item(order_id: int, item_index, quantity, principal) -> tuple[Order, Order]:
    order = get_order(order_id, principal)
    item = get_item_by_index(order, item_index)

    if quantity is None:
        raise ValidationError("Quantity is required", field="quantity")
    quantity = coerce_int("quantity", quantity)
    if quantity < 1 or quantity > item.quantity:
        raise ValidationError(
            f"Quantity must be between 1 and {item.quantity}",
            field="quantity",
        )

    carried = {field: getattr(item, field) for field in TRANSFER_ITEM_FIELDS}

    try:
        previous_status = order.status
        if quantity == item.quantity:
            recon.reverse_item(order, item)
            order.items.remove(item)
        else:
            previous_quantity = item.quantity
            item.quantity = previous_quantity - quantity
            item.updated_at = utcnow()
            recon.resize_item(order, item, previous_quantity)

        recalculate(order)
        if order.active_items:
            order.status = derive_order_status((i.status for i in order.active_items), order.status)
            db.session.flush()
            recon.reconcile_order_transition(order, previous_status)
        else:
            # Nothing left to order; the emptied source is soft deleted
            recon.reverse_order(order, include_item_confirmations=True)
            order.is_active = False
        _touch(order)

        now = utcnow()
        new_order = Order(
            order_number=_allocate_order_number(),
            vendor_id=order.vendor_id,
            status="pending",
            price_approval_status="pending",
            notes=order.notes,
            expected_delivery_date=order.expected_delivery_date,
            ship_street=order.ship_street,
            ship_city=order.ship_city,
            ship_state=order.ship_state,
            ship_zip_code=order.ship_zip_code,
            ship_country=order.ship_country,
            order_date=now,
            is_active=True,
            stock_adjusted=False,
            created_at=now,
            updated_at=now,
        )
        new_item = OrderItem(
            position=0,
            quantity=quantity,
            status="pending",
            is_active=True,
            stock_adjusted=False,
            **carried,
        )
        new_order.items.append(new_item)
        recalculate(new_order)
        db.session.add(new_order)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return order, new_order
