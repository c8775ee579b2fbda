# Overview: Service-layer operations keeping Product.stock in step with confirmations.

"""
Stock reconciliation.

One primitive, parameterised by scope and flow:

- scope: a whole order, a single order item, or a demand
- flow: SUPPLY (+1, vendor orders bring goods in) or DEMAND (-1, client
  demands take goods out)

IDEMPOTENCE: every scope owns a stock_adjusted flag. The flag is flipped
with an atomic conditional UPDATE (concurrency.claim_flag) and the stock
delta is only applied by the caller that won the flip. A second confirmation,
concurrent or not, finds the flag already set and changes nothing.

ATOMICITY: nothing here commits. Callers run the whole reconciliation inside
their request transaction and commit once; any exception rolls back the
stock change, the purchase rows and the flags together.

Stock is only ever changed with `stock = coalesce(stock, 0) + delta` at the
SQL level, never read-modify-write in Python.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.orm.attributes import set_committed_value

from ..extensions import db
from ..models import Demand, Order, OrderItem, Product, ProductPurchase
from ordercrm.time_utils import utcnow
from .concurrency import claim_flag


SUPPLY = 1
DEMAND = -1


class ReconciliationError(Exception):
    """Raised when a reconciliation step cannot be completed."""
    pass


def apply_stock_delta(product_id: int, delta: int) -> None:
    """Atomic SQL increment; keeps any loaded Product in sync by expiring it."""
    if not delta:
        return
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(stock=func.coalesce(Product.stock, 0) + delta)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise ReconciliationError(f"Product {product_id} not found")

    loaded = db.session.identity_map.get(db.session.identity_key(Product, product_id))
    if loaded is not None:
        db.session.expire(loaded, ["stock"])


def _record_purchase(order: Order, item: OrderItem) -> ProductPurchase:
    price = item.unit_price_cents or 0
    vendor = order.vendor
    purchase = ProductPurchase(
        product_id=item.product_id,
        vendor_id=order.vendor_id,
        vendor_name=vendor.name if vendor else "Unknown",
        quantity=item.quantity,
        price_cents=price,
        total_amount_cents=price * item.quantity,
        purchase_date=utcnow(),
        order_id=order.id,
        order_item_id=item.id,
        notes=order.notes or "",
    )
    db.session.add(purchase)
    return purchase


def _delete_item_purchases(item: OrderItem) -> int:
    return (
        db.session.query(ProductPurchase)
        .filter(ProductPurchase.order_item_id == item.id)
        .delete(synchronize_session="fetch")
    )


# ---------------------------------------------------------------------------
# Item scope
# ---------------------------------------------------------------------------

def apply_item(order: Order, item: OrderItem, *, flow: int = SUPPLY) -> bool:
    """
    Reconcile one item into stock and record its purchase row.

    Returns False when the item was already adjusted (nothing changed).
    """
    if item.id is None:
        db.session.flush()
    if not claim_flag(OrderItem, item.id, "stock_adjusted", expected=False, new=True):
        return False
    set_committed_value(item, "stock_adjusted", True)

    apply_stock_delta(item.product_id, flow * item.quantity)
    _record_purchase(order, item)
    return True


def reverse_item(order: Order, item: OrderItem, *, flow: int = SUPPLY) -> bool:
    """Undo apply_item. Returns False when the item was not adjusted."""
    if item.id is None:
        return False
    if not claim_flag(OrderItem, item.id, "stock_adjusted", expected=True, new=False):
        return False
    set_committed_value(item, "stock_adjusted", False)

    apply_stock_delta(item.product_id, -flow * item.quantity)
    _delete_item_purchases(item)
    return True


def resize_item(order: Order, item: OrderItem, old_quantity: int, *, flow: int = SUPPLY) -> bool:
    """
    Carry a quantity change on an adjusted item into stock: only the
    difference is applied, and the item's purchase row follows the new
    quantity. Used by quantity edits and quantity transfers.

    Returns False when the item was not adjusted or the quantity is unchanged.
    """
    if not item.stock_adjusted or item.quantity == old_quantity:
        return False

    apply_stock_delta(item.product_id, flow * (item.quantity - old_quantity))
    sync_item_purchase(item)
    return True


def sync_item_purchase(item: OrderItem) -> None:
    """Keep an adjusted item's purchase row in line with its quantity and price."""
    if not item.stock_adjusted or item.id is None:
        return
    price = item.unit_price_cents or 0
    purchases = (
        db.session.query(ProductPurchase)
        .filter(ProductPurchase.order_item_id == item.id)
        .all()
    )
    for purchase in purchases:
        purchase.quantity = item.quantity
        purchase.price_cents = price
        purchase.total_amount_cents = price * item.quantity


# ---------------------------------------------------------------------------
# Order scope
# ---------------------------------------------------------------------------

def apply_order(order: Order, *, flow: int = SUPPLY) -> bool:
    """
    Order-level confirmation: claim the order flag, then every active item
    that is not yet adjusted.

    Returns False when the order was already adjusted.
    """
    db.session.flush()
    if not claim_flag(Order, order.id, "stock_adjusted", expected=False, new=True):
        return False
    set_committed_value(order, "stock_adjusted", True)

    applied = 0
    for item in order.active_items:
        if apply_item(order, item, flow=flow):
            applied += 1

    current_app.logger.info(
        "Stock applied for order %s (%d item(s), flow=%+d)", order.order_number, applied, flow
    )
    return True


def reverse_order(order: Order, *, flow: int = SUPPLY, include_item_confirmations: bool = False) -> bool:
    """
    Undo an order-level confirmation: inverse delta for every adjusted item
    and removal of the order's purchase rows.

    Items confirmed individually (order flag never set) are only reversed
    when include_item_confirmations is True, which is what soft delete uses.

    Returns True when anything was reversed.
    """
    db.session.flush()
    order_claimed = claim_flag(Order, order.id, "stock_adjusted", expected=True, new=False)
    if order_claimed:
        set_committed_value(order, "stock_adjusted", False)

    if not order_claimed and not include_item_confirmations:
        return False

    reversed_items = 0
    for item in order.items:
        if reverse_item(order, item, flow=flow):
            reversed_items += 1

    if order_claimed:
        (
            db.session.query(ProductPurchase)
            .filter(ProductPurchase.order_id == order.id)
            .delete(synchronize_session="fetch")
        )

    if order_claimed or reversed_items:
        current_app.logger.info(
            "Stock reversed for order %s (%d item(s), flow=%+d)", order.order_number, reversed_items, flow
        )
        return True
    return False


def reconcile_order_transition(order: Order, previous_status: str, *, flow: int = SUPPLY) -> None:
    """
    Apply or reverse stock for an order-level status change.

    Entering confirmed applies (guarded). Any move out of confirmed, to
    pending, cancelled, shipped or delivered, reverses an earlier
    application.
    """
    new_status = order.status
    if new_status == previous_status:
        if new_status == "confirmed" and not order.stock_adjusted:
            apply_order(order, flow=flow)
        return
    if new_status == "confirmed":
        apply_order(order, flow=flow)
    elif previous_status == "confirmed":
        reverse_order(order, flow=flow)


def reconcile_item_transition(order: Order, item: OrderItem, previous_status: str, *, flow: int = SUPPLY) -> None:
    new_status = item.status
    if new_status == previous_status:
        return
    if new_status == "confirmed":
        apply_item(order, item, flow=flow)
    elif previous_status == "confirmed":
        reverse_item(order, item, flow=flow)


# ---------------------------------------------------------------------------
# Demand scope
# ---------------------------------------------------------------------------

def apply_demand(demand: Demand, *, flow: int = DEMAND) -> bool:
    if not claim_flag(Demand, demand.id, "stock_adjusted", expected=False, new=True):
        return False
    set_committed_value(demand, "stock_adjusted", True)
    apply_stock_delta(demand.product_id, flow * demand.quantity)
    current_app.logger.info("Stock applied for demand %s (qty %d, flow=%+d)", demand.id, demand.quantity, flow)
    return True


def reverse_demand(demand: Demand, *, flow: int = DEMAND) -> bool:
    if not claim_flag(Demand, demand.id, "stock_adjusted", expected=True, new=False):
        return False
    set_committed_value(demand, "stock_adjusted", False)
    apply_stock_delta(demand.product_id, -flow * demand.quantity)
    current_app.logger.info("Stock reversed for demand %s (qty %d, flow=%+d)", demand.id, demand.quantity, flow)
    return True


def reconcile_demand_transition(demand: Demand, previous_status: str) -> None:
    if demand.status == previous_status:
        return
    if demand.status == "confirmed":
        apply_demand(demand)
    elif previous_status == "confirmed":
        reverse_demand(demand)


# ---------------------------------------------------------------------------
# Derived stock
# ---------------------------------------------------------------------------

def confirmed_stock_for_products(product_ids: list[int]) -> dict[int, int]:
    """
    Stock implied by confirmed-order history: quantities of active items in
    active orders where the order or the item is confirmed.
    """
    if not product_ids:
        return {}
    rows = (
        db.session.query(OrderItem.product_id, func.coalesce(func.sum(OrderItem.quantity), 0))
        .join(Order, Order.id == OrderItem.order_id)
        .filter(
            OrderItem.product_id.in_(product_ids),
            OrderItem.is_active.is_(True),
            Order.is_active.is_(True),
            db.or_(Order.status == "confirmed", OrderItem.status == "confirmed"),
        )
        .group_by(OrderItem.product_id)
        .all()
    )
    return {product_id: int(total) for product_id, total in rows}


def effective_stock(products: list[Product]) -> dict[int, int]:
    """
    Stock to report for each product. A stored value of NULL or 0 is
    replaced by the confirmed-order figure; nothing is persisted.
    """
    missing = [p.id for p in products if not p.stock]
    derived = confirmed_stock_for_products(missing)
    return {p.id: (p.stock if p.stock else derived.get(p.id, 0)) for p in products}
