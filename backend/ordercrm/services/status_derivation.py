# Overview: Pure functions deriving order-level state from its items.

from __future__ import annotations

from typing import Iterable


def derive_order_status(item_statuses: Iterable[str], current: str) -> str:
    """
    Order status implied by its active items' statuses.

    Priority: all delivered > all shipped > all confirmed > any cancelled.
    When no rule matches (or there are no items) the current status stands.
    """
    statuses = list(item_statuses)
    if not statuses:
        return current
    if all(s == "delivered" for s in statuses):
        return "delivered"
    if all(s == "shipped" for s in statuses):
        return "shipped"
    if all(s == "confirmed" for s in statuses):
        return "confirmed"
    if any(s == "cancelled" for s in statuses):
        return "cancelled"
    return current


def derive_price_approval(item_approvals: Iterable[str], current: str) -> str:
    """all approved -> approved, any rejected -> rejected, otherwise pending."""
    approvals = list(item_approvals)
    if not approvals:
        return current
    if all(a == "approved" for a in approvals):
        return "approved"
    if any(a == "rejected" for a in approvals):
        return "rejected"
    return "pending"


def order_total_cents(item_totals: Iterable[int | None]) -> int | None:
    """Sum of priced items; None when no item carries a total."""
    priced = [t for t in item_totals if t is not None]
    if not priced:
        return None
    return sum(priced)


def item_total_cents(unit_price_cents: int | None, quantity: int) -> int | None:
    if unit_price_cents is None:
        return None
    return unit_price_cents * quantity
