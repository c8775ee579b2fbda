# Overview: Service-layer operations for the push channel (event outbox).

"""
Notification fan-out.

Routes call publish() after their own transaction has committed. The event
is appended to the notification_events table, which GET
/api/notifications and the SSE stream read. Publishing is best-effort: a
failure is logged and never propagates into the request that triggered it.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import NotificationEvent
from ..principals import actor_of
from ordercrm.time_utils import utcnow


ORDERS_CREATED = "orders:created"
ORDERS_UPDATED = "orders:updated"
ORDERS_DELETED = "orders:deleted"
PRODUCTS_CREATED = "products:created"
PRODUCTS_UPDATED = "products:updated"
PRODUCTS_DELETED = "products:deleted"
DEMANDS_CREATED = "demands:created"
DEMANDS_UPDATED = "demands:updated"
NOTIFICATIONS_PUSH = "notifications:push"
VENDORS_PRESENCE = "vendors:presence"


def publish(event_type: str, payload: dict | None = None, *, principal=None) -> NotificationEvent | None:
    """
    Append an event to the outbox.

    Returns the stored event, or None when storing failed.
    """
    actor_type, actor_id = actor_of(principal)
    try:
        event = NotificationEvent(
            event_type=event_type,
            payload=payload or {},
            actor_type=actor_type,
            actor_id=actor_id,
            created_at=utcnow(),
        )
        db.session.add(event)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.warning("Failed to publish %s event", event_type, exc_info=True)
        return None
    return event


def push(message: str, *, level: str = "info", principal=None, **extra) -> NotificationEvent | None:
    """User-facing toast-style notification."""
    payload = {"message": message, "level": level}
    payload.update(extra)
    return publish(NOTIFICATIONS_PUSH, payload, principal=principal)


def events_after(after_id: int = 0, *, limit: int = 100) -> list[NotificationEvent]:
    query = db.session.query(NotificationEvent).filter(NotificationEvent.id > after_id)
    return query.order_by(NotificationEvent.id.asc()).limit(limit).all()


def visible_to(event: NotificationEvent, principal) -> bool:
    """
    Staff see every event. Vendors see catalogue events and events about
    their own orders; clients see catalogue events and their own demands.
    """
    from ..principals import ClientPrincipal, VendorPrincipal

    if event.event_type.startswith("products:"):
        return True
    payload = event.payload or {}
    if isinstance(principal, VendorPrincipal):
        return payload.get("vendor_id") == principal.vendor.id
    if isinstance(principal, ClientPrincipal):
        return payload.get("user_id") == principal.user.id
    return True


def latest_event_id() -> int:
    return db.session.query(db.func.max(NotificationEvent.id)).scalar() or 0


def cleanup_old_events(*, retention_days: int) -> int:
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = (
        db.session.query(NotificationEvent)
        .filter(NotificationEvent.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
