# Overview: Flask API routes for the push channel (polling and server-sent events).

# backend/ordercrm/routes/notifications.py
"""
Push channel.

Clients either poll GET /api/notifications?after_id=N or hold open
GET /api/notifications/stream. Both read the notification_events outbox in
id order and only return events the caller is allowed to see. The stream
closes after EVENT_STREAM_MAX_SECONDS; EventSource reconnects with
Last-Event-ID and picks up where it stopped.
"""

import json
import time

from flask import Blueprint, Response, request, g, current_app, stream_with_context

from ..decorators import require_auth
from ..extensions import db
from ..responses import error_response, success_response
from ..services import notification_service
from ..validation import ValidationError, coerce_int


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")

MAX_BATCH = 200


def _parse_after_id(raw) -> int | None:
    if raw is None or str(raw).strip() == "":
        return None
    value = coerce_int("after_id", raw)
    if value < 0:
        raise ValidationError("after_id must be >= 0", field="after_id")
    return value


def _visible_events(after_id: int, limit: int, principal) -> tuple[list, int]:
    """Return (visible events, id of the last event scanned)."""
    events = notification_service.events_after(after_id, limit=limit)
    last_id = events[-1].id if events else after_id
    return [e for e in events if notification_service.visible_to(e, principal)], last_id


def _format_sse(event) -> str:
    data = json.dumps(event.to_dict(), separators=(",", ":"))
    return f"id: {event.id}\nevent: {event.event_type}\ndata: {data}\n\n"


@notifications_bp.get("")
@require_auth
def list_events_route():
    """
    Query params:
    - after_id: int (default 0)
    - limit: int (1-200, default 100)

    latest_id is the cursor to send as after_id on the next poll.
    """
    try:
        after_id = _parse_after_id(request.args.get("after_id")) or 0
        limit = coerce_int("limit", request.args.get("limit", 100))
    except ValidationError as e:
        return error_response(e.message, 400, errors=e.errors)
    limit = max(1, min(limit, MAX_BATCH))

    events, last_id = _visible_events(after_id, limit, g.principal)
    return success_response(
        {
            "events": [e.to_dict() for e in events],
            "latest_id": last_id,
        }
    )


@notifications_bp.get("/stream")
@require_auth
def stream_events_route():
    """Server-sent events. Resumes from after_id or the Last-Event-ID header."""
    try:
        after_id = _parse_after_id(request.args.get("after_id"))
        if after_id is None:
            after_id = _parse_after_id(request.headers.get("Last-Event-ID"))
    except ValidationError as e:
        return error_response(e.message, 400, errors=e.errors)
    if after_id is None:
        after_id = notification_service.latest_event_id()

    principal = g.principal
    poll_seconds = max(1, current_app.config.get("EVENT_STREAM_POLL_SECONDS", 2))
    max_seconds = current_app.config.get("EVENT_STREAM_MAX_SECONDS", 60)

    def generate():
        cursor = after_id
        deadline = time.monotonic() + max_seconds
        yield f"retry: {poll_seconds * 1000}\n\n"
        while True:
            events, cursor = _visible_events(cursor, MAX_BATCH, principal)
            for event in events:
                yield _format_sse(event)
            # Release the connection between polls
            db.session.remove()
            if time.monotonic() >= deadline:
                break
            yield ": keep-alive\n\n"
            time.sleep(poll_seconds)

    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
