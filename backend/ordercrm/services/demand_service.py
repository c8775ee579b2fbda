# Overview: Service-layer operations for client demands, demand reports and WhatsApp recipients.

"""
Demands are a client's request for a quantity of a product. Admins confirm
or reject them; confirming takes the quantity out of stock (DEMAND flow in
reconciliation_service) and leaving confirmed puts it back.

A demand report bundles the same user's demands created close together
(bundle window, seconds either side), writes it as a small HTML page to the
upload folder and sends a WhatsApp text with the figures and the link.
"""

from __future__ import annotations

import os
import time
from datetime import timedelta

from flask import current_app
from markupsafe import escape

from ..extensions import db
from ..models import DEMAND_STATUSES, Demand, Product, WhatsAppRecipient
from ..validation import ValidationError, coerce_int
from ordercrm.time_utils import to_utc_z, utcnow
from . import reconciliation_service as recon
from . import whatsapp_service


DEFAULT_BUNDLE_WINDOW_SEC = 60
MAX_BUNDLE_WINDOW_SEC = 600
MAX_NOTES_LENGTH = 500


class DemandNotFoundError(Exception):
    pass


class RecipientNotFoundError(Exception):
    pass


def get_demand(demand_id: int) -> Demand:
    demand = db.session.get(Demand, demand_id)
    if not demand:
        raise DemandNotFoundError("Demand not found")
    return demand


def create_demand(data: dict, *, user_id: int) -> Demand:
    data = data or {}
    errors = []

    product_id = None
    try:
        product_id = coerce_int("product_id", data.get("product_id"))
    except ValidationError:
        errors.append({"field": "product_id", "message": "Valid product_id is required"})

    quantity = 1
    if data.get("quantity") is not None:
        try:
            quantity = coerce_int("quantity", data["quantity"])
        except ValidationError:
            quantity = 0
        if quantity < 1:
            errors.append({"field": "quantity", "message": "quantity must be >= 1"})

    notes = data.get("notes")
    if notes is not None:
        if not isinstance(notes, str):
            errors.append({"field": "notes", "message": "notes must be a string"})
        elif len(notes) > MAX_NOTES_LENGTH:
            errors.append({"field": "notes", "message": "notes too long"})
        else:
            notes = notes.strip() or None

    if errors:
        raise ValidationError("Validation failed", errors=errors)

    product = db.session.get(Product, product_id)
    if not product or not product.is_active:
        raise DemandNotFoundError("Product not found")

    now = utcnow()
    demand = Demand(
        product_id=product.id,
        user_id=user_id,
        quantity=quantity,
        notes=notes,
        status="pending",
        stock_adjusted=False,
        created_at=now,
        updated_at=now,
    )
    db.session.add(demand)
    db.session.commit()
    return demand


def list_demands() -> list[Demand]:
    return db.session.query(Demand).order_by(Demand.created_at.desc(), Demand.id.desc()).all()


def list_user_demands(user_id: int) -> list[Demand]:
    return (
        db.session.query(Demand)
        .filter(Demand.user_id == user_id)
        .order_by(Demand.created_at.desc(), Demand.id.desc())
        .all()
    )


def confirmed_for_product(product_id: int) -> list[Demand]:
    return (
        db.session.query(Demand)
        .filter(Demand.product_id == product_id, Demand.status == "confirmed")
        .order_by(Demand.created_at.desc(), Demand.id.desc())
        .all()
    )


def update_status(demand_id: int, status) -> Demand:
    """
    Move a demand between pending / confirmed / rejected; stock follows
    entering or leaving confirmed. One transaction.
    """
    if status not in DEMAND_STATUSES:
        raise ValidationError("Invalid status", field="status")

    demand = get_demand(demand_id)
    previous = demand.status
    if status == "confirmed" and previous != "confirmed":
        product = db.session.get(Product, demand.product_id)
        if not product or not product.is_active:
            raise DemandNotFoundError("Product not found")

    demand.status = status
    demand.updated_at = utcnow()
    db.session.flush()
    recon.reconcile_demand_transition(demand, previous)
    db.session.commit()
    return demand


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def parse_bundle_window(raw) -> int:
    if raw is None or raw == "":
        return DEFAULT_BUNDLE_WINDOW_SEC
    window = coerce_int("bundle_window_sec", raw)
    if window < 0 or window > MAX_BUNDLE_WINDOW_SEC:
        raise ValidationError(
            f"bundle_window_sec must be between 0 and {MAX_BUNDLE_WINDOW_SEC}",
            field="bundle_window_sec",
        )
    return window


def bundle_for_report(demand: Demand, *, window_sec: int = DEFAULT_BUNDLE_WINDOW_SEC) -> list[Demand]:
    """The same user's demands created within window_sec of this one."""
    window = timedelta(seconds=window_sec)
    nearby = (
        db.session.query(Demand)
        .filter(
            Demand.user_id == demand.user_id,
            Demand.created_at >= demand.created_at - window,
            Demand.created_at <= demand.created_at + window,
        )
        .order_by(Demand.created_at.asc(), Demand.id.asc())
        .all()
    )
    return nearby or [demand]


def _format_cents(cents: int) -> str:
    return f"${cents / 100:,.2f}"


def report_lines(demand: Demand, bundle: list[Demand]) -> list[str]:
    rows = []
    total = 0
    for entry in bundle:
        product = entry.product
        price = (product.selling_price_cents or 0) if product else 0
        total += price * entry.quantity
        item_number = product.item_number if product else ""
        name = product.name if product else ""
        rows.append(f"- {item_number} | {name} | x{entry.quantity} | {_format_cents(price)}")

    username = demand.user.username if demand.user else str(demand.user_id)
    return [
        "Demand Report",
        f"Date: {to_utc_z(demand.created_at)}",
        f"User: {username}",
        "",
        "Items:",
        *rows,
        "",
        f"Total (est): {_format_cents(total)}",
        f"Notes: {demand.notes or '-'}",
    ]


def write_report(demand: Demand, lines: list[str]) -> str:
    """Write the HTML report into the upload folder; returns its public URL."""
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    filename = f"demand_{demand.id}_{int(time.time() * 1000)}.html"
    body = "\n".join(str(escape(line)) for line in lines)
    html = (
        '<!DOCTYPE html><html><head><meta charset="utf-8"><title>Demand Report</title></head>'
        '<body><pre style="font-family: system-ui, sans-serif; white-space: pre-wrap;">'
        f"{body}</pre></body></html>"
    )
    with open(os.path.join(folder, filename), "w", encoding="utf-8") as fh:
        fh.write(html)

    base_url = (current_app.config.get("PUBLIC_BASE_URL") or "").rstrip("/")
    return f"{base_url}/upload/{filename}"


def send_report(demand_id: int, *, recipient_phone, bundle_window_sec=None) -> dict:
    """
    Build and send a demand report. Raises whatsapp_service errors when
    the message cannot be delivered; the written report stays in place.
    """
    phone = str(recipient_phone or "").strip()
    if len(phone) < 5:
        raise ValidationError("recipient_phone is required", field="recipient_phone")
    window = parse_bundle_window(bundle_window_sec)

    demand = get_demand(demand_id)
    bundle = bundle_for_report(demand, window_sec=window)
    lines = report_lines(demand, bundle)
    report_url = write_report(demand, lines)

    message = "\n".join(lines) + f"\n\nReport link: {report_url}"
    whatsapp_service.send_text(phone, message)
    current_app.logger.info("Demand report for demand %s sent (%d item(s))", demand.id, len(bundle))
    return {"report_url": report_url, "demand_ids": [d.id for d in bundle]}


# ---------------------------------------------------------------------------
# Recipients
# ---------------------------------------------------------------------------

def list_recipients() -> list[WhatsAppRecipient]:
    return (
        db.session.query(WhatsAppRecipient)
        .order_by(WhatsAppRecipient.created_at.desc(), WhatsAppRecipient.id.desc())
        .all()
    )


def create_recipient(data: dict) -> WhatsAppRecipient:
    data = data or {}
    phone = str(data.get("phone") or "").strip()
    name = str(data.get("name") or "").strip()
    errors = []
    if len(phone) < 5:
        errors.append({"field": "phone", "message": "Phone is required"})
    elif len(phone) > 32:
        errors.append({"field": "phone", "message": "Phone too long"})
    if len(name) > 100:
        errors.append({"field": "name", "message": "Name too long"})
    if errors:
        raise ValidationError("Validation failed", errors=errors)

    recipient = WhatsAppRecipient(phone=phone, name=name, created_at=utcnow())
    db.session.add(recipient)
    db.session.commit()
    return recipient


def delete_recipient(recipient_id: int) -> None:
    recipient = db.session.get(WhatsAppRecipient, recipient_id)
    if not recipient:
        raise RecipientNotFoundError("Recipient not found")
    db.session.delete(recipient)
    db.session.commit()
