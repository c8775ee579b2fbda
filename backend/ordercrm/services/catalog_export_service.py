# Overview: Catalogue export for outside consumers (webhook push, keyed share, public list).

"""
Three ways out for the product catalogue, all built from the same snapshot:

- send_to_webhook: an admin pushes the snapshot as JSON to an external URL
  (request body or EXTERNAL_PRODUCTS_WEBHOOK_URL).
- the share endpoint: outsiders pull the snapshot with EXTERNAL_PRODUCTS_API_KEY.
- the public endpoint: anyone pulls the visible catalogue, no key needed.

Stock in a snapshot is the reported figure from reconciliation_service
(stored stock, or confirmed orders when none is stored).
"""

from __future__ import annotations

import hmac

import httpx
from flask import current_app

from ..extensions import db
from ..models import Product
from ordercrm.time_utils import to_utc_z, utcnow
from . import reconciliation_service as recon


MAX_EXPORT_LIMIT = 5000
DEFAULT_PULL_LIMIT = 1000
PREVIEW_SIZE = 5


class CatalogExportError(Exception):
    """Export could not be delivered; `status` is the HTTP status to answer with."""

    def __init__(self, message: str, status: int, *, data=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data


def clamp_limit(raw, *, default: int, minimum: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        value = default
    if value <= 0 and minimum > 0:
        value = default
    return min(max(value, minimum), MAX_EXPORT_LIMIT)


def snapshot(*, include_hidden: bool, limit: int) -> dict:
    """Active products, most recently updated first. limit 0 means no cap."""
    query = db.session.query(Product).filter(Product.is_active.is_(True))
    if not include_hidden:
        query = query.filter(Product.visible_to_clients.is_(True))
    query = query.order_by(Product.updated_at.desc(), Product.id.desc())
    if limit > 0:
        query = query.limit(limit)
    products = query.all()

    stock = recon.effective_stock(products)
    rows = [p.to_dict(include_commercial=True, stock=stock.get(p.id)) for p in products]
    return {
        "products": rows,
        "meta": {
            "exported_at": to_utc_z(utcnow()),
            "total": len(rows),
            "include_hidden": include_hidden,
            "limit": limit,
            "limited": limit > 0 and len(rows) >= limit,
        },
    }


def api_key_matches(provided: str | None) -> bool:
    """Raises CatalogExportError(503) when no key is configured."""
    expected = (current_app.config.get("EXTERNAL_PRODUCTS_API_KEY") or "").strip()
    if not expected:
        raise CatalogExportError("External products API key is not configured on the server.", 503)
    provided = (provided or "").strip()
    return bool(provided) and hmac.compare_digest(provided, expected)


def send_to_webhook(*, target_url=None, include_hidden: bool = True, dry_run: bool = False, limit=0) -> dict:
    """
    POST the catalogue snapshot to an external URL.

    A dry run builds the snapshot without sending it. A non-2xx answer or
    a transport failure raises CatalogExportError(502).
    """
    destination = (target_url or current_app.config.get("EXTERNAL_PRODUCTS_WEBHOOK_URL") or "").strip()
    if not destination and not dry_run:
        raise CatalogExportError(
            "Provide target_url in the request body or configure EXTERNAL_PRODUCTS_WEBHOOK_URL.",
            400,
        )

    payload = snapshot(include_hidden=include_hidden, limit=clamp_limit(limit, default=0, minimum=0))
    result = {
        "meta": payload["meta"],
        "remote_response": None,
        "destination_url": None if dry_run else destination,
        "preview": payload["products"][:PREVIEW_SIZE],
    }
    if dry_run:
        return result

    timeout = current_app.config.get("EXTERNAL_PRODUCTS_WEBHOOK_TIMEOUT_SECONDS", 10)
    try:
        response = httpx.post(
            destination,
            json=payload,
            headers={"User-Agent": "ordercrm-products-export/1.0"},
            timeout=timeout,
        )
    except httpx.TimeoutException:
        current_app.logger.warning("Catalogue export to %s timed out", destination)
        raise CatalogExportError(
            "Timed out while contacting external app", 502, data={"destination_url": destination}
        )
    except httpx.HTTPError as exc:
        current_app.logger.warning("Catalogue export to %s failed: %s", destination, exc)
        raise CatalogExportError(
            "Failed to contact external app", 502, data={"destination_url": destination}
        )

    try:
        body = response.json()
    except ValueError:
        body = response.text
    remote = {"status": response.status_code, "ok": response.is_success, "body": body}

    if not response.is_success:
        raise CatalogExportError(
            f"External app responded with status {response.status_code}",
            502,
            data={"remote_response": remote, "destination_url": destination},
        )

    current_app.logger.info(
        "Catalogue export sent %d product(s) to %s", payload["meta"]["total"], destination
    )
    result["remote_response"] = remote
    return result
