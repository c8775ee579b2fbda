# Overview: Outbound WhatsApp Cloud API client (text messages).

from __future__ import annotations

import re

import httpx
from flask import current_app


class WhatsAppError(Exception):
    """Base class for WhatsApp delivery problems."""

    def __init__(self, message: str, *, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class WhatsAppNotConfiguredError(WhatsAppError):
    """WHATSAPP_TOKEN or WHATSAPP_PHONE_NUMBER_ID missing."""
    pass


class WhatsAppDeliveryError(WhatsAppError):
    """The API refused the message or could not be reached."""
    pass


def normalize_phone(phone: str) -> str:
    """Digits only, as the Cloud API expects."""
    return re.sub(r"\D", "", phone or "")


def is_configured() -> bool:
    cfg = current_app.config
    return bool(cfg.get("WHATSAPP_TOKEN") and cfg.get("WHATSAPP_PHONE_NUMBER_ID"))


def send_text(to: str, body: str) -> dict:
    """
    Send a text message. Returns the API's JSON response.

    Connection failures and 5xx answers are retried up to
    WHATSAPP_MAX_ATTEMPTS; a 4xx answer fails immediately.
    """
    cfg = current_app.config
    if not is_configured():
        raise WhatsAppNotConfiguredError("WhatsApp not configured (missing env)")

    recipient = normalize_phone(to)
    if len(recipient) < 5:
        raise WhatsAppDeliveryError("Invalid recipient phone number")

    url = f"{cfg['WHATSAPP_API_BASE'].rstrip('/')}/{cfg['WHATSAPP_PHONE_NUMBER_ID']}/messages"
    payload = {
        "messaging_product": "whatsapp",
        "to": recipient,
        "type": "text",
        "text": {"body": body},
    }
    headers = {
        "Authorization": f"Bearer {cfg['WHATSAPP_TOKEN']}",
        "Content-Type": "application/json",
    }
    attempts = max(int(cfg.get("WHATSAPP_MAX_ATTEMPTS", 2)), 1)
    timeout = cfg.get("WHATSAPP_TIMEOUT_SECONDS", 15)

    last_error: WhatsAppDeliveryError | None = None
    for attempt in range(1, attempts + 1):
        try:
            response = httpx.post(url, json=payload, headers=headers, timeout=timeout)
        except httpx.HTTPError as exc:
            current_app.logger.warning("WhatsApp send attempt %d/%d failed: %s", attempt, attempts, exc)
            last_error = WhatsAppDeliveryError("WhatsApp send failed", details=str(exc))
            continue

        if 200 <= response.status_code < 300:
            try:
                return response.json()
            except ValueError:
                return {}

        try:
            details = response.json()
        except ValueError:
            details = response.text
        last_error = WhatsAppDeliveryError("WhatsApp send failed", details=details)
        current_app.logger.warning(
            "WhatsApp send attempt %d/%d returned HTTP %s", attempt, attempts, response.status_code
        )
        if response.status_code < 500:
            break

    raise last_error
