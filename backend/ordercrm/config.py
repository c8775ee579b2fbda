# backend/ordercrm/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/ordercrm.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///ordercrm.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Uploaded images and generated reports, served under /upload
    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER")  # None -> <instance>/upload
    MAX_CONTENT_LENGTH = 5 * 1024 * 1024
    ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp"}

    # bcrypt cost factor; tests lower it
    BCRYPT_LOG_ROUNDS = _env_int("BCRYPT_LOG_ROUNDS", 12)

    SESSION_ABSOLUTE_TIMEOUT_HOURS = _env_int("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24)
    SESSION_IDLE_TIMEOUT_HOURS = _env_int("SESSION_IDLE_TIMEOUT_HOURS", 24)

    CORS_ALLOWED_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000",
        ).split(",")
        if o.strip()
    ]

    # WhatsApp Cloud API (demand reports)
    WHATSAPP_TOKEN = os.environ.get("WHATSAPP_TOKEN")
    WHATSAPP_PHONE_NUMBER_ID = os.environ.get("WHATSAPP_PHONE_NUMBER_ID")
    WHATSAPP_API_BASE = os.environ.get("WHATSAPP_API_BASE", "https://graph.facebook.com/v19.0")
    WHATSAPP_TIMEOUT_SECONDS = _env_int("WHATSAPP_TIMEOUT_SECONDS", 15)
    WHATSAPP_MAX_ATTEMPTS = _env_int("WHATSAPP_MAX_ATTEMPTS", 2)
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "")

    # Push channel
    NOTIFICATION_RETENTION_DAYS = _env_int("NOTIFICATION_RETENTION_DAYS", 7)
    EVENT_STREAM_POLL_SECONDS = _env_int("EVENT_STREAM_POLL_SECONDS", 2)
    EVENT_STREAM_MAX_SECONDS = _env_int("EVENT_STREAM_MAX_SECONDS", 60)

    # Catalogue export: webhook push and API-key protected share endpoint
    EXTERNAL_PRODUCTS_WEBHOOK_URL = os.environ.get("EXTERNAL_PRODUCTS_WEBHOOK_URL")
    EXTERNAL_PRODUCTS_WEBHOOK_TIMEOUT_SECONDS = _env_int("EXTERNAL_PRODUCTS_WEBHOOK_TIMEOUT_SECONDS", 10)
    EXTERNAL_PRODUCTS_API_KEY = os.environ.get("EXTERNAL_PRODUCTS_API_KEY", "")

    # Spreadsheet imports (products and invoices)
    ALLOWED_IMPORT_EXTENSIONS = {"xlsx", "xlsm", "csv"}
