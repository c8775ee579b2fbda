from __future__ import annotations
from datetime import datetime
from ordercrm.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

MAX_PAGE_SIZE = 100


class ValidationError(ValueError):
    """
    400-level input problem.

    `errors` is a list of {"field", "message"} dicts so clients can render
    per-field problems; a bare message becomes a single field-less entry.
    """

    def __init__(self, message: str, *, field: str | None = None, errors: list[dict] | None = None):
        super().__init__(message)
        self.message = message
        if errors is None:
            errors = [{"field": field, "message": message}] if field else []
        self.errors = errors


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - ignore_unknown: drop unknown keys instead of rejecting them
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    ignore_unknown: bool = False


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(field: str, value: Any) -> int:
    """Strict integer parsing: rejects floats, bools and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field=field)
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field=field)
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field=field)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field=field)
    raise ValidationError(f"{field} must be an integer", field=field)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", field=col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", field=col.key)
            return dt
        raise ValidationError(f"{col.key} must be a datetime", field=col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    All field problems are collected before raising, so the client sees
    the whole list at once.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    errors: list[dict] = []

    required = policy.required_on_create or set()
    if not partial:
        for f in sorted(required):
            if f not in payload or payload[f] is None or (isinstance(payload[f], str) and not payload[f].strip()):
                errors.append({"field": f, "message": f"{f} is required"})

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            if policy.ignore_unknown:
                continue
            errors.append({"field": k, "message": f"Field not allowed: {k}"})
            continue
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                if not any(e["field"] == k for e in errors):
                    errors.append({"field": k, "message": f"{k} cannot be null"})
                continue
            patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValidationError as exc:
            errors.extend(exc.errors or [{"field": k, "message": exc.message}])
            continue

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and isinstance(val, str) and val == "":
            if not col.nullable:
                if not any(e["field"] == k for e in errors):
                    errors.append({"field": k, "message": f"{k} cannot be blank"})
                continue
            val = None

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                errors.append({"field": k, "message": f"{k} exceeds max length {col.type.length}"})
                continue

        patch[k] = val

    if errors:
        raise ValidationError("Validation failed", errors=errors)
    return patch


def enforce_money_fields(patch: dict, *fields: str) -> None:
    """Cents fields must be within 0..MAX_PRICE_CENTS when present."""
    for field in fields:
        value = patch.get(field)
        if value is None:
            continue
        if value < 0:
            raise ValidationError(f"{field} must be >= 0", field=field)
        if value > MAX_PRICE_CENTS:
            raise ValidationError(
                f"{field} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})",
                field=field,
            )


def validate_credentials_payload(data: dict | None) -> tuple[str, str]:
    """Login input rules: username >= 3 chars, password >= 6 chars."""
    data = data or {}
    username = str(data.get("username") or "").strip()
    password = data.get("password") or ""
    if not isinstance(password, str):
        password = str(password)

    errors = []
    if len(username) < 3:
        errors.append({"field": "username", "message": "Username must be at least 3 characters"})
    if len(password) < 6:
        errors.append({"field": "password", "message": "Password must be at least 6 characters"})
    if errors:
        raise ValidationError("Validation failed", errors=errors)
    return username, password


def parse_pagination(args, *, default_limit: int = 10) -> tuple[int, int]:
    """Read page/limit query params, clamped to sane bounds."""
    try:
        page = int(args.get("page", 1))
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(args.get("limit", default_limit))
    except (TypeError, ValueError):
        limit = default_limit
    return max(page, 1), min(max(limit, 1), MAX_PAGE_SIZE)


def parse_bool_arg(value: str | None) -> bool | None:
    if value is None or value == "":
        return None
    return value.strip().lower() in ("1", "true", "yes", "on")
