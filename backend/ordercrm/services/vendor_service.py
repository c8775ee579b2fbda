# Overview: Service-layer operations for vendors; encapsulates business logic and database work.

"""
Vendor Service

Vendors are supplying businesses with their own login. Admins provision
them: the username is derived from the vendor name and the password is
generated, hashed at rest, and handed back to the admin exactly once.

Each vendor gets a linked vendor-role User with the same credentials, so a
vendor can sign in through either login endpoint. Credential changes and
deactivation are applied to both rows.
"""

from __future__ import annotations

import re
import secrets
from datetime import timedelta

from sqlalchemy import or_

from ..extensions import db
from ..models import Order, User, Vendor
from ..validation import ModelValidationPolicy, ValidationError, validate_payload
from ordercrm.time_utils import utcnow
from . import auth_service
from . import session_service


# A heartbeat within this window counts as online
ONLINE_WINDOW = timedelta(minutes=2)

VENDOR_STATUSES = ("active", "inactive")

ADMIN_POLICY = ModelValidationPolicy(
    writable_fields={"name", "contact_person", "email", "phone", "address", "city", "country", "status"},
    required_on_create={"name"},
)

SELF_SERVICE_POLICY = ModelValidationPolicy(
    writable_fields={"contact_person", "phone", "address", "city", "country"},
)


class VendorNotFoundError(Exception):
    """Raised when a vendor is not found."""
    pass


class VendorValidationError(Exception):
    """Raised when vendor data fails validation (duplicate email or username)."""
    pass


class VendorAccessError(Exception):
    """Raised when a vendor reaches for another vendor's data."""
    pass


def _validate(payload: dict, policy: ModelValidationPolicy, *, partial: bool) -> dict:
    patch = validate_payload(model=Vendor, payload=payload, policy=policy, partial=partial)
    status = patch.get("status")
    if status is not None and status not in VENDOR_STATUSES:
        raise ValidationError("Invalid status", field="status")
    email = patch.get("email")
    if email and "@" not in email:
        raise ValidationError("Valid email is required", field="email")
    return patch


def _ensure_email_free(email: str | None, *, exclude_id: int | None = None) -> None:
    if not email:
        return
    query = db.session.query(Vendor.id).filter(Vendor.email == email)
    if exclude_id is not None:
        query = query.filter(Vendor.id != exclude_id)
    if query.first():
        raise VendorValidationError("Email already exists")


def _username_taken(username: str, *, vendor: Vendor | None = None) -> bool:
    vendor_query = db.session.query(Vendor.id).filter(Vendor.username == username)
    user_query = db.session.query(User.id).filter(User.username == username)
    if vendor is not None:
        vendor_query = vendor_query.filter(Vendor.id != vendor.id)
        if vendor.user_id:
            user_query = user_query.filter(User.id != vendor.user_id)
    return bool(vendor_query.first() or user_query.first())


def generate_username(name: str) -> str:
    """lowercased name, underscores for spaces, 20 chars max, plus a 4-digit suffix."""
    base = re.sub(r"[^a-z0-9\s]", "", name.lower())
    base = re.sub(r"\s+", "_", base.strip())[:20] or "vendor"
    while True:
        candidate = f"{base}_{secrets.randbelow(10000):04d}"
        if not _username_taken(candidate):
            return candidate


def get_vendor(vendor_id: int, *, include_inactive: bool = False) -> Vendor:
    vendor = db.session.get(Vendor, vendor_id)
    if not vendor or (not include_inactive and not vendor.is_active):
        raise VendorNotFoundError("Vendor not found")
    return vendor


def get_vendor_for(vendor_id: int, principal) -> Vendor:
    """Any principal may read a vendor; vendors only themselves."""
    from ..principals import VendorPrincipal

    if isinstance(principal, VendorPrincipal) and principal.vendor.id != vendor_id:
        raise VendorAccessError("Access denied. You can only view your own profile.")
    return get_vendor(vendor_id)


def list_vendors(
    *,
    search: str | None = None,
    status: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Vendor], int]:
    query = db.session.query(Vendor).filter(Vendor.is_active.is_(True))
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Vendor.name.ilike(pattern),
                Vendor.contact_person.ilike(pattern),
                Vendor.email.ilike(pattern),
            )
        )
    if status:
        query = query.filter(Vendor.status == status)

    total = query.count()
    vendors = (
        query.order_by(Vendor.created_at.desc(), Vendor.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return vendors, total


def create_vendor(payload: dict) -> tuple[Vendor, str]:
    """
    Provision a vendor and its linked vendor-role user.

    Returns (vendor, plaintext_password). The password is not recoverable
    afterwards.
    """
    patch = _validate(payload, ADMIN_POLICY, partial=False)
    _ensure_email_free(patch.get("email"))

    username = generate_username(patch["name"])
    password = auth_service.generate_password()
    password_hash = auth_service.hash_password(password)

    user = User(username=username, password_hash=password_hash, role="vendor", is_active=True)
    db.session.add(user)
    db.session.flush()

    status = patch.pop("status", None) or "active"
    vendor = Vendor(
        username=username,
        password_hash=password_hash,
        user_id=user.id,
        status=status,
        is_active=True,
        **patch,
    )
    db.session.add(vendor)
    db.session.commit()
    return vendor, password


def update_vendor(vendor_id: int, payload: dict) -> Vendor:
    vendor = get_vendor(vendor_id)
    patch = _validate(payload, ADMIN_POLICY, partial=True)
    if "email" in patch:
        _ensure_email_free(patch["email"], exclude_id=vendor.id)
    for key, value in patch.items():
        setattr(vendor, key, value)
    db.session.commit()
    return vendor


def update_own_profile(vendor: Vendor, payload: dict) -> Vendor:
    """Vendor self-service: contact fields only."""
    patch = _validate(payload, SELF_SERVICE_POLICY, partial=True)
    errors = [
        {"field": key, "message": f"{key} cannot be empty"}
        for key, value in patch.items()
        if value is None
    ]
    if errors:
        raise ValidationError("Validation failed", errors=errors)
    for key, value in patch.items():
        setattr(vendor, key, value)
    db.session.commit()
    return vendor


def deactivate_vendor(vendor_id: int) -> Vendor:
    """Soft delete the vendor and its linked user; their sessions end."""
    vendor = get_vendor(vendor_id, include_inactive=True)
    vendor.is_active = False
    vendor.last_online_at = None
    session_service.revoke_principal_sessions(vendor_id=vendor.id, reason="Vendor deactivated")
    if vendor.user is not None:
        vendor.user.is_active = False
        session_service.revoke_principal_sessions(user_id=vendor.user.id, reason="Vendor deactivated")
    db.session.commit()
    return vendor


def update_credentials(vendor_id: int, *, username: str | None = None, password: str | None = None) -> Vendor:
    """Change a vendor's username and/or password (kept in sync with its user)."""
    vendor = get_vendor(vendor_id)
    if not username and not password:
        raise ValidationError("No valid updates provided")

    if username:
        try:
            username = auth_service.validate_username(username)
        except auth_service.UsernameValidationError as exc:
            raise ValidationError(str(exc), field="username")
        if username != vendor.username and _username_taken(username, vendor=vendor):
            raise VendorValidationError("Username is already taken")
        vendor.username = username
        if vendor.user is not None:
            vendor.user.username = username

    if password:
        try:
            password_hash = auth_service.hash_password(password)
        except auth_service.PasswordValidationError as exc:
            raise ValidationError(str(exc), field="password")
        vendor.password_hash = password_hash
        if vendor.user is not None:
            vendor.user.password_hash = password_hash
        session_service.revoke_principal_sessions(vendor_id=vendor.id, reason="Credentials changed")
        if vendor.user_id:
            session_service.revoke_principal_sessions(user_id=vendor.user_id, reason="Credentials changed")

    db.session.commit()
    return vendor


# ---------------------------------------------------------------------------
# Presence / read tracking
# ---------------------------------------------------------------------------

def heartbeat(vendor: Vendor) -> Vendor:
    vendor.last_online_at = utcnow()
    db.session.commit()
    return vendor


def go_offline(vendor: Vendor) -> Vendor:
    vendor.last_online_at = None
    db.session.commit()
    return vendor


def mark_orders_read(vendor: Vendor) -> Vendor:
    vendor.last_orders_read_at = utcnow()
    db.session.commit()
    return vendor


def unread_order_count(vendor: Vendor) -> int:
    """Active orders for the vendor updated after it last read its orders."""
    query = db.session.query(Order).filter(
        Order.vendor_id == vendor.id,
        Order.is_active.is_(True),
    )
    if vendor.last_orders_read_at is not None:
        query = query.filter(Order.updated_at > vendor.last_orders_read_at)
    return query.count()


def is_online(vendor: Vendor) -> bool:
    return bool(vendor.last_online_at and utcnow() - vendor.last_online_at <= ONLINE_WINDOW)


def presence() -> list[dict]:
    vendors = (
        db.session.query(Vendor)
        .filter(Vendor.is_active.is_(True))
        .order_by(Vendor.name.asc())
        .all()
    )
    return [
        {
            **vendor.to_summary(),
            "last_online_at": vendor.to_dict()["last_online_at"],
            "last_orders_read_at": vendor.to_dict()["last_orders_read_at"],
            "online": is_online(vendor),
        }
        for vendor in vendors
    ]
