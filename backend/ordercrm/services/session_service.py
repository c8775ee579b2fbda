# Overview: Service-layer operations for session tokens.

"""
Session Token Management Service

Tokens are cryptographically secure, hashed in the database, and
time-limited. A session belongs to exactly one principal: a User or a
Vendor. The principal kind and role are captured at login and are
immutable for the session lifetime.

SECURITY FEATURES:
- 32 bytes of randomness per token (secrets.token_hex)
- Tokens hashed with SHA-256 before storage
- Absolute timeout (SESSION_ABSOLUTE_TIMEOUT_HOURS)
- Idle timeout (SESSION_IDLE_TIMEOUT_HOURS)
- Revocable on logout, deactivation and credential changes
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, User, Vendor
from ordercrm.time_utils import utcnow


@dataclass
class SessionContext:
    """Validated session plus the live principal row it points to."""
    session: SessionToken
    user: User | None
    vendor: Vendor | None


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_TIMEOUT_HOURS", 24))


def generate_token() -> str:
    """64-character hex string; the plaintext is never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    Tokens are already high-entropy, so a fast hash is sufficient.
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    *,
    user: User | None = None,
    vendor: Vendor | None = None,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a session for a user or a vendor (exactly one).

    Returns (session_record, plaintext_token). Commits.
    """
    if (user is None) == (vendor is None):
        raise ValueError("Exactly one of user or vendor is required")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        principal_type="user" if user is not None else "vendor",
        user_id=user.id if user is not None else None,
        vendor_id=vendor.id if vendor is not None else None,
        role=user.role if user is not None else "vendor",
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if:
    - Token is invalid, expired, or revoked
    - The user or vendor is deactivated

    Updates last_used_at on successful validation.
    """
    token_hash = hash_token(token)
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=token_hash,
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        return None

    user = None
    vendor = None
    if session.principal_type == "vendor":
        vendor = session.vendor
        if not vendor or not vendor.is_active:
            _revoke(session, "Vendor deactivated")
            return None
    else:
        user = session.user
        if not user or not user.is_active:
            _revoke(session, "User account deactivated")
            return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(session=session, user=user, vendor=vendor)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns True if a live session was revoked, False if not found."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    return True


def revoke_principal_sessions(*, user_id: int | None = None, vendor_id: int | None = None, reason: str) -> int:
    """
    Revoke all live sessions for a user or vendor. Does not commit.

    Used after deactivation and credential changes.
    """
    query = db.session.query(SessionToken).filter(SessionToken.is_revoked.is_(False))
    if user_id is not None:
        query = query.filter(SessionToken.user_id == user_id)
    elif vendor_id is not None:
        query = query.filter(SessionToken.vendor_id == vendor_id)
    else:
        return 0

    now = utcnow()
    count = 0
    for session in query.all():
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
        count += 1
    return count


def cleanup_expired_sessions(*, retention_days: int = 30) -> int:
    """Delete expired or revoked sessions older than the retention window."""
    now = utcnow()
    cutoff = now - timedelta(days=retention_days)

    deleted = db.session.query(SessionToken).filter(
        db.or_(
            SessionToken.expires_at < now,
            SessionToken.is_revoked.is_(True)
        ),
        SessionToken.created_at < cutoff
    ).delete(synchronize_session=False)

    db.session.commit()
    return deleted
