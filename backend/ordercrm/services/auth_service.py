# Overview: Service-layer operations for auth; password hashing and credential checks.

"""
Authentication Service

Users and vendors are two independent identity kinds. Both store bcrypt
hashes (cost factor 12) and are verified with bcrypt.checkpw, which is
timing-safe.

Inactive users presenting valid credentials are reactivated at login. That
is a deliberate self-service recovery path, not an error condition.
Vendors have no such path: an inactive vendor cannot log in.
"""

import bcrypt
import re
import secrets
from flask import current_app
from ..extensions import db
from ..models import User, Vendor, USER_ROLES
from ordercrm.time_utils import utcnow


MIN_PASSWORD_LENGTH = 6
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.\-]{3,30}$")


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UsernameValidationError(Exception):
    """Raised when a username is malformed."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 6 characters
    - At most 72 bytes once UTF-8 encoded
    - Not only whitespace

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise PasswordValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")

    if not password.strip():
        raise PasswordValidationError("Password cannot be blank")


def validate_username(username: str) -> str:
    username = (username or "").strip()
    if not USERNAME_RE.match(username):
        raise UsernameValidationError(
            "Username must be 3-30 characters (letters, digits, '.', '_' or '-')"
        )
    return username


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt (cost factor BCRYPT_LOG_ROUNDS, 12 by default).

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_LOG_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Verify password against bcrypt hash."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash or over-long password
        return False


def generate_password(length: int = 12) -> str:
    """Random password for provisioned accounts; shown to the admin once."""
    return secrets.token_urlsafe(length)[:length]


def authenticate_user(username: str, password: str) -> User | None:
    """
    Check user credentials regardless of the active flag.

    Returns User if credentials are valid, None otherwise. Callers decide
    what to do with an inactive account (see login_user).
    """
    user = db.session.query(User).filter(User.username == username).first()
    if not user:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def login_user(username: str, password: str) -> tuple[User | None, bool]:
    """
    Authenticate and, for a valid inactive account, reactivate it.

    Returns (user, reactivated). Updates last_login_at on success.
    Does not commit.
    """
    user = authenticate_user(username, password)
    if not user:
        return None, False

    reactivated = False
    if not user.is_active:
        user.is_active = True
        reactivated = True

    user.last_login_at = utcnow()
    return user, reactivated


def authenticate_vendor(username: str, password: str) -> Vendor | None:
    """Vendor credential check; inactive vendors never authenticate."""
    vendor = db.session.query(Vendor).filter(
        Vendor.username == username,
        Vendor.is_active.is_(True),
    ).first()
    if not vendor:
        return None
    if not verify_password(password, vendor.password_hash):
        return None
    vendor.last_online_at = utcnow()
    return vendor


def create_user(*, username: str, password: str, role: str = "client", is_active: bool = True) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        UsernameValidationError: malformed username
        PasswordValidationError: weak password
        ValueError: unknown role or duplicate username
    """
    username = validate_username(username)
    if role not in USER_ROLES:
        raise ValueError(f"Invalid role: {role}")

    existing = db.session.query(User).filter(User.username == username).first()
    if existing:
        raise ValueError("Username already exists")

    user = User(
        username=username,
        password_hash=hash_password(password),
        role=role,
        is_active=is_active,
    )
    db.session.add(user)
    db.session.flush()
    return user
