# Overview: Service-layer operations for staff and client accounts.

"""
User management for admins.

Users are never hard deleted. Deactivating a user, changing its role or
resetting its password revokes every live session, so the change applies on
the user's next request.
"""

from __future__ import annotations

from ..extensions import db
from ..models import USER_ROLES, User
from ..validation import ValidationError
from . import auth_service
from . import session_service


class UserNotFoundError(Exception):
    pass


class UserConflictError(Exception):
    """Username already taken."""
    pass


class UserStateError(Exception):
    """Requested change is not allowed for this account."""
    pass


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise UserNotFoundError("User not found")
    return user


def list_users(
    *,
    search: str | None = None,
    role: str | None = None,
    include_inactive: bool = False,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[User], int]:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    if role:
        query = query.filter(User.role == role)
    if search:
        query = query.filter(User.username.ilike(f"%{search.strip()}%"))

    total = query.count()
    users = query.order_by(User.username.asc()).offset((page - 1) * limit).limit(limit).all()
    return users, total


def _check_role(role) -> str:
    if role not in USER_ROLES:
        raise ValidationError(f"Role must be one of: {', '.join(USER_ROLES)}", field="role")
    return role


def create_user(data: dict) -> User:
    data = data or {}
    role = _check_role(data.get("role") or "client")
    try:
        user = auth_service.create_user(
            username=str(data.get("username") or ""),
            password=data.get("password") or "",
            role=role,
        )
    except auth_service.UsernameValidationError as exc:
        raise ValidationError(str(exc), field="username")
    except auth_service.PasswordValidationError as exc:
        raise ValidationError(str(exc), field="password")
    except ValueError as exc:
        db.session.rollback()
        raise UserConflictError(str(exc))
    db.session.commit()
    return user


def update_user(user_id: int, data: dict, *, acting_user_id: int) -> User:
    """
    Admin update: username, role, is_active, password.

    Role and activation changes end the user's sessions; so does a new
    password.
    """
    user = get_user(user_id)
    data = data or {}
    revoke_reason = None

    if "username" in data and data["username"] != user.username:
        try:
            username = auth_service.validate_username(str(data["username"] or ""))
        except auth_service.UsernameValidationError as exc:
            raise ValidationError(str(exc), field="username")
        taken = db.session.query(User.id).filter(User.username == username, User.id != user.id).first()
        if taken:
            raise UserConflictError("Username already exists")
        user.username = username

    if "role" in data and data["role"] != user.role:
        if user.id == acting_user_id:
            raise UserStateError("Cannot change your own role")
        user.role = _check_role(data["role"])
        revoke_reason = "Role changed"

    if "is_active" in data:
        is_active = bool(data["is_active"])
        if not is_active and user.id == acting_user_id:
            raise UserStateError("Cannot deactivate your own account")
        if is_active != user.is_active:
            user.is_active = is_active
            if not is_active:
                revoke_reason = "Account deactivated by admin"

    if data.get("password"):
        try:
            user.password_hash = auth_service.hash_password(data["password"])
        except auth_service.PasswordValidationError as exc:
            raise ValidationError(str(exc), field="password")
        revoke_reason = revoke_reason or "Password reset by admin"

    if revoke_reason:
        session_service.revoke_principal_sessions(user_id=user.id, reason=revoke_reason)

    db.session.commit()
    return user


def deactivate_user(user_id: int, *, acting_user_id: int) -> tuple[User, int]:
    """Soft delete. Returns (user, sessions_revoked)."""
    user = get_user(user_id)
    if user.id == acting_user_id:
        raise UserStateError("Cannot deactivate your own account")
    if not user.is_active:
        raise UserStateError("User is already deactivated")

    user.is_active = False
    revoked = session_service.revoke_principal_sessions(user_id=user.id, reason="Account deactivated by admin")
    db.session.commit()
    return user, revoked
