# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/ordercrm/routes/auth.py
"""
Authentication API routes

- POST /login          user login (reactivates a deactivated account)
- POST /reactivate     same recovery path, explicit
- POST /vendor-login   vendor login
- GET  /me, /vendor-me current principal
- POST /validate       token check for the frontend
- POST /logout         revoke the session
"""

from flask import Blueprint, request, current_app, g

from ..extensions import db
from ..decorators import require_auth, require_user, require_vendor
from ..responses import error_response, success_response
from ..services import auth_service
from ..services import session_service
from ..services import vendor_service
from ..validation import ValidationError, validate_credentials_payload


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _client_info() -> dict:
    return {
        "user_agent": request.headers.get("User-Agent"),
        "ip_address": request.remote_addr,
    }


def _user_login(*, reactivate_only: bool):
    try:
        username, password = validate_credentials_payload(request.get_json(silent=True))
    except ValidationError as e:
        return error_response(e.message, 400, errors=e.errors)

    try:
        user, reactivated = auth_service.login_user(username, password)
        if not user:
            db.session.rollback()
            return error_response("Invalid credentials", 401)
        if reactivate_only and not reactivated:
            db.session.rollback()
            return error_response("Account is already active", 400)
        # Vendor accounts follow their vendor row; no self-service reactivation
        if user.role == "vendor" and (user.vendor_profile is None or not user.vendor_profile.is_active):
            db.session.rollback()
            return error_response("Invalid credentials", 401)

        # login_user left the reactivation and last_login_at pending; this commits them
        session, token = session_service.create_session(user=user, **_client_info())
        if reactivated:
            current_app.logger.info("User %s reactivated at login", user.username)

        data = {
            "token": token,
            "user": user.to_dict(),
            "session": session.to_dict(),
            "reactivated": reactivated,
        }
        if user.role == "vendor" and user.vendor_profile is not None:
            data["vendor"] = user.vendor_profile.to_dict()
        message = "Account reactivated and logged in" if reactivated else "Login successful"
        return success_response(data, message=message)

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to login user")
        return error_response("Internal server error", 500)


@auth_bp.post("/login")
def login_route():
    """
    Authenticate a user and create a session token.

    A deactivated account presenting valid credentials is reactivated.
    The token goes in the Authorization header: Bearer <token>.
    """
    return _user_login(reactivate_only=False)


@auth_bp.post("/reactivate")
def reactivate_route():
    """Reactivate a deactivated account with its credentials and log it in."""
    return _user_login(reactivate_only=True)


@auth_bp.post("/vendor-login")
def vendor_login_route():
    try:
        username, password = validate_credentials_payload(request.get_json(silent=True))
    except ValidationError as e:
        return error_response(e.message, 400, errors=e.errors)

    try:
        vendor = auth_service.authenticate_vendor(username, password)
        if not vendor:
            db.session.rollback()
            return error_response("Invalid credentials", 401)

        session, token = session_service.create_session(vendor=vendor, **_client_info())
        return success_response(
            {"token": token, "vendor": vendor.to_dict(), "session": session.to_dict()},
            message="Login successful",
        )

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to login vendor")
        return error_response("Internal server error", 500)


@auth_bp.get("/me")
@require_auth
@require_user
def me_route():
    return success_response(g.principal.to_dict())


@auth_bp.get("/vendor-me")
@require_auth
@require_vendor
def vendor_me_route():
    data = g.principal.to_dict()
    data["unread_orders"] = vendor_service.unread_order_count(g.principal.vendor)
    return success_response(data)


@auth_bp.post("/validate")
@require_auth
def validate_route():
    """Token is valid; returns the principal and session for UI gating."""
    data = g.principal.to_dict()
    data["session"] = g.session_context.session.to_dict()
    return success_response(data, message="Token is valid")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    try:
        session_service.revoke_session(g.token, reason="User logout")
        return success_response(message="Logout successful")

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to logout")
        return error_response("Internal server error", 500)
