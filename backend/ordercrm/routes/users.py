# Overview: Flask API routes for user management; parses input and returns JSON responses.

# backend/ordercrm/routes/users.py
"""
Admin routes for staff and client accounts.

Users are soft deleted. Deactivation, role changes and password resets end
the account's sessions.
"""

from flask import Blueprint, request, g, current_app

from ..extensions import db
from ..decorators import require_auth, require_admin
from ..responses import error_response, pagination_meta, success_response
from ..services import user_service
from ..services.user_service import UserConflictError, UserNotFoundError, UserStateError
from ..validation import ValidationError, parse_bool_arg, parse_pagination


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    """
    Query params:
    - search: substring of username
    - role: admin | supplier | vendor | client
    - include_inactive: bool (default false)
    - page, limit
    """
    page, limit = parse_pagination(request.args)
    users, total = user_service.list_users(
        search=request.args.get("search"),
        role=request.args.get("role"),
        include_inactive=bool(parse_bool_arg(request.args.get("include_inactive"))),
        page=page,
        limit=limit,
    )
    return success_response(
        [u.to_dict() for u in users],
        pagination=pagination_meta(page=page, limit=limit, total=total),
    )


@users_bp.get("/<int:user_id>")
@require_auth
@require_admin
def get_user_route(user_id: int):
    try:
        return success_response(user_service.get_user(user_id).to_dict())
    except UserNotFoundError as e:
        return error_response(str(e), 404)


@users_bp.post("")
@require_auth
@require_admin
def create_user_route():
    """
    Request body:
    - username: str (required, 3-30 chars)
    - password: str (required, >= 6 chars)
    - role: str (optional, default client)
    """
    try:
        user = user_service.create_user(request.get_json(silent=True))
        return success_response(user.to_dict(), message="User created successfully", status=201)

    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except UserConflictError as e:
        db.session.rollback()
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create user")
        return error_response("Internal server error", 500)


@users_bp.put("/<int:user_id>")
@require_auth
@require_admin
def update_user_route(user_id: int):
    try:
        user = user_service.update_user(
            user_id,
            request.get_json(silent=True),
            acting_user_id=g.principal.user.id,
        )
        return success_response(user.to_dict(), message="User updated successfully")

    except UserNotFoundError as e:
        return error_response(str(e), 404)
    except ValidationError as e:
        db.session.rollback()
        return error_response(e.message, 400, errors=e.errors)
    except (UserConflictError, UserStateError) as e:
        db.session.rollback()
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update user")
        return error_response("Internal server error", 500)


@users_bp.delete("/<int:user_id>")
@require_auth
@require_admin
def delete_user_route(user_id: int):
    try:
        user, revoked = user_service.deactivate_user(user_id, acting_user_id=g.principal.user.id)
        return success_response(
            {"user": user.to_dict(), "sessions_revoked": revoked},
            message=f"User {user.username} deactivated",
        )

    except UserNotFoundError as e:
        return error_response(str(e), 404)
    except UserStateError as e:
        db.session.rollback()
        return error_response(str(e), 400)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate user")
        return error_response("Internal server error", 500)
