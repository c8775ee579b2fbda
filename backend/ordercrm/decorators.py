# Overview: Authentication and role decorators for API routes.

from functools import wraps
from flask import request, g

from .principals import VendorPrincipal, resolve_principal
from .responses import error_response
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def require_auth(f):
    """
    Require a valid session and resolve the request principal.

    Sets the following Flask g attributes:
    - g.principal: AdminPrincipal | SupplierPrincipal | ClientPrincipal | VendorPrincipal
    - g.session_context: the SessionContext behind it
    - g.token: the bearer token (used by logout)

    Returns 401 if there is no token, the token is invalid or expired, or the
    account behind it is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return error_response("Access denied. No token provided.", 401)

        context = session_service.validate_session(token)
        if not context:
            return error_response("Invalid or expired token", 401)

        principal = resolve_principal(context)
        if principal is None:
            return error_response("Invalid token: account not found", 401)

        g.principal = principal
        g.session_context = context
        g.token = token
        return f(*args, **kwargs)

    return decorated_function


def require_roles(*roles: str):
    """Require the principal's role to be one of `roles`. Stack under @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return error_response("Authentication required", 401)
            if principal.role not in roles:
                return error_response(
                    f"Access denied. Requires role: {', '.join(roles)}",
                    403,
                )
            return f(*args, **kwargs)
        return decorated_function
    return decorator


require_admin = require_roles("admin")
require_staff = require_roles("admin", "supplier")
# Order routes: staff and vendors; clients are refused
require_order_access = require_roles("admin", "supplier", "vendor")


def require_user(f):
    """Require a user principal (admin, supplier or client)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = getattr(g, "principal", None)
        if principal is None:
            return error_response("Authentication required", 401)
        if isinstance(principal, VendorPrincipal):
            return error_response("Access denied. User account required.", 403)
        return f(*args, **kwargs)
    return decorated_function


def require_vendor(f):
    """Require a vendor principal."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = getattr(g, "principal", None)
        if principal is None:
            return error_response("Authentication required", 401)
        if not isinstance(principal, VendorPrincipal):
            return error_response("Access denied. Vendor account required.", 403)
        return f(*args, **kwargs)
    return decorated_function
