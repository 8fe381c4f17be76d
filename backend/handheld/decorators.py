# Overview: Request, role and capability decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .errors import DeviceAccessError
from .permissions import Role
from .services import access_service, audit_service, session_service


def error_response(exc: DeviceAccessError):
    """JSON body and status for a provisioning/access error."""
    return jsonify(exc.to_dict()), exc.http_status


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a staff session (management UI).

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.store_id: The user's store ID (None for super admins)
    - g.session_context: The full SessionContext object
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.store_id = context.store_id
        g.session_context = context
        g.auth_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: Role):
    """
    Require the staff user to hold one of the given roles.

    The services re-check roles; this only turns obvious misses into 403s
    before any work is done.
    """
    allowed = frozenset(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "current_user"):
                return jsonify({"error": "Authentication required"}), 401

            user = g.current_user
            if user.role_enum not in allowed:
                audit_service.record_failure(
                    "ACCESS_DENIED",
                    store_id=user.store_id,
                    user_id=user.id,
                    resource=request.path,
                    action=request.method,
                    reason=f"Requires role: {', '.join(sorted(r.value for r in allowed))}",
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
                return jsonify({
                    "error": "Permission denied",
                    "code": "Unauthorized",
                    "required_roles": sorted(r.value for r in allowed),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_device_session(f):
    """
    Require a device session (handheld client).

    Sets:
    - g.device_context: DeviceSessionContext for the token
    - g.device_token: the bearer token itself (for logout)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Device authentication required"}), 401

        context = access_service.validate_device_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired device session"}), 401

        g.device_context = context
        g.device_token = token

        return f(*args, **kwargs)

    return decorated_function
