# Overview: Flask API routes for staff authentication; parses input and returns JSON responses.

# backend/handheld/routes/auth.py
"""
Staff Authentication API routes

Management screens (code issuing, assignment) act as a logged-in staff user.
Handheld clients do NOT use these routes; they log in with device id + PIN
under /api/device-auth.

SECURITY FEATURES:
- bcrypt password verification
- Session management with token-based auth (SHA-256 hashed tokens)
- Failed logins are written to the security event log
- Master PIN changes require the current password
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, error_response
from ..errors import DeviceAccessError
from ..extensions import db
from ..permissions import MASTER_PIN_ROLES
from ..services import audit_service, auth_service, directory_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate a staff user and create a session token.

    Request body:
    {
        "username": "manager1",   (or "email")
        "password": "..."
    }

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"error": "username/email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(username, password)

        if not user:
            audit_service.record_failure(
                "LOGIN_FAILED",
                action="LOGIN",
                resource=f"username:{username}"[:128],
                reason="Invalid credentials",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "store_id": session.store_id,
            "message": "Login successful"
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """
    Revoke session token (logout).

    WHY: Explicit logout prevents token reuse.
    """
    try:
        revoked = session_service.revoke_session(g.auth_token, reason="User logout")

        if not revoked:
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current staff user and session."""
    return jsonify({
        "user": g.current_user.to_dict(),
        "session": g.session_context.session.to_dict(),
        "store_id": g.store_id,
    }), 200


@auth_bp.put("/master-pin")
@require_auth
def set_master_pin_route():
    """
    Set or replace the caller's master PIN.

    Only roles that may log in on a device without a device PIN
    (super_admin, admin, manager) can hold a master PIN.

    Request body:
    {
        "pin": "123456",
        "current_password": "..."
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        pin = data.get("pin")
        current_password = data.get("current_password")

        user = g.current_user
        if user.role_enum not in MASTER_PIN_ROLES:
            return jsonify({"error": "Role cannot hold a master PIN", "code": "Unauthorized"}), 403

        if not current_password or not auth_service.verify_password(current_password, user.password_hash):
            return jsonify({"error": "Current password is incorrect"}), 401

        directory_service.set_master_pin(user.id, pin)
        audit_service.record_event(
            "MASTER_PIN_SET",
            store_id=user.store_id,
            user_id=user.id,
            action="SET_MASTER_PIN",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        db.session.commit()

        return jsonify({"message": "Master PIN updated", "has_master_pin": True}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set master PIN")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.delete("/master-pin")
@require_auth
def clear_master_pin_route():
    try:
        user = directory_service.clear_master_pin(g.current_user.id)
        return jsonify({"message": "Master PIN removed", "has_master_pin": user.master_pin_hash is not None}), 200
    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to clear master PIN")
        return jsonify({"error": "Internal server error"}), 500
