# Overview: Flask API routes for handheld PIN login and capability checks.

# backend/handheld/routes/device_auth.py
"""
Device Authentication API routes

WHY: A handheld has no keyboard-friendly password flow. The assigned user
types a 4-6 digit PIN on a registered device and gets a device session.

SECURITY FEATURES:
- Locked, inactive and unassigned devices refuse PIN logins
- Repeated wrong PINs lock the device out for a while (429)
- Capabilities are re-evaluated on every /authorize call, never cached
  in the token
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_device_session, error_response
from ..errors import DeviceAccessError
from ..services import access_service


device_auth_bp = Blueprint("device_auth", __name__, url_prefix="/api/device-auth")


@device_auth_bp.post("/login")
def device_login_route():
    """
    Log in on a handheld.

    Request body:
    {
        "device_id": "HH-4F2A9C01B7D3",
        "pin": "4821"
    }

    Returns the device session token plus the user, device and effective
    capabilities.
    """
    try:
        data = request.get_json(silent=True) or {}
        device_id = data.get("device_id")
        pin = data.get("pin")

        if not device_id or pin is None:
            return jsonify({"error": "device_id and pin required", "code": "ValidationError"}), 400

        context, token = access_service.authenticate(
            device_id,
            pin,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )

        body = context.to_dict()
        body["token"] = token
        body["message"] = "Login successful"
        return jsonify(body), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed device PIN login")
        return jsonify({"error": "Internal server error"}), 500


@device_auth_bp.post("/logout")
@require_device_session
def device_logout_route():
    try:
        access_service.logout(g.device_token)
        return jsonify({"message": "Logout successful"}), 200
    except Exception:
        current_app.logger.exception("Failed device logout")
        return jsonify({"error": "Internal server error"}), 500


@device_auth_bp.get("/me")
@require_device_session
def device_me_route():
    """Current device session with effective capabilities."""
    return jsonify(g.device_context.to_dict()), 200


@device_auth_bp.post("/authorize")
@require_device_session
def device_authorize_route():
    """
    Check a single capability for the current device session.

    Request body:
    {
        "capability": "can_adjust_inventory"
    }

    Always 200 with {"allowed": bool} for known capabilities; unknown ones
    are a 400 CapabilityInvalid.
    """
    try:
        data = request.get_json(silent=True) or {}
        capability = data.get("capability")

        if not capability:
            return jsonify({"error": "capability required", "code": "ValidationError"}), 400

        allowed = access_service.authorize(g.device_context, capability)
        return jsonify({"capability": capability, "allowed": allowed}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed capability check")
        return jsonify({"error": "Internal server error"}), 500
