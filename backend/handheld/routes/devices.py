# Overview: Flask API routes for handheld devices; registration, assignment and lifecycle.

# backend/handheld/routes/devices.py
"""
Handheld Device API Routes

WHY: Handhelds join a store with a registration code, then an admin binds a
user, a PIN and a capability set to them. Super admins own the lifecycle
(lock, deactivate, unregister).

SECURITY:
- POST /register and GET /<device_id>/verify are public (the device has no
  session yet); everything else needs a staff session
- Assignment: super_admin, admin, manager (own store only)
- Lifecycle: super_admin only
- PIN hashes never leave the server
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role, error_response
from ..errors import DeviceAccessError
from ..permissions import ASSIGNING_ROLES, CapabilityTier, Role
from ..services import access_service, permission_service


devices_bp = Blueprint("devices", __name__, url_prefix="/api")


def _client_info() -> dict:
    return {
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


# =============================================================================
# DEVICE CLIENT (no session)
# =============================================================================

@devices_bp.post("/devices/register")
def register_device_route():
    """
    Register a handheld with a registration code.

    Request body:
    {
        "registration_code": "K7MQ2XPA",
        "device_id": "A1B2C3...",          (optional, generated if missing)
        "device_name": "Receiving Zebra 2", (optional)
        "metadata": {"model": "TC52", "os_version": "11"}  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        code = data.get("registration_code") or data.get("code")

        if not code:
            return jsonify({"error": "registration_code required", "code": "ValidationError"}), 400

        device = access_service.register_device(
            code,
            device_id=data.get("device_id"),
            device_name=data.get("device_name"),
            metadata=data.get("metadata"),
            **_client_info(),
        )

        return jsonify({
            "device_id": device.device_id,
            "device_name": device.device_name,
            "store_id": device.store_id,
            "message": "Device registered. Ask an administrator to assign a user.",
        }), 201

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register device")
        return jsonify({"error": "Internal server error"}), 500


@devices_bp.get("/devices/<device_id>/verify")
def verify_device_route(device_id: str):
    """Registration status for app start-up. 404 when the device is unknown."""
    try:
        return jsonify(access_service.verify_device(device_id)), 200
    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify device")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ASSIGNMENT (super_admin, admin, manager)
# =============================================================================

@devices_bp.get("/devices/capabilities")
@require_auth
@require_role(*ASSIGNING_ROLES)
def capability_catalogue_route():
    """Capability catalogue for the assignment screen (key, label, tier), optionally one tier."""
    role = request.args.get("role")
    tier = request.args.get("tier")
    if tier is not None:
        tier = tier.upper()
        if tier not in (CapabilityTier.BASIC, CapabilityTier.ADVANCED):
            return jsonify({"error": "tier must be basic or advanced", "code": "ValidationError"}), 400

    return jsonify({"capabilities": permission_service.describe_capabilities(role, tier)}), 200


@devices_bp.get("/stores/<int:store_id>/devices")
@require_auth
@require_role(*ASSIGNING_ROLES)
def list_devices_route(store_id: int):
    """
    List a store's devices.

    Query params:
        include_inactive: "true" to include deactivated devices
    """
    try:
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        devices = access_service.list_devices(g.current_user, store_id, include_inactive=include_inactive)
        return jsonify({"devices": [d.to_dict() for d in devices]}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list devices")
        return jsonify({"error": "Internal server error"}), 500


@devices_bp.get("/stores/<int:store_id>/assignable-users")
@require_auth
@require_role(*ASSIGNING_ROLES)
def list_assignable_users_route(store_id: int):
    try:
        users = access_service.list_assignable_users(g.current_user, store_id)
        return jsonify({"users": [u.to_dict() for u in users]}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list assignable users")
        return jsonify({"error": "Internal server error"}), 500


@devices_bp.get("/devices/<device_id>")
@require_auth
@require_role(*ASSIGNING_ROLES)
def get_device_route(device_id: str):
    try:
        device = access_service.get_device(g.current_user, device_id)
        return jsonify({"device": device.to_dict()}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load device")
        return jsonify({"error": "Internal server error"}), 500


@devices_bp.post("/devices/<device_id>/assign")
@require_auth
@require_role(*ASSIGNING_ROLES)
def assign_user_route(device_id: str):
    """
    Assign a user to a device.

    Request body:
    {
        "user_id": 12,
        "pin": "4821",                       (required for employees)
        "permissions": {"can_view_reports": true}  (optional, merged over defaults)
    }

    Re-assigning replaces user, PIN and capabilities and ends the device's
    current sessions.
    """
    try:
        data = request.get_json(silent=True) or {}
        user_id = data.get("user_id")

        if isinstance(user_id, bool) or not isinstance(user_id, int):
            return jsonify({"error": "user_id required", "code": "ValidationError"}), 400

        capabilities = data.get("permissions", data.get("capabilities"))

        device = access_service.assign_user(
            g.current_user,
            device_id,
            user_id,
            capabilities=capabilities,
            pin=data.get("pin"),
        )

        return jsonify({
            "device": device.to_dict(),
            "permissions": access_service.get_device_permissions(g.current_user, device_id),
        }), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to assign user to device")
        return jsonify({"error": "Internal server error"}), 500


@devices_bp.post("/devices/<device_id>/unassign")
@require_auth
@require_role(*ASSIGNING_ROLES)
def unassign_user_route(device_id: str):
    try:
        device = access_service.unassign_user(g.current_user, device_id)
        return jsonify({"device": device.to_dict()}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to unassign device")
        return jsonify({"error": "Internal server error"}), 500


@devices_bp.get("/devices/<device_id>/permissions")
@require_auth
@require_role(*ASSIGNING_ROLES)
def get_permissions_route(device_id: str):
    """Stored capabilities (as chosen) and effective ones (after the role policy)."""
    try:
        return jsonify(access_service.get_device_permissions(g.current_user, device_id)), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load device permissions")
        return jsonify({"error": "Internal server error"}), 500


@devices_bp.put("/devices/<device_id>/permissions")
@require_auth
@require_role(*ASSIGNING_ROLES)
def update_permissions_route(device_id: str):
    """
    Replace the stored capability set of an assigned device.

    Request body:
    {
        "permissions": {"can_create_orders": true, "can_view_reports": false}
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        capabilities = data.get("permissions", data.get("capabilities"))

        if capabilities is None:
            return jsonify({"error": "permissions required", "code": "ValidationError"}), 400

        access_service.update_device_permissions(g.current_user, device_id, capabilities)
        return jsonify(access_service.get_device_permissions(g.current_user, device_id)), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update device permissions")
        return jsonify({"error": "Internal server error"}), 500


@devices_bp.get("/devices/<device_id>/events")
@require_auth
@require_role(*ASSIGNING_ROLES)
def device_events_route(device_id: str):
    try:
        limit = min(request.args.get("limit", 50, type=int), 500)
        events = access_service.device_events(g.current_user, device_id, limit=limit)
        return jsonify({"events": [e.to_dict() for e in events]}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list device events")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LIFECYCLE (super_admin)
# =============================================================================

def _lifecycle_response(handler, device_id: str, failure_message: str):
    try:
        device = handler(g.current_user, device_id)
        return jsonify({"device": device.to_dict()}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception(failure_message)
        return jsonify({"error": "Internal server error"}), 500


@devices_bp.post("/devices/<device_id>/lock")
@require_auth
@require_role(Role.SUPER_ADMIN)
def lock_device_route(device_id: str):
    """
    Lock a device.

    The assignment stays in place; a locked device authorizes nothing and
    refuses PIN logins until unlocked.
    """
    return _lifecycle_response(access_service.lock_device, device_id, "Failed to lock device")


@devices_bp.post("/devices/<device_id>/unlock")
@require_auth
@require_role(Role.SUPER_ADMIN)
def unlock_device_route(device_id: str):
    return _lifecycle_response(access_service.unlock_device, device_id, "Failed to unlock device")


@devices_bp.post("/devices/<device_id>/deactivate")
@require_auth
@require_role(Role.SUPER_ADMIN)
def deactivate_device_route(device_id: str):
    return _lifecycle_response(access_service.deactivate_device, device_id, "Failed to deactivate device")


@devices_bp.post("/devices/<device_id>/reactivate")
@require_auth
@require_role(Role.SUPER_ADMIN)
def reactivate_device_route(device_id: str):
    """Reactivate a device; it comes back unlocked."""
    return _lifecycle_response(access_service.reactivate_device, device_id, "Failed to reactivate device")


@devices_bp.delete("/devices/<device_id>")
@require_auth
@require_role(Role.SUPER_ADMIN)
def unregister_device_route(device_id: str):
    """Hard-delete a device. The code it registered with is not refunded."""
    try:
        access_service.unregister_device(g.current_user, device_id)
        return jsonify({"message": "Device unregistered"}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to unregister device")
        return jsonify({"error": "Internal server error"}), 500
