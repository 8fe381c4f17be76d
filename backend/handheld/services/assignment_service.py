# Overview: Service-layer operations for device assignments; user binding, device PIN and capabilities.

"""
Assignment Manager

WHY: A handheld acts on behalf of exactly one store user at a time. The
assignment carries the device PIN and the capability flags an admin chose.

RULES:
- employee: a device PIN is required
- any PIN given must be 4-6 digits
- admin/manager/super_admin without a PIN: no device PIN is stored and the
  user's master PIN is used at login
- capabilities are stored as given (merged over the defaults); the role
  policy is applied when they are evaluated, so the admin's raw choice
  survives for editing
- re-assignment replaces user, PIN and capabilities in one commit and
  revokes the device's sessions
"""

from flask import current_app

from ..errors import DeviceUnassigned, PinRequiredForRole
from ..models import Device
from ..permissions import Role, normalize_capabilities
from . import audit_service, auth_service, device_service, directory_service, permission_service, session_service
from .concurrency import device_transaction
from handheld.time_utils import utcnow


def _prepare_pin_hash(role: str, pin) -> str | None:
    if pin is None or pin == "":
        if Role.parse(role) == Role.EMPLOYEE:
            raise PinRequiredForRole()
        return None
    return auth_service.hash_pin(pin)


def assign(
    device_id: str,
    user_id: int,
    capabilities: dict | None = None,
    pin: str | None = None,
    *,
    assigned_by: int | None = None,
) -> Device:
    """
    Bind a user to a device with a PIN and stored capabilities.

    Raises:
        DeviceNotFound, UserNotFound
        Unauthorized: user belongs to another store
        PinRequiredForRole: employee without PIN
        PinFormatInvalid: PIN is not 4-6 digits
        CapabilityInvalid: unknown capability key or non-boolean value
        AssignmentConflict: device changed concurrently
    """
    user = directory_service.get_user(user_id)
    role = directory_service.resolve_role(user)

    # Validate everything before taking the row lock; bcrypt is slow
    pin_hash = _prepare_pin_hash(role, pin)
    stored = normalize_capabilities(capabilities)

    with device_transaction():
        device = device_service.get_for_update(device_id)
        directory_service.ensure_user_in_store(user, device.store_id)

        previous_user_id = device.assigned_user_id
        session_service.revoke_device_sessions(device.id, "Device reassigned")

        device.assigned_user_id = user.id
        device.assigned_by = assigned_by
        device.assigned_at = utcnow()
        device.device_pin_hash = pin_hash
        device.permissions = stored

        audit_service.record_event(
            "USER_ASSIGNED",
            store_id=device.store_id,
            user_id=assigned_by,
            device_id=device.device_id,
            resource=f"user:{user.id}",
            action="ASSIGN",
            reason=f"previous_user={previous_user_id}" if previous_user_id else None,
        )

    current_app.logger.info(
        "Device %s assigned to user %s (role=%s, device_pin=%s)",
        device.device_id, user.id, role, pin_hash is not None,
    )
    return device


def unassign(device_id: str, *, actor_id: int | None = None) -> Device:
    """Clear user and PIN; capabilities return to the default set."""
    with device_transaction():
        device = device_service.get_for_update(device_id)
        previous_user_id = device.assigned_user_id
        device_service.clear_assignment(device, "Device unassigned")
        audit_service.record_event(
            "USER_UNASSIGNED",
            store_id=device.store_id,
            user_id=actor_id,
            device_id=device.device_id,
            resource=f"user:{previous_user_id}" if previous_user_id else None,
            action="UNASSIGN",
        )

    current_app.logger.info("Device %s unassigned", device_id)
    return device


def update_permissions(device_id: str, capabilities: dict, *, actor_id: int | None = None) -> Device:
    """
    Replace the stored capability set, keeping user and PIN.

    Raises DeviceUnassigned when no user is assigned.
    """
    stored = normalize_capabilities(capabilities)

    with device_transaction():
        device = device_service.get_for_update(device_id)
        if device.assigned_user_id is None:
            raise DeviceUnassigned("Device must have a user assigned first")
        device.permissions = stored
        audit_service.record_event(
            "PERMISSIONS_UPDATED",
            store_id=device.store_id,
            user_id=actor_id,
            device_id=device.device_id,
            action="UPDATE_PERMISSIONS",
        )

    return device


def get_permissions(device_id: str) -> dict:
    """Stored and effective capabilities of a device, with the role behind them."""
    device = device_service.get(device_id)
    stored = dict(device.permissions or {})

    if device.assigned_user_id is None:
        return {
            "device_id": device.device_id,
            "user_id": None,
            "role": None,
            "stored": stored,
            "effective": None,
        }

    user = directory_service.get_user(device.assigned_user_id, active_only=False)
    role = directory_service.resolve_role(user)
    return {
        "device_id": device.device_id,
        "user_id": user.id,
        "role": role,
        "stored": stored,
        "effective": permission_service.evaluate(role, stored),
    }
