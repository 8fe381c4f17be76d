# Overview: Access control gateway; device PIN login, capability checks and role-checked management entry points.

"""
Access Control Gateway

WHY: The single entry point for handheld clients and management screens.
Handhelds authenticate with device id + PIN and get a device session; every
device action is authorized here. Management calls are role-checked here
before being delegated to the registry, issuer and assignment services.

DESIGN PRINCIPLES:
- Fail closed: locked, inactive or unassigned devices authorize nothing
- Never cache decisions: authorize() reloads device and user on every call
  and re-runs the permission evaluator
- Store scope is resolved by the directory, not by ambient request state
- Denials are written to the audit sink
"""

from dataclasses import dataclass

from flask import current_app

from ..errors import (
    AuthenticationFailed,
    CapabilityInvalid,
    DeviceInactive,
    DeviceLocked,
    DeviceNotFound,
    DeviceUnassigned,
    TooManyAttempts,
    Unauthorized,
)
from ..extensions import db
from ..models import Device, DeviceSession, User
from ..permissions import ASSIGNING_ROLES, MASTER_PIN_ROLES, Role, validate_capability_key
from . import (
    assignment_service,
    audit_service,
    auth_service,
    device_service,
    directory_service,
    login_throttle_service,
    permission_service,
    registration_code_service,
    session_service,
)
from .concurrency import device_transaction
from handheld.time_utils import utcnow


SUPER_ADMIN_ONLY = frozenset({Role.SUPER_ADMIN})


@dataclass
class DeviceSessionContext:
    """
    Authenticated device session.

    The device/user snapshots are for display only; authorize() re-reads
    both before deciding anything.
    """
    session: DeviceSession
    device: Device
    user: User
    role: str

    @property
    def store_id(self) -> int:
        return self.device.store_id

    def to_dict(self) -> dict:
        return {
            "session": self.session.to_dict(),
            "device": {
                "device_id": self.device.device_id,
                "device_name": self.device.device_name,
                "store_id": self.device.store_id,
            },
            "user": {
                "id": self.user.id,
                "name": self.user.display_name,
                "email": self.user.email,
                "role": self.role,
            },
            "permissions": permission_service.evaluate(self.role, self.device.permissions),
        }


# =============================================================================
# DEVICE AUTHENTICATION
# =============================================================================

def _pin_matches(device: Device, user: User, role: str, pin) -> bool:
    if device.device_pin_hash is not None:
        return auth_service.verify_pin(pin, device.device_pin_hash)
    if Role.parse(role) in MASTER_PIN_ROLES:
        return directory_service.verify_master_pin(user, pin)
    return False


def authenticate(
    device_id: str,
    pin,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[DeviceSessionContext, str]:
    """
    Log a handheld in with its assigned user's PIN.

    The device PIN is checked when one is set. Without a device PIN, admins,
    managers and super admins may use their master PIN.

    Returns (context, plaintext_token); last_seen_at is only updated on success.

    Raises:
        DeviceNotFound, DeviceLocked, DeviceInactive
        TooManyAttempts: PIN throttle tripped for this device
        DeviceUnassigned: nobody is assigned to the device
        Unauthorized: assigned user deactivated
        AuthenticationFailed: wrong PIN
    """
    device = device_service.find(device_id)
    if device is None:
        raise DeviceNotFound()
    if device.is_locked:
        raise DeviceLocked()
    if not device.is_active:
        raise DeviceInactive()

    locked_out, seconds_remaining = login_throttle_service.is_device_locked_out(device.device_id)
    if locked_out:
        raise TooManyAttempts(retry_after_seconds=seconds_remaining)

    if device.assigned_user_id is None:
        raise DeviceUnassigned()

    user = directory_service.get_user(device.assigned_user_id, active_only=False)
    if not user.is_active:
        raise Unauthorized("User account is inactive.")
    role = directory_service.resolve_role(user)

    if not _pin_matches(device, user, role, pin):
        audit_service.record_failure(
            login_throttle_service.FAILED_EVENT,
            store_id=device.store_id,
            user_id=user.id,
            device_id=device.device_id,
            action="PIN_LOGIN",
            reason="Invalid PIN",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise AuthenticationFailed("Invalid PIN")

    with device_transaction():
        device_service.touch_last_seen(device)
        session, token = session_service.create_device_session(
            device, user, ip_address=ip_address, user_agent=user_agent
        )
        audit_service.record_event(
            login_throttle_service.SUCCESS_EVENT,
            store_id=device.store_id,
            user_id=user.id,
            device_id=device.device_id,
            action="PIN_LOGIN",
            ip_address=ip_address,
            user_agent=user_agent,
        )

    current_app.logger.info("Device %s logged in as user %s", device.device_id, user.id)
    return DeviceSessionContext(session=session, device=device, user=user, role=role), token


def validate_device_session(token: str) -> DeviceSessionContext | None:
    """
    Resolve a bearer token to a live device session.

    None when the token is unknown, expired or revoked, or when the device
    can no longer act for the session's user (locked, inactive, reassigned).
    """
    session = session_service.get_device_session(token)
    if session is None:
        return None

    device = db.session.get(Device, session.device_pk)
    if device is None or device.is_locked or not device.is_active:
        return None
    if device.assigned_user_id != session.user_id:
        return None

    user = db.session.get(User, session.user_id)
    if user is None or not user.is_active:
        return None

    session.last_used_at = utcnow()
    device_service.touch_last_seen(device)
    db.session.commit()

    return DeviceSessionContext(
        session=session,
        device=device,
        user=user,
        role=directory_service.resolve_role(user),
    )


def logout(token: str) -> bool:
    return session_service.revoke_device_session(token)


# =============================================================================
# AUTHORIZATION
# =============================================================================

def authorize(context: DeviceSessionContext, capability: str) -> bool:
    """
    May this device session use `capability` right now?

    Re-reads session, device and user from the database and re-evaluates
    the role policy on every call. A logged-out, revoked or timed-out
    session authorizes nothing.
    """
    if not validate_capability_key(capability):
        raise CapabilityInvalid(f"Unknown capability: {capability}")

    session = db.session.query(DeviceSession).filter_by(id=context.session.id).populate_existing().first()
    if not session_service.is_device_session_live(session):
        return False

    device = db.session.query(Device).filter_by(id=context.session.device_pk).populate_existing().first()
    if device is None or device.is_locked or not device.is_active:
        return False
    if device.assigned_user_id is None or device.assigned_user_id != context.user.id:
        return False

    user = db.session.query(User).filter_by(id=device.assigned_user_id).populate_existing().first()
    if user is None or not user.is_active:
        return False

    role = directory_service.resolve_role(user)
    return permission_service.evaluate(role, device.permissions).get(capability, False)


def require_capability(context: DeviceSessionContext, capability: str, resource: str | None = None) -> None:
    """authorize() or raise Unauthorized, auditing the denial."""
    if authorize(context, capability):
        return

    audit_service.record_failure(
        "CAPABILITY_DENIED",
        store_id=context.store_id,
        user_id=context.user.id,
        device_id=context.device.device_id,
        resource=resource,
        action=capability,
        reason=f"Missing capability: {capability}",
    )
    raise Unauthorized(f"Missing capability: {capability}")


# =============================================================================
# MANAGEMENT ENTRY POINTS
# =============================================================================

def _require_role(actor: User | None, allowed: frozenset, action: str) -> None:
    if actor is not None and actor.is_active and actor.role_enum in allowed:
        return

    audit_service.record_failure(
        "ACCESS_DENIED",
        store_id=actor.store_id if actor else None,
        user_id=actor.id if actor else None,
        action=action,
        reason="Role not permitted",
    )
    raise Unauthorized(f"Role not permitted to {action.lower().replace('_', ' ')}")


def _device_in_scope(actor: User, device_id: str) -> Device:
    device = device_service.get(device_id)
    directory_service.ensure_store_access(actor, device.store_id)
    return device


def _ensure_may_assign(actor: User, target: User) -> None:
    """Store admins and managers can only assign employee users."""
    if directory_service.is_super_admin(actor):
        return
    if target.role_enum != Role.EMPLOYEE:
        raise Unauthorized("Store admins and managers can only assign employee users")


# Registration codes (super_admin)

def generate_code(actor: User, store_id: int, *, max_uses: int = 1, expires_at=None, notes: str | None = None):
    _require_role(actor, SUPER_ADMIN_ONLY, "GENERATE_CODE")
    return registration_code_service.generate(
        store_id, actor=actor, max_uses=max_uses, expires_at=expires_at, notes=notes
    )


def list_codes(actor: User, store_id: int, *, include_used: bool = False):
    _require_role(actor, SUPER_ADMIN_ONLY, "LIST_CODES")
    directory_service.get_store(store_id)
    return registration_code_service.list_for_store(store_id, include_used=include_used)


def deactivate_code(actor: User, code_id: int):
    _require_role(actor, SUPER_ADMIN_ONLY, "DEACTIVATE_CODE")
    return registration_code_service.deactivate(code_id, actor_id=actor.id)


def reactivate_code(actor: User, code_id: int):
    _require_role(actor, SUPER_ADMIN_ONLY, "REACTIVATE_CODE")
    return registration_code_service.reactivate(code_id, actor_id=actor.id)


def delete_code(actor: User, code_id: int) -> None:
    _require_role(actor, SUPER_ADMIN_ONLY, "DELETE_CODE")
    registration_code_service.delete(code_id, actor_id=actor.id)


# Device registration (device client, no actor)

def register_device(code, **kwargs) -> Device:
    return device_service.register(code, **kwargs)


def verify_device(device_id: str) -> dict:
    return device_service.verify(device_id)


# Device lifecycle (super_admin)

def lock_device(actor: User, device_id: str) -> Device:
    _require_role(actor, SUPER_ADMIN_ONLY, "LOCK_DEVICE")
    return device_service.lock(device_id, actor_id=actor.id)


def unlock_device(actor: User, device_id: str) -> Device:
    _require_role(actor, SUPER_ADMIN_ONLY, "UNLOCK_DEVICE")
    return device_service.unlock(device_id, actor_id=actor.id)


def deactivate_device(actor: User, device_id: str) -> Device:
    _require_role(actor, SUPER_ADMIN_ONLY, "DEACTIVATE_DEVICE")
    return device_service.deactivate(device_id, actor_id=actor.id)


def reactivate_device(actor: User, device_id: str) -> Device:
    _require_role(actor, SUPER_ADMIN_ONLY, "REACTIVATE_DEVICE")
    return device_service.reactivate(device_id, actor_id=actor.id)


def unregister_device(actor: User, device_id: str) -> None:
    _require_role(actor, SUPER_ADMIN_ONLY, "UNREGISTER_DEVICE")
    device_service.unregister(device_id, actor_id=actor.id)


# Assignment (admin, manager, super_admin)

def list_devices(actor: User, store_id: int, *, include_inactive: bool = False):
    _require_role(actor, ASSIGNING_ROLES, "LIST_DEVICES")
    directory_service.ensure_store_access(actor, store_id)
    return device_service.list_for_store(store_id, include_inactive=include_inactive)


def list_assignable_users(actor: User, store_id: int):
    _require_role(actor, ASSIGNING_ROLES, "LIST_USERS")
    directory_service.ensure_store_access(actor, store_id)
    return directory_service.list_assignable_users(
        store_id, employees_only=not directory_service.is_super_admin(actor)
    )


def assign_user(
    actor: User,
    device_id: str,
    user_id: int,
    capabilities: dict | None = None,
    pin: str | None = None,
) -> Device:
    _require_role(actor, ASSIGNING_ROLES, "ASSIGN_USER")
    _device_in_scope(actor, device_id)
    _ensure_may_assign(actor, directory_service.get_user(user_id))
    return assignment_service.assign(device_id, user_id, capabilities, pin, assigned_by=actor.id)


def unassign_user(actor: User, device_id: str) -> Device:
    _require_role(actor, ASSIGNING_ROLES, "UNASSIGN_USER")
    _device_in_scope(actor, device_id)
    return assignment_service.unassign(device_id, actor_id=actor.id)


def update_device_permissions(actor: User, device_id: str, capabilities: dict) -> Device:
    _require_role(actor, ASSIGNING_ROLES, "UPDATE_PERMISSIONS")
    _device_in_scope(actor, device_id)
    return assignment_service.update_permissions(device_id, capabilities, actor_id=actor.id)


def get_device_permissions(actor: User, device_id: str) -> dict:
    _require_role(actor, ASSIGNING_ROLES, "VIEW_PERMISSIONS")
    _device_in_scope(actor, device_id)
    return assignment_service.get_permissions(device_id)


def get_device(actor: User, device_id: str) -> Device:
    _require_role(actor, ASSIGNING_ROLES, "VIEW_DEVICE")
    return _device_in_scope(actor, device_id)


def device_events(actor: User, device_id: str, *, limit: int = 50):
    """Audit trail of one device, newest first."""
    _require_role(actor, ASSIGNING_ROLES, "VIEW_DEVICE_EVENTS")
    device = _device_in_scope(actor, device_id)
    return audit_service.list_events(device_id=device.device_id, limit=limit)
