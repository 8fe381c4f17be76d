# Overview: Service-layer operations for handheld devices; registration and lifecycle.

"""
Device Registry

WHY: Each physical handheld is a persistent record bound to one store for
its lifetime. Registration consumes a code; everything else is a state change
on the record.

STATE MACHINE:
- Active+Unlocked <-> Active+Locked         (lock / unlock)
- Active+*         -> Inactive              (deactivate)
- Inactive         -> Active+Unlocked       (reactivate)
- any              -> deleted               (unregister, terminal)

DESIGN:
- register() is all-or-nothing: the code use and the device row commit together
- Locking keeps the assignment; a locked device simply authorizes nothing
- Unregistering clears the assignment and deletes the row in one commit; the
  originating code keeps its consumed use
- Mutations lock the row and carry an optimistic version (AssignmentConflict)
"""

import secrets

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.attributes import set_committed_value

from ..errors import DeviceAccessError, DeviceAlreadyRegistered, DeviceNotFound, ValidationError
from ..extensions import db
from ..models import Device, DeviceSession
from ..permissions import default_capabilities
from . import audit_service, registration_code_service, session_service
from .concurrency import device_transaction, lock_for_update, run_with_retry
from handheld.time_utils import utcnow


MAX_DEVICE_ID_LENGTH = 128
MAX_DEVICE_NAME_LENGTH = 128


def _generate_device_id() -> str:
    return f"HH-{secrets.token_hex(6).upper()}"


def _clean_device_id(device_id) -> str | None:
    if device_id is None:
        return None
    if not isinstance(device_id, str):
        raise ValidationError("device_id must be a string")
    device_id = device_id.strip()
    if not device_id:
        return None
    if len(device_id) > MAX_DEVICE_ID_LENGTH:
        raise ValidationError("device_id is too long")
    return device_id


def _clean_device_name(device_name, device_id: str) -> str:
    if device_name is None or (isinstance(device_name, str) and not device_name.strip()):
        return f"Handheld {device_id}"
    if not isinstance(device_name, str):
        raise ValidationError("device_name must be a string")
    device_name = device_name.strip()
    if len(device_name) > MAX_DEVICE_NAME_LENGTH:
        raise ValidationError("device_name is too long")
    return device_name


# =============================================================================
# LOOKUPS
# =============================================================================

def find(device_id: str) -> Device | None:
    if not device_id:
        return None
    return db.session.query(Device).filter_by(device_id=device_id).first()


def get(device_id: str) -> Device:
    device = find(device_id)
    if not device:
        raise DeviceNotFound()
    return device


def get_for_update(device_id: str) -> Device:
    """Load a device with a row lock for a mutation."""
    device = lock_for_update(db.session.query(Device).filter_by(device_id=device_id)).first()
    if not device:
        raise DeviceNotFound()
    return device


def list_for_store(store_id: int, include_inactive: bool = False) -> list[Device]:
    """Devices of a store, newest first. Inactive devices only on request."""
    query = db.session.query(Device).filter_by(store_id=store_id)
    if not include_inactive:
        query = query.filter(Device.is_active.is_(True))
    query = query.order_by(Device.registered_at.desc(), Device.id.desc())
    return run_with_retry(query.all)


def verify(device_id: str) -> dict:
    """
    Registration status for app start-up.

    Public: reveals no user, PIN or capability details.
    """
    device = get(device_id)
    return {
        "registered": True,
        "device_id": device.device_id,
        "device_name": device.device_name,
        "store_id": device.store_id,
        "is_active": device.is_active,
        "is_locked": device.is_locked,
        "user_assigned": device.assigned_user_id is not None,
    }


# =============================================================================
# REGISTRATION
# =============================================================================

def register(
    code,
    *,
    device_id: str | None = None,
    device_name: str | None = None,
    metadata: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> Device:
    """
    Register a handheld with a registration code.

    The new device is Active, Unlocked, Unassigned and carries the default
    capability set. It belongs to the code's store.

    Raises:
        DeviceAlreadyRegistered: device_id is taken
        CodeNotFound / CodeInactive / CodeExhausted / CodeExpired: from the code
        ValidationError: malformed device_id, device_name or metadata
    """
    try:
        device_id = _clean_device_id(device_id) or _generate_device_id()
        device_name = _clean_device_name(device_name, device_id)
        if metadata is not None and not isinstance(metadata, dict):
            raise ValidationError("metadata must be an object")

        if find(device_id) is not None:
            raise DeviceAlreadyRegistered()

        record = registration_code_service.consume(code)

        device = Device(
            device_id=device_id,
            store_id=record.store_id,
            device_name=device_name,
            registration_code_id=record.id,
            is_active=True,
            is_locked=False,
            permissions=default_capabilities(),
            device_metadata=metadata or {},
            registered_at=utcnow(),
        )
        db.session.add(device)
        audit_service.record_event(
            "DEVICE_REGISTERED",
            store_id=record.store_id,
            device_id=device_id,
            resource=f"registration_code:{record.id}",
            action="REGISTER",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        db.session.commit()
    except IntegrityError as exc:
        # Lost a race for the same device_id; the code use rolls back too
        db.session.rollback()
        raise DeviceAlreadyRegistered() from exc
    except DeviceAccessError as exc:
        db.session.rollback()
        audit_service.record_failure(
            "DEVICE_REGISTRATION_FAILED",
            device_id=device_id if isinstance(device_id, str) else None,
            action="REGISTER",
            reason=exc.code,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info("Device %s registered to store %s", device.device_id, device.store_id)
    return device


# =============================================================================
# LIFECYCLE
# =============================================================================

def lock(device_id: str, *, actor_id: int | None = None) -> Device:
    """Lock a device. The assignment stays in place."""
    with device_transaction():
        device = get_for_update(device_id)
        if not device.is_locked:
            device.is_locked = True
            device.locked_at = utcnow()
            device.locked_by = actor_id
        audit_service.record_event(
            "DEVICE_LOCKED", store_id=device.store_id, user_id=actor_id,
            device_id=device.device_id, action="LOCK",
        )
    current_app.logger.info("Device %s locked", device_id)
    return device


def unlock(device_id: str, *, actor_id: int | None = None) -> Device:
    with device_transaction():
        device = get_for_update(device_id)
        device.is_locked = False
        device.locked_at = None
        device.locked_by = None
        audit_service.record_event(
            "DEVICE_UNLOCKED", store_id=device.store_id, user_id=actor_id,
            device_id=device.device_id, action="UNLOCK",
        )
    current_app.logger.info("Device %s unlocked", device_id)
    return device


def deactivate(device_id: str, *, actor_id: int | None = None) -> Device:
    """Soft-disable a device; it drops out of default listings but is kept."""
    with device_transaction():
        device = get_for_update(device_id)
        device.is_active = False
        audit_service.record_event(
            "DEVICE_DEACTIVATED", store_id=device.store_id, user_id=actor_id,
            device_id=device.device_id, action="DEACTIVATE",
        )
    current_app.logger.info("Device %s deactivated", device_id)
    return device


def reactivate(device_id: str, *, actor_id: int | None = None) -> Device:
    """Inactive -> Active+Unlocked."""
    with device_transaction():
        device = get_for_update(device_id)
        device.is_active = True
        device.is_locked = False
        device.locked_at = None
        device.locked_by = None
        audit_service.record_event(
            "DEVICE_REACTIVATED", store_id=device.store_id, user_id=actor_id,
            device_id=device.device_id, action="REACTIVATE",
        )
    current_app.logger.info("Device %s reactivated", device_id)
    return device


def clear_assignment(device: Device, reason: str) -> None:
    """
    Drop user, PIN and stored capabilities of a device, and revoke its
    sessions. Part of the caller's transaction.
    """
    device.assigned_user_id = None
    device.assigned_by = None
    device.assigned_at = None
    device.device_pin_hash = None
    device.permissions = default_capabilities()
    session_service.revoke_device_sessions(device.id, reason)


def unregister(device_id: str, *, actor_id: int | None = None) -> None:
    """
    Hard-delete a device, its assignment and its sessions.

    Irreversible. The registration code that created the device keeps its
    consumed use; re-registering needs a new (or still usable) code.
    """
    with device_transaction():
        device = get_for_update(device_id)
        store_id = device.store_id
        previous_user_id = device.assigned_user_id
        db.session.query(DeviceSession).filter_by(device_pk=device.id).delete()
        db.session.delete(device)
        audit_service.record_event(
            "DEVICE_UNREGISTERED", store_id=store_id, user_id=actor_id,
            device_id=device_id, action="UNREGISTER",
            resource=f"user:{previous_user_id}" if previous_user_id else None,
        )
    current_app.logger.info("Device %s unregistered", device_id)


def touch_last_seen(device: Device) -> None:
    """
    Stamp authenticated use. Part of the caller's transaction.

    Written as a direct UPDATE so that device traffic does not bump
    version_id and collide with admin edits.
    """
    now = utcnow()
    db.session.query(Device).filter_by(id=device.id).update(
        {Device.last_seen_at: now}, synchronize_session=False
    )
    set_committed_value(device, "last_seen_at", now)
