# Overview: Service-layer operations for registration codes; issue, consume, toggle and delete.

"""
Registration Code Issuer

WHY: A handheld joins a store only by presenting a code a super admin issued
for that store. Codes are limited-use and may expire.

INVARIANTS:
- 0 <= current_uses <= max_uses at every observable point (also a DB CHECK)
- current_uses grows by exactly one per successful consumption, never shrinks
- A code with uses is never deleted; deactivate it instead

CONCURRENCY: consume() is one conditional UPDATE
(... SET current_uses = current_uses + 1 WHERE current_uses < max_uses ...).
N concurrent consumers of a code with max_uses=k get exactly min(N, k)
successes. consume() never commits and must never be retried blindly.
"""

import secrets
from datetime import datetime

from flask import current_app

from ..errors import (
    CodeExhausted,
    CodeExpired,
    CodeInactive,
    CodeNotFound,
    DeletionBlocked,
    Unauthorized,
    ValidationError,
)
from ..extensions import db
from ..models import RegistrationCode, User
from ..permissions import Role
from . import audit_service, directory_service
from handheld.time_utils import to_naive_utc, utcnow


# No 0/O or 1/I: codes are typed in by hand on the device
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MAX_GENERATION_ATTEMPTS = 10


def _random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_code(code) -> str:
    if not isinstance(code, str):
        return ""
    return code.strip().upper()


def _new_unique_code() -> str:
    length = int(current_app.config.get("REGISTRATION_CODE_LENGTH", 8))
    for _ in range(MAX_GENERATION_ATTEMPTS):
        candidate = _random_code(length)
        exists = db.session.query(RegistrationCode.id).filter_by(code=candidate).first()
        if not exists:
            return candidate
    raise RuntimeError("Could not generate a unique registration code")


# =============================================================================
# ISSUE
# =============================================================================

def generate(
    store_id: int,
    *,
    actor: User,
    max_uses: int = 1,
    expires_at=None,
    notes: str | None = None,
) -> RegistrationCode:
    """
    Issue a new registration code for a store.

    Args:
        store_id: Store the registered devices will belong to
        actor: Issuing user; must be a super admin
        max_uses: Number of devices the code may register (>= 1)
        expires_at: Optional expiry (datetime); must lie in the future
        notes: Free text shown in the code list

    Raises:
        Unauthorized: actor is not a super admin
        StoreNotFound: unknown or inactive store
        ValidationError: bad max_uses, expires_at or notes
    """
    if actor is None or actor.role_enum != Role.SUPER_ADMIN:
        raise Unauthorized("Only super admins can generate registration codes")

    store = directory_service.get_store(store_id)

    if isinstance(max_uses, bool) or not isinstance(max_uses, int) or max_uses < 1:
        raise ValidationError("max_uses must be a whole number of at least 1")

    if expires_at is not None and not isinstance(expires_at, datetime):
        raise ValidationError("expires_at must be a datetime")
    expires_at = to_naive_utc(expires_at)
    if expires_at is not None and expires_at <= utcnow():
        raise ValidationError("expires_at must be in the future")

    if notes is not None and not isinstance(notes, str):
        raise ValidationError("notes must be text")

    record = RegistrationCode(
        store_id=store.id,
        code=_new_unique_code(),
        max_uses=max_uses,
        current_uses=0,
        expires_at=expires_at,
        is_active=True,
        created_by=actor.id,
        notes=notes or None,
    )
    db.session.add(record)
    db.session.flush()

    audit_service.record_event(
        "CODE_GENERATED",
        store_id=store.id,
        user_id=actor.id,
        resource=f"registration_code:{record.id}",
        action="GENERATE",
        reason=f"max_uses={max_uses}",
    )
    db.session.commit()

    current_app.logger.info(
        "Registration code %s issued for store %s (max_uses=%s)", record.id, store.id, max_uses
    )
    return record


# =============================================================================
# CONSUME
# =============================================================================

def consume(code) -> RegistrationCode:
    """
    Atomically use one registration of a code.

    Part of the caller's transaction: the caller commits (or rolls back with
    whatever else it wrote, e.g. the new device row).

    Raises CodeNotFound, CodeInactive, CodeExhausted or CodeExpired.
    """
    code = normalize_code(code)
    if not code:
        raise CodeNotFound()

    now = utcnow()

    updated = db.session.query(RegistrationCode).filter(
        RegistrationCode.code == code,
        RegistrationCode.is_active.is_(True),
        RegistrationCode.current_uses < RegistrationCode.max_uses,
        db.or_(
            RegistrationCode.expires_at.is_(None),
            RegistrationCode.expires_at > now,
        ),
    ).update(
        {RegistrationCode.current_uses: RegistrationCode.current_uses + 1},
        synchronize_session=False,
    )

    record = db.session.query(RegistrationCode).filter_by(code=code).populate_existing().first()

    if updated == 1:
        return record

    # Nothing consumed: classify why
    if record is None:
        raise CodeNotFound()
    if not record.is_active:
        raise CodeInactive()
    if record.is_exhausted:
        raise CodeExhausted()
    if record.is_expired(now):
        raise CodeExpired()
    # Usable on re-read means another writer changed it between our two statements
    raise CodeExhausted()


# =============================================================================
# MANAGE
# =============================================================================

def get(code_id: int) -> RegistrationCode:
    record = db.session.get(RegistrationCode, code_id)
    if not record:
        raise CodeNotFound("Code not found")
    return record


def list_for_store(store_id: int, include_used: bool = False) -> list[RegistrationCode]:
    """Codes of a store, newest first. Exhausted codes only with include_used."""
    query = db.session.query(RegistrationCode).filter_by(store_id=store_id)
    if not include_used:
        query = query.filter(RegistrationCode.current_uses < RegistrationCode.max_uses)
    return query.order_by(RegistrationCode.created_at.desc(), RegistrationCode.id.desc()).all()


def deactivate(code_id: int, *, actor_id: int | None = None) -> RegistrationCode:
    record = get(code_id)
    record.is_active = False
    audit_service.record_event(
        "CODE_DEACTIVATED",
        store_id=record.store_id,
        user_id=actor_id,
        resource=f"registration_code:{record.id}",
        action="DEACTIVATE",
    )
    db.session.commit()
    return record


def reactivate(code_id: int, *, actor_id: int | None = None) -> RegistrationCode:
    """Re-enable a code. An exhausted code stays inactive (CodeExhausted)."""
    record = get(code_id)
    if record.is_exhausted:
        raise CodeExhausted("Registration code has no uses left and cannot be reactivated")

    record.is_active = True
    audit_service.record_event(
        "CODE_REACTIVATED",
        store_id=record.store_id,
        user_id=actor_id,
        resource=f"registration_code:{record.id}",
        action="REACTIVATE",
    )
    db.session.commit()
    return record


def delete(code_id: int, *, actor_id: int | None = None) -> None:
    """Delete an unused code. Raises DeletionBlocked once any use happened."""
    record = get(code_id)
    if record.current_uses > 0:
        raise DeletionBlocked()

    store_id = record.store_id

    # Conditional delete: a registration may have consumed a use since the read
    deleted = db.session.query(RegistrationCode).filter(
        RegistrationCode.id == code_id,
        RegistrationCode.current_uses == 0,
    ).delete(synchronize_session=False)
    if deleted != 1:
        db.session.rollback()
        raise DeletionBlocked()

    db.session.expunge(record)
    audit_service.record_event(
        "CODE_DELETED",
        store_id=store_id,
        user_id=actor_id,
        resource=f"registration_code:{code_id}",
        action="DELETE",
    )
    db.session.commit()
