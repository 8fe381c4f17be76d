# Overview: Service-layer operations for staff and device session tokens.

"""
Session Token Management

WHY: Staff (management UI) and handheld devices both authenticate with
bearer tokens. Tokens are cryptographically secure, hashed in the database,
and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute and idle timeouts (configurable)
- Revocable on logout, reassignment or unregistration
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import SessionToken, DeviceSession, User
from handheld.time_utils import utcnow


@dataclass
class SessionContext:
    """Staff session context returned by validate_session."""
    user: User
    session: SessionToken
    store_id: int | None  # None for super admins


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike PINs).
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _hours(key: str, default: int) -> timedelta:
    return timedelta(hours=int(current_app.config.get(key, default)))


def _revoke(session, reason: str, now=None) -> None:
    session.is_revoked = True
    session.revoked_at = now or utcnow()
    session.revoked_reason = reason


# =============================================================================
# STAFF SESSIONS
# =============================================================================

def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create new staff session token.

    Returns (session_record, plaintext_token).
    Raises ValueError if the user does not exist or is inactive.
    """
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        raise ValueError("User not found")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        store_id=user.store_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _hours("SESSION_ABSOLUTE_HOURS", 24),
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Validate staff session token and return SessionContext if valid.

    Returns None if the token is unknown, expired, idle too long or revoked,
    or if the user has been deactivated. Updates last_used_at on success.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _hours("SESSION_IDLE_HOURS", 2):
        _revoke(session, "Idle timeout", now)
        db.session.commit()
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated", now)
        db.session.commit()
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(user=user, session=session, store_id=session.store_id)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Revoke staff session token. Returns False if not found."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True


# =============================================================================
# DEVICE SESSIONS
# =============================================================================

def create_device_session(
    device,
    user: User,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[DeviceSession, str]:
    """
    Stage a device session for (device, user). The caller commits.

    Returns (session_record, plaintext_token).
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = DeviceSession(
        device_pk=device.id,
        user_id=user.id,
        store_id=device.store_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _hours("DEVICE_SESSION_ABSOLUTE_HOURS", 24),
        ip_address=ip_address,
        user_agent=user_agent,
        is_revoked=False,
    )
    db.session.add(session)
    return session, plaintext_token


def get_device_session(token: str) -> DeviceSession | None:
    """
    Look up a live device session by token.

    Only timing is checked here; whether the device may still act is the
    gateway's decision. Expired or idle sessions are revoked on sight.
    """
    now = utcnow()

    session = db.session.query(DeviceSession).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return None

    reason = device_session_timeout(session, now)
    if reason:
        _revoke(session, reason, now)
        db.session.commit()
        return None

    return session


def device_session_timeout(session: DeviceSession, now=None) -> str | None:
    """Revocation reason if the session has timed out, else None."""
    now = now or utcnow()
    if session.expires_at < now:
        return "Expired"
    if now - session.last_used_at > _hours("DEVICE_SESSION_IDLE_HOURS", 8):
        return "Idle timeout"
    return None


def is_device_session_live(session: DeviceSession | None, now=None) -> bool:
    """Not revoked and not timed out. Read-only."""
    if session is None or session.is_revoked:
        return False
    return device_session_timeout(session, now) is None


def revoke_device_session(token: str, reason: str = "Device logout") -> bool:
    session = db.session.query(DeviceSession).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True


def revoke_device_sessions(device_pk: int, reason: str) -> int:
    """
    Revoke every live session of a device. Part of the caller's transaction.

    Returns count of sessions revoked.
    """
    now = utcnow()
    sessions = db.session.query(DeviceSession).filter_by(
        device_pk=device_pk,
        is_revoked=False
    ).all()

    for session in sessions:
        _revoke(session, reason, now)

    return len(sessions)
