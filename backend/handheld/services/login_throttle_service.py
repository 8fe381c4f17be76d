# Overview: Per-device PIN throttle computed from security events.

"""
Device PIN Throttling Service

WHY: 4-6 digit PINs are short. Without a limit a stolen handheld could try
every PIN. After too many failures the device refuses PIN logins for a while.

SECURITY FEATURES:
- Counts DEVICE_LOGIN_FAILED events per device within the lockout window
- Uses security_events table for tracking (no extra state)
- Failures before the device's last successful login do not count
- Failures from an earlier registration of the same device_id do not count
"""

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Device, SecurityEvent
from handheld.time_utils import utcnow


FAILED_EVENT = "DEVICE_LOGIN_FAILED"
SUCCESS_EVENT = "DEVICE_LOGIN"


def _window() -> timedelta:
    return timedelta(minutes=int(current_app.config.get("PIN_LOCKOUT_MINUTES", 15)))


def max_failed_attempts() -> int:
    return int(current_app.config.get("MAX_FAILED_PIN_ATTEMPTS", 5))


def _counting_cutoff(device_id: str):
    cutoff = utcnow() - _window()
    last_success = db.session.query(db.func.max(SecurityEvent.occurred_at)).filter(
        SecurityEvent.event_type == SUCCESS_EVENT,
        SecurityEvent.device_id == device_id,
    ).scalar()
    registered_at = db.session.query(Device.registered_at).filter_by(device_id=device_id).scalar()
    for bound in (last_success, registered_at):
        if bound is not None and bound > cutoff:
            cutoff = bound
    return cutoff


def _failures_since(device_id: str, cutoff):
    return db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == FAILED_EVENT,
        SecurityEvent.device_id == device_id,
        SecurityEvent.occurred_at > cutoff,
    )


def get_recent_failed_attempts(device_id: str) -> int:
    """Failed PIN logins for a device in the window, since its last success."""
    return _failures_since(device_id, _counting_cutoff(device_id)).count()


def is_device_locked_out(device_id: str) -> tuple[bool, int | None]:
    """
    Returns (locked_out, seconds_remaining).

    The lockout lifts once the oldest counted failure leaves the window.
    """
    cutoff = _counting_cutoff(device_id)
    failures = _failures_since(device_id, cutoff)
    if failures.count() < max_failed_attempts():
        return False, None

    oldest = failures.with_entities(db.func.min(SecurityEvent.occurred_at)).scalar()
    remaining = int((oldest + _window() - utcnow()).total_seconds())
    return True, max(remaining, 1)
