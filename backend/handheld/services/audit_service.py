# Overview: Append-only audit sink for provisioning and access events.

"""
Audit Sink

- Success events are added to the caller's session and committed together
  with the action they describe (no event without its action).
- Failure events are written after the failed action has been rolled back,
  in their own commit, so denials are never lost with the rollback.
"""

from flask import current_app

from ..extensions import db
from ..models import SecurityEvent
from handheld.time_utils import utcnow


def record_event(
    event_type: str,
    *,
    store_id: int | None = None,
    user_id: int | None = None,
    device_id: str | None = None,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    success: bool = True,
) -> SecurityEvent:
    """Stage an audit event in the current session (caller commits)."""
    event = SecurityEvent(
        event_type=event_type,
        store_id=store_id,
        user_id=user_id,
        device_id=device_id,
        resource=resource,
        action=action,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        success=success,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    return event


def record_failure(event_type: str, **kwargs) -> SecurityEvent:
    """Write a failed-action event in its own commit."""
    event = record_event(event_type, success=False, **kwargs)
    db.session.commit()
    current_app.logger.info(
        "%s device=%s user=%s reason=%s",
        event_type, kwargs.get("device_id"), kwargs.get("user_id"), kwargs.get("reason"),
    )
    return event


def list_events(
    *,
    store_id: int | None = None,
    device_id: str | None = None,
    event_type: str | None = None,
    limit: int = 100,
) -> list[SecurityEvent]:
    """Newest-first audit events, optionally filtered."""
    query = db.session.query(SecurityEvent)
    if store_id is not None:
        query = query.filter(SecurityEvent.store_id == store_id)
    if device_id is not None:
        query = query.filter(SecurityEvent.device_id == device_id)
    if event_type is not None:
        query = query.filter(SecurityEvent.event_type == event_type)
    return query.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()
