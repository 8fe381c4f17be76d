# backend/handheld/routes/system.py
"""
System health endpoint.

Reports database reachability and a few row counts useful when debugging a
deployment (how many handhelds are registered, how many sessions are live).
"""

import time

from flask import Blueprint, current_app, jsonify

from ..extensions import db
from ..models import Device, DeviceSession, RegistrationCode, Store
from ..permissions import ALL_CAPABILITIES
from handheld.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        now = utcnow()
        details = {
            "stores": db.session.query(Store).count(),
            "devices": db.session.query(Device).count(),
            "locked_devices": db.session.query(Device).filter(Device.is_locked.is_(True)).count(),
            "active_registration_codes": db.session.query(RegistrationCode).filter(
                RegistrationCode.is_active.is_(True)
            ).count(),
            "live_device_sessions": db.session.query(DeviceSession).filter(
                DeviceSession.is_revoked.is_(False),
                DeviceSession.expires_at > now,
            ).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    healthy = database["status"] == "healthy"
    return jsonify({
        "status": "ok" if healthy else "degraded",
        "timestamp": to_utc_z(utcnow()),
        "capabilities": len(ALL_CAPABILITIES),
        "checks": {"database": database},
    }), 200 if healthy else 503
