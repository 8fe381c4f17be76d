from __future__ import annotations

from ..extensions import db
from ..permissions import default_capabilities
from handheld.time_utils import to_utc_z, utcnow


class RegistrationCode(db.Model):
    """
    Store-scoped, limited-use credential for registering handheld devices.

    WHY: A physical device may only join a store with a code issued by a
    super admin. Each successful registration consumes exactly one use.

    USABLE: is_active AND current_uses < max_uses AND (expires_at IS NULL OR now < expires_at)

    current_uses is only ever incremented, by a single conditional UPDATE
    (see registration_code_service.consume). Codes with uses are never deleted.
    """
    __tablename__ = "registration_codes"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_registration_codes_code"),
        db.CheckConstraint("max_uses >= 1", name="ck_registration_codes_max_uses"),
        db.CheckConstraint(
            "current_uses >= 0 AND current_uses <= max_uses",
            name="ck_registration_codes_current_uses",
        ),
        db.Index("ix_registration_codes_store_active", "store_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    code = db.Column(db.String(32), nullable=False)

    max_uses = db.Column(db.Integer, nullable=False, default=1)
    current_uses = db.Column(db.Integer, nullable=False, default=0)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store", backref=db.backref("registration_codes", lazy=True))
    creator = db.relationship("User", foreign_keys=[created_by])

    @property
    def is_exhausted(self) -> bool:
        return self.current_uses >= self.max_uses

    def is_expired(self, now=None) -> bool:
        if self.expires_at is None:
            return False
        return (now or utcnow()) >= self.expires_at

    def is_usable(self, now=None) -> bool:
        return bool(self.is_active) and not self.is_exhausted and not self.is_expired(now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "code": self.code,
            "max_uses": self.max_uses,
            "current_uses": self.current_uses,
            "remaining_uses": max(self.max_uses - self.current_uses, 0),
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "is_active": self.is_active,
            "is_exhausted": self.is_exhausted,
            "is_expired": self.is_expired(),
            "is_usable": self.is_usable(),
            "created_by": self.created_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Device(db.Model):
    """
    Physical handheld unit bound to a store.

    WHY: Every scan, adjustment or order made from a handheld is attributed
    to a device and the user assigned to it.

    LIFECYCLE:
    - Active+Unlocked <-> Active+Locked (lock/unlock)
    - Active+* -> Inactive (deactivate) -> Active+Unlocked (reactivate)
    - any -> deleted (unregister, terminal; device_id may register again with a new code)

    ASSIGNMENT: assigned_user_id, device_pin_hash and permissions change together.
    permissions holds the stored (unclamped) capability flags; the role policy
    is applied at evaluation time.

    SECURITY: device_pin_hash is write-only. It is never serialized.
    """
    __tablename__ = "devices"
    __table_args__ = (
        db.UniqueConstraint("device_id", name="uq_devices_device_id"),
        db.Index("ix_devices_store_active", "store_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Hardware identifier reported by the client, or generated at registration
    device_id = db.Column(db.String(128), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    device_name = db.Column(db.String(128), nullable=False)

    registration_code_id = db.Column(db.Integer, db.ForeignKey("registration_codes.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_locked = db.Column(db.Boolean, nullable=False, default=False)
    locked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    locked_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Assignment
    assigned_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    assigned_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    device_pin_hash = db.Column("pin_hash", db.String(255), nullable=True)
    permissions = db.Column("permissions_json", db.JSON, nullable=False, default=default_capabilities)

    # Client-reported details (model, OS, app version)
    device_metadata = db.Column("metadata", db.JSON, nullable=True)

    registered_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("devices", lazy=True))
    assigned_user = db.relationship("User", foreign_keys=[assigned_user_id])
    registration_code = db.relationship("RegistrationCode", backref=db.backref("devices", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def has_device_pin(self) -> bool:
        return self.device_pin_hash is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "device_id": self.device_id,
            "store_id": self.store_id,
            "device_name": self.device_name,
            "registration_code_id": self.registration_code_id,
            "is_active": self.is_active,
            "is_locked": self.is_locked,
            "locked_at": to_utc_z(self.locked_at) if self.locked_at else None,
            "assigned_user_id": self.assigned_user_id,
            "assigned_at": to_utc_z(self.assigned_at) if self.assigned_at else None,
            "has_device_pin": self.has_device_pin,
            "permissions": dict(self.permissions or {}),
            "metadata": self.device_metadata or {},
            "registered_at": to_utc_z(self.registered_at),
            "last_seen_at": to_utc_z(self.last_seen_at) if self.last_seen_at else None,
            "version_id": self.version_id,
        }


class DeviceSession(db.Model):
    """
    Session issued to a handheld after a successful device+PIN login.

    WHY: The handheld sends the bearer token with every call; the session pins
    the (device, user) pair it was issued for. Reassigning or unassigning the
    device revokes its sessions.
    """
    __tablename__ = "device_sessions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    device_pk = db.Column(db.Integer, db.ForeignKey("devices.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    device = db.relationship("Device", backref=db.backref("sessions", lazy=True, passive_deletes=True))
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "device_id": self.device.device_id if self.device else None,
            "user_id": self.user_id,
            "store_id": self.store_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
        }
