"""
Device registry tests.

Verifies:
- Registration consumes a code and creates an active, unlocked, unassigned
  device with the default capability set, in the code's store
- Failed registrations leave neither a device nor a consumed use behind
- Lock/unlock, deactivate/reactivate and unregister state transitions
- Unregister does not restore code capacity
"""

import pytest

from handheld.errors import (
    CodeExhausted,
    CodeNotFound,
    DeviceAlreadyRegistered,
    DeviceNotFound,
    Unauthorized,
    ValidationError,
)
from handheld.extensions import db
from handheld.models import Device, DeviceSession, RegistrationCode, SecurityEvent
from handheld.permissions import DEFAULT_CAPABILITIES
from handheld.services import access_service, device_service


class TestRegister:

    def test_new_device_defaults(self, code, store):
        device = access_service.register_device(
            code.code,
            device_id="HH-REG-1",
            device_name="Receiving TC52",
            metadata={"model": "TC52", "os_version": "11"},
        )

        assert device.device_id == "HH-REG-1"
        assert device.device_name == "Receiving TC52"
        assert device.store_id == store.id
        assert device.registration_code_id == code.id
        assert device.is_active is True
        assert device.is_locked is False
        assert device.assigned_user_id is None
        assert device.device_pin_hash is None
        assert device.permissions == DEFAULT_CAPABILITIES
        assert device.device_metadata == {"model": "TC52", "os_version": "11"}
        assert device.registered_at is not None

        db.session.refresh(code)
        assert code.current_uses == 1

    def test_generated_id_and_name(self, code):
        device = access_service.register_device(code.code)
        assert device.device_id.startswith("HH-")
        assert len(device.device_id) == 15
        assert device.device_name == f"Handheld {device.device_id}"

    def test_duplicate_device_id_keeps_code_use(self, store, super_admin, device):
        record = access_service.generate_code(super_admin, store.id, max_uses=1)

        with pytest.raises(DeviceAlreadyRegistered):
            access_service.register_device(record.code, device_id=device.device_id)

        db.session.refresh(record)
        assert record.current_uses == 0

    def test_bad_metadata_rolls_back(self, code):
        with pytest.raises(ValidationError):
            access_service.register_device(code.code, device_id="HH-META", metadata=["not", "a", "dict"])

        db.session.refresh(code)
        assert code.current_uses == 0
        assert device_service.find("HH-META") is None

    def test_failure_is_audited(self, db_session):
        with pytest.raises(CodeNotFound):
            access_service.register_device("ZZZZZZZZ", device_id="HH-AUDIT")

        event = db.session.query(SecurityEvent).filter_by(event_type="DEVICE_REGISTRATION_FAILED").one()
        assert event.success is False
        assert event.reason == "CodeNotFound"
        assert event.device_id == "HH-AUDIT"

    def test_verify(self, device):
        status = access_service.verify_device(device.device_id)
        assert status["registered"] is True
        assert status["user_assigned"] is False
        assert "permissions" not in status

    def test_verify_unknown(self, db_session):
        with pytest.raises(DeviceNotFound):
            access_service.verify_device("HH-NOPE")


class TestLifecycle:

    def test_lock_and_unlock(self, device, super_admin):
        access_service.lock_device(super_admin, device.device_id)
        assert device.is_locked is True
        assert device.locked_by == super_admin.id
        assert device.locked_at is not None

        access_service.unlock_device(super_admin, device.device_id)
        assert device.is_locked is False
        assert device.locked_at is None

    def test_lock_keeps_assignment(self, employee_device, employee, super_admin):
        access_service.lock_device(super_admin, employee_device.device_id)
        assert employee_device.assigned_user_id == employee.id
        assert employee_device.has_device_pin is True

    def test_deactivate_hides_from_default_listing(self, device, super_admin, store):
        access_service.deactivate_device(super_admin, device.device_id)

        assert access_service.list_devices(super_admin, store.id) == []
        listed = access_service.list_devices(super_admin, store.id, include_inactive=True)
        assert [d.device_id for d in listed] == [device.device_id]

    def test_reactivate_also_unlocks(self, device, super_admin):
        access_service.lock_device(super_admin, device.device_id)
        access_service.deactivate_device(super_admin, device.device_id)
        access_service.reactivate_device(super_admin, device.device_id)

        assert device.is_active is True
        assert device.is_locked is False

    @pytest.mark.parametrize("role_fixture", ["admin", "manager"])
    def test_lifecycle_is_super_admin_only(self, request, device, role_fixture):
        actor = request.getfixturevalue(role_fixture)
        for operation in (
            access_service.lock_device,
            access_service.unlock_device,
            access_service.deactivate_device,
            access_service.reactivate_device,
            access_service.unregister_device,
        ):
            with pytest.raises(Unauthorized):
                operation(actor, device.device_id)

        denied = db.session.query(SecurityEvent).filter_by(event_type="ACCESS_DENIED").count()
        assert denied == 5

    def test_unknown_device(self, super_admin, db_session):
        with pytest.raises(DeviceNotFound):
            access_service.lock_device(super_admin, "HH-GHOST")

    def test_version_increments_on_mutation(self, device, super_admin):
        before = device.version_id
        access_service.lock_device(super_admin, device.device_id)
        assert device.version_id == before + 1

    def test_last_seen_does_not_bump_version(self, device):
        before = device.version_id
        device_service.touch_last_seen(device)
        db.session.commit()
        assert device.last_seen_at is not None
        assert device.version_id == before


class TestUnregister:

    def test_unregister_deletes_device_and_sessions(self, employee_device, super_admin):
        access_service.authenticate(employee_device.device_id, "1234")
        device_pk = employee_device.id
        device_id = employee_device.device_id

        access_service.unregister_device(super_admin, device_id)

        assert device_service.find(device_id) is None
        assert db.session.query(DeviceSession).filter_by(device_pk=device_pk).count() == 0
        assert db.session.query(SecurityEvent).filter_by(
            event_type="DEVICE_UNREGISTERED", device_id=device_id
        ).count() == 1

    def test_unregister_does_not_restore_code_capacity(self, code, super_admin):
        device = access_service.register_device(code.code, device_id="HH-UNREG")
        access_service.unregister_device(super_admin, device.device_id)

        record = db.session.get(RegistrationCode, code.id)
        db.session.refresh(record)
        assert record.current_uses == 1

        with pytest.raises(CodeExhausted):
            access_service.register_device(code.code, device_id="HH-UNREG")

    def test_device_id_reusable_with_new_code(self, device, store, super_admin):
        access_service.unregister_device(super_admin, device.device_id)
        record = access_service.generate_code(super_admin, store.id)

        again = access_service.register_device(record.code, device_id="HH-TEST-0001")
        assert again.device_id == "HH-TEST-0001"
        assert db.session.query(Device).filter_by(device_id="HH-TEST-0001").count() == 1
