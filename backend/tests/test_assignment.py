"""
Assignment manager tests.

Verifies:
- Employees need a 4-6 digit device PIN; privileged roles may omit it
- PINs are stored only as bcrypt hashes and never serialized
- Stored capabilities are kept as chosen; clamping happens at evaluation
- Re-assignment replaces user, PIN and capabilities and revokes sessions
- assign then unassign returns the device to the default capability set
- Store scoping, and only super admins assign anyone but employees
"""

import pytest
from sqlalchemy import update

from handheld.errors import (
    AssignmentConflict,
    CapabilityInvalid,
    DeviceUnassigned,
    PinFormatInvalid,
    PinRequiredForRole,
    Unauthorized,
    UserNotFound,
)
from handheld.extensions import db
from handheld.models import Device, DeviceSession
from handheld.permissions import DEFAULT_CAPABILITIES
from handheld.services import access_service, assignment_service, auth_service

from conftest import make_user


class TestPinRules:

    def test_employee_pin_scenario(self, device, employee, manager):
        caps = {"can_scan_barcode": True}

        with pytest.raises(PinRequiredForRole):
            access_service.assign_user(manager, device.device_id, employee.id, caps, pin=None)

        with pytest.raises(PinFormatInvalid):
            access_service.assign_user(manager, device.device_id, employee.id, caps, pin="12")

        access_service.assign_user(manager, device.device_id, employee.id, caps, pin="1234")
        assert device.assigned_user_id == employee.id
        assert device.has_device_pin is True

    @pytest.mark.parametrize("pin", ["123", "1234567", "12a4", " 1234", "", 1234])
    def test_pin_format(self, device, employee, manager, pin):
        expected = PinRequiredForRole if pin == "" else PinFormatInvalid
        with pytest.raises(expected):
            access_service.assign_user(manager, device.device_id, employee.id, pin=pin)
        db.session.refresh(device)
        assert device.assigned_user_id is None

    @pytest.mark.parametrize("pin", ["1234", "12345", "123456"])
    def test_valid_pin_lengths(self, device, employee, manager, pin):
        access_service.assign_user(manager, device.device_id, employee.id, pin=pin)
        assert auth_service.verify_pin(pin, device.device_pin_hash)

    def test_admin_without_pin_uses_master_pin(self, device, admin, manager, super_admin):
        access_service.assign_user(super_admin, device.device_id, admin.id, {}, pin=None)
        assert device.assigned_user_id == admin.id
        assert device.device_pin_hash is None

    def test_manager_without_pin(self, device, manager, super_admin):
        access_service.assign_user(super_admin, device.device_id, manager.id)
        assert device.assigned_user_id == manager.id
        assert device.has_device_pin is False

    def test_pin_is_hashed_and_never_serialized(self, employee_device):
        assert employee_device.device_pin_hash != "1234"
        assert employee_device.device_pin_hash.startswith("$2")

        data = employee_device.to_dict()
        assert "pin_hash" not in data
        assert "device_pin_hash" not in data
        assert "1234" not in str(data)
        assert data["has_device_pin"] is True


class TestCapabilities:

    def test_stored_flags_kept_but_clamped_for_employee(self, device, employee, manager):
        access_service.assign_user(
            manager, device.device_id, employee.id,
            {"can_edit_products": True}, pin="1234",
        )
        view = access_service.get_device_permissions(manager, device.device_id)

        assert view["stored"]["can_edit_products"] is True
        assert view["effective"]["can_edit_products"] is False
        assert view["role"] == "employee"

    def test_same_flags_effective_for_manager(self, device, manager, super_admin):
        access_service.assign_user(super_admin, device.device_id, manager.id, {"can_edit_products": True})
        view = access_service.get_device_permissions(manager, device.device_id)
        assert view["effective"]["can_edit_products"] is True

    def test_invalid_capability_rejected(self, device, employee, manager):
        with pytest.raises(CapabilityInvalid):
            access_service.assign_user(manager, device.device_id, employee.id, {"can_fly": True}, pin="1234")
        db.session.refresh(device)
        assert device.assigned_user_id is None

    def test_update_permissions(self, employee_device, manager):
        access_service.update_device_permissions(
            manager, employee_device.device_id, {"can_scan_barcode": False}
        )
        assert employee_device.permissions["can_scan_barcode"] is False
        # User and PIN untouched
        assert employee_device.has_device_pin is True

    def test_update_permissions_needs_assignment(self, device, manager):
        with pytest.raises(DeviceUnassigned):
            access_service.update_device_permissions(manager, device.device_id, {"can_scan_barcode": False})

    def test_unassigned_view_has_no_effective_set(self, device, manager):
        view = access_service.get_device_permissions(manager, device.device_id)
        assert view["user_id"] is None
        assert view["effective"] is None
        assert view["stored"] == DEFAULT_CAPABILITIES


class TestReassignment:

    def test_assign_unassign_round_trip(self, device, employee, manager):
        access_service.assign_user(
            manager, device.device_id, employee.id,
            {"can_adjust_inventory": False, "can_view_reports": True}, pin="4321",
        )
        access_service.unassign_user(manager, device.device_id)

        assert device.assigned_user_id is None
        assert device.assigned_at is None
        assert device.device_pin_hash is None
        assert device.permissions == DEFAULT_CAPABILITIES

    def test_reassign_replaces_everything(self, employee_device, manager, store):
        second = make_user("second_clerk", "employee", store)

        access_service.assign_user(
            manager, employee_device.device_id, second.id,
            {"can_mark_damaged": False}, pin="9999",
        )

        assert employee_device.assigned_user_id == second.id
        assert employee_device.permissions["can_mark_damaged"] is False
        assert auth_service.verify_pin("9999", employee_device.device_pin_hash)
        assert not auth_service.verify_pin("1234", employee_device.device_pin_hash)

    def test_reassign_revokes_sessions(self, employee_device, manager, store):
        context, token = access_service.authenticate(employee_device.device_id, "1234")
        second = make_user("second_clerk", "employee", store)

        access_service.assign_user(manager, employee_device.device_id, second.id, pin="9999")

        session = db.session.get(DeviceSession, context.session.id)
        assert session.is_revoked is True
        assert access_service.validate_device_session(token) is None

    def test_unassign_revokes_sessions(self, employee_device, manager):
        _, token = access_service.authenticate(employee_device.device_id, "1234")
        access_service.unassign_user(manager, employee_device.device_id)
        assert access_service.validate_device_session(token) is None

    def test_stale_version_is_a_conflict(self, employee_device, store):
        second = make_user("second_clerk", "employee", store)
        loaded_version = employee_device.version_id

        # Another writer bumped the row after this session loaded it
        db.session.execute(
            update(Device)
            .where(Device.id == employee_device.id)
            .values(version_id=loaded_version + 1)
            .execution_options(synchronize_session=False)
        )

        with pytest.raises(AssignmentConflict):
            assignment_service.assign(employee_device.device_id, second.id, pin="5555")

        db.session.refresh(employee_device)
        assert employee_device.assigned_user_id != second.id


class TestWhoMayAssign:

    def test_employee_cannot_assign(self, device, employee):
        with pytest.raises(Unauthorized):
            access_service.assign_user(employee, device.device_id, employee.id, pin="1234")

    def test_manager_cannot_touch_other_store(self, store, other_store, super_admin, manager):
        record = access_service.generate_code(super_admin, other_store.id)
        foreign = access_service.register_device(record.code, device_id="HH-FOREIGN")

        with pytest.raises(Unauthorized):
            access_service.assign_user(manager, foreign.device_id, manager.id)
        with pytest.raises(Unauthorized):
            access_service.list_devices(manager, other_store.id)

    def test_user_from_other_store_rejected(self, device, super_admin, other_employee):
        with pytest.raises(Unauthorized):
            access_service.assign_user(super_admin, device.device_id, other_employee.id, pin="1234")

    def test_manager_cannot_assign_admin(self, device, manager, admin):
        with pytest.raises(Unauthorized):
            access_service.assign_user(manager, device.device_id, admin.id)

    def test_admin_can_only_assign_employees(self, device, admin, manager, employee):
        with pytest.raises(Unauthorized):
            access_service.assign_user(admin, device.device_id, manager.id)
        with pytest.raises(Unauthorized):
            access_service.assign_user(admin, device.device_id, admin.id)

        access_service.assign_user(admin, device.device_id, employee.id, pin="1234")
        assert device.assigned_user_id == employee.id

    def test_manager_cannot_assign_manager(self, device, manager, store):
        peer = make_user("night_manager", "manager", store)
        with pytest.raises(Unauthorized):
            access_service.assign_user(manager, device.device_id, peer.id)
        with pytest.raises(Unauthorized):
            access_service.assign_user(manager, device.device_id, manager.id)
        db.session.refresh(device)
        assert device.assigned_user_id is None

    def test_super_admin_assigns_any_store_role(self, device, super_admin, admin):
        access_service.assign_user(super_admin, device.device_id, admin.id)
        assert device.assigned_user_id == admin.id

    def test_admin_cannot_assign_super_admin(self, device, admin, super_admin):
        with pytest.raises(Unauthorized):
            access_service.assign_user(admin, device.device_id, super_admin.id)

    def test_unknown_or_inactive_user(self, device, manager, employee):
        with pytest.raises(UserNotFound):
            access_service.assign_user(manager, device.device_id, 987654, pin="1234")

        employee.is_active = False
        db.session.commit()
        with pytest.raises(UserNotFound):
            access_service.assign_user(manager, device.device_id, employee.id, pin="1234")

    def test_assignable_users_exclude_super_admins_and_other_stores(
        self, store, admin, manager, employee, super_admin, other_employee
    ):
        users = access_service.list_assignable_users(super_admin, store.id)
        assert {u.username for u in users} == {admin.username, manager.username, employee.username}

    def test_store_staff_only_see_employees(self, store, admin, manager, employee):
        for actor in (admin, manager):
            users = access_service.list_assignable_users(actor, store.id)
            assert [u.username for u in users] == [employee.username]
