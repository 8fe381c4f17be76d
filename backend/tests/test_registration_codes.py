"""
Registration code tests.

Verifies:
- Only super admins issue codes; codes are store-scoped and well-formed
- Consumption increments current_uses exactly once and never past max_uses
- Failure classification: not found, inactive, exhausted, expired
- Codes with uses cannot be deleted; deactivate instead
- Exhausted codes cannot be reactivated
"""

from datetime import timedelta

import pytest

from handheld.errors import (
    CodeExhausted,
    CodeExpired,
    CodeInactive,
    CodeNotFound,
    DeletionBlocked,
    StoreNotFound,
    Unauthorized,
    ValidationError,
)
from handheld.extensions import db
from handheld.models import RegistrationCode, SecurityEvent
from handheld.services import access_service, registration_code_service
from handheld.services.registration_code_service import CODE_ALPHABET
from handheld.time_utils import utcnow


class TestGenerate:

    def test_super_admin_issues_code(self, store, super_admin):
        record = access_service.generate_code(super_admin, store.id, max_uses=3, notes="Dock")

        assert record.store_id == store.id
        assert record.max_uses == 3
        assert record.current_uses == 0
        assert record.is_active is True
        assert record.created_by == super_admin.id
        assert len(record.code) == 8
        assert set(record.code) <= set(CODE_ALPHABET)

        event = db.session.query(SecurityEvent).filter_by(event_type="CODE_GENERATED").one()
        assert event.user_id == super_admin.id

    @pytest.mark.parametrize("role_fixture", ["admin", "manager", "employee"])
    def test_other_roles_cannot_issue(self, request, store, role_fixture):
        actor = request.getfixturevalue(role_fixture)
        with pytest.raises(Unauthorized):
            access_service.generate_code(actor, store.id)
        assert db.session.query(RegistrationCode).count() == 0

    def test_issuer_rejects_non_super_admin_directly(self, store, admin):
        with pytest.raises(Unauthorized):
            registration_code_service.generate(store.id, actor=admin)

    @pytest.mark.parametrize("max_uses", [0, -1, "3", 1.5, True])
    def test_invalid_max_uses(self, store, super_admin, max_uses):
        with pytest.raises(ValidationError):
            access_service.generate_code(super_admin, store.id, max_uses=max_uses)

    def test_expiry_must_be_in_future(self, store, super_admin):
        with pytest.raises(ValidationError):
            access_service.generate_code(super_admin, store.id, expires_at=utcnow() - timedelta(minutes=1))

    @pytest.mark.parametrize("field,value", [
        ("expires_at", 1893456000),
        ("expires_at", "2030-01-01T00:00:00Z"),
        ("notes", {"a": 1}),
        ("notes", 42),
    ])
    def test_wrongly_typed_fields(self, store, super_admin, field, value):
        with pytest.raises(ValidationError):
            access_service.generate_code(super_admin, store.id, **{field: value})
        assert db.session.query(RegistrationCode).count() == 0

    def test_unknown_store(self, super_admin, db_session):
        with pytest.raises(StoreNotFound):
            access_service.generate_code(super_admin, 9999)

    def test_codes_are_unique(self, store, super_admin):
        codes = {access_service.generate_code(super_admin, store.id).code for _ in range(20)}
        assert len(codes) == 20

    def test_code_length_is_configurable(self, app, store, super_admin):
        app.config["REGISTRATION_CODE_LENGTH"] = 12
        try:
            record = access_service.generate_code(super_admin, store.id)
        finally:
            app.config["REGISTRATION_CODE_LENGTH"] = 8
        assert len(record.code) == 12


class TestConsume:

    def test_consume_increments_once(self, code):
        record = registration_code_service.consume(code.code)
        db.session.commit()
        assert record.current_uses == 1

    def test_consume_is_case_and_whitespace_insensitive(self, code):
        record = registration_code_service.consume(f"  {code.code.lower()} ")
        db.session.commit()
        assert record.id == code.id

    def test_exhausted_code(self, code):
        registration_code_service.consume(code.code)
        db.session.commit()

        with pytest.raises(CodeExhausted):
            registration_code_service.consume(code.code)
        db.session.rollback()

        db.session.refresh(code)
        assert code.current_uses == code.max_uses == 1

    def test_unknown_code(self, db_session):
        with pytest.raises(CodeNotFound):
            registration_code_service.consume("NOPE2345")

    @pytest.mark.parametrize("value", [None, "", "   ", 12345])
    def test_blank_or_non_string_code(self, db_session, value):
        with pytest.raises(CodeNotFound):
            registration_code_service.consume(value)

    def test_inactive_code(self, code, super_admin):
        access_service.deactivate_code(super_admin, code.id)
        with pytest.raises(CodeInactive):
            registration_code_service.consume(code.code)

    def test_expired_code(self, code):
        code.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()
        with pytest.raises(CodeExpired):
            registration_code_service.consume(code.code)

    def test_inactive_wins_over_exhausted(self, code, super_admin):
        registration_code_service.consume(code.code)
        db.session.commit()
        access_service.deactivate_code(super_admin, code.id)
        with pytest.raises(CodeInactive):
            registration_code_service.consume(code.code)

    def test_consume_does_not_commit(self, code):
        registration_code_service.consume(code.code)
        db.session.rollback()
        db.session.refresh(code)
        assert code.current_uses == 0

    def test_multi_use_code_never_exceeds_max(self, store, super_admin):
        record = access_service.generate_code(super_admin, store.id, max_uses=3)
        results = []
        for _ in range(5):
            try:
                registration_code_service.consume(record.code)
                db.session.commit()
                results.append("ok")
            except CodeExhausted:
                db.session.rollback()
                results.append("exhausted")

        assert results == ["ok", "ok", "ok", "exhausted", "exhausted"]
        db.session.refresh(record)
        assert record.current_uses == 3


class TestManage:

    def test_delete_unused_code(self, code, super_admin):
        access_service.delete_code(super_admin, code.id)
        assert db.session.get(RegistrationCode, code.id) is None

    def test_delete_blocked_once_used(self, code, super_admin):
        access_service.register_device(code.code, device_id="HH-DEL-1")

        with pytest.raises(DeletionBlocked):
            access_service.delete_code(super_admin, code.id)
        assert db.session.get(RegistrationCode, code.id) is not None

    def test_delete_unknown_code(self, super_admin, db_session):
        with pytest.raises(CodeNotFound):
            access_service.delete_code(super_admin, 424242)

    def test_deactivate_then_reactivate(self, store, super_admin):
        record = access_service.generate_code(super_admin, store.id, max_uses=2)
        access_service.deactivate_code(super_admin, record.id)
        assert record.is_active is False

        access_service.reactivate_code(super_admin, record.id)
        assert record.is_active is True
        assert registration_code_service.consume(record.code).current_uses == 1
        db.session.commit()

    def test_reactivate_exhausted_code_fails(self, code, super_admin):
        access_service.register_device(code.code, device_id="HH-REACT-1")
        access_service.deactivate_code(super_admin, code.id)

        with pytest.raises(CodeExhausted):
            access_service.reactivate_code(super_admin, code.id)
        db.session.refresh(code)
        assert code.is_active is False

    def test_list_hides_exhausted_unless_asked(self, store, super_admin):
        used = access_service.generate_code(super_admin, store.id, max_uses=1)
        fresh = access_service.generate_code(super_admin, store.id, max_uses=2)
        access_service.register_device(used.code, device_id="HH-LIST-1")

        default_ids = {c.id for c in access_service.list_codes(super_admin, store.id)}
        all_ids = {c.id for c in access_service.list_codes(super_admin, store.id, include_used=True)}

        assert default_ids == {fresh.id}
        assert all_ids == {fresh.id, used.id}

    def test_serialized_code_exposes_derived_state(self, code):
        data = code.to_dict()
        assert data["remaining_uses"] == 1
        assert data["is_usable"] is True
        assert data["is_exhausted"] is False
        assert data["is_expired"] is False

    def test_management_requires_super_admin(self, code, manager):
        with pytest.raises(Unauthorized):
            access_service.deactivate_code(manager, code.id)
        with pytest.raises(Unauthorized):
            access_service.delete_code(manager, code.id)
        with pytest.raises(Unauthorized):
            access_service.list_codes(manager, code.store_id)


class TestScenarios:

    def test_single_use_code_registers_one_device(self, store, super_admin):
        record = access_service.generate_code(super_admin, store.id, max_uses=1)

        device = access_service.register_device(record.code)
        db.session.refresh(record)
        assert record.current_uses == 1
        assert device.store_id == store.id

        with pytest.raises(CodeExhausted):
            access_service.register_device(record.code)

    def test_used_code_deactivated_instead_of_deleted(self, code, super_admin):
        access_service.register_device(code.code, device_id="HH-SCN-5")

        with pytest.raises(DeletionBlocked):
            access_service.delete_code(super_admin, code.id)

        access_service.deactivate_code(super_admin, code.id)

        with pytest.raises(CodeInactive):
            access_service.register_device(code.code, device_id="HH-SCN-5b")
