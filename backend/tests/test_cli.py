"""
CLI command tests.

Runs the click groups through Flask's CLI test runner against the test
database.
"""

from handheld.extensions import db
from handheld.models import RegistrationCode, Store, User
from handheld.services import auth_service


def test_create_store(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=['stores', 'create', '--name', 'Depot', '--code', 'DEPOT'])

    assert 'PASS Created store: Depot' in result.output
    assert db.session.query(Store).filter_by(code='DEPOT').count() == 1

    again = runner.invoke(args=['stores', 'create', '--name', 'Depot 2', '--code', 'DEPOT'])
    assert 'FAIL' in again.output


def test_create_user_rejects_weak_password(app, store):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        'users', 'create',
        '--store-id', str(store.id),
        '--username', 'weak',
        '--email', 'weak@example.com',
        '--password', 'short',
        '--role', 'employee',
    ])

    assert 'FAIL Password validation failed' in result.output
    assert db.session.query(User).filter_by(username='weak').count() == 0


def test_set_master_pin(app, manager, employee):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['users', 'set-master-pin', '--username', manager.username, '--pin', '2468'])
    assert 'PASS' in result.output
    db.session.refresh(manager)
    assert auth_service.verify_pin('2468', manager.master_pin_hash)

    result = runner.invoke(args=['users', 'set-master-pin', '--username', employee.username, '--pin', '2468'])
    assert 'cannot hold a master PIN' in result.output


def test_generate_and_list_codes(app, store, super_admin):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        'codes', 'generate',
        '--store-id', str(store.id),
        '--max-uses', '3',
        '--expires-in-hours', '48',
        '--issued-by', super_admin.username,
    ])

    assert 'PASS Registration code:' in result.output
    record = db.session.query(RegistrationCode).filter_by(store_id=store.id).one()
    assert record.max_uses == 3
    assert record.expires_at is not None

    listing = runner.invoke(args=['codes', 'list', '--store-id', str(store.id)])
    assert record.code in listing.output


def test_generate_code_requires_super_admin(app, store, manager):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        'codes', 'generate', '--store-id', str(store.id), '--issued-by', manager.username,
    ])
    assert 'FAIL' in result.output
    assert db.session.query(RegistrationCode).count() == 0


def test_list_and_unlock_devices(app, device, super_admin):
    runner = app.test_cli_runner()

    listing = runner.invoke(args=['devices', 'list', '--store-id', str(device.store_id)])
    assert device.device_id in listing.output

    device.is_locked = True
    db.session.commit()

    result = runner.invoke(args=['devices', 'unlock', device.device_id, '--actor', super_admin.username])
    assert 'PASS' in result.output
    db.session.refresh(device)
    assert device.is_locked is False
