"""
Pytest fixtures for handheld provisioning tests.

Provides test database setup, store/user factories, a registered device and
a test client.
"""

import pytest

from handheld import create_app
from handheld.extensions import db
from handheld.models import Store
from handheld.services import access_service, auth_service


PASSWORD = "Password123!"

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'BCRYPT_ROUNDS': 4,
    'LOG_LEVEL': 'WARNING',
    'MAX_FAILED_PIN_ATTEMPTS': 3,
    'PIN_LOCKOUT_MINUTES': 15,
}


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        db.session.rollback()
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_store(name: str, code: str) -> Store:
    store = Store(name=name, code=code, is_active=True)
    db.session.add(store)
    db.session.commit()
    return store


def make_user(username: str, role: str, store=None):
    return auth_service.create_user(
        username=username,
        email=f"{username}@example.com",
        password=PASSWORD,
        role=role,
        store_id=store.id if store is not None else None,
    )


@pytest.fixture(scope='function')
def store(db_session):
    return make_store("Main Street", "MAIN")


@pytest.fixture(scope='function')
def other_store(db_session):
    return make_store("Harbour Road", "HARB")


@pytest.fixture(scope='function')
def super_admin(db_session):
    return make_user("root", "super_admin")


@pytest.fixture(scope='function')
def admin(store):
    return make_user("store_admin", "admin", store)


@pytest.fixture(scope='function')
def manager(store):
    return make_user("store_manager", "manager", store)


@pytest.fixture(scope='function')
def employee(store):
    return make_user("clerk", "employee", store)


@pytest.fixture(scope='function')
def other_employee(other_store):
    return make_user("harbour_clerk", "employee", other_store)


@pytest.fixture(scope='function')
def code(store, super_admin):
    """Single-use registration code for the main store."""
    return access_service.generate_code(super_admin, store.id, max_uses=1)


@pytest.fixture(scope='function')
def device(store, super_admin):
    """A freshly registered, unassigned device in the main store."""
    record = access_service.generate_code(super_admin, store.id, max_uses=1)
    return access_service.register_device(record.code, device_id="HH-TEST-0001", device_name="Dock scanner")


@pytest.fixture(scope='function')
def employee_device(device, employee, manager):
    """Device assigned to the employee with PIN 1234 and default capabilities."""
    access_service.assign_user(manager, device.device_id, employee.id, pin="1234")
    return device


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def super_admin_headers(client, super_admin):
    return auth_headers(get_auth_token(client, super_admin.username))


@pytest.fixture(scope='function')
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, manager.username))


@pytest.fixture(scope='function')
def employee_headers(client, employee):
    return auth_headers(get_auth_token(client, employee.username))
