# Overview: Flask CLI command groups for bootstrap, provisioning and inspection.

# backend/handheld/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (development; use `flask db upgrade` elsewhere).
#
# Stores and users:
# - python -m flask stores create --name "Main Street" --code "MAIN"
# - python -m flask users create --username root --email root@example.com --role super_admin
#   Create a user (prompts if options are omitted). Store users need --store-id.
# - python -m flask users set-master-pin --username manager1
#   Set a master PIN for a super_admin/admin/manager (prompts for the PIN).
#
# Registration codes:
# - python -m flask codes generate --store-id 1 --max-uses 5 --expires-in-hours 48 --issued-by root
#   Issue a code as the given super admin.
# - python -m flask codes list --store-id 1 [--all]
#
# Devices:
# - python -m flask devices list --store-id 1 [--all]
# - python -m flask devices unlock HH-4F2A9C01B7D3 --actor root

from datetime import timedelta

import click
from flask.cli import with_appcontext

from .errors import DeviceAccessError
from .extensions import db
from .models import Store, User
from .permissions import MASTER_PIN_ROLES, Role
from .services import access_service, directory_service, registration_code_service, device_service
from .services.auth_service import create_user, PasswordValidationError
from .time_utils import utcnow, to_utc_z


def _user_by_username(username: str) -> User | None:
    return db.session.query(User).filter_by(username=username).first()


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@click.group('stores')
def stores_group():
    """Store bootstrap commands."""


@stores_group.command('create')
@click.option('--name', required=True, help='Store name')
@click.option('--code', help='Short code (unique)')
@with_appcontext
def create_store_cli(name, code):
    """Create a store."""
    if code and db.session.query(Store).filter_by(code=code).first():
        click.echo(f"FAIL Store code '{code}' already exists")
        return

    store = Store(name=name, code=code)
    db.session.add(store)
    db.session.commit()
    click.echo(f"PASS Created store: {store.name} (ID: {store.id})")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--store-id', type=int, help='Store ID (not used for super_admin)')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([r.value for r in Role]), prompt=True, help='Role')
@click.option('--first-name', help='First name')
@click.option('--last-name', help='Last name')
@with_appcontext
def create_user_cli(store_id, username, email, password, role, first_name, last_name):
    """
    Create a new user interactively.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            store_id=store_id,
            first_name=first_name,
            last_name=last_name,
        )
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        if user.store_id:
            click.echo(f"     Store ID: {user.store_id}")
        click.echo("SECURITY Password securely hashed with bcrypt")

    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('set-master-pin')
@click.option('--username', prompt=True, help='Username')
@click.option('--pin', prompt=True, hide_input=True, confirmation_prompt=True, help='4-6 digit PIN')
@with_appcontext
def set_master_pin_cli(username, pin):
    """Set the master PIN used on devices that have no device PIN."""
    user = _user_by_username(username)
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return
    if user.role_enum not in MASTER_PIN_ROLES:
        click.echo(f"FAIL Role '{user.role}' cannot hold a master PIN")
        return

    try:
        directory_service.set_master_pin(user.id, pin)
        click.echo(f"PASS Master PIN set for {username}")
    except DeviceAccessError as e:
        click.echo(f"FAIL {e.message}")


@click.group('codes')
def codes_group():
    """Registration code commands."""


@codes_group.command('generate')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--max-uses', type=int, default=1, show_default=True, help='Devices the code may register')
@click.option('--expires-in-hours', type=int, help='Expiry, in hours from now')
@click.option('--notes', help='Free-text note')
@click.option('--issued-by', 'issued_by', required=True, help='Username of the issuing super admin')
@with_appcontext
def generate_code_cli(store_id, max_uses, expires_in_hours, notes, issued_by):
    """Issue a registration code."""
    actor = _user_by_username(issued_by)
    if not actor:
        click.echo(f"FAIL User '{issued_by}' not found")
        return

    expires_at = utcnow() + timedelta(hours=expires_in_hours) if expires_in_hours else None

    try:
        record = access_service.generate_code(
            actor, store_id, max_uses=max_uses, expires_at=expires_at, notes=notes
        )
    except DeviceAccessError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Registration code: {record.code}")
    click.echo(f"     Store ID: {record.store_id}  Max uses: {record.max_uses}  "
               f"Expires: {to_utc_z(record.expires_at) or 'never'}")


@codes_group.command('list')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--all', 'include_used', is_flag=True, help='Include exhausted codes')
@with_appcontext
def list_codes_cli(store_id, include_used):
    """List registration codes of a store."""
    codes = registration_code_service.list_for_store(store_id, include_used=include_used)

    if not codes:
        click.echo("No registration codes found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Code':<12} {'Uses':<10} {'Active':<8} {'Expires':<22} {'Notes'}")
    click.echo("="*80)

    for c in codes:
        uses = f"{c.current_uses}/{c.max_uses}"
        active_str = "Yes" if c.is_active else "No"
        expires = to_utc_z(c.expires_at) if c.expires_at else "never"
        click.echo(f"{c.id:<5} {c.code:<12} {uses:<10} {active_str:<8} {expires:<22} {c.notes or ''}")

    click.echo("="*80 + "\n")


@click.group('devices')
def devices_group():
    """Device inspection and recovery commands."""


@devices_group.command('list')
@click.option('--store-id', type=int, required=True, help='Store ID')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated devices')
@with_appcontext
def list_devices_cli(store_id, include_inactive):
    """List devices of a store."""
    devices = device_service.list_for_store(store_id, include_inactive=include_inactive)

    if not devices:
        click.echo("No devices found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'Device ID':<22} {'Name':<28} {'Active':<8} {'Locked':<8} {'User':<6} {'Last seen'}")
    click.echo("="*100)

    for d in devices:
        active_str = "Yes" if d.is_active else "No"
        locked_str = "Yes" if d.is_locked else "No"
        user_str = str(d.assigned_user_id) if d.assigned_user_id else "-"
        last_seen = to_utc_z(d.last_seen_at) if d.last_seen_at else "never"
        click.echo(f"{d.device_id:<22} {d.device_name[:27]:<28} {active_str:<8} {locked_str:<8} {user_str:<6} {last_seen}")

    click.echo("="*100 + "\n")


@devices_group.command('unlock')
@click.argument('device_id')
@click.option('--actor', required=True, help='Username of the super admin unlocking the device')
@with_appcontext
def unlock_device_cli(device_id, actor):
    """Unlock a device (e.g. after it was locked as lost and found again)."""
    user = _user_by_username(actor)
    if not user:
        click.echo(f"FAIL User '{actor}' not found")
        return

    try:
        access_service.unlock_device(user, device_id)
        click.echo(f"PASS Device {device_id} unlocked")
    except DeviceAccessError as e:
        click.echo(f"FAIL {e.message}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(users_group)
    app.cli.add_command(codes_group)
    app.cli.add_command(devices_group)
