# Overview: Store/User directory; resolves stores, users, roles, store access and master PINs.

"""
Store/User Directory

WHY: Device provisioning needs to know who a user is, which store they
belong to and what role they hold, but does not own any of that. Every
lookup goes through here so that cross-store access is rejected at one
boundary.

MASTER PIN: admins, managers and super admins may log in on a device that
has no device PIN using their user-level master PIN. The directory stores
it (bcrypt) and verifies it; the gateway only asks yes/no.
"""

from ..errors import StoreNotFound, Unauthorized, UserNotFound
from ..extensions import db
from ..models import Store, User
from ..permissions import Role
from . import auth_service


def get_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if not store or not store.is_active:
        raise StoreNotFound()
    return store


def get_user(user_id: int, *, active_only: bool = True) -> User:
    user = db.session.get(User, user_id)
    if not user or (active_only and not user.is_active):
        raise UserNotFound()
    return user


def resolve_role(user: User) -> str:
    """The user's role string; unknown roles are passed on as-is."""
    parsed = user.role_enum
    return parsed.value if parsed else user.role


def is_super_admin(user: User) -> bool:
    return user.role_enum == Role.SUPER_ADMIN


def ensure_store_access(actor: User, store_id: int) -> Store:
    """
    Resolve a store the actor may act on.

    super_admin: any active store. Everyone else: only their own store.
    """
    store = get_store(store_id)
    if is_super_admin(actor):
        return store
    if actor.store_id != store.id:
        raise Unauthorized("Access denied to this store")
    return store


def ensure_user_in_store(user: User, store_id: int) -> None:
    """Store users can only be bound to devices of their own store."""
    if is_super_admin(user):
        return
    if user.store_id != store_id:
        raise Unauthorized("User does not belong to this store")


def list_assignable_users(store_id: int, *, employees_only: bool = False) -> list[User]:
    """Active users of a store that a device can be assigned to."""
    get_store(store_id)
    query = db.session.query(User).filter(
        User.store_id == store_id,
        User.is_active.is_(True),
        User.role != Role.SUPER_ADMIN.value,
    )
    if employees_only:
        query = query.filter(User.role == Role.EMPLOYEE.value)
    return query.order_by(User.username).all()


# =============================================================================
# MASTER PIN
# =============================================================================

def set_master_pin(user_id: int, pin: str) -> User:
    """Set or replace a user's master PIN (4-6 digits)."""
    user = get_user(user_id)
    user.master_pin_hash = auth_service.hash_pin(pin)
    db.session.commit()
    return user


def clear_master_pin(user_id: int) -> User:
    user = get_user(user_id, active_only=False)
    user.master_pin_hash = None
    db.session.commit()
    return user


def has_master_pin(user: User) -> bool:
    return user.master_pin_hash is not None


def verify_master_pin(user: User, pin: str) -> bool:
    """False when the user has no master PIN or the PIN does not match."""
    if not has_master_pin(user):
        return False
    return auth_service.verify_pin(pin, user.master_pin_hash)
