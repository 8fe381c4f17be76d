# Overview: Service-layer operations for credentials; password and PIN hashing and staff login.

"""
Credential Service

WHY: Every management action must be attributable, and device PINs must
never be recoverable. Uses bcrypt for passwords, master PINs and device PINs.

SECURITY NOTES:
- bcrypt cost factor from BCRYPT_ROUNDS (default 12)
- Passwords: minimum 8 characters with upper, lower, digit and special char
- PINs: exactly 4-6 digits (^\\d{4,6}$)
- bcrypt.checkpw compares in constant time
"""

import re

import bcrypt
from flask import current_app

from ..errors import PinFormatInvalid
from ..extensions import db
from ..models import User, Store
from ..permissions import Role
from handheld.time_utils import utcnow


PIN_PATTERN = re.compile(r"^\d{4,6}$", re.ASCII)


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def _rounds() -> int:
    return int(current_app.config.get("BCRYPT_ROUNDS", 12))


def _hash_secret(secret: str) -> str:
    salt = bcrypt.gensalt(rounds=_rounds())
    return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("utf-8")


def _check_secret(secret: str, secret_hash: str | None) -> bool:
    if not secret or not secret_hash:
        return False
    try:
        return bcrypt.checkpw(secret.encode("utf-8"), secret_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        current_app.logger.warning("Rejected credential check against malformed hash")
        return False


# =============================================================================
# PASSWORDS
# =============================================================================

def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash the password."""
    validate_password_strength(password)
    return _hash_secret(password)


def verify_password(password: str, password_hash: str) -> bool:
    return _check_secret(password, password_hash)


# =============================================================================
# PINS
# =============================================================================

def validate_pin_format(pin) -> str:
    """
    Return the PIN if it is 4-6 ASCII digits, else raise PinFormatInvalid.

    Integers are rejected rather than converted: 0123 would silently lose
    its leading zero.
    """
    if not isinstance(pin, str) or not PIN_PATTERN.fullmatch(pin):
        raise PinFormatInvalid()
    return pin


def hash_pin(pin: str) -> str:
    """Validate and bcrypt-hash a PIN. The hash is never readable back."""
    return _hash_secret(validate_pin_format(pin))


def verify_pin(pin, pin_hash: str | None) -> bool:
    if not isinstance(pin, str):
        return False
    return _check_secret(pin, pin_hash)


# =============================================================================
# USERS
# =============================================================================

def create_user(
    username: str,
    email: str,
    password: str,
    role: str = Role.EMPLOYEE.value,
    store_id: int | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
) -> User:
    """
    Create a store user with a bcrypt password hash.

    super_admin users are not bound to a store; every other role must be.

    Raises:
        ValueError: unknown role, missing/unknown store, duplicate username/email
        PasswordValidationError: weak password
    """
    parsed = Role.parse(role)
    if parsed is None:
        raise ValueError(f"Unknown role: {role}")

    if parsed != Role.SUPER_ADMIN:
        if store_id is None:
            raise ValueError("Store users must belong to a store")
        if db.session.get(Store, store_id) is None:
            raise ValueError("Store not found")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ValueError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=parsed.value,
        store_id=store_id if parsed != Role.SUPER_ADMIN else None,
        first_name=first_name,
        last_name=last_name,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate a staff user by username/email and password.

    Returns the User and stamps last_login_at on success, None otherwise.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
