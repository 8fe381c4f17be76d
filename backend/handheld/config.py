# backend/handheld/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/handheld.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///handheld.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # bcrypt cost for passwords, master PINs and device PINs
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Registration codes
    REGISTRATION_CODE_LENGTH = _env_int("REGISTRATION_CODE_LENGTH", 8)

    # Device sessions issued by PIN login
    DEVICE_SESSION_ABSOLUTE_HOURS = _env_int("DEVICE_SESSION_ABSOLUTE_HOURS", 24)
    DEVICE_SESSION_IDLE_HOURS = _env_int("DEVICE_SESSION_IDLE_HOURS", 8)

    # Staff (management UI) sessions
    SESSION_ABSOLUTE_HOURS = _env_int("SESSION_ABSOLUTE_HOURS", 24)
    SESSION_IDLE_HOURS = _env_int("SESSION_IDLE_HOURS", 2)

    # Device PIN throttling
    MAX_FAILED_PIN_ATTEMPTS = _env_int("MAX_FAILED_PIN_ATTEMPTS", 5)
    PIN_LOCKOUT_MINUTES = _env_int("PIN_LOCKOUT_MINUTES", 15)

    # Comma-separated origins allowed to call the API from a browser
    CORS_ORIGINS = os.environ.get(
        "CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
    )
