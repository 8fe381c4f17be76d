# Overview: Error taxonomy for device provisioning and access control.

"""
Every failure surfaced to a caller is a DeviceAccessError subclass.

WHY: Handheld clients and management UIs must be able to tell failures apart
(an exhausted code is not an expired code). Each class carries a stable
`code` string for clients and the HTTP status the routes answer with.

None of these are fatal: a failed mutation is rolled back in full and the
caller decides what to show.
"""


class DeviceAccessError(Exception):
    """Base class for all user-facing provisioning/access errors."""
    code = "DeviceAccessError"
    http_status = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(DeviceAccessError):
    code = "ValidationError"
    http_status = 400
    default_message = "Invalid request"


# =============================================================================
# AUTHORIZATION
# =============================================================================

class Unauthorized(DeviceAccessError):
    code = "Unauthorized"
    http_status = 403
    default_message = "Not authorized"


class AuthenticationFailed(Unauthorized):
    code = "AuthenticationFailed"
    http_status = 401
    default_message = "Invalid credentials"


class DeviceUnassigned(Unauthorized):
    code = "DeviceUnassigned"
    http_status = 403
    default_message = "No user assigned to this device. Please contact administrator."


class TooManyAttempts(Unauthorized):
    code = "TooManyAttempts"
    http_status = 429
    default_message = "Too many failed PIN attempts. Try again later."

    def __init__(self, message: str | None = None, retry_after_seconds: int | None = None):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


# =============================================================================
# REGISTRATION CODES
# =============================================================================

class CodeNotFound(DeviceAccessError):
    code = "CodeNotFound"
    http_status = 404
    default_message = "Invalid registration code. Please check the code and try again."


class CodeExpired(DeviceAccessError):
    code = "CodeExpired"
    http_status = 410
    default_message = "Registration code has expired. Please request a new code."


class CodeExhausted(DeviceAccessError):
    code = "CodeExhausted"
    http_status = 409
    default_message = "Registration code has already been used. Please request a new code."


class CodeInactive(DeviceAccessError):
    code = "CodeInactive"
    http_status = 409
    default_message = "Registration code has been deactivated. Please contact administrator for a new code."


class DeletionBlocked(DeviceAccessError):
    code = "DeletionBlocked"
    http_status = 409
    default_message = "Cannot delete a code that has been used"


# =============================================================================
# PINS AND CAPABILITIES
# =============================================================================

class PinFormatInvalid(DeviceAccessError):
    code = "PinFormatInvalid"
    http_status = 400
    default_message = "PIN must be a 4-6 digit number"


class PinRequiredForRole(DeviceAccessError):
    code = "PinRequiredForRole"
    http_status = 400
    default_message = "Device PIN is required for employee users"


class CapabilityInvalid(DeviceAccessError):
    code = "CapabilityInvalid"
    http_status = 400
    default_message = "Unknown or malformed capability"


# =============================================================================
# DEVICES, USERS, STORES
# =============================================================================

class DeviceNotFound(DeviceAccessError):
    code = "DeviceNotFound"
    http_status = 404
    default_message = "Device not found"


class DeviceLocked(DeviceAccessError):
    code = "DeviceLocked"
    http_status = 423
    default_message = "Device is locked. Please contact administrator."


class DeviceInactive(DeviceAccessError):
    code = "DeviceInactive"
    http_status = 403
    default_message = "Device is inactive. Please contact administrator."


class DeviceAlreadyRegistered(DeviceAccessError):
    code = "DeviceAlreadyRegistered"
    http_status = 409
    default_message = (
        "Device is already registered. Please contact administrator to reset device registration."
    )


class AssignmentConflict(DeviceAccessError):
    code = "AssignmentConflict"
    http_status = 409
    default_message = "Device was modified concurrently. Reload and try again."


class UserNotFound(DeviceAccessError):
    code = "UserNotFound"
    http_status = 404
    default_message = "User not found or inactive"


class StoreNotFound(DeviceAccessError):
    code = "StoreNotFound"
    http_status = 404
    default_message = "Store not found"
