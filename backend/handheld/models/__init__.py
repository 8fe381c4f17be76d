from .tenancy import Store
from .auth import User, SessionToken
from .devices import RegistrationCode, Device, DeviceSession
from .security import SecurityEvent

__all__ = [
    'Store',
    'User', 'SessionToken',
    'RegistrationCode', 'Device', 'DeviceSession',
    'SecurityEvent',
]
