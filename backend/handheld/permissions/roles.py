# Overview: Store user roles and the role -> capability policy table.

"""
Role Capability Policy

WHY: Which capabilities a role may hold is a server-side policy, not a
property of whichever form the admin used. The evaluator looks the role up
in ROLE_CAPABILITY_POLICIES and applies it to the stored flags.

POLICY:
- forced:  capabilities that are always effective, whatever is stored
- allowed: capabilities that may be effective when stored as true
"""

from dataclasses import dataclass
from enum import Enum

from .definitions import ALL_CAPABILITIES, BASIC_CAPABILITIES

class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"

    @classmethod
    def parse(cls, value) -> "Role | None":
        """Return the Role for a role string, or None when unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

@dataclass(frozen=True)
class CapabilityPolicy:
    allowed: frozenset
    forced: frozenset = frozenset()

PRIVILEGED_POLICY = CapabilityPolicy(allowed=ALL_CAPABILITIES, forced=ALL_CAPABILITIES)
PASS_THROUGH_POLICY = CapabilityPolicy(allowed=ALL_CAPABILITIES)

ROLE_CAPABILITY_POLICIES = {
    Role.SUPER_ADMIN: PRIVILEGED_POLICY,
    Role.ADMIN: PRIVILEGED_POLICY,
    Role.MANAGER: PASS_THROUGH_POLICY,
    Role.EMPLOYEE: CapabilityPolicy(allowed=BASIC_CAPABILITIES),
}

# Roles that may manage device assignments
ASSIGNING_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN, Role.MANAGER})

# Roles that may authenticate with their master PIN when no device PIN is set
MASTER_PIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN, Role.MANAGER})


def get_policy(role) -> CapabilityPolicy:
    """Policy for a role; unknown roles pass stored flags through unchanged."""
    parsed = Role.parse(role)
    if parsed is None:
        return PASS_THROUGH_POLICY
    return ROLE_CAPABILITY_POLICIES[parsed]
