# Overview: Capability catalogue and role policy package.
# Re-exports all public APIs.

from .categories import CapabilityTier
from .definitions import (
    CAPABILITY_DEFINITIONS,
    ALL_CAPABILITIES,
    BASIC_CAPABILITIES,
    ADVANCED_CAPABILITIES,
    DEFAULT_CAPABILITIES,
)
from .roles import (
    Role,
    CapabilityPolicy,
    ROLE_CAPABILITY_POLICIES,
    ASSIGNING_ROLES,
    MASTER_PIN_ROLES,
    get_policy,
)
from .helpers import (
    get_all_capability_keys,
    get_capabilities_by_tier,
    get_capability_definition,
    validate_capability_key,
    default_capabilities,
    normalize_capabilities,
)

__all__ = [
    "CapabilityTier",
    "CAPABILITY_DEFINITIONS",
    "ALL_CAPABILITIES",
    "BASIC_CAPABILITIES",
    "ADVANCED_CAPABILITIES",
    "DEFAULT_CAPABILITIES",
    "Role",
    "CapabilityPolicy",
    "ROLE_CAPABILITY_POLICIES",
    "ASSIGNING_ROLES",
    "MASTER_PIN_ROLES",
    "get_policy",
    "get_all_capability_keys",
    "get_capabilities_by_tier",
    "get_capability_definition",
    "validate_capability_key",
    "default_capabilities",
    "normalize_capabilities",
]
