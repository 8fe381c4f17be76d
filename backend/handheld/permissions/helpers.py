# Overview: Utility functions for capability lookups and validation.

from ..errors import CapabilityInvalid
from .definitions import CAPABILITY_DEFINITIONS, DEFAULT_CAPABILITIES


def get_all_capability_keys():
    """Get list of all capability keys, in catalogue order."""
    return [cap[0] for cap in CAPABILITY_DEFINITIONS]


def get_capabilities_by_tier(tier):
    """Get all capabilities in a tier."""
    return [cap for cap in CAPABILITY_DEFINITIONS if cap[3] == tier]


def get_capability_definition(key):
    """Get full definition for a capability key."""
    for cap in CAPABILITY_DEFINITIONS:
        if cap[0] == key:
            return {
                "key": cap[0],
                "name": cap[1],
                "description": cap[2],
                "tier": cap[3],
            }
    return None


def validate_capability_key(key):
    """Check if a capability key is valid."""
    return key in get_all_capability_keys()


def default_capabilities() -> dict:
    """A fresh copy of the default capability set."""
    return dict(DEFAULT_CAPABILITIES)


def normalize_capabilities(raw, base: dict | None = None) -> dict:
    """
    Merge a partial capability mapping over `base` (default set if omitted).

    Raises CapabilityInvalid for unknown keys or non-boolean values. Stored
    flags are kept as given; role clamping happens at evaluation time.
    """
    result = dict(base) if base is not None else default_capabilities()
    if raw is None:
        return result
    if not isinstance(raw, dict):
        raise CapabilityInvalid("Capabilities must be an object of boolean flags")

    for key, value in raw.items():
        if not validate_capability_key(key):
            raise CapabilityInvalid(f"Unknown capability: {key}")
        if not isinstance(value, bool):
            raise CapabilityInvalid(f"Capability {key} must be true or false")
        result[key] = value
    return result
