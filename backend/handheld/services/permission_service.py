# Overview: Capability evaluation; applies the role policy to stored device capabilities.

"""
Permission Evaluator

WHY: What a device/user pair may do is decided on the server from the
stored capability flags and the user's role, never by which checkboxes a
form happened to enable.

DESIGN PRINCIPLES:
- Pure and total: no database access, no failure modes
- Fail closed: a flag missing from the stored set reads as False
- Never cached: the gateway calls evaluate() on every authorization check
- Stored flags keep the admin's raw intent; clamping happens only here

ROLE POLICY (see permissions/roles.py):
- admin, super_admin: every capability, whatever is stored
- employee: stored flags, advanced ones forced off
- manager and unknown roles: stored flags unchanged
"""

from ..permissions import (
    get_all_capability_keys,
    get_capabilities_by_tier,
    get_capability_definition,
    get_policy,
)


def evaluate(role, stored: dict | None) -> dict:
    """
    Effective capability set for a role and a stored capability set.

    Returns a new dict with all ten keys.
    """
    policy = get_policy(role)
    stored = stored or {}

    effective = {}
    for key in get_all_capability_keys():
        if key in policy.forced:
            effective[key] = True
        elif key in policy.allowed:
            effective[key] = stored.get(key) is True
        else:
            effective[key] = False
    return effective


def has_capability(role, stored: dict | None, capability: str) -> bool:
    return evaluate(role, stored).get(capability, False)


def capabilities_for_role(role) -> list[str]:
    """Capability keys a role may hold at all (forced or allowed)."""
    policy = get_policy(role)
    return [key for key in get_all_capability_keys() if key in policy.allowed or key in policy.forced]


def describe_capabilities(role=None, tier=None) -> list[dict]:
    """
    Capability catalogue for management screens.

    With a tier, only that tier's capabilities are listed. With a role, each
    entry also says whether the role may hold it and whether the role holds
    it regardless of the stored flag.
    """
    if tier is None:
        keys = get_all_capability_keys()
    else:
        keys = [cap[0] for cap in get_capabilities_by_tier(tier)]

    policy = get_policy(role) if role is not None else None
    entries = []
    for key in keys:
        entry = get_capability_definition(key)
        if policy is not None:
            entry["allowed"] = key in policy.allowed or key in policy.forced
            entry["forced"] = key in policy.forced
        entries.append(entry)
    return entries
