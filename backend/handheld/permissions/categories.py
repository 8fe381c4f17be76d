# Overview: Capability tier constants for grouping device capabilities.


class CapabilityTier:
    """Capability tiers; employees may only ever hold BASIC capabilities."""
    BASIC = "BASIC"
    ADVANCED = "ADVANCED"
