# Overview: Device capability definitions and the default capability set.

"""
Handheld Device Capabilities

WHY: A device/user pair is granted a fixed set of independent boolean
capabilities. Keys are part of the wire format (device clients send and
receive them verbatim) and must never be renamed.

Each capability is defined as: (key, name, description, tier)
"""

from .categories import CapabilityTier


CAPABILITY_DEFINITIONS = [
    # BASIC CAPABILITIES
    (
        "can_scan_barcode",
        "Scan Barcodes",
        "Scan product barcodes and look up items",
        CapabilityTier.BASIC
    ),
    (
        "can_mark_damaged",
        "Mark Damaged",
        "Flag received or shelved stock as damaged",
        CapabilityTier.BASIC
    ),
    (
        "can_receive_inventory",
        "Receive Inventory",
        "Record incoming stock against deliveries",
        CapabilityTier.BASIC
    ),
    (
        "can_adjust_inventory",
        "Adjust Inventory",
        "Correct on-hand quantities",
        CapabilityTier.BASIC
    ),

    # ADVANCED CAPABILITIES
    (
        "can_create_orders",
        "Create Orders",
        "Create inventory orders for vendors",
        CapabilityTier.ADVANCED
    ),
    (
        "can_approve_orders",
        "Approve Orders",
        "Approve pending inventory orders",
        CapabilityTier.ADVANCED
    ),
    (
        "can_view_reports",
        "View Reports",
        "Open store reports on the device",
        CapabilityTier.ADVANCED
    ),
    (
        "can_edit_products",
        "Edit Products",
        "Change product details and prices",
        CapabilityTier.ADVANCED
    ),
    (
        "can_manage_devices",
        "Manage Devices",
        "Manage other handheld devices of the store",
        CapabilityTier.ADVANCED
    ),
    (
        "can_transfer_inventory",
        "Transfer Inventory",
        "Move stock between stores",
        CapabilityTier.ADVANCED
    ),
]

ALL_CAPABILITIES = frozenset(cap[0] for cap in CAPABILITY_DEFINITIONS)

BASIC_CAPABILITIES = frozenset(
    cap[0] for cap in CAPABILITY_DEFINITIONS if cap[3] == CapabilityTier.BASIC
)

ADVANCED_CAPABILITIES = frozenset(
    cap[0] for cap in CAPABILITY_DEFINITIONS if cap[3] == CapabilityTier.ADVANCED
)

# Freshly registered or unassigned devices: basic on, advanced off
DEFAULT_CAPABILITIES = {
    cap[0]: cap[3] == CapabilityTier.BASIC for cap in CAPABILITY_DEFINITIONS
}
