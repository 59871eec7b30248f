# Overview: Default order item workflow statuses and per-role transition graph.
#
# These are seed data only. At runtime the graph is read from the
# role_item_transitions table, so a deployment can reshape it without a release.

# (status_key, label, status_order, is_terminal, color)
DEFAULT_WORKFLOW_STATUSES = [
    ("processing", "Processing", 1, False, "yellow"),
    ("ordered", "Ordered", 2, False, "blue"),
    ("shipped_to_wh", "Shipped to WH", 3, False, "indigo"),
    ("received_to_wh", "Received to WH", 4, False, "cyan"),
    ("shipped_to_leb", "Shipped to LEB", 5, False, "purple"),
    ("received_to_leb", "Received to LEB", 6, False, "violet"),
    ("delivered_to_customer", "Delivered to Customer", 7, False, "green"),
    ("cancelled", "Cancelled", 90, True, "red"),
    ("refunded", "Refunded", 91, True, "orange"),
]

# Conventionally terminal keys: excluded from the order cascade and mirrored
# into the legacy numeric item status.
CANCELLED_KEY = "cancelled"
REFUNDED_KEY = "refunded"
TERMINAL_KEYS = frozenset({CANCELLED_KEY, REFUNDED_KEY})

_FORWARD = [
    ("processing", "ordered", False),
    ("ordered", "shipped_to_wh", True),
    ("shipped_to_wh", "received_to_wh", False),
    ("received_to_wh", "shipped_to_leb", True),
    ("shipped_to_leb", "received_to_leb", False),
    ("received_to_leb", "delivered_to_customer", False),
]

_CANCELLABLE = ["processing", "ordered", "shipped_to_wh", "received_to_wh"]

# role_key -> [(from_key, to_key, requires_tracking_number)]
DEFAULT_ROLE_TRANSITIONS = {
    "super_admin": (
        _FORWARD
        + [(key, CANCELLED_KEY, False) for key in _CANCELLABLE]
        + [("delivered_to_customer", REFUNDED_KEY, False), (CANCELLED_KEY, "processing", False)]
    ),
    "order_manager": (
        _FORWARD
        + [(key, CANCELLED_KEY, False) for key in _CANCELLABLE]
        + [("delivered_to_customer", REFUNDED_KEY, False)]
    ),
    "warehouse": [edge for edge in _FORWARD if edge[0] != "processing"],
    "viewer": [],
}
