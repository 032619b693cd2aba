"""
Event Type Constants.

Defines the order event types published for the staff dashboard.
"""

# =============================================================================
# Order lifecycle events
# =============================================================================

ORDER_CREATED = "ORDER_CREATED"
ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"  # order_status or payment_status changed
ORDER_DELETED = "ORDER_DELETED"  # cancelled addon order removed

ORDER_EVENT_TYPES = frozenset({ORDER_CREATED, ORDER_STATUS_CHANGED, ORDER_DELETED})

# =============================================================================
# Size limits
# =============================================================================

# Max event size in bytes; larger payloads are rejected before publishing
MAX_EVENT_SIZE = 64 * 1024
