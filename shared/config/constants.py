"""
Centralized constants for the backend application.
Avoids magic strings for statuses, order types and bridge action codes.

Usage:
    from shared.config.constants import OrderStatus, PaymentStatus, ORDER_TRANSITIONS

    if status in OrderStatus.TERMINAL:
        ...
"""

from typing import Final


# =============================================================================
# Order Status Constants
# =============================================================================


class OrderStatus:
    """Kitchen/service lifecycle of an order."""

    PENDING: Final[str] = "pending"
    CONFIRMED: Final[str] = "confirmed"
    PREPARING: Final[str] = "preparing"
    READY: Final[str] = "ready"
    SERVED: Final[str] = "served"
    COMPLETED: Final[str] = "completed"
    CANCELLED: Final[str] = "cancelled"

    ALL: Final[list[str]] = [PENDING, CONFIRMED, PREPARING, READY, SERVED, COMPLETED, CANCELLED]
    TERMINAL: Final[frozenset[str]] = frozenset({COMPLETED, CANCELLED})
    CANCELLABLE: Final[frozenset[str]] = frozenset({PENDING, CONFIRMED})
    # Payment can only be approved once food has left the kitchen
    PAYABLE: Final[frozenset[str]] = frozenset({READY, SERVED})
    KITCHEN_VISIBLE: Final[list[str]] = [PENDING, CONFIRMED, PREPARING, READY]


class PaymentStatus:
    """Payment lifecycle of an order."""

    PENDING: Final[str] = "Pending"
    REQUESTED: Final[str] = "Requested"
    APPROVED: Final[str] = "Approved"
    FAILED: Final[str] = "Failed"
    REFUNDED: Final[str] = "Refunded"

    ALL: Final[list[str]] = [PENDING, REQUESTED, APPROVED, FAILED, REFUNDED]
    TERMINAL: Final[frozenset[str]] = frozenset({APPROVED, REFUNDED})
    # An order in one of these states keeps the session bill open
    UNSETTLED: Final[frozenset[str]] = frozenset({PENDING, REQUESTED, FAILED})


class OrderType:
    """Origin of an order."""

    REGULAR: Final[str] = "regular"
    ADDON: Final[str] = "addon"
    ONLINE: Final[str] = "online"

    ALL: Final[list[str]] = [REGULAR, ADDON, ONLINE]


class Platform:
    """Delivery platforms relayed by the aggregator bridge."""

    ZOMATO: Final[str] = "zomato"
    SWIGGY: Final[str] = "swiggy"

    ALL: Final[list[str]] = [ZOMATO, SWIGGY]


class PendingAction:
    """
    Bridge action codes.

    Odd codes are requests waiting for the bridge client, even codes are the
    confirmations it posts back.
    """

    NONE: Final[int] = 0
    ACCEPT: Final[int] = 1
    ACCEPTED: Final[int] = 2
    MARK_READY: Final[int] = 3
    READY: Final[int] = 4
    REJECT: Final[int] = 5
    REJECTED: Final[int] = 6

    REQUESTS: Final[frozenset[int]] = frozenset({ACCEPT, MARK_READY, REJECT})


# =============================================================================
# Status Transitions
# =============================================================================

# Valid order status transitions (from -> [allowed to states])
ORDER_TRANSITIONS: Final[dict[str, list[str]]] = {
    OrderStatus.PENDING: [OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.PREPARING],
    OrderStatus.CONFIRMED: [OrderStatus.PREPARING, OrderStatus.CANCELLED],
    OrderStatus.PREPARING: [OrderStatus.READY],
    OrderStatus.READY: [OrderStatus.SERVED],
    OrderStatus.SERVED: [OrderStatus.COMPLETED],
    OrderStatus.COMPLETED: [],  # Terminal state
    OrderStatus.CANCELLED: [],  # Terminal state
}

# Valid payment status transitions (from -> [allowed to states])
PAYMENT_TRANSITIONS: Final[dict[str, list[str]]] = {
    PaymentStatus.PENDING: [PaymentStatus.REQUESTED, PaymentStatus.APPROVED, PaymentStatus.FAILED],
    PaymentStatus.REQUESTED: [PaymentStatus.APPROVED, PaymentStatus.FAILED],
    # A failed attempt can be retried
    PaymentStatus.FAILED: [PaymentStatus.REQUESTED, PaymentStatus.APPROVED],
    PaymentStatus.APPROVED: [],  # Terminal state
    PaymentStatus.REFUNDED: [],  # Terminal state
}

# Confirmation codes posted by the bridge client -> local order status
CONFIRMED_ACTION_STATUS: Final[dict[int, str]] = {
    PendingAction.ACCEPTED: OrderStatus.CONFIRMED,
    PendingAction.READY: OrderStatus.READY,
    PendingAction.REJECTED: OrderStatus.CANCELLED,
}


# =============================================================================
# Settings keys
# =============================================================================


class SettingKeys:
    """Keys read through the tenant settings capability."""

    TAX_RATE: Final[str] = "tax_rate"
    DISCOUNT_RATE: Final[str] = "discount_rate"


# =============================================================================
# Validation Constants
# =============================================================================


class Limits:
    """Validation limits."""

    MIN_QUANTITY: Final[int] = 1
    MAX_QUANTITY: Final[int] = 99

    MAX_ITEMS_PER_ORDER: Final[int] = 50
    MAX_NAME_LENGTH: Final[int] = 200
    MAX_INSTRUCTIONS_LENGTH: Final[int] = 500
    MAX_PHONE_LENGTH: Final[int] = 32

    # Order numbers: YYYYMMDD + 4-digit counter
    ORDER_COUNTER_DIGITS: Final[int] = 4
    ORDER_COUNTER_MAX: Final[int] = 9999

    DEFAULT_PAGE_SIZE: Final[int] = 100
    MAX_PAGE_SIZE: Final[int] = 500
