"""
Aggregator status vocabulary -> local order status.

Zomato reports the dashboard bucket a summary was listed under, Swiggy a
flat status string; both map onto the same lifecycle.
"""

from shared.config.constants import OrderStatus

STATUS_MAP: dict[str, str] = {
    # Zomato buckets
    "new_orders": OrderStatus.PENDING,
    "preparing_orders": OrderStatus.PREPARING,
    "ready_orders": OrderStatus.READY,
    "dispatched_orders": OrderStatus.COMPLETED,
    "completed_orders": OrderStatus.COMPLETED,
    # Platform states
    "PLACED": OrderStatus.PENDING,
    "ACCEPTED": OrderStatus.CONFIRMED,
    "PREPARING": OrderStatus.PREPARING,
    "FOOD_READY": OrderStatus.READY,
    "READY": OrderStatus.READY,
    "DISPATCHED": OrderStatus.COMPLETED,
    "DELIVERED": OrderStatus.COMPLETED,
    "CANCELLED": OrderStatus.CANCELLED,
    "REJECTED": OrderStatus.CANCELLED,
}


def map_status(raw_status: str | None) -> str:
    """Local status for a raw aggregator status; unknown values are pending."""
    if not raw_status:
        return OrderStatus.PENDING
    return STATUS_MAP.get(raw_status, OrderStatus.PENDING)
