"""
Event System for dashboard notifications via Redis pub/sub.

Modules:
- event_types.py: Event type constants
- event_schema.py: Event dataclass with validation
- channels.py: Channel naming functions
- redis_pool.py: Connection pool management
- publisher.py: Core publish_event with retry
- domain_publishers.py: Fire-and-forget order event publishers
"""

from .event_types import (
    ORDER_CREATED,
    ORDER_STATUS_CHANGED,
    ORDER_DELETED,
    ORDER_EVENT_TYPES,
    MAX_EVENT_SIZE,
)
from .event_schema import Event
from .channels import channel_tenant_orders
from .redis_pool import get_redis_pool, close_redis_pool
from .publisher import publish_event, calculate_retry_delay_with_jitter
from .domain_publishers import order_snapshot, publish_order_event, publish_order_change

__all__ = [
    # Event types
    "ORDER_CREATED",
    "ORDER_STATUS_CHANGED",
    "ORDER_DELETED",
    "ORDER_EVENT_TYPES",
    "MAX_EVENT_SIZE",
    # Schema
    "Event",
    # Channels
    "channel_tenant_orders",
    # Redis pool
    "get_redis_pool",
    "close_redis_pool",
    # Publishing
    "publish_event",
    "calculate_retry_delay_with_jitter",
    "order_snapshot",
    "publish_order_event",
    "publish_order_change",
]
