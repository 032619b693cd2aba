"""
Domain-Specific Event Publishing Functions.

Order events are fire-and-forget: a Redis outage is logged and never fails
the order operation that triggered it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from shared.config.logging import get_logger
from shared.config.settings import settings
from .channels import channel_tenant_orders
from .event_schema import Event
from .publisher import publish_event
from .redis_pool import get_redis_pool

if TYPE_CHECKING:
    from rest_api.models import Order

logger = get_logger(__name__)


def order_snapshot(order: "Order") -> dict[str, Any]:
    """The fields dashboards render without re-fetching the order."""
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "order_type": order.order_type,
        "order_status": order.order_status,
        "payment_status": order.payment_status,
        "total_amount": str(order.total_amount),
        "external_platform": order.external_platform,
    }


async def publish_order_event(
    event_type: str,
    tenant_id: int,
    order_id: int,
    table_id: int | None = None,
    session_id: int | None = None,
    entity: dict[str, Any] | None = None,
) -> bool:
    """
    Publish an order event to the tenant's dashboard channel.

    Returns True when the event was handed to Redis.
    """
    if not settings.redis_events_enabled:
        return False

    try:
        event = Event(
            type=event_type,
            tenant_id=tenant_id,
            order_id=order_id,
            table_id=table_id,
            session_id=session_id,
            entity=entity or {},
        )
        redis_client = await get_redis_pool()
        await publish_event(redis_client, channel_tenant_orders(tenant_id), event)
        return True
    except Exception as e:
        logger.error(
            "Order event not published",
            event_type=event_type,
            tenant_id=tenant_id,
            order_id=order_id,
            error=str(e),
        )
        return False


async def publish_order_change(event_type: str, order: "Order") -> bool:
    """publish_order_event for a loaded Order instance."""
    return await publish_order_event(
        event_type,
        tenant_id=order.tenant_id,
        order_id=order.id,
        table_id=order.table_id,
        session_id=order.session_id,
        entity=order_snapshot(order),
    )
