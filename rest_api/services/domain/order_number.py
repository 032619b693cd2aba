"""
Order number generation.

Order numbers are "YYYYMMDD" for the restaurant's local day followed by a
4-digit counter. Reading the current maximum and incrementing it is racy
across tables, so uniqueness is enforced by the database constraint and
insert_order retries on a collision.
"""

from collections.abc import Callable
from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.constants import Limits
from shared.config.logging import order_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import db_now_millis, insert_with_retry, violates_constraint
from rest_api.models import Order, Tenant
from rest_api.repositories import get_order_repository

# Appears in both the PostgreSQL constraint name and SQLite's column list
ORDER_NUMBER_MARKER = "order_number"


def tenant_zone(tenant: Tenant) -> ZoneInfo:
    """The tenant's timezone, or the configured default when unset or unknown."""
    name = tenant.timezone or settings.default_timezone
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown tenant timezone, using default", tenant_id=tenant.id, timezone=name)
        return ZoneInfo(settings.default_timezone)


def day_prefix(now_ms: int, zone: ZoneInfo) -> str:
    """YYYYMMDD of the instant in the given zone."""
    return datetime.fromtimestamp(now_ms / 1000, tz=zone).strftime("%Y%m%d")


def next_counter(current_max: str | None, prefix: str, now_ms: int) -> int:
    """
    Counter following the highest number of the day.

    Past 9999 the counter is derived from the clock instead. That only
    relieves pressure; the unique constraint still decides.
    """
    if not current_max or not current_max.startswith(prefix):
        return 1

    suffix = current_max[len(prefix):]
    try:
        counter = int(suffix) + 1
    except ValueError:
        return 1

    if counter > Limits.ORDER_COUNTER_MAX:
        return now_ms % (Limits.ORDER_COUNTER_MAX + 1)
    return counter


def format_order_number(prefix: str, counter: int) -> str:
    return f"{prefix}{counter:0{Limits.ORDER_COUNTER_DIGITS}d}"


def is_order_number_collision(exc: IntegrityError) -> bool:
    return violates_constraint(exc, ORDER_NUMBER_MARKER)


class OrderNumberGenerator:
    """Generates order numbers and inserts orders with collision retry."""

    def __init__(self, db: AsyncSession):
        self._db = db
        self._orders = get_order_repository(db)

    async def next_number(self, tenant: Tenant) -> str:
        now_ms = await db_now_millis(self._db)
        prefix = day_prefix(now_ms, tenant_zone(tenant))
        current_max = await self._orders.max_order_number(tenant.id, prefix)
        return format_order_number(prefix, next_counter(current_max, prefix, now_ms))

    async def insert_order(
        self,
        tenant: Tenant,
        build_order: Callable[[str], Order],
        reraise: Callable[[IntegrityError], bool] | None = None,
    ) -> Order:
        """
        Insert the order built for a fresh number, retrying on collisions.

        build_order receives the order number and must return a new,
        unsaved Order each time.

        Raises:
            ConflictError: every attempt collided.
            IntegrityError: a violation accepted by reraise.
        """

        async def attempt(attempt_no: int) -> Order:
            number = await self.next_number(tenant)
            if attempt_no > 1:
                logger.debug("Regenerated order number", tenant_id=tenant.id, order_number=number)
            return build_order(number)

        return await insert_with_retry(
            self._db,
            attempt,
            should_retry=is_order_number_collision,
            reraise=reraise,
            max_attempts=settings.order_number_max_attempts,
            backoff_ms=settings.order_number_backoff_ms,
            what="order",
        )
