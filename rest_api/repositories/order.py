"""
Order Repository - Data access for orders.
Eager loading of items prevents N+1 queries.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rest_api.models import Order
from .base import BaseRepository, RepositoryFilters


@dataclass
class OrderFilters(RepositoryFilters):
    """Filters specific to orders."""

    session_id: int | None = None
    table_id: int | None = None
    statuses: list[str] | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    oldest_first: bool = False


class OrderRepository(BaseRepository[Order]):
    """
    Repository for Order entities.

    Guarantees eager loading of items.
    """

    @property
    def model(self) -> type[Order]:
        return Order

    def _base_query(self, tenant_id: int | None) -> Select:
        query = select(Order).options(selectinload(Order.items))
        if tenant_id is not None:
            query = query.where(Order.tenant_id == tenant_id)
        return query

    def _apply_filters(self, query: Select, filters: RepositoryFilters) -> Select:
        """Apply order-specific filters."""
        if not isinstance(filters, OrderFilters):
            filters = OrderFilters(limit=filters.limit, offset=filters.offset)

        if filters.session_id is not None:
            query = query.where(Order.session_id == filters.session_id)
        if filters.table_id is not None:
            query = query.where(Order.table_id == filters.table_id)
        if filters.statuses:
            query = query.where(Order.order_status.in_(filters.statuses))
        if filters.date_from is not None:
            query = query.where(Order.created_at >= filters.date_from)
        if filters.date_to is not None:
            query = query.where(Order.created_at <= filters.date_to)

        if filters.oldest_first:
            return query.order_by(Order.created_at.asc(), Order.id.asc())
        return query.order_by(Order.created_at.desc(), Order.id.desc())

    async def find_for_session(self, session_id: int) -> Sequence[Order]:
        """All orders of a session, oldest first."""
        query = (
            self._base_query(None)
            .where(Order.session_id == session_id)
            .order_by(Order.id)
        )
        result = await self._db.scalars(query)
        return result.unique().all()

    async def find_by_external(self, external_order_id: str, platform: str) -> Order | None:
        """Lookup by the aggregator dedup key."""
        query = select(Order).where(
            Order.external_order_id == external_order_id,
            Order.external_platform == platform,
        )
        result = await self._db.scalars(query)
        return result.first()

    async def find_with_pending_action(
        self,
        tenant_id: int,
        actions: Sequence[int],
    ) -> Sequence[Order]:
        """External orders waiting for the bridge client to act."""
        query = (
            select(Order)
            .where(
                Order.tenant_id == tenant_id,
                Order.pending_action.in_(list(actions)),
            )
            .order_by(Order.id)
        )
        result = await self._db.scalars(query)
        return result.all()

    async def max_order_number(self, tenant_id: int, prefix: str) -> str | None:
        """Highest order number of the tenant starting with prefix."""
        query = (
            select(Order.order_number)
            .where(
                Order.tenant_id == tenant_id,
                Order.order_number.like(f"{prefix}%"),
            )
            .order_by(Order.order_number.desc())
            .limit(1)
        )
        return await self._db.scalar(query)


def get_order_repository(db: AsyncSession) -> OrderRepository:
    """Factory function for dependency injection."""
    return OrderRepository(db)
