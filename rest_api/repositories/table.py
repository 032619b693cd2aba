"""
Table Repository - Data access for tables.
Exposes the row lock that serializes order admission per table.
"""

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from rest_api.models import Table
from .base import BaseRepository, RepositoryFilters


class TableRepository(BaseRepository[Table]):
    """Repository for Table entities."""

    @property
    def model(self) -> type[Table]:
        return Table

    def _base_query(self, tenant_id: int | None) -> Select:
        query = select(Table).order_by(Table.number)
        if tenant_id is not None:
            query = query.where(Table.tenant_id == tenant_id)
        return query

    def _apply_filters(self, query: Select, filters: RepositoryFilters) -> Select:
        return query

    async def lock_for_update(self, table_id: int) -> Table | None:
        """
        SELECT ... FOR UPDATE on one table row.

        The lock is held until the caller's transaction commits or rolls back.
        """
        query = select(Table).where(Table.id == table_id).with_for_update()
        result = await self._db.scalars(query)
        return result.first()

    async def lock_many_for_update(self, table_ids: list[int]) -> dict[int, Table]:
        """
        Lock several table rows, always in ascending id order.

        Missing ids are absent from the returned mapping.
        """
        locked: dict[int, Table] = {}
        for table_id in sorted(set(table_ids)):
            table = await self.lock_for_update(table_id)
            if table is not None:
                locked[table_id] = table
        return locked


def get_table_repository(db: AsyncSession) -> TableRepository:
    """Factory function for dependency injection."""
    return TableRepository(db)
