"""
Base Repository implementation.
Provides common async data access patterns with tenant isolation.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, Sequence, TypeVar

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.constants import Limits


ModelT = TypeVar("ModelT")


@dataclass
class RepositoryFilters:
    """Base filters for repository queries."""

    # Pagination
    limit: int = Limits.DEFAULT_PAGE_SIZE
    offset: int = 0

    def __post_init__(self):
        """Validate and normalize filters."""
        self.limit = min(max(1, self.limit), Limits.MAX_PAGE_SIZE)
        self.offset = max(0, self.offset)


class BaseRepository(ABC, Generic[ModelT]):
    """
    Abstract base repository with common operations.

    Subclasses must implement:
    - model: the SQLAlchemy model class
    - _base_query(): base query with eager loading
    - _apply_filters(): entity-specific filters
    """

    def __init__(self, db: AsyncSession):
        self._db = db

    @property
    @abstractmethod
    def model(self) -> type[ModelT]:
        """Return the SQLAlchemy model class."""
        ...

    @abstractmethod
    def _base_query(self, tenant_id: int | None) -> Select:
        """
        Return base query with proper eager loading.
        Subclasses must implement this with selectinload/joinedload.
        """
        ...

    @abstractmethod
    def _apply_filters(self, query: Select, filters: RepositoryFilters) -> Select:
        """Apply entity-specific filters to query."""
        ...

    async def find_all(
        self,
        tenant_id: int | None,
        filters: RepositoryFilters | None = None,
    ) -> Sequence[ModelT]:
        """
        Find all entities matching filters.

        Args:
            tenant_id: Tenant ID for isolation, None to search every tenant
            filters: Optional filters

        Returns:
            List of entities
        """
        filters = filters or RepositoryFilters()
        query = self._base_query(tenant_id)
        query = self._apply_filters(query, filters)
        query = query.offset(filters.offset).limit(filters.limit)

        result = await self._db.scalars(query)
        return result.unique().all()

    async def find_by_id(self, entity_id: int, tenant_id: int | None = None) -> ModelT | None:
        """Find entity by ID, or None."""
        query = self._base_query(tenant_id).where(self.model.id == entity_id)
        result = await self._db.scalars(query)
        return result.unique().first()

