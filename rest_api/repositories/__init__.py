"""
Repository Pattern implementation.
Centralizes data access with guaranteed eager loading.

Usage:
    from rest_api.repositories import get_order_repository, OrderFilters

    repo = get_order_repository(db)
    orders = await repo.find_all(tenant_id=1, filters=OrderFilters(session_id=5))
    order = await repo.find_by_id(123)
"""

from .base import BaseRepository, RepositoryFilters
from .table import TableRepository, get_table_repository
from .order import OrderRepository, OrderFilters, get_order_repository

__all__ = [
    # Base
    "BaseRepository",
    "RepositoryFilters",
    # Table
    "TableRepository",
    "get_table_repository",
    # Order
    "OrderRepository",
    "OrderFilters",
    "get_order_repository",
]
