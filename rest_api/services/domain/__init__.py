"""
Domain Services - application layer.

Services contain the business rules and own the transaction boundaries.
They use Repositories for data access and publish dashboard events after
commit.

Structure:
    Router (thin controller)
        ↓
    Service (business logic)  ← YOU ARE HERE
        ↓
    Repository (data access)
        ↓
    Model (entity)

Usage:
    from rest_api.services.domain import OrderService

    service = OrderService(db)
    order, token = await service.create_order(table_id, items)
"""

from .session_service import SessionService, new_session_token
from .order_number import OrderNumberGenerator
from .order_service import OrderService, PricedLine
from .order_state import OrderStateService
from .table_service import TableService

__all__ = [
    "SessionService",
    "new_session_token",
    "OrderNumberGenerator",
    "OrderService",
    "PricedLine",
    "OrderStateService",
    "TableService",
]
