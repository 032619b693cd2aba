"""
Services module for business logic.

- domain/: sessions, order admission, order lifecycle, table moves
- catalog/: menu and tenant settings lookups used by admission
- aggregator/: Zomato/Swiggy ingestion through the bridge

Usage:
    from rest_api.services.domain import OrderService
    service = OrderService(db)
    order, token = await service.create_order(table_id, items)
"""
