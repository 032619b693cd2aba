"""
Redis Channel Naming.
"""

from __future__ import annotations


def _validate_positive_id(id_value: int, name: str) -> None:
    """Validate that ID is a positive integer."""
    if not isinstance(id_value, int) or id_value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {id_value}")


def channel_tenant_orders(tenant_id: int) -> str:
    """Channel for order notifications on a restaurant's dashboard."""
    _validate_positive_id(tenant_id, "tenant_id")
    return f"tenant:{tenant_id}:orders"
