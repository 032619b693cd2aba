"""
Shared Pydantic schemas used across the application.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field

from shared.config.constants import Limits


# =============================================================================
# Common Types
# =============================================================================

OrderStatusLiteral = Literal[
    "pending", "confirmed", "preparing", "ready", "served", "completed", "cancelled"
]


# =============================================================================
# Order Input Schemas
# =============================================================================


class OrderItemInput(BaseModel):
    """A single line submitted by a diner."""

    menu_item_id: int
    quantity: int = Field(ge=Limits.MIN_QUANTITY, le=Limits.MAX_QUANTITY)
    # Selected customization option ids; ones not configured for the item are dropped
    customization_option_ids: list[int] = Field(default_factory=list)
    spice_level: str | None = Field(default=None, max_length=32)
    special_instructions: str | None = Field(default=None, max_length=Limits.MAX_INSTRUCTIONS_LENGTH)


class CustomerInput(BaseModel):
    """Optional customer details attached to an order and its session."""

    name: str | None = Field(default=None, max_length=Limits.MAX_NAME_LENGTH)
    phone: str | None = Field(default=None, max_length=Limits.MAX_PHONE_LENGTH)
    special_instructions: str | None = Field(default=None, max_length=Limits.MAX_INSTRUCTIONS_LENGTH)


class OrderQuery(BaseModel):
    """Filters for listing orders. At most one of token/session/table is used."""

    session_token: str | None = None
    session_id: int | None = None
    table_id: int | None = None
    tenant_id: int | None = None
    status: list[OrderStatusLiteral] | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int = Field(default=Limits.DEFAULT_PAGE_SIZE, ge=1, le=Limits.MAX_PAGE_SIZE)


# =============================================================================
# Order Output Schemas
# =============================================================================


class OrderStats(BaseModel):
    """Aggregates for the staff dashboard."""

    total_orders: int = 0
    total_revenue: Decimal = Decimal("0.00")
    status_breakdown: dict[str, int] = Field(default_factory=dict)
    average_order_value: Decimal = Decimal("0.00")


# =============================================================================
# Aggregator Bridge Schemas
# =============================================================================


class PushedOrder(BaseModel):
    """One order pushed by the bridge: {vendor, data, resId, orderId}."""

    vendor: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    resId: str | int | None = None
    orderId: str | int | None = None


class PushOrdersRequest(BaseModel):
    orders: list[PushedOrder]


class PushOrderResult(BaseModel):
    status: int
    orderId: str | int | None = None
    message: str


class PendingActionOutput(BaseModel):
    """An action the bridge client still has to perform on the vendor side."""

    orderId: str
    resId: str
    status: int
    prepTime: int


class PendingActionsResponse(BaseModel):
    orderHistory: bool = False
    orders: list[PendingActionOutput] = Field(default_factory=list)


class ActionConfirmationRequest(BaseModel):
    statusCode: int


class ActionConfirmationResponse(BaseModel):
    status: int
    message: str

