"""
Aggregator bridge router.

Endpoints called by the bridge client running at the restaurant:
- POST /orders: webhook push of new orders
- GET /{outlet_id}/orders/status: actions it still has to perform
- POST /orders/{external_order_id}/status: confirmation of a performed action
"""

from fastapi import APIRouter, Depends

from shared.config.logging import aggregator_logger as logger
from shared.utils.schemas import (
    ActionConfirmationRequest,
    ActionConfirmationResponse,
    PendingActionsResponse,
    PushOrderResult,
    PushOrdersRequest,
)
from rest_api.services.aggregator import AggregatorSyncEngine, get_sync_engine


router = APIRouter(prefix="/api/aggregator", tags=["aggregator"])


@router.post("/orders", response_model=list[PushOrderResult])
async def push_orders(
    body: PushOrdersRequest,
    engine: AggregatorSyncEngine = Depends(get_sync_engine),
) -> list[PushOrderResult]:
    """
    Ingest orders pushed by the bridge.

    Each order is processed independently; the response has one entry per
    pushed order.
    """
    logger.info("Received pushed orders", count=len(body.orders))
    return await engine.ingest_pushed_orders(body.orders)


@router.get("/{outlet_id}/orders/status", response_model=PendingActionsResponse)
async def get_pending_actions(
    outlet_id: str,
    engine: AggregatorSyncEngine = Depends(get_sync_engine),
) -> PendingActionsResponse:
    """Accept/ready/reject requests waiting for the bridge client of this outlet."""
    return await engine.get_pending_actions(outlet_id)


@router.post("/orders/{external_order_id}/status", response_model=ActionConfirmationResponse)
async def confirm_action(
    external_order_id: str,
    body: ActionConfirmationRequest,
    engine: AggregatorSyncEngine = Depends(get_sync_engine),
) -> ActionConfirmationResponse:
    return await engine.confirm_action(external_order_id, body.statusCode)
