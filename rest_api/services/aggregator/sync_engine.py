"""
Aggregator Sync Engine.

Mirrors Zomato/Swiggy orders relayed by the bridge into local orders and
drives staff actions back to the platforms.

Every external order is processed in its own database session, so one bad
payload never rolls back the rest of a batch. The dedup key is
(external_order_id, external_platform); reprocessing an unchanged payload
writes nothing, which makes overlapping sync runs and webhook pushes safe.

Staff actions use two independent triggers: the pending-action flag that
the bridge client polls for, and a direct bridge call. Either one reaching
the platform is enough.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shared.config.constants import (
    CONFIRMED_ACTION_STATUS,
    OrderStatus,
    OrderType,
    PaymentStatus,
    PendingAction,
    Platform,
)
from shared.config.logging import aggregator_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal, safe_commit, violates_constraint
from shared.infrastructure.events import (
    ORDER_CREATED,
    ORDER_STATUS_CHANGED,
    publish_order_change,
)
from shared.utils.exceptions import (
    InvalidTransitionError,
    OrderNotFoundError,
    ValidationError,
)
from shared.utils.schemas import (
    ActionConfirmationResponse,
    PendingActionOutput,
    PendingActionsResponse,
    PushedOrder,
    PushOrderResult,
)
from rest_api.models import Order, OrderItem, Tenant
from rest_api.repositories import get_order_repository
from rest_api.services.domain.order_number import OrderNumberGenerator
from .bridge_client import BridgeClient
from .normalizer import ONLINE_CATEGORY, ExternalOrder, normalize_order
from .status_map import map_status

# Appears in both the PostgreSQL constraint name and SQLite's column list
EXTERNAL_DEDUP_MARKER = "external"

CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
UNMATCHED = "unmatched"
FAILED = "failed"

PUSH_MESSAGES = {
    CREATED: "Order No. {order_id} Inserted Successfully",
    UNCHANGED: "Order No. {order_id} Already Exists",
    UNMATCHED: "Order No. {order_id} Skipped, No Restaurant For Outlet",
    FAILED: "Order No. {order_id} Could Not Be Processed",
}


def is_external_duplicate(exc: IntegrityError) -> bool:
    return violates_constraint(exc, EXTERNAL_DEDUP_MARKER)


@dataclass
class OutletIndex:
    """Outlet id -> tenant id, first configured tenant wins."""

    tenants: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_tenants(cls, tenants: Sequence[Tenant]) -> "OutletIndex":
        index = cls()
        for tenant in tenants:
            for outlet_id in tenant.outlet_ids():
                index.tenants.setdefault(outlet_id, tenant.id)
        return index

    def match(self, outlet_id: str | None) -> int | None:
        if not outlet_id:
            return None
        return self.tenants.get(str(outlet_id).strip())


@dataclass
class SyncResult:
    """Outcome counts of one sync run."""

    fetched: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    unmatched: int = 0
    failed: int = 0

    def record(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)


def pushed_to_payload(pushed: PushedOrder) -> dict[str, Any]:
    """
    Raw payload for a webhook-pushed order.

    Pushed orders are always new; Swiggy data is flat so it is merged in
    at the top level.
    """
    platform = (pushed.vendor or "").lower()
    payload: dict[str, Any] = {
        "platform": platform,
        "bucketStatus": "new_orders",
        "order": pushed.data,
    }
    if platform == Platform.SWIGGY and isinstance(pushed.data, dict):
        payload.update(pushed.data)
    return payload


class AggregatorSyncEngine:
    """Ingestion of aggregator orders and bridge staff actions."""

    def __init__(
        self,
        bridge: BridgeClient | None = None,
        session_factory: async_sessionmaker[AsyncSession] = SessionLocal,
    ):
        self._bridge = bridge or BridgeClient()
        self._session_factory = session_factory

    @property
    def bridge(self) -> BridgeClient:
        return self._bridge

    # =========================================================================
    # Ingestion
    # =========================================================================

    async def load_outlet_index(self, tenant_id: int | None = None) -> OutletIndex:
        """Outlets of every configured tenant, or of one tenant only."""
        query = (
            select(Tenant)
            .where((Tenant.zomato_outlet_ids.is_not(None)) | (Tenant.swiggy_outlet_ids.is_not(None)))
            .order_by(Tenant.id)
        )
        if tenant_id is not None:
            query = query.where(Tenant.id == tenant_id)
        async with self._session_factory() as db:
            result = await db.scalars(query)
            return OutletIndex.from_tenants(result.all())

    async def sync_orders(self, tenant_id: int | None = None) -> SyncResult:
        """
        Pull every current order from the bridge and mirror it locally.

        With tenant_id, only outlets of that tenant are matched (a sync
        triggered by its staff); every other order counts as unmatched.
        """
        payloads = await self._bridge.fetch_orders()
        result = SyncResult(fetched=len(payloads))
        if not payloads:
            return result

        outlets = await self.load_outlet_index(tenant_id)
        for payload in payloads:
            result.record(await self._process_safely(payload, outlets))

        logger.info(
            "Aggregator sync finished",
            tenant_id=tenant_id,
            fetched=result.fetched,
            created=result.created,
            updated=result.updated,
            unchanged=result.unchanged,
            unmatched=result.unmatched,
            failed=result.failed,
        )
        return result

    async def ingest_pushed_orders(self, pushed: Sequence[PushedOrder]) -> list[PushOrderResult]:
        """
        Webhook path: same per-order processing as a poll, creation only.

        A push carries no real platform status, so an order that already
        exists is left to the poll.
        """
        outlets = await self.load_outlet_index()
        results = []
        for wrapper in pushed:
            outcome = await self._process_safely(pushed_to_payload(wrapper), outlets, create_only=True)
            logger.info(
                "Pushed order processed",
                vendor=wrapper.vendor,
                external_order_id=wrapper.orderId,
                outcome=outcome,
            )
            results.append(
                PushOrderResult(
                    status=200,
                    orderId=wrapper.orderId,
                    message=PUSH_MESSAGES[outcome].format(order_id=wrapper.orderId),
                )
            )
        return results

    async def _process_safely(self, payload: dict[str, Any], outlets: OutletIndex, create_only: bool = False) -> str:
        try:
            return await self.process_external_order(payload, outlets, create_only=create_only)
        except Exception as e:
            logger.error(
                "Failed to process external order",
                platform=payload.get("platform"),
                error=str(e),
                error_type=type(e).__name__,
            )
            return FAILED

    async def process_external_order(
        self,
        payload: dict[str, Any],
        outlets: OutletIndex,
        create_only: bool = False,
    ) -> str:
        """
        Create or update the local mirror of one raw payload.

        With create_only an existing order is never touched. Returns one of
        created, updated, unchanged or unmatched.
        """
        external = normalize_order(payload)
        tenant_id = outlets.match(external.external_outlet_id)
        if tenant_id is None:
            logger.warning(
                "No tenant configured for outlet",
                platform=external.platform,
                outlet_id=external.external_outlet_id,
                external_order_id=external.external_id,
            )
            return UNMATCHED

        async with self._session_factory() as db:
            repo = get_order_repository(db)
            existing = await repo.find_by_external(external.external_id, external.platform)
            if existing is not None:
                if create_only:
                    return UNCHANGED
                return await self._sync_status(db, existing, external)

            tenant = await db.get(Tenant, tenant_id)
            try:
                order = await OrderNumberGenerator(db).insert_order(
                    tenant,
                    lambda number: build_external_order(tenant_id, number, external),
                    reraise=is_external_duplicate,
                )
                await db.commit()
            except IntegrityError:
                # Another run inserted the same external order first
                await db.rollback()
                logger.info(
                    "External order already ingested",
                    platform=external.platform,
                    external_order_id=external.external_id,
                )
                return UNCHANGED
            except Exception:
                await db.rollback()
                raise

            order = await repo.find_by_id(order.id)

        logger.info(
            "External order created",
            order_id=order.id,
            order_number=order.order_number,
            platform=external.platform,
            external_order_id=external.external_id,
            status=order.order_status,
        )
        await publish_order_change(ORDER_CREATED, order)
        return CREATED

    async def _sync_status(self, db: AsyncSession, order: Order, external: ExternalOrder) -> str:
        """Follow the platform's status; items are never re-synced."""
        if order.raw_status == external.raw_status:
            return UNCHANGED

        previous = order.order_status
        order.raw_status = external.raw_status
        order.order_status = map_status(external.raw_status)
        await safe_commit(db)

        logger.info(
            "External order status synced",
            order_id=order.id,
            external_order_id=external.external_id,
            from_status=previous,
            to_status=order.order_status,
            raw_status=external.raw_status,
        )
        await publish_order_change(ORDER_STATUS_CHANGED, order)
        return UPDATED

    # =========================================================================
    # Staff actions
    # =========================================================================

    async def accept_order(self, order_id: int, prep_minutes: int | None = None) -> Order:
        prep_minutes = prep_minutes or settings.aggregator_default_prep_minutes
        order = await self._flag_action(order_id, PendingAction.ACCEPT, OrderStatus.CONFIRMED, prep_minutes)
        await self._call_bridge(
            "accept",
            order,
            self._bridge.accept_order(order.external_platform, order.external_order_id, prep_minutes),
        )
        return order

    async def mark_ready(self, order_id: int) -> Order:
        order = await self._flag_action(order_id, PendingAction.MARK_READY, OrderStatus.READY)
        await self._call_bridge(
            "mark_ready",
            order,
            self._bridge.mark_ready(order.external_platform, order.external_order_id),
        )
        return order

    async def reject_order(self, order_id: int) -> Order:
        order = await self._flag_action(order_id, PendingAction.REJECT, OrderStatus.CANCELLED)
        await self._call_bridge(
            "reject",
            order,
            self._bridge.reject_order(order.external_platform, order.external_outlet_id, order.external_order_id),
        )
        return order

    async def _flag_action(
        self,
        order_id: int,
        action: int,
        optimistic_status: str,
        prep_minutes: int | None = None,
    ) -> Order:
        """
        Raise the pending-action flag and show the expected status right away.

        The bridge confirmation later re-affirms the status. Completed and
        cancelled orders take no further actions.
        """
        async with self._session_factory() as db:
            repo = get_order_repository(db)
            order = await repo.find_by_id(order_id)
            if order is None:
                raise OrderNotFoundError(order_id)
            if not order.is_external:
                raise ValidationError("Only aggregator orders have platform actions", order_id=order_id)
            if order.order_status in OrderStatus.TERMINAL:
                raise InvalidTransitionError(
                    "Order", order.order_status, optimistic_status, order_id=order_id, action=action
                )

            order.pending_action = action
            if prep_minutes is not None:
                order.pending_prep_minutes = prep_minutes
            order.order_status = optimistic_status
            await safe_commit(db)

        logger.info(
            "Aggregator action queued",
            order_id=order_id,
            external_order_id=order.external_order_id,
            action=action,
            status=optimistic_status,
        )
        await publish_order_change(ORDER_STATUS_CHANGED, order)
        return order

    async def _call_bridge(self, action: str, order: Order, call) -> bool:
        """Direct bridge call; a failure is left to the polling path."""
        try:
            await call
            return True
        except Exception as e:
            logger.warning(
                "Direct bridge call failed, polling will deliver it",
                action=action,
                order_id=order.id,
                external_order_id=order.external_order_id,
                error=getattr(e, "reason", None) or str(e),
            )
            return False

    # =========================================================================
    # Bridge polling protocol
    # =========================================================================

    async def get_pending_actions(self, outlet_id: str) -> PendingActionsResponse:
        """Actions waiting for the bridge client of the tenant owning the outlet."""
        outlets = await self.load_outlet_index()
        tenant_id = outlets.match(outlet_id)
        if tenant_id is None:
            return PendingActionsResponse(orders=[])

        async with self._session_factory() as db:
            orders = await get_order_repository(db).find_with_pending_action(
                tenant_id, sorted(PendingAction.REQUESTS)
            )

        return PendingActionsResponse(
            orders=[
                PendingActionOutput(
                    orderId=order.external_order_id,
                    resId=outlet_id,
                    status=order.pending_action,
                    prepTime=order.pending_prep_minutes or settings.aggregator_default_prep_minutes,
                )
                for order in orders
            ]
        )

    async def confirm_action(self, external_order_id: str, status_code: int) -> ActionConfirmationResponse:
        """
        The bridge client reports that it performed an action.

        A code confirms only the action currently flagged on an order (the
        request code plus one): that flag is cleared and the confirmed
        status applied. A late confirmation of an earlier action leaves the
        order and its newer flag alone.
        """
        confirmed_status = CONFIRMED_ACTION_STATUS.get(status_code)
        confirmed: list[Order] = []
        async with self._session_factory() as db:
            result = await db.scalars(
                select(Order).where(
                    Order.external_order_id == external_order_id,
                    Order.pending_action.in_(sorted(PendingAction.REQUESTS)),
                )
            )
            for order in result.all():
                if confirmed_status is None or status_code != order.pending_action + 1:
                    logger.warning(
                        "Stale aggregator confirmation ignored",
                        order_id=order.id,
                        external_order_id=external_order_id,
                        pending_action=order.pending_action,
                        status_code=status_code,
                    )
                    continue
                order.pending_action = PendingAction.NONE
                order.order_status = confirmed_status
                confirmed.append(order)
            if confirmed:
                await safe_commit(db)

        logger.info(
            "Aggregator action confirmed",
            external_order_id=external_order_id,
            status_code=status_code,
            orders=len(confirmed),
        )
        for order in confirmed:
            await publish_order_change(ORDER_STATUS_CHANGED, order)

        return ActionConfirmationResponse(
            status=status_code,
            message=f"Updated the status to {status_code} for order Id {external_order_id}",
        )


def build_external_order(tenant_id: int, order_number: str, external: ExternalOrder) -> Order:
    """
    A new online order mirroring an aggregator order.

    The platform has already priced and collected it: subtotal is the
    platform total, no tax or discount is applied, payment is Approved.
    """
    return Order(
        tenant_id=tenant_id,
        session_id=None,
        table_id=None,
        order_number=order_number,
        order_type=OrderType.ONLINE,
        order_status=map_status(external.raw_status),
        payment_status=PaymentStatus.APPROVED,
        subtotal=external.total_amount,
        tax_amount=Decimal("0.00"),
        discount_amount=Decimal("0.00"),
        total_amount=external.total_amount,
        applied_tax_rate=Decimal("0"),
        customer_name=external.customer_name,
        customer_phone=external.customer_phone,
        special_instructions=external.instructions,
        external_platform=external.platform,
        external_order_id=external.external_id,
        external_outlet_id=external.external_outlet_id,
        raw_status=external.raw_status,
        pending_action=PendingAction.NONE,
        items=[
            OrderItem(
                menu_item_id=None,
                item_name=item.name,
                item_category=ONLINE_CATEGORY,
                quantity=item.quantity,
                unit_price=item.unit_price,
            )
            for item in external.items
        ],
    )


_engine: AggregatorSyncEngine | None = None


def get_sync_engine() -> AggregatorSyncEngine:
    """Process-wide engine sharing one bridge client."""
    global _engine
    if _engine is None:
        _engine = AggregatorSyncEngine()
    return _engine
