"""
Tests for the aggregator sync engine: ingestion, status sync, staff actions
and the bridge polling protocol.
"""

import asyncio
import copy
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import event, select
from sqlalchemy.orm import selectinload

from rest_api.models import Order
from rest_api.services.aggregator import (
    AggregatorSyncEngine,
    BridgeClient,
    OutletIndex,
    normalize_order,
)
from rest_api.services.aggregator.sync_engine import CREATED, FAILED, UNCHANGED, UNMATCHED, UPDATED
from rest_api.services.domain import OrderService
from shared.config.constants import OrderStatus, OrderType, PaymentStatus, PendingAction
from shared.utils.exceptions import (
    ExternalServiceError,
    InvalidTransitionError,
    OrderNotFoundError,
    ValidationError,
)
from shared.utils.schemas import OrderItemInput, PushedOrder

ZOMATO_DETAILS = {
    "id": "X1",
    "resId": 19520792,
    "state": "PLACED",
    "cartDetails": {
        "total": {"amountDetails": {"amountTotalCost": 450.5}},
        "items": {
            "dishes": [
                {"name": "Butter Chicken", "unitCost": 300, "quantity": 1},
                {"name": "Naan", "unitCost": "75.25", "quantity": 2},
            ]
        },
    },
    "creator": {"name": "Ravi", "phone": "9876543210", "countryIsdCode": "+91"},
    "orderMessages": [{"value": {"message": "Extra spicy"}}],
    "supportingRiderDetails": [{"name": "Kumar", "phone": "9000000001"}],
}

SWIGGY_ORDER = {
    "platform": "swiggy",
    "id": 5551,
    "restaurant_id": "884411",
    "status": "PLACED",
    "details": {"order_total": "250.00"},
    "cart": {"items": [{"name": "Biryani", "total": "250.00", "quantity": 2}]},
    "customer": {"name": "Meera", "phone": "+919812345678"},
}


def zomato_payload(bucket="new_orders", **overrides) -> dict:
    details = copy.deepcopy(ZOMATO_DETAILS)
    details.update(overrides)
    return {"platform": "zomato", "bucketStatus": bucket, "order": details}


@pytest.fixture
def bridge():
    return AsyncMock(spec=BridgeClient)


@pytest.fixture
def sync_engine(bridge, session_factory, seed_tenant):
    return AggregatorSyncEngine(bridge=bridge, session_factory=session_factory)


@pytest_asyncio.fixture
async def external_order_id(sync_engine, session_factory):
    """Id of the mirrored Zomato order X1."""
    outlets = await sync_engine.load_outlet_index()
    await sync_engine.process_external_order(zomato_payload(), outlets)
    return (await load_external(session_factory, "X1")).id


async def load_external(session_factory, external_order_id: str) -> Order | None:
    async with session_factory() as session:
        return await session.scalar(
            select(Order)
            .options(selectinload(Order.items))
            .where(Order.external_order_id == external_order_id)
        )


async def count_external(session_factory, external_order_id: str) -> int:
    async with session_factory() as session:
        return len((await session.scalars(
            select(Order.id).where(Order.external_order_id == external_order_id)
        )).all())


class TestNormalization:
    def test_zomato_payload(self):
        external = normalize_order(zomato_payload())

        assert external.external_id == "X1"
        assert external.external_outlet_id == "19520792"
        assert external.platform == "zomato"
        assert external.raw_status == "new_orders"
        assert external.total_amount == Decimal("450.50")
        assert external.customer_name == "Ravi"
        assert external.customer_phone == "9000000001"
        assert external.instructions == "Extra spicy. Rider: Kumar (9000000001)"
        assert [(i.name, i.unit_price, i.quantity) for i in external.items] == [
            ("Butter Chicken", Decimal("300.00"), 1),
            ("Naan", Decimal("75.25"), 2),
        ]

    def test_zomato_without_rider_uses_creator_phone(self):
        external = normalize_order(zomato_payload(supportingRiderDetails=[], creator={"phone": "98765"}))

        assert external.customer_name == "Zomato Customer"
        assert external.customer_phone == "98765"

    def test_zomato_falls_back_to_state(self):
        payload = zomato_payload()
        del payload["bucketStatus"]

        assert normalize_order(payload).raw_status == "PLACED"

    def test_swiggy_cart_items_priced_per_unit(self):
        external = normalize_order(SWIGGY_ORDER)

        assert external.external_id == "5551"
        assert external.external_outlet_id == "884411"
        assert external.raw_status == "PLACED"
        assert external.total_amount == Decimal("250.00")
        assert external.customer_name == "Meera"
        assert [(i.name, i.unit_price, i.quantity) for i in external.items] == [
            ("Biryani", Decimal("125.00"), 2)
        ]

    def test_flat_items_and_defaults(self):
        external = normalize_order({
            "platform": "swiggy",
            "id": "S2",
            "items": [{"name": "Dosa", "price": "80", "quantity": "0"}],
        })

        assert external.customer_name == "Online Customer"
        assert external.total_amount == Decimal("0.00")
        assert [(i.unit_price, i.quantity) for i in external.items] == [(Decimal("80.00"), 1)]

    def test_missing_id_is_rejected(self):
        with pytest.raises(ValidationError):
            normalize_order({"platform": "swiggy", "status": "PLACED"})


class TestOutletIndex:
    async def test_first_configured_tenant_wins(self, sync_engine, seed_tenant, seed_other_tenant):
        outlets = await sync_engine.load_outlet_index()

        assert outlets.match("19520792") == seed_tenant.id
        assert outlets.match(" 884411 ") == seed_tenant.id
        assert outlets.match("000") is None
        assert outlets.match(None) is None

    def test_empty_index(self):
        assert OutletIndex().match("19520792") is None


class TestIngestion:
    """process_external_order and sync_orders."""

    async def test_new_zomato_order_mirrored(self, sync_engine, session_factory, seed_tenant):
        outlets = await sync_engine.load_outlet_index()

        outcome = await sync_engine.process_external_order(zomato_payload(), outlets)

        assert outcome == CREATED
        order = await load_external(session_factory, "X1")
        assert order.tenant_id == seed_tenant.id
        assert order.order_type == OrderType.ONLINE
        assert order.order_status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.APPROVED
        assert order.session_id is None and order.table_id is None
        assert order.subtotal == order.total_amount == Decimal("450.50")
        assert order.tax_amount == Decimal("0.00")
        assert order.raw_status == "new_orders"
        assert order.pending_action == PendingAction.NONE
        assert len(order.order_number) == 12
        assert [(i.item_name, i.menu_item_id, i.item_category) for i in order.items] == [
            ("Butter Chicken", None, "online"),
            ("Naan", None, "online"),
        ]

    async def test_repeated_poll_writes_nothing(self, sync_engine, session_factory, engine):
        """Polling the same unchanged order twice leaves exactly one row."""
        outlets = await sync_engine.load_outlet_index()
        await sync_engine.process_external_order(zomato_payload(), outlets)

        writes = []

        @event.listens_for(engine.sync_engine, "before_cursor_execute")
        def _record_writes(conn, cursor, statement, parameters, context, executemany):
            if statement.lstrip().upper().startswith(("INSERT", "UPDATE", "DELETE")):
                writes.append(statement)

        try:
            outcome = await sync_engine.process_external_order(zomato_payload(), outlets)
        finally:
            event.remove(engine.sync_engine, "before_cursor_execute", _record_writes)

        assert outcome == UNCHANGED
        assert writes == []
        assert await count_external(session_factory, "X1") == 1

    async def test_status_follows_platform(self, sync_engine, session_factory):
        outlets = await sync_engine.load_outlet_index()
        await sync_engine.process_external_order(zomato_payload(), outlets)

        outcome = await sync_engine.process_external_order(zomato_payload("preparing_orders"), outlets)

        assert outcome == UPDATED
        order = await load_external(session_factory, "X1")
        assert order.order_status == OrderStatus.PREPARING
        assert order.raw_status == "preparing_orders"
        assert len(order.items) == 2

    async def test_unknown_raw_status_maps_to_pending(self, sync_engine, session_factory):
        outlets = await sync_engine.load_outlet_index()
        payload = dict(SWIGGY_ORDER, status="SOMETHING_NEW")

        await sync_engine.process_external_order(payload, outlets)

        assert (await load_external(session_factory, "5551")).order_status == OrderStatus.PENDING

    async def test_unmatched_outlet_is_skipped(self, sync_engine, session_factory):
        outlets = await sync_engine.load_outlet_index()

        outcome = await sync_engine.process_external_order(zomato_payload(resId="000"), outlets)

        assert outcome == UNMATCHED
        assert await count_external(session_factory, "X1") == 0

    async def test_concurrent_ingestion_creates_one_order(self, sync_engine, session_factory):
        outlets = await sync_engine.load_outlet_index()

        outcomes = await asyncio.gather(
            sync_engine.process_external_order(zomato_payload(), outlets),
            sync_engine.process_external_order(zomato_payload(), outlets),
        )

        assert sorted(outcomes) == [CREATED, UNCHANGED]
        assert await count_external(session_factory, "X1") == 1

    async def test_sync_orders_isolates_bad_payloads(self, sync_engine, bridge, session_factory):
        bridge.fetch_orders.return_value = [
            zomato_payload(),
            {"platform": "swiggy", "status": "PLACED"},
            SWIGGY_ORDER,
            zomato_payload(id="X2", resId="000"),
        ]

        result = await sync_engine.sync_orders()

        assert result.fetched == 4
        assert result.created == 2
        assert result.failed == 1
        assert result.unmatched == 1
        assert await count_external(session_factory, "X1") == 1
        assert await count_external(session_factory, "5551") == 1

    async def test_sync_orders_with_nothing_fetched(self, sync_engine, bridge):
        bridge.fetch_orders.return_value = []

        result = await sync_engine.sync_orders()

        assert result.fetched == 0
        assert result.created == 0

    async def test_sync_for_one_tenant(self, sync_engine, bridge, session_factory, seed_tenant, seed_other_tenant):
        """Only outlets of the given tenant are matched."""
        bridge.fetch_orders.return_value = [zomato_payload(), SWIGGY_ORDER]

        result = await sync_engine.sync_orders(tenant_id=seed_other_tenant.id)

        assert result.created == 1
        assert result.unmatched == 1
        assert (await load_external(session_factory, "X1")).tenant_id == seed_other_tenant.id
        assert await count_external(session_factory, "5551") == 0


class TestPushIngestion:
    async def test_pushed_orders_are_acknowledged(self, sync_engine, session_factory):
        results = await sync_engine.ingest_pushed_orders([
            PushedOrder(vendor="Zomato", data=copy.deepcopy(ZOMATO_DETAILS), resId="19520792", orderId="X1"),
            PushedOrder(vendor="swiggy", data={k: v for k, v in SWIGGY_ORDER.items() if k != "platform"}, orderId=5551),
        ])

        assert [r.status for r in results] == [200, 200]
        assert results[0].message == "Order No. X1 Inserted Successfully"
        order = await load_external(session_factory, "X1")
        assert order.order_status == OrderStatus.PENDING
        assert order.raw_status == "new_orders"
        assert await count_external(session_factory, "5551") == 1

    async def test_broken_push_is_still_acknowledged(self, sync_engine, session_factory):
        results = await sync_engine.ingest_pushed_orders([PushedOrder(vendor="zomato", data={}, orderId="Z0")])

        assert results[0].status == 200
        assert results[0].message == "Order No. Z0 Could Not Be Processed"
        assert await count_external(session_factory, "Z0") == 0

    async def test_unmatched_push_reported(self, sync_engine):
        data = dict(copy.deepcopy(ZOMATO_DETAILS), resId="000")

        results = await sync_engine.ingest_pushed_orders([PushedOrder(vendor="zomato", data=data, orderId="X1")])

        assert results[0].message == "Order No. X1 Skipped, No Restaurant For Outlet"

    async def test_repush_keeps_polled_status(self, sync_engine, session_factory):
        """A relay re-push never rolls a polled order back to pending."""
        outlets = await sync_engine.load_outlet_index()
        await sync_engine.process_external_order(zomato_payload("ready_orders"), outlets)

        results = await sync_engine.ingest_pushed_orders([
            PushedOrder(vendor="Zomato", data=copy.deepcopy(ZOMATO_DETAILS), resId="19520792", orderId="X1")
        ])

        assert results[0].message == "Order No. X1 Already Exists"
        order = await load_external(session_factory, "X1")
        assert order.order_status == OrderStatus.READY
        assert order.raw_status == "ready_orders"
        assert await count_external(session_factory, "X1") == 1


class TestStaffActions:
    """accept/mark ready/reject: flag plus direct bridge call."""

    async def test_accept_flags_and_calls_bridge(self, sync_engine, bridge, session_factory, external_order_id):
        order = await sync_engine.accept_order(external_order_id, prep_minutes=20)

        assert order.order_status == OrderStatus.CONFIRMED
        bridge.accept_order.assert_awaited_once_with("zomato", "X1", 20)
        stored = await load_external(session_factory, "X1")
        assert stored.pending_action == PendingAction.ACCEPT
        assert stored.pending_prep_minutes == 20
        assert stored.order_status == OrderStatus.CONFIRMED

    async def test_bridge_failure_keeps_the_flag(self, sync_engine, bridge, session_factory, external_order_id):
        bridge.mark_ready.side_effect = ExternalServiceError("aggregator_bridge", reason="connection refused")

        order = await sync_engine.mark_ready(external_order_id)

        assert order.order_status == OrderStatus.READY
        stored = await load_external(session_factory, "X1")
        assert stored.pending_action == PendingAction.MARK_READY

    async def test_reject(self, sync_engine, bridge, external_order_id):
        order = await sync_engine.reject_order(external_order_id)

        assert order.order_status == OrderStatus.CANCELLED
        bridge.reject_order.assert_awaited_once_with("zomato", "19520792", "X1")

    async def test_cancelled_order_takes_no_actions(self, sync_engine, bridge, session_factory, external_order_id):
        await sync_engine.reject_order(external_order_id)

        with pytest.raises(InvalidTransitionError):
            await sync_engine.mark_ready(external_order_id)
        with pytest.raises(InvalidTransitionError):
            await sync_engine.accept_order(external_order_id)

        stored = await load_external(session_factory, "X1")
        assert stored.order_status == OrderStatus.CANCELLED
        assert stored.pending_action == PendingAction.REJECT
        bridge.mark_ready.assert_not_called()
        bridge.accept_order.assert_not_called()

    async def test_completed_order_takes_no_actions(self, sync_engine, bridge, session_factory, external_order_id):
        outlets = await sync_engine.load_outlet_index()
        await sync_engine.process_external_order(zomato_payload("completed_orders"), outlets)

        with pytest.raises(InvalidTransitionError):
            await sync_engine.accept_order(external_order_id)
        with pytest.raises(InvalidTransitionError):
            await sync_engine.mark_ready(external_order_id)

        stored = await load_external(session_factory, "X1")
        assert stored.order_status == OrderStatus.COMPLETED
        assert stored.pending_action == PendingAction.NONE
        bridge.accept_order.assert_not_called()

    async def test_unknown_order(self, sync_engine, external_order_id):
        with pytest.raises(OrderNotFoundError):
            await sync_engine.accept_order(99999)

    async def test_in_house_order_has_no_platform_actions(
        self, sync_engine, bridge, db, seed_tables, seed_menu
    ):
        order, _ = await OrderService(db).create_order(
            seed_tables[1].id, [OrderItemInput(menu_item_id=seed_menu["paneer"].id, quantity=1)]
        )
        order_id = order.id
        await db.commit()

        with pytest.raises(ValidationError):
            await sync_engine.accept_order(order_id)
        bridge.accept_order.assert_not_called()


class TestPollingProtocol:
    """Pending actions listed for the bridge client and its confirmations."""

    async def test_pending_actions_listed(self, sync_engine, external_order_id):
        await sync_engine.accept_order(external_order_id, prep_minutes=20)

        response = await sync_engine.get_pending_actions("19520792")

        assert response.orderHistory is False
        assert [(a.orderId, a.resId, a.status, a.prepTime) for a in response.orders] == [
            ("X1", "19520792", PendingAction.ACCEPT, 20)
        ]

    async def test_default_prep_time(self, sync_engine, external_order_id):
        await sync_engine.mark_ready(external_order_id)

        response = await sync_engine.get_pending_actions("19520792")

        assert response.orders[0].status == PendingAction.MARK_READY
        assert response.orders[0].prepTime == 30

    async def test_unknown_outlet_has_no_actions(self, sync_engine, external_order_id):
        await sync_engine.accept_order(external_order_id)

        assert (await sync_engine.get_pending_actions("000")).orders == []

    async def test_confirmation_clears_flag(self, sync_engine, session_factory, external_order_id):
        await sync_engine.accept_order(external_order_id)

        response = await sync_engine.confirm_action("X1", PendingAction.ACCEPTED)

        assert response.status == PendingAction.ACCEPTED
        assert response.message == "Updated the status to 2 for order Id X1"
        stored = await load_external(session_factory, "X1")
        assert stored.pending_action == PendingAction.NONE
        assert stored.order_status == OrderStatus.CONFIRMED
        assert (await sync_engine.get_pending_actions("19520792")).orders == []

    async def test_rejection_confirmed(self, sync_engine, session_factory, external_order_id):
        await sync_engine.reject_order(external_order_id)

        await sync_engine.confirm_action("X1", PendingAction.REJECTED)

        assert (await load_external(session_factory, "X1")).order_status == OrderStatus.CANCELLED

    async def test_repeated_confirmation_is_harmless(self, sync_engine, session_factory, external_order_id):
        await sync_engine.mark_ready(external_order_id)

        await sync_engine.confirm_action("X1", PendingAction.READY)
        await sync_engine.confirm_action("X1", PendingAction.READY)

        stored = await load_external(session_factory, "X1")
        assert stored.pending_action == PendingAction.NONE
        assert stored.order_status == OrderStatus.READY

    async def test_late_confirmation_keeps_newer_action(self, sync_engine, session_factory, external_order_id):
        """Accept, then mark ready, then the accept confirmation arrives."""
        await sync_engine.accept_order(external_order_id)
        await sync_engine.mark_ready(external_order_id)

        await sync_engine.confirm_action("X1", PendingAction.ACCEPTED)

        stored = await load_external(session_factory, "X1")
        assert stored.pending_action == PendingAction.MARK_READY
        assert stored.order_status == OrderStatus.READY
        pending = await sync_engine.get_pending_actions("19520792")
        assert [a.status for a in pending.orders] == [PendingAction.MARK_READY]

        await sync_engine.confirm_action("X1", PendingAction.READY)

        stored = await load_external(session_factory, "X1")
        assert stored.pending_action == PendingAction.NONE
        assert stored.order_status == OrderStatus.READY

    async def test_unknown_code_leaves_flag(self, sync_engine, session_factory, external_order_id):
        await sync_engine.accept_order(external_order_id)

        await sync_engine.confirm_action("X1", 9)

        assert (await load_external(session_factory, "X1")).pending_action == PendingAction.ACCEPT

    async def test_confirmation_only_touches_flagged_order(self, sync_engine, session_factory, external_order_id):
        """A Swiggy order sharing the external id is not affected."""
        outlets = await sync_engine.load_outlet_index()
        await sync_engine.process_external_order(dict(SWIGGY_ORDER, id="X1"), outlets)
        await sync_engine.accept_order(external_order_id)

        await sync_engine.confirm_action("X1", PendingAction.ACCEPTED)

        async with session_factory() as session:
            rows = (await session.execute(
                select(Order.external_platform, Order.order_status, Order.pending_action)
                .where(Order.external_order_id == "X1")
                .order_by(Order.external_platform)
            )).all()
        assert [tuple(row) for row in rows] == [
            ("swiggy", OrderStatus.PENDING, PendingAction.NONE),
            ("zomato", OrderStatus.CONFIRMED, PendingAction.NONE),
        ]
