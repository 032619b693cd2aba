"""
Tests for order admission (OrderService.create_order) and order reads.
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rest_api.models import MenuItem, Order, OrderItem, TableSession
from rest_api.services.catalog import StaticSettings
from rest_api.services.domain import OrderService, OrderStateService, SessionService
from shared.config.constants import OrderStatus, OrderType, PaymentStatus
from shared.utils.exceptions import (
    ConflictError,
    InternalError,
    NotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from shared.utils.schemas import CustomerInput, OrderItemInput, OrderQuery
from tests.conftest import count_orders, expire_table_sessions


def item(menu_item, quantity=1, options=None, **kwargs) -> OrderItemInput:
    return OrderItemInput(
        menu_item_id=menu_item.id,
        quantity=quantity,
        customization_option_ids=[o.id for o in options or []],
        **kwargs,
    )


class TestCreateOrder:
    """Happy path admission."""

    async def test_first_order_opens_session(self, db, seed_tables, seed_menu):
        """The first order at a table opens a session and is a regular order."""
        service = OrderService(db)

        order, token = await service.create_order(seed_tables[1].id, [item(seed_menu["paneer"], 2)])

        assert order.id is not None
        assert order.order_type == OrderType.REGULAR
        assert order.order_status == OrderStatus.PENDING
        assert order.payment_status == PaymentStatus.PENDING
        assert order.table_id == seed_tables[1].id
        assert len(order.items) == 1
        assert order.items[0].item_name == "Paneer Tikka"
        assert order.items[0].unit_price == Decimal("100.00")
        assert order.subtotal == Decimal("200.00")

        session = await SessionService(db).validate_session(token)
        assert session.id == order.session_id

    async def test_tax_and_discount_totals(self, db, seed_tables, seed_menu, seed_rates):
        """Subtotal 100.00 with 8% tax and 5% discount."""
        service = OrderService(db)

        order, _ = await service.create_order(seed_tables[1].id, [item(seed_menu["paneer"])])

        assert order.subtotal == Decimal("100.00")
        assert order.tax_amount == Decimal("8.00")
        assert order.discount_amount == Decimal("5.00")
        assert order.total_amount == Decimal("103.00")
        assert order.applied_tax_rate == Decimal("0.08")

    async def test_injected_settings_lookup(self, db, seed_tenant, seed_tables, seed_menu):
        """Rates come from the injected settings capability, tenant row first."""
        settings_lookup = StaticSettings({
            (None, "tax_rate"): "0.18",
            (seed_tenant.id, "tax_rate"): "0.05",
        })
        service = OrderService(db, settings_lookup=settings_lookup)

        order, _ = await service.create_order(seed_tables[1].id, [item(seed_menu["lassi"])])

        assert order.tax_amount == Decimal("3.00")
        assert order.discount_amount == Decimal("0.00")
        assert order.total_amount == Decimal("63.00")

    async def test_malformed_rate_is_internal_error(self, db, seed_tables, seed_menu):
        service = OrderService(db, settings_lookup=StaticSettings({(None, "tax_rate"): "eight percent"}))

        with pytest.raises(InternalError) as exc_info:
            await service.create_order(seed_tables[1].id, [item(seed_menu["lassi"])])

        assert exc_info.value.status_code == 500
        assert exc_info.value.detail == "Internal server error"

    async def test_second_order_is_addon(self, db, seed_tables, seed_menu):
        """A second order against the open bill reuses the session as an addon."""
        service = OrderService(db)

        first, token = await service.create_order(seed_tables[2].id, [item(seed_menu["paneer"])])
        second, second_token = await service.create_order(
            seed_tables[2].id, [item(seed_menu["lassi"])], session_token=token
        )

        assert second_token == token
        assert second.session_id == first.session_id
        assert second.order_type == OrderType.ADDON
        assert second.order_number != first.order_number

    async def test_order_without_token_joins_active_session(self, db, seed_tables, seed_menu):
        """The scanned table decides the session, a token is optional."""
        service = OrderService(db)

        first, token = await service.create_order(seed_tables[2].id, [item(seed_menu["paneer"])])
        second, second_token = await service.create_order(seed_tables[2].id, [item(seed_menu["lassi"])])

        assert second_token == token
        assert second.order_type == OrderType.ADDON

    async def test_token_of_other_table_is_ignored(self, db, seed_tables, seed_menu):
        service = OrderService(db)

        _, token_table_1 = await service.create_order(seed_tables[1].id, [item(seed_menu["paneer"])])
        order, token_table_2 = await service.create_order(
            seed_tables[2].id, [item(seed_menu["lassi"])], session_token=token_table_1
        )

        assert token_table_2 != token_table_1
        assert order.table_id == seed_tables[2].id
        assert order.order_type == OrderType.REGULAR

    async def test_expired_session_starts_fresh(self, db, session_factory, seed_tables, seed_menu):
        service = OrderService(db)
        first, token = await service.create_order(seed_tables[3].id, [item(seed_menu["paneer"])])
        await db.commit()

        await expire_table_sessions(session_factory, seed_tables[3].id)

        async with session_factory() as fresh:
            second, new_token = await OrderService(fresh).create_order(
                seed_tables[3].id, [item(seed_menu["lassi"])], session_token=token
            )
            assert new_token != token
            assert second.session_id != first.session_id
            assert second.order_type == OrderType.REGULAR

    async def test_customer_details_recorded(self, db, seed_tables, seed_menu):
        service = OrderService(db)
        customer = CustomerInput(name="Asha", phone="+919876543210", special_instructions="No onions")

        order, _ = await service.create_order(seed_tables[1].id, [item(seed_menu["paneer"])], customer=customer)

        assert order.customer_name == "Asha"
        assert order.special_instructions == "No onions"
        session = await SessionService(db).get_session_by_id(order.session_id)
        assert session.customer_phone == "+919876543210"


class TestCustomizations:
    """Customization pricing and snapshots."""

    async def test_price_modifier_applied_and_snapshotted(self, db, seed_tables, seed_menu):
        service = OrderService(db)

        order, _ = await service.create_order(
            seed_tables[1].id, [item(seed_menu["paneer"], 2, options=[seed_menu["large"]])]
        )

        line = order.items[0]
        assert line.unit_price == Decimal("140.00")
        assert order.subtotal == Decimal("280.00")
        assert line.customizations == [
            {
                "group_id": seed_menu["large"].group_id,
                "group_name": "Size",
                "option_id": seed_menu["large"].id,
                "option_name": "Large",
                "price_modifier": "40.00",
            }
        ]

    async def test_unknown_and_unavailable_options_dropped(self, db, seed_tables, seed_menu):
        """Options not configured (or unavailable) for the item are ignored."""
        service = OrderService(db)

        order, _ = await service.create_order(
            seed_tables[1].id,
            [
                OrderItemInput(
                    menu_item_id=seed_menu["paneer"].id,
                    quantity=1,
                    customization_option_ids=[seed_menu["jumbo"].id, 987654, seed_menu["large"].id, seed_menu["large"].id],
                )
            ],
        )

        line = order.items[0]
        assert line.unit_price == Decimal("140.00")
        assert [c["option_name"] for c in line.customizations] == ["Large"]

    async def test_options_on_item_without_groups_are_ignored(self, db, seed_tables, seed_menu):
        service = OrderService(db)

        order, _ = await service.create_order(
            seed_tables[1].id, [item(seed_menu["lassi"], options=[seed_menu["large"]])]
        )

        assert order.items[0].unit_price == Decimal("60.00")
        assert order.items[0].customizations is None


class TestAdmissionFailures:
    """Every failure aborts the whole admission."""

    async def test_unknown_table(self, db, seed_tables, seed_menu):
        with pytest.raises(NotFoundError):
            await OrderService(db).create_order(99999, [item(seed_menu["paneer"])])

    async def test_disabled_table(self, db, seed_tables, seed_menu):
        with pytest.raises(ConflictError):
            await OrderService(db).create_order(seed_tables[7].id, [item(seed_menu["paneer"])])

    async def test_unavailable_item_rolls_back_everything(self, db, session_factory, seed_tables, seed_menu):
        """No order, no item rows and no session survive a rejected admission."""
        with pytest.raises(ValidationError):
            await OrderService(db).create_order(
                seed_tables[5].id, [item(seed_menu["paneer"]), item(seed_menu["soup"])]
            )

        assert await count_orders(session_factory) == 0
        async with session_factory() as fresh:
            assert await fresh.scalar(select(func.count(OrderItem.id))) == 0
            assert await fresh.scalar(select(func.count(TableSession.id))) == 0

    async def test_unknown_menu_item(self, db, seed_tables, seed_menu):
        with pytest.raises(NotFoundError):
            await OrderService(db).create_order(
                seed_tables[1].id, [OrderItemInput(menu_item_id=424242, quantity=1)]
            )

    async def test_menu_item_of_other_tenant(self, db, seed_tables, seed_menu, seed_other_tenant):
        foreign = MenuItem(tenant_id=seed_other_tenant.id, name="Pizza", price=Decimal("300.00"))
        db.add(foreign)
        await db.commit()

        with pytest.raises(NotFoundError):
            await OrderService(db).create_order(seed_tables[1].id, [item(foreign)])

    async def test_empty_order_rejected(self, db, seed_tables):
        with pytest.raises(ValidationError):
            await OrderService(db).create_order(seed_tables[1].id, [])


class TestConcurrentAdmission:
    """Two devices ordering at the same table at the same time."""

    async def test_concurrent_orders_share_one_session(self, session_factory, seed_tables, seed_menu):
        table_id = seed_tables[8].id
        menu_item_id = seed_menu["paneer"].id

        async def place():
            async with session_factory() as session:
                order, token = await OrderService(session).create_order(
                    table_id, [OrderItemInput(menu_item_id=menu_item_id, quantity=1)]
                )
                return order.session_id, order.order_type, token

        results = await asyncio.gather(place(), place())

        session_ids = {session_id for session_id, _, _ in results}
        assert len(session_ids) == 1
        assert sorted(order_type for _, order_type, _ in results) == [OrderType.ADDON, OrderType.REGULAR]
        assert results[0][2] == results[1][2]

        async with session_factory() as fresh:
            active = await fresh.scalar(
                select(func.count(TableSession.id)).where(
                    TableSession.table_id == table_id,
                    TableSession.is_active.is_(True),
                )
            )
            assert active == 1
            numbers = (await fresh.scalars(select(Order.order_number))).all()
            assert len(set(numbers)) == 2

    async def test_many_concurrent_orders_single_active_session(self, session_factory, seed_tables, seed_menu):
        table_id = seed_tables[6].id
        menu_item_id = seed_menu["lassi"].id

        async def place():
            async with session_factory() as session:
                order, _ = await OrderService(session).create_order(
                    table_id, [OrderItemInput(menu_item_id=menu_item_id, quantity=1)]
                )
                return order.session_id

        session_ids = await asyncio.gather(*(place() for _ in range(5)))

        assert len(set(session_ids)) == 1
        assert await count_orders(session_factory, table_id=table_id) == 5
        assert await count_orders(session_factory, order_type=OrderType.REGULAR) == 1


class TestOrderReads:
    """get_all_orders, get_order, get_kitchen_orders, get_order_stats."""

    async def test_get_all_orders_by_token(self, db, seed_tables, seed_menu):
        service = OrderService(db)
        first, token = await service.create_order(seed_tables[1].id, [item(seed_menu["paneer"])])
        await service.create_order(seed_tables[2].id, [item(seed_menu["lassi"])])

        orders = await service.get_all_orders(OrderQuery(session_token=token))

        assert [o.id for o in orders] == [first.id]

    async def test_invalid_token_yields_empty_list(self, db, seed_tables, seed_menu):
        service = OrderService(db)
        await service.create_order(seed_tables[1].id, [item(seed_menu["paneer"])])

        assert await service.get_all_orders(OrderQuery(session_token="not-a-token")) == []

    async def test_get_all_orders_filters_by_tenant_and_status(self, db, seed_tenant, seed_tables, seed_menu):
        service = OrderService(db)
        first, _ = await service.create_order(seed_tables[1].id, [item(seed_menu["paneer"])])
        second, _ = await service.create_order(seed_tables[2].id, [item(seed_menu["lassi"])])

        newest_first = await service.get_all_orders(OrderQuery(tenant_id=seed_tenant.id))
        assert [o.id for o in newest_first] == [second.id, first.id]

        by_table = await service.get_all_orders(OrderQuery(table_id=seed_tables[2].id))
        assert [o.id for o in by_table] == [second.id]

        served = await service.get_all_orders(OrderQuery(tenant_id=seed_tenant.id, status=["served"]))
        assert served == []

    async def test_get_order_not_found(self, db, seed_tables):
        with pytest.raises(OrderNotFoundError):
            await OrderService(db).get_order(123456)

    async def test_kitchen_orders_oldest_first(self, db, seed_tenant, seed_tables, seed_menu):
        service = OrderService(db)
        first, _ = await service.create_order(seed_tables[1].id, [item(seed_menu["paneer"])])
        second, _ = await service.create_order(seed_tables[2].id, [item(seed_menu["lassi"])])

        kitchen = await service.get_kitchen_orders(seed_tenant.id)

        assert [o.id for o in kitchen] == [first.id, second.id]

    async def test_order_stats(self, db, seed_tenant, seed_tables, seed_menu):
        service = OrderService(db)
        await service.create_order(seed_tables[1].id, [item(seed_menu["paneer"])])
        cancelled, _ = await service.create_order(seed_tables[2].id, [item(seed_menu["lassi"])])
        await OrderStateService(db).cancel_order(cancelled.id)

        stats = await service.get_order_stats(seed_tenant.id)

        assert stats.total_orders == 2
        assert stats.status_breakdown == {"pending": 1, "cancelled": 1}
        assert stats.total_revenue == Decimal("100.00")
        assert stats.average_order_value == Decimal("100.00")
