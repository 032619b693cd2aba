"""
Order Domain Service.

Order admission and order reads.

create_order runs as one transaction holding an exclusive lock on the table
row, so two submissions for the same table are strictly serialized: the
second one resolves its session and order number only after the first has
committed or rolled back. Different tables proceed concurrently.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.constants import (
    Limits,
    OrderStatus,
    OrderType,
    PaymentStatus,
    SettingKeys,
)
from shared.config.logging import mask_token, order_logger as logger
from shared.infrastructure.events import ORDER_CREATED, publish_order_change
from shared.utils.exceptions import (
    ConflictError,
    NotFoundError,
    OrderNotFoundError,
    ValidationError,
)
from shared.utils.money import ZERO, parse_rate, price_totals, to_money
from shared.utils.schemas import CustomerInput, OrderItemInput, OrderQuery, OrderStats
from rest_api.models import MenuItem, Order, OrderItem, Tenant, TableSession
from rest_api.repositories import OrderFilters, get_order_repository, get_table_repository
from rest_api.services.catalog import (
    MenuCatalog,
    MenuCatalogPort,
    SettingsPort,
    TenantSettings,
)
from .order_number import OrderNumberGenerator
from .session_service import SessionService


@dataclass
class PricedLine:
    """An order line after catalog validation and pricing."""

    menu_item: MenuItem
    quantity: int
    unit_price: Decimal
    customizations: list[dict[str, Any]] = field(default_factory=list)
    spice_level: str | None = None
    special_instructions: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_order_item(self) -> OrderItem:
        return OrderItem(
            menu_item_id=self.menu_item.id,
            item_name=self.menu_item.name,
            item_category=self.menu_item.category,
            quantity=self.quantity,
            unit_price=self.unit_price,
            customizations=self.customizations or None,
            spice_level=self.spice_level,
            special_instructions=self.special_instructions,
        )


class OrderService:
    """
    Domain service for order admission and order queries.

    The menu catalog and the settings lookup are injectable; by default both
    read from the same database session.
    """

    def __init__(
        self,
        db: AsyncSession,
        catalog: MenuCatalogPort | None = None,
        settings_lookup: SettingsPort | None = None,
    ):
        self._db = db
        self._catalog = catalog or MenuCatalog(db)
        self._settings = settings_lookup or TenantSettings(db)
        self._sessions = SessionService(db)
        self._numbers = OrderNumberGenerator(db)
        self._tables = get_table_repository(db)
        self._orders = get_order_repository(db)

    # =========================================================================
    # Admission
    # =========================================================================

    async def create_order(
        self,
        table_id: int,
        items: Sequence[OrderItemInput],
        customer: CustomerInput | None = None,
        session_token: str | None = None,
    ) -> tuple[Order, str]:
        """
        Place an order at a table.

        Returns the order (items loaded) and the session token for the
        diner device. All-or-nothing: any failure rolls back the whole
        transaction and releases the table lock.

        Raises:
            NotFoundError: table or menu item missing.
            ConflictError: table disabled, or order numbers kept colliding.
            ValidationError: menu item unavailable or an invalid price override.
            InternalError: malformed tax/discount setting.
        """
        if not items:
            raise ValidationError("An order needs at least one item", table_id=table_id)
        if len(items) > Limits.MAX_ITEMS_PER_ORDER:
            raise ValidationError(
                f"An order can have at most {Limits.MAX_ITEMS_PER_ORDER} items",
                table_id=table_id,
            )

        try:
            table = await self._tables.lock_for_update(table_id)
            if table is None:
                raise NotFoundError("Table", table_id)
            if not table.is_available:
                raise ConflictError(f"Table {table.number} is not accepting orders", table_id=table_id)

            tenant = await self._db.get(Tenant, table.tenant_id)
            session = await self._resolve_session(table_id, session_token)

            lines = [await self._price_line(tenant.id, item) for item in items]
            subtotal = sum((line.line_total for line in lines), ZERO)
            tax_rate = parse_rate(
                await self._settings.get_setting(SettingKeys.TAX_RATE, tenant.id),
                SettingKeys.TAX_RATE,
            )
            discount_rate = parse_rate(
                await self._settings.get_setting(SettingKeys.DISCOUNT_RATE, tenant.id),
                SettingKeys.DISCOUNT_RATE,
            )
            subtotal, tax, discount, total = price_totals(subtotal, tax_rate, discount_rate)

            order_type = await self._order_type_for(session.id)

            if customer is not None and (customer.name or customer.phone):
                await self._sessions.update_customer_details(session.id, customer.name, customer.phone)

            def build(order_number: str) -> Order:
                return Order(
                    tenant_id=tenant.id,
                    session_id=session.id,
                    table_id=table_id,
                    order_number=order_number,
                    order_type=order_type,
                    order_status=OrderStatus.PENDING,
                    payment_status=PaymentStatus.PENDING,
                    subtotal=subtotal,
                    tax_amount=tax,
                    discount_amount=discount,
                    total_amount=total,
                    applied_tax_rate=tax_rate,
                    customer_name=customer.name if customer else None,
                    customer_phone=customer.phone if customer else None,
                    special_instructions=customer.special_instructions if customer else None,
                    items=[line.to_order_item() for line in lines],
                )

            order = await self._numbers.insert_order(tenant, build)
            token = session.token
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        order = await self.get_order(order.id)
        logger.info(
            "Order created",
            order_id=order.id,
            order_number=order.order_number,
            order_type=order.order_type,
            table_id=table_id,
            session_id=order.session_id,
            total=str(order.total_amount),
        )
        await publish_order_change(ORDER_CREATED, order)
        return order, token

    async def _resolve_session(self, table_id: int, session_token: str | None) -> TableSession:
        """
        Session to attach the order to.

        A submitted token is only honored when its session is active,
        unexpired and belongs to this table; the scanned table decides.
        """
        if session_token:
            session = await self._sessions.validate_session(session_token)
            if session is not None and session.is_active and session.table_id == table_id:
                return session
            if session is not None and session.table_id != table_id:
                logger.warning(
                    "Session token belongs to another table, ignoring it",
                    table_id=table_id,
                    token_table_id=session.table_id,
                    token=mask_token(session_token),
                )
        return await self._sessions.get_or_create_session(table_id)

    async def _price_line(self, tenant_id: int, item: OrderItemInput) -> PricedLine:
        menu_item = await self._catalog.find_by_id(item.menu_item_id)
        if menu_item is None or menu_item.tenant_id != tenant_id:
            raise NotFoundError("Menu item", item.menu_item_id)
        if not menu_item.is_available:
            raise ValidationError(f"{menu_item.name} is not available", menu_item_id=menu_item.id)

        base_price = Decimal(str(menu_item.price))
        deltas = ZERO
        selected: list[dict[str, Any]] = []

        if item.customization_option_ids:
            groups = await self._catalog.find_customizations_for_item(menu_item.id)
            configured = {
                option["option_id"]: (group, option)
                for group in groups
                for option in group["options"]
                if option["is_available"]
            }
            seen: set[int] = set()
            for option_id in item.customization_option_ids:
                if option_id in seen:
                    continue
                seen.add(option_id)
                match = configured.get(option_id)
                if match is None:
                    logger.warning(
                        "Dropping customization not configured for item",
                        menu_item_id=menu_item.id,
                        option_id=option_id,
                    )
                    continue
                group, option = match
                modifier = Decimal(str(option["price_modifier"]))
                deltas += modifier
                selected.append(
                    {
                        "group_id": group["group_id"],
                        "group_name": group["name"],
                        "option_id": option["option_id"],
                        "option_name": option["name"],
                        "price_modifier": str(to_money(modifier)),
                    }
                )

        unit_price = to_money(base_price + deltas)
        if unit_price < 0:
            raise ValidationError(
                f"Customizations make the price of {menu_item.name} negative",
                menu_item_id=menu_item.id,
            )

        return PricedLine(
            menu_item=menu_item,
            quantity=item.quantity,
            unit_price=unit_price,
            customizations=selected,
            spice_level=item.spice_level,
            special_instructions=item.special_instructions,
        )

    async def _order_type_for(self, session_id: int) -> str:
        """addon while the session already has an open, unpaid bill."""
        open_bill = await self._db.scalar(
            select(Order.id)
            .where(
                Order.session_id == session_id,
                Order.payment_status.in_(PaymentStatus.UNSETTLED),
                Order.order_status != OrderStatus.CANCELLED,
            )
            .limit(1)
        )
        return OrderType.ADDON if open_bill is not None else OrderType.REGULAR

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_order(self, order_id: int) -> Order:
        order = await self._orders.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def get_all_orders(self, query: OrderQuery | None = None) -> list[Order]:
        """
        Orders matching the filters, newest first.

        A session token that does not resolve yields an empty list, never
        an error, so a diner device cannot probe for ids.
        """
        query = query or OrderQuery()
        filters = OrderFilters(
            limit=query.limit,
            statuses=list(query.status) if query.status else None,
            date_from=query.date_from,
            date_to=query.date_to,
        )

        if query.session_token is not None:
            session = await self._sessions.validate_session(query.session_token)
            if session is None:
                return []
            filters.session_id = session.id
        elif query.session_id is not None:
            filters.session_id = query.session_id
        elif query.table_id is not None:
            filters.table_id = query.table_id

        return list(await self._orders.find_all(query.tenant_id, filters))

    async def get_kitchen_orders(self, tenant_id: int) -> list[Order]:
        """Orders the kitchen still has to handle, oldest first."""
        filters = OrderFilters(
            limit=Limits.MAX_PAGE_SIZE,
            statuses=list(OrderStatus.KITCHEN_VISIBLE),
            oldest_first=True,
        )
        return list(await self._orders.find_all(tenant_id, filters))

    async def get_order_stats(
        self,
        tenant_id: int,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> OrderStats:
        """
        Order count, revenue and status breakdown for a tenant.

        Cancelled orders are counted in the breakdown but earn no revenue.
        """
        query = (
            select(Order.order_status, func.count(Order.id), func.sum(Order.total_amount))
            .where(Order.tenant_id == tenant_id)
            .group_by(Order.order_status)
        )
        if date_from is not None:
            query = query.where(Order.created_at >= date_from)
        if date_to is not None:
            query = query.where(Order.created_at <= date_to)

        stats = OrderStats()
        billed_orders = 0
        revenue = ZERO
        for status, count, amount in (await self._db.execute(query)).all():
            stats.status_breakdown[status] = count
            stats.total_orders += count
            if status != OrderStatus.CANCELLED:
                billed_orders += count
                revenue += Decimal(str(amount or 0))

        stats.total_revenue = to_money(revenue)
        if billed_orders:
            stats.average_order_value = to_money(revenue / billed_orders)
        return stats
