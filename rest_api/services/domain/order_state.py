"""
Order State Domain Service.

Applies order and payment transitions, cancellation and the session
settlement that follows from them. Each public method is one transaction;
dashboard events go out only after the commit.
"""

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.constants import (
    ORDER_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    OrderStatus,
    OrderType,
    PaymentStatus,
)
from shared.config.logging import order_logger as logger
from shared.infrastructure.events import (
    ORDER_DELETED,
    ORDER_STATUS_CHANGED,
    order_snapshot,
    publish_order_change,
    publish_order_event,
)
from shared.utils.exceptions import (
    InvalidTransitionError,
    OrderNotFoundError,
    ValidationError,
)
from rest_api.models import Order, OrderItem
from rest_api.repositories import get_order_repository
from .session_service import SessionService


class OrderStateService:
    """Order lifecycle transitions."""

    def __init__(self, db: AsyncSession):
        self._db = db
        self._orders = get_order_repository(db)
        self._sessions = SessionService(db)

    async def _get_order(self, order_id: int) -> Order:
        order = await self._orders.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    # =========================================================================
    # Order status
    # =========================================================================

    async def update_order_status(self, order_id: int, new_status: str) -> Order | None:
        """
        Move an order to new_status.

        Cancellation goes through cancel_order and returns None when the
        order was deleted.

        Raises:
            OrderNotFoundError: unknown order.
            InvalidTransitionError: new_status is not reachable from the current status.
        """
        if new_status not in OrderStatus.ALL:
            raise ValidationError(f"Unknown order status '{new_status}'", order_id=order_id)
        if new_status == OrderStatus.CANCELLED:
            return await self.cancel_order(order_id)

        try:
            order = await self._get_order(order_id)
            current = order.order_status
            if new_status not in ORDER_TRANSITIONS.get(current, []):
                raise InvalidTransitionError("Order", current, new_status, order_id=order_id)

            order.order_status = new_status
            await self._db.flush()

            if new_status == OrderStatus.COMPLETED and order.session_id is not None:
                await self._settle_session_if_paid(order.session_id)
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        logger.info("Order status updated", order_id=order_id, from_status=current, to_status=new_status)
        await publish_order_change(ORDER_STATUS_CHANGED, order)
        return order

    # =========================================================================
    # Payment status
    # =========================================================================

    async def update_payment_status(
        self,
        order_id: int,
        new_status: str,
        payment_method: str | None = None,
    ) -> Order:
        """
        Move an order's payment to new_status.

        Approval settles the whole session bill: every non-cancelled order of
        the session becomes Approved, and those already ready or served are
        completed. Orders still in the kitchen keep their status.

        Raises:
            OrderNotFoundError: unknown order.
            InvalidTransitionError: new_status is not reachable from the current payment status.
            ValidationError: approval of a cancelled order, or of one not yet ready.
        """
        if new_status not in PaymentStatus.ALL:
            raise ValidationError(f"Unknown payment status '{new_status}'", order_id=order_id)

        try:
            order = await self._get_order(order_id)
            current = order.payment_status
            if new_status not in PAYMENT_TRANSITIONS.get(current, []):
                raise InvalidTransitionError("Payment", current, new_status, order_id=order_id)

            if new_status == PaymentStatus.APPROVED:
                if order.order_status == OrderStatus.CANCELLED:
                    raise ValidationError("Cannot approve payment for a cancelled order", order_id=order_id)
                if order.order_status not in OrderStatus.PAYABLE:
                    raise ValidationError(
                        f"Payment can only be approved once the order is ready or served "
                        f"(currently '{order.order_status}')",
                        order_id=order_id,
                    )

            order.payment_status = new_status
            if payment_method:
                order.payment_method = payment_method
            changed = {order.id: order}

            if new_status == PaymentStatus.APPROVED:
                if order.order_status in OrderStatus.PAYABLE:
                    order.order_status = OrderStatus.COMPLETED
                if order.session_id is not None:
                    for sibling in await self._approve_session_orders(order.session_id, payment_method):
                        changed[sibling.id] = sibling

            await self._db.flush()
            if new_status == PaymentStatus.APPROVED and order.session_id is not None:
                await self._settle_session_if_paid(order.session_id)
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        logger.info(
            "Payment status updated",
            order_id=order_id,
            from_status=current,
            to_status=new_status,
            orders_affected=len(changed),
        )
        for changed_order in changed.values():
            await publish_order_change(ORDER_STATUS_CHANGED, changed_order)
        return order

    async def _approve_session_orders(self, session_id: int, payment_method: str | None) -> list[Order]:
        """Propagate an approval to the rest of the session's bill."""
        touched = []
        for sibling in await self._orders.find_for_session(session_id):
            if sibling.order_status == OrderStatus.CANCELLED:
                continue
            if sibling.payment_status == PaymentStatus.REFUNDED:
                continue
            if sibling.payment_status != PaymentStatus.APPROVED:
                sibling.payment_status = PaymentStatus.APPROVED
                if payment_method and not sibling.payment_method:
                    sibling.payment_method = payment_method
            if sibling.order_status in OrderStatus.PAYABLE:
                sibling.order_status = OrderStatus.COMPLETED
            touched.append(sibling)
        return touched

    # =========================================================================
    # Cancellation
    # =========================================================================

    async def cancel_order(self, order_id: int) -> Order | None:
        """
        Cancel an order that the kitchen has not started.

        A pending addon is removed outright together with its items; any
        other order is kept with status cancelled. When the cancellation
        leaves the session with nothing open, the session is expired.

        Returns the cancelled order, or None when it was deleted.

        Raises:
            OrderNotFoundError: unknown order.
            InvalidTransitionError: the order is past confirmed.
        """
        try:
            order = await self._get_order(order_id)
            current = order.order_status
            if current not in OrderStatus.CANCELLABLE:
                raise InvalidTransitionError("Order", current, OrderStatus.CANCELLED, order_id=order_id)

            session_id = order.session_id
            snapshot = order_snapshot(order)
            tenant_id, table_id = order.tenant_id, order.table_id
            deleted = order.order_type == OrderType.ADDON and current == OrderStatus.PENDING

            if deleted:
                await self._db.execute(delete(OrderItem).where(OrderItem.order_id == order_id))
                await self._db.execute(delete(Order).where(Order.id == order_id))
            else:
                order.order_status = OrderStatus.CANCELLED
            await self._db.flush()

            if session_id is not None and not await self._has_open_orders(session_id):
                await self._sessions.expire_session(session_id)
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        if deleted:
            logger.info("Pending addon order deleted", order_id=order_id, session_id=session_id)
            await publish_order_event(
                ORDER_DELETED,
                tenant_id=tenant_id,
                order_id=order_id,
                table_id=table_id,
                session_id=session_id,
                entity=snapshot,
            )
            return None

        logger.info("Order cancelled", order_id=order_id, from_status=current)
        await publish_order_change(ORDER_STATUS_CHANGED, order)
        return order

    # =========================================================================
    # Session settlement
    # =========================================================================

    async def _has_open_orders(self, session_id: int) -> bool:
        """True while a non-cancelled order is not yet completed and paid."""
        open_count = await self._db.scalar(
            select(func.count(Order.id)).where(
                Order.session_id == session_id,
                Order.order_status != OrderStatus.CANCELLED,
                or_(
                    Order.order_status != OrderStatus.COMPLETED,
                    Order.payment_status != PaymentStatus.APPROVED,
                ),
            )
        )
        return bool(open_count)

    async def _settle_session_if_paid(self, session_id: int) -> bool:
        """
        Start the grace period once every live order is completed and paid.

        Returns True when the session entered its grace period.
        """
        settled_count = await self._db.scalar(
            select(func.count(Order.id)).where(
                Order.session_id == session_id,
                and_(
                    Order.order_status == OrderStatus.COMPLETED,
                    Order.payment_status == PaymentStatus.APPROVED,
                ),
            )
        )
        if not settled_count or await self._has_open_orders(session_id):
            return False

        session = await self._sessions.get_session_by_id(session_id)
        if session is None or not session.is_active:
            return False

        await self._sessions.set_grace_period(session_id)
        return True
