"""
Order Models: Order, OrderItem.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.config.constants import OrderStatus, OrderType, PaymentStatus, PendingAction

from .base import AuditMixin, Base, BigIntPK

if TYPE_CHECKING:
    from .table import TableSession


class Order(AuditMixin, Base):
    """
    An order placed at a table or relayed from a delivery platform.

    In-house orders always belong to a session and a table. Online orders have
    neither and carry the external_* fields instead.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    session_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("table_session.id"), nullable=True, index=True
    )
    table_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), nullable=True, index=True
    )
    # YYYYMMDD + 4-digit counter, unique per tenant
    order_number: Mapped[str] = mapped_column(Text, nullable=False)
    order_type: Mapped[str] = mapped_column(Text, default=OrderType.REGULAR, nullable=False)
    order_status: Mapped[str] = mapped_column(
        Text, default=OrderStatus.PENDING, nullable=False, index=True
    )
    payment_status: Mapped[str] = mapped_column(
        Text, default=PaymentStatus.PENDING, nullable=False
    )
    payment_method: Mapped[Optional[str]] = mapped_column(Text)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    applied_tax_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), default=Decimal("0"), nullable=False)

    customer_name: Mapped[Optional[str]] = mapped_column(Text)
    customer_phone: Mapped[Optional[str]] = mapped_column(Text)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text)

    # Aggregator-sourced orders
    external_platform: Mapped[Optional[str]] = mapped_column(Text)
    external_order_id: Mapped[Optional[str]] = mapped_column(Text)
    external_outlet_id: Mapped[Optional[str]] = mapped_column(Text)
    raw_status: Mapped[Optional[str]] = mapped_column(Text)
    pending_action: Mapped[int] = mapped_column(Integer, default=PendingAction.NONE, nullable=False)
    pending_prep_minutes: Mapped[Optional[int]] = mapped_column(Integer)

    __table_args__ = (
        UniqueConstraint("tenant_id", "order_number", name="uq_order_tenant_order_number"),
        UniqueConstraint("external_order_id", "external_platform", name="uq_order_external"),
        CheckConstraint("subtotal >= 0", name="chk_order_subtotal_non_negative"),
        Index("ix_order_tenant_status", "tenant_id", "order_status"),
        Index("ix_order_tenant_pending_action", "tenant_id", "pending_action"),
    )

    # Relationships
    session: Mapped[Optional["TableSession"]] = relationship(back_populates="orders")
    items: Mapped[list["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )

    @property
    def is_external(self) -> bool:
        return self.external_platform is not None

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, number='{self.order_number}', type='{self.order_type}', "
            f"status='{self.order_status}', payment='{self.payment_status}')>"
        )


class OrderItem(AuditMixin, Base):
    """
    A single line of an order.
    Stores the name and unit price at the time of order for historical accuracy.
    """

    __tablename__ = "order_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    order_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Null for items relayed from a delivery platform
    menu_item_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("menu_item.id"), nullable=True, index=True
    )
    item_name: Mapped[str] = mapped_column(Text, nullable=False)
    item_category: Mapped[Optional[str]] = mapped_column(Text)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    # [{"group_id", "group_name", "option_id", "option_name", "price_modifier"}]
    customizations: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSON)
    spice_level: Mapped[Optional[str]] = mapped_column(Text)
    special_instructions: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_order_item_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="chk_order_item_price_non_negative"),
    )

    # Relationships
    order: Mapped["Order"] = relationship(back_populates="items")

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity
