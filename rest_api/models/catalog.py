"""
Catalog Models: MenuItem, CustomizationGroup, CustomizationOption,
ItemCustomization, ItemCustomizationOption.

Only the columns order admission reads are modelled; menu CRUD lives elsewhere.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Integer, Numeric, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntPK


class MenuItem(AuditMixin, Base):
    """A dish on a restaurant's menu."""

    __tablename__ = "menu_item"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    customizations: Mapped[list["ItemCustomization"]] = relationship(back_populates="menu_item")


class CustomizationGroup(AuditMixin, Base):
    """A reusable group of choices, e.g. "Size" or "Extra toppings"."""

    __tablename__ = "customization_group"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    min_selection: Mapped[int] = mapped_column(Integer, default=0)
    max_selection: Mapped[int] = mapped_column(Integer, default=1)
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)

    options: Mapped[list["CustomizationOption"]] = relationship(
        back_populates="group", order_by="CustomizationOption.display_order"
    )


class CustomizationOption(AuditMixin, Base):
    """One choice inside a group. Prices are set per item, see ItemCustomizationOption."""

    __tablename__ = "customization_option"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    group_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("customization_group.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    display_order: Mapped[int] = mapped_column(Integer, default=0)

    group: Mapped["CustomizationGroup"] = relationship(back_populates="options")


class ItemCustomization(AuditMixin, Base):
    """Links a customization group to a menu item."""

    __tablename__ = "item_customization"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    menu_item_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("menu_item.id"), nullable=False, index=True
    )
    group_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("customization_group.id"), nullable=False, index=True
    )

    __table_args__ = (
        UniqueConstraint("menu_item_id", "group_id", name="uq_item_customization_item_group"),
    )

    menu_item: Mapped["MenuItem"] = relationship(back_populates="customizations")
    group: Mapped["CustomizationGroup"] = relationship()
    option_overrides: Mapped[list["ItemCustomizationOption"]] = relationship(
        back_populates="item_customization"
    )


class ItemCustomizationOption(AuditMixin, Base):
    """Per-item price modifier for one option of a linked group."""

    __tablename__ = "item_customization_option"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    item_customization_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("item_customization.id"), nullable=False, index=True
    )
    option_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("customization_option.id"), nullable=False, index=True
    )
    price_modifier: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=Decimal("0.00"))
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)

    item_customization: Mapped["ItemCustomization"] = relationship(back_populates="option_overrides")
