"""
Menu catalog lookups used by order admission.

Reads are unlocked; menu data changes far less often than orders are placed.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rest_api.models import (
    CustomizationGroup,
    CustomizationOption,
    ItemCustomization,
    ItemCustomizationOption,
    MenuItem,
)


class CustomizationOptionView(TypedDict):
    option_id: int
    name: str
    price_modifier: Decimal
    is_default: bool
    is_available: bool


class CustomizationGroupView(TypedDict):
    group_id: int
    name: str
    min_selection: int
    max_selection: int
    is_required: bool
    options: list[CustomizationOptionView]


class MenuCatalogPort(Protocol):
    """What order admission needs from the menu."""

    async def find_by_id(self, item_id: int) -> MenuItem | None: ...

    async def find_customizations_for_item(self, item_id: int) -> list[CustomizationGroupView]: ...


class MenuCatalog:
    """MenuCatalogPort backed by the catalog tables."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def find_by_id(self, item_id: int) -> MenuItem | None:
        return await self._db.get(MenuItem, item_id)

    async def find_customizations_for_item(self, item_id: int) -> list[CustomizationGroupView]:
        """
        Groups linked to the item, each with all of its options.

        Price modifiers come from the item's overrides; an option without an
        override costs nothing extra.
        """
        links = (
            await self._db.execute(
                select(ItemCustomization, CustomizationGroup)
                .join(CustomizationGroup, ItemCustomization.group_id == CustomizationGroup.id)
                .where(ItemCustomization.menu_item_id == item_id)
                .order_by(ItemCustomization.id)
            )
        ).all()
        if not links:
            return []

        link_ids = [link.id for link, _ in links]
        group_ids = [group.id for _, group in links]

        overrides = (
            await self._db.scalars(
                select(ItemCustomizationOption).where(
                    ItemCustomizationOption.item_customization_id.in_(link_ids)
                )
            )
        ).all()
        override_by_key = {
            (o.item_customization_id, o.option_id): o for o in overrides
        }

        options = (
            await self._db.scalars(
                select(CustomizationOption)
                .where(CustomizationOption.group_id.in_(group_ids))
                .order_by(CustomizationOption.display_order, CustomizationOption.id)
            )
        ).all()

        groups: list[CustomizationGroupView] = []
        for link, group in links:
            group_options: list[CustomizationOptionView] = []
            for option in options:
                if option.group_id != group.id:
                    continue
                override = override_by_key.get((link.id, option.id))
                group_options.append(
                    CustomizationOptionView(
                        option_id=option.id,
                        name=option.name,
                        price_modifier=override.price_modifier if override else Decimal("0"),
                        is_default=override.is_default if override else False,
                        is_available=option.is_available,
                    )
                )
            groups.append(
                CustomizationGroupView(
                    group_id=group.id,
                    name=group.name,
                    min_selection=group.min_selection,
                    max_selection=group.max_selection,
                    is_required=group.is_required,
                    options=group_options,
                )
            )
        return groups
