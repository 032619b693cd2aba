"""
Catalog Services - read-only collaborators of order admission.

Provides:
- MenuCatalog: menu item and customization lookups
- TenantSettings: tax/discount settings with global fallback
"""

from .menu_catalog import (
    CustomizationGroupView,
    CustomizationOptionView,
    MenuCatalog,
    MenuCatalogPort,
)
from .tenant_settings import SettingsPort, StaticSettings, TenantSettings

__all__ = [
    "CustomizationGroupView",
    "CustomizationOptionView",
    "MenuCatalog",
    "MenuCatalogPort",
    "SettingsPort",
    "StaticSettings",
    "TenantSettings",
]
