"""
SQLAlchemy ORM Models Package.

All models are organized into domain-specific modules:
- base: Base class and AuditMixin
- tenant: Tenant, TenantSetting
- table: Table, TableSession
- order: Order, OrderItem
- catalog: MenuItem and customization tables
"""

# Base classes
from .base import Base, AuditMixin

# Core tenant models
from .tenant import Tenant, TenantSetting

# Tables and sessions
from .table import Table, TableSession

# Orders
from .order import Order, OrderItem

# Catalog (menu items and customizations)
from .catalog import (
    MenuItem,
    CustomizationGroup,
    CustomizationOption,
    ItemCustomization,
    ItemCustomizationOption,
)

__all__ = [
    "Base",
    "AuditMixin",
    "Tenant",
    "TenantSetting",
    "Table",
    "TableSession",
    "Order",
    "OrderItem",
    "MenuItem",
    "CustomizationGroup",
    "CustomizationOption",
    "ItemCustomization",
    "ItemCustomizationOption",
]
