"""
Tenant Models: Tenant, TenantSetting.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntPK

if TYPE_CHECKING:
    from .table import Table


class Tenant(AuditMixin, Base):
    """
    A restaurant operating on the platform.

    The timezone defines the restaurant's local day, which scopes order
    numbers. Aggregator outlet ids are comma-separated lists because one
    restaurant can own several outlets per platform.
    """

    __tablename__ = "tenant"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    timezone: Mapped[Optional[str]] = mapped_column(Text)  # IANA name, e.g. "Asia/Kolkata"
    zomato_outlet_ids: Mapped[Optional[str]] = mapped_column(Text)
    swiggy_outlet_ids: Mapped[Optional[str]] = mapped_column(Text)

    tables: Mapped[list["Table"]] = relationship(back_populates="tenant")

    def outlet_ids(self) -> list[str]:
        """All configured outlet ids, Zomato first, blanks removed."""
        ids: list[str] = []
        for raw in (self.zomato_outlet_ids, self.swiggy_outlet_ids):
            ids.extend(part.strip() for part in (raw or "").split(",") if part.strip())
        return ids

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name='{self.name}', slug='{self.slug}')>"


class TenantSetting(AuditMixin, Base):
    """
    Key/value setting. A row without tenant is the global default.
    """

    __tablename__ = "tenant_setting"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=True, index=True
    )
    key: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("tenant_id", "key", name="uq_tenant_setting_key"),
    )
