"""
Table and Session Models: Table, TableSession.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, BigIntPK

if TYPE_CHECKING:
    from .order import Order
    from .tenant import Tenant


class Table(AuditMixin, Base):
    """
    Physical table of a restaurant, identified by the QR code diners scan.

    Identity is immutable; staff toggle is_available to disable a table.
    """

    # "table" is a reserved SQL keyword
    __tablename__ = "restaurant_table"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("tenant.id"), nullable=False, index=True
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=4)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_table_tenant_number", "tenant_id", "number", unique=True),
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship(back_populates="tables")
    sessions: Mapped[list["TableSession"]] = relationship(back_populates="table")

    def __repr__(self) -> str:
        return f"<Table(id={self.id}, number={self.number}, available={self.is_available})>"


class TableSession(AuditMixin, Base):
    """
    A table's visit between the first order and settlement or clearing.

    The token is the only artifact handed to diner devices. expires_at is in
    epoch milliseconds and is compared with the datastore clock.
    """

    __tablename__ = "table_session"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True)
    table_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("restaurant_table.id"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    customer_name: Mapped[Optional[str]] = mapped_column(Text)
    customer_phone: Mapped[Optional[str]] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_table_session_table_active", "table_id", "is_active"),
    )

    # Relationships
    table: Mapped["Table"] = relationship(back_populates="sessions")
    orders: Mapped[list["Order"]] = relationship(back_populates="session")

    def __repr__(self) -> str:
        return f"<TableSession(id={self.id}, table_id={self.table_id}, active={self.is_active})>"
