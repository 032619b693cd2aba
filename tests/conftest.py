"""
Pytest configuration and fixtures for backend tests.

Every test gets its own SQLite file database. Write transactions start with
BEGIN IMMEDIATE so concurrent sessions queue up the way row locks make them
queue on PostgreSQL.
"""

import os
import tempfile

# Must be set before any application module reads the settings
os.environ.setdefault(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'table_ordering_pytest.db')}",
)
os.environ.setdefault("REDIS_EVENTS_ENABLED", "false")
os.environ.setdefault("AGGREGATOR_SYNC_ENABLED", "false")
os.environ.setdefault("ORDER_NUMBER_BACKOFF_MS", "0")

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import event, func, select, update
from sqlalchemy.ext.asyncio import create_async_engine

from shared.infrastructure.db import build_session_factory
from rest_api.models import (
    Base,
    CustomizationGroup,
    CustomizationOption,
    ItemCustomization,
    ItemCustomizationOption,
    MenuItem,
    Order,
    Table,
    TableSession,
    Tenant,
    TenantSetting,
)


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Async engine on a fresh SQLite file with serialized write transactions."""
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    """
    Session for a single-session test.

    Tests that run other sessions concurrently must end this session's
    transaction first (commit or rollback).
    """
    async with session_factory() as session:
        yield session


# =============================================================================
# Seed data
# =============================================================================


@pytest_asyncio.fixture
async def seed_tenant(db):
    tenant = Tenant(
        name="Test Restaurant",
        slug="test",
        timezone="Asia/Kolkata",
        zomato_outlet_ids="19520792, 19520793",
        swiggy_outlet_ids="884411",
    )
    db.add(tenant)
    await db.commit()
    return tenant


@pytest_asyncio.fixture
async def seed_other_tenant(db):
    tenant = Tenant(name="Other Restaurant", slug="other", zomato_outlet_ids="19520792")
    db.add(tenant)
    await db.commit()
    return tenant


@pytest_asyncio.fixture
async def seed_tables(db, seed_tenant):
    """Tables 1-8, table 7 disabled."""
    tables = [
        Table(tenant_id=seed_tenant.id, number=n, capacity=4, is_available=n != 7)
        for n in range(1, 9)
    ]
    db.add_all(tables)
    await db.commit()
    return {table.number: table for table in tables}


@pytest_asyncio.fixture
async def seed_menu(db, seed_tenant):
    """
    Menu items 29 (Paneer Tikka, 100.00), Lassi (60.00) and an unavailable Soup.

    Paneer Tikka has a Size group: Regular (+0), Large (+40.00), and an
    unavailable Jumbo option.
    """
    paneer = MenuItem(tenant_id=seed_tenant.id, name="Paneer Tikka", category="Starters", price=Decimal("100.00"))
    lassi = MenuItem(tenant_id=seed_tenant.id, name="Lassi", category="Drinks", price=Decimal("60.00"))
    soup = MenuItem(
        tenant_id=seed_tenant.id, name="Soup", category="Starters", price=Decimal("80.00"), is_available=False
    )
    db.add_all([paneer, lassi, soup])
    await db.flush()

    size = CustomizationGroup(tenant_id=seed_tenant.id, name="Size", min_selection=0, max_selection=1)
    db.add(size)
    await db.flush()
    regular = CustomizationOption(group_id=size.id, name="Regular", display_order=1)
    large = CustomizationOption(group_id=size.id, name="Large", display_order=2)
    jumbo = CustomizationOption(group_id=size.id, name="Jumbo", display_order=3, is_available=False)
    db.add_all([regular, large, jumbo])
    await db.flush()

    link = ItemCustomization(menu_item_id=paneer.id, group_id=size.id)
    db.add(link)
    await db.flush()
    db.add_all([
        ItemCustomizationOption(item_customization_id=link.id, option_id=regular.id, is_default=True),
        ItemCustomizationOption(item_customization_id=link.id, option_id=large.id, price_modifier=Decimal("40.00")),
        ItemCustomizationOption(item_customization_id=link.id, option_id=jumbo.id, price_modifier=Decimal("80.00")),
    ])
    await db.commit()

    return {
        "paneer": paneer,
        "lassi": lassi,
        "soup": soup,
        "regular": regular,
        "large": large,
        "jumbo": jumbo,
    }


@pytest_asyncio.fixture
async def seed_rates(db, seed_tenant):
    """Tax 8%, discount 5% for the test tenant."""
    db.add_all([
        TenantSetting(tenant_id=seed_tenant.id, key="tax_rate", value="0.08"),
        TenantSetting(tenant_id=seed_tenant.id, key="discount_rate", value="0.05"),
    ])
    await db.commit()


# =============================================================================
# Helpers
# =============================================================================


async def count_orders(session_factory, **criteria) -> int:
    """Count orders matching column equality criteria, in a fresh session."""
    async with session_factory() as session:
        query = select(func.count(Order.id))
        for column, value in criteria.items():
            query = query.where(getattr(Order, column) == value)
        return await session.scalar(query)


async def expire_table_sessions(session_factory, table_id: int) -> None:
    """Push every session of the table past its expiry."""
    async with session_factory() as session:
        await session.execute(
            update(TableSession).where(TableSession.table_id == table_id).values(expires_at=0)
        )
        await session.commit()
