"""
Tenant settings lookup.

A tenant-specific row wins over the global default (tenant_id NULL).
"""

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rest_api.models import TenantSetting


class SettingsPort(Protocol):
    async def get_setting(self, key: str, tenant_id: int | None = None) -> str | None: ...


class TenantSettings:
    """SettingsPort backed by the tenant_setting table."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def get_setting(self, key: str, tenant_id: int | None = None) -> str | None:
        if tenant_id is not None:
            value = await self._lookup(key, tenant_id)
            if value is not None:
                return value
        return await self._lookup(key, None)

    async def _lookup(self, key: str, tenant_id: int | None) -> str | None:
        query = select(TenantSetting.value).where(TenantSetting.key == key)
        if tenant_id is None:
            query = query.where(TenantSetting.tenant_id.is_(None))
        else:
            query = query.where(TenantSetting.tenant_id == tenant_id)
        return await self._db.scalar(query.limit(1))


class StaticSettings:
    """In-memory SettingsPort, keyed by (tenant_id, key)."""

    def __init__(self, values: dict[tuple[int | None, str], str] | None = None):
        self._values = dict(values or {})

    async def get_setting(self, key: str, tenant_id: int | None = None) -> str | None:
        if (tenant_id, key) in self._values:
            return self._values[(tenant_id, key)]
        return self._values.get((None, key))
