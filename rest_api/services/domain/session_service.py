"""
Table Session Domain Service.

Creates, reuses and expires the per-table ordering session. Every method
works on the caller's AsyncSession and never commits, so when order
admission calls in, session resolution happens under the admission
transaction and its table lock.

Expiry is stored in epoch milliseconds and always compared with the
datastore clock.
"""

import secrets

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.logging import mask_phone, mask_token, session_logger as logger
from shared.config.settings import settings
from shared.infrastructure.db import db_now_millis
from rest_api.models import TableSession

MINUTE_MS = 60 * 1000


def new_session_token() -> str:
    """256 bits of randomness, hex encoded."""
    return secrets.token_hex(32)


class SessionService:
    """Domain service for TableSession lifecycle."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def get_active_session(self, table_id: int) -> TableSession | None:
        """Latest active, unexpired session of the table."""
        now_ms = await db_now_millis(self._db)
        return await self._db.scalar(
            select(TableSession)
            .where(
                TableSession.table_id == table_id,
                TableSession.is_active.is_(True),
                TableSession.expires_at > now_ms,
            )
            .order_by(TableSession.created_at.desc(), TableSession.id.desc())
            .limit(1)
        )

    async def get_or_create_session(self, table_id: int) -> TableSession:
        """
        Reuse the table's active, unexpired session, even one with no orders
        yet; otherwise open a new one with a fixed expiry from now.
        """
        existing = await self.get_active_session(table_id)
        if existing is not None:
            return existing

        now_ms = await db_now_millis(self._db)

        # Active rows past their expiry are dead; close them so the flag stays truthful
        await self._db.execute(
            update(TableSession)
            .where(
                TableSession.table_id == table_id,
                TableSession.is_active.is_(True),
                TableSession.expires_at <= now_ms,
            )
            .values(is_active=False)
        )

        session = TableSession(
            table_id=table_id,
            token=new_session_token(),
            is_active=True,
            expires_at=now_ms + settings.session_ttl_minutes * MINUTE_MS,
        )
        self._db.add(session)
        await self._db.flush()

        logger.info(
            "Table session created",
            table_id=table_id,
            session_id=session.id,
            token=mask_token(session.token),
        )
        return session

    async def validate_session(self, token: str | None) -> TableSession | None:
        """
        Session for the token if its stored expiry has not elapsed.

        Sessions in their grace period are inactive but still resolve, so a
        receipt stays fetchable until the expiry passes.
        """
        if not token:
            return None

        now_ms = await db_now_millis(self._db)
        return await self._db.scalar(
            select(TableSession).where(
                TableSession.token == token,
                TableSession.expires_at > now_ms,
            )
        )

    async def get_session_by_id(self, session_id: int) -> TableSession | None:
        return await self._db.get(TableSession, session_id)

    async def update_customer_details(
        self,
        session_id: int,
        name: str | None,
        phone: str | None,
    ) -> None:
        await self._db.execute(
            update(TableSession)
            .where(TableSession.id == session_id)
            .values(customer_name=name, customer_phone=phone)
        )
        logger.debug(
            "Session customer details updated",
            session_id=session_id,
            phone=mask_phone(phone),
        )

    async def expire_session(self, session_id: int) -> None:
        await self._db.execute(
            update(TableSession)
            .where(TableSession.id == session_id)
            .values(is_active=False)
        )
        logger.info("Table session expired", session_id=session_id)

    async def clear_table(self, table_id: int) -> int:
        """
        Staff-forced deactivation of every session on the table.

        Returns the number of sessions that were still active.
        """
        result = await self._db.execute(
            update(TableSession)
            .where(
                TableSession.table_id == table_id,
                TableSession.is_active.is_(True),
            )
            .values(is_active=False)
        )
        logger.info("Table cleared", table_id=table_id, sessions_closed=result.rowcount)
        return result.rowcount or 0

    async def set_grace_period(self, session_id: int, minutes: int | None = None) -> int:
        """
        Deactivate the session and shorten its expiry to now + minutes.

        Returns the new expiry in epoch milliseconds.
        """
        if minutes is None:
            minutes = settings.session_grace_minutes
        expires_at = await db_now_millis(self._db) + minutes * MINUTE_MS

        await self._db.execute(
            update(TableSession)
            .where(TableSession.id == session_id)
            .values(is_active=False, expires_at=expires_at)
        )
        logger.info(
            "Session grace period set",
            session_id=session_id,
            minutes=minutes,
            expires_at=expires_at,
        )
        return expires_at
