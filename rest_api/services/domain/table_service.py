"""
Table Service.

Staff operations on whole tables: force-closing a table's sessions and
moving a seated party to another table.
"""

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.logging import session_logger as logger
from shared.utils.exceptions import ConflictError, NotFoundError
from rest_api.models import Order, TableSession
from rest_api.repositories import get_table_repository
from .session_service import SessionService


class TableService:
    """Service for table-level session management."""

    def __init__(self, db: AsyncSession):
        self._db = db
        self._tables = get_table_repository(db)
        self._sessions = SessionService(db)

    async def clear_table(self, table_id: int) -> int:
        """
        Deactivate every session of the table.

        Returns the number of sessions closed.
        """
        try:
            table = await self._tables.lock_for_update(table_id)
            if table is None:
                raise NotFoundError("Table", table_id)
            closed = await self._sessions.clear_table(table_id)
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise
        return closed

    async def move_table_session(self, source_table_id: int, target_table_id: int) -> TableSession:
        """
        Move the source table's active session, with its orders, to the target.

        Both rows are locked in ascending id order so two opposite moves
        cannot deadlock.

        Raises:
            NotFoundError: either table, or the source's active session, is missing.
            ConflictError: same table, target disabled, or target already seated.
        """
        if source_table_id == target_table_id:
            raise ConflictError("Source and target table are the same", table_id=source_table_id)

        try:
            locked = await self._tables.lock_many_for_update([source_table_id, target_table_id])
            for table_id in (source_table_id, target_table_id):
                if table_id not in locked:
                    raise NotFoundError("Table", table_id)

            target = locked[target_table_id]
            if not target.is_available:
                raise ConflictError(f"Table {target.number} is not accepting guests", table_id=target_table_id)
            if target.tenant_id != locked[source_table_id].tenant_id:
                raise NotFoundError("Table", target_table_id)

            session = await self._sessions.get_active_session(source_table_id)
            if session is None:
                raise NotFoundError("Active session for table", source_table_id)
            if await self._sessions.get_active_session(target_table_id) is not None:
                raise ConflictError(f"Table {target.number} already has an active session", table_id=target_table_id)

            session.table_id = target_table_id
            await self._db.execute(
                update(Order)
                .where(Order.session_id == session.id)
                .values(table_id=target_table_id)
            )
            await self._db.flush()
            await self._db.commit()
        except Exception:
            await self._db.rollback()
            raise

        logger.info(
            "Table session moved",
            session_id=session.id,
            source_table_id=source_table_id,
            target_table_id=target_table_id,
        )
        return session
