"""
Infrastructure module: Database and Redis/events.

Provides:
- Database sessions and transactional primitives (db.py)
- Request correlation IDs (correlation.py)
- Redis pub/sub for dashboard order events (events/)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    get_db_context,
    safe_commit,
    db_now_millis,
    insert_with_retry,
    is_unique_violation,
)
from shared.infrastructure.events import (
    get_redis_pool,
    close_redis_pool,
    publish_event,
    publish_order_event,
)

__all__ = [
    # db
    "engine",
    "SessionLocal",
    "get_db_context",
    "safe_commit",
    "db_now_millis",
    "insert_with_retry",
    "is_unique_violation",
    # events (Redis)
    "get_redis_pool",
    "close_redis_pool",
    "publish_event",
    "publish_order_event",
]
