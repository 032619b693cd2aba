"""
Shared module for cross-cutting concerns used by the REST API.

STRUCTURE:
- shared.infrastructure: Database and messaging
  - db.py: SQLAlchemy async sessions, safe_commit(), insert_with_retry()
  - correlation.py: X-Request-ID propagation
  - events/: Redis pub/sub, order change events

- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: OrderStatus, PaymentStatus, Platform, setting keys

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - money.py: Decimal money and rate helpers
  - schemas.py: Shared Pydantic schemas

IMPORT EXAMPLES:
    from shared.infrastructure.db import get_db_context, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import OrderStatus, PaymentStatus
    from shared.utils.exceptions import NotFoundError, ConflictError
"""
