"""
Event Schema.

Defines the Event dataclass published for order changes.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

from .event_types import ORDER_EVENT_TYPES


@dataclass
class Event:
    """
    Order event as seen by dashboard subscribers.

    The 'entity' field carries the order snapshot (ids, number, statuses).
    """

    type: str
    tenant_id: int
    order_id: int
    table_id: int | None = None
    session_id: int | None = None
    entity: dict[str, Any] = field(default_factory=dict)
    ts: str | None = None
    v: int = 1  # Schema version for future compatibility

    def __post_init__(self) -> None:
        """Reject malformed events before they reach Redis."""
        if self.type not in ORDER_EVENT_TYPES:
            raise ValueError(f"Unknown event type: {self.type!r}")

        if not isinstance(self.tenant_id, int) or self.tenant_id <= 0:
            raise ValueError("Event tenant_id must be a positive integer")

        if not isinstance(self.order_id, int) or self.order_id <= 0:
            raise ValueError("Event order_id must be a positive integer")

        if self.entity is not None and not isinstance(self.entity, dict):
            raise ValueError("Event entity must be a dict or None")

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        data = asdict(self)
        data["entity"] = data["entity"] or {}
        data["ts"] = data["ts"] or datetime.now(timezone.utc).isoformat()
        return json.dumps(data, ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        """Deserialize event from JSON string. Validation runs in __post_init__."""
        data = json.loads(json_str)
        return cls(**data)
