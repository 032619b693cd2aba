"""
Core Event Publishing with Retry and Validation.
"""

from __future__ import annotations

import asyncio
import random

import redis.asyncio as redis

from shared.config.logging import get_logger
from shared.config.settings import settings
from .event_schema import Event
from .event_types import MAX_EVENT_SIZE

logger = get_logger(__name__)


def _validate_event_size(event_json: str, event_type: str) -> None:
    """Raise ValueError when the serialized event is too large."""
    size = len(event_json.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise ValueError(
            f"Event {event_type} exceeds max size: {size} > {MAX_EVENT_SIZE} bytes"
        )


def calculate_retry_delay_with_jitter(attempt: int, base_delay: float = 0.1) -> float:
    """
    Exponential backoff with jitter, capped at 10 seconds.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
    """
    exp_delay = min(base_delay * (2 ** attempt), 10.0)
    return random.uniform(base_delay, exp_delay)


async def publish_event(
    redis_client: redis.Redis,
    channel: str,
    event: Event,
) -> int:
    """
    Publish an event to a Redis channel.

    Returns:
        Number of subscribers that received the message.

    Raises:
        ValueError: If event is too large.
        Exception: The last Redis error once all retries fail.
    """
    event_json = event.to_json()
    _validate_event_size(event_json, event.type)

    max_retries = max(1, settings.redis_publish_max_retries)
    last_error: Exception | None = None
    for attempt in range(max_retries):
        try:
            return await redis_client.publish(channel, event_json)
        except Exception as e:
            last_error = e
            if attempt < max_retries - 1:
                delay = calculate_retry_delay_with_jitter(
                    attempt, settings.redis_publish_retry_delay
                )
                logger.warning(
                    "Redis publish failed, retrying",
                    channel=channel,
                    event_type=event.type,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay_seconds=round(delay, 2),
                    error=str(e),
                )
                await asyncio.sleep(delay)

    logger.error(
        "Redis publish failed after all retries",
        channel=channel,
        event_type=event.type,
        error=str(last_error),
    )
    raise last_error  # type: ignore[misc]
