"""
HTTP client for the aggregator bridge.

The bridge relays Zomato and Swiggy orders. It is reached with a bearer
token; every call goes through the bridge circuit breaker.

Fetching is per vendor: a failing vendor is logged and contributes no
orders, it never hides the other vendor's orders. Action calls raise
ExternalServiceError and leave recovery to the caller.
"""

import asyncio
from typing import Any, Optional

import httpx

from shared.config.constants import Platform
from shared.config.logging import aggregator_logger as logger
from shared.config.settings import settings
from shared.utils.exceptions import ExternalServiceError
from .circuit_breaker import CircuitBreaker, CircuitBreakerError, bridge_breaker

ZOMATO_CURRENT_ORDERS = "/api/v1/zomato/orders/current"
ZOMATO_ORDER_DETAILS = "/api/v1/zomato/order/details"
ZOMATO_ACCEPT = "/api/v1/zomato/orders/accept_order"
ZOMATO_MARK_READY = "/api/v1/zomato/orders/mark_ready"
ZOMATO_REJECT = "/api/v1/zomato/orders/reject"
SWIGGY_ORDERS = "/api/v1/swiggy/orders"
SWIGGY_ACCEPT = "/api/v1/swiggy/orders/accept"
SWIGGY_MARK_READY = "/api/v1/swiggy/orders/ready"

BRIDGE_SERVICE = "aggregator_bridge"


def extract_zomato_summaries(data: Any) -> list[tuple[str, dict[str, Any]]]:
    """
    (bucket, summary) pairs from a current-orders response.

    The response is one object keyed by bucket, or a list of such objects;
    each bucket holds its order summaries under "entities".
    """
    buckets = data if isinstance(data, list) else [data]
    summaries = []
    for bucket in buckets:
        if not isinstance(bucket, dict):
            continue
        for bucket_key, value in bucket.items():
            entities = value.get("entities") if isinstance(value, dict) else None
            if not isinstance(entities, list):
                continue
            summaries.extend((bucket_key, summary) for summary in entities if isinstance(summary, dict))
    return summaries


class BridgeClient:
    """
    Async client for the aggregator bridge.

    A single httpx.AsyncClient is created lazily and reused; close() must
    be called on shutdown.
    """

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        breaker: CircuitBreaker = bridge_breaker,
    ):
        self.base_url = (base_url or settings.aggregator_base_url).rstrip("/")
        self._access_token = access_token if access_token is not None else settings.aggregator_access_token
        self.timeout = timeout or settings.aggregator_timeout_seconds
        self._transport = transport
        self._breaker = breaker
        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None and not self._client.is_closed:
            return self._client

        async with self._client_lock:
            if self._client is None or self._client.is_closed:
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    headers={
                        "Authorization": f"Bearer {self._access_token}",
                        "Content-Type": "application/json",
                    },
                    timeout=self.timeout,
                    transport=self._transport,
                )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, params: dict[str, Any] | None = None) -> Any:
        """
        One bridge call through the circuit breaker.

        Raises:
            ExternalServiceError: circuit open, transport error or non-2xx response.
        """
        client = await self._get_client()
        try:
            async with self._breaker.call():
                response = await client.request(method, path, params=params)
                response.raise_for_status()
        except CircuitBreakerError as e:
            raise ExternalServiceError(
                BRIDGE_SERVICE,
                reason=str(e),
                is_unavailable=True,
                retry_after=int(e.retry_after) + 1,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(BRIDGE_SERVICE, reason=f"{method} {path}: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ExternalServiceError(BRIDGE_SERVICE, reason=f"{method} {path}: invalid JSON") from e

    # =========================================================================
    # Fetching
    # =========================================================================

    async def fetch_zomato_orders(self) -> list[dict[str, Any]]:
        """
        Current Zomato orders with their details.

        Each entry is the details response tagged with "platform" and the
        "bucketStatus" its summary was listed under. Orders whose details
        cannot be fetched are skipped.
        """
        data = await self._request("GET", ZOMATO_CURRENT_ORDERS)
        summaries = extract_zomato_summaries(data)
        if not summaries:
            logger.debug("No Zomato orders in buckets")
            return []

        async def details_for(bucket: str, summary: dict[str, Any]) -> dict[str, Any] | None:
            order_id = summary.get("order_id") or summary.get("tab_id")
            if not order_id:
                return None
            try:
                detailed = await self._request("GET", ZOMATO_ORDER_DETAILS, params={"order_id": order_id})
            except ExternalServiceError as e:
                logger.warning("Zomato order details failed", external_order_id=order_id, error=e.reason)
                return None
            if not isinstance(detailed, dict):
                return None
            return {**detailed, "bucketStatus": bucket, "platform": Platform.ZOMATO}

        details = await asyncio.gather(*(details_for(bucket, summary) for bucket, summary in summaries))
        orders = [d for d in details if d is not None]
        logger.info("Fetched Zomato orders", summaries=len(summaries), detailed=len(orders))
        return orders

    async def fetch_swiggy_orders(self) -> list[dict[str, Any]]:
        data = await self._request("GET", SWIGGY_ORDERS)
        if isinstance(data, dict):
            data = data.get("orders") or []
        if not isinstance(data, list):
            return []
        return [{**order, "platform": Platform.SWIGGY} for order in data if isinstance(order, dict)]

    async def fetch_orders(self) -> list[dict[str, Any]]:
        """Raw payloads from every vendor; a failing vendor contributes none."""
        results = await asyncio.gather(
            self.fetch_zomato_orders(),
            self.fetch_swiggy_orders(),
            return_exceptions=True,
        )

        orders: list[dict[str, Any]] = []
        for platform, result in zip(Platform.ALL, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    "Aggregator fetch failed",
                    platform=platform,
                    error=getattr(result, "reason", None) or str(result),
                )
                continue
            orders.extend(result)

        logger.debug("Fetched aggregator orders", count=len(orders))
        return orders

    # =========================================================================
    # Actions
    # =========================================================================

    async def accept_order(self, platform: str, external_order_id: str, prep_minutes: int) -> Any:
        if platform == Platform.ZOMATO:
            return await self._request(
                "POST",
                ZOMATO_ACCEPT,
                params={"order_id": external_order_id, "delivery_time": str(prep_minutes)},
            )
        if platform == Platform.SWIGGY:
            return await self._request(
                "POST",
                SWIGGY_ACCEPT,
                params={"order_id": external_order_id, "prep_time": prep_minutes},
            )
        raise ExternalServiceError(BRIDGE_SERVICE, reason=f"accept not supported for {platform}")

    async def mark_ready(self, platform: str, external_order_id: str) -> Any:
        if platform == Platform.ZOMATO:
            return await self._request("POST", ZOMATO_MARK_READY, params={"order_id": external_order_id})
        if platform == Platform.SWIGGY:
            return await self._request("POST", SWIGGY_MARK_READY, params={"order_id": external_order_id})
        raise ExternalServiceError(BRIDGE_SERVICE, reason=f"mark ready not supported for {platform}")

    async def reject_order(self, platform: str, outlet_id: str | None, external_order_id: str) -> Any:
        """
        Reject on the platform.

        Swiggy has no reject call on the bridge; the request is logged and
        left to the pending-action flag.
        """
        if platform == Platform.ZOMATO:
            return await self._request(
                "POST",
                ZOMATO_REJECT,
                params={"restaurant_id": outlet_id, "order_id": external_order_id},
            )
        logger.warning("Reject not supported by bridge", platform=platform, external_order_id=external_order_id)
        return None
