"""
Aggregator integration: Zomato and Swiggy orders relayed by the bridge.

Modules:
- bridge_client.py: HTTP client for the bridge
- circuit_breaker.py: fail-fast protection for bridge calls
- normalizer.py: raw payload -> ExternalOrder
- status_map.py: platform status -> local order status
- sync_engine.py: ingestion, staff actions and the bridge polling protocol
- sync_loop.py: periodic background sync
"""

from .bridge_client import BridgeClient
from .circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
    bridge_breaker,
    get_breaker_stats,
)
from .normalizer import ExternalItem, ExternalOrder, normalize_order
from .status_map import map_status
from .sync_engine import (
    AggregatorSyncEngine,
    OutletIndex,
    SyncResult,
    get_sync_engine,
    is_external_duplicate,
)
from .sync_loop import AggregatorSyncLoop, start_sync_loop, stop_sync_loop

__all__ = [
    "BridgeClient",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitState",
    "bridge_breaker",
    "get_breaker_stats",
    "ExternalItem",
    "ExternalOrder",
    "normalize_order",
    "map_status",
    "AggregatorSyncEngine",
    "OutletIndex",
    "SyncResult",
    "get_sync_engine",
    "is_external_duplicate",
    "AggregatorSyncLoop",
    "start_sync_loop",
    "stop_sync_loop",
]
