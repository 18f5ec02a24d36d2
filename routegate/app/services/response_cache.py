"""In-memory response cache, one bounded namespace per endpoint class.

Entries are fresh while ``now < inserted_at + ttl``. Expired entries are
dropped by the read that finds them. When a namespace is full the entry
inserted first is evicted, whether or not it is still fresh; reads do not
change eviction order.
"""

import hashlib
import json
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

from pydantic import BaseModel

from routegate.app.core.endpoints import EndpointClass, EndpointConfig
from routegate.app.core.logging import get_log_context, get_logger

logger = get_logger(__name__)


class _Miss:
    """Sentinel returned by ``ResponseCache.get`` on a miss."""

    _instance: Optional["_Miss"] = None

    def __new__(cls) -> "_Miss":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISS"


MISS = _Miss()


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now < self.inserted_at + self.ttl


def make_cache_key(endpoint_class: EndpointClass, request: Any) -> str:
    """Deterministic cache key for a request under an endpoint class.

    Models are dumped to JSON-compatible data and serialized with sorted
    keys, so requests that differ only in mapping key order share a key.
    List order is significant.

    Args:
        endpoint_class: Class the request belongs to
        request: A pydantic model or JSON-compatible value

    Returns:
        Key string in format: {endpoint_class}:{sha256 hex}
    """
    if isinstance(request, BaseModel):
        data = request.model_dump(mode="json")
    else:
        data = request
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return f"{endpoint_class.value}:{digest}"


class ResponseCache:
    """Namespaced TTL cache with insertion-order eviction."""

    DEFAULT_CAPACITY = 100

    def __init__(
        self,
        capacities: Optional[Mapping[str, int]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            capacities: Maximum entries per namespace; unlisted namespaces
                get DEFAULT_CAPACITY
            clock: Returns the current time in epoch seconds
        """
        self._capacities = {str(k): v for k, v in (capacities or {}).items()}
        for namespace, capacity in self._capacities.items():
            if capacity < 1:
                raise ValueError(f"Capacity for {namespace} must be at least 1")
        self._clock = clock
        self._namespaces: Dict[str, "OrderedDict[str, CacheEntry]"] = {}

    @classmethod
    def from_configs(
        cls,
        configs: Mapping[EndpointClass, EndpointConfig],
        clock: Callable[[], float] = time.time,
    ) -> "ResponseCache":
        return cls(
            {endpoint_class.value: config.cache_capacity for endpoint_class, config in configs.items()},
            clock=clock,
        )

    @staticmethod
    def _ns(namespace: Any) -> str:
        return namespace.value if isinstance(namespace, EndpointClass) else str(namespace)

    def capacity(self, namespace: Any) -> int:
        return self._capacities.get(self._ns(namespace), self.DEFAULT_CAPACITY)

    def get(self, namespace: Any, key: str) -> Any:
        """Return the cached value, or MISS when absent or expired."""
        ns = self._ns(namespace)
        entries = self._namespaces.get(ns)
        if not entries:
            return MISS
        entry = entries.get(key)
        if entry is None:
            return MISS
        if not entry.is_fresh(self._clock()):
            del entries[key]
            return MISS
        return entry.value

    def set(self, namespace: Any, key: str, value: Any, ttl: float) -> None:
        """Store ``value``; evicts the oldest-inserted entry if the namespace is full.

        Re-setting an existing key refreshes its value and timestamp but
        keeps its original position in eviction order.
        """
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        ns = self._ns(namespace)
        entries = self._namespaces.setdefault(ns, OrderedDict())
        now = self._clock()

        existing = entries.get(key)
        if existing is not None:
            existing.value = value
            existing.inserted_at = now
            existing.ttl = ttl
            return

        if len(entries) >= self.capacity(ns):
            evicted_key, _ = entries.popitem(last=False)
            logger.debug(
                f"Evicted oldest cache entry {evicted_key}",
                extra=get_log_context(endpoint_class=ns),
            )
        entries[key] = CacheEntry(key=key, value=value, inserted_at=now, ttl=ttl)

    def invalidate(self, namespace: Any, key: str) -> None:
        entries = self._namespaces.get(self._ns(namespace))
        if entries is not None:
            entries.pop(key, None)

    def clear(self, namespace: Any = None) -> None:
        """Drop every entry, or only those of ``namespace``."""
        if namespace is None:
            self._namespaces.clear()
        else:
            self._namespaces.pop(self._ns(namespace), None)

    def size(self, namespace: Any) -> int:
        """Number of stored entries, expired ones included."""
        return len(self._namespaces.get(self._ns(namespace), ()))
