"""Provider gateway: cache, quota, primary, fallback.

One ``invoke`` path serves every endpoint class:

1. A fresh cache entry is returned as-is and recorded as ``cache-hit``.
2. Otherwise the ledger is asked whether a real call may proceed. If so,
   the primary provider is called; success is cached and recorded as
   ``real-success``, failure is recorded as ``real-failure``.
3. A denied or failed primary falls through to the fallback provider when
   the class has one (``fallback-success`` / ``fallback-failure``), and
   surfaces as an error when it does not.

No lock is held across the network call: concurrent identical requests
may each miss the cache and each spend quota.
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Mapping, Optional

from routegate.app.core.endpoints import EndpointClass, EndpointConfig
from routegate.app.core.logging import get_log_context, get_logger
from routegate.app.exceptions import (
    InvalidRequestError,
    ProviderFailureError,
    ProviderFailureNoFallbackError,
    QuotaExceededNoFallbackError,
)
from routegate.app.services.adapters import EndpointAdapter
from routegate.app.services.quota_ledger import Outcome, QuotaLedger
from routegate.app.services.response_cache import MISS, ResponseCache, make_cache_key

logger = get_logger(__name__)


class Provenance(str, Enum):
    """Where a gateway result came from."""

    CACHED = "cached"
    REAL = "real"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class GatewayResult:
    result: Any
    provenance: Provenance


class ProviderGateway:
    """Generic cache/quota/fallback orchestration over endpoint adapters."""

    def __init__(
        self,
        ledger: QuotaLedger,
        cache: ResponseCache,
        adapters: Mapping[EndpointClass, EndpointAdapter],
        configs: Mapping[EndpointClass, EndpointConfig],
    ) -> None:
        for endpoint_class, config in configs.items():
            adapter = adapters.get(endpoint_class)
            if adapter is None:
                raise ValueError(f"No adapter for endpoint class {endpoint_class.value}")
            if config.has_fallback_provider and not adapter.has_fallback:
                raise ValueError(
                    f"{endpoint_class.value} is configured with a fallback "
                    f"but its adapter has none"
                )
        self._ledger = ledger
        self._cache = cache
        self._adapters = adapters
        self._configs = configs

    @property
    def ledger(self) -> QuotaLedger:
        return self._ledger

    @property
    def cache(self) -> ResponseCache:
        return self._cache

    def _resolve(self, endpoint_class: Any) -> EndpointClass:
        try:
            resolved = EndpointClass(endpoint_class)
        except ValueError:
            raise InvalidRequestError(f"Unknown endpoint class: {endpoint_class}") from None
        if resolved not in self._configs:
            raise InvalidRequestError(f"Endpoint class not configured: {resolved.value}")
        return resolved

    async def invoke(self, endpoint_class: Any, request: Any) -> GatewayResult:
        """Serve ``request`` under ``endpoint_class``.

        Args:
            endpoint_class: EndpointClass or its value
            request: The class's request model, or a mapping validated into it

        Returns:
            GatewayResult with the normalized result and its provenance

        Raises:
            InvalidRequestError: Unknown class or unusable request
            QuotaExceededNoFallbackError: Quota denied on a class without fallback
            ProviderFailureNoFallbackError: Primary failed on a class without fallback
            ProviderFailureError: Fallback attempted and failed as well
        """
        endpoint_class = self._resolve(endpoint_class)
        adapter = self._adapters[endpoint_class]
        config = self._configs[endpoint_class]
        request = adapter.coerce(request)
        key = make_cache_key(endpoint_class, request)
        cls_name = endpoint_class.value

        cached = self._cache.get(endpoint_class, key)
        if cached is not MISS:
            await self._ledger.record(endpoint_class, Outcome.CACHE_HIT)
            logger.debug(
                "Served from cache",
                extra=get_log_context(endpoint_class=cls_name, provenance=Provenance.CACHED.value),
            )
            return GatewayResult(cached, Provenance.CACHED)

        decision = self._ledger.can_proceed(endpoint_class)
        primary_error: Optional[ProviderFailureError] = None

        if decision.allowed:
            start = time.perf_counter()
            try:
                result = await self._call(
                    adapter.call_primary(request, config.timeout),
                    config,
                    adapter.primary_name,
                )
            except ProviderFailureError as e:
                await self._ledger.record(endpoint_class, Outcome.REAL_FAILURE)
                e.endpoint_class = cls_name
                logger.warning(
                    f"Primary call failed: {e.message}",
                    extra=get_log_context(
                        endpoint_class=cls_name,
                        provider=adapter.primary_name,
                        duration_ms=_elapsed_ms(start),
                    ),
                )
                if not decision.fallback_available:
                    raise ProviderFailureNoFallbackError(
                        e.message,
                        endpoint_class=cls_name,
                        provider=e.provider,
                        upstream_status=e.upstream_status,
                    ) from e
                primary_error = e
            else:
                self._cache.set(endpoint_class, key, result, config.cache_ttl)
                await self._ledger.record(endpoint_class, Outcome.REAL_SUCCESS)
                logger.info(
                    "Primary call succeeded",
                    extra=get_log_context(
                        endpoint_class=cls_name,
                        provider=adapter.primary_name,
                        provenance=Provenance.REAL.value,
                        duration_ms=_elapsed_ms(start),
                    ),
                )
                return GatewayResult(result, Provenance.REAL)
        else:
            logger.warning(
                f"Quota denied: {decision.reason}",
                extra=get_log_context(endpoint_class=cls_name),
            )
            if not decision.fallback_available:
                raise QuotaExceededNoFallbackError(cls_name, decision.reason or "quota exceeded")

        return await self._invoke_fallback(
            endpoint_class, adapter, config, request, key, primary_error, decision.reason
        )

    async def _invoke_fallback(
        self,
        endpoint_class: EndpointClass,
        adapter: EndpointAdapter,
        config: EndpointConfig,
        request: Any,
        key: str,
        primary_error: Optional[ProviderFailureError],
        quota_reason: Optional[str],
    ) -> GatewayResult:
        cls_name = endpoint_class.value
        trigger = primary_error.message if primary_error is not None else quota_reason
        logger.info(
            f"Using fallback provider after: {trigger}",
            extra=get_log_context(endpoint_class=cls_name, provider=adapter.fallback_name),
        )

        start = time.perf_counter()
        try:
            result = await self._call(
                adapter.call_fallback(request, config.timeout),
                config,
                adapter.fallback_name,
            )
        except ProviderFailureError as e:
            await self._ledger.record(endpoint_class, Outcome.FALLBACK_FAILURE)
            logger.warning(
                f"Fallback call failed: {e.message}",
                extra=get_log_context(
                    endpoint_class=cls_name,
                    provider=adapter.fallback_name,
                    duration_ms=_elapsed_ms(start),
                ),
            )
            raise ProviderFailureError(
                f"{cls_name}: primary unavailable ({trigger}); "
                f"fallback {adapter.fallback_name} failed: {e.message}",
                endpoint_class=cls_name,
                provider=adapter.fallback_name,
                upstream_status=e.upstream_status,
                fallback_error=e,
            ) from e

        self._cache.set(endpoint_class, key, result, config.cache_ttl)
        await self._ledger.record(endpoint_class, Outcome.FALLBACK_SUCCESS)
        logger.info(
            "Fallback call succeeded",
            extra=get_log_context(
                endpoint_class=cls_name,
                provider=adapter.fallback_name,
                provenance=Provenance.FALLBACK.value,
                duration_ms=_elapsed_ms(start),
            ),
        )
        return GatewayResult(result, Provenance.FALLBACK)

    @staticmethod
    async def _call(call: Awaitable[Any], config: EndpointConfig, provider: Optional[str]) -> Any:
        """Await a provider call under the class's overall deadline."""
        try:
            result = await asyncio.wait_for(call, timeout=config.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderFailureError(
                f"{provider} did not answer within {config.timeout}s",
                endpoint_class=config.endpoint_class.value,
                provider=provider,
            ) from e
        # Results are cached and shared between callers.
        return tuple(result) if isinstance(result, list) else result


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
