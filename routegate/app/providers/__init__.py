"""Upstream providers package for routegate.

This package provides:
- Base provider with shared HTTP client handling (BaseProvider)
- Primary provider (OpenRouteServiceProvider)
- Fallback providers (NominatimProvider, OverpassProvider)
- Provider factory (ProviderFactory, ProviderType)
- Retry mechanism (RetryPolicy, with_retry)
"""

from routegate.app.providers.base import BaseProvider
from routegate.app.providers.factory import ProviderFactory, ProviderType
from routegate.app.providers.nominatim import NominatimProvider
from routegate.app.providers.openrouteservice import OpenRouteServiceProvider
from routegate.app.providers.overpass import OverpassProvider
from routegate.app.providers.retry import RetryPolicy, with_retry

__all__ = [
    "BaseProvider",
    "NominatimProvider",
    "OpenRouteServiceProvider",
    "OverpassProvider",
    "ProviderFactory",
    "ProviderType",
    "RetryPolicy",
    "with_retry",
]
