"""Provider factory.

Builds the primary and fallback providers from Settings, sharing one HTTP
client for connection pooling.
"""

from enum import Enum
from typing import Dict, Optional, Type

import httpx

from routegate.app.core.config import Settings, settings as default_settings
from routegate.app.core.logging import get_logger
from routegate.app.providers.base import BaseProvider
from routegate.app.providers.nominatim import NominatimProvider
from routegate.app.providers.openrouteservice import OpenRouteServiceProvider
from routegate.app.providers.overpass import OverpassProvider
from routegate.app.providers.retry import RetryPolicy

logger = get_logger(__name__)


class ProviderType(str, Enum):
    """Supported provider types."""
    OPENROUTESERVICE = "openrouteservice"
    NOMINATIM = "nominatim"
    OVERPASS = "overpass"


# Provider registry mapping types to classes
_PROVIDER_REGISTRY: Dict[ProviderType, Type[BaseProvider]] = {
    ProviderType.OPENROUTESERVICE: OpenRouteServiceProvider,
    ProviderType.NOMINATIM: NominatimProvider,
    ProviderType.OVERPASS: OverpassProvider,
}


class ProviderFactory:
    """Factory for creating provider instances.

    Usage:
        factory = ProviderFactory(settings, http_client=client)
        primary = factory.create_primary_provider()
        geocoder = factory.create_provider(ProviderType.NOMINATIM)
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the provider factory.

        Args:
            config: Settings to read provider URLs and keys from
            http_client: Optional shared HTTP client for connection pooling
        """
        self._config = config or default_settings
        self._http_client = http_client

    def _primary_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self._config.provider_max_retries,
            base_delay=self._config.provider_retry_base_delay,
        )

    def create_provider(self, provider_type: ProviderType) -> BaseProvider:
        """Create a provider instance by type.

        Raises:
            ValueError: If provider type is not supported
        """
        if provider_type not in _PROVIDER_REGISTRY:
            raise ValueError(f"Unsupported provider type: {provider_type}")

        config = self._config
        if provider_type == ProviderType.OPENROUTESERVICE:
            if not config.ors_api_key:
                logger.warning("ORS_API_KEY is not set; primary calls will be rejected upstream")
            return OpenRouteServiceProvider(
                base_url=config.ors_base_url,
                api_key=config.ors_api_key,
                http_client=self._http_client,
                retry_policy=self._primary_retry_policy(),
            )
        if provider_type == ProviderType.NOMINATIM:
            return NominatimProvider(
                base_url=config.nominatim_base_url,
                user_agent=config.fallback_user_agent,
                http_client=self._http_client,
                timeout=config.geocoding_timeout,
            )
        return OverpassProvider(
            base_url=config.overpass_base_url,
            user_agent=config.fallback_user_agent,
            http_client=self._http_client,
            timeout=config.pois_timeout,
        )

    def create_primary_provider(self) -> OpenRouteServiceProvider:
        return self.create_provider(ProviderType.OPENROUTESERVICE)  # type: ignore[return-value]
