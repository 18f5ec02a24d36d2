"""Gateway services.

This package provides:
- Quota ledger (QuotaLedger, Outcome)
- Namespaced response cache (ResponseCache, make_cache_key)
- Endpoint adapters and the provider gateway (ProviderGateway, Provenance)
- Waypoint ordering (WaypointOptimizer)
- Object graph construction (Container, build_container)
"""

from routegate.app.services.container import Container, build_container
from routegate.app.services.provider_gateway import GatewayResult, Provenance, ProviderGateway
from routegate.app.services.quota_ledger import Outcome, QuotaLedger, QuotaStatus
from routegate.app.services.response_cache import MISS, ResponseCache, make_cache_key
from routegate.app.services.waypoint_optimizer import WaypointOptimizer

__all__ = [
    "Container",
    "GatewayResult",
    "MISS",
    "Outcome",
    "Provenance",
    "ProviderGateway",
    "QuotaLedger",
    "QuotaStatus",
    "ResponseCache",
    "WaypointOptimizer",
    "build_container",
    "make_cache_key",
]
