"""API endpoints package for routegate."""

from routegate.app.api.routing import router as routing_router

__all__ = [
    "routing_router",
]
