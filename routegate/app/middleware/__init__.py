"""Middleware package for routegate."""

from routegate.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "RequestIdMiddleware",
    "get_request_id",
]
