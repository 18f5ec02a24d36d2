"""Shared HTTP client management for connection pooling.

One ``httpx.AsyncClient`` is opened during application startup and handed
to every provider so that calls to the same upstream reuse connections.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx

from routegate.app.core.config import Settings, settings as default_settings


def _build_limits(config: Settings) -> httpx.Limits:
    return httpx.Limits(
        max_connections=config.httpx_max_connections,
        max_keepalive_connections=config.httpx_max_keepalive_connections,
        keepalive_expiry=config.httpx_keepalive_expiry,
    )


def _build_timeout(config: Settings) -> httpx.Timeout:
    # Per-call timeouts from the endpoint table override the read timeout.
    return httpx.Timeout(
        connect=config.httpx_connect_timeout,
        read=config.httpx_read_timeout,
        write=config.httpx_write_timeout,
        pool=config.httpx_pool_timeout,
    )


@asynccontextmanager
async def init_http_client(
    config: Settings | None = None,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Open the shared HTTP client and close it on exit.

    Used in the FastAPI lifespan:

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            async with init_http_client() as client:
                yield
    """
    config = config or default_settings
    client = httpx.AsyncClient(
        timeout=_build_timeout(config), limits=_build_limits(config)
    )
    try:
        yield client
    finally:
        await client.aclose()

