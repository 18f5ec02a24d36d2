import traceback
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from routegate.app.api.routing import router as routing_router
from routegate.app.core.config import Settings, settings as default_settings
from routegate.app.core.http_client import init_http_client
from routegate.app.core.logging import get_logger, setup_logging
from routegate.app.exceptions import GatewayException, QuotaExceededError
from routegate.app.middleware.request_id import RequestIdMiddleware, get_request_id
from routegate.app.services.container import Container, build_container


def create_app(
    config: Optional[Settings] = None,
    container: Optional[Container] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Settings to build from (defaults to the environment)
        container: Prebuilt object graph; when omitted one is built on
            startup around a shared HTTP client

    Returns:
        Configured FastAPI application instance
    """
    config = config or default_settings
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Build the container, load the usage log, and close both on shutdown."""
        async with init_http_client(config) as http_client:
            app.state.container = container or build_container(config, http_client=http_client)
            await app.state.container.start()
            logger.info(
                "Application startup complete",
                extra={
                    "endpoint_classes": [c.value for c in app.state.container.configs],
                    "storage_backend": config.quota_storage_backend,
                    "daily_window": config.quota_daily_window,
                },
            )

            yield

            await app.state.container.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Routegate",
        description="Quota-rationed gateway for geospatial routing providers",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(RequestIdMiddleware)
    app.include_router(routing_router)

    @app.get("/health")
    async def health(request: Request) -> dict[str, Any]:
        """Health check with usage-log storage and quota status."""
        health_status: dict[str, Any] = {"status": "ok", "components": {}}
        current: Container = request.app.state.container

        try:
            test_key = "_health_check_test"
            await current.storage.set(test_key, b"ping", ttl=5)
            value = await current.storage.get(test_key)
            await current.storage.delete(test_key)
            if value == b"ping":
                health_status["components"]["storage"] = {
                    "status": "ok",
                    "type": config.quota_storage_backend,
                }
            else:
                health_status["status"] = "degraded"
                health_status["components"]["storage"] = {
                    "status": "error",
                    "error": "Unexpected value",
                }
        except Exception as e:
            health_status["status"] = "degraded"
            health_status["components"]["storage"] = {
                "status": "error",
                "error": str(e)[:100],
            }

        exhausted = [
            endpoint_class.value
            for endpoint_class, status in current.ledger.status_all().items()
            if status.exceeded
        ]
        health_status["components"]["quota"] = {
            "status": "ok" if not exhausted else "limited",
            "exhausted": exhausted,
        }
        return health_status

    @app.exception_handler(GatewayException)
    async def gateway_exception_handler(request: Request, exc: GatewayException) -> JSONResponse:
        """Render gateway errors with their status code and generic user message."""
        content: dict[str, Any] = {
            "error": exc.error_code,
            "message": exc.user_message,
            "detail": exc.message,
            "request_id": get_request_id(request),
        }
        if isinstance(exc, QuotaExceededError):
            content["reason"] = exc.reason
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        The traceback is logged server-side and never sent to the client.
        """
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exc(),
            },
        )

        if config.debug:
            return JSONResponse(
                status_code=500,
                content={
                    "error": "internal_error",
                    "message": str(exc),
                    "exception_type": type(exc).__name__,
                    "request_id": request_id,
                },
            )

        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_error",
                "message": "Internal server error",
                "request_id": request_id,
            },
        )

    return app


# Create the application instance
app = create_app()
