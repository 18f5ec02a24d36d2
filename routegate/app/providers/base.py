import json
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

import httpx

from routegate.app.exceptions import ProviderFailureError
from routegate.app.providers.retry import RetryPolicy, with_retry


class BaseProvider:
    """Base class for upstream geospatial providers.

    Subclasses can accept an external httpx.AsyncClient for connection pooling,
    or create their own if not provided.

    Every failure mode of a call (transport error, timeout, non-2xx status,
    body that is not JSON) surfaces as ``ProviderFailureError`` so the
    gateway only has to handle one kind.
    """

    name: str = "provider"

    def __init__(
        self,
        base_url: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        """Initialize the provider.

        Args:
            base_url: The API base URL
            http_client: Optional shared HTTP client for connection pooling
            timeout: Default request timeout in seconds
            retry_policy: Backoff policy for transient failures (none by default)
        """
        self._http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy(max_retries=0)
        self.headers = self._build_headers()

    @property
    def http_client(self) -> Optional[httpx.AsyncClient]:
        """Get the HTTP client, if one was provided."""
        return self._http_client

    def _build_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client
        # Fallback: create a new client (not recommended for production)
        return httpx.AsyncClient(timeout=self.timeout)

    @asynccontextmanager
    async def _client_context(self) -> AsyncGenerator[httpx.AsyncClient, None]:
        """Yield the shared client, or a per-call client that is closed afterwards."""
        client = self._get_client()
        is_shared = self._http_client is not None
        try:
            yield client
        finally:
            if not is_shared:
                await client.aclose()

    def _get_endpoint_url(self, endpoint: str) -> str:
        return f"{self.base_url}{endpoint}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Args:
            method: HTTP method
            endpoint: Path appended to base_url
            timeout: Per-call timeout in seconds (defaults to self.timeout)
            **kwargs: Passed through to ``httpx.AsyncClient.request``

        Returns:
            The decoded JSON payload

        Raises:
            ProviderFailureError: On any transport, status or decoding failure
        """
        url = self._get_endpoint_url(endpoint)
        headers = {**self.headers, **kwargs.pop("headers", {})}
        call_timeout = timeout if timeout is not None else self.timeout

        @with_retry(self.retry_policy)
        async def send() -> httpx.Response:
            async with self._client_context() as client:
                resp = await client.request(
                    method, url, headers=headers, timeout=call_timeout, **kwargs
                )
                resp.raise_for_status()
                return resp

        try:
            resp = await send()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise ProviderFailureError(
                f"{self.name} returned HTTP {status} for {endpoint}",
                provider=self.name,
                upstream_status=status,
            ) from e
        except httpx.TimeoutException as e:
            raise ProviderFailureError(
                f"{self.name} timed out after {call_timeout}s on {endpoint}",
                provider=self.name,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderFailureError(
                f"{self.name} request to {endpoint} failed: {type(e).__name__}: {e}",
                provider=self.name,
            ) from e

        try:
            return resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProviderFailureError(
                f"{self.name} returned a body that is not JSON for {endpoint}",
                provider=self.name,
                upstream_status=resp.status_code,
            ) from e

    def _malformed(self, what: str) -> ProviderFailureError:
        return ProviderFailureError(
            f"{self.name} response missing {what}", provider=self.name
        )
