"""
Provider Client Base - Shared HTTP plumbing for upstream AI providers.

Every provider call goes through ProviderClient.request, which traces the
call, records metrics, and turns non-2xx responses into ProviderError.
"""

import time
from typing import Any

import httpx
from structlog import get_logger

from timeless.config import settings
from timeless.exceptions import (
    ProviderError,
    ProviderNotConfiguredError,
    ProviderResponseError,
)
from timeless.observability.metrics import metrics
from timeless.observability.tracing import provider_span

logger = get_logger(__name__)

# Provider error bodies are truncated before they reach logs and exceptions
MAX_ERROR_BODY = 500


class ProviderClient:
    """
    Base class for provider adapters.

    The httpx client is created lazily and can be injected for tests.
    """

    provider_name: str = "provider"

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self.api_key = api_key
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout)
        return self._http_client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def auth_headers(self) -> dict[str, str]:
        """Authorization headers for this provider."""
        return {"Authorization": f"Bearer {self.api_key}"}

    async def request(
        self,
        method: str,
        url: str,
        operation: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Make an authenticated request.

        Raises:
            ProviderNotConfiguredError: API key missing
            ProviderError: Network failure or non-2xx status
        """
        if not self.is_configured:
            raise ProviderNotConfiguredError(self.provider_name)

        headers = {**self.auth_headers(), "Content-Type": "application/json"}
        start = time.perf_counter()
        success = False
        try:
            with provider_span(self.provider_name, operation, url=url):
                try:
                    response = await self.http_client.request(
                        method, url, headers=headers, **kwargs
                    )
                except httpx.HTTPError as e:
                    logger.error(
                        "provider_request_failed",
                        provider=self.provider_name,
                        operation=operation,
                        error=str(e),
                    )
                    raise ProviderError(self.provider_name, None, str(e)) from e

                if response.status_code >= 400:
                    body = response.text[:MAX_ERROR_BODY]
                    logger.error(
                        "provider_api_error",
                        provider=self.provider_name,
                        operation=operation,
                        status=response.status_code,
                        error=body,
                    )
                    raise ProviderError(self.provider_name, response.status_code, body)

                success = True
                return response
        finally:
            metrics.record_provider_request(
                self.provider_name, operation, success, time.perf_counter() - start
            )

    async def request_json(
        self,
        method: str,
        url: str,
        operation: str,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """
        Make a request and decode a JSON object body.

        Raises:
            ProviderResponseError: Body is not a JSON object
        """
        response = await self.request(method, url, operation, **kwargs)
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(self.provider_name, "body is not JSON") from e
        if not isinstance(data, dict):
            raise ProviderResponseError(self.provider_name, "body is not a JSON object")
        return data

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
