"""
Fal.ai Client - Synchronous runs and queue jobs.

Queue jobs are submitted against the full model path; status and
result lookups use the first two path segments (the app id).
"""

from typing import Any

import httpx
from structlog import get_logger

from timeless.config import settings
from timeless.exceptions import ProviderResponseError
from timeless.services.providers.base import ProviderClient

logger = get_logger(__name__)

FAL_PREFIX = "fal:"
LEGACY_FAL_PREFIX = "fal-ai/"


def is_fal_endpoint(provider_endpoint: str) -> bool:
    """Check whether a stored provider endpoint belongs to Fal.ai."""
    return provider_endpoint.startswith(FAL_PREFIX) or provider_endpoint.startswith(
        LEGACY_FAL_PREFIX
    )


def fal_model_path(provider_endpoint: str) -> str:
    """Strip the "fal:" prefix from a stored provider endpoint."""
    if provider_endpoint.startswith(FAL_PREFIX):
        return provider_endpoint[len(FAL_PREFIX) :]
    return provider_endpoint


def fal_base_path(model_path: str) -> str:
    """
    Get the queue app path for a model.

    Example: "fal-ai/kling-video/v2.6/pro/image-to-video" -> "fal-ai/kling-video"
    """
    return "/".join(model_path.strip("/").split("/")[:2])


class FalClient(ProviderClient):
    """Client for the Fal.ai sync and queue APIs."""

    provider_name = "fal"

    def __init__(
        self,
        api_key: str | None = None,
        queue_url: str | None = None,
        sync_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            api_key if api_key is not None else settings.fal_api_key,
            http_client=http_client,
        )
        self.queue_url = (queue_url or settings.fal_queue_url).rstrip("/")
        self.sync_url = (sync_url or settings.fal_sync_url).rstrip("/")

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Key {self.api_key}"}

    async def run_sync(self, model_path: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Run a model synchronously and return its output document."""
        logger.info("fal_sync_run", model=model_path)
        return await self.request_json(
            "POST", f"{self.sync_url}/{model_path}", "sync_run", json=payload
        )

    async def submit(self, model_path: str, payload: dict[str, Any]) -> str:
        """
        Submit a queue job.

        Returns the request id used to poll the job.

        Raises:
            ProviderResponseError: Response carries no request_id
        """
        data = await self.request_json(
            "POST", f"{self.queue_url}/{model_path}", "queue_submit", json=payload
        )
        request_id = data.get("request_id")
        if not request_id:
            raise ProviderResponseError(self.provider_name, "no request_id in queue response")
        logger.info("fal_job_submitted", model=model_path, request_id=request_id)
        return str(request_id)

    async def get_status(self, model_path: str, request_id: str) -> dict[str, Any]:
        """Get the status document of a queue job."""
        base = fal_base_path(model_path)
        return await self.request_json(
            "GET", f"{self.queue_url}/{base}/requests/{request_id}/status", "queue_status"
        )

    async def get_result(self, model_path: str, request_id: str) -> dict[str, Any]:
        """
        Get the output document of a completed queue job.

        Raises:
            ProviderError: Result fetch failed; status_code tells permanent from transient
        """
        base = fal_base_path(model_path)
        return await self.request_json(
            "GET", f"{self.queue_url}/{base}/requests/{request_id}", "queue_result"
        )
