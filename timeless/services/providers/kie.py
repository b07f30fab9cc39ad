"""
Kie.ai Client - Task creation and record-info lookups.

Each model family exposes its own record-info path. Veo tasks have been
served from more than one path over time, so those are tried in order.
"""

from typing import Any

import httpx
from structlog import get_logger

from timeless.config import settings
from timeless.exceptions import ProviderError, ProviderResponseError
from timeless.services.providers.base import ProviderClient

logger = get_logger(__name__)

KIE_PREFIX = "kie:"

CREATE_TASK_PATH = "/api/v1/jobs/createTask"
DEFAULT_RECORD_INFO_PATH = "/api/v1/jobs/recordInfo"

# Generation model -> record-info path
RECORD_INFO_PATHS: dict[str, str] = {
    # Image
    "kie-4o-image": "/api/v1/gpt4o-image/record-info",
    "kie-flux-kontext-pro": "/api/v1/flux/kontext/record-info",
    "kie-flux-kontext-max": "/api/v1/flux/kontext/record-info",
    "kie-grok-imagine": "/api/v1/grok/imagine/record-info",
    "kie-seedream-4": "/api/v1/seedream/record-info",
    "kie-imagen-4": "/api/v1/google/imagen4/record-info",
    "kie-ideogram-v3": "/api/v1/ideogram/v3/record-info",
    "kie-flux2-pro": "/api/v1/flux2/pro/record-info",
    "kie-qwen-image": "/api/v1/qwen/record-info",
    "kie-midjourney": "/api/v1/midjourney/record-info",
    "kie-kling-image": "/api/v1/kling/image/record-info",
    "kie-flux-pro": "/api/v1/flux/pro/record-info",
    "kie-flux-dev": "/api/v1/flux/dev/record-info",
    "kie-flux-schnell": "/api/v1/flux/schnell/record-info",
    "kie-nano-banana": DEFAULT_RECORD_INFO_PATH,
    # Video
    "kie-runway": "/api/v1/runway/record-info",
    "kie-runway-i2v": "/api/v1/runway/record-info",
    "kie-runway-cinema": "/api/v1/runway/record-info",
    "kie-sora2": DEFAULT_RECORD_INFO_PATH,
    "kie-sora2-pro": DEFAULT_RECORD_INFO_PATH,
    "kie-kling": DEFAULT_RECORD_INFO_PATH,
    "kie-hailuo": DEFAULT_RECORD_INFO_PATH,
    "kie-luma": DEFAULT_RECORD_INFO_PATH,
    "kie-wan": DEFAULT_RECORD_INFO_PATH,
    "kie-grok-video": DEFAULT_RECORD_INFO_PATH,
    # Music
    "kie-music-v4": "/api/v1/generate/record-info",
    "kie-music-v3.5": "/api/v1/generate/record-info",
}

# Veo models: tried in order until one answers 200
VEO_RECORD_INFO_PATHS: tuple[str, ...] = (
    "/api/v1/veo/record-info",
    DEFAULT_RECORD_INFO_PATH,
)
VEO_MODELS = frozenset({"kie-veo31", "kie-veo31-fast"})


def is_kie_endpoint(provider_endpoint: str) -> bool:
    """Check whether a stored provider endpoint belongs to Kie.ai."""
    return provider_endpoint.startswith(KIE_PREFIX)


def record_info_paths(model: str) -> tuple[str, ...]:
    """Get the ordered record-info paths to try for a generation model."""
    if model in VEO_MODELS:
        return VEO_RECORD_INFO_PATHS
    return (RECORD_INFO_PATHS.get(model, DEFAULT_RECORD_INFO_PATH),)


def _extract_task_id(data: dict[str, Any]) -> str | None:
    inner = data.get("data")
    if isinstance(inner, dict):
        for key in ("taskId", "task_id"):
            if inner.get(key):
                return str(inner[key])
    for key in ("taskId", "task_id"):
        if data.get(key):
            return str(data[key])
    return None


class KieClient(ProviderClient):
    """Client for the Kie.ai jobs API."""

    provider_name = "kie"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            api_key if api_key is not None else settings.kie_api_key,
            http_client=http_client,
        )
        self.base_url = (base_url or settings.kie_base_url).rstrip("/")

    async def create_task(self, model: str, task_input: dict[str, Any]) -> str:
        """
        Create a job and return its task id.

        Raises:
            ProviderResponseError: Response carries no task id
        """
        data = await self.request_json(
            "POST",
            f"{self.base_url}{CREATE_TASK_PATH}",
            "create_task",
            json={"model": model, "input": task_input},
        )
        task_id = _extract_task_id(data)
        if task_id is None:
            raise ProviderResponseError(self.provider_name, "no taskId in createTask response")
        logger.info("kie_task_created", model=model, task_id=task_id)
        return task_id

    async def record_info(self, model: str, task_id: str) -> dict[str, Any]:
        """
        Get the record document of a task.

        Returns the unwrapped record (the "data" object when present).

        Raises:
            ProviderError: Every candidate path failed; carries the last failure
        """
        last_error: ProviderError | None = None
        for path in record_info_paths(model):
            try:
                data = await self.request_json(
                    "GET",
                    f"{self.base_url}{path}",
                    "record_info",
                    params={"taskId": task_id},
                )
            except ProviderError as e:
                logger.warning(
                    "kie_record_info_path_failed",
                    model=model,
                    path=path,
                    status=e.status_code,
                )
                last_error = e
                continue

            inner = data.get("data")
            if not isinstance(inner, dict):
                return data
            if "status" not in inner and "status" in data:
                return {**inner, "status": data["status"]}
            return inner

        assert last_error is not None
        raise last_error
