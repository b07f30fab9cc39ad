"""
AI Gateway Client - Chat-completions image model for edits and text-to-image.
"""

from typing import Any

import httpx
from structlog import get_logger

from timeless.config import settings
from timeless.exceptions import (
    ProviderError,
    ProviderResponseError,
    UnsupportedImageFormatError,
)
from timeless.services.providers.base import ProviderClient

logger = get_logger(__name__)


def _first_image_url(data: dict[str, Any]) -> str | None:
    """Pull choices[0].message.images[0].image_url.url out of a completion."""
    try:
        url = data["choices"][0]["message"]["images"][0]["image_url"]["url"]
    except (KeyError, IndexError, TypeError):
        return None
    return url if isinstance(url, str) and url else None


class AIGatewayClient(ProviderClient):
    """Client for the AI gateway's multimodal chat completions."""

    provider_name = "ai_gateway"

    def __init__(
        self,
        api_key: str | None = None,
        url: str | None = None,
        model: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            api_key if api_key is not None else settings.ai_gateway_api_key,
            http_client=http_client,
        )
        self.url = url or settings.ai_gateway_url
        self.model = model or settings.ai_gateway_image_model

    async def edit_image(self, instruction: str, image_url: str) -> str:
        """Apply an instruction to an image and return the edited image URL."""
        content: list[dict[str, Any]] = [
            {"type": "text", "text": instruction},
            {"type": "image_url", "image_url": {"url": image_url}},
        ]
        return await self._complete(content, "edit_image")

    async def generate_image(self, prompt: str) -> str:
        """Generate an image from text and return its URL."""
        return await self._complete(prompt, "generate_image")

    async def _complete(self, content: str | list[dict[str, Any]], operation: str) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "modalities": ["image", "text"],
        }
        try:
            data = await self.request_json("POST", self.url, operation, json=payload)
        except ProviderError as e:
            if "Unsupported image format" in e.body:
                raise UnsupportedImageFormatError() from e
            raise

        image_url = _first_image_url(data)
        if image_url is None:
            raise ProviderResponseError(self.provider_name, "no image returned")
        return image_url
