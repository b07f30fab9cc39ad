"""
Test helpers - Factories for rows, provider clients, and tokens.

Imported by test modules; conftest.py sets the environment first.
"""

import os
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import httpx
import jwt

from timeless.db.models import Generation, Profile
from timeless.models.api import GenerationStatus
from timeless.services.providers.ai_gateway import AIGatewayClient
from timeless.services.providers.fal import FalClient
from timeless.services.providers.kie import KieClient

TEST_JWT_SECRET = os.environ["AUTH_JWT_SECRET"]


# ============================================================================
# Database Helpers
# ============================================================================


def make_result(
    scalar: Any = None,
    scalars: list[Any] | None = None,
    rows: list[Any] | None = None,
) -> MagicMock:
    """Build a mock SQLAlchemy result."""
    result = MagicMock()
    result.scalar_one_or_none = MagicMock(return_value=scalar)
    result.scalars = MagicMock(return_value=MagicMock(all=MagicMock(return_value=scalars or [])))
    result.all = MagicMock(return_value=rows or [])
    return result


def create_mock_profile(
    user_id: UUID | None = None,
    credits: int = 10,
    subscription_status: str | None = None,
) -> MagicMock:
    """Factory function to create mock Profile rows."""
    profile = MagicMock(spec=Profile)
    profile.id = uuid4()
    profile.user_id = user_id or uuid4()
    profile.credits = credits
    profile.subscription_status = subscription_status
    profile.created_at = datetime.now(UTC)
    profile.updated_at = datetime.now(UTC)
    return profile


def create_generation(
    user_id: UUID | None = None,
    status: str = GenerationStatus.PROCESSING.value,
    generation_type: str = "video",
    model: str = "lip-sync",
    provider_endpoint: str | None = "fal:fal-ai/sync-lipsync",
    task_id: str | None = "task-123",
    credits_used: int = 20,
    created_at: datetime | None = None,
    batch_id: UUID | None = None,
    prompt: str = "a test prompt",
    title: str | None = None,
) -> Generation:
    """Factory function for real (unsaved) Generation rows."""
    return Generation(
        id=uuid4(),
        user_id=user_id or uuid4(),
        type=generation_type,
        model=model,
        prompt=prompt,
        title=title,
        status=status,
        task_id=task_id,
        provider_endpoint=provider_endpoint,
        credits_used=credits_used,
        batch_id=batch_id,
        created_at=created_at or datetime.now(UTC),
        updated_at=datetime.now(UTC),
    )


# ============================================================================
# Provider Helpers
# ============================================================================


class RecordingTransport:
    """
    Request handler for httpx.MockTransport that records requests.

    handler receives each request and returns an httpx.Response.
    """

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []
        self._handler = handler

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


def fal_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> tuple[FalClient, RecordingTransport]:
    transport = RecordingTransport(handler)
    client = FalClient(
        api_key="fal-test-key",
        queue_url="https://queue.fal.test",
        sync_url="https://fal.test",
        http_client=transport.client(),
    )
    return client, transport


def kie_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> tuple[KieClient, RecordingTransport]:
    transport = RecordingTransport(handler)
    client = KieClient(
        api_key="kie-test-key",
        base_url="https://api.kie.test",
        http_client=transport.client(),
    )
    return client, transport


def gateway_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> tuple[AIGatewayClient, RecordingTransport]:
    transport = RecordingTransport(handler)
    client = AIGatewayClient(
        api_key="gateway-test-key",
        url="https://gateway.test/v1/chat/completions",
        model="test-image-model",
        http_client=transport.client(),
    )
    return client, transport


def gateway_image_response(url: str) -> httpx.Response:
    """Chat completion carrying one generated image."""
    return httpx.Response(
        200,
        json={"choices": [{"message": {"images": [{"image_url": {"url": url}}]}}]},
    )


# ============================================================================
# Auth Helpers
# ============================================================================


def make_token(
    sub: str,
    secret: str = TEST_JWT_SECRET,
    audience: str = "authenticated",
    expires_in: int = 3600,
    **claims: Any,
) -> str:
    """Sign an access token the way the auth provider does."""
    now = int(datetime.now(UTC).timestamp())
    payload = {"sub": sub, "aud": audience, "iat": now, "exp": now + expires_in, **claims}
    return jwt.encode(payload, secret, algorithm="HS256")
