"""
Status API routes - Health checks for gateway dependencies.

Public endpoint (no auth) for status page aggregation.
Rate limited to prevent abuse.
"""

import asyncio
import time
from datetime import UTC, datetime
from enum import Enum

import httpx
from fastapi import APIRouter
from pydantic import BaseModel, Field
from sqlalchemy import text
from structlog import get_logger

from timeless.config import settings
from timeless.db.session import get_session

logger = get_logger(__name__)
router = APIRouter(tags=["status"])

# Timeout for health checks
CHECK_TIMEOUT = 5.0  # seconds
DEGRADED_LATENCY_THRESHOLD = 1000  # ms

# Rate limiting: cache last result for 10 seconds
_status_cache: dict[str, tuple[datetime, "ServiceStatusResponse"]] = {}
_CACHE_TTL_SECONDS = 10


class StatusLevel(str, Enum):
    """Status levels for health checks."""

    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    OUTAGE = "outage"


class ProviderStatus(BaseModel):
    """Status of a single provider."""

    status: StatusLevel
    latency_ms: int | None = None
    last_check: str = Field(..., description="ISO 8601 timestamp")
    message: str | None = None


class ServiceStatusResponse(BaseModel):
    """Response for /v1/status endpoint."""

    service: str = "timeless"
    status: StatusLevel
    timestamp: str = Field(..., description="ISO 8601 timestamp")
    version: str
    providers: dict[str, ProviderStatus]


def _latency_status(latency_ms: int, timestamp: str) -> ProviderStatus:
    status = (
        StatusLevel.DEGRADED if latency_ms > DEGRADED_LATENCY_THRESHOLD else StatusLevel.OPERATIONAL
    )
    return ProviderStatus(
        status=status,
        latency_ms=latency_ms,
        last_check=timestamp,
        message="High latency" if status == StatusLevel.DEGRADED else None,
    )


async def check_postgresql() -> ProviderStatus:
    """Check PostgreSQL connectivity."""
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    try:
        async with get_session() as db:
            await db.execute(text("SELECT 1"))
        return _latency_status(int((time.perf_counter() - start) * 1000), timestamp)
    except Exception as e:
        logger.warning("postgresql_health_check_failed", error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )


async def check_http_provider(name: str, url: str, api_key: str) -> ProviderStatus:
    """
    Check that a provider's API host answers.

    Any HTTP response below 500 counts as reachable; auth is not exercised.
    A provider without an API key is reported as not configured.
    """
    start = time.perf_counter()
    timestamp = datetime.now(UTC).isoformat()

    if not api_key:
        return ProviderStatus(
            status=StatusLevel.DEGRADED,
            latency_ms=0,
            last_check=timestamp,
            message="Not configured",
        )

    try:
        async with httpx.AsyncClient(timeout=CHECK_TIMEOUT) as client:
            response = await client.get(url)
            latency_ms = int((time.perf_counter() - start) * 1000)

            if response.status_code < 500:
                return _latency_status(latency_ms, timestamp)

            return ProviderStatus(
                status=StatusLevel.DEGRADED,
                latency_ms=latency_ms,
                last_check=timestamp,
                message=f"Unexpected status: {response.status_code}",
            )
    except httpx.TimeoutException:
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=int(CHECK_TIMEOUT * 1000),
            last_check=timestamp,
            message="Timeout",
        )
    except Exception as e:
        logger.warning("provider_health_check_failed", provider=name, error=str(e))
        return ProviderStatus(
            status=StatusLevel.OUTAGE,
            latency_ms=None,
            last_check=timestamp,
            message="Connection failed",
        )


async def check_fal() -> ProviderStatus:
    """Check Fal.ai queue API reachability."""
    return await check_http_provider("fal", settings.fal_queue_url, settings.fal_api_key)


async def check_kie() -> ProviderStatus:
    """Check Kie.ai API reachability."""
    return await check_http_provider("kie", settings.kie_base_url, settings.kie_api_key)


def calculate_overall_status(providers: dict[str, ProviderStatus]) -> StatusLevel:
    """Calculate overall service status from provider statuses."""
    statuses = [p.status for p in providers.values()]

    if StatusLevel.OUTAGE in statuses:
        return StatusLevel.OUTAGE
    if StatusLevel.DEGRADED in statuses:
        return StatusLevel.DEGRADED
    return StatusLevel.OPERATIONAL


@router.get("/v1/status", response_model=ServiceStatusResponse)
async def get_status() -> ServiceStatusResponse:
    """
    Get gateway service status.

    Public endpoint (no auth) for status page aggregation.
    Checks connectivity to the database and both generation providers.

    Rate limited via 10-second cache to prevent abuse.
    """
    cache_key = "status"
    now = datetime.now(UTC)

    if cache_key in _status_cache:
        cached_time, cached_response = _status_cache[cache_key]
        age_seconds = (now - cached_time).total_seconds()
        if age_seconds < _CACHE_TTL_SECONDS:
            logger.debug("status_cache_hit", age_seconds=age_seconds)
            return cached_response

    postgresql_status, fal_status, kie_status = await asyncio.gather(
        check_postgresql(), check_fal(), check_kie()
    )

    providers = {
        "postgresql": postgresql_status,
        "fal": fal_status,
        "kie": kie_status,
    }

    response = ServiceStatusResponse(
        status=calculate_overall_status(providers),
        timestamp=now.isoformat(),
        version=settings.api_version,
        providers=providers,
    )

    _status_cache[cache_key] = (now, response)

    return response
