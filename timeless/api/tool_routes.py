"""
Tool API routes - Credit-gated image, video, cinema, and music tools.

All four families share one request shape ({tool, ...camelCase inputs})
and one error mapping.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from timeless.api.dependencies import get_current_user
from timeless.config import settings
from timeless.db.session import get_db
from timeless.exceptions import (
    GenerationServiceError,
    InsufficientCreditsError,
    MissingInputError,
    ProfileNotFoundError,
    ProviderNotConfiguredError,
    ToolUnavailableError,
    UnknownToolError,
    UnsupportedImageFormatError,
)
from timeless.models.api import ErrorResponse, ToolFamily, ToolRequest, ToolResponse
from timeless.models.domain import UserIdentity
from timeless.observability.logging import log_context
from timeless.services.generation import GenerationService

logger = get_logger(__name__)
router = APIRouter(prefix="/v1", tags=["tools"])

GENERIC_FAILURE = "Processing failed. Please try again."
SERVICE_UNAVAILABLE = "Service temporarily unavailable."

CLIENT_ERRORS = (
    MissingInputError,
    UnknownToolError,
    ToolUnavailableError,
    ProfileNotFoundError,
    UnsupportedImageFormatError,
)

ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    402: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def sanitize_error(message: str) -> str:
    """Hide internal failure details unless the message names a missing input."""
    if "required" in message:
        return message
    return GENERIC_FAILURE


async def run_tool(
    family: ToolFamily,
    request: ToolRequest,
    user: UserIdentity,
    db: AsyncSession,
) -> ToolResponse:
    """Run a tool and translate domain errors into HTTP errors."""
    service = GenerationService(db)

    with log_context(user_id=str(user.user_id), family=family.value, tool=request.tool):
        try:
            return await service.run_tool(user.user_id, family, request)
        except CLIENT_ERRORS as e:
            logger.info("tool_request_rejected", error=str(e))
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            ) from e
        except InsufficientCreditsError as e:
            raise HTTPException(
                status_code=settings.insufficient_credits_status_code,
                detail=str(e),
            ) from e
        except ProviderNotConfiguredError as e:
            logger.error("provider_not_configured", provider=e.provider)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=SERVICE_UNAVAILABLE,
            ) from e
        except GenerationServiceError as e:
            logger.error("tool_request_failed", error=str(e), error_type=type(e).__name__)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=sanitize_error(str(e)),
            ) from e
        finally:
            await service.close()


@router.post(
    "/image-tools",
    response_model=ToolResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def image_tools(
    request: ToolRequest,
    user: Annotated[UserIdentity, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ToolResponse:
    """
    Run an image tool.

    Image tools answer synchronously with outputUrl (or scenes for story-mode).
    """
    return await run_tool(ToolFamily.IMAGE, request, user, db)


@router.post(
    "/video-tools",
    response_model=ToolResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def video_tools(
    request: ToolRequest,
    user: Annotated[UserIdentity, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ToolResponse:
    """
    Run a video tool.

    Queue tools answer with taskId and generationId; poll check-generation
    for the result. story-animate answers with batchId and animatedVideos.
    """
    return await run_tool(ToolFamily.VIDEO, request, user, db)


@router.post(
    "/cinema-tools",
    response_model=ToolResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def cinema_tools(
    request: ToolRequest,
    user: Annotated[UserIdentity, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ToolResponse:
    """Run a cinema tool (always a queue job)."""
    return await run_tool(ToolFamily.CINEMA, request, user, db)


@router.post(
    "/music-tools",
    response_model=ToolResponse,
    response_model_exclude_none=True,
    responses=ERROR_RESPONSES,
)
async def music_tools(
    request: ToolRequest,
    user: Annotated[UserIdentity, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ToolResponse:
    """Run a music tool (always a queue job)."""
    return await run_tool(ToolFamily.MUSIC, request, user, db)
