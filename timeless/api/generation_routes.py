"""
Generation API routes - Reconcile pending generations with their providers.
"""

from typing import Annotated

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from timeless.api.dependencies import get_current_user
from timeless.db.session import get_db
from timeless.exceptions import GenerationNotFoundError
from timeless.models.api import (
    CheckGenerationRequest,
    CheckGenerationResponse,
    ErrorResponse,
)
from timeless.models.domain import UserIdentity
from timeless.observability.logging import log_context
from timeless.services.reconciliation import ReconciliationService

logger = get_logger(__name__)
router = APIRouter(prefix="/v1", tags=["generations"])


@router.post(
    "/check-generation",
    response_model=CheckGenerationResponse,
    response_model_exclude_none=True,
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def check_generation(
    user: Annotated[UserIdentity, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    request: Annotated[CheckGenerationRequest | None, Body()] = None,
) -> CheckGenerationResponse:
    """
    Poll providers for the caller's pending generations.

    With generationId, reconciles that row only; otherwise every
    processing row, newest first. Safe to call repeatedly: terminal rows
    are reported unchanged and are never refunded twice.
    """
    generation_id = request.generation_id if request else None
    service = ReconciliationService(db)

    with log_context(user_id=str(user.user_id)):
        try:
            return await service.check(user.user_id, generation_id)
        except GenerationNotFoundError as e:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=str(e),
            ) from e
        finally:
            await service.close()
