"""
Generation Service - Credit-gated tool dispatch and generation records.

NO DICTIONARIES - All operations use strongly typed domain models.

Every dispatch follows the pattern:
1. Check the caller can afford the tool
2. Run the tool against its provider
3. Deduct credits and insert generation rows in ONE transaction
"""

from collections.abc import Mapping
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from timeless.db.models import Generation, GenerationBatch
from timeless.exceptions import GenerationServiceError, MissingInputError
from timeless.models.api import (
    AnimatedVideo,
    BatchStatus,
    GenerationStatus,
    ToolFamily,
    ToolRequest,
    ToolResponse,
)
from timeless.models.domain import CreatedGeneration, DispatchResult, ProfileSnapshot
from timeless.observability.metrics import metrics
from timeless.services.credits import CreditLedger
from timeless.services.tools.catalog import get_tool, required_credits
from timeless.services.tools.cinema import CinemaToolDispatcher
from timeless.services.tools.dispatcher import ToolDispatcher
from timeless.services.tools.image import ImageToolDispatcher
from timeless.services.tools.music import MusicToolDispatcher
from timeless.services.tools.video import VideoToolDispatcher

logger = get_logger(__name__)

DISPATCHER_CLASSES: dict[ToolFamily, type[ToolDispatcher]] = {
    ToolFamily.IMAGE: ImageToolDispatcher,
    ToolFamily.VIDEO: VideoToolDispatcher,
    ToolFamily.CINEMA: CinemaToolDispatcher,
    ToolFamily.MUSIC: MusicToolDispatcher,
}


class GenerationService:
    """
    Runs tools for a user and records what they produced.

    Dispatchers can be injected per family; otherwise one is built on demand.
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatchers: Mapping[ToolFamily, ToolDispatcher] | None = None,
    ) -> None:
        """Initialize generation service with database session."""
        self.session = session
        self.ledger = CreditLedger(session)
        self._dispatchers = dict(dispatchers or {})

    async def close(self) -> None:
        """Close provider HTTP clients of every dispatcher used."""
        for dispatcher in self._dispatchers.values():
            await dispatcher.close()

    def dispatcher_for(self, family: ToolFamily) -> ToolDispatcher:
        if family not in self._dispatchers:
            self._dispatchers[family] = DISPATCHER_CLASSES[family]()
        return self._dispatchers[family]

    async def run_tool(
        self, user_id: UUID, family: ToolFamily, request: ToolRequest
    ) -> ToolResponse:
        """
        Check credits, dispatch a tool, and record the outcome.

        Raises:
            MissingInputError: No tool, or a required tool input is missing
            ProfileNotFoundError: Caller has no profile
            InsufficientCreditsError: Caller cannot afford the tool
            UnknownToolError: Tool not in the family
            ToolUnavailableError: Tool not runnable yet
            ProviderError: Upstream provider failed
        """
        if not request.tool:
            raise MissingInputError("Missing required field: tool")
        tool = request.tool

        try:
            # Unknown tools are rejected before the balance is consulted
            spec = get_tool(family, tool)
            profile = await self.ledger.check(user_id, required_credits(spec, request))
            result = await self.dispatcher_for(family).dispatch(request)
            created = await self.record(profile, family, result)
        except GenerationServiceError as e:
            metrics.record_dispatch(family.value, tool, type(e).__name__)
            raise

        metrics.record_dispatch(family.value, tool, "success", created.credits_charged)
        return self._to_response(result, created)

    async def record(
        self,
        profile: ProfileSnapshot,
        family: ToolFamily,
        result: DispatchResult,
    ) -> CreatedGeneration:
        """
        Deduct credits and insert generation rows atomically.

        Sync results become completed rows; async jobs become processing rows
        linked to their provider task. Fan-out jobs share a batch row.
        """
        batch_id: UUID | None = None
        rows: list[Generation] = []

        try:
            if result.is_async and result.fan_out:
                batch_id = uuid4()
                self.session.add(
                    GenerationBatch(
                        id=batch_id,
                        user_id=profile.user_id,
                        tool=result.tool,
                        scene_count=len(result.jobs),
                        status=BatchStatus.PROCESSING.value,
                    )
                )

            for output_url in result.outputs:
                rows.append(
                    Generation(
                        id=uuid4(),
                        user_id=profile.user_id,
                        type=result.generation_type.value,
                        model=result.model,
                        prompt=result.prompt,
                        status=GenerationStatus.COMPLETED.value,
                        output_url=output_url,
                        credits_used=result.unit_cost,
                    )
                )

            for job in result.jobs:
                rows.append(
                    Generation(
                        id=uuid4(),
                        user_id=profile.user_id,
                        type=result.generation_type.value,
                        model=result.model,
                        prompt=job.prompt,
                        status=GenerationStatus.PROCESSING.value,
                        task_id=job.task_id,
                        provider_endpoint=job.provider_endpoint,
                        credits_used=result.unit_cost,
                        batch_id=batch_id,
                    )
                )

            self.session.add_all(rows)
            await self.session.flush()

            balance_before = profile.credits
            balance_after = await self.ledger.deduct(
                profile,
                result.total_cost,
                description=f"{family.value}-tools:{result.tool}",
                generation_id=rows[0].id,
            )
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.error(
                "generation_record_failed",
                user_id=str(profile.user_id),
                tool=result.tool,
                is_async=result.is_async,
                task_ids=[job.task_id for job in result.jobs],
            )
            raise

        charged = 0 if profile.is_subscribed else result.total_cost
        logger.info(
            "generation_recorded",
            user_id=str(profile.user_id),
            tool=result.tool,
            generation_ids=[str(row.id) for row in rows],
            batch_id=str(batch_id) if batch_id else None,
            credits_charged=charged,
            balance_before=balance_before,
            balance_after=balance_after,
        )
        return CreatedGeneration(
            generation_ids=tuple(row.id for row in rows),
            batch_id=batch_id,
            credits_charged=charged,
        )

    def _to_response(self, result: DispatchResult, created: CreatedGeneration) -> ToolResponse:
        credits_used = result.total_cost

        if not result.is_async:
            if len(result.outputs) > 1:
                return ToolResponse(scenes=list(result.outputs), credits_used=credits_used)
            return ToolResponse(output_url=result.outputs[0], credits_used=credits_used)

        if result.fan_out:
            return ToolResponse(
                status=GenerationStatus.PROCESSING,
                batch_id=created.batch_id,
                animated_videos=[
                    AnimatedVideo(
                        task_id=job.task_id,
                        scene_index=job.scene_index if job.scene_index is not None else index,
                        generation_id=generation_id,
                    )
                    for index, (job, generation_id) in enumerate(
                        zip(result.jobs, created.generation_ids, strict=True)
                    )
                ],
                credits_used=credits_used,
                message=result.message,
            )

        return ToolResponse(
            status=GenerationStatus.PROCESSING,
            task_id=result.jobs[0].task_id,
            generation_id=created.generation_ids[0],
            credits_used=credits_used,
            message=result.message,
        )
