"""
Reconciliation Service - Poll providers for pending generations.

NO DICTIONARIES - Provider payloads are normalized into JobOutcome values
before any row is touched.

Rules:
- completed and failed rows are terminal and never change
- a provider call that errors leaves the row untouched (check_failed)
- a failure refunds credits_used once, unless the user is subscribed
- a job still pending past its type's timeout is failed and refunded
"""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from timeless.config import settings
from timeless.db.models import Generation, GenerationBatch, utc_now
from timeless.exceptions import (
    GenerationNotFoundError,
    ProviderError,
    ProviderResponseError,
)
from timeless.models.api import (
    BatchStatus,
    CheckGenerationResponse,
    CheckResult,
    GenerationStatus,
    ReconcileStatus,
)
from timeless.models.domain import (
    Failed,
    JobOutcome,
    Pending,
    ReconcileResult,
    Succeeded,
)
from timeless.observability.logging import log_context
from timeless.observability.metrics import metrics
from timeless.services.credits import CreditLedger
from timeless.services.outcomes import (
    ResultReady,
    interpret_fal_result,
    interpret_fal_status,
    interpret_kie_record,
)
from timeless.services.providers.fal import FalClient, fal_model_path, is_fal_endpoint
from timeless.services.providers.kie import KieClient, is_kie_endpoint

logger = get_logger(__name__)

ACTIVE_STATUSES = (GenerationStatus.PENDING.value, GenerationStatus.PROCESSING.value)

# Result fetch failures that will never succeed on retry
PERMANENT_RESULT_FAILURES = frozenset({400, 401, 403, 404, 422})


def derive_batch_status(statuses: list[str]) -> BatchStatus:
    """Aggregate child generation statuses into a batch status."""
    if any(status in ACTIVE_STATUSES for status in statuses):
        return BatchStatus.PROCESSING
    if statuses and all(status == GenerationStatus.COMPLETED.value for status in statuses):
        return BatchStatus.COMPLETED
    if all(status == GenerationStatus.FAILED.value for status in statuses):
        return BatchStatus.FAILED
    return BatchStatus.PARTIAL


class ReconciliationService:
    """
    Moves processing generations to their terminal state.

    Rows are reconciled one at a time and each is committed on its own,
    so a failure on one row never blocks the others.
    """

    def __init__(
        self,
        session: AsyncSession,
        fal: FalClient | None = None,
        kie: KieClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize reconciliation service with database session."""
        self.session = session
        self.ledger = CreditLedger(session)
        self.fal = fal or FalClient()
        self.kie = kie or KieClient()
        self.clock = clock

    async def close(self) -> None:
        """Close provider HTTP clients."""
        await self.fal.close()
        await self.kie.close()

    async def check(
        self, user_id: UUID, generation_id: UUID | None = None
    ) -> CheckGenerationResponse:
        """
        Reconcile one generation, or every active generation of the user.

        Raises:
            GenerationNotFoundError: generation_id given but not owned by user
        """
        generations = await self._load(user_id, generation_id)

        results: list[ReconcileResult] = []
        for generation in generations:
            # A failed commit on an earlier row expires every loaded row
            if inspect(generation).expired_attributes:
                await self.session.refresh(generation)
            with log_context(generation_id=str(generation.id)):
                row_results = await self.reconcile(generation)
            for result in row_results:
                metrics.record_reconciliation(result.status.value, result.credits_refunded or 0)
            results.extend(row_results)

        pending_count = sum(1 for r in results if r.status == ReconcileStatus.PROCESSING)
        logger.info(
            "generations_checked",
            user_id=str(user_id),
            checked=len(generations),
            changed=sum(1 for r in results if r.changed),
            pending_count=pending_count,
        )
        return CheckGenerationResponse(
            results=[self._to_check_result(r) for r in results],
            pending_count=pending_count,
        )

    async def _load(self, user_id: UUID, generation_id: UUID | None) -> list[Generation]:
        if generation_id is not None:
            stmt = select(Generation).where(
                Generation.id == generation_id, Generation.user_id == user_id
            )
            result = await self.session.execute(stmt)
            generation = result.scalar_one_or_none()
            if generation is None:
                raise GenerationNotFoundError(generation_id)
            return [generation]

        stmt = (
            select(Generation)
            .where(Generation.user_id == user_id, Generation.status.in_(ACTIVE_STATUSES))
            .order_by(Generation.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def reconcile(self, generation: Generation) -> list[ReconcileResult]:
        """
        Reconcile a single row.

        Returns one result for the row, plus one per variation it spawned.
        """
        # Read before any rollback expires the row
        generation_id = generation.id
        if generation.status not in ACTIVE_STATUSES:
            return [self._unchanged(generation, ReconcileStatus(generation.status))]

        if not generation.task_id:
            return [self._unchanged(generation, ReconcileStatus.PROCESSING)]

        endpoint = generation.provider_endpoint or ""
        if is_kie_endpoint(endpoint):
            client_configured = self.kie.is_configured
            provider = "KIE"
        elif is_fal_endpoint(endpoint):
            client_configured = self.fal.is_configured
            provider = "FAL"
        else:
            return [self._unchanged(generation, ReconcileStatus.UNSUPPORTED_PROVIDER)]

        if not client_configured:
            logger.warning("provider_not_configured", provider=provider.lower())
            return [
                self._unchanged(
                    generation,
                    ReconcileStatus.PROCESSING,
                    error=f"{provider}_API_KEY not configured",
                )
            ]

        try:
            if provider == "KIE":
                outcome = await self._poll_kie(generation)
            else:
                outcome = await self._poll_fal(generation)
        except ProviderError as e:
            logger.warning(
                "generation_check_failed",
                provider=e.provider,
                status=e.status_code,
                error=e.body,
            )
            return [
                self._unchanged(generation, ReconcileStatus.CHECK_FAILED, error=e.body)
            ]

        try:
            return await self._apply(generation, outcome)
        except Exception as e:
            await self.session.rollback()
            logger.exception("generation_reconcile_error", error=str(e))
            metrics.record_error(type(e).__name__, "reconcile")
            return [
                ReconcileResult(
                    generation_id=generation_id,
                    status=ReconcileStatus.ERROR,
                    changed=False,
                    error=str(e),
                )
            ]

    # ========================================================================
    # Provider polling
    # ========================================================================

    async def _poll_fal(self, generation: Generation) -> JobOutcome:
        assert generation.task_id is not None
        model_path = fal_model_path(generation.provider_endpoint or "")

        try:
            status_doc = await self.fal.get_status(model_path, generation.task_id)
        except ProviderResponseError:
            return Pending()

        status = interpret_fal_status(status_doc)
        if not isinstance(status, ResultReady):
            return status

        try:
            result = await self.fal.get_result(model_path, generation.task_id)
        except ProviderResponseError:
            return Pending(provider_status="COMPLETED_NO_OUTPUT")
        except ProviderError as e:
            provider_status = f"RESULT_FETCH_FAILED_{e.status_code}"
            if e.status_code in PERMANENT_RESULT_FAILURES:
                return Failed(reason=e.body or "Result unavailable", provider_status=provider_status)
            return Pending(provider_status=provider_status, detail=e.body)

        return interpret_fal_result(result, generation.type)

    async def _poll_kie(self, generation: Generation) -> JobOutcome:
        assert generation.task_id is not None
        try:
            record = await self.kie.record_info(generation.model, generation.task_id)
        except ProviderResponseError:
            return Pending()
        return interpret_kie_record(
            record, generation.type, fallback_title=generation.title or generation.prompt
        )

    # ========================================================================
    # Row transitions
    # ========================================================================

    def _timeout(self, generation: Generation) -> timedelta:
        return timedelta(minutes=settings.job_timeout_minutes(generation.type))

    def _is_timed_out(self, generation: Generation) -> bool:
        created_at = generation.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return self.clock() - created_at > self._timeout(generation)

    async def _apply(self, generation: Generation, outcome: JobOutcome) -> list[ReconcileResult]:
        if isinstance(outcome, Succeeded):
            return await self._complete(generation, outcome)

        if isinstance(outcome, Failed):
            return [await self._fail(generation, outcome.reason, outcome.provider_status)]

        if self._is_timed_out(generation):
            minutes = settings.job_timeout_minutes(generation.type)
            logger.warning(
                "generation_timed_out",
                timeout_minutes=minutes,
                provider_status=outcome.provider_status,
            )
            return [
                await self._fail(
                    generation,
                    f"Generation timed out after {minutes} minutes",
                    outcome.provider_status,
                )
            ]

        return [
            self._unchanged(
                generation,
                ReconcileStatus.PROCESSING,
                provider_status=outcome.provider_status,
                error=outcome.detail,
            )
        ]

    async def _complete(
        self, generation: Generation, outcome: Succeeded
    ) -> list[ReconcileResult]:
        generation.status = GenerationStatus.COMPLETED.value
        generation.output_url = outcome.output_url
        generation.thumbnail_url = outcome.thumbnail_url
        if outcome.title:
            generation.title = outcome.title

        variations: list[Generation] = []
        for variation in outcome.variations:
            variations.append(
                Generation(
                    id=uuid4(),
                    user_id=generation.user_id,
                    type=generation.type,
                    model=generation.model,
                    prompt=generation.prompt,
                    title=variation.title,
                    status=GenerationStatus.COMPLETED.value,
                    output_url=variation.output_url,
                    provider_endpoint=generation.provider_endpoint,
                    credits_used=0,
                )
            )
        self.session.add_all(variations)
        await self.session.flush()
        await self._refresh_batch(generation.batch_id)
        await self.session.commit()

        logger.info(
            "generation_completed",
            output_url=outcome.output_url,
            variations=len(variations),
        )

        results = [
            ReconcileResult(
                generation_id=generation.id,
                status=ReconcileStatus.COMPLETED,
                changed=True,
                output_url=outcome.output_url,
                thumbnail_url=outcome.thumbnail_url,
                prompt=generation.prompt,
                model=generation.model,
            )
        ]
        results.extend(
            ReconcileResult(
                generation_id=variation.id,
                status=ReconcileStatus.COMPLETED,
                changed=True,
                output_url=variation.output_url,
                is_variation=True,
                prompt=generation.prompt,
                model=generation.model,
            )
            for variation in variations
        )
        return results

    async def _fail(
        self, generation: Generation, reason: str, provider_status: str | None
    ) -> ReconcileResult:
        refunded = await self.ledger.refund(
            generation.user_id,
            generation.id,
            generation.credits_used,
            description=f"Refund for failed {generation.model} generation",
        )
        generation.status = GenerationStatus.FAILED.value
        generation.error_message = reason
        await self.session.flush()
        await self._refresh_batch(generation.batch_id)
        await self.session.commit()

        logger.info(
            "generation_failed",
            reason=reason,
            provider_status=provider_status,
            credits_refunded=refunded,
        )
        return ReconcileResult(
            generation_id=generation.id,
            status=ReconcileStatus.FAILED,
            changed=True,
            credits_refunded=refunded,
            provider_status=provider_status,
            error=reason,
            prompt=generation.prompt,
            model=generation.model,
        )

    async def _refresh_batch(self, batch_id: UUID | None) -> None:
        """Recompute a batch's aggregate status from its children."""
        if batch_id is None:
            return
        batch = await self.session.get(GenerationBatch, batch_id)
        if batch is None:
            return
        result = await self.session.execute(
            select(Generation.status).where(Generation.batch_id == batch_id)
        )
        status = derive_batch_status(list(result.scalars().all()))
        if batch.status != status.value:
            batch.status = status.value
            logger.info("batch_status_changed", batch_id=str(batch_id), status=status.value)

    def _unchanged(
        self,
        generation: Generation,
        status: ReconcileStatus,
        provider_status: str | None = None,
        error: str | None = None,
    ) -> ReconcileResult:
        return ReconcileResult(
            generation_id=generation.id,
            status=status,
            changed=False,
            provider_status=provider_status,
            error=error,
        )

    def _to_check_result(self, result: ReconcileResult) -> CheckResult:
        return CheckResult(
            id=result.generation_id,
            status=result.status,
            changed=result.changed,
            output_url=result.output_url,
            thumbnail_url=result.thumbnail_url,
            credits_refunded=result.credits_refunded,
            provider_status=result.provider_status,
            error=result.error,
            is_variation=result.is_variation or None,
            prompt=result.prompt,
            model=result.model,
        )
