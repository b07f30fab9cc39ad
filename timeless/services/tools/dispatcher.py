"""
Tool Dispatcher - Shared plumbing for the per-family tool dispatchers.

A dispatcher maps tool names to handlers. Handlers validate inputs,
build provider payloads, and return a DispatchResult; they never touch
the database or credits.
"""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from structlog import get_logger

from timeless.exceptions import MissingInputError, ProviderResponseError
from timeless.models.api import ToolFamily, ToolRequest
from timeless.models.domain import DispatchResult, ProviderJob
from timeless.services.outcomes import extract_fal_output_url
from timeless.services.providers.ai_gateway import AIGatewayClient
from timeless.services.providers.fal import FAL_PREFIX, FalClient
from timeless.services.providers.kie import KIE_PREFIX, KieClient
from timeless.services.tools.catalog import ToolSpec, get_tool

logger = get_logger(__name__)

Handler = Callable[[ToolSpec, ToolRequest], Awaitable[DispatchResult]]

T = TypeVar("T")

DEFAULT_DURATION_SECONDS = 5


def require(value: T | None, message: str) -> T:
    """Return value or raise MissingInputError with message."""
    if value is None or value == "" or value == []:
        raise MissingInputError(message)
    return value


class ToolDispatcher:
    """
    Base dispatcher.

    Subclasses set family and async_message and implement handlers().
    Provider clients are injectable for tests.
    """

    family: ToolFamily
    async_message: str | None = None

    def __init__(
        self,
        fal: FalClient | None = None,
        kie: KieClient | None = None,
        gateway: AIGatewayClient | None = None,
    ) -> None:
        self._fal = fal
        self._kie = kie
        self._gateway = gateway

    @property
    def fal(self) -> FalClient:
        if self._fal is None:
            self._fal = FalClient()
        return self._fal

    @property
    def kie(self) -> KieClient:
        if self._kie is None:
            self._kie = KieClient()
        return self._kie

    @property
    def gateway(self) -> AIGatewayClient:
        if self._gateway is None:
            self._gateway = AIGatewayClient()
        return self._gateway

    def handlers(self) -> dict[str, Handler]:
        """Tool name -> handler."""
        raise NotImplementedError

    async def close(self) -> None:
        """Close any provider clients this dispatcher created or was given."""
        for client in (self._fal, self._kie, self._gateway):
            if client is not None:
                await client.close()

    async def dispatch(self, request: ToolRequest) -> DispatchResult:
        """
        Run one tool.

        Raises:
            MissingInputError: No tool given, or a required input is missing
            UnknownToolError: Tool not in this family
            ToolUnavailableError: Tool catalogued but not runnable
            ProviderError: Upstream provider failed
        """
        tool = require(request.tool, "Missing required field: tool")
        spec = get_tool(self.family, tool)
        handler = self.handlers()[spec.name]

        result = await handler(spec, request)

        logger.info(
            "tool_dispatched",
            family=self.family.value,
            tool=spec.name,
            is_async=result.is_async,
            units=max(len(result.outputs), len(result.jobs)),
            credits=result.total_cost,
        )
        return result

    # ========================================================================
    # Handler building blocks
    # ========================================================================

    async def run_sync(
        self,
        spec: ToolSpec,
        payload: dict[str, Any],
        prompt: str,
        endpoint: str | None = None,
    ) -> DispatchResult:
        """Run a Fal.ai model synchronously and wrap its output URL."""
        model_path = endpoint or spec.endpoint
        assert model_path is not None
        result = await self.fal.run_sync(model_path, payload)
        output_url = extract_fal_output_url(result)
        if output_url is None:
            raise ProviderResponseError(self.fal.provider_name, "No output generated")
        return self.completed(spec, prompt, (output_url,))

    async def submit_queue(
        self,
        spec: ToolSpec,
        payload: dict[str, Any],
        prompt: str,
        endpoint: str | None = None,
    ) -> DispatchResult:
        """Submit a Fal.ai queue job."""
        model_path = endpoint or spec.endpoint
        assert model_path is not None
        request_id = await self.fal.submit(model_path, payload)
        job = ProviderJob(
            task_id=request_id,
            provider_endpoint=f"{FAL_PREFIX}{model_path}",
            prompt=prompt,
        )
        return self.processing(spec, prompt, (job,))

    async def create_kie_task(
        self,
        spec: ToolSpec,
        task_input: dict[str, Any],
        prompt: str,
    ) -> DispatchResult:
        """Create a Kie.ai task."""
        assert spec.endpoint is not None
        task_id = await self.kie.create_task(spec.endpoint, task_input)
        job = ProviderJob(
            task_id=task_id,
            provider_endpoint=f"{KIE_PREFIX}{spec.endpoint}",
            prompt=prompt,
        )
        return self.processing(spec, prompt, (job,))

    def completed(
        self, spec: ToolSpec, prompt: str, outputs: tuple[str, ...]
    ) -> DispatchResult:
        return DispatchResult(
            tool=spec.name,
            model=spec.model_name,
            generation_type=spec.generation_type,
            prompt=prompt,
            unit_cost=spec.cost,
            outputs=outputs,
        )

    def processing(
        self,
        spec: ToolSpec,
        prompt: str,
        jobs: tuple[ProviderJob, ...],
        message: str | None = None,
    ) -> DispatchResult:
        return DispatchResult(
            tool=spec.name,
            model=spec.model_name,
            generation_type=spec.generation_type,
            prompt=prompt,
            unit_cost=spec.cost,
            jobs=jobs,
            fan_out=spec.per_scene,
            message=message or self.async_message,
        )
