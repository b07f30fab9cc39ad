"""
Cinema Tools - Cinematic video generation via Fal.ai queue jobs.

Text-to-video by default; an imageUrl switches to image-to-video.
"""

from typing import Any

from timeless.models.api import ToolFamily, ToolRequest
from timeless.models.domain import DispatchResult
from timeless.services.tools.catalog import WAN_IMAGE_TO_VIDEO, ToolSpec
from timeless.services.tools.dispatcher import (
    DEFAULT_DURATION_SECONDS,
    Handler,
    ToolDispatcher,
    require,
)
from timeless.services.tools.video import VIDEO_ASYNC_MESSAGE


def cinematic_prompt(
    base: str,
    movements: list[str] | None = None,
    lens_type: str | None = None,
    color_preset: str | None = None,
) -> str:
    """Append camera, lens and grading directions to a base prompt."""
    prompt = base
    if movements:
        prompt += f" Camera movements: {', '.join(movements)}."
    if lens_type:
        prompt += f" Shot on {lens_type} lens."
    if color_preset:
        prompt += f" {color_preset} color grading."
    return prompt


class CinemaToolDispatcher(ToolDispatcher):
    """Dispatcher for /v1/cinema-tools. Every tool is a queue job."""

    family = ToolFamily.CINEMA
    async_message = VIDEO_ASYNC_MESSAGE

    def handlers(self) -> dict[str, Handler]:
        return {
            "camera-control": self._camera_control,
            "motion-path": self._motion_path,
            "depth-control": self._depth_control,
            "lens-effects": self._lens_effects,
            "color-grade": self._color_grade,
            "stabilize": self._stabilize,
        }

    async def _generate(
        self,
        spec: ToolSpec,
        request: ToolRequest,
        prompt: str,
        aspect_ratio: str = "16:9",
    ) -> DispatchResult:
        payload: dict[str, Any] = {
            "prompt": prompt,
            "aspect_ratio": aspect_ratio,
            "duration": request.duration or DEFAULT_DURATION_SECONDS,
        }
        endpoint = None
        if request.image_url:
            payload["image_url"] = request.image_url
            endpoint = WAN_IMAGE_TO_VIDEO
        return await self.submit_queue(
            spec, payload, request.prompt or spec.name, endpoint=endpoint
        )

    async def _camera_control(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        prompt = cinematic_prompt(
            request.prompt or "Cinematic shot with precise camera movement",
            movements=request.movements,
        )
        return await self._generate(spec, request, prompt)

    async def _motion_path(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        require(request.image_url, "Image required for motion path")
        prompt = request.prompt or "Smooth camera motion following a custom path"
        return await self._generate(spec, request, prompt)

    async def _depth_control(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        prompt = (
            f"{request.prompt or 'Cinematic shot'}, shallow depth of field, "
            "bokeh background, professional cinematography"
        )
        return await self._generate(spec, request, prompt)

    async def _lens_effects(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        lens_prompt = cinematic_prompt(
            request.prompt or "Cinematic shot",
            lens_type=request.lens_type or "anamorphic",
        )
        prompt = f"{lens_prompt}, lens flare, cinematic lighting, film grain, vignette"
        return await self._generate(spec, request, prompt, aspect_ratio="21:9")

    async def _color_grade(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        prompt = cinematic_prompt(
            request.prompt or "Cinematic shot",
            color_preset=request.color_preset or "cinematic",
        )
        return await self._generate(spec, request, prompt)

    async def _stabilize(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        video_url = require(request.video_url, "Video required for stabilization")
        # upscale_factor 1 runs the upscaler as a pure stabilization pass
        payload = {"video_url": video_url, "upscale_factor": 1}
        return await self.submit_queue(spec, payload, request.prompt or spec.name)
