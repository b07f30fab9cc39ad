"""
Video Tools - Fal.ai sync and queue jobs, Kie.ai upscaling, and scene fan-out.
"""

import asyncio
from typing import Any

from structlog import get_logger

from timeless.exceptions import ToolUnavailableError
from timeless.models.api import ToolFamily, ToolRequest
from timeless.models.domain import DispatchResult, ProviderJob
from timeless.services.providers.fal import FAL_PREFIX
from timeless.services.tools.catalog import WAN_IMAGE_TO_VIDEO, ToolSpec
from timeless.services.tools.dispatcher import (
    DEFAULT_DURATION_SECONDS,
    Handler,
    ToolDispatcher,
    require,
)

logger = get_logger(__name__)

VIDEO_ASYNC_MESSAGE = "Video is being processed. Check Library for results."
UGC_PREFIX = "UGC style video, person speaking to camera, authentic look: "

# Kie.ai topaz output sizes
AI_UPSCALE_RESOLUTIONS: dict[str, tuple[int, int]] = {
    "1080p": (1920, 1080),
    "4k": (3840, 2160),
}


class VideoToolDispatcher(ToolDispatcher):
    """Dispatcher for /v1/video-tools."""

    family = ToolFamily.VIDEO
    async_message = VIDEO_ASYNC_MESSAGE

    def handlers(self) -> dict[str, Handler]:
        return {
            "video-upscale": self._video_upscale,
            "interpolate": self._interpolate,
            "lip-sync": self._lip_sync,
            "extend": self._extend,
            "sketch-to-video": self._sketch_to_video,
            "draw-to-video": self._sketch_to_video,
            "sora-trends": self._text_to_video,
            "click-to-ad": self._text_to_video,
            "ugc-factory": self._text_to_video,
            "mixed-media": self._mixed_media,
            "ai-upscale": self._ai_upscale,
            "story-animate": self._story_animate,
            "edit-video": self._edit_video,
        }

    def _duration(self, request: ToolRequest) -> int:
        return request.duration or DEFAULT_DURATION_SECONDS

    def _prompt(self, spec: ToolSpec, request: ToolRequest) -> str:
        return request.prompt or spec.name

    async def _video_upscale(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        video_url = require(request.video_url, "Video URL required for upscaling")
        payload = {"video_url": video_url, "upscale_factor": request.upscale_factor or 2}
        return await self.run_sync(spec, payload, self._prompt(spec, request))

    async def _interpolate(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        video_url = require(request.video_url, "Video URL required for interpolation")
        payload = {"video_url": video_url, "target_fps": request.target_fps or 60}
        return await self.run_sync(spec, payload, self._prompt(spec, request))

    async def _lip_sync(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        message = "Video URL and Audio URL required for lip sync"
        video_url = require(request.video_url, message)
        audio_url = require(request.audio_url, message)
        payload = {"video_url": video_url, "audio_url": audio_url, "sync_mode": "accurate"}
        return await self.submit_queue(spec, payload, self._prompt(spec, request))

    async def _extend(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        # The client sends the clip's last frame as videoUrl
        video_url = require(request.video_url, "Video URL required for extending")
        payload = {
            "image_url": video_url,
            "prompt": request.prompt or "Continue this scene seamlessly",
            "duration": self._duration(request),
            "aspect_ratio": "16:9",
        }
        return await self.submit_queue(spec, payload, self._prompt(spec, request))

    async def _sketch_to_video(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        image_url = require(request.image_url, "Sketch/Drawing image required")
        payload = {
            "image_url": image_url,
            "prompt": request.prompt or "Animate this sketch with smooth motion",
            "duration": self._duration(request),
            "aspect_ratio": "16:9",
        }
        return await self.submit_queue(spec, payload, self._prompt(spec, request))

    async def _text_to_video(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        if spec.name == "ugc-factory":
            prompt = f"{UGC_PREFIX}{request.prompt or 'product review'}"
        elif spec.name == "click-to-ad":
            prompt = request.prompt or "Professional product advertisement video"
        else:
            prompt = request.prompt or "Trending viral video concept"
        payload = {
            "prompt": prompt,
            "aspect_ratio": "9:16",
            "duration": self._duration(request),
        }
        return await self.submit_queue(spec, payload, self._prompt(spec, request))

    async def _mixed_media(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        payload: dict[str, Any] = {
            "prompt": request.prompt or "Mixed media art style video",
            "aspect_ratio": "16:9",
            "duration": self._duration(request),
        }
        endpoint = None
        if request.image_url:
            payload["image_url"] = request.image_url
            endpoint = WAN_IMAGE_TO_VIDEO
        return await self.submit_queue(
            spec, payload, self._prompt(spec, request), endpoint=endpoint
        )

    async def _ai_upscale(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        video_url = require(request.video_url, "Video URL required for AI upscaling")
        width, height = AI_UPSCALE_RESOLUTIONS.get(
            request.resolution or "1080p", AI_UPSCALE_RESOLUTIONS["1080p"]
        )
        task_input = {
            "video_url": video_url,
            "target_width": width,
            "target_height": height,
            "enhance_quality": True,
        }
        return await self.create_kie_task(spec, task_input, self._prompt(spec, request))

    async def _edit_video(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        raise ToolUnavailableError(
            spec.name, "Edit Video coming soon - use other tools for specific edits"
        )

    async def _story_animate(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        """
        Submit one image-to-video job per storyboard scene, concurrently.

        Scenes that fail to submit are dropped; only submitted scenes are
        charged. If no scene is accepted, the first failure is raised.
        """
        image_urls = require(request.image_urls, "Image URLs array required for story animation")
        scene_prompts = request.scene_prompts or []
        assert spec.endpoint is not None

        def scene_prompt(index: int) -> str | None:
            return scene_prompts[index] if index < len(scene_prompts) else None

        async def submit_scene(index: int, image_url: str) -> str:
            payload = {
                "image_url": image_url,
                "prompt": scene_prompt(index)
                or f"Animate this scene with cinematic motion, scene {index + 1}",
                "duration": str(self._duration(request)),
                "aspect_ratio": "16:9",
            }
            return await self.fal.submit(spec.endpoint, payload)  # type: ignore[arg-type]

        outcomes = await asyncio.gather(
            *(submit_scene(i, url) for i, url in enumerate(image_urls)),
            return_exceptions=True,
        )

        jobs: list[ProviderJob] = []
        failures: list[Exception] = []
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, Exception):
                logger.warning(
                    "story_scene_submit_failed", scene_index=index, error=str(outcome)
                )
                failures.append(outcome)
                continue
            jobs.append(
                ProviderJob(
                    task_id=outcome,
                    provider_endpoint=f"{FAL_PREFIX}{spec.endpoint}",
                    prompt=scene_prompt(index) or f"Scene {index + 1}",
                    scene_index=index,
                )
            )

        if not jobs:
            raise failures[0]

        return self.processing(
            spec,
            self._prompt(spec, request),
            tuple(jobs),
            message=f"Animating {len(jobs)} scenes. Check Library for results.",
        )
