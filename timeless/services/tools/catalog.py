"""
Tool Catalog - Credit costs and upstream endpoints per tool.

Costs live in one table per family so pricing changes never touch
dispatcher code.
"""

from dataclasses import dataclass
from enum import Enum

from timeless.exceptions import UnknownToolError
from timeless.models.api import GenerationType, ToolFamily, ToolRequest


class DispatchMode(str, Enum):
    """How a tool reaches its provider."""

    SYNC = "sync"  # Fal.ai synchronous run
    QUEUE = "queue"  # Fal.ai queue job
    KIE = "kie"  # Kie.ai task
    GATEWAY = "gateway"  # AI gateway image model
    FAN_OUT = "fan_out"  # one Fal.ai queue job per scene
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ToolSpec:
    """Static definition of one tool."""

    name: str
    family: ToolFamily
    cost: int
    mode: DispatchMode
    endpoint: str | None = None
    per_scene: bool = False

    @property
    def generation_type(self) -> GenerationType:
        if self.family == ToolFamily.IMAGE:
            return GenerationType.IMAGE
        if self.family == ToolFamily.MUSIC:
            return GenerationType.MUSIC
        return GenerationType.VIDEO

    @property
    def model_name(self) -> str:
        """Value stored in generations.model."""
        if self.family == ToolFamily.CINEMA:
            return f"cinema-{self.name}"
        return self.name


# Shared upstream models
WAN_IMAGE_TO_VIDEO = "fal-ai/wan/v2.6/image-to-video"
WAN_TEXT_TO_VIDEO = "fal-ai/wan/v2.6/text-to-video"
FLUX_FILL = "fal-ai/flux-pro/v1/fill"
STABLE_AUDIO = "fal-ai/stable-audio"
VIDEO_UPSCALER = "fal-ai/video-upscaler"
KLING_IMAGE_TO_VIDEO = "fal-ai/kling-video/v2.6/pro/image-to-video"


def _table(family: ToolFamily, *specs: tuple[str, int, DispatchMode, str | None]) -> dict[str, ToolSpec]:
    return {
        name: ToolSpec(name=name, family=family, cost=cost, mode=mode, endpoint=endpoint)
        for name, cost, mode, endpoint in specs
    }


IMAGE_TOOLS = _table(
    ToolFamily.IMAGE,
    ("upscale", 3, DispatchMode.SYNC, "fal-ai/clarity-upscaler"),
    ("background-remove", 2, DispatchMode.SYNC, "fal-ai/birefnet"),
    ("inpainting", 5, DispatchMode.SYNC, FLUX_FILL),
    ("object-erase", 4, DispatchMode.SYNC, FLUX_FILL),
    ("relight", 4, DispatchMode.GATEWAY, None),
    ("angle", 4, DispatchMode.GATEWAY, None),
    ("skin-enhancer", 3, DispatchMode.GATEWAY, None),
    ("colorize", 3, DispatchMode.GATEWAY, None),
    ("style-transfer", 4, DispatchMode.GATEWAY, None),
    ("shots", 2, DispatchMode.GATEWAY, None),
)
IMAGE_TOOLS["story-mode"] = ToolSpec(
    name="story-mode",
    family=ToolFamily.IMAGE,
    cost=8,
    mode=DispatchMode.GATEWAY,
    per_scene=True,
)

VIDEO_TOOLS = _table(
    ToolFamily.VIDEO,
    ("video-upscale", 12, DispatchMode.SYNC, VIDEO_UPSCALER),
    ("interpolate", 10, DispatchMode.SYNC, "fal-ai/frame-interpolation"),
    ("lip-sync", 20, DispatchMode.QUEUE, "fal-ai/sync-lipsync"),
    ("extend", 15, DispatchMode.QUEUE, WAN_IMAGE_TO_VIDEO),
    ("sketch-to-video", 22, DispatchMode.QUEUE, WAN_IMAGE_TO_VIDEO),
    ("draw-to-video", 22, DispatchMode.QUEUE, WAN_IMAGE_TO_VIDEO),
    ("sora-trends", 30, DispatchMode.QUEUE, "fal-ai/veo3"),
    ("click-to-ad", 25, DispatchMode.QUEUE, WAN_TEXT_TO_VIDEO),
    ("ugc-factory", 25, DispatchMode.QUEUE, WAN_TEXT_TO_VIDEO),
    ("mixed-media", 20, DispatchMode.QUEUE, WAN_TEXT_TO_VIDEO),
    ("ai-upscale", 12, DispatchMode.KIE, "topaz"),
    ("edit-video", 15, DispatchMode.UNAVAILABLE, None),
)
VIDEO_TOOLS["story-animate"] = ToolSpec(
    name="story-animate",
    family=ToolFamily.VIDEO,
    cost=15,
    mode=DispatchMode.FAN_OUT,
    endpoint=KLING_IMAGE_TO_VIDEO,
    per_scene=True,
)

CINEMA_TOOLS = _table(
    ToolFamily.CINEMA,
    ("camera-control", 20, DispatchMode.QUEUE, WAN_TEXT_TO_VIDEO),
    ("motion-path", 22, DispatchMode.QUEUE, WAN_IMAGE_TO_VIDEO),
    ("depth-control", 15, DispatchMode.QUEUE, WAN_TEXT_TO_VIDEO),
    ("lens-effects", 12, DispatchMode.QUEUE, WAN_TEXT_TO_VIDEO),
    ("color-grade", 10, DispatchMode.QUEUE, WAN_TEXT_TO_VIDEO),
    ("stabilize", 10, DispatchMode.QUEUE, VIDEO_UPSCALER),
)

MUSIC_TOOLS = _table(
    ToolFamily.MUSIC,
    ("stems", 8, DispatchMode.QUEUE, STABLE_AUDIO),
    ("remix", 12, DispatchMode.QUEUE, STABLE_AUDIO),
    ("vocals", 15, DispatchMode.QUEUE, STABLE_AUDIO),
    ("master", 6, DispatchMode.QUEUE, STABLE_AUDIO),
    ("sound-effects", 5, DispatchMode.QUEUE, STABLE_AUDIO),
    ("audio-enhance", 4, DispatchMode.QUEUE, STABLE_AUDIO),
    ("tempo-pitch", 3, DispatchMode.QUEUE, STABLE_AUDIO),
)

CATALOG: dict[ToolFamily, dict[str, ToolSpec]] = {
    ToolFamily.IMAGE: IMAGE_TOOLS,
    ToolFamily.VIDEO: VIDEO_TOOLS,
    ToolFamily.CINEMA: CINEMA_TOOLS,
    ToolFamily.MUSIC: MUSIC_TOOLS,
}


def get_tool(family: ToolFamily, name: str) -> ToolSpec:
    """
    Look up a tool in its family's table.

    Raises:
        UnknownToolError: Tool not in the table
    """
    spec = CATALOG[family].get(name)
    if spec is None:
        raise UnknownToolError(name)
    return spec


def scene_count(spec: ToolSpec, request: ToolRequest) -> int:
    """Number of billable units a request asks for."""
    if not spec.per_scene:
        return 1
    if spec.mode == DispatchMode.FAN_OUT:
        return max(len(request.image_urls or []), 1)
    return max(len(request.scene_prompts or []), 1)


def required_credits(spec: ToolSpec, request: ToolRequest) -> int:
    """Credits a request needs before dispatch."""
    return spec.cost * scene_count(spec, request)
