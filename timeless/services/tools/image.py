"""
Image Tools - Synchronous image edits via Fal.ai and the AI gateway.
"""

from structlog import get_logger

from timeless.models.api import ToolFamily, ToolRequest
from timeless.models.domain import DispatchResult
from timeless.services.tools.catalog import ToolSpec
from timeless.services.tools.dispatcher import Handler, ToolDispatcher, require

logger = get_logger(__name__)

MISSING_IMAGE = "Missing required field: imageUrl"

STORY_FORMATS: dict[str, str] = {
    "3:4": "Portrait orientation (3:4)",
    "16:9": "Cinematic widescreen (16:9)",
    "9:16": "Vertical/mobile format (9:16)",
}


def intensity_band(intensity: int | None, strong: str, moderate: str, light: str) -> str:
    """Map a 0-100 intensity slider to one of three descriptions."""
    value = intensity or 0
    if value > 70:
        return strong
    if value > 40:
        return moderate
    return light


def shots_prompt(prompt: str | None, aspect_ratio: str | None) -> str:
    aspect_text = f" Output in {aspect_ratio} aspect ratio." if aspect_ratio else ""
    return f"""CREATE A UNIQUE PHOTOSHOOT VARIATION OF THIS PERSON.

{prompt or ""}

REQUIREMENTS:
1. PRESERVE IDENTITY: Same person (face, hair, beard, glasses, skin tone, clothing)
2. CHANGE THE SHOT TYPE: Follow the specific shot description above exactly
3. ADJUST ZOOM/FRAMING as specified (close-up, medium shot, extreme close-up, etc.)
4. CHANGE POSE if specified (arms crossed, looking up, etc.)
5. CHANGE EXPRESSION if specified (smiling, serious, contemplative, etc.)
6. This must look like a DIFFERENT PHOTO from a professional photoshoot
7. Keep the same white/neutral studio background and lighting style

{aspect_text}"""


def story_scene_prompt(
    index: int, scene: str, aspect_ratio: str | None, has_reference: bool
) -> str:
    ref_context = (
        "Use these reference images as visual style guide. Maintain consistent characters, "
        "setting, and art style across all scenes."
        if has_reference
        else ""
    )
    scene_format = STORY_FORMATS.get(aspect_ratio or "", "Square format (1:1)")
    return f"""CREATE A STORYBOARD SCENE IMAGE.

{ref_context}

SCENE {index + 1}: {scene}

REQUIREMENTS:
1. Create a single, high-quality illustration for this scene
2. {scene_format}
3. Professional storyboard quality with clear composition
4. If reference images provided, maintain visual consistency
5. Focus on the narrative moment described
6. Dramatic lighting and cinematic framing

Make this look like a frame from a professional film or animation storyboard."""


class ImageToolDispatcher(ToolDispatcher):
    """Dispatcher for /v1/image-tools. Every tool answers synchronously."""

    family = ToolFamily.IMAGE

    def handlers(self) -> dict[str, Handler]:
        return {
            "upscale": self._upscale,
            "background-remove": self._background_remove,
            "inpainting": self._inpainting,
            "object-erase": self._object_erase,
            "relight": self._relight,
            "angle": self._angle,
            "skin-enhancer": self._skin_enhancer,
            "colorize": self._colorize,
            "style-transfer": self._style_transfer,
            "shots": self._shots,
            "story-mode": self._story_mode,
        }

    def _prompt(self, spec: ToolSpec, request: ToolRequest) -> str:
        return request.prompt or spec.name

    async def _upscale(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        image_url = require(request.image_url, MISSING_IMAGE)
        payload = {
            "image_url": image_url,
            "upscale_factor": request.scale or 2,
            "prompt": request.prompt or "high quality, detailed, sharp",
        }
        return await self.run_sync(spec, payload, self._prompt(spec, request))

    async def _background_remove(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        image_url = require(request.image_url, MISSING_IMAGE)
        return await self.run_sync(spec, {"image_url": image_url}, self._prompt(spec, request))

    async def _inpainting(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        image_url = require(request.image_url, MISSING_IMAGE)
        mask_url = require(request.mask_url, "Mask image required for inpainting")
        payload = {
            "image_url": image_url,
            "mask_url": mask_url,
            "prompt": request.prompt or "seamless blend, natural, high quality",
        }
        return await self.run_sync(spec, payload, self._prompt(spec, request))

    async def _object_erase(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        image_url = require(request.image_url, MISSING_IMAGE)
        mask_url = require(request.mask_url, "Mask image required for object erase")
        payload = {
            "image_url": image_url,
            "mask_url": mask_url,
            "prompt": "clean background, remove object, seamless",
        }
        return await self.run_sync(spec, payload, self._prompt(spec, request))

    async def _edit(self, spec: ToolSpec, request: ToolRequest, instruction: str) -> DispatchResult:
        image_url = require(request.image_url, MISSING_IMAGE)
        output_url = await self.gateway.edit_image(instruction, image_url)
        return self.completed(spec, self._prompt(spec, request), (output_url,))

    async def _relight(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        level = intensity_band(request.intensity, "very dramatic", "moderate", "subtle")
        instruction = (
            f"Relight this image with {request.prompt or 'dramatic studio lighting'}. "
            f"Adjust the lighting to be {level}. Keep all other elements the same."
        )
        return await self._edit(spec, request, instruction)

    async def _angle(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        instruction = (
            "Change the perspective/angle of this image: "
            f"{request.prompt or 'view from a different angle'}. Maintain the subject and style."
        )
        return await self._edit(spec, request, instruction)

    async def _skin_enhancer(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        level = intensity_band(
            request.intensity, "strong retouching", "moderate retouching", "subtle enhancement"
        )
        instruction = (
            "Enhance the skin in this portrait photo. Apply professional retouching: "
            "smooth skin texture, reduce blemishes, even skin tone, but keep it natural "
            f"looking. Intensity: {level}."
        )
        return await self._edit(spec, request, instruction)

    async def _colorize(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        instruction = (
            "Colorize this black and white image with realistic, natural colors. "
            f"{request.prompt or 'Use historically accurate and natural colors.'} "
            "Make it look like a modern color photograph."
        )
        return await self._edit(spec, request, instruction)

    async def _style_transfer(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        style = request.style or request.prompt or "oil painting"
        instruction = (
            f"Transform this image to {style} style. Keep the composition and subject "
            "the same but apply the artistic style completely."
        )
        return await self._edit(spec, request, instruction)

    async def _shots(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        return await self._edit(spec, request, shots_prompt(request.prompt, request.aspect_ratio))

    async def _story_mode(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        scenes = request.scene_prompts or ([request.prompt] if request.prompt else [])
        require(scenes, "At least one scene description or prompt is required")

        reference = (request.reference_images or [None])[0]
        outputs: list[str] = []
        for index, scene in enumerate(scenes):
            instruction = story_scene_prompt(
                index, scene, request.aspect_ratio, has_reference=reference is not None
            )
            if reference:
                scene_url = await self.gateway.edit_image(instruction, reference)
            else:
                scene_url = await self.gateway.generate_image(instruction)
            outputs.append(scene_url)
            logger.debug("story_scene_generated", scene_index=index)

        return self.completed(spec, self._prompt(spec, request), tuple(outputs))
