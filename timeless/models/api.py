"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
Client-facing tool payloads use camelCase field names.
"""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class GenerationStatus(str, Enum):
    """Lifecycle state of a generation row."""

    PENDING = "pending"  # legacy rows, treated as processing
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationType(str, Enum):
    """Media type of a generation."""

    IMAGE = "image"
    VIDEO = "video"
    MUSIC = "music"


class BatchStatus(str, Enum):
    """Aggregate status of a fan-out batch."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class CreditTransactionKind(str, Enum):
    """Credit ledger entry kind."""

    CHARGE = "charge"
    REFUND = "refund"


class ToolFamily(str, Enum):
    """Tool endpoint families."""

    IMAGE = "image"
    VIDEO = "video"
    CINEMA = "cinema"
    MUSIC = "music"


class ReconcileStatus(str, Enum):
    """Per-row outcome reported by the reconciliation endpoint."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CHECK_FAILED = "check_failed"
    UNSUPPORTED_PROVIDER = "unsupported_provider"
    ERROR = "error"


# ============================================================================
# Tool Dispatch Models
# ============================================================================


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ToolRequest(_CamelModel):
    """POST /v1/{family}-tools request body."""

    tool: str | None = None

    # Media inputs
    image_url: str | None = None
    image_urls: list[str] | None = None
    video_url: str | None = None
    audio_url: str | None = None
    mask_url: str | None = None
    reference_images: list[str] | None = None

    # Prompting
    prompt: str | None = None
    scene_prompts: list[str] | None = None
    style: str | None = None
    aspect_ratio: str | None = None

    # Numeric knobs
    duration: int | None = Field(None, ge=1, le=600)
    intensity: int | None = Field(None, ge=0, le=100)
    scale: int | None = Field(None, ge=1, le=8)
    upscale_factor: int | None = Field(None, ge=1, le=8)
    target_fps: int | None = Field(None, ge=1, le=240)
    tempo: float | None = Field(None, gt=0, le=4)
    pitch: float | None = Field(None, ge=-24, le=24)

    # Presets
    resolution: str | None = None
    movements: list[str] | None = None
    lens_type: str | None = None
    color_preset: str | None = None
    stabilization_mode: str | None = None
    output_format: str | None = None


class AnimatedVideo(_CamelModel):
    """One submitted scene of a fan-out request."""

    task_id: str
    scene_index: int
    generation_id: UUID


class ToolResponse(_CamelModel):
    """
    Tool dispatch response.

    Sync tools return output_url; async tools return task_id and
    generation_id; fan-out tools return batch_id and animated_videos;
    multi-output sync tools return scenes.
    """

    success: bool = True
    status: GenerationStatus | None = None
    output_url: str | None = None
    scenes: list[str] | None = None
    task_id: str | None = None
    generation_id: UUID | None = None
    batch_id: UUID | None = None
    animated_videos: list[AnimatedVideo] | None = None
    credits_used: int
    message: str | None = None


# ============================================================================
# Reconciliation Models
# ============================================================================


class CheckGenerationRequest(_CamelModel):
    """POST /v1/check-generation request body."""

    generation_id: UUID | None = None


class CheckResult(BaseModel):
    """Outcome of reconciling one generation row."""

    id: UUID
    status: ReconcileStatus
    changed: bool
    output_url: str | None = None
    thumbnail_url: str | None = None
    credits_refunded: int | None = None
    provider_status: str | None = None
    error: str | None = None
    is_variation: bool | None = None
    prompt: str | None = None
    model: str | None = None


class CheckGenerationResponse(BaseModel):
    """POST /v1/check-generation response."""

    results: list[CheckResult]
    pending_count: int


class ErrorResponse(BaseModel):
    """Error body shared by all endpoints."""

    error: str
