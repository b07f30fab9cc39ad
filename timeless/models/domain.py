"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from uuid import UUID

from timeless.models.api import GenerationType, ReconcileStatus


@dataclass(frozen=True)
class UserIdentity:
    """Authenticated caller extracted from the bearer token."""

    user_id: UUID
    email: str | None = None
    role: str | None = None


@dataclass(frozen=True)
class ProfileSnapshot:
    """Credit state of a profile at a point in time."""

    user_id: UUID
    credits: int
    subscription_status: str | None

    @property
    def is_subscribed(self) -> bool:
        return self.subscription_status == "active"


@dataclass(frozen=True)
class ProviderJob:
    """An asynchronous job accepted by a provider."""

    task_id: str
    provider_endpoint: str  # "fal:<path>" or "kie:<model>"
    prompt: str
    scene_index: int | None = None


@dataclass(frozen=True)
class DispatchResult:
    """
    Result of running one tool against its provider.

    Exactly one of outputs (sync) or jobs (async) is non-empty.
    """

    tool: str
    model: str
    generation_type: GenerationType
    prompt: str
    unit_cost: int
    outputs: tuple[str, ...] = ()
    jobs: tuple[ProviderJob, ...] = ()
    fan_out: bool = False
    message: str | None = None

    def __post_init__(self) -> None:
        if bool(self.outputs) == bool(self.jobs):
            raise ValueError("DispatchResult needs either outputs or jobs")
        if self.unit_cost < 0:
            raise ValueError(f"Unit cost cannot be negative: {self.unit_cost}")

    @property
    def is_async(self) -> bool:
        return bool(self.jobs)

    @property
    def total_cost(self) -> int:
        return self.unit_cost * max(len(self.outputs), len(self.jobs))


# ============================================================================
# Job Outcomes - provider-agnostic view of a provider status payload
# ============================================================================


@dataclass(frozen=True)
class Variation:
    """An extra output returned alongside the primary one (e.g. a second song)."""

    output_url: str
    title: str | None = None


@dataclass(frozen=True)
class Pending:
    """Provider has not finished the job."""

    provider_status: str | None = None
    detail: str | None = None


@dataclass(frozen=True)
class Succeeded:
    """Provider finished the job and produced an output."""

    output_url: str
    thumbnail_url: str | None = None
    title: str | None = None
    variations: tuple[Variation, ...] = ()


@dataclass(frozen=True)
class Failed:
    """Provider reported a terminal failure."""

    reason: str
    provider_status: str | None = None


JobOutcome = Pending | Succeeded | Failed


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of reconciling a single generation row."""

    generation_id: UUID
    status: ReconcileStatus
    changed: bool
    output_url: str | None = None
    thumbnail_url: str | None = None
    credits_refunded: int | None = None
    provider_status: str | None = None
    error: str | None = None
    is_variation: bool = False
    prompt: str | None = None
    model: str | None = None


@dataclass(frozen=True)
class CreatedGeneration:
    """Identifiers of the rows written for one dispatch."""

    generation_ids: tuple[UUID, ...]
    batch_id: UUID | None = None
    credits_charged: int = 0
