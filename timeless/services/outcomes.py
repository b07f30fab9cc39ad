"""
Job Outcomes - Normalize provider status payloads into JobOutcome values.

NO DICTIONARIES LEAK - Raw provider documents go in, typed outcomes come out.

Providers report results in many shapes. Every lookup here is tolerant:
missing keys, wrong types, and unparseable JSON read as "no signal"
and leave the job pending.
"""

import json
from dataclasses import dataclass
from typing import Any

from timeless.models.api import GenerationType
from timeless.models.domain import Failed, JobOutcome, Pending, Succeeded, Variation

COMPLETED_NO_OUTPUT = "COMPLETED_NO_OUTPUT"
DEFAULT_FAILURE_REASON = "Generation failed"

KIE_SUCCESS_STATUSES = frozenset({"success", "completed", "done"})
KIE_FAILURE_STATUSES = frozenset(
    {"fail", "failed", "failure", "error", "create_task_failed", "generate_failed"}
)
# Partial music results carry a first song URL before the record is done
KIE_IN_PROGRESS_STATUSES = frozenset(
    {"pending", "queuing", "waiting", "generating", "text_success", "first_success"}
)
KIE_SUCCESS_FLAG = 1
KIE_FAILURE_FLAGS = frozenset({2, 3})


@dataclass(frozen=True)
class ResultReady:
    """Fal.ai reports the job complete; the result document must be fetched."""

    provider_status: str = "COMPLETED"


FalStatusOutcome = Pending | Failed | ResultReady


def _dig(data: Any, *path: str | int) -> Any:
    """Follow a key/index path, returning None on any mismatch."""
    current = data
    for step in path:
        if isinstance(step, int):
            if not isinstance(current, list) or len(current) <= step:
                return None
            current = current[step]
        else:
            if not isinstance(current, dict):
                return None
            current = current.get(step)
    return current


def _first_url(data: Any, paths: tuple[tuple[str | int, ...], ...]) -> str | None:
    for path in paths:
        value = _dig(data, *path)
        if isinstance(value, str) and value:
            return value
    return None


# ============================================================================
# Fal.ai
# ============================================================================

FAL_OUTPUT_PATHS: tuple[tuple[str | int, ...], ...] = (
    ("video", "url"),
    ("output", "video", "url"),
    ("result", "video", "url"),
    ("data", "video", "url"),
    ("video_url",),
    ("output_url",),
    ("url",),
    ("video",),
    ("images", 0, "url"),
    ("image", "url"),
    ("audio_file", "url"),
    ("audio", 0, "url"),
    ("audio", "url"),
    ("audio_url",),
)

FAL_THUMBNAIL_PATHS: tuple[tuple[str | int, ...], ...] = (
    ("thumbnail", "url"),
    ("video", "thumbnail_url"),
    ("output", "thumbnail_url"),
)


def extract_fal_output_url(result: Any) -> str | None:
    """Find the primary output URL in a Fal.ai result document."""
    return _first_url(result, FAL_OUTPUT_PATHS)


def interpret_fal_status(status_doc: Any) -> FalStatusOutcome:
    """
    Interpret a Fal.ai queue status document.

    COMPLETED needs a follow-up result fetch; FAILED is terminal; anything
    else (IN_QUEUE, IN_PROGRESS, unknown) is still pending.
    """
    status = _dig(status_doc, "status")
    if status == "COMPLETED":
        return ResultReady()
    if status == "FAILED":
        error = _dig(status_doc, "error")
        return Failed(
            reason=error if isinstance(error, str) and error else DEFAULT_FAILURE_REASON,
            provider_status="FAILED",
        )
    return Pending(provider_status=status if isinstance(status, str) else None)


def interpret_fal_result(result: Any, generation_type: str) -> Succeeded | Pending:
    """
    Interpret a Fal.ai result document.

    A completed job without a recognizable URL stays pending; some models
    report COMPLETED before the output is attached.
    """
    output_url = extract_fal_output_url(result)
    if output_url is None:
        return Pending(provider_status=COMPLETED_NO_OUTPUT)

    thumbnail_url = _first_url(result, FAL_THUMBNAIL_PATHS)
    if thumbnail_url is None and generation_type == GenerationType.IMAGE.value:
        thumbnail_url = output_url
    return Succeeded(output_url=output_url, thumbnail_url=thumbnail_url)


# ============================================================================
# Kie.ai
# ============================================================================

KIE_RESULT_JSON_KEYS = ("resultUrl", "imageUrl", "videoUrl", "audioUrl")

KIE_OUTPUT_PATHS: tuple[tuple[str | int, ...], ...] = (
    ("response", "resultImageUrl"),
    ("response", "resultUrl"),
    ("response", "imageUrl"),
    ("response", "image_url"),
    ("response", "audioUrl"),
    ("response", "audio_url"),
    ("response", "videoUrl"),
    ("response", "video_url"),
    ("response", "resultUrls", 0),
    ("output_url",),
    ("image_url",),
    ("audio_url",),
    ("video_url",),
    ("url",),
    ("resultImageUrl",),
    ("resultUrl",),
    ("resultUrls", 0),
    ("output", 0),
    ("video", "url"),
)


def _parse_result_json(record: Any) -> dict[str, Any] | None:
    raw = _dig(record, "resultJson")
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str):
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _song_url(song: Any) -> str | None:
    return _first_url(song, (("audioUrl",), ("sourceAudioUrl",)))


def extract_kie_output_url(record: Any) -> str | None:
    """Find the primary output URL in a Kie.ai record."""
    parsed = _parse_result_json(record)
    if parsed is not None:
        url = _first_url(parsed, (("resultUrls", 0),) + tuple((k,) for k in KIE_RESULT_JSON_KEYS))
        if url:
            return url

    songs = _dig(record, "response", "sunoData")
    if isinstance(songs, list) and songs:
        url = _song_url(songs[0])
        if url:
            return url

    return _first_url(record, KIE_OUTPUT_PATHS)


def _kie_status_text(record: Any) -> str:
    status = _dig(record, "status")
    if isinstance(status, str):
        return status.strip().lower()
    state = _dig(record, "state")
    return state.strip().lower() if isinstance(state, str) else ""


def _kie_failure(record: Any) -> Failed | None:
    status = _kie_status_text(record)
    error_code = _dig(record, "errorCode")
    error_message = _dig(record, "errorMessage")
    success_flag = _dig(record, "successFlag")

    if (
        error_code
        or error_message
        or status in KIE_FAILURE_STATUSES
        or (isinstance(success_flag, int) and success_flag in KIE_FAILURE_FLAGS)
    ):
        reason = error_message or error_code or DEFAULT_FAILURE_REASON
        return Failed(reason=str(reason), provider_status=status.upper() or "FAILED")
    return None


def _kie_completed(record: Any) -> bool:
    """A success flag, a completion time, a success status, or an attached output URL."""
    status = _kie_status_text(record)
    if (
        _dig(record, "successFlag") == KIE_SUCCESS_FLAG
        or bool(_dig(record, "completeTime"))
        or status in KIE_SUCCESS_STATUSES
    ):
        return True
    return status not in KIE_IN_PROGRESS_STATUSES and extract_kie_output_url(record) is not None


def _music_outcome(record: Any, fallback_title: str | None) -> Succeeded | None:
    """Build a multi-song outcome: the first song completes the row, the rest are variations."""
    songs = _dig(record, "response", "sunoData")
    if not isinstance(songs, list) or len(songs) < 2:
        return None

    first_url = _song_url(songs[0])
    if first_url is None:
        return None

    variations: list[Variation] = []
    for index, song in enumerate(songs[1:], start=1):
        url = _song_url(song)
        if url is None:
            continue
        title = _dig(song, "title")
        variations.append(
            Variation(
                output_url=url,
                title=title
                if isinstance(title, str) and title
                else f"{fallback_title} (Variation {index + 1})",
            )
        )

    first_title = _dig(songs[0], "title")
    return Succeeded(
        output_url=first_url,
        title=first_title if isinstance(first_title, str) and first_title else None,
        variations=tuple(variations),
    )


def interpret_kie_record(
    record: Any,
    generation_type: str,
    fallback_title: str | None = None,
) -> JobOutcome:
    """
    Interpret a Kie.ai record-info document.

    Failure signals win over success signals. Some models never set a
    success flag, so an output URL on its own completes the record. Music
    records with several
    songs produce variations titled after fallback_title when a song has
    no title of its own.
    """
    if not isinstance(record, dict):
        return Pending()

    failure = _kie_failure(record)
    if failure is not None:
        return failure

    if not _kie_completed(record):
        status = _kie_status_text(record)
        return Pending(provider_status=status.upper() if status else "IN_PROGRESS")

    if generation_type == GenerationType.MUSIC.value:
        music = _music_outcome(record, fallback_title)
        if music is not None:
            return music

    output_url = extract_kie_output_url(record)
    if output_url is None:
        return Pending(provider_status=COMPLETED_NO_OUTPUT)

    thumbnail_url = output_url if generation_type == GenerationType.IMAGE.value else None
    return Succeeded(output_url=output_url, thumbnail_url=thumbnail_url)
