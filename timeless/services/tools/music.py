"""
Music Tools - Audio generation and processing via Fal.ai stable-audio.
"""

from typing import Any

from timeless.models.api import ToolFamily, ToolRequest
from timeless.models.domain import DispatchResult
from timeless.services.tools.catalog import ToolSpec
from timeless.services.tools.dispatcher import Handler, ToolDispatcher, require

AUDIO_ASYNC_MESSAGE = "Audio is being processed. Check Library for results."

# Longest sound effect the model is asked for, in seconds
MAX_SOUND_EFFECT_SECONDS = 30


def tempo_pitch_prompt(tempo: float | None, pitch: float | None) -> str:
    """Describe a tempo ratio and a semitone pitch shift in words."""
    tempo_desc = ""
    if tempo:
        direction = "faster" if tempo > 1 else "slower"
        tempo_desc = f"tempo {direction} by {abs((tempo - 1) * 100):.0f}%"
    pitch_desc = ""
    if pitch:
        direction = "up" if pitch > 0 else "down"
        pitch_desc = f"pitch shifted {direction} by {abs(pitch):g} semitones"
    parts = [desc for desc in (tempo_desc, pitch_desc) if desc]
    if not parts:
        return "Process audio"
    return f"Process audio with {' '.join(parts)}"


class MusicToolDispatcher(ToolDispatcher):
    """Dispatcher for /v1/music-tools. Every tool is a queue job."""

    family = ToolFamily.MUSIC
    async_message = AUDIO_ASYNC_MESSAGE

    def handlers(self) -> dict[str, Handler]:
        return {
            "stems": self._stems,
            "remix": self._remix,
            "vocals": self._vocals,
            "master": self._master,
            "sound-effects": self._sound_effects,
            "audio-enhance": self._audio_enhance,
            "tempo-pitch": self._tempo_pitch,
        }

    async def _submit(
        self,
        spec: ToolSpec,
        request: ToolRequest,
        prompt: str,
        seconds_total: int,
        audio_url: str | None = None,
    ) -> DispatchResult:
        payload: dict[str, Any] = {"prompt": prompt, "seconds_total": seconds_total}
        if audio_url is not None:
            payload = {"audio_url": audio_url, **payload}
        return await self.submit_queue(spec, payload, request.prompt or spec.name)

    async def _stems(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        audio_url = require(request.audio_url, "Audio URL required for stem separation")
        prompt = request.prompt or "Separate into stems: vocals, drums, bass, other"
        return await self._submit(spec, request, prompt, request.duration or 30, audio_url)

    async def _remix(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        audio_url = require(request.audio_url, "Audio URL required for remix")
        prompt = request.prompt or "Create an AI remix variation of this track"
        return await self._submit(spec, request, prompt, request.duration or 30, audio_url)

    async def _vocals(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        prompt = request.prompt or "Generate vocals singing a melody"
        return await self._submit(spec, request, prompt, request.duration or 15)

    async def _master(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        audio_url = require(request.audio_url, "Audio URL required for mastering")
        prompt = (
            "Professional audio mastering with balanced EQ, compression, "
            "and loudness optimization"
        )
        return await self._submit(spec, request, prompt, request.duration or 60, audio_url)

    async def _sound_effects(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        seconds = min(request.duration or 5, MAX_SOUND_EFFECT_SECONDS)
        return await self._submit(spec, request, request.prompt or "Sound effect", seconds)

    async def _audio_enhance(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        audio_url = require(request.audio_url, "Audio URL required for enhancement")
        prompt = request.prompt or "Enhance audio quality, remove noise, improve clarity"
        return await self._submit(spec, request, prompt, request.duration or 30, audio_url)

    async def _tempo_pitch(self, spec: ToolSpec, request: ToolRequest) -> DispatchResult:
        audio_url = require(request.audio_url, "Audio URL required for tempo/pitch adjustment")
        prompt = tempo_pitch_prompt(request.tempo, request.pitch)
        return await self._submit(spec, request, prompt, request.duration or 30, audio_url)
