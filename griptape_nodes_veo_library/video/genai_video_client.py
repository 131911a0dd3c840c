from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from google import genai
from google.genai import errors, types

logger = logging.getLogger("griptape_nodes")

__all__ = [
    "DEFAULT_MODEL_ID",
    "MODEL_MAPPING",
    "GenAIVideoClient",
    "GenerationRequest",
    "VideoGenerationError",
    "VideoGenerationSettings",
    "VideoOperationsClient",
]

DEFAULT_MODEL_ID = "veo-3.1-generate-preview"

# Model mapping from human-friendly names to API model IDs
MODEL_MAPPING = {
    "Veo 3.1": "veo-3.1-generate-preview",
    "Veo 3.1 Fast": "veo-3.1-fast-generate-preview",
    "Veo 3.0": "veo-3.0-generate-001",
    "Veo 3.0 Fast": "veo-3.0-fast-generate-001",
}


class VideoGenerationError(RuntimeError):
    """Submission, polling or remote operation failure."""


@dataclass(frozen=True)
class VideoGenerationSettings:
    negative_prompt: str | None = None
    aspect_ratio: str | None = None
    resolution: str | None = None
    duration_seconds: int | None = None
    person_generation: str | None = None

    def to_config(self) -> types.GenerateVideosConfig | None:
        """Build the SDK config, leaving out anything unset so the API defaults apply."""
        fields: dict[str, Any] = {}
        if self.negative_prompt:
            fields["negative_prompt"] = self.negative_prompt
        if self.aspect_ratio:
            fields["aspect_ratio"] = self.aspect_ratio
        if self.resolution:
            fields["resolution"] = self.resolution
        if self.duration_seconds:
            fields["duration_seconds"] = int(self.duration_seconds)
        if self.person_generation:
            fields["person_generation"] = self.person_generation
        if not fields:
            return None
        return types.GenerateVideosConfig(**fields)


@dataclass(frozen=True)
class GenerationRequest:
    prompt: str
    model_id: str = DEFAULT_MODEL_ID
    settings: VideoGenerationSettings | None = None


class VideoOperationsClient(Protocol):
    """The two calls the invoker needs from a long-running video API."""

    async def generate_videos(self, request: GenerationRequest) -> Any: ...

    async def get_operation(self, operation: Any) -> Any: ...


class GenAIVideoClient:
    """VideoOperationsClient backed by the google-genai async client.

    The SDK attaches the API key header to submission and polling calls itself.
    """

    def __init__(self, api_key: str, *, client: genai.Client | None = None) -> None:
        self._client = client if client is not None else genai.Client(api_key=api_key)

    async def generate_videos(self, request: GenerationRequest) -> Any:
        config = request.settings.to_config() if request.settings else None
        logger.debug("Submitting video generation: model=%s config=%s", request.model_id, config)
        try:
            return await self._client.aio.models.generate_videos(
                model=request.model_id,
                prompt=request.prompt,
                config=config,
            )
        except errors.APIError as e:
            msg = f"Video generation request failed: {_describe_api_error(e)}"
            raise VideoGenerationError(msg) from e

    async def get_operation(self, operation: Any) -> Any:
        try:
            return await self._client.aio.operations.get(operation)
        except errors.APIError as e:
            name = getattr(operation, "name", None) or "<unnamed>"
            msg = f"Failed to poll operation {name}: {_describe_api_error(e)}"
            raise VideoGenerationError(msg) from e


def _describe_api_error(error: errors.APIError) -> str:
    parts = [str(part) for part in (error.code, error.status, error.message) if part]
    return " ".join(parts) if parts else str(error)
