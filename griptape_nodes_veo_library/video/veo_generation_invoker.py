from __future__ import annotations

import asyncio
import base64
import binascii
import logging
from collections.abc import Awaitable, Callable, Sequence
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any

import httpx

from griptape_nodes_veo_library.credentials.gemini_api import GEMINI_API_KEY_NAME, GeminiApiCredential
from griptape_nodes_veo_library.video.genai_video_client import (
    DEFAULT_MODEL_ID,
    GenAIVideoClient,
    GenerationRequest,
    VideoGenerationError,
    VideoGenerationSettings,
    VideoOperationsClient,
)

logger = logging.getLogger("griptape_nodes")

__all__ = [
    "BinaryAttachment",
    "GenerationCancelledError",
    "GenerationTimeoutError",
    "InlineVideoPayload",
    "OutputRecord",
    "PollingConfig",
    "RemoteVideoPayload",
    "VideoFetchError",
    "VideoGenerationInvoker",
    "VideoPayloadError",
    "classify_video_payload",
    "response_to_json",
]

DEFAULT_MIME_TYPE = "video/mp4"
VIDEO_FILE_NAME = "video.mp4"
VIDEO_BINARY_KEY = "video"

DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_MAX_ATTEMPTS = 60  # 10 minutes with 10s intervals
DEFAULT_FETCH_TIMEOUT = 300.0

_URLSAFE_TO_STANDARD = str.maketrans("-_", "+/")


class VideoPayloadError(ValueError):
    """The operation response carries a video descriptor that cannot be decoded."""


class VideoFetchError(RuntimeError):
    """Downloading a video from its remote URI failed."""


class GenerationTimeoutError(TimeoutError):
    """The operation did not complete within the configured number of polls."""


class GenerationCancelledError(RuntimeError):
    """Polling was stopped by a cancellation request."""


@dataclass(frozen=True)
class PollingConfig:
    interval: float = DEFAULT_POLL_INTERVAL
    # None polls until the operation is done.
    max_attempts: int | None = DEFAULT_MAX_ATTEMPTS

    def __post_init__(self) -> None:
        if self.interval < 0:
            msg = f"Poll interval must be non-negative, got {self.interval}"
            raise ValueError(msg)
        if self.max_attempts is not None and self.max_attempts < 1:
            msg = f"Max poll attempts must be at least 1, got {self.max_attempts}"
            raise ValueError(msg)


@dataclass(frozen=True)
class InlineVideoPayload:
    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE


@dataclass(frozen=True)
class RemoteVideoPayload:
    uri: str
    mime_type: str = DEFAULT_MIME_TYPE


VideoPayload = InlineVideoPayload | RemoteVideoPayload


@dataclass(frozen=True)
class BinaryAttachment:
    data: bytes = field(repr=False)
    mime_type: str = DEFAULT_MIME_TYPE
    file_name: str = VIDEO_FILE_NAME

    @property
    def file_extension(self) -> str:
        if "." in self.file_name:
            return self.file_name.rsplit(".", 1)[1]
        if "/" in self.mime_type:
            return self.mime_type.split("/")[1]
        return ""

    @property
    def file_size(self) -> int:
        return len(self.data)

    def describe(self) -> dict[str, Any]:
        """Attachment metadata without the payload bytes."""
        return {
            "fileName": self.file_name,
            "mimeType": self.mime_type,
            "fileExtension": self.file_extension,
            "fileSize": self.file_size,
        }


@dataclass(frozen=True)
class OutputRecord:
    """One output item: the operation's response JSON plus an optional video."""

    json: dict[str, Any]
    binary: dict[str, BinaryAttachment] | None = None
    prompt: str = ""
    operation_name: str | None = None
    error: str | None = None

    @property
    def video(self) -> BinaryAttachment | None:
        if not self.binary:
            return None
        return self.binary.get(VIDEO_BINARY_KEY)

    def to_dict(self) -> dict[str, Any]:
        record: dict[str, Any] = {"json": deepcopy(self.json)}
        if self.binary:
            record["binary"] = {key: attachment.describe() for key, attachment in self.binary.items()}
        return record


def response_to_json(response: Any) -> dict[str, Any]:
    """Convert an operation response into plain JSON with camelCase keys.

    SDK models serialize bytes as base64, so inline videos come back as the
    same base64 text the API sent.
    """
    if response is None:
        return {}
    if isinstance(response, dict):
        return deepcopy(response)
    if hasattr(response, "model_dump"):
        return response.model_dump(mode="json", by_alias=True, exclude_none=True)
    msg = f"Unsupported operation response type: {type(response).__name__}"
    raise VideoPayloadError(msg)


def classify_video_payload(response_json: dict[str, Any]) -> VideoPayload | None:  # noqa: C901
    """Decide which shape the first generated video takes.

    Missing fields mean "no video". Fields that are present with the wrong type,
    or inline bytes that are not valid base64, raise VideoPayloadError.
    """
    generated_videos = response_json.get("generatedVideos")
    if generated_videos is None:
        return None
    if not isinstance(generated_videos, list):
        msg = f"Expected 'generatedVideos' to be a list, got {type(generated_videos).__name__}"
        raise VideoPayloadError(msg)
    if not generated_videos:
        return None

    first = generated_videos[0]
    if first is None:
        return None
    if not isinstance(first, dict):
        msg = f"Expected generated video entry to be an object, got {type(first).__name__}"
        raise VideoPayloadError(msg)

    video = first.get("video")
    if video is None:
        return None
    if not isinstance(video, dict):
        msg = f"Expected 'video' to be an object, got {type(video).__name__}"
        raise VideoPayloadError(msg)

    mime_type = video.get("mimeType") or DEFAULT_MIME_TYPE

    video_bytes = video.get("videoBytes")
    if video_bytes:
        if not isinstance(video_bytes, str):
            msg = f"Expected 'videoBytes' to be base64 text, got {type(video_bytes).__name__}"
            raise VideoPayloadError(msg)
        try:
            # Accept the URL-safe alphabet as well as the standard one.
            data = base64.b64decode(video_bytes.translate(_URLSAFE_TO_STANDARD), validate=True)
        except (binascii.Error, ValueError) as e:
            msg = f"Failed to decode inline video bytes: {e}"
            raise VideoPayloadError(msg) from e
        return InlineVideoPayload(data=data, mime_type=mime_type)

    uri = video.get("uri")
    if uri:
        if not isinstance(uri, str):
            msg = f"Expected 'uri' to be a string, got {type(uri).__name__}"
            raise VideoPayloadError(msg)
        return RemoteVideoPayload(uri=uri, mime_type=mime_type)

    return None


def _extract_operation_error(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message") or error.get("details") or error
        code = error.get("code")
        return f"{code}: {message}" if code else str(message)
    return str(error)


class VideoGenerationInvoker:
    """Runs prompts through a long-running video generation API, one at a time.

    For each prompt the invoker submits a request, polls the returned operation
    until it is done, then turns the response into an OutputRecord. Videos
    delivered inline are decoded; videos delivered by URI are downloaded with
    the API key attached.
    """

    def __init__(  # noqa: PLR0913
        self,
        credential_provider: Callable[[str], GeminiApiCredential],
        *,
        credential_name: str = GEMINI_API_KEY_NAME,
        client_factory: Callable[[str], VideoOperationsClient] = GenAIVideoClient,
        model_id: str = DEFAULT_MODEL_ID,
        settings: VideoGenerationSettings | None = None,
        polling: PollingConfig | None = None,
        is_cancelled: Callable[[], bool] | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        transport: httpx.AsyncBaseTransport | None = None,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        name: str = "VideoGenerationInvoker",
    ) -> None:
        self._credential_provider = credential_provider
        self._credential_name = credential_name
        self._client_factory = client_factory
        self._model_id = model_id
        self._settings = settings
        self._polling = polling or PollingConfig()
        self._is_cancelled = is_cancelled
        self._sleep = sleep
        self._transport = transport
        self._fetch_timeout = fetch_timeout
        self.name = name

    async def invoke(self, prompt: str) -> OutputRecord:
        records = await self.invoke_batch([prompt])
        return records[0]

    async def invoke_batch(self, prompts: Sequence[str], *, isolate_failures: bool = False) -> list[OutputRecord]:
        """Process prompts sequentially, returning one record per prompt in input order.

        With isolate_failures, a failing prompt yields a record holding only the
        error message and the remaining prompts still run. Otherwise the first
        failure propagates.
        """
        if not prompts:
            return []

        credential = self._credential_provider(self._credential_name)
        client = self._client_factory(credential.api_key)

        records: list[OutputRecord] = []
        for index, prompt in enumerate(prompts):
            try:
                record = await self._invoke_item(client, credential, prompt)
            except GenerationCancelledError:
                raise
            except Exception as e:
                if not isolate_failures:
                    raise
                logger.error("%s: Item %s failed: %s", self.name, index, e)
                record = OutputRecord(json={"error": str(e)}, prompt=prompt or "", error=str(e))
            records.append(record)
        return records

    async def _invoke_item(
        self, client: VideoOperationsClient, credential: GeminiApiCredential, prompt: str
    ) -> OutputRecord:
        if not isinstance(prompt, str) or not prompt.strip():
            msg = f"{self.name}: Prompt is required for video generation."
            raise ValueError(msg)

        request = GenerationRequest(prompt=prompt, model_id=self._model_id, settings=self._settings)
        operation = await client.generate_videos(request)
        operation = await self._wait_for_completion(client, operation)

        error = getattr(operation, "error", None)
        if error:
            msg = f"{self.name}: Video generation failed: {_extract_operation_error(error)}"
            raise VideoGenerationError(msg)

        response_json = response_to_json(getattr(operation, "response", None))
        operation_name = getattr(operation, "name", None)

        rai_filtered_count = response_json.get("raiMediaFilteredCount") or 0
        if rai_filtered_count > 0:
            logger.warning("%s: %s video(s) filtered by RAI", self.name, rai_filtered_count)

        attachment = await self._materialize(classify_video_payload(response_json), credential)
        if attachment is None:
            logger.warning("%s: Operation %s completed without a video", self.name, operation_name)
            return OutputRecord(json=response_json, prompt=prompt, operation_name=operation_name)

        logger.info("%s: Received %s (%s bytes)", self.name, attachment.file_name, attachment.file_size)
        return OutputRecord(
            json=response_json,
            binary={VIDEO_BINARY_KEY: attachment},
            prompt=prompt,
            operation_name=operation_name,
        )

    async def _wait_for_completion(self, client: VideoOperationsClient, operation: Any) -> Any:
        max_attempts = self._polling.max_attempts
        attempt = 0
        while not getattr(operation, "done", False):
            if max_attempts is not None and attempt >= max_attempts:
                waited = max_attempts * self._polling.interval
                msg = f"{self.name}: Generation timed out after {waited:g} seconds waiting for result."
                raise GenerationTimeoutError(msg)

            self._check_cancelled()
            await self._sleep(self._polling.interval)
            self._check_cancelled()

            attempt += 1
            logger.info(
                "%s: Polling attempt #%s for operation %s", self.name, attempt, getattr(operation, "name", None)
            )
            operation = await client.get_operation(operation)
        return operation

    def _check_cancelled(self) -> None:
        if self._is_cancelled is not None and self._is_cancelled():
            msg = f"{self.name}: Video generation cancelled while waiting for the operation to finish."
            raise GenerationCancelledError(msg)

    async def _materialize(
        self, payload: VideoPayload | None, credential: GeminiApiCredential
    ) -> BinaryAttachment | None:
        if isinstance(payload, InlineVideoPayload):
            return BinaryAttachment(data=payload.data, mime_type=payload.mime_type)
        if isinstance(payload, RemoteVideoPayload):
            data = await self._fetch_video(payload.uri, credential)
            return BinaryAttachment(data=data, mime_type=payload.mime_type)
        return None

    async def _fetch_video(self, uri: str, credential: GeminiApiCredential) -> bytes:
        logger.info("%s: Downloading video from %s", self.name, uri)
        try:
            async with httpx.AsyncClient(
                transport=self._transport, timeout=self._fetch_timeout, follow_redirects=True
            ) as client:
                response = await client.get(uri, headers=credential.auth_headers())
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            msg = f"{self.name}: Failed to download video: HTTP {e.response.status_code}"
            raise VideoFetchError(msg) from e
        except httpx.HTTPError as e:
            msg = f"{self.name}: Failed to download video: {e}"
            raise VideoFetchError(msg) from e
        return response.content
