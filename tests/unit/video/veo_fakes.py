"""Scripted stand-ins for the video operations API used across Veo tests."""

from types import SimpleNamespace
from typing import Any

import httpx
from griptape_nodes_veo_library.credentials.gemini_api import GeminiApiCredential

TEST_API_KEY = "test-key"
OPERATION_NAME = "models/veo-3.1-generate-preview/operations/op123"


def make_operation(
    *,
    done: bool,
    response: dict[str, Any] | None = None,
    error: dict[str, Any] | None = None,
    name: str = OPERATION_NAME,
) -> SimpleNamespace:
    """Stand-in for the SDK's GenerateVideosOperation."""
    return SimpleNamespace(name=name, done=done, response=response, error=error)


def inline_response(video_bytes: str = "AAAA", mime_type: str | None = "video/mp4") -> dict[str, Any]:
    video: dict[str, Any] = {"videoBytes": video_bytes}
    if mime_type is not None:
        video["mimeType"] = mime_type
    return {"generatedVideos": [{"video": video}]}


def uri_response(uri: str, mime_type: str | None = "video/mp4") -> dict[str, Any]:
    video: dict[str, Any] = {"uri": uri}
    if mime_type is not None:
        video["mimeType"] = mime_type
    return {"generatedVideos": [{"video": video}]}


class FakeVideoClient:
    """One scripted operation per submit, then one per poll, in order."""

    def __init__(self, submitted: list[Any], polled: list[Any] | None = None) -> None:
        self._submitted = list(submitted)
        self._polled = list(polled or [])
        self.requests: list[Any] = []
        self.polled_operations: list[Any] = []

    async def generate_videos(self, request: Any) -> Any:
        self.requests.append(request)
        result = self._submitted.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def get_operation(self, operation: Any) -> Any:
        self.polled_operations.append(operation)
        return self._polled.pop(0)


class RecordingSleep:
    """Replacement for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class CredentialProvider:
    """Counts credential lookups and hands back a fixed key."""

    def __init__(self, api_key: str = TEST_API_KEY) -> None:
        self.api_key = api_key
        self.names: list[str] = []

    def __call__(self, name: str) -> GeminiApiCredential:
        self.names.append(name)
        return GeminiApiCredential(api_key=self.api_key)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, content: bytes = b"remote-video", status_code: int = 200) -> None:
        self.requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return httpx.Response(status_code, content=content, headers={"content-type": "video/mp4"})

        super().__init__(handler)
