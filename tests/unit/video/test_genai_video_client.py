"""Tests for the google-genai backed video operations client."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from google.genai import errors, types
from griptape_nodes_veo_library.video.genai_video_client import (
    GenAIVideoClient,
    GenerationRequest,
    VideoGenerationError,
    VideoGenerationSettings,
)
from veo_fakes import make_operation


@pytest.fixture
def sdk_client() -> MagicMock:
    client = MagicMock()
    client.aio.models.generate_videos = AsyncMock()
    client.aio.operations.get = AsyncMock()
    return client


class TestVideoGenerationSettings:
    def test_empty_settings_send_no_config(self) -> None:
        assert VideoGenerationSettings().to_config() is None

    def test_blank_values_are_left_out(self) -> None:
        assert VideoGenerationSettings(negative_prompt="", aspect_ratio=None).to_config() is None

    def test_set_values_reach_config(self) -> None:
        config = VideoGenerationSettings(
            negative_prompt="blurry",
            aspect_ratio="9:16",
            resolution="1080p",
            duration_seconds=8,
            person_generation="allow_all",
        ).to_config()

        assert isinstance(config, types.GenerateVideosConfig)
        assert config.negative_prompt == "blurry"
        assert config.aspect_ratio == "9:16"
        assert config.resolution == "1080p"
        assert config.duration_seconds == 8
        assert config.person_generation == "allow_all"


class TestGenAIVideoClient:
    def test_generate_videos_passes_model_and_prompt(self, sdk_client: MagicMock) -> None:
        operation = make_operation(done=False)
        sdk_client.aio.models.generate_videos.return_value = operation
        client = GenAIVideoClient("test-key", client=sdk_client)

        result = asyncio.run(client.generate_videos(GenerationRequest(prompt="a cat surfing")))

        assert result is operation
        sdk_client.aio.models.generate_videos.assert_awaited_once_with(
            model="veo-3.1-generate-preview",
            prompt="a cat surfing",
            config=None,
        )

    def test_generate_videos_sends_settings(self, sdk_client: MagicMock) -> None:
        client = GenAIVideoClient("test-key", client=sdk_client)
        request = GenerationRequest(
            prompt="a cat surfing",
            model_id="veo-3.0-fast-generate-001",
            settings=VideoGenerationSettings(aspect_ratio="16:9"),
        )

        asyncio.run(client.generate_videos(request))

        kwargs = sdk_client.aio.models.generate_videos.await_args.kwargs
        assert kwargs["model"] == "veo-3.0-fast-generate-001"
        assert kwargs["config"].aspect_ratio == "16:9"

    def test_get_operation_forwards_handle(self, sdk_client: MagicMock) -> None:
        pending = make_operation(done=False)
        finished = make_operation(done=True)
        sdk_client.aio.operations.get.return_value = finished
        client = GenAIVideoClient("test-key", client=sdk_client)

        result = asyncio.run(client.get_operation(pending))

        assert result is finished
        sdk_client.aio.operations.get.assert_awaited_once_with(pending)

    def test_submission_api_error_is_wrapped(self, sdk_client: MagicMock) -> None:
        sdk_client.aio.models.generate_videos.side_effect = errors.ClientError(
            400, {"error": {"code": 400, "message": "API key not valid", "status": "INVALID_ARGUMENT"}}
        )
        client = GenAIVideoClient("bad-key", client=sdk_client)

        with pytest.raises(VideoGenerationError, match="Video generation request failed") as exc_info:
            asyncio.run(client.generate_videos(GenerationRequest(prompt="a cat surfing")))

        assert isinstance(exc_info.value.__cause__, errors.APIError)

    def test_polling_api_error_names_operation(self, sdk_client: MagicMock) -> None:
        sdk_client.aio.operations.get.side_effect = errors.ServerError(
            503, {"error": {"code": 503, "message": "unavailable", "status": "UNAVAILABLE"}}
        )
        client = GenAIVideoClient("test-key", client=sdk_client)

        with pytest.raises(VideoGenerationError, match="operations/op123"):
            asyncio.run(client.get_operation(make_operation(done=False)))
