from __future__ import annotations

import logging
import uuid
from copy import deepcopy
from typing import Any

from griptape.artifacts.video_url_artifact import VideoUrlArtifact

from griptape_nodes.exe_types.core_types import Parameter, ParameterGroup, ParameterList, ParameterMode
from griptape_nodes.exe_types.param_types.parameter_bool import ParameterBool
from griptape_nodes.exe_types.param_types.parameter_dict import ParameterDict
from griptape_nodes.exe_types.param_types.parameter_float import ParameterFloat
from griptape_nodes.exe_types.param_types.parameter_int import ParameterInt
from griptape_nodes.exe_types.param_types.parameter_string import ParameterString
from griptape_nodes.exe_types.param_types.parameter_video import ParameterVideo
from griptape_nodes.retained_mode.griptape_nodes import GriptapeNodes
from griptape_nodes.traits.options import Options
from griptape_nodes_veo_library.gemini_api_node import GeminiApiNode
from griptape_nodes_veo_library.video.genai_video_client import (
    DEFAULT_MODEL_ID,
    MODEL_MAPPING,
    VideoGenerationSettings,
)
from griptape_nodes_veo_library.video.veo_generation_invoker import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    OutputRecord,
    PollingConfig,
    VideoGenerationInvoker,
)

logger = logging.getLogger("griptape_nodes")

__all__ = ["VeoVideoGeneration"]

PROMPT_TRUNCATE_LENGTH = 100


class VeoVideoGeneration(GeminiApiNode):
    """Generate videos with Google's Veo models through the Gemini API.

    Inputs:
        - model_id (str): Veo model (default: Veo 3.1, options: Veo 3.1, Veo 3.1 Fast, Veo 3.0, Veo 3.0 Fast)
        - prompt (str): Text prompt for the video
        - batch_prompts (list[str]): Optional prompts to run in order instead of `prompt`
        - negative_prompt (str): Content to avoid
        - aspect_ratio (str): Output aspect ratio (16:9, 9:16)
        - resolution (str): Output resolution (720p, 1080p)
        - duration_seconds (str): Video duration in seconds (4, 6, 8)
        - person_generation (str): Person generation policy
        - poll_interval (float): Seconds between status checks (default: 10)
        - max_poll_attempts (int): Status checks before giving up, 0 for no limit (default: 60)
        - isolate_item_failures (bool): Keep going when one prompt in a batch fails

    Outputs:
        - records (list[dict]): One {json, binary?} record per prompt, in input order
        - provider_response (dict): Response of the first operation, base64 redacted
        - video_url (VideoUrlArtifact): First generated video
        - video_urls (list[VideoUrlArtifact]): All generated videos
        - was_successful (bool): Whether the generation succeeded
        - result_details (str): Details about the generation result or error
    """

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.category = "API Nodes"
        self.description = "Generate videos using Google Veo via the Gemini API"

        # INPUTS / PROPERTIES
        self.add_parameter(
            ParameterString(
                name="model_id",
                default_value="Veo 3.1",
                tooltip="Veo model to generate with",
                allowed_modes={ParameterMode.INPUT, ParameterMode.PROPERTY},
                ui_options={"display_name": "model"},
                traits={Options(choices=list(MODEL_MAPPING))},
            )
        )

        self.add_parameter(
            ParameterString(
                name="prompt",
                tooltip="Describe the video you want to generate",
                multiline=True,
                placeholder_text="A golden retriever playing in autumn leaves, cinematic lighting",
                allow_output=False,
                ui_options={"display_name": "prompt"},
            )
        )

        self.add_parameter(
            ParameterList(
                name="batch_prompts",
                input_types=["str", "list[str]"],
                default_value=[],
                tooltip="Optional list of prompts, generated one after another. Replaces prompt when set.",
                allowed_modes={ParameterMode.INPUT},
                ui_options={"expander": True, "display_name": "batch prompts"},
            )
        )

        with ParameterGroup(name="Generation Settings") as generation_settings_group:
            ParameterString(
                name="negative_prompt",
                default_value="",
                tooltip="Negative prompt to avoid certain content",
                allowed_modes={ParameterMode.INPUT, ParameterMode.PROPERTY},
                multiline=True,
                placeholder_text="Content to avoid...",
                ui_options={"display_name": "negative prompt"},
            )

            ParameterString(
                name="aspect_ratio",
                default_value="16:9",
                tooltip="Output aspect ratio",
                allowed_modes={ParameterMode.INPUT, ParameterMode.PROPERTY},
                traits={Options(choices=["16:9", "9:16"])},
            )

            ParameterString(
                name="resolution",
                default_value="720p",
                tooltip="Output resolution (1080p only supports 8 second duration)",
                allowed_modes={ParameterMode.INPUT, ParameterMode.PROPERTY},
                traits={Options(choices=["720p", "1080p"])},
            )

            ParameterString(
                name="duration_seconds",
                default_value="8",
                tooltip="Video duration in seconds",
                allowed_modes={ParameterMode.INPUT, ParameterMode.PROPERTY},
                traits={Options(choices=["4", "6", "8"])},
            )

            ParameterString(
                name="person_generation",
                default_value="allow_all",
                tooltip="Person generation policy",
                allowed_modes={ParameterMode.INPUT, ParameterMode.PROPERTY},
                traits={Options(choices=["allow_all", "allow_adult", "dont_allow"])},
            )

        self.add_node_element(generation_settings_group)

        with ParameterGroup(name="Polling", collapsed=True) as polling_group:
            ParameterFloat(
                name="poll_interval",
                default_value=DEFAULT_POLL_INTERVAL,
                tooltip="Seconds to wait between operation status checks",
                allowed_modes={ParameterMode.INPUT, ParameterMode.PROPERTY},
                ui_options={"display_name": "poll interval (s)"},
            )

            ParameterInt(
                name="max_poll_attempts",
                default_value=DEFAULT_MAX_ATTEMPTS,
                tooltip="Status checks before giving up (0 = wait until done)",
                allowed_modes={ParameterMode.INPUT, ParameterMode.PROPERTY},
                ui_options={"display_name": "max poll attempts"},
            )

            ParameterBool(
                name="isolate_item_failures",
                default_value=False,
                tooltip="When a batch prompt fails, record the error and continue with the rest",
                allowed_modes={ParameterMode.INPUT, ParameterMode.PROPERTY},
                ui_options={"display_name": "isolate item failures"},
            )

        self.add_node_element(polling_group)

        # OUTPUTS
        self.add_parameter(
            Parameter(
                name="records",
                tooltip="One record per prompt: the operation response and the saved video, if any",
                type="list",
                output_type="list",
                allowed_modes={ParameterMode.OUTPUT},
                hide=True,
            )
        )

        self.add_parameter(
            ParameterDict(
                name="provider_response",
                tooltip="Operation response from the Gemini API (base64 video data redacted)",
                allowed_modes={ParameterMode.OUTPUT},
                hide_property=True,
                hide=True,
            )
        )

        self.add_parameter(
            ParameterVideo(
                name="video_url",
                tooltip="Generated video",
                allowed_modes={ParameterMode.OUTPUT, ParameterMode.PROPERTY},
                settable=False,
                ui_options={"pulse_on_run": True},
            )
        )

        self.add_parameter(
            Parameter(
                name="video_urls",
                output_type="list[VideoUrlArtifact]",
                type="list[VideoUrlArtifact]",
                tooltip="All generated videos, in prompt order",
                allowed_modes={ParameterMode.OUTPUT},
                settable=False,
                hide=True,
            )
        )

        self._create_status_parameters(
            result_details_tooltip="Details about the video generation result or any errors",
            result_details_placeholder="Generation status and details will appear here.",
            parameter_group_initially_collapsed=True,
        )

    def after_value_set(self, parameter: Parameter, value: Any) -> None:
        if parameter.name == "resolution" and value == "1080p":
            current_duration = self.get_parameter_value("duration_seconds")
            if current_duration != "8":
                logger.warning("%s: 1080p resolution only supports 8 second duration", self.name)
        return super().after_value_set(parameter, value)

    def validate_before_node_run(self) -> list[Exception] | None:
        exceptions = super().validate_before_node_run() or []

        if not self._get_prompts():
            exceptions.append(ValueError(f"{self.name}: Prompt is required for video generation."))

        poll_interval = self.get_parameter_value("poll_interval")
        if poll_interval is not None and float(poll_interval) < 0:
            exceptions.append(ValueError(f"{self.name}: poll interval must not be negative."))

        max_poll_attempts = self.get_parameter_value("max_poll_attempts")
        if max_poll_attempts is not None and int(max_poll_attempts) < 0:
            exceptions.append(ValueError(f"{self.name}: max poll attempts must not be negative."))

        return exceptions if exceptions else None

    def _get_prompts(self) -> list[str]:
        """Batch prompts when any are set, otherwise the single prompt."""
        batch_prompts = self.get_parameter_value("batch_prompts") or []
        if isinstance(batch_prompts, str):
            batch_prompts = [batch_prompts]
        prompts = [str(p) for p in batch_prompts if p is not None and str(p).strip()]
        if prompts:
            return prompts

        prompt = (self.get_parameter_value("prompt") or "").strip()
        return [prompt] if prompt else []

    def _get_api_model_id(self) -> str:
        model_id = self.get_parameter_value("model_id") or "Veo 3.1"
        return MODEL_MAPPING.get(model_id, model_id) or DEFAULT_MODEL_ID

    def _get_settings(self) -> VideoGenerationSettings:
        duration = self.get_parameter_value("duration_seconds")
        return VideoGenerationSettings(
            negative_prompt=self.get_parameter_value("negative_prompt") or None,
            aspect_ratio=self.get_parameter_value("aspect_ratio") or None,
            resolution=self.get_parameter_value("resolution") or None,
            duration_seconds=int(duration) if duration else None,
            person_generation=self.get_parameter_value("person_generation") or None,
        )

    def _get_polling_config(self) -> PollingConfig:
        poll_interval = self.get_parameter_value("poll_interval")
        if poll_interval is None:
            poll_interval = DEFAULT_POLL_INTERVAL

        max_attempts = self.get_parameter_value("max_poll_attempts")
        if max_attempts is None:
            max_attempts = DEFAULT_MAX_ATTEMPTS

        return PollingConfig(interval=float(poll_interval), max_attempts=int(max_attempts) or None)

    def _build_invoker(self) -> VideoGenerationInvoker:
        return VideoGenerationInvoker(
            self._fetch_credential,
            credential_name=self.API_KEY_NAME,
            model_id=self._get_api_model_id(),
            settings=self._get_settings(),
            polling=self._get_polling_config(),
            is_cancelled=lambda: bool(self.is_cancellation_requested),
            name=self.name,
        )

    async def _run_generation(self) -> str:
        prompts = self._get_prompts()
        if not prompts:
            msg = f"{self.name}: Prompt is required for video generation."
            raise ValueError(msg)

        self._log_prompts(prompts)
        invoker = self._build_invoker()
        records = await invoker.invoke_batch(
            prompts, isolate_failures=bool(self.get_parameter_value("isolate_item_failures"))
        )

        output_records, video_artifacts = self._save_records(records)
        self.parameter_output_values["records"] = output_records
        self.parameter_output_values["provider_response"] = self._sanitize_result_json(records[0].json)
        self.parameter_output_values["video_url"] = video_artifacts[0] if video_artifacts else None
        self.parameter_output_values["video_urls"] = video_artifacts

        return self._summarize(records, video_artifacts)

    def _save_records(self, records: list[OutputRecord]) -> tuple[list[dict[str, Any]], list[VideoUrlArtifact]]:
        """Store each record's video as a static file and build the record dicts for output."""
        output_records: list[dict[str, Any]] = []
        video_artifacts: list[VideoUrlArtifact] = []
        static_files_manager = GriptapeNodes.StaticFilesManager()

        for idx, record in enumerate(records, start=1):
            record_dict = record.to_dict()
            record_dict["json"] = self._sanitize_result_json(record_dict["json"])
            attachment = record.video
            if attachment is not None:
                filename = f"veo_video_{self._operation_id(record)}_{idx}.{attachment.file_extension or 'mp4'}"
                saved_url = static_files_manager.save_static_file(attachment.data, filename)
                logger.info("%s: Saved video %s as %s (%s bytes)", self.name, idx, filename, attachment.file_size)
                video_artifacts.append(VideoUrlArtifact(value=saved_url, name=filename))
                record_dict["binary"]["video"]["url"] = saved_url
            output_records.append(record_dict)

        return output_records, video_artifacts

    @staticmethod
    def _operation_id(record: OutputRecord) -> str:
        if record.operation_name:
            return record.operation_name.rstrip("/").rsplit("/", 1)[-1]
        return uuid.uuid4().hex[:12]

    def _summarize(self, records: list[OutputRecord], video_artifacts: list[VideoUrlArtifact]) -> str:
        failed = sum(1 for record in records if record.error)
        video_count = len(video_artifacts)
        prompt_count = len(records)
        details = (
            f"Generated {video_count} video{'s' if video_count != 1 else ''} "
            f"from {prompt_count} prompt{'s' if prompt_count != 1 else ''}"
        )
        if failed:
            details += f" ({failed} failed)"
        if video_count == 0:
            details += ". The operation completed without returning a video."
        return details

    def _log_prompts(self, prompts: list[str]) -> None:
        for idx, prompt in enumerate(prompts, start=1):
            shown = prompt if len(prompt) <= PROMPT_TRUNCATE_LENGTH else prompt[:PROMPT_TRUNCATE_LENGTH] + "..."
            self._log(f"{self.name}: Prompt {idx}/{len(prompts)} with {self._get_api_model_id()}: {shown}")

    def _sanitize_result_json(self, result_json: dict[str, Any]) -> dict[str, Any]:
        """Sanitize result JSON by redacting base64-encoded video data."""
        try:
            sanitized = deepcopy(result_json)
            videos = sanitized.get("generatedVideos", [])
            if isinstance(videos, list):
                for entry in videos:
                    video = entry.get("video") if isinstance(entry, dict) else None
                    if isinstance(video, dict) and video.get("videoBytes"):
                        b64_data = video["videoBytes"]
                        video["videoBytes"] = f"<redacted base64 length={len(b64_data)}>"
        except Exception:
            return result_json
        else:
            return sanitized

    def _set_safe_defaults(self) -> None:
        self.parameter_output_values["records"] = []
        self.parameter_output_values["provider_response"] = None
        self.parameter_output_values["video_url"] = None
        self.parameter_output_values["video_urls"] = []
