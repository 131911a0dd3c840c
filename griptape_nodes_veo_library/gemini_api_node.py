from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import suppress

from griptape_nodes.exe_types.node_types import SuccessFailureNode
from griptape_nodes_veo_library.credentials.gemini_api import (
    GEMINI_API_KEY_NAME,
    GeminiApiCredential,
    MissingCredentialError,
    fetch_credential,
)

logger = logging.getLogger("griptape_nodes")

__all__ = ["GeminiApiNode"]


class GeminiApiNode(SuccessFailureNode, ABC):
    """Base class for nodes that call the Gemini API directly with the user's own key.

    This class provides:
    1. API key validation against the host secrets manager before the node runs
    2. A credential provider that is handed to the generation code explicitly
    3. Uniform success/failure status handling around a single async run

    Subclasses must implement:
    - _run_generation(): Do the work and set output parameters
    - _set_safe_defaults(): Clear output parameters on error
    """

    SERVICE_NAME = "Google"
    API_KEY_NAME = GEMINI_API_KEY_NAME

    @abstractmethod
    async def _run_generation(self) -> str:
        """Run the generation and set output parameters.

        Returns:
            str: Result details shown to the user on success
        """

    @abstractmethod
    def _set_safe_defaults(self) -> None:
        """Reset all output parameters to safe default values when an error occurs."""

    def validate_before_node_run(self) -> list[Exception] | None:
        exceptions = super().validate_before_node_run() or []
        try:
            self._fetch_credential(self.API_KEY_NAME)
        except MissingCredentialError as e:
            exceptions.append(ValueError(f"{self.name}: {e}"))
        return exceptions if exceptions else None

    def _fetch_credential(self, name: str) -> GeminiApiCredential:
        return fetch_credential(name)

    def _log(self, message: str) -> None:
        """Log a message with error suppression."""
        with suppress(Exception):
            logger.info(message)

    def process(self) -> None:
        pass

    async def aprocess(self) -> None:
        """Async processing entry point."""
        await self._process_generation()

    async def _process_generation(self) -> None:
        self._clear_execution_status()

        try:
            result_details = await self._run_generation()
        except Exception as e:
            self._handle_generation_error(e)
            return

        self._set_status_results(was_successful=True, result_details=result_details)

    def _handle_generation_error(self, e: Exception) -> None:
        self._log(f"{self.name} generation failed: {e}")
        self._set_safe_defaults()
        self._set_status_results(was_successful=False, result_details=self._format_error(e))
        self._handle_failure_exception(e)

    def _format_error(self, e: Exception) -> str:
        message = str(e) or type(e).__name__
        if message.startswith(f"{self.name}:"):
            return message
        return f"{self.name}: {message}"
