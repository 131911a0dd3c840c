"""Tests for reading the Gemini API key from the host secrets manager."""

from unittest.mock import MagicMock, patch

import pytest
from griptape_nodes_veo_library.credentials.gemini_api import (
    GeminiApiCredential,
    MissingCredentialError,
    fetch_credential,
)

from griptape_nodes.retained_mode.griptape_nodes import GriptapeNodes


@pytest.fixture
def secrets_manager() -> MagicMock:
    manager = MagicMock()
    with patch.object(GriptapeNodes, "SecretsManager", return_value=manager):
        yield manager


class TestFetchCredential:
    def test_reads_default_secret(self, secrets_manager: MagicMock) -> None:
        secrets_manager.get_secret.return_value = "  abc123  "

        credential = fetch_credential()

        secrets_manager.get_secret.assert_called_once_with("GEMINI_API_KEY")
        assert credential == GeminiApiCredential(api_key="abc123")

    def test_reads_named_secret(self, secrets_manager: MagicMock) -> None:
        secrets_manager.get_secret.return_value = "other"

        fetch_credential("OTHER_GEMINI_KEY")

        secrets_manager.get_secret.assert_called_once_with("OTHER_GEMINI_KEY")

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_missing_secret_raises(self, secrets_manager: MagicMock, value: str | None) -> None:
        secrets_manager.get_secret.return_value = value

        with pytest.raises(MissingCredentialError, match="GEMINI_API_KEY"):
            fetch_credential()


class TestGeminiApiCredential:
    def test_auth_headers(self) -> None:
        assert GeminiApiCredential(api_key="abc123").auth_headers() == {"x-goog-api-key": "abc123"}

    def test_repr_hides_key(self) -> None:
        assert "abc123" not in repr(GeminiApiCredential(api_key="abc123"))
