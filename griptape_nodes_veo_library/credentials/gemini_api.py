from __future__ import annotations

from dataclasses import dataclass

from griptape_nodes.retained_mode.griptape_nodes import GriptapeNodes

__all__ = [
    "GEMINI_API_KEY_HEADER",
    "GEMINI_API_KEY_NAME",
    "GeminiApiCredential",
    "MissingCredentialError",
    "fetch_credential",
]

GEMINI_API_KEY_NAME = "GEMINI_API_KEY"
GEMINI_API_KEY_HEADER = "x-goog-api-key"
GEMINI_API_KEY_URL = "https://aistudio.google.com/apikey"


class MissingCredentialError(ValueError):
    """Raised when the host has no value stored for a credential."""


@dataclass(frozen=True)
class GeminiApiCredential:
    api_key: str

    def auth_headers(self) -> dict[str, str]:
        """Headers for requests this library issues directly (not through the SDK)."""
        return {GEMINI_API_KEY_HEADER: self.api_key}

    def __repr__(self) -> str:
        return "GeminiApiCredential(api_key='***')"


def fetch_credential(name: str = GEMINI_API_KEY_NAME) -> GeminiApiCredential:
    """Read a Gemini API key from the host secrets manager.

    Raises:
        MissingCredentialError: If the secret is unset or blank.
    """
    api_key = GriptapeNodes.SecretsManager().get_secret(name)
    if not api_key or not api_key.strip():
        msg = f"Missing {name}. Get a key at {GEMINI_API_KEY_URL} and set it in the environment/config."
        raise MissingCredentialError(msg)
    return GeminiApiCredential(api_key=api_key.strip())
