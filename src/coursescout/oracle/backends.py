"""
Backends Module - Wire shapes of the interchangeable oracle providers.
======================================================================

Each backend knows how to build an HTTP request for one prompt and how to
pull the generated text out of the decoded response body. Transport,
timeouts and retries live in the client, so switching providers doesn't
require changes to any pipeline stage.

Supported providers:
- ollama: self-hosted endpoint, no key
- openai: hosted chat-completions API, bearer key
- gemini: hosted generateContent API, header key, thinking budget
- custom: user-declared endpoint speaking a generic role/content chat shape
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from coursescout.shared.config import SUPPORTED_PROVIDERS, Settings, get_settings
from coursescout.shared.errors import BackendConfigError, UnknownProviderError
from coursescout.shared.logging import get_logger

logger = get_logger(__name__)


@dataclass
class BackendRequest:
    """A fully-built HTTP request for one oracle call."""

    url: str
    json: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)


def _dig(data: Any, *path: Any) -> Any:
    """Walk nested dicts/lists, returning None at the first missing step."""
    for key in path:
        try:
            data = data[key]
        except (KeyError, IndexError, TypeError):
            return None
    return data


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else ""


# ─────────────────────────────────────────────────────────────────────────────
# Abstract Base Class
# ─────────────────────────────────────────────────────────────────────────────


class OracleBackend(ABC):
    """
    Abstract base class for oracle backends.

    Implementations must provide:
    - build_request(): Request for a prompt and sampling parameters
    - extract_text(): Generated text from a decoded response body
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name identifier."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Get the model name being used."""
        pass

    @abstractmethod
    def build_request(
        self,
        prompt: str,
        temperature: float,
        reasoning_budget: int,
    ) -> BackendRequest:
        """
        Build the HTTP request for one prompt.

        Args:
            prompt: Full prompt text
            temperature: Sampling temperature
            reasoning_budget: Reasoning-effort budget (0 = off, -1 = dynamic)

        Returns:
            BackendRequest
        """
        pass

    @abstractmethod
    def extract_text(self, data: Any) -> str:
        """
        Extract generated text from a decoded JSON body.

        Missing fields yield an empty string; validation is the caller's job.
        """
        pass

    def get_info(self) -> dict:
        """Get backend information."""
        return {"provider": self.provider_name, "model": self.model_name}


# ─────────────────────────────────────────────────────────────────────────────
# Implementations
# ─────────────────────────────────────────────────────────────────────────────


class OllamaBackend(OracleBackend):
    """Self-hosted Ollama ``/api/generate`` endpoint."""

    def __init__(self, url: str, model: str):
        self.url = url.rstrip("/")
        self._model = model

    @property
    def provider_name(self) -> str:
        return "ollama"

    @property
    def model_name(self) -> str:
        return self._model

    def build_request(self, prompt: str, temperature: float, reasoning_budget: int) -> BackendRequest:
        return BackendRequest(
            url=f"{self.url}/api/generate",
            json={
                "model": self._model,
                "prompt": prompt,
                "stream": False,
                "options": {"temperature": temperature},
            },
        )

    def extract_text(self, data: Any) -> str:
        return _as_text(_dig(data, "response"))


class OpenAIBackend(OracleBackend):
    """OpenAI chat-completions endpoint. The reasoning budget is not forwarded."""

    def __init__(self, api_key: str, base_url: str, model: str):
        if not api_key:
            raise BackendConfigError(
                "OpenAI API key not found. Set OPENAI_API_KEY environment variable."
            )
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._model = model

    @property
    def provider_name(self) -> str:
        return "openai"

    @property
    def model_name(self) -> str:
        return self._model

    def build_request(self, prompt: str, temperature: float, reasoning_budget: int) -> BackendRequest:
        return BackendRequest(
            url=f"{self.base_url}/chat/completions",
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self._model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": temperature,
            },
        )

    def extract_text(self, data: Any) -> str:
        return _as_text(_dig(data, "choices", 0, "message", "content"))


class GeminiBackend(OracleBackend):
    """Google Gemini ``generateContent`` endpoint with a thinking budget."""

    def __init__(self, api_key: str, base_url: str, model: str):
        if not api_key:
            raise BackendConfigError(
                "Gemini API key not found. Set GEMINI_API_KEY environment variable."
            )
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._model = model

    @property
    def provider_name(self) -> str:
        return "gemini"

    @property
    def model_name(self) -> str:
        return self._model

    def build_request(self, prompt: str, temperature: float, reasoning_budget: int) -> BackendRequest:
        return BackendRequest(
            url=f"{self.base_url}/models/{self._model}:generateContent",
            headers={"x-goog-api-key": self.api_key},
            json={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": temperature,
                    "thinkingConfig": {"thinkingBudget": reasoning_budget},
                },
            },
        )

    def extract_text(self, data: Any) -> str:
        parts = _dig(data, "candidates", 0, "content", "parts")
        if not isinstance(parts, list):
            return ""
        return "".join(_as_text(_dig(p, "text")) for p in parts)


class CustomBackend(OracleBackend):
    """User-declared endpoint. Accepts several common response shapes."""

    def __init__(self, url: str, model: str, api_key: str = ""):
        if not url:
            raise BackendConfigError("Custom oracle URL not configured (oracle.custom.url).")
        self.url = url
        self._model = model
        self.api_key = api_key

    @property
    def provider_name(self) -> str:
        return "custom"

    @property
    def model_name(self) -> str:
        return self._model

    def build_request(self, prompt: str, temperature: float, reasoning_budget: int) -> BackendRequest:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return BackendRequest(
            url=self.url,
            headers=headers,
            json={
                "model": self._model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": temperature,
            },
        )

    def extract_text(self, data: Any) -> str:
        for path in (
            ("choices", 0, "message", "content"),
            ("message", "content"),
            ("response",),
            ("text",),
        ):
            value = _dig(data, *path)
            if isinstance(value, str):
                return value
        return ""


# ─────────────────────────────────────────────────────────────────────────────
# Backend Factory
# ─────────────────────────────────────────────────────────────────────────────


def create_backend(
    provider_name: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> OracleBackend:
    """
    Create an oracle backend.

    Args:
        provider_name: "ollama", "openai", "gemini" or "custom". If None, uses config.
        settings: Settings to read endpoints and keys from

    Returns:
        OracleBackend instance

    Raises:
        UnknownProviderError: If provider name is invalid
        BackendConfigError: If a required key or URL is missing
    """
    settings = settings or get_settings()
    if provider_name is None:
        provider_name = settings.get_effective_provider()

    provider_name = provider_name.lower().strip()
    oracle = settings.oracle

    backend: OracleBackend

    if provider_name == "ollama":
        backend = OllamaBackend(oracle.ollama.url, oracle.ollama.model)

    elif provider_name == "openai":
        backend = OpenAIBackend(
            settings.get_api_key("openai"), oracle.openai.base_url, oracle.openai.model
        )

    elif provider_name == "gemini":
        backend = GeminiBackend(
            settings.get_api_key("gemini"), oracle.gemini.base_url, oracle.gemini.model
        )

    elif provider_name == "custom":
        backend = CustomBackend(
            oracle.custom.url, oracle.custom.model, settings.get_api_key("custom")
        )

    else:
        raise UnknownProviderError(provider_name, SUPPORTED_PROVIDERS)

    logger.info(f"Initialized oracle backend: {backend.provider_name} (model={backend.model_name})")
    return backend
