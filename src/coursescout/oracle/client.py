"""
Client Module - Async text-in/text-out access to the reasoning oracle.
======================================================================

Sends one prompt plus sampling parameters to the configured backend and
returns the raw text. Transient failures (rate limiting, temporary
unavailability, transport errors) are retried with exponential backoff;
anything else surfaces immediately. Parsing the text is the caller's job.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Protocol

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from coursescout.oracle.backends import OracleBackend, create_backend
from coursescout.oracle.backoff import BackoffPolicy
from coursescout.shared.config import Settings, get_settings
from coursescout.shared.errors import FatalBackendError, TransientBackendError
from coursescout.shared.logging import get_logger

logger = get_logger(__name__)

# Rate-limited or temporarily unavailable
TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})

SleepFn = Callable[[float], Awaitable[None]]


class Oracle(Protocol):
    """Anything the pipeline stages can call as an oracle."""

    async def invoke(self, prompt: str, temperature: float, reasoning_budget: int) -> str:
        ...


class OracleClient:
    """
    Oracle client with timeout and retry policy as explicit parameters.

    Example:
        >>> client = OracleClient(create_backend("ollama"))
        >>> text = await client.invoke("List three colours", 0.3, 0)
    """

    def __init__(
        self,
        backend: OracleBackend,
        timeout_seconds: float = 20.0,
        policy: Optional[BackoffPolicy] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[SleepFn] = None,
    ):
        """
        Initialize the client.

        Args:
            backend: Request/response shape of the provider
            timeout_seconds: Per-call timeout
            policy: Backoff policy for transient failures
            transport: Optional httpx transport (tests use httpx.MockTransport)
            sleep: Async sleep used between retries
        """
        self.backend = backend
        self.timeout_seconds = timeout_seconds
        self.policy = policy or BackoffPolicy()
        self._transport = transport
        self._sleep = sleep or asyncio.sleep
        self._http: Optional[httpx.AsyncClient] = None
        self._http_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def provider_name(self) -> str:
        return self.backend.provider_name

    async def invoke(self, prompt: str, temperature: float, reasoning_budget: int = 0) -> str:
        """
        Send a prompt and return the generated text.

        Args:
            prompt: Full prompt text
            temperature: Sampling temperature
            reasoning_budget: Reasoning-effort budget (0 = off, -1 = dynamic)

        Returns:
            Raw generated text, possibly empty

        Raises:
            TransientBackendError: After all retries are exhausted
            FatalBackendError: On a non-retryable response
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.policy.max_attempts),
            wait=self.policy,
            retry=retry_if_exception_type(TransientBackendError),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        return await retrying(self._send, prompt, temperature, reasoning_budget)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Retry {retry_state.attempt_number}/{self.policy.max_retries} "
            f"for {self.provider_name}: {error}"
        )

    async def _send(self, prompt: str, temperature: float, reasoning_budget: int) -> str:
        request = self.backend.build_request(prompt, temperature, reasoning_budget)

        try:
            response = await self._http_client().post(
                request.url, json=request.json, headers=request.headers
            )
        except httpx.UnsupportedProtocol as e:
            raise FatalBackendError(f"Unsupported oracle URL: {e}") from e
        except httpx.TransportError as e:
            raise TransientBackendError(f"Transport failure: {e}") from e
        except (httpx.InvalidURL, httpx.HTTPError) as e:
            raise FatalBackendError(f"Request to {self.provider_name} failed: {e}") from e

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientBackendError(
                f"{self.provider_name} returned {response.status_code}",
                status_code=response.status_code,
            )
        if not response.is_success:
            raise FatalBackendError(
                f"{self.provider_name} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            # Not JSON: hand the body back untouched
            return response.text

        return self.backend.extract_text(data)

    def _http_client(self) -> httpx.AsyncClient:
        # Connections are bound to the loop that opened them
        loop = asyncio.get_running_loop()
        if self._http is None or self._http.is_closed or self._http_loop is not loop:
            self._http = httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)
            self._http_loop = loop
        return self._http

    async def aclose(self) -> None:
        """Close the pooled HTTP client."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            self._http_loop = None


# ─────────────────────────────────────────────────────────────────────────────
# Process-wide Client
# ─────────────────────────────────────────────────────────────────────────────


_client_cache: dict[str, OracleClient] = {}


def get_oracle_client(
    provider_name: Optional[str] = None,
    settings: Optional[Settings] = None,
    use_cache: bool = True,
) -> OracleClient:
    """
    Get the oracle client for the configured provider.

    Args:
        provider_name: Provider override. If None, uses config.
        settings: Settings instance (defaults to the singleton)
        use_cache: Whether to reuse the client across calls

    Returns:
        OracleClient instance

    Raises:
        UnknownProviderError: If the provider does not exist
        BackendConfigError: If the provider lacks a key or URL
    """
    settings = settings or get_settings()
    provider_name = (provider_name or settings.get_effective_provider()).lower().strip()

    if use_cache and provider_name in _client_cache:
        return _client_cache[provider_name]

    client = OracleClient(
        backend=create_backend(provider_name, settings),
        timeout_seconds=settings.oracle.timeout_seconds,
        policy=BackoffPolicy(
            base_delay=settings.oracle.backoff_base_seconds,
            max_retries=settings.oracle.max_retries,
        ),
    )

    if use_cache:
        _client_cache[provider_name] = client

    return client


def clear_client_cache() -> None:
    """Clear the client cache."""
    _client_cache.clear()


async def close_oracle_clients() -> None:
    """Close the HTTP pools of every cached client."""
    for client in _client_cache.values():
        await client.aclose()
