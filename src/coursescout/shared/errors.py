"""
Errors Module - Exception taxonomy for the search pipeline.
===========================================================

Backend errors are split into transient (retried) and fatal ones. Parsing
errors are isolated per shard. Stage-level failures are turned into a
legacy keyword search by the orchestrator, so none of these reaches the
user as a crash except a misconfigured backend.
"""

from typing import Optional


class CourseSearchError(Exception):
    """Base class for every error raised by the search pipeline."""


# ─────────────────────────────────────────────────────────────────────────────
# Backend Errors
# ─────────────────────────────────────────────────────────────────────────────


class BackendError(CourseSearchError):
    """An oracle backend call did not produce a response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TransientBackendError(BackendError):
    """Rate-limited, temporarily unavailable, or transport failure. Retryable."""


class FatalBackendError(BackendError):
    """Any other non-successful backend response. Never retried."""


class BackendConfigError(CourseSearchError):
    """The oracle backend is misconfigured (missing key or URL). Never retried."""


class UnknownProviderError(BackendConfigError):
    """The configured oracle provider does not exist."""

    def __init__(self, provider: str, valid: tuple[str, ...] = ()):
        options = ", ".join(valid) if valid else "none"
        super().__init__(f"Unknown oracle provider: {provider}. Valid options: {options}")
        self.provider = provider


# ─────────────────────────────────────────────────────────────────────────────
# Pipeline Errors
# ─────────────────────────────────────────────────────────────────────────────


class MalformedResponseError(CourseSearchError):
    """Oracle text yielded nothing parseable."""

    def __init__(self, message: str, response_text: str = ""):
        super().__init__(message)
        self.response_text = response_text


class AllShardsFailedError(CourseSearchError):
    """Every shard of a stage failed or parsed empty."""

    def __init__(self, stage: str, shard_count: int, errors: Optional[list[BaseException]] = None):
        super().__init__(f"All {shard_count} shards failed in stage '{stage}'")
        self.stage = stage
        self.shard_count = shard_count
        self.errors = errors or []


class CancellationRequested(CourseSearchError):
    """The caller asked the search to stop. Not reported as a failure."""
