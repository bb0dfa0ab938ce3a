"""
Oracle Module - Access to the external text-generation backend.
===============================================================

This module handles:
- backoff: Exponential retry delay policy
- backends: Request/response shapes of each provider
- client: Async client with timeout and retry
- batching: Concurrent, optionally rate-limited fan-out
"""

from coursescout.oracle.backends import (
    CustomBackend,
    GeminiBackend,
    OllamaBackend,
    OpenAIBackend,
    OracleBackend,
    create_backend,
)
from coursescout.oracle.backoff import BackoffPolicy
from coursescout.oracle.batching import ShardRunner
from coursescout.oracle.client import (
    Oracle,
    OracleClient,
    clear_client_cache,
    get_oracle_client,
)

__all__ = [
    # Backends
    "OracleBackend",
    "OllamaBackend",
    "OpenAIBackend",
    "GeminiBackend",
    "CustomBackend",
    "create_backend",
    # Backoff
    "BackoffPolicy",
    # Batching
    "ShardRunner",
    # Client
    "Oracle",
    "OracleClient",
    "get_oracle_client",
    "clear_client_cache",
]
