"""
Shared Module - Common utilities, configuration, schemas, and logging.
======================================================================

This module provides foundational components used across all other modules:

- config: Configuration loading and management
- logging: Structured logging setup
- errors: Exception taxonomy
- schemas: Pydantic data models
- utils: Utility functions (file I/O, catalog loading, sharding)
"""

from coursescout.shared.config import get_settings, Settings
from coursescout.shared.errors import (
    AllShardsFailedError,
    BackendConfigError,
    BackendError,
    CancellationRequested,
    CourseSearchError,
    FatalBackendError,
    MalformedResponseError,
    TransientBackendError,
    UnknownProviderError,
)
from coursescout.shared.logging import configure_from_settings, get_logger, setup_logging
from coursescout.shared.schemas import (
    AttributeCondition,
    AttributeSet,
    CourseAttribute,
    CourseRecord,
    Instructions,
    Necessity,
    PathEntry,
    ScoreRecord,
    SearchMode,
    SearchResult,
    SearchSession,
    SearchStage,
)
from coursescout.shared.utils import (
    chunk_list,
    load_catalog,
    load_json,
    load_timetable_codes,
    save_json,
)

__all__ = [
    # Config
    "get_settings",
    "Settings",
    # Errors
    "AllShardsFailedError",
    "BackendConfigError",
    "BackendError",
    "CancellationRequested",
    "CourseSearchError",
    "FatalBackendError",
    "MalformedResponseError",
    "TransientBackendError",
    "UnknownProviderError",
    # Logging
    "get_logger",
    "configure_from_settings",
    "setup_logging",
    # Schemas
    "AttributeCondition",
    "AttributeSet",
    "CourseAttribute",
    "CourseRecord",
    "Instructions",
    "Necessity",
    "PathEntry",
    "ScoreRecord",
    "SearchMode",
    "SearchResult",
    "SearchSession",
    "SearchStage",
    # Utils
    "chunk_list",
    "load_catalog",
    "load_json",
    "load_timetable_codes",
    "save_json",
]
