"""
Logging Module - Pipeline logging on a Rich console.
====================================================

Every pipeline module logs through ``get_logger(__name__)``. One search can
be followed end to end: stage entries at DEBUG, shard counts and the final
tally at INFO, isolated shard failures and stage fallbacks at WARNING, and
fail-over to keyword search at ERROR.

The first ``get_logger`` call installs INFO defaults; the CLI then applies
the configured level with ``configure_from_settings``.
"""

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from coursescout.shared.config import Settings

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Raised to WARNING whenever handlers are installed
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

_logging_configured = False
_installed_handlers: list[logging.Handler] = []
_console = Console()


def _build_handlers(
    level: int,
    use_rich: bool,
    log_file: Optional[str],
    log_format: str,
) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if use_rich:
        # markup off: course names and oracle text may contain [brackets]
        console_handler: logging.Handler = RichHandler(
            console=_console,
            show_time=True,
            show_path=False,
            rich_tracebacks=True,
            markup=False,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(log_format))
    handlers.append(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(file_handler)

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def setup_logging(
    level: str = "INFO",
    use_rich: bool = True,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    force: bool = False,
) -> None:
    """
    Install the root handlers.

    Args:
        level: Level name; unknown names fall back to INFO
        use_rich: Rich console output instead of a plain stderr stream
        log_file: Also append to this file (parent directories are created)
        log_format: Format for the plain stream and the file handler
        force: Replace handlers installed by an earlier call

    Without ``force`` only the first call has an effect. Handlers added by
    other code (test runners, embedding applications) are left alone.
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root_logger.removeHandler(handler)
        handler.close()
    for handler in _build_handlers(numeric_level, use_rich, log_file, log_format or DEFAULT_FORMAT):
        root_logger.addHandler(handler)
        _installed_handlers.append(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _logging_configured = True
    logging.getLogger(__name__).debug(
        f"Logging configured: level={level}, rich={use_rich}, file={log_file}"
    )


def configure_from_settings(settings: "Settings", verbose: bool = False) -> None:
    """Apply the ``logging`` section of the settings, replacing any defaults."""
    setup_logging(
        level="DEBUG" if verbose else settings.get_effective_log_level(),
        use_rich=settings.logging.rich_console,
        log_file=settings.logging.file or None,
        log_format=settings.logging.format,
        force=True,
    )


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger, installing INFO defaults on first use.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Coarse filter: 30 shards")
    """
    if not _logging_configured:
        setup_logging()

    return logging.getLogger(name)


def get_console() -> Console:
    """The Rich console shared by log output and the CLI's tables."""
    return _console
