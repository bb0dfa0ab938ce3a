"""
Utilities Module - Common helper functions.
==========================================

Provides utility functions for:
- File I/O (JSON)
- Directory management
- Catalog and personal-timetable loading
- Sharding helpers
"""

import json
import math
from pathlib import Path
from typing import Any, Optional, Sequence, TypeVar

from coursescout.shared.logging import get_logger
from coursescout.shared.schemas import CourseAnnotation, CourseRecord

logger = get_logger(__name__)

T = TypeVar("T")


# ─────────────────────────────────────────────────────────────────────────────
# Directory Management
# ─────────────────────────────────────────────────────────────────────────────


def ensure_parent_directory(file_path: Path) -> Path:
    """
    Ensure the parent directory of a file exists.

    Args:
        file_path: File path

    Returns:
        The file path (for chaining)
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    return file_path


# ─────────────────────────────────────────────────────────────────────────────
# JSON File I/O
# ─────────────────────────────────────────────────────────────────────────────


def load_json(file_path: Path) -> Any:
    """
    Load data from a JSON file.

    Args:
        file_path: Path to JSON file

    Returns:
        Parsed JSON data

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file is not valid JSON
    """
    file_path = Path(file_path)

    with open(file_path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_json(file_path: Path, data: Any, indent: int = 2) -> None:
    """
    Save data to a JSON file.

    Args:
        file_path: Path to JSON file
        data: Data to save (must be JSON serializable)
        indent: Indentation level (default: 2)
    """
    file_path = Path(file_path)
    ensure_parent_directory(file_path)

    with open(file_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=indent, ensure_ascii=False, default=str)

    logger.debug(f"Saved JSON to {file_path}")


# ─────────────────────────────────────────────────────────────────────────────
# Catalog & Timetable
# ─────────────────────────────────────────────────────────────────────────────


def _unwrap_records(data: Any, key: str) -> list:
    """Accept either a bare list or an object wrapping one under ``key``."""
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of records, got {type(data).__name__}")
    return data


def parse_catalog(
    data: Any,
    annotations: Optional[dict[str, str]] = None,
) -> list[CourseRecord]:
    """
    Validate raw catalog data into course records.

    Invalid records are skipped with a warning so one bad row does not
    make the whole catalog unusable.

    Args:
        data: List of course dicts (or ``{"courses": [...]}``)
        annotations: Optional id -> search keywords map merged into records

    Returns:
        List of CourseRecord in catalog order
    """
    annotations = annotations or {}
    courses: list[CourseRecord] = []

    for i, item in enumerate(_unwrap_records(data, "courses")):
        try:
            course = CourseRecord.model_validate(item)
        except ValueError as e:
            logger.warning(f"Skipping invalid catalog record #{i}: {e}")
            continue

        keywords = annotations.get(course.id)
        if keywords and not course.search_keywords:
            course = course.model_copy(
                update={"annotation": CourseAnnotation(search_keywords=keywords)}
            )
        courses.append(course)

    return courses


def load_catalog(
    file_path: Path,
    annotations: Optional[dict[str, str]] = None,
) -> list[CourseRecord]:
    """
    Load the course catalog from a JSON file.

    Args:
        file_path: Path to catalog JSON
        annotations: Optional id -> search keywords map

    Returns:
        List of CourseRecord
    """
    courses = parse_catalog(load_json(file_path), annotations)
    logger.info(f"Loaded {len(courses)} courses from {file_path}")
    return courses


def load_timetable_codes(file_path: Optional[Path]) -> list[str]:
    """
    Load the time codes of the user's personal timetable.

    The file may hold plain time-code strings or course objects with a
    ``time`` field. A missing file means an empty timetable.

    Args:
        file_path: Path to timetable JSON, or None

    Returns:
        List of time-code strings
    """
    if file_path is None or not Path(file_path).exists():
        return []

    codes = []
    for entry in _unwrap_records(load_json(file_path), "courses"):
        if isinstance(entry, str):
            codes.append(entry)
        elif isinstance(entry, dict) and entry.get("time"):
            codes.append(str(entry["time"]))
    return codes


# ─────────────────────────────────────────────────────────────────────────────
# Sharding Helpers
# ─────────────────────────────────────────────────────────────────────────────


def chunk_list(items: Sequence[T], size: int) -> list[list[T]]:
    """
    Split a sequence into contiguous chunks of at most ``size`` items.

    Example:
        >>> chunk_list([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def ceil_div(n: int, k: int) -> int:
    """Integer ceiling of n / k."""
    return math.ceil(n / k) if n else 0
