"""
Annotation Cache Module - Per-course search keyword store.
=========================================================

An append-only map from course id to a search-keyword string. Enrichment
writes it; the search pipeline reads it through ``CourseRecord.annotation``.
Entries are never overwritten, so readers and the single writer never
contend for the same key.
"""

from pathlib import Path
from typing import Iterable, Optional

from coursescout.shared.logging import get_logger
from coursescout.shared.schemas import CourseAnnotation, CourseRecord
from coursescout.shared.utils import load_json, save_json

logger = get_logger(__name__)


class AnnotationCache:
    """
    Append-only annotation cache, optionally persisted as JSON.

    Example:
        >>> cache = AnnotationCache(Path("data/annotations.json"))
        >>> cache.add("1101", "arrays, linked list, recursion")
        True
        >>> cache.save()
    """

    def __init__(self, path: Optional[Path] = None, entries: Optional[dict[str, str]] = None):
        self.path = Path(path) if path else None
        self._entries: dict[str, str] = dict(entries or {})

    @classmethod
    def load(cls, path: Path) -> "AnnotationCache":
        """Load a cache file; a missing file gives an empty cache."""
        path = Path(path)
        if not path.exists():
            return cls(path)

        data = load_json(path)
        if not isinstance(data, dict):
            raise ValueError(f"Annotation cache must be a JSON object: {path}")
        entries = {str(k): str(v) for k, v in data.items() if v}
        logger.info(f"Loaded {len(entries)} annotations from {path}")
        return cls(path, entries)

    def save(self) -> None:
        if self.path is None:
            return
        save_json(self.path, self._entries)

    def __contains__(self, course_id: str) -> bool:
        return course_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, course_id: str) -> Optional[str]:
        return self._entries.get(course_id)

    def add(self, course_id: str, keywords: str) -> bool:
        """
        Store keywords for a course.

        Returns:
            False if the course already had an entry (it is kept as is)
        """
        keywords = keywords.strip()
        if not keywords or course_id in self._entries:
            return False
        self._entries[course_id] = keywords
        return True

    def as_dict(self) -> dict[str, str]:
        return dict(self._entries)

    def missing(self, courses: Iterable[CourseRecord]) -> list[CourseRecord]:
        """Courses with neither a cache entry nor an embedded annotation."""
        return [c for c in courses if c.id not in self._entries and not c.search_keywords]

    def annotate(self, courses: Iterable[CourseRecord]) -> list[CourseRecord]:
        """Copies of courses with cached keywords attached where missing."""
        annotated = []
        for course in courses:
            keywords = self._entries.get(course.id)
            if keywords and not course.search_keywords:
                course = course.model_copy(
                    update={"annotation": CourseAnnotation(search_keywords=keywords)}
                )
            annotated.append(course)
        return annotated
