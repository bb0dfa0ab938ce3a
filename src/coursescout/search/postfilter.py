"""
Post-Filter Module - Deterministic filters derived from directives.
===================================================================

Applied after scoring, in this order:
1. free-time slots: keep courses meeting in at least one free slot
2. exclusions: drop courses whose name, teacher, department or type
   contains an excluded keyword
3. time of day: keep courses meeting in a requested period bucket
4. course type: required / elective by course type, general education
   by path text
5. credit tier: low (1-2) / high (3+)

Every filter preserves order and is a no-op when its instruction is empty.
"""

from typing import Callable, Optional, Sequence

from coursescout.search.timecodes import occupied_periods, occupied_slots
from coursescout.shared.config import VocabularyConfig
from coursescout.shared.logging import get_logger
from coursescout.shared.schemas import CourseRecord, CourseTypeFilter, CreditTier, Instructions

logger = get_logger(__name__)


def _contains_any(text: str, needles: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(n.lower() in lowered for n in needles if n)


def filter_free_time(courses: Sequence[CourseRecord], free_slots: frozenset[str]) -> list[CourseRecord]:
    if not free_slots:
        return list(courses)
    return [c for c in courses if occupied_slots(c.time) & free_slots]


def filter_excluded(courses: Sequence[CourseRecord], keywords: Sequence[str]) -> list[CourseRecord]:
    if not keywords:
        return list(courses)
    return [
        c
        for c in courses
        if not any(_contains_any(field, keywords) for field in (c.name, c.teacher, c.dep_name, c.course_type))
    ]


def filter_time_of_day(courses: Sequence[CourseRecord], periods: frozenset[str]) -> list[CourseRecord]:
    if not periods:
        return list(courses)
    return [c for c in courses if occupied_periods(c.time) & periods]


def is_general_education(course: CourseRecord, markers: Sequence[str]) -> bool:
    """General education is recognized from path text, not the course type."""
    return any(
        _contains_any(text, markers)
        for path in course.paths
        for text in (path.type, path.category, path.college)
    )


def filter_course_type(
    courses: Sequence[CourseRecord],
    filters: frozenset[CourseTypeFilter],
    vocabulary: VocabularyConfig,
) -> list[CourseRecord]:
    if not filters:
        return list(courses)

    def matches(course: CourseRecord) -> bool:
        for wanted in filters:
            if wanted == CourseTypeFilter.GENERAL_EDUCATION:
                if is_general_education(course, vocabulary.general_education_markers):
                    return True
            elif wanted == CourseTypeFilter.REQUIRED:
                if _contains_any(course.course_type, vocabulary.required_labels):
                    return True
            elif wanted == CourseTypeFilter.ELECTIVE:
                if _contains_any(course.course_type, vocabulary.elective_labels):
                    return True
        return False

    return [c for c in courses if matches(c)]


def credit_tier(credits: Optional[float]) -> Optional[CreditTier]:
    """Tier of a credit count; None for unknown or zero credits."""
    if credits is None:
        return None
    if 1 <= credits <= 2:
        return CreditTier.LOW
    if credits >= 3:
        return CreditTier.HIGH
    return None


def filter_credit_tier(courses: Sequence[CourseRecord], tiers: frozenset[CreditTier]) -> list[CourseRecord]:
    if not tiers:
        return list(courses)
    return [c for c in courses if credit_tier(c.credits) in tiers]


class PostFilterEngine:
    """
    Applies every directive-derived filter in a fixed order.

    Example:
        >>> engine = PostFilterEngine()
        >>> kept = engine.apply(ranked_courses, preprocessed.instructions)
    """

    def __init__(self, vocabulary: Optional[VocabularyConfig] = None):
        self.vocabulary = vocabulary or VocabularyConfig()

    def apply(self, courses: Sequence[CourseRecord], instructions: Instructions) -> list[CourseRecord]:
        """
        Filter a ranked list.

        Args:
            courses: Ranked courses
            instructions: Instructions from preprocessing

        Returns:
            Filtered courses, order preserved
        """
        steps: list[tuple[str, Callable[[list[CourseRecord]], list[CourseRecord]]]] = [
            ("free-time", lambda cs: filter_free_time(cs, instructions.free_time_slots)),
            ("exclude", lambda cs: filter_excluded(cs, instructions.exclude_keywords)),
            ("time-of-day", lambda cs: filter_time_of_day(cs, instructions.time_of_day_periods)),
            (
                "course-type",
                lambda cs: filter_course_type(cs, instructions.course_type_filters, self.vocabulary),
            ),
            ("credit-tier", lambda cs: filter_credit_tier(cs, instructions.credit_tier_filters)),
        ]

        result = list(courses)
        if not instructions.has_filters:
            return result

        for name, step in steps:
            before = len(result)
            result = step(result)
            if len(result) != before:
                logger.info(f"Post-filter {name}: {before} -> {len(result)} courses")
        return result
