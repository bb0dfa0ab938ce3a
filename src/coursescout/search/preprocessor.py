"""
Preprocessor Module - Directive rewriting and instruction building.
===================================================================

Turns directive tokens into:
- a rewritten query in which each token is replaced by a plain-language
  description, so attribute extraction still receives natural language
- an immutable Instructions object consumed by the post-filters
- a legacy query with directives removed, for the keyword fallback

Deterministic and oracle-free.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from coursescout.search.directives import DirectiveKind, DirectiveToken, tokenize_directives
from coursescout.search.timecodes import (
    AFTERNOON_PERIODS,
    EVENING_PERIODS,
    MORNING_PERIODS,
    format_slots,
    free_slots,
)
from coursescout.shared.logging import get_logger
from coursescout.shared.schemas import CourseTypeFilter, CreditTier, Instructions

logger = get_logger(__name__)


TIME_OF_DAY_PERIODS = {
    DirectiveKind.MORNING: MORNING_PERIODS,
    DirectiveKind.AFTERNOON: AFTERNOON_PERIODS,
    DirectiveKind.EVENING: EVENING_PERIODS,
}

COURSE_TYPES = {
    DirectiveKind.REQUIRED: CourseTypeFilter.REQUIRED,
    DirectiveKind.ELECTIVE: CourseTypeFilter.ELECTIVE,
    DirectiveKind.GENERAL_EDUCATION: CourseTypeFilter.GENERAL_EDUCATION,
}

CREDIT_TIERS = {
    DirectiveKind.LOW_CREDIT: CreditTier.LOW,
    DirectiveKind.HIGH_CREDIT: CreditTier.HIGH,
}

DESCRIPTIONS = {
    DirectiveKind.MORNING: "morning periods (1-4, n)",
    DirectiveKind.AFTERNOON: "afternoon periods (5-9)",
    DirectiveKind.EVENING: "evening periods (a-c)",
    DirectiveKind.REQUIRED: "required courses",
    DirectiveKind.ELECTIVE: "elective courses",
    DirectiveKind.GENERAL_EDUCATION: "general education courses",
    DirectiveKind.LOW_CREDIT: "low-credit courses (1-2 credits)",
    DirectiveKind.HIGH_CREDIT: "high-credit courses (3+ credits)",
}

FULL_TIMETABLE_DESCRIPTION = "(timetable is full, no free periods)"

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class PreprocessedQuery:
    """Output of the preprocessing stage."""

    original: str
    text: str
    legacy_text: str
    instructions: Instructions
    tokens: list[DirectiveToken] = field(default_factory=list)

    @property
    def free_time_code(self) -> str:
        """Free slots as a compact time code, for prompts."""
        return format_slots(sorted(self.instructions.free_time_slots))


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _free_time_description(slots: list[str]) -> str:
    if not slots:
        return FULL_TIMETABLE_DESCRIPTION
    return f"my free periods ({len(slots)} slots)"


class QueryPreprocessor:
    """
    Rewrites directive tokens and records Instructions.

    Example:
        >>> pre = QueryPreprocessor(timetable_codes=["M56"])
        >>> result = pre.process("{exclude}Teacher Wang{evening}")
        >>> result.instructions.exclude_keywords
        ('Teacher Wang',)
    """

    def __init__(self, timetable_codes: Optional[Iterable[str]] = None):
        """
        Initialize the preprocessor.

        Args:
            timetable_codes: Time codes of the user's personal timetable
        """
        self.timetable_codes = list(timetable_codes or [])

    def process(self, query: str) -> PreprocessedQuery:
        """
        Preprocess a raw query.

        Args:
            query: Raw user query

        Returns:
            PreprocessedQuery with rewritten text and Instructions
        """
        tokens = tokenize_directives(query)
        if not tokens:
            text = _collapse(query)
            return PreprocessedQuery(
                original=query, text=text, legacy_text=text, instructions=Instructions()
            )

        free_time_requested = False
        free: list[str] = []
        excludes: list[str] = []
        periods: set[str] = set()
        course_types: set[CourseTypeFilter] = set()
        credit_tiers: set[CreditTier] = set()

        rewritten: list[str] = []
        legacy: list[str] = []
        cursor = 0

        for token in tokens:
            rewritten.append(query[cursor : token.start])
            legacy.append(query[cursor : token.start])
            cursor = token.span_end

            if token.kind == DirectiveKind.FREE_TIME:
                if not free_time_requested:
                    free = free_slots(self.timetable_codes)
                    free_time_requested = True
                rewritten.append(f" {_free_time_description(free)} ")

            elif token.kind == DirectiveKind.EXCLUDE:
                if token.argument:
                    excludes.append(token.argument)
                    rewritten.append(f" (excluding: {token.argument}) ")

            elif token.kind in TIME_OF_DAY_PERIODS:
                periods |= TIME_OF_DAY_PERIODS[token.kind]
                rewritten.append(f" {DESCRIPTIONS[token.kind]} ")

            elif token.kind in COURSE_TYPES:
                course_types.add(COURSE_TYPES[token.kind])
                rewritten.append(f" {DESCRIPTIONS[token.kind]} ")

            elif token.kind in CREDIT_TIERS:
                credit_tiers.add(CREDIT_TIERS[token.kind])
                rewritten.append(f" {DESCRIPTIONS[token.kind]} ")

            legacy.append(" ")

        rewritten.append(query[cursor:])
        legacy.append(query[cursor:])

        instructions = Instructions(
            free_time_requested=free_time_requested,
            free_time_slots=frozenset(free),
            exclude_keywords=tuple(dict.fromkeys(excludes)),
            time_of_day_periods=frozenset(periods),
            course_type_filters=frozenset(course_types),
            credit_tier_filters=frozenset(credit_tiers),
        )

        kinds = ", ".join(t.kind.value for t in tokens)
        logger.info(f"Found {len(tokens)} directive(s): {kinds}")
        if free_time_requested:
            logger.info(f"Free periods: {len(free)}" if free else "Free periods requested but timetable is full")

        return PreprocessedQuery(
            original=query,
            text=_collapse("".join(rewritten)),
            legacy_text=_collapse("".join(legacy)),
            instructions=instructions,
            tokens=tokens,
        )


def preprocess_query(query: str, timetable_codes: Optional[Iterable[str]] = None) -> PreprocessedQuery:
    """
    Convenience function to preprocess a query.

    Args:
        query: Raw user query
        timetable_codes: Time codes of the user's personal timetable

    Returns:
        PreprocessedQuery
    """
    return QueryPreprocessor(timetable_codes).process(query)
