"""
Extractor Module - Query decomposition into the attribute schema.
=================================================================

Two sequential oracle calls:
1. Decompose the preprocessed query into 14 attributes with necessity tags
   and keyword groups. If the response cannot be parsed, a substring
   heuristic populates ``time`` and ``paths`` instead.
2. Clean noise keywords out of the result. If that response cannot be
   parsed, the uncleaned set is kept.

``deptName`` is always demoted to optional: it ranks, it never filters.
"""

import re
from typing import Optional

from coursescout.oracle.client import Oracle
from coursescout.search.prompts import build_clean_prompt, build_decompose_prompt
from coursescout.search.parsing import parse_attribute_response
from coursescout.search.timecodes import AFTERNOON_PERIODS, EVENING_PERIODS, MORNING_PERIODS, PERIOD_ORDER
from coursescout.shared.config import SamplingConfig, VocabularyConfig
from coursescout.shared.errors import MalformedResponseError
from coursescout.shared.logging import get_logger
from coursescout.shared.schemas import (
    AttributeCondition,
    AttributeSet,
    CourseAttribute,
    Instructions,
    Necessity,
)

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Heuristic Fallback
# ─────────────────────────────────────────────────────────────────────────────


WEEKDAY_WORDS: dict[str, list[str]] = {
    "M": ["monday", "星期一", "週一", "禮拜一"],
    "T": ["tuesday", "星期二", "週二", "禮拜二"],
    "W": ["wednesday", "星期三", "週三", "禮拜三"],
    "R": ["thursday", "星期四", "週四", "禮拜四"],
    "F": ["friday", "星期五", "週五", "禮拜五"],
}

TIME_OF_DAY_WORDS: list[tuple[list[str], frozenset[str], str]] = [
    (["morning", "上午", "早上"], MORNING_PERIODS, "morning"),
    (["afternoon", "下午"], AFTERNOON_PERIODS, "afternoon"),
    (["evening", "night", "晚上"], EVENING_PERIODS, "evening"),
]

GENERAL_EDUCATION_WORDS = ["general education", "通識"]

_DEPARTMENT_PATTERNS = [
    re.compile(r"\b(?:department|dept\.?)\s+(?:of\s+)?([A-Za-z][\w&-]*)", re.IGNORECASE),
    re.compile(r"\b([A-Za-z][\w&-]*)\s+(?:department|dept\.?)\b", re.IGNORECASE),
    re.compile(r"([一-鿿]{1,6})系"),
]

_DEPARTMENT_STOPWORDS = {"the", "a", "any", "my", "this", "that", "of"}


def _ordered(periods: frozenset[str]) -> str:
    return "".join(sorted(periods, key=PERIOD_ORDER.find))


def _heuristic_time(query: str) -> Optional[list[str]]:
    lowered = query.lower()
    days = [d for d, words in WEEKDAY_WORDS.items() if any(w in lowered for w in words)]
    buckets = [(periods, label) for words, periods, label in TIME_OF_DAY_WORDS if any(w in lowered for w in words)]

    if not days and not buckets:
        return None

    keywords: list[str] = []
    if days and buckets:
        for day in days:
            for periods, _label in buckets:
                code = _ordered(periods)
                keywords.append(f"{day}{code}")
                keywords.extend(f"{day}{p}" for p in code)
    elif days:
        for day in days:
            keywords.append(day)
            keywords.extend(WEEKDAY_WORDS[day][:2])
    else:
        for periods, label in buckets:
            keywords.append(_ordered(periods))
            keywords.append(label)

    return list(dict.fromkeys(keywords))


def _heuristic_paths(query: str, vocabulary: VocabularyConfig) -> Optional[list[str]]:
    lowered = query.lower()
    keywords: list[str] = []

    for pattern in _DEPARTMENT_PATTERNS:
        for match in pattern.finditer(query):
            name = match.group(1).strip()
            if name and name.lower() not in _DEPARTMENT_STOPWORDS:
                keywords.append(name)

    for alias, expansions in vocabulary.department_aliases.items():
        alias_lower = alias.lower()
        hit = (
            re.search(rf"\b{re.escape(alias_lower)}\b", lowered)
            if alias_lower.isascii()
            else alias_lower in lowered
        )
        if hit or alias_lower in (k.lower() for k in keywords):
            keywords.extend(expansions)

    if any(w in lowered for w in GENERAL_EDUCATION_WORDS):
        keywords.extend(vocabulary.general_education_markers)

    return list(dict.fromkeys(keywords)) or None


def heuristic_attributes(query: str, vocabulary: Optional[VocabularyConfig] = None) -> AttributeSet:
    """
    Minimal attribute set from literal substring checks.

    A weekday word implies a required time group (combined with a
    time-of-day word when present); a department mention or general
    education word implies a required paths group.

    Example:
        >>> attrs = heuristic_attributes("Monday afternoon, department X")
        >>> attrs[CourseAttribute.TIME].keyword_groups
        [['M56789', 'M5', 'M6', 'M7', 'M8', 'M9']]
    """
    vocabulary = vocabulary or VocabularyConfig()
    conditions: dict[CourseAttribute, AttributeCondition] = {}

    time_keywords = _heuristic_time(query)
    if time_keywords:
        conditions[CourseAttribute.TIME] = AttributeCondition(
            necessity=Necessity.REQUIRED, keyword_groups=[time_keywords]
        )

    path_keywords = _heuristic_paths(query, vocabulary)
    if path_keywords:
        conditions[CourseAttribute.PATHS] = AttributeCondition(
            necessity=Necessity.REQUIRED, keyword_groups=[path_keywords]
        )

    return AttributeSet(conditions=conditions)


def demote_dept_name(attributes: AttributeSet) -> AttributeSet:
    """Force ``deptName`` to optional when it carries keywords."""
    condition = attributes[CourseAttribute.DEPT_NAME]
    if condition.necessity != Necessity.REQUIRED:
        return attributes
    return attributes.with_condition(
        CourseAttribute.DEPT_NAME,
        AttributeCondition(necessity=Necessity.OPTIONAL, keyword_groups=condition.keyword_groups),
    )


def _summarize(attributes: AttributeSet) -> str:
    return ", ".join(f"{a.value}[{c.necessity.value}]" for a, c in attributes.active()) or "nothing"


# ─────────────────────────────────────────────────────────────────────────────
# Extractor
# ─────────────────────────────────────────────────────────────────────────────


class AttributeExtractor:
    """
    Decomposes a query into an AttributeSet through the oracle.

    Example:
        >>> extractor = AttributeExtractor(get_oracle_client())
        >>> attributes = await extractor.extract("Monday afternoon databases")
    """

    def __init__(
        self,
        oracle: Oracle,
        sampling: Optional[SamplingConfig] = None,
        vocabulary: Optional[VocabularyConfig] = None,
    ):
        self.oracle = oracle
        self.sampling = sampling or SamplingConfig()
        self.vocabulary = vocabulary or VocabularyConfig()

    async def extract(self, query: str, instructions: Optional[Instructions] = None) -> AttributeSet:
        """
        Run decomposition followed by cleanup.

        Args:
            query: Preprocessed query text
            instructions: Directive instructions for prompt context

        Returns:
            AttributeSet with at least one active attribute

        Raises:
            BackendError: If the oracle is unreachable after retries
            MalformedResponseError: If neither the oracle nor the heuristic
                produced any active attribute
        """
        attributes = await self.decompose(query, instructions)
        return await self.clean(query, attributes)

    async def decompose(self, query: str, instructions: Optional[Instructions] = None) -> AttributeSet:
        """Step 1: oracle decomposition with heuristic fallback."""
        stage = self.sampling.decompose
        response = await self.oracle.invoke(
            build_decompose_prompt(query, instructions), stage.temperature, stage.reasoning_budget
        )

        try:
            attributes = parse_attribute_response(response)
        except MalformedResponseError as e:
            logger.warning(f"Decomposition response unusable ({e}); using heuristic fallback")
            attributes = heuristic_attributes(query, self.vocabulary)
        else:
            if attributes.is_empty:
                logger.warning("Decomposition produced no active attribute; using heuristic fallback")
                attributes = heuristic_attributes(query, self.vocabulary)

        attributes = demote_dept_name(attributes)
        if attributes.is_empty:
            raise MalformedResponseError("No attribute could be extracted from the query", response_text=response[:500])

        logger.info(f"Decomposed query into: {_summarize(attributes)}")
        return attributes

    async def clean(self, query: str, attributes: AttributeSet) -> AttributeSet:
        """Step 2: drop noise keywords, keeping the input on parse failure."""
        stage = self.sampling.clean
        response = await self.oracle.invoke(
            build_clean_prompt(query, attributes), stage.temperature, stage.reasoning_budget
        )

        try:
            cleaned = parse_attribute_response(response, base=attributes)
        except MalformedResponseError as e:
            logger.warning(f"Cleanup response unusable ({e}); keeping uncleaned attributes")
            return attributes

        cleaned = demote_dept_name(cleaned)
        if cleaned.is_empty:
            logger.warning("Cleanup removed every keyword; keeping uncleaned attributes")
            return attributes

        logger.info(f"Cleaned attributes: {_summarize(cleaned)}")
        return cleaned
