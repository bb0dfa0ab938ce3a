"""
Schemas Module - Pydantic data models for the search pipeline.
==============================================================

Defines all data contracts used across the application:
- Course catalog records (read-only during a search)
- The 14-attribute query schema with necessity tags
- Post-filter instructions derived from directive tokens
- Per-course score records
- Search session and search result
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from coursescout.shared.errors import CancellationRequested, MalformedResponseError


# ─────────────────────────────────────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────────────────────────────────────


class Necessity(str, Enum):
    """Whether an attribute can eliminate a course."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    NONE = "none"


class CourseAttribute(str, Enum):
    """The fixed query schema, in prompt order."""

    CODE = "code"
    NAME = "name"
    TEACHER = "teacher"
    TIME = "time"
    CREDITS = "credits"
    ROOM = "room"
    COURSE_ID = "courseId"
    YEAR = "year"
    TERM = "term"
    MEMO = "memo"
    COURSE_TYPE = "courseType"
    DEPT_ID = "deptId"
    DEPT_NAME = "deptName"
    PATHS = "paths"


# Alternative spellings accepted from oracle output
ATTRIBUTE_ALIASES: dict[str, CourseAttribute] = {
    "cos_id": CourseAttribute.COURSE_ID,
    "course_id": CourseAttribute.COURSE_ID,
    "acy": CourseAttribute.YEAR,
    "sem": CourseAttribute.TERM,
    "semester": CourseAttribute.TERM,
    "cos_type": CourseAttribute.COURSE_TYPE,
    "course_type": CourseAttribute.COURSE_TYPE,
    "dep_id": CourseAttribute.DEPT_ID,
    "dept_id": CourseAttribute.DEPT_ID,
    "dep_name": CourseAttribute.DEPT_NAME,
    "dept_name": CourseAttribute.DEPT_NAME,
}


class SearchMode(str, Enum):
    """Loose skips precise matching; precise runs it."""

    LOOSE = "loose"
    PRECISE = "precise"


class SearchStage(str, Enum):
    """Orchestrator states."""

    PREPROCESSING = "preprocessing"
    EXTRACTING = "extracting"
    COARSE_FILTERING = "coarse_filtering"
    PRECISE_MATCHING = "precise_matching"
    SCORING = "scoring"
    POST_FILTERING = "post_filtering"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED_OVER_TO_LEGACY = "failed_over_to_legacy"


class CourseTypeFilter(str, Enum):
    """Course-type directive values."""

    REQUIRED = "required"
    ELECTIVE = "elective"
    GENERAL_EDUCATION = "general_education"


class CreditTier(str, Enum):
    """Credit-tier directive values."""

    LOW = "low"  # 1-2 credits
    HIGH = "high"  # 3 or more


# ─────────────────────────────────────────────────────────────────────────────
# Course Data Models
# ─────────────────────────────────────────────────────────────────────────────


class PathEntry(BaseModel):
    """One enrollment path of a course."""

    type: str = ""
    category: str = ""
    college: str = ""
    department: str = ""

    model_config = {"frozen": True}

    def as_text(self, include_type: bool = True) -> str:
        """Render as 'type/college/department/category', skipping blanks."""
        parts = [self.type] if include_type else []
        parts += [self.college, self.department, self.category]
        return "/".join(p for p in parts if p)


class CourseAnnotation(BaseModel):
    """Enrichment output cached on a course record."""

    search_keywords: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("search_keywords", "searchKeywords"),
    )

    model_config = {"frozen": True}


class CourseRecord(BaseModel):
    """
    A single course of the catalog.

    Field aliases accept both this project's names and the spellings used by
    the source institution's timetable API (cos_id, acy, sem, cos_type, ...).
    """

    id: str = Field(..., validation_alias=AliasChoices("id", "cos_id", "course_id"))
    code: str = ""
    name: str
    teacher: str = ""
    time: str = Field(default="", description="Compact time code, e.g. 'M56,R34'")
    room: str = ""
    credits: Optional[float] = None
    year: str = Field(default="", validation_alias=AliasChoices("year", "acy"))
    term: str = Field(default="", validation_alias=AliasChoices("term", "sem"))
    dep_id: str = Field(default="", validation_alias=AliasChoices("dep_id", "dept_id", "deptId"))
    dep_name: str = Field(
        default="", validation_alias=AliasChoices("dep_name", "dept_name", "deptName")
    )
    course_type: str = Field(
        default="", validation_alias=AliasChoices("course_type", "cos_type", "courseType")
    )
    paths: list[PathEntry] = Field(default_factory=list)
    memo: str = ""
    annotation: Optional[CourseAnnotation] = None

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("id", "code", "year", "term", mode="before")
    @classmethod
    def coerce_str(cls, v: Any) -> str:
        """Identifiers sometimes arrive as numbers."""
        if v is None:
            return ""
        return str(v)

    @field_validator("teacher", "time", "room", "dep_id", "dep_name", "course_type", "memo", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("credits", mode="before")
    @classmethod
    def parse_credits(cls, v: Any) -> Optional[float]:
        """Accept '3', '3.0', 3 or blanks."""
        if v is None or v == "":
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None

    @property
    def search_keywords(self) -> str:
        """Cached enrichment keywords, or empty string."""
        if self.annotation and self.annotation.search_keywords:
            return self.annotation.search_keywords
        return ""

    def paths_text(self, include_type: bool = True) -> str:
        """All enrollment paths joined with '; '."""
        return "; ".join(
            text for text in (p.as_text(include_type) for p in self.paths) if text
        )

    def credits_label(self) -> str:
        """Credits without a trailing '.0'."""
        if self.credits is None:
            return ""
        return f"{self.credits:g}"


# ─────────────────────────────────────────────────────────────────────────────
# Attribute Query Models
# ─────────────────────────────────────────────────────────────────────────────


class AttributeCondition(BaseModel):
    """
    Necessity tag plus keyword groups for one attribute.

    Within a group any keyword suffices (OR); every group must be satisfied
    (AND). A condition without keywords always has necessity ``none``.
    """

    necessity: Necessity = Necessity.NONE
    keyword_groups: list[list[str]] = Field(default_factory=list)

    model_config = {"frozen": True}

    @field_validator("keyword_groups", mode="before")
    @classmethod
    def clean_groups(cls, v: Any) -> list[list[str]]:
        if v is None:
            return []
        if not isinstance(v, list):
            raise ValueError("keyword groups must be a list")

        groups = []
        for group in v:
            # A bare string is a group of one keyword
            items = [group] if isinstance(group, str) else group
            if not isinstance(items, list):
                raise ValueError(f"keyword group must be a list, got {type(items).__name__}")
            keywords = [str(k).strip() for k in items if str(k).strip()]
            if keywords:
                groups.append(keywords)
        return groups

    @model_validator(mode="after")
    def empty_means_none(self) -> "AttributeCondition":
        if not self.keyword_groups and self.necessity != Necessity.NONE:
            object.__setattr__(self, "necessity", Necessity.NONE)
        return self

    @property
    def is_active(self) -> bool:
        return self.necessity != Necessity.NONE

    def describe(self) -> str:
        """Render groups the way prompts show them: 'a, b' or '[a, b] AND [c]'."""
        if not self.keyword_groups:
            return "(empty)"
        if len(self.keyword_groups) == 1:
            return ", ".join(self.keyword_groups[0])
        return " AND ".join(f"[{', '.join(g)}]" for g in self.keyword_groups)


class AttributeSet(BaseModel):
    """The full 14-attribute query. Every attribute is always present."""

    conditions: dict[CourseAttribute, AttributeCondition] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def fill_missing(self) -> "AttributeSet":
        for attr in CourseAttribute:
            if attr not in self.conditions:
                self.conditions[attr] = AttributeCondition()
        return self

    @classmethod
    def from_payload(cls, data: Any, base: Optional["AttributeSet"] = None) -> "AttributeSet":
        """
        Validate an oracle-produced mapping.

        Each value is either a ``[necessity, groups]`` pair or an object with
        ``necessity`` and ``keywords`` keys. Unknown attribute names are
        ignored; a wrong shape or unknown necessity raises.

        Args:
            data: Decoded JSON object
            base: Attributes absent from ``data`` are taken from here

        Raises:
            MalformedResponseError: If the payload does not fit the schema
        """
        if not isinstance(data, dict):
            raise MalformedResponseError("Attribute payload is not an object")

        conditions: dict[CourseAttribute, AttributeCondition] = (
            dict(base.conditions) if base is not None else {}
        )
        for key, value in data.items():
            attr = _resolve_attribute(str(key))
            if attr is None:
                continue

            if isinstance(value, dict):
                necessity = value.get("necessity", "none")
                groups = value.get("keywords", value.get("keywordGroups", []))
            elif isinstance(value, (list, tuple)) and len(value) == 2 and isinstance(value[0], str):
                necessity, groups = value
            else:
                raise MalformedResponseError(f"Attribute '{key}' has an unexpected shape")

            try:
                conditions[attr] = AttributeCondition(
                    necessity=Necessity(str(necessity).lower().strip()),
                    keyword_groups=groups,
                )
            except ValueError as e:
                raise MalformedResponseError(f"Attribute '{key}' is invalid: {e}") from e

        return cls(conditions=conditions)

    def __getitem__(self, attr: CourseAttribute) -> AttributeCondition:
        return self.conditions[attr]

    def __iter__(self) -> Iterator[tuple[CourseAttribute, AttributeCondition]]:  # type: ignore[override]
        for attr in CourseAttribute:
            yield attr, self.conditions[attr]

    def with_condition(self, attr: CourseAttribute, condition: AttributeCondition) -> "AttributeSet":
        """Return a copy with one attribute replaced."""
        updated = dict(self.conditions)
        updated[attr] = condition
        return AttributeSet(conditions=updated)

    def required(self) -> list[tuple[CourseAttribute, AttributeCondition]]:
        return [(a, c) for a, c in self if c.necessity == Necessity.REQUIRED]

    def optional(self) -> list[tuple[CourseAttribute, AttributeCondition]]:
        return [(a, c) for a, c in self if c.necessity == Necessity.OPTIONAL]

    def active(self) -> list[tuple[CourseAttribute, AttributeCondition]]:
        return [(a, c) for a, c in self if c.is_active]

    @property
    def is_empty(self) -> bool:
        return not self.active()

    def to_payload(self, active_only: bool = False) -> dict[str, list]:
        """Serialize as ``{attr: [necessity, groups]}`` for prompts."""
        return {
            attr.value: [cond.necessity.value, cond.keyword_groups]
            for attr, cond in self
            if cond.is_active or not active_only
        }


def _resolve_attribute(key: str) -> Optional[CourseAttribute]:
    try:
        return CourseAttribute(key)
    except ValueError:
        return ATTRIBUTE_ALIASES.get(key.lower())


# ─────────────────────────────────────────────────────────────────────────────
# Instructions
# ─────────────────────────────────────────────────────────────────────────────


class Instructions(BaseModel):
    """Structured post-filter instructions derived from directive tokens."""

    free_time_requested: bool = False
    free_time_slots: frozenset[str] = frozenset()
    exclude_keywords: tuple[str, ...] = ()
    time_of_day_periods: frozenset[str] = frozenset()
    course_type_filters: frozenset[CourseTypeFilter] = frozenset()
    credit_tier_filters: frozenset[CreditTier] = frozenset()

    model_config = {"frozen": True}

    @property
    def has_filters(self) -> bool:
        return bool(
            self.free_time_slots
            or self.exclude_keywords
            or self.time_of_day_periods
            or self.course_type_filters
            or self.credit_tier_filters
        )


# ─────────────────────────────────────────────────────────────────────────────
# Scores
# ─────────────────────────────────────────────────────────────────────────────


SCORE_RANGES: dict[str, tuple[int, int]] = {
    "quality": (0, 30),
    "time": (0, 30),
    "path": (0, 20),
    "bonus": (0, 20),
}


class ScoreRecord(BaseModel):
    """
    Four-component course score.

    Components are clamped to their ranges on construction and ``total`` is
    always their sum; whatever total the oracle claimed is discarded.
    """

    quality: int = 0
    time: int = 0
    path: int = 0
    bonus: int = 0

    model_config = {"frozen": True}

    @field_validator("quality", "time", "path", "bonus", mode="before")
    @classmethod
    def clamp(cls, v: Any, info) -> int:  # type: ignore[no-untyped-def]
        low, high = SCORE_RANGES[info.field_name]
        return max(low, min(high, int(v)))

    @computed_field
    @property
    def total(self) -> int:
        return self.quality + self.time + self.path + self.bonus


# ─────────────────────────────────────────────────────────────────────────────
# Session & Result
# ─────────────────────────────────────────────────────────────────────────────


@dataclass
class SearchSession:
    """
    Ephemeral per-search state.

    ``cancel()`` may be called from anywhere at any time; the orchestrator
    only looks at the flag between stages.
    """

    mode: SearchMode = SearchMode.LOOSE
    cancelled: bool = False
    stage: SearchStage = SearchStage.PREPROCESSING
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None

    def cancel(self) -> None:
        self.cancelled = True

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancellationRequested(f"Search cancelled after stage '{self.stage.value}'")

    def finish(self) -> None:
        if self.finished_at is None:
            self.finished_at = time.monotonic()

    @property
    def elapsed_seconds(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at


@dataclass
class SearchResult:
    """Ordered course ids plus a parallel id -> score map."""

    course_ids: list[str] = field(default_factory=list)
    scores: dict[str, ScoreRecord] = field(default_factory=dict)
    stage: SearchStage = SearchStage.DONE
    mode: SearchMode = SearchMode.LOOSE
    elapsed_seconds: float = 0.0
    precise_fallback: bool = False
    instructions: Optional[Instructions] = None
    error: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self.stage == SearchStage.CANCELLED

    @property
    def used_legacy(self) -> bool:
        return self.stage == SearchStage.FAILED_OVER_TO_LEGACY

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "course_ids": self.course_ids,
            "scores": {cid: s.model_dump() for cid, s in self.scores.items()},
            "stage": self.stage.value,
            "mode": self.mode.value,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "precise_fallback": self.precise_fallback,
            "error": self.error,
        }
