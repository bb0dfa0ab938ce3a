"""
Legacy Search Module - Deterministic, oracle-free keyword search.
=================================================================

The fail-over target of the pipeline. A query is split into keywords by a
tokenizer that understands weekday/time-of-day words and "teacher",
"department" and "college" suffixes; every course gets the best score per
field, bonuses for matching several fields, and results are sorted by
score, matched-field count and course code.

Field weights:
- name: 100 exact, 80 prefix, 50 contains, 40 abbreviation
- code: 100 exact, 60 contains
- teacher: 70 exact, 65 surname/prefix, 50 contains
- time: 30 weekday/time-code match, 25 other match
- room: 20
- path: 45 department/college exact, 30 contains/abbreviation, 20 type/category
- annotation keywords: 35
"""

import re
from dataclasses import dataclass, field

from coursescout.search.timecodes import (
    AFTERNOON_PERIODS,
    DAY_LETTERS,
    EVENING_PERIODS,
    MORNING_PERIODS,
    occupied_periods,
    parse_time_slots,
)
from coursescout.shared.logging import get_logger
from coursescout.shared.schemas import CourseRecord

logger = get_logger(__name__)


# ─────────────────────────────────────────────────────────────────────────────
# Tokenization
# ─────────────────────────────────────────────────────────────────────────────


_SPLIT_PATTERN = re.compile(r"[\s,，、的和或與]+")
_CJK_TIME_PATTERN = re.compile(r"(星期[一二三四五六日]|週[一二三四五六日]|禮拜[一二三四五六日]|早上|上午|下午|晚上)")
_TIME_CODE_PATTERN = re.compile(r"^[mtwrfsu][1-9a-dn]+$")

_STOPWORDS = {"and", "or", "the", "a", "of", "for", "in", "on", "course", "courses", "class", "classes", "課"}

_CJK_DAYS = "一二三四五六日"

WEEKDAY_LETTERS: dict[str, str] = {
    "monday": "M",
    "tuesday": "T",
    "wednesday": "W",
    "thursday": "R",
    "friday": "F",
    "saturday": "S",
    "sunday": "U",
}
for _letter, _cjk in zip(DAY_LETTERS, _CJK_DAYS):
    for _prefix in ("星期", "週", "禮拜"):
        WEEKDAY_LETTERS[f"{_prefix}{_cjk}"] = _letter

TIME_OF_DAY_BUCKETS: dict[str, frozenset[str]] = {
    "morning": MORNING_PERIODS,
    "上午": MORNING_PERIODS,
    "早上": MORNING_PERIODS,
    "afternoon": AFTERNOON_PERIODS,
    "下午": AFTERNOON_PERIODS,
    "evening": EVENING_PERIODS,
    "night": EVENING_PERIODS,
    "晚上": EVENING_PERIODS,
}


def _split_compound(part: str) -> list[str]:
    """Handle '<name>老師<rest>', '<dept>系<rest>' and '<college>學院<rest>'."""
    teacher = re.match(r"^(.{1,3})老師(.+)$", part)
    if teacher:
        name, rest = teacher.groups()
        keywords = [name]
        if len(name) == 1:
            keywords.append(f"{name}老師")
        return keywords + [rest]

    for suffix in ("系", "學院"):
        match = re.match(rf"^(.{{2,4}}){suffix}(.+)$", part)
        if match:
            unit, rest = match.groups()
            return [f"{unit}{suffix}", unit, rest]

    return []


def _expand_suffix(part: str) -> list[str]:
    if part.endswith("老師") and len(part) > 2:
        name = part[:-2]
        return [name, part] if len(name) == 1 else [name]
    if part.endswith("系") and len(part) > 1:
        return [part, part[:-1]]
    if part.endswith("課") and len(part) > 1:
        subject = part[:-1]
        return [subject, f"{subject}系"] if 2 <= len(subject) <= 4 else [subject]
    if "學院" in part and len(part) > 2:
        return [part, part.replace("學院", "")]
    return [part]


def smart_tokenize(query: str) -> list[str]:
    """
    Split a query into search keywords.

    Example:
        >>> smart_tokenize("王老師微積分 星期一")
        ['王', '王老師', '微積分', '星期一']
    """
    parts = [p for p in _SPLIT_PATTERN.split(query.lower()) if p]
    keywords: list[str] = []

    # Parts may grow while iterating when time words are peeled off
    i = 0
    while i < len(parts):
        part = parts[i]
        i += 1

        times = _CJK_TIME_PATTERN.findall(part)
        if times:
            keywords.extend(times)
            remaining = _CJK_TIME_PATTERN.sub("", part)
            if remaining:
                parts.append(remaining)
            continue

        if len(part) > 4:
            compound = _split_compound(part)
            if compound:
                keywords.extend(compound)
                continue

        if part in _STOPWORDS:
            continue
        keywords.extend(_expand_suffix(part))

    return [k for k in dict.fromkeys(keywords) if k]


# ─────────────────────────────────────────────────────────────────────────────
# Scoring
# ─────────────────────────────────────────────────────────────────────────────


def is_abbreviation(abbr: str, target: str) -> bool:
    """True when every character of ``abbr`` appears in ``target`` in order."""
    position = 0
    for char in target:
        if position < len(abbr) and abbr[position] == char:
            position += 1
    return position == len(abbr) and bool(abbr)


def _time_score(keyword: str, time_code: str) -> int:
    if not time_code:
        return 0

    day = WEEKDAY_LETTERS.get(keyword)
    if day is None and len(keyword) == 1 and keyword.upper() in DAY_LETTERS:
        day = keyword.upper()
    if day is not None:
        return 30 if any(slot.day == day for slot in parse_time_slots(time_code)) else 0

    if _TIME_CODE_PATTERN.match(keyword):
        return 30 if keyword.upper() in time_code.upper() else 0

    bucket = TIME_OF_DAY_BUCKETS.get(keyword)
    if bucket is not None:
        return 25 if occupied_periods(time_code) & bucket else 0

    return 25 if keyword in time_code.lower() else 0


def _name_score(keyword: str, name: str) -> int:
    if name == keyword:
        return 100
    if name.startswith(keyword):
        return 80
    if keyword in name:
        return 50
    if is_abbreviation(keyword, name):
        return 40
    return 0


def _teacher_score(keyword: str, teacher: str) -> int:
    if not teacher:
        return 0
    if teacher == keyword:
        return 70
    if teacher.startswith(keyword):
        return 65
    if keyword.endswith("老師") and len(keyword) > 2 and teacher.startswith(keyword[:-2]):
        return 65
    if keyword in teacher:
        return 50
    return 0


def _path_score(keyword: str, course: CourseRecord) -> int:
    best = 0
    for path in course.paths:
        department = path.department.lower()
        college = path.college.lower()
        kind = path.type.lower()
        category = path.category.lower()

        if keyword in (department, college):
            best = max(best, 45)
        elif any(keyword in t or is_abbreviation(keyword, t) for t in (department, college) if t):
            best = max(best, 30)
        elif any(keyword in t or is_abbreviation(keyword, t) for t in (kind, category) if t):
            best = max(best, 20)
    return best


@dataclass
class LegacyMatch:
    """A course with its keyword-search relevance."""

    course: CourseRecord
    score: int
    matched_fields: set[str] = field(default_factory=set)


def relevance(course: CourseRecord, keywords: list[str]) -> LegacyMatch:
    """
    Score one course against the keywords.

    Each field contributes only its best score across keywords.
    """
    name = course.name.lower()
    code = course.code.lower()
    teacher = course.teacher.lower()
    room = course.room.lower()
    annotation = course.search_keywords.lower()

    best: dict[str, int] = {}

    def record(field_name: str, value: int) -> None:
        if value > 0:
            best[field_name] = max(best.get(field_name, 0), value)

    for keyword in keywords:
        record("name", _name_score(keyword, name))
        if code:
            record("code", 100 if code == keyword else 60 if keyword in code else 0)
        record("teacher", _teacher_score(keyword, teacher))
        record("time", _time_score(keyword, course.time))
        if room and keyword in room:
            record("room", 20)
        record("path", _path_score(keyword, course))
        if annotation and keyword in annotation:
            record("annotation", 35)

    score = sum(best.values())
    if len(best) > 1:
        score += len(best) * 20
    if "name" in best and "teacher" in best:
        score += 50

    return LegacyMatch(course=course, score=score, matched_fields=set(best))


def rank_courses(courses: list[CourseRecord], query: str) -> list[LegacyMatch]:
    """
    Rank courses matching at least one field.

    Args:
        courses: Catalog to search
        query: Free-text query (directives already removed)

    Returns:
        Matches sorted by score desc, matched-field count desc, code asc
    """
    keywords = smart_tokenize(query)
    if not keywords:
        return []

    matches = [m for m in (relevance(c, keywords) for c in courses) if m.matched_fields]
    matches.sort(key=lambda m: (-m.score, -len(m.matched_fields), m.course.code))
    return matches


def keyword_search(courses: list[CourseRecord], query: str) -> list[CourseRecord]:
    """Deterministic keyword search returning ranked courses."""
    matches = rank_courses(courses, query)
    logger.info(f"Keyword search for '{query}': {len(matches)} match(es)")
    return [m.course for m in matches]
