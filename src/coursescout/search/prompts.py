"""
Prompts Module - Oracle prompt templates for every pipeline stage.
==================================================================

Provides prompt templates for:
- Decomposing a query into the 14-attribute schema
- Cleaning noise keywords out of an extracted schema
- Coarse filtering (required attributes only, compact course lines)
- Precise matching (all attributes, detailed course lines)
- Scoring (one ``index:total:quality:time:path:bonus`` line per course)
- Keyword annotation for background enrichment

Every template opens with a fixed header line naming its stage.
"""

import json
from typing import Optional, Sequence

from coursescout.shared.schemas import AttributeSet, CourseAttribute, CourseRecord, Instructions
from coursescout.search.timecodes import format_slots

DECOMPOSE_HEADER = "## Course search - attribute decomposition"
CLEAN_HEADER = "## Course search - keyword cleanup"
COARSE_HEADER = "## Course search - coarse filter"
PRECISE_HEADER = "## Course search - precise match"
SCORING_HEADER = "## Course search - scoring"
ENRICHMENT_HEADER = "## Course catalog - keyword annotation"

NONE_SENTINEL = "none"


# ─────────────────────────────────────────────────────────────────────────────
# Shared Fragments
# ─────────────────────────────────────────────────────────────────────────────


ATTRIBUTE_DESCRIPTIONS: dict[CourseAttribute, str] = {
    CourseAttribute.CODE: "course code (e.g. CSCS10021)",
    CourseAttribute.NAME: "course name and subject keywords, also matched against cached annotation keywords",
    CourseAttribute.TEACHER: "teacher name",
    CourseAttribute.TIME: (
        "time code: weekday letter M T W R F (S U weekend) followed by periods; "
        "1234n = morning, 56789 = afternoon, abc = evening"
    ),
    CourseAttribute.CREDITS: "credit count",
    CourseAttribute.ROOM: "classroom",
    CourseAttribute.COURSE_ID: "catalog identifier",
    CourseAttribute.YEAR: "academic year",
    CourseAttribute.TERM: "term / semester",
    CourseAttribute.MEMO: "free-text memo (prerequisites, notes)",
    CourseAttribute.COURSE_TYPE: "course type (required, elective, ...); never contains general education",
    CourseAttribute.DEPT_ID: "department id",
    CourseAttribute.DEPT_NAME: "department name; a ranking signal, never required",
    CourseAttribute.PATHS: (
        "enrollment paths (type/college/department/category); general education "
        "courses carry a general education or core-course category"
    ),
}

TIME_RULES = """Time matching rules (strict):
- A time keyword matches when the course time code contains it as a literal substring.
- T1234n = Tuesday morning, T56789 = Tuesday afternoon, Tabc = Tuesday evening.
- Example: time [T1234n, T1, T2, T3, T4] (Tuesday morning)
  matches: T1, T34, T234, T1234n, T2n
  does not match: T56, T789, Tabc, M1, W234
- An evening code never satisfies a morning or afternoon group unless the group lists it.
- Example: time [Mabc, Wabc] (Monday or Wednesday evening)
  matches: Mabc, M56abc, Wabc; does not match: M56, Tabc"""


def format_conditions(attributes: AttributeSet, include_optional: bool) -> str:
    """Render required (and optionally optional) conditions, one per line."""
    required = attributes.required()
    lines = ["Required conditions (ALL must hold):"]
    lines += [f"{attr.value}: {cond.describe()}" for attr, cond in required] or ["none"]

    if include_optional:
        optional = attributes.optional()
        lines.append("")
        lines.append("Optional conditions (matching is a bonus, not a filter):")
        lines += [f"{attr.value}: {cond.describe()}" for attr, cond in optional] or ["none"]

    return "\n".join(lines)


def format_course_compact(index: int, course: CourseRecord) -> str:
    """One-line summary used by the coarse filter."""
    fields = [
        course.name,
        course.teacher,
        course.time,
        course.dep_name,
        course.paths_text(),
        course.course_type,
    ]
    return f"{index}. " + "|".join(fields)


def format_course_detailed(index: int, course: CourseRecord, include_keywords: bool = True) -> str:
    """Detailed course line used by precise matching and scoring."""
    parts = [
        f"{index}. {course.name}",
        course.teacher,
        course.time,
        course.room,
        f"dept: {course.dep_name}" if course.dep_name else "",
        f"paths: {course.paths_text()}" if course.paths else "",
        course.course_type,
        f"{course.credits_label()} credits" if course.credits is not None else "",
        course.code,
        course.memo,
        f"keywords: {course.search_keywords}" if include_keywords and course.search_keywords else "",
    ]
    return " | ".join(p for p in parts if p)


def format_course_list(courses: Sequence[CourseRecord], detailed: bool) -> str:
    formatter = format_course_detailed if detailed else format_course_compact
    return "\n".join(formatter(i, c) for i, c in enumerate(courses, 1))


# ─────────────────────────────────────────────────────────────────────────────
# Extraction Prompts
# ─────────────────────────────────────────────────────────────────────────────


def build_decompose_prompt(query: str, instructions: Optional[Instructions] = None) -> str:
    """
    Build the prompt splitting a query into the 14-attribute schema.

    Args:
        query: Preprocessed query text
        instructions: Directive instructions to surface as context

    Returns:
        Prompt text
    """
    schema = "\n".join(
        f"{i}. {attr.value} - {ATTRIBUTE_DESCRIPTIONS[attr]}"
        for i, attr in enumerate(CourseAttribute, 1)
    )
    empty = json.dumps({attr.value: ["none", []] for attr in CourseAttribute}, ensure_ascii=False)

    context = []
    if instructions is not None:
        if instructions.free_time_slots:
            code = format_slots(sorted(instructions.free_time_slots))
            context.append(
                f"Free-time directive: the user's free periods are \"{code}\" "
                f"({len(instructions.free_time_slots)} slots). Set time to required with these codes."
            )
        if instructions.exclude_keywords:
            context.append(
                "Exclude directive: avoid these in every keyword group: "
                + ", ".join(instructions.exclude_keywords)
            )
    context_block = ("\n" + "\n".join(context) + "\n") if context else ""

    return f"""{DECOMPOSE_HEADER}

Split the query into keyword sets for the 14 course attributes and tag each attribute's necessity.

Query: {query}
{context_block}
Attributes:
{schema}

Output rules:
- For every attribute output [necessity, keyword_groups].
- necessity is one of: required (eliminates non-matching courses), optional (ranking bonus), none (not mentioned).
- keyword_groups is a list of groups. Any keyword inside a group satisfies the group (OR); every group must be satisfied (AND).
- An attribute with no keywords must be ["none", []].
- deptName is never required. paths may be required.
- Expand synonyms, abbreviations and English/Chinese variants inside a group.

Example: "Tuesday morning law or management courses"
{{"name": ["required", [["law", "management", "business administration"]]],
 "time": ["required", [["T1234n", "T1", "T2", "T3", "T4"]]],
 "deptName": ["optional", [["law", "management"]]],
 "paths": ["optional", [["College of Law", "College of Management"]]]}}

Empty template:
{empty}

Output JSON only."""


def build_clean_prompt(query: str, attributes: AttributeSet) -> str:
    """Build the prompt that removes noise keywords from an extracted schema."""
    current = "\n".join(
        f"{attr}: {json.dumps(value, ensure_ascii=False)}"
        for attr, value in attributes.to_payload(active_only=True).items()
    )

    return f"""{CLEAN_HEADER}

Remove keywords that are unsuitable for course search. Keep necessity tags and group structure unchanged.

Original query: {query}

Current keyword sets ([necessity, keyword_groups]):
{current}

Rules:
1. Remove bare digits (1, 5, 6) when a full time code (M5, M56, M56789) is present.
2. Remove generic words standing alone (course, class, learning).
3. Keep compound names, colleges, departments and course-type terms.
4. Keep every meaningful keyword (department names, time codes, weekdays, periods).
5. Keep necessity tags (required/optional/none) and the nested list structure.
6. If every keyword of an attribute is removed, output ["none", []].

Example:
in:  time: ["required", [["M", "Monday", "56789", "5", "6", "M56789", "M5"]]]
out: time: ["required", [["M", "Monday", "56789", "M56789", "M5"]]]

Output JSON only."""


# ─────────────────────────────────────────────────────────────────────────────
# Filtering & Scoring Prompts
# ─────────────────────────────────────────────────────────────────────────────


def build_coarse_prompt(query: str, attributes: AttributeSet, courses: Sequence[CourseRecord]) -> str:
    """Build a coarse-filter prompt for one shard."""
    return f"""{COARSE_HEADER}

Quickly screen the courses. Drop only courses that are completely unrelated.

Query: {query}

{format_conditions(attributes, include_optional=False)}

Courses (name|teacher|time|department|paths|type):
{format_course_list(courses, detailed=False)}

{TIME_RULES}

Path matching: a course matches when its paths contain any keyword of the group.

Output the numbers of the matching courses separated by commas, e.g. 1,4,7.
If none match, output "{NONE_SENTINEL}"."""


def build_precise_prompt(query: str, attributes: AttributeSet, courses: Sequence[CourseRecord]) -> str:
    """Build a precise-match prompt for one chunk."""
    return f"""{PRECISE_HEADER}

Strictly check every required condition.

Query: {query}

{format_conditions(attributes, include_optional=True)}

Courses:
{format_course_list(courses, detailed=True)}

Keyword groups: inside a group any keyword suffices (OR); all groups must hold (AND).
Every required attribute must hold; failing any one eliminates the course.

{TIME_RULES}

Path matching is loose: any keyword of any group found in the path text is a match.

Output only the numbers of the courses satisfying all required conditions, e.g. 1,3,5.
If none match, output "{NONE_SENTINEL}"."""


def build_score_prompt(query: str, attributes: AttributeSet, courses: Sequence[CourseRecord]) -> str:
    """Build a scoring prompt for one chunk."""
    return f"""{SCORING_HEADER}

Score each course from 0 to 100.

Query: {query}

{format_conditions(attributes, include_optional=True)}

Courses (fields separated by "|"; "keywords" are extracted from the full syllabus):
{format_course_list(courses, detailed=True)}

Total = quality (0-30) + time (0-30) + path (0-20) + bonus (0-20).
If the user did not constrain an attribute, its component gets the maximum.

- quality: overall fit, usefulness and recommendation strength; use the keywords field
  (assessment, prerequisites, teaching method) when present.
- time: 30 if time is unconstrained or matches exactly, 28 if contained, 20-25 if overlapping.
- path: 20 if paths/deptName are unconstrained or paths match the college/department exactly,
  18 if deptName matches, 15 for a partial path match, 10 for a loose one, 0 otherwise.
- bonus: 20 if name is unconstrained; otherwise 15-20 full intent match, 10-14 highly related,
  5-9 partly related, 0-4 barely related.

Output one line per course, highest total first:
index:total:quality:time:path:bonus
Example:
2:100:30:30:20:20
3:95:25:28:20:17
No explanations."""


def build_enrichment_prompt(course: CourseRecord, outline: str = "", max_keywords: int = 30) -> str:
    """Build the prompt that extracts search keywords for one course."""
    outline_block = f"\nSyllabus:\n{outline}\n" if outline else ""
    return f"""{ENRICHMENT_HEADER}

Extract up to {max_keywords} search keywords for this course: subject terms, tools,
prerequisites, assessment methods and teaching methods, in the catalog's language and English.

Course: {format_course_detailed(1, course, include_keywords=False)}
{outline_block}
Output the keywords separated by commas, nothing else."""
