"""
Directives Module - Tokenizer for bracketed query directives.
============================================================

Recognizes a closed vocabulary of ``{...}`` tokens in a raw query. Each
token maps to exactly one DirectiveKind; bracketed text outside the
vocabulary is ordinary query text.

Vocabulary (English tokens are case-insensitive):
- free time:          {free} {free-time} {空堂} {空閒} {有空}
- exclude:            {exclude} {except} {除了}  (captures text up to the next "{")
- morning:            {morning} {上午}
- afternoon:          {afternoon} {下午}
- evening:            {evening} {晚上}
- required:           {required} {必修}
- elective:           {elective} {選修}
- general education:  {general} {general-education} {通識}
- low credit:         {low-credit} {低學分}
- high credit:        {high-credit} {高學分}
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class DirectiveKind(str, Enum):
    FREE_TIME = "free_time"
    EXCLUDE = "exclude"
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    REQUIRED = "required"
    ELECTIVE = "elective"
    GENERAL_EDUCATION = "general_education"
    LOW_CREDIT = "low_credit"
    HIGH_CREDIT = "high_credit"


DIRECTIVE_VOCABULARY: dict[str, DirectiveKind] = {
    "free": DirectiveKind.FREE_TIME,
    "free-time": DirectiveKind.FREE_TIME,
    "空堂": DirectiveKind.FREE_TIME,
    "空閒": DirectiveKind.FREE_TIME,
    "有空": DirectiveKind.FREE_TIME,
    "exclude": DirectiveKind.EXCLUDE,
    "except": DirectiveKind.EXCLUDE,
    "除了": DirectiveKind.EXCLUDE,
    "morning": DirectiveKind.MORNING,
    "上午": DirectiveKind.MORNING,
    "afternoon": DirectiveKind.AFTERNOON,
    "下午": DirectiveKind.AFTERNOON,
    "evening": DirectiveKind.EVENING,
    "晚上": DirectiveKind.EVENING,
    "required": DirectiveKind.REQUIRED,
    "必修": DirectiveKind.REQUIRED,
    "elective": DirectiveKind.ELECTIVE,
    "選修": DirectiveKind.ELECTIVE,
    "general": DirectiveKind.GENERAL_EDUCATION,
    "general-education": DirectiveKind.GENERAL_EDUCATION,
    "通識": DirectiveKind.GENERAL_EDUCATION,
    "low-credit": DirectiveKind.LOW_CREDIT,
    "低學分": DirectiveKind.LOW_CREDIT,
    "high-credit": DirectiveKind.HIGH_CREDIT,
    "高學分": DirectiveKind.HIGH_CREDIT,
}

_BRACKET_PATTERN = re.compile(r"\{([^{}]*)\}")


@dataclass(frozen=True)
class DirectiveToken:
    """
    A recognized directive occurrence.

    ``start``/``end`` span the bracketed token itself. For EXCLUDE tokens,
    ``argument`` is the captured trailing text and ``argument_end`` is where
    that capture stops.
    """

    kind: DirectiveKind
    literal: str
    start: int
    end: int
    argument: str = ""
    argument_end: Optional[int] = None

    @property
    def span_end(self) -> int:
        """End of the token including any captured argument."""
        return self.argument_end if self.argument_end is not None else self.end


def classify(literal: str) -> Optional[DirectiveKind]:
    """Map the text inside brackets to a directive kind, if any."""
    return DIRECTIVE_VOCABULARY.get(literal.strip().lower())


def tokenize_directives(query: str) -> list[DirectiveToken]:
    """
    Find every recognized directive in a query, in order.

    Example:
        >>> [t.kind.value for t in tokenize_directives("{exclude}Teacher Wang{evening}")]
        ['exclude', 'evening']
    """
    matches = []
    for match in _BRACKET_PATTERN.finditer(query):
        kind = classify(match.group(1))
        if kind is not None:
            matches.append((kind, match))

    tokens = []
    for i, (kind, match) in enumerate(matches):
        if kind == DirectiveKind.EXCLUDE:
            # The argument runs up to the next bracket, recognized or not
            next_bracket = query.find("{", match.end())
            stop = next_bracket if next_bracket != -1 else len(query)
            tokens.append(
                DirectiveToken(
                    kind=kind,
                    literal=match.group(0),
                    start=match.start(),
                    end=match.end(),
                    argument=query[match.end() : stop].strip(),
                    argument_end=stop,
                )
            )
        else:
            tokens.append(
                DirectiveToken(kind=kind, literal=match.group(0), start=match.start(), end=match.end())
            )

    return tokens
