"""
Time Codes Module - Compact weekday/period codes.
=================================================

A time code lists weekday letters followed by period symbols, e.g. ``M56``
(Monday periods 5 and 6) or ``M56,R34-EC114`` (several segments; anything
after ``-`` in a segment is room/campus text and is ignored).

Weekdays: M T W R F S U. Periods: 1-4 and n (morning), 5-9 (afternoon),
a-c (evening), d (late).
"""

from dataclasses import dataclass
from typing import Iterable

DAY_LETTERS = "MTWRFSU"
WEEKDAYS = "MTWRF"

# Canonical ordering of period symbols within a day
PERIOD_ORDER = "1234n56789abcd"

# Universe used to compute free periods
FREE_SLOT_PERIODS = "123456789abcd"

MORNING_PERIODS = frozenset("1234n")
AFTERNOON_PERIODS = frozenset("56789")
EVENING_PERIODS = frozenset("abc")


@dataclass(frozen=True)
class TimeSlot:
    """One weekday with the periods it occupies."""

    day: str
    periods: tuple[str, ...]


def parse_time_slots(code: str) -> list[TimeSlot]:
    """
    Parse a time code into weekday/period groups.

    Example:
        >>> parse_time_slots("M56,R34-EC114")
        [TimeSlot(day='M', periods=('5', '6')), TimeSlot(day='R', periods=('3', '4'))]
    """
    if not code or not isinstance(code, str):
        return []

    slots: list[TimeSlot] = []
    for segment in code.split(","):
        segment = segment.split("-")[0].strip()
        day = None
        periods: list[str] = []

        for char in segment:
            if char in DAY_LETTERS:
                if day and periods:
                    slots.append(TimeSlot(day, tuple(periods)))
                    periods = []
                day = char
            elif day and not char.isspace():
                periods.append(char)

        if day and periods:
            slots.append(TimeSlot(day, tuple(periods)))

    return slots


def occupied_slots(code: str) -> set[str]:
    """Every ``<day><period>`` slot a time code occupies."""
    return {f"{slot.day}{p}" for slot in parse_time_slots(code) for p in slot.periods}


def occupied_periods(code: str) -> set[str]:
    """Period symbols a time code uses, regardless of weekday."""
    return {p for slot in parse_time_slots(code) for p in slot.periods}


def all_weekday_slots() -> list[str]:
    return [f"{d}{p}" for d in WEEKDAYS for p in FREE_SLOT_PERIODS]


def free_slots(timetable_codes: Iterable[str]) -> list[str]:
    """
    Weekday slots not occupied by any course of the personal timetable.

    Args:
        timetable_codes: Time codes of the courses already in the timetable

    Returns:
        Free slots in weekday-then-period order, e.g. ``["M1", "M2", ...]``
    """
    taken: set[str] = set()
    for code in timetable_codes:
        taken |= occupied_slots(code)
    return [slot for slot in all_weekday_slots() if slot not in taken]


def _period_rank(period: str) -> int:
    index = PERIOD_ORDER.find(period)
    return index if index >= 0 else len(PERIOD_ORDER)


def format_slots(slots: Iterable[str]) -> str:
    """
    Render slots as a compact time code.

    Example:
        >>> format_slots(["M1", "M2", "T3"])
        'M12,T3'
    """
    by_day: dict[str, list[str]] = {}
    for slot in slots:
        if len(slot) < 2:
            continue
        by_day.setdefault(slot[0], []).append(slot[1:])

    parts = []
    for day in sorted(by_day, key=lambda d: DAY_LETTERS.find(d)):
        periods = sorted(set(by_day[day]), key=_period_rank)
        parts.append(f"{day}{''.join(periods)}")
    return ",".join(parts)
