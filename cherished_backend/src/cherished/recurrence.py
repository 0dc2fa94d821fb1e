"""
Date recurrence and status engine.

Pure calendar-date arithmetic for tracked dates: parsing stored ``YYYY-MM-DD``
values, finding the next occurrence of a yearly/monthly/one-time date,
counting days from "today", classifying urgency and counting completed
anniversaries.

Every function takes "today" explicitly; nothing here reads the system clock.
All dates are plain ``datetime.date`` values (no time-of-day, no tzinfo) with
1-based months.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

from dateutil.relativedelta import relativedelta

_ISO_DATE_RE = re.compile(r"^([0-9]{4})-([0-9]{2})-([0-9]{2})$")

# The following yearly/monthly cycle of any accepted date must stay within
# datetime.date, so year 9999 is not accepted.
MAX_YEAR = 9998

_MONTH_ABBR = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

DateInput = Union[str, date, Tuple[int, int, int], Sequence[int]]


class InvalidDateFormat(ValueError):
    """Raised when an input is not a valid ``YYYY-MM-DD`` calendar date."""

    def __init__(self, value: object, reason: str = "expected a YYYY-MM-DD calendar date") -> None:
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid date {value!r}: {reason}")


# PUBLIC_INTERFACE
class RecurrenceKind(str, Enum):
    """How a tracked date repeats."""

    YEARLY = "yearly"
    MONTHLY = "monthly"
    ONE_TIME = "one-time"

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]


_KIND_LABELS = {
    RecurrenceKind.YEARLY: "Yearly",
    RecurrenceKind.MONTHLY: "Monthly",
    RecurrenceKind.ONE_TIME: "One-time",
}


# PUBLIC_INTERFACE
class StatusCategory(str, Enum):
    """Urgency bucket derived from a day offset."""

    OVERDUE = "overdue"
    TODAY = "today"
    UPCOMING = "upcoming"
    FUTURE = "future"


@dataclass(frozen=True)
class StatusClassification:
    category: StatusCategory
    label: str


@dataclass(frozen=True)
class DateStatus:
    """
    Everything derived for one tracked date on one calendar day.

    ``years_elapsed`` is only populated for yearly dates.
    """

    original: date
    kind: RecurrenceKind
    next_occurrence: date
    days_until: int
    category: StatusCategory
    label: str
    years_elapsed: Optional[int] = None


# PUBLIC_INTERFACE
def parse_calendar_date(value: DateInput) -> date:
    """
    Normalize a stored date into a ``date``.

    Accepts an ISO ``YYYY-MM-DD`` string, a ``(year, month, day)`` triple or a
    ``date``. No timezone conversion is ever applied: ``"2024-03-15"`` is
    always March 15th, 2024.

    Raises:
        InvalidDateFormat: malformed input or an impossible calendar day.
    """
    # datetime is a date subclass but carries a time-of-day
    if isinstance(value, datetime):
        raise InvalidDateFormat(value, "datetime values are not calendar dates")
    if isinstance(value, date):
        return _in_range(value, value)

    if isinstance(value, str):
        m = _ISO_DATE_RE.match(value.strip())
        if m is None:
            raise InvalidDateFormat(value)
        year, month, day = (int(part) for part in m.groups())
    elif isinstance(value, (tuple, list)) and len(value) == 3 and all(
        isinstance(part, int) and not isinstance(part, bool) for part in value
    ):
        year, month, day = value
    else:
        raise InvalidDateFormat(value, "unsupported date input type")

    try:
        parsed = date(year, month, day)
    except ValueError as e:
        raise InvalidDateFormat(value, str(e)) from e
    return _in_range(parsed, value)


def _in_range(parsed: date, value: object) -> date:
    if parsed.year > MAX_YEAR:
        raise InvalidDateFormat(value, f"year must be at most {MAX_YEAR}")
    return parsed


# PUBLIC_INTERFACE
def format_calendar_date(value: date) -> str:
    """Render a calendar date as ``YYYY-MM-DD``."""
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def format_display_date(value: date) -> str:
    """Render a calendar date for humans, e.g. ``Mar 5, 2026``."""
    return f"{_MONTH_ABBR[value.month - 1]} {value.day}, {value.year}"


def _shifted(original: date, **delta: int) -> date:
    # relativedelta keeps the original day, clamping to the month's last day
    # (day 31 in a 30-day month, Feb 29 in a common year)
    return original + relativedelta(**delta)


# PUBLIC_INTERFACE
def next_occurrence(original: date, kind: Union[RecurrenceKind, str], today: date) -> date:
    """
    Return the next occurrence of ``original`` on or after ``today``.

    - one-time: always ``original``, even once it has passed.
    - yearly: same month/day in today's year, or next year if that is
      already behind us. Feb 29 falls on Feb 28 in common years.
    - monthly: same day in today's month, or next month if already behind
      us. Days past the month's end clamp to its last day.

    A candidate equal to ``today`` is today's occurrence and is not advanced.
    """
    kind = RecurrenceKind(kind)
    if kind is RecurrenceKind.ONE_TIME:
        return original

    if kind is RecurrenceKind.YEARLY:
        years = today.year - original.year
        candidate = _shifted(original, years=years)
        if candidate < today:
            candidate = _shifted(original, years=years + 1)
        return candidate

    months = (today.year - original.year) * 12 + (today.month - original.month)
    candidate = _shifted(original, months=months)
    if candidate < today:
        candidate = _shifted(original, months=months + 1)
    return candidate


# PUBLIC_INTERFACE
def days_until(target: date, today: date) -> int:
    """Signed number of calendar days from ``today`` to ``target``."""
    return target.toordinal() - today.toordinal()


def _plural_days(n: int) -> str:
    return f"{n} day" if n == 1 else f"{n} days"


# PUBLIC_INTERFACE
def classify(offset: int, occurrence: Optional[date] = None) -> StatusClassification:
    """
    Map a day offset to a status category and label.

    Offsets beyond a week are labelled with the occurrence's display date
    when one is given.
    """
    if offset < 0:
        return StatusClassification(StatusCategory.OVERDUE, f"{_plural_days(-offset)} overdue")
    if offset == 0:
        return StatusClassification(StatusCategory.TODAY, "Today")
    if offset == 1:
        return StatusClassification(StatusCategory.UPCOMING, "Tomorrow")
    if offset <= 7:
        return StatusClassification(StatusCategory.UPCOMING, f"In {offset} days")
    label = format_display_date(occurrence) if occurrence is not None else f"In {offset} days"
    return StatusClassification(StatusCategory.FUTURE, label)


# PUBLIC_INTERFACE
def years_elapsed(original: date, today: date) -> int:
    """
    Completed anniversaries of ``original`` as of ``today``; never negative.

    A Feb 29 original completes its year on Feb 28 in common years, the same
    day next_occurrence reports.
    """
    return max(0, relativedelta(today, original).years)


# PUBLIC_INTERFACE
def evaluate(original: date, kind: Union[RecurrenceKind, str], today: date) -> DateStatus:
    """Run the whole engine for one date."""
    kind = RecurrenceKind(kind)
    occurrence = next_occurrence(original, kind, today)
    offset = days_until(occurrence, today)
    status = classify(offset, occurrence)
    return DateStatus(
        original=original,
        kind=kind,
        next_occurrence=occurrence,
        days_until=offset,
        category=status.category,
        label=status.label,
        years_elapsed=years_elapsed(original, today) if kind is RecurrenceKind.YEARLY else None,
    )

