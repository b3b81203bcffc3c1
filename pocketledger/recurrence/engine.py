"""
Recurrence Engine

Pure date math over a RecurrenceRule:
- next_occurrence: the next due date after the rule's cursor
- occurrences_in_range: every scheduled occurrence inside a window

Nothing here touches storage or mutates the rule. The same inputs
always produce the same dates.

Day-of-week numbering follows the rule model: 0 = Sunday ... 6 = Saturday.
"""

import calendar
from datetime import date, datetime, timedelta
from typing import Optional, Union

from pocketledger.models.recurrence import Frequency, RecurrenceRule

DateLike = Union[date, datetime]


def as_date(value: DateLike) -> date:
    """Drop the time part of a datetime; dates pass through."""
    if isinstance(value, datetime):
        return value.date()
    return value


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _calendar_date(year: int, month: int, day: int) -> date:
    """Build a date, letting a day past the month's end roll into the next month."""
    return date(year, month, 1) + timedelta(days=day - 1)


def add_months(base: date, months: int, day: Optional[int] = None) -> date:
    """
    Move ``base`` by ``months`` calendar months.

    A pinned ``day`` is clamped to the length of the target month
    (day 31 in February -> Feb 28/29). Without a pin the base day is kept
    and overflows into the following month (Jan 31 + 1 month -> Mar 2/3).
    """
    years, month_index = divmod(base.month - 1 + months, 12)
    year = base.year + years
    month = month_index + 1
    if day is not None:
        return date(year, month, min(day, last_day_of_month(year, month)))
    return _calendar_date(year, month, base.day)


def add_years(
    base: date,
    years: int,
    month_of_year: Optional[int] = None,
    day_of_month: Optional[int] = None,
) -> date:
    """
    Move ``base`` by ``years``.

    With both ``month_of_year`` and ``day_of_month`` the date is pinned and
    the day clamped. Otherwise Feb 29 rolls over to Mar 1 in common years.
    """
    year = base.year + years
    if month_of_year is not None and day_of_month is not None:
        return date(year, month_of_year, min(day_of_month, last_day_of_month(year, month_of_year)))
    return _calendar_date(year, base.month, base.day)


def weekday_sunday_first(value: date) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (value.weekday() + 1) % 7


def _step_fixed(base: date, step_days: int, reference: date) -> date:
    """Add ``step_days`` once, then as many more times as needed to reach ``reference``."""
    candidate = base + timedelta(days=step_days)
    if candidate < reference:
        behind = (reference - candidate).days
        steps = -(-behind // step_days)
        candidate += timedelta(days=steps * step_days)
    return candidate


def _advance(rule: RecurrenceRule, base: date, reference: date) -> date:
    """
    Step ``base`` forward by one rule interval, then keep stepping while
    the candidate is still earlier than ``reference``.
    """
    interval = rule.interval

    if rule.frequency == Frequency.DAILY:
        return _step_fixed(base, interval, reference)

    if rule.frequency == Frequency.WEEKLY:
        candidate = _step_fixed(base, interval * 7, reference)
        if rule.day_of_week is not None:
            shift = (rule.day_of_week - weekday_sunday_first(candidate)) % 7
            candidate += timedelta(days=shift)
        return candidate

    if rule.frequency == Frequency.MONTHLY:
        candidate = add_months(base, interval, rule.day_of_month)
        while candidate < reference:
            candidate = add_months(candidate, interval, rule.day_of_month)
        return candidate

    if rule.frequency == Frequency.YEARLY:
        candidate = add_years(base, interval, rule.month_of_year, rule.day_of_month)
        while candidate < reference:
            candidate = add_years(candidate, interval, rule.month_of_year, rule.day_of_month)
        return candidate

    raise ValueError(f"Unsupported frequency: {rule.frequency}")


def _bounded_next(rule: RecurrenceRule, base: date, reference: date) -> Optional[date]:
    # end_date is compared with the reference before stepping, and with
    # the candidate after stepping
    if rule.end_date is not None and rule.end_date < reference:
        return None

    candidate = _advance(rule, base, reference)

    if rule.end_date is not None and candidate > rule.end_date:
        return None
    return candidate


def next_occurrence(rule: RecurrenceRule, reference_date: DateLike) -> Optional[date]:
    """
    Compute the next occurrence of ``rule`` on or after ``reference_date``.

    The base is the rule's cursor (``last_generated_date``), or its start
    date when nothing has been generated yet.

    Returns:
        The next occurrence, or None when the rule has ended.
    """
    base = rule.last_generated_date or rule.start_date
    return _bounded_next(rule, base, as_date(reference_date))


def _first_occurrence(rule: RecurrenceRule) -> date:
    """The start date, moved forward onto the rule's pinned weekday or day."""
    start = rule.start_date

    if rule.frequency == Frequency.WEEKLY and rule.day_of_week is not None:
        return start + timedelta(days=(rule.day_of_week - weekday_sunday_first(start)) % 7)

    if rule.frequency == Frequency.MONTHLY and rule.day_of_month is not None:
        candidate = add_months(start, 0, rule.day_of_month)
        if candidate < start:
            candidate = add_months(start, 1, rule.day_of_month)
        return candidate

    if (
        rule.frequency == Frequency.YEARLY
        and rule.month_of_year is not None
        and rule.day_of_month is not None
    ):
        candidate = add_years(start, 0, rule.month_of_year, rule.day_of_month)
        if candidate < start:
            candidate = add_years(start, 1, rule.month_of_year, rule.day_of_month)
        return candidate

    return start


def occurrences_in_range(
    rule: RecurrenceRule,
    window_start: DateLike,
    window_end: DateLike,
) -> list[date]:
    """
    Enumerate occurrences of ``rule`` between ``window_start`` and
    ``window_end`` (inclusive).

    The schedule is walked from the rule's start date one interval at a
    time, so only dates on the schedule are returned whatever the window.
    Occurrences before the window are skipped. The rule's own cursor is
    ignored and never modified.
    """
    start = as_date(window_start)
    end = as_date(window_end)

    occurrences: list[date] = []
    cursor = _first_occurrence(rule)

    while cursor <= end:
        if rule.end_date is not None and cursor > rule.end_date:
            break
        if cursor >= start:
            occurrences.append(cursor)
        # reference == base: exactly one step
        cursor = _advance(rule, cursor, cursor)

    return occurrences
