"""
Tests for the recurrence engine (pure date math).
"""

import pytest
from datetime import date, datetime
from decimal import Decimal

from pocketledger.models.ledger import TransactionType
from pocketledger.models.recurrence import Frequency, RecurrenceRule
from pocketledger.recurrence import (
    add_months,
    add_years,
    as_date,
    last_day_of_month,
    next_occurrence,
    occurrences_in_range,
)


def make_rule(**overrides) -> RecurrenceRule:
    fields = dict(
        title="Subscription",
        type=TransactionType.EXPENSE,
        amount=Decimal("1000"),
        instrument_id="card",
        start_date=date(2024, 1, 1),
        frequency=Frequency.MONTHLY,
    )
    fields.update(overrides)
    return RecurrenceRule(**fields)


class TestDateHelpers:
    """Tests for month/year arithmetic."""

    def test_last_day_of_month_leap_year(self):
        """Test February length in leap and common years."""
        assert last_day_of_month(2024, 2) == 29
        assert last_day_of_month(2023, 2) == 28

    def test_add_months_rolls_over_without_pin(self):
        """Test that Jan 31 + 1 month overflows into March when no day is pinned."""
        assert add_months(date(2023, 1, 31), 1) == date(2023, 3, 3)
        assert add_months(date(2024, 1, 31), 1) == date(2024, 3, 2)

    def test_add_months_wraps_year(self):
        """Test that months past December wrap into the next year."""
        assert add_months(date(2024, 11, 15), 3) == date(2025, 2, 15)

    def test_add_months_with_pinned_day(self):
        """Test that a pinned day is used instead of the base day, clamped."""
        assert add_months(date(2024, 1, 5), 1, day=31) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1, day=31) == date(2023, 2, 28)

    def test_add_years_feb_29(self):
        """Test that a leap-day anchor rolls over to Mar 1."""
        assert add_years(date(2024, 2, 29), 1) == date(2025, 3, 1)

    def test_add_years_pinned_clamps(self):
        """Test that a pinned Feb 29 clamps to Feb 28 in common years."""
        assert add_years(date(2024, 2, 29), 1, month_of_year=2, day_of_month=29) == date(2025, 2, 28)

    def test_as_date_drops_time(self):
        """Test datetime references are reduced to dates."""
        assert as_date(datetime(2024, 3, 1, 23, 59)) == date(2024, 3, 1)


class TestNextOccurrence:
    """Tests for next_occurrence."""

    def test_daily_rollover(self):
        """Daily rules roll over month ends without clamping."""
        rule = make_rule(
            frequency=Frequency.DAILY,
            start_date=date(2024, 1, 1),
            last_generated_date=date(2024, 1, 30),
        )
        first = next_occurrence(rule, date(2024, 1, 30))
        assert first == date(2024, 1, 31)

        advanced = rule.model_copy(update={"last_generated_date": first})
        assert next_occurrence(advanced, first) == date(2024, 2, 1)

    def test_monthly_day_31_clamps_to_leap_day(self):
        """Monthly day 31 from Jan 31 lands on Feb 29 in a leap year."""
        rule = make_rule(
            start_date=date(2024, 1, 31),
            day_of_month=31,
        )
        assert next_occurrence(rule, date(2024, 1, 31)) == date(2024, 2, 29)

    def test_monthly_day_31_returns_to_31(self):
        """After a clamped month the pinned day is restored."""
        rule = make_rule(
            start_date=date(2024, 1, 31),
            day_of_month=31,
            last_generated_date=date(2024, 2, 29),
        )
        assert next_occurrence(rule, date(2024, 2, 29)) == date(2024, 3, 31)

    def test_monthly_uses_start_date_as_base(self):
        """Without a cursor the rule steps from its start date."""
        rule = make_rule(start_date=date(2024, 1, 25), day_of_month=25)
        assert next_occurrence(rule, date(2024, 1, 25)) == date(2024, 2, 25)

    def test_monthly_skips_to_reference(self):
        """A stale cursor is stepped until the reference is reached."""
        rule = make_rule(
            start_date=date(2024, 1, 10),
            day_of_month=10,
            last_generated_date=date(2024, 1, 10),
        )
        assert next_occurrence(rule, date(2024, 4, 11)) == date(2024, 5, 10)

    def test_monthly_interval(self):
        """Test a quarterly rule."""
        rule = make_rule(start_date=date(2024, 1, 15), interval=3)
        assert next_occurrence(rule, date(2024, 1, 15)) == date(2024, 4, 15)

    def test_weekly_catch_up(self):
        """Weekly rules re-step in whole intervals."""
        rule = make_rule(frequency=Frequency.WEEKLY, start_date=date(2024, 1, 1))
        assert next_occurrence(rule, date(2024, 1, 20)) == date(2024, 1, 22)

    def test_weekly_day_of_week(self):
        """A weekday pin shifts forward, 0 = Sunday."""
        # 2024-01-01 is a Monday; 5 = Friday
        rule = make_rule(
            frequency=Frequency.WEEKLY,
            start_date=date(2024, 1, 1),
            day_of_week=5,
        )
        assert next_occurrence(rule, date(2024, 1, 1)) == date(2024, 1, 12)

    def test_weekly_sunday(self):
        """Sunday is weekday 0."""
        rule = make_rule(
            frequency=Frequency.WEEKLY,
            start_date=date(2024, 1, 1),
            day_of_week=0,
        )
        assert next_occurrence(rule, date(2024, 1, 1)) == date(2024, 1, 14)

    def test_yearly_pinned_month_and_day(self):
        """Yearly rules with a pinned month and day."""
        rule = make_rule(
            frequency=Frequency.YEARLY,
            start_date=date(2024, 1, 1),
            month_of_year=4,
            day_of_month=1,
        )
        assert next_occurrence(rule, date(2024, 1, 1)) == date(2025, 4, 1)

    def test_yearly_leap_anchor(self):
        """An unpinned Feb 29 start rolls over to Mar 1 in common years."""
        rule = make_rule(frequency=Frequency.YEARLY, start_date=date(2024, 2, 29))
        assert next_occurrence(rule, date(2024, 2, 29)) == date(2025, 3, 1)

    def test_ended_rule_returns_none(self):
        """A reference past the end date yields nothing."""
        rule = make_rule(start_date=date(2024, 1, 1), end_date=date(2024, 3, 31))
        assert next_occurrence(rule, date(2024, 4, 5)) is None

    def test_candidate_past_end_returns_none(self):
        """A step that overshoots the end date yields nothing."""
        rule = make_rule(
            start_date=date(2024, 1, 1),
            end_date=date(2024, 3, 31),
            last_generated_date=date(2024, 3, 1),
        )
        assert next_occurrence(rule, date(2024, 3, 1)) is None

    def test_next_occurrence_does_not_mutate_rule(self):
        """The engine is pure."""
        rule = make_rule(last_generated_date=date(2024, 2, 1))
        before = rule.model_dump()
        next_occurrence(rule, date(2024, 6, 1))
        assert rule.model_dump() == before

    def test_accepts_datetime_reference(self):
        """Test datetime references behave like their date."""
        rule = make_rule(start_date=date(2024, 1, 25), day_of_month=25)
        assert next_occurrence(rule, datetime(2024, 2, 25, 9, 0)) == date(2024, 2, 25)


class TestOccurrencesInRange:
    """Tests for occurrences_in_range."""

    def test_monthly_day_31_window(self):
        """Test clamped and restored month ends across a window."""
        rule = make_rule(start_date=date(2024, 1, 31), day_of_month=31)
        assert occurrences_in_range(rule, date(2024, 1, 1), date(2024, 5, 31)) == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
            date(2024, 4, 30),
            date(2024, 5, 31),
        ]

    def test_daily_interval(self):
        """Test every third day."""
        rule = make_rule(frequency=Frequency.DAILY, interval=3, start_date=date(2024, 1, 1))
        assert occurrences_in_range(rule, date(2024, 1, 1), date(2024, 1, 10)) == [
            date(2024, 1, 1),
            date(2024, 1, 4),
            date(2024, 1, 7),
            date(2024, 1, 10),
        ]

    def test_window_after_start(self):
        """Occurrences before the window are skipped."""
        rule = make_rule(frequency=Frequency.DAILY, start_date=date(2024, 1, 1))
        result = occurrences_in_range(rule, date(2024, 3, 1), date(2024, 3, 3))
        assert result == [date(2024, 3, 1), date(2024, 3, 2), date(2024, 3, 3)]

    def test_unaligned_window_keeps_schedule(self):
        """A window starting between occurrences returns only scheduled days."""
        rule = make_rule(start_date=date(2024, 1, 15), day_of_month=15)
        assert occurrences_in_range(rule, date(2024, 3, 3), date(2024, 5, 31)) == [
            date(2024, 3, 15),
            date(2024, 4, 15),
            date(2024, 5, 15),
        ]

    def test_unpinned_monthly_window(self):
        """Without a pin the start day is kept."""
        rule = make_rule(start_date=date(2024, 1, 15))
        assert occurrences_in_range(rule, date(2024, 2, 16), date(2024, 4, 30)) == [
            date(2024, 3, 15),
            date(2024, 4, 15),
        ]

    def test_weekly_day_of_week_window(self):
        """A weekday pin moves the first occurrence off a start date on another day."""
        # 2024-01-01 is a Monday; 3 = Wednesday
        rule = make_rule(frequency=Frequency.WEEKLY, start_date=date(2024, 1, 1), day_of_week=3)
        assert occurrences_in_range(rule, date(2024, 1, 1), date(2024, 1, 20)) == [
            date(2024, 1, 3),
            date(2024, 1, 10),
            date(2024, 1, 17),
        ]

    def test_pinned_day_before_start_moves_to_next_month(self):
        """A pinned day earlier in the start month begins the following month."""
        rule = make_rule(start_date=date(2024, 1, 20), day_of_month=10)
        assert occurrences_in_range(rule, date(2024, 1, 1), date(2024, 3, 31)) == [
            date(2024, 2, 10),
            date(2024, 3, 10),
        ]

    def test_stops_at_end_date(self):
        """Test that the rule's end date bounds the walk."""
        rule = make_rule(
            frequency=Frequency.WEEKLY,
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 20),
        )
        assert occurrences_in_range(rule, date(2024, 1, 1), date(2024, 12, 31)) == [
            date(2024, 1, 1),
            date(2024, 1, 8),
            date(2024, 1, 15),
        ]

    def test_empty_when_window_before_start(self):
        """A window entirely before the start date is empty."""
        rule = make_rule(start_date=date(2024, 6, 1))
        assert occurrences_in_range(rule, date(2024, 1, 1), date(2024, 5, 31)) == []

    def test_restartable_and_ignores_cursor(self):
        """Identical inputs give identical output, whatever the cursor."""
        rule = make_rule(start_date=date(2024, 1, 15))
        moved = rule.model_copy(update={"last_generated_date": date(2024, 9, 15)})

        first = occurrences_in_range(rule, date(2024, 1, 1), date(2024, 6, 30))
        second = occurrences_in_range(rule, date(2024, 1, 1), date(2024, 6, 30))
        assert first == second
        assert occurrences_in_range(moved, date(2024, 1, 1), date(2024, 6, 30)) == first
        assert moved.last_generated_date == date(2024, 9, 15)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
