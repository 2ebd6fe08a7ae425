# Overview: Pytest coverage for allocation calendar arithmetic (pure functions, no database).

from datetime import datetime, timezone, timedelta
from types import SimpleNamespace

import pytest

from shopledger.errors import ValidationError
from shopledger.scheduling import (
    DUE_DUE,
    DUE_NEVER_GIVEN,
    DUE_NOT_DUE,
    DUE_OVERDUE,
    add_months,
    allocation_due_status,
    calculate_next_due_date,
    format_specific_days,
    parse_specific_days,
)


def _allocation(frequency, last_given_at=None, specific_days=None):
    return SimpleNamespace(frequency=frequency, last_given_at=last_given_at, specific_days=specific_days)


class TestAddMonths:

    def test_clamps_to_end_of_february_in_leap_year(self):
        assert add_months(datetime(2024, 1, 31, 10, 0), 1) == datetime(2024, 2, 29, 10, 0)

    def test_clamps_to_end_of_february(self):
        assert add_months(datetime(2025, 1, 31), 1) == datetime(2025, 2, 28)

    def test_crosses_year_boundary(self):
        assert add_months(datetime(2025, 11, 15), 4) == datetime(2026, 3, 15)


class TestCalculateNextDueDate:

    def test_yearly(self):
        assert calculate_next_due_date("yearly", None, datetime(2026, 1, 10)) == datetime(2027, 1, 10)

    def test_termly_and_once_per_term_add_four_months(self):
        start = datetime(2026, 1, 10)
        assert calculate_next_due_date("termly", None, start) == datetime(2026, 5, 10)
        assert calculate_next_due_date("once_per_term", None, start) == datetime(2026, 5, 10)

    def test_monthly_clamps(self):
        assert calculate_next_due_date("monthly", None, datetime(2026, 3, 31)) == datetime(2026, 4, 30)

    def test_weekly(self):
        assert calculate_next_due_date("weekly", None, datetime(2026, 3, 2, 9)) == datetime(2026, 3, 9, 9)

    def test_specific_days_picks_next_allowed_weekday(self):
        # Monday 2026-03-02 -> Wednesday 2026-03-04
        result = calculate_next_due_date("specific_days", "monday,wednesday", datetime(2026, 3, 2, 8, 30))
        assert result == datetime(2026, 3, 4, 8, 30)

    def test_specific_days_is_strictly_after(self):
        # Wednesday -> following Monday, not the same Wednesday
        result = calculate_next_due_date("specific_days", ["wednesday", "monday"], datetime(2026, 3, 4))
        assert result == datetime(2026, 3, 9)

    def test_specific_days_single_day_wraps_a_full_week(self):
        result = calculate_next_due_date("specific_days", "monday", datetime(2026, 3, 2))
        assert result == datetime(2026, 3, 9)

    def test_specific_days_empty_falls_back_to_a_week(self):
        assert calculate_next_due_date("specific_days", None, datetime(2026, 3, 2)) == datetime(2026, 3, 9)

    def test_aware_input_is_normalized_to_utc(self):
        eat = timezone(timedelta(hours=3))
        result = calculate_next_due_date("weekly", None, datetime(2026, 3, 2, 12, 0, tzinfo=eat))
        assert result == datetime(2026, 3, 9, 9, 0)

    def test_unknown_frequency_rejected(self):
        with pytest.raises(ValidationError):
            calculate_next_due_date("fortnightly", None, datetime(2026, 3, 2))


class TestSpecificDaysParsing:

    def test_parse_is_case_insensitive_and_sorted(self):
        assert parse_specific_days(" Friday, monday ,WEDNESDAY") == (0, 2, 4)

    def test_format_round_trips_to_canonical_form(self):
        assert format_specific_days(parse_specific_days(["sunday", "Monday"])) == "monday,sunday"

    def test_unknown_weekday_rejected(self):
        with pytest.raises(ValidationError):
            parse_specific_days("monday,funday")


class TestAllocationDueStatus:

    def test_never_given_is_due(self):
        status = allocation_due_status(_allocation("yearly"), datetime(2026, 3, 2))
        assert status.state == DUE_NEVER_GIVEN
        assert status.is_due

    def test_weekly_due_after_eight_days(self):
        now = datetime(2026, 3, 10, 9)
        status = allocation_due_status(_allocation("weekly", now - timedelta(days=8)), now)
        assert status.state == DUE_DUE
        assert status.days_overdue == 1

    def test_weekly_not_due_after_three_days(self):
        now = datetime(2026, 3, 10, 9)
        status = allocation_due_status(_allocation("weekly", now - timedelta(days=3)), now)
        assert status.state == DUE_NOT_DUE
        assert not status.is_due

    def test_weekly_overdue_after_a_missed_period(self):
        now = datetime(2026, 3, 20, 9)
        status = allocation_due_status(_allocation("weekly", now - timedelta(days=15)), now)
        assert status.state == DUE_OVERDUE
        assert status.days_overdue == 8

    def test_monthly_due_exactly_on_the_boundary(self):
        status = allocation_due_status(_allocation("monthly", datetime(2026, 1, 31)), datetime(2026, 2, 28))
        assert status.state == DUE_DUE

    def test_specific_days_due_on_allowed_day(self):
        # Given Monday 2026-03-02, checked Wednesday 2026-03-04
        alloc = _allocation("specific_days", datetime(2026, 3, 2, 10), "monday,wednesday")
        status = allocation_due_status(alloc, datetime(2026, 3, 4, 8))
        assert status.state == DUE_DUE

    def test_specific_days_not_due_on_other_weekday(self):
        alloc = _allocation("specific_days", datetime(2026, 3, 2, 10), "monday,wednesday")
        status = allocation_due_status(alloc, datetime(2026, 3, 3, 8))
        assert status.state == DUE_NOT_DUE

    def test_specific_days_not_due_twice_on_same_date(self):
        alloc = _allocation("specific_days", datetime(2026, 3, 2, 7), "monday")
        status = allocation_due_status(alloc, datetime(2026, 3, 2, 15))
        assert status.state == DUE_NOT_DUE

    def test_specific_days_overdue_after_skipped_day(self):
        # Last given Monday 2026-03-02; Wednesday 03-04 skipped; checked Monday 03-09
        alloc = _allocation("specific_days", datetime(2026, 3, 2, 10), "monday,wednesday")
        status = allocation_due_status(alloc, datetime(2026, 3, 9, 8))
        assert status.state == DUE_OVERDUE
        assert status.days_overdue == 5
