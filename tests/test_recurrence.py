"""Tests for repeat rules and next-occurrence calculation."""

from datetime import datetime, timezone

import pytest

from npd_reminders.reminders.recurrence import RepeatRule, next_occurrence, occurrences


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestNextOccurrence:
    def test_daily_adds_one_calendar_day(self):
        assert next_occurrence(utc(2025, 1, 1, 9), RepeatRule.DAILY) == utc(2025, 1, 2, 9)

    def test_weekly_adds_seven_days(self):
        assert next_occurrence(utc(2025, 1, 28, 9), "weekly") == utc(2025, 2, 4, 9)

    def test_monthly_keeps_day_of_month(self):
        assert next_occurrence(utc(2025, 1, 1, 9), "monthly") == utc(2025, 2, 1, 9)

    def test_monthly_from_jan_31_clamps_to_month_end(self):
        dates = list(occurrences(utc(2025, 1, 31, 9), "monthly", 2))
        assert dates == [utc(2025, 2, 28, 9), utc(2025, 3, 28, 9)]

    def test_monthly_from_jan_31_in_leap_year(self):
        dates = list(occurrences(utc(2024, 1, 31, 9), "monthly", 2))
        assert dates == [utc(2024, 2, 29, 9), utc(2024, 3, 29, 9)]

    def test_yearly_from_leap_day(self):
        assert next_occurrence(utc(2024, 2, 29), "yearly") == utc(2025, 2, 28)

    def test_unknown_rule_falls_back_to_daily(self):
        assert next_occurrence(utc(2025, 5, 5, 12), "fortnightly") == utc(2025, 5, 6, 12)

    @pytest.mark.parametrize("rule", ["daily", "weekly", "monthly", "yearly"])
    def test_occurrences_strictly_increase(self, rule):
        previous = utc(2025, 1, 31, 23, 30)
        for current in occurrences(previous, rule, 24):
            assert current > previous
            previous = current

    def test_monthly_never_skips_a_month(self):
        start = utc(2025, 1, 31)
        months = [d.month for d in occurrences(start, "monthly", 11)]
        assert months == list(range(2, 13))


class TestRepeatRuleParse:
    def test_empty_values_mean_one_shot(self):
        assert RepeatRule.parse(None) is RepeatRule.NONE
        assert RepeatRule.parse("") is RepeatRule.NONE

    def test_case_insensitive(self):
        assert RepeatRule.parse(" Monthly ") is RepeatRule.MONTHLY

    def test_unknown_value_repeats_daily(self):
        assert RepeatRule.parse("hourly") is RepeatRule.DAILY
