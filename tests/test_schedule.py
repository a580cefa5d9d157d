"""
Tests for schedule resolution.
"""
from datetime import datetime

import pytest

from bulkio.core.exceptions import InvalidScheduleError
from bulkio.core.schedule import PRESETS, expand_day_of_week, next_run_at, normalize_recipients, resolve_cron


# 2026-01-01 is a Thursday
THURSDAY = datetime(2026, 1, 1, 10, 0)


class TestResolveCron:
    def test_presets(self):
        assert resolve_cron("daily") == PRESETS["daily"]
        assert resolve_cron(" Weekly ") == PRESETS["weekly"]

    def test_cron_passthrough(self):
        assert resolve_cron("*/15 * * * *") == "*/15 * * * *"

    @pytest.mark.parametrize("value", ["", "hourly", "* * * *", "0 0 * * * *"])
    def test_invalid(self, value):
        with pytest.raises(InvalidScheduleError):
            resolve_cron(value)


class TestExpandDayOfWeek:
    def test_sunday_aliases(self):
        assert expand_day_of_week("0") == ["sun"]
        assert expand_day_of_week("7") == ["sun"]
        assert expand_day_of_week("SUN") == ["sun"]

    def test_lists_ranges_and_steps(self):
        assert expand_day_of_week("*/2") == ["sun", "tue", "thu", "sat"]
        assert expand_day_of_week("1,3-4") == ["mon", "wed", "thu"]
        assert expand_day_of_week("2/2") == ["tue", "thu", "sat"]


class TestNextRunAt:
    def test_daily(self):
        assert next_run_at("daily", THURSDAY) == datetime(2026, 1, 2, 0, 0)

    def test_weekly_runs_on_sunday(self):
        assert next_run_at("weekly", THURSDAY) == datetime(2026, 1, 4, 0, 0)

    def test_monthly(self):
        assert next_run_at("monthly", datetime(2026, 1, 15)) == datetime(2026, 2, 1, 0, 0)

    def test_crontab_day_of_week_numbers(self):
        # Crontab 1 is Monday, 0 and 7 are Sunday
        assert next_run_at("30 9 * * 1", THURSDAY) == datetime(2026, 1, 5, 9, 30)
        assert next_run_at("0 8 * * 0", THURSDAY) == datetime(2026, 1, 4, 8, 0)
        assert next_run_at("0 8 * * 7", THURSDAY) == datetime(2026, 1, 4, 8, 0)

    def test_day_of_week_range_starting_on_sunday(self):
        assert next_run_at("0 9 * * 0-6", THURSDAY) == datetime(2026, 1, 2, 9, 0)
        assert next_run_at("0 9 * * 0-5", datetime(2026, 1, 2, 10, 0)) == datetime(2026, 1, 4, 9, 0)

    def test_weekday_range(self):
        friday_evening = datetime(2026, 1, 2, 18, 0)
        assert next_run_at("0 9 * * 1-5", friday_evening) == datetime(2026, 1, 5, 9, 0)
        assert next_run_at("0 9 * * mon-fri", friday_evening) == datetime(2026, 1, 5, 9, 0)

    def test_day_of_week_step_counts_from_sunday(self):
        # Sunday, Tuesday, Thursday, Saturday; Thursday midnight already passed
        assert next_run_at("0 0 * * */2", THURSDAY) == datetime(2026, 1, 3, 0, 0)
        assert next_run_at("0 0 * * 1-5/2", THURSDAY) == datetime(2026, 1, 2, 0, 0)

    def test_range_ending_on_seven(self):
        assert next_run_at("0 0 * * 5-7", datetime(2026, 1, 3, 12, 0)) == datetime(2026, 1, 4, 0, 0)

    def test_day_of_month_or_day_of_week(self):
        # Both fields restricted: the 15th or any Monday, whichever comes first
        assert next_run_at("0 0 15 * 1", THURSDAY) == datetime(2026, 1, 5, 0, 0)
        assert next_run_at("0 0 2 * 1", THURSDAY) == datetime(2026, 1, 2, 0, 0)

    def test_day_of_month_with_wildcard_day_of_week(self):
        assert next_run_at("0 0 15 * *", THURSDAY) == datetime(2026, 1, 15, 0, 0)

    @pytest.mark.parametrize("value", ["0 0 * * 5-1", "0 0 * * 8", "0 0 * * */0", "0 0 * * funday"])
    def test_invalid_day_of_week(self, value):
        with pytest.raises(InvalidScheduleError):
            next_run_at(value, THURSDAY)

    def test_strictly_after(self):
        midnight = datetime(2026, 1, 2, 0, 0)
        assert next_run_at("daily", midnight) == datetime(2026, 1, 3, 0, 0)

    def test_sequence_strictly_increases(self):
        current = THURSDAY
        for _ in range(10):
            following = next_run_at("*/20 * * * *", current)
            assert following > current
            current = following
        assert current == datetime(2026, 1, 1, 13, 20)

    def test_out_of_range_field(self):
        with pytest.raises(InvalidScheduleError):
            next_run_at("61 * * * *", THURSDAY)

    def test_timezone(self):
        # 09:00 in Nairobi is 06:00 UTC
        assert next_run_at("0 9 * * *", THURSDAY, tz="Africa/Nairobi") == datetime(2026, 1, 2, 6, 0)


class TestRecipients:
    def test_normalized_and_deduplicated(self):
        assert normalize_recipients(["Ops@Example.com", "ops@example.com", " finance@example.com "]) == [
            "ops@example.com",
            "finance@example.com",
        ]

    def test_invalid_address(self):
        with pytest.raises(InvalidScheduleError, match="not-an-email"):
            normalize_recipients(["ops@example.com", "not-an-email"])

    def test_empty(self):
        with pytest.raises(InvalidScheduleError, match="At least one recipient"):
            normalize_recipients(["", None])
