"""Tests for next-fire-time calculation."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from cronx.scheduler.exceptions import InvalidExpression, InvalidTimezone
from cronx.scheduler.recurrence import (
    CronExpressionTrigger,
    next_fire_time,
    validate_expression,
)

NEW_YORK = ZoneInfo("America/New_York")


@pytest.mark.parametrize(
    "expression",
    [
        "",
        "   ",
        "0 0 * *",
        "60 0 * * *",
        "0 24 * * *",
        "abc * * * *",
        "0 0 * * * *",
    ],
)
def test_invalid_expressions(expression: str):
    with pytest.raises(InvalidExpression):
        validate_expression(expression)


@pytest.mark.parametrize(
    "expression",
    ["* * * * *", "*/15 * * * *", "0 9 * * 1-5", "30 2 1,15 * *", "0 0 * * 0", "0 0 * * 7"],
)
def test_valid_expressions(expression: str):
    validate_expression(expression)


def test_next_fire_time_rejects_invalid_expression():
    with pytest.raises(InvalidExpression, match="Invalid cron expression"):
        next_fire_time("60 0 * * *", "UTC", datetime(2024, 1, 1, tzinfo=UTC))


def test_unknown_timezone():
    with pytest.raises(InvalidTimezone) as excinfo:
        next_fire_time("* * * * *", "Mars/Olympus_Mons", datetime(2024, 1, 1, tzinfo=UTC))
    assert isinstance(excinfo.value, InvalidExpression)
    assert "Mars/Olympus_Mons" in str(excinfo.value)


def test_every_fifteen_minutes():
    start = datetime(2024, 3, 1, 10, 7, tzinfo=UTC)
    assert next_fire_time("*/15 * * * *", "UTC", start) == datetime(2024, 3, 1, 10, 15, tzinfo=UTC)


def test_result_is_strictly_after_from_instant():
    """A from_instant that is itself a fire time is not returned."""
    start = datetime(2024, 1, 1, 0, 0, tzinfo=UTC)
    assert next_fire_time("0 0 * * *", "UTC", start) == datetime(2024, 1, 2, 0, 0, tzinfo=UTC)


def test_naive_from_instant_is_utc():
    naive = datetime(2024, 1, 1, 11, 59, 30)
    assert next_fire_time("0 12 * * *", "UTC", naive) == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def test_default_from_instant_is_now():
    before = datetime.now(UTC)
    result = next_fire_time("* * * * *", "UTC")
    assert before < result <= before + timedelta(minutes=1)


def test_repeated_application_lands_on_local_midnight():
    current = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
    for _ in range(10):
        nxt = next_fire_time("0 0 * * *", "America/New_York", current)
        assert nxt > current
        local = nxt.astimezone(NEW_YORK)
        assert (local.hour, local.minute) == (0, 0)
        current = nxt


def test_local_midnight_in_new_york_summer():
    start = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
    result = next_fire_time("0 0 * * *", "America/New_York", start)
    assert result.astimezone(UTC) == datetime(2024, 6, 2, 4, 0, tzinfo=UTC)


def test_day_of_week():
    # 2024-06-05 is a Wednesday; next Monday is the 10th.
    start = datetime(2024, 6, 5, 12, 0, tzinfo=UTC)
    assert next_fire_time("0 9 * * 1", "UTC", start) == datetime(2024, 6, 10, 9, 0, tzinfo=UTC)


def test_spring_forward_gap_is_skipped():
    """02:30 does not exist in New York on 2024-03-10; fire the next day."""
    start = datetime(2024, 3, 9, 12, 0, tzinfo=NEW_YORK)
    result = next_fire_time("30 2 * * *", "America/New_York", start)
    assert result.astimezone(UTC) == datetime(2024, 3, 11, 6, 30, tzinfo=UTC)
    local = result.astimezone(NEW_YORK)
    assert (local.day, local.hour, local.minute) == (11, 2, 30)


def test_spring_forward_interval_jumps_to_first_real_time():
    # 01:45 EST -> 02:00 and 02:30 do not exist -> 03:00 EDT (07:00 UTC)
    start = datetime(2024, 3, 10, 6, 45, tzinfo=UTC)
    result = next_fire_time("*/30 * * * *", "America/New_York", start)
    assert result.astimezone(UTC) == datetime(2024, 3, 10, 7, 0, tzinfo=UTC)


def test_never_returns_gap_times_over_dst_day():
    current = datetime(2024, 3, 10, 5, 0, tzinfo=UTC)
    end = datetime(2024, 3, 10, 9, 0, tzinfo=UTC)
    while current < end:
        nxt = next_fire_time("*/10 * * * *", "America/New_York", current)
        roundtrip = nxt.astimezone(UTC).astimezone(NEW_YORK)
        assert roundtrip.replace(tzinfo=None) == nxt.replace(tzinfo=None)
        assert nxt.astimezone(NEW_YORK).hour != 2
        current = nxt


def test_fall_back_first_occurrence():
    # 2024-11-03 05:00 UTC is 01:00 EDT, the first pass through 01:xx.
    start = datetime(2024, 11, 3, 5, 0, tzinfo=UTC)
    result = next_fire_time("30 1 * * *", "America/New_York", start)
    assert result.astimezone(UTC) == datetime(2024, 11, 3, 5, 30, tzinfo=UTC)


def test_fall_back_second_occurrence():
    # 05:45 UTC is 01:45 EDT; the repeated 01:30 EST (06:30 UTC) is still ahead.
    start = datetime(2024, 11, 3, 5, 45, tzinfo=UTC)
    result = next_fire_time("30 1 * * *", "America/New_York", start)
    assert result.astimezone(UTC) == datetime(2024, 11, 3, 6, 30, tzinfo=UTC)


def test_result_expressed_in_schedule_zone():
    result = next_fire_time("0 9 * * *", "Asia/Tokyo", datetime(2024, 1, 1, tzinfo=UTC))
    assert result.utcoffset() == timedelta(hours=9)
    assert result.hour == 9


class TestCronExpressionTrigger:
    def test_invalid_expression_rejected(self):
        with pytest.raises(InvalidExpression):
            CronExpressionTrigger("not a cron", "UTC")

    def test_first_fire_time(self):
        now = datetime(2024, 1, 1, 8, 0, 30, tzinfo=UTC)
        trigger = CronExpressionTrigger("*/5 * * * *", "UTC")
        assert trigger.get_next_fire_time(None, now) == datetime(2024, 1, 1, 8, 5, tzinfo=UTC)

    def test_follows_previous_fire_time(self):
        previous = datetime(2024, 1, 1, 8, 5, tzinfo=UTC)
        now = datetime(2024, 1, 1, 8, 5, 0, 500, tzinfo=UTC)
        trigger = CronExpressionTrigger("*/5 * * * *", "UTC")
        assert trigger.get_next_fire_time(previous, now) == datetime(2024, 1, 1, 8, 10, tzinfo=UTC)

    def test_matches_next_fire_time(self):
        now = datetime(2024, 3, 9, 23, 0, tzinfo=UTC)
        trigger = CronExpressionTrigger("30 2 * * *", "America/New_York")
        assert trigger.get_next_fire_time(None, now) == next_fire_time(
            "30 2 * * *", "America/New_York", now
        )

    def test_str(self):
        assert str(CronExpressionTrigger("0 * * * *")) == "cron[0 * * * *]"
