"""Unit tests for calendar-day, ISO week and mood bucketing helpers"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from starlit.engagement.temporal import (
    MOOD_BUCKET_HAPPY,
    MOOD_BUCKET_SAD,
    calendar_days_between,
    ensure_aware,
    is_new_iso_week,
    is_same_day,
    iso_week_key,
    local_date,
    mood_bucket,
    special_date,
    time_of_day_bucket,
    window_start,
)

EST = timezone(timedelta(hours=-5))


def test_naive_timestamps_are_utc():
    naive = datetime(2026, 3, 11, 12, 0)
    assert ensure_aware(naive).tzinfo is UTC


def test_same_day_uses_calendar_date_not_24h_window():
    late = datetime(2026, 3, 11, 23, 50, tzinfo=UTC)
    early_next = datetime(2026, 3, 12, 0, 10, tzinfo=UTC)
    assert not is_same_day(late, early_next, UTC)
    assert calendar_days_between(late, early_next, UTC) == 1

    morning = datetime(2026, 3, 11, 0, 5, tzinfo=UTC)
    assert is_same_day(morning, late, UTC)


def test_same_day_respects_timezone():
    # 03:00 UTC is still the previous evening in UTC-5
    a = datetime(2026, 3, 11, 3, 0, tzinfo=UTC)
    b = datetime(2026, 3, 10, 20, 0, tzinfo=UTC)
    assert is_same_day(a, b, EST)
    assert not is_same_day(a, b, UTC)
    assert local_date(a, EST) == date(2026, 3, 10)


def test_is_same_day_with_no_previous_visit():
    assert not is_same_day(None, datetime(2026, 3, 11, tzinfo=UTC), UTC)


def test_iso_week_key_format():
    assert iso_week_key(datetime(2026, 3, 11, tzinfo=UTC), UTC) == "2026-W11"
    # 2027-01-01 is a Friday, still in ISO week 53 of 2026
    assert iso_week_key(datetime(2027, 1, 1, tzinfo=UTC), UTC) == "2026-W53"


def test_window_start_is_local_midnight():
    now = datetime(2026, 3, 11, 15, 0, tzinfo=UTC)
    assert window_start(7, now, UTC) == datetime(2026, 3, 5, tzinfo=UTC)
    # 15:00 UTC is 10:00 in EST, so the window opens at Mar 5 00:00 EST
    assert window_start(7, now, EST) == datetime(2026, 3, 5, 5, 0, tzinfo=UTC)
    assert window_start(1, now, UTC) == datetime(2026, 3, 11, tzinfo=UTC)


def test_is_new_iso_week():
    wednesday = datetime(2026, 3, 11, tzinfo=UTC)
    sunday = datetime(2026, 3, 15, 23, 0, tzinfo=UTC)
    monday = datetime(2026, 3, 16, 1, 0, tzinfo=UTC)

    assert is_new_iso_week(None, wednesday, UTC)
    assert not is_new_iso_week("2026-W11", sunday, UTC)
    assert is_new_iso_week("2026-W11", monday, UTC)


@pytest.mark.parametrize(
    ("hour", "bucket"),
    [(5, "morning"), (11, "morning"), (12, "afternoon"), (16, "afternoon"),
     (17, "evening"), (20, "evening"), (21, "night"), (0, "night"), (4, "night")],
)
def test_time_of_day_bucket(hour, bucket):
    assert time_of_day_bucket(hour) == bucket


def test_mood_bucket():
    assert mood_bucket("Sad") == MOOD_BUCKET_SAD
    assert mood_bucket("Anxious") == MOOD_BUCKET_SAD
    assert mood_bucket("Happy") == MOOD_BUCKET_HAPPY
    assert mood_bucket("Neutral") is None


@pytest.mark.parametrize(
    ("day", "key"),
    [
        (date(2026, 1, 1), "newYear"),
        (date(2026, 2, 14), "valentines"),
        (date(2026, 10, 31), "halloween"),
        (date(2026, 12, 25), "christmas"),
        (date(2026, 12, 31), "newYearsEve"),
        (date(2026, 3, 11), "winter"),
        (date(2026, 3, 21), "spring"),
        (date(2026, 7, 4), "summer"),
        (date(2026, 10, 1), "autumn"),
        (date(2026, 12, 22), "winter"),
    ],
)
def test_special_date(day, key):
    assert special_date(day) == key
