"""
Temporal window helpers and mood bucketing.

Pure functions only. "Day" always means a calendar date in the engagement
timezone (date truncation), never a rolling 24h window.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta, tzinfo
from functools import lru_cache
from zoneinfo import ZoneInfo

from starlit.config import ENGAGEMENT_TIMEZONE

SAD_MOODS: frozenset[str] = frozenset({"Sad", "Anxious", "Angry", "Stressed", "Overwhelmed"})
HAPPY_MOODS: frozenset[str] = frozenset({"Happy", "Excited", "Grateful", "Peaceful", "Content"})
NEUTRAL_MOODS: frozenset[str] = frozenset({"Neutral", "Calm", "Reflective"})

MOOD_BUCKET_SAD = "sad"
MOOD_BUCKET_HAPPY = "happy"
MOOD_BUCKET_MIXED = "mixed"

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


@lru_cache(maxsize=8)
def engagement_tz(name: str = ENGAGEMENT_TIMEZONE) -> tzinfo:
    """Timezone whose calendar defines today/yesterday."""
    if name.upper() == "UTC":
        return UTC
    return ZoneInfo(name)


def ensure_aware(ts: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts


def local_date(ts: datetime, tz: tzinfo | None = None) -> date:
    return ensure_aware(ts).astimezone(tz or engagement_tz()).date()


def local_hour(ts: datetime, tz: tzinfo | None = None) -> int:
    return ensure_aware(ts).astimezone(tz or engagement_tz()).hour


def days_ago(days: int, now: datetime) -> datetime:
    """The instant exactly `days` days before now."""
    return ensure_aware(now) - timedelta(days=days)


def window_start(days: int, now: datetime, tz: tzinfo | None = None) -> datetime:
    """
    Local midnight opening a window of `days` calendar dates ending today.

    The window [window_start, now] never spans more than `days` dates.
    """
    zone = tz or engagement_tz()
    first = local_date(now, zone) - timedelta(days=days - 1)
    return datetime(first.year, first.month, first.day, tzinfo=zone).astimezone(UTC)


def is_same_day(a: datetime | None, b: datetime, tz: tzinfo | None = None) -> bool:
    if a is None:
        return False
    return local_date(a, tz) == local_date(b, tz)


def calendar_days_between(earlier: datetime, later: datetime, tz: tzinfo | None = None) -> int:
    """Number of calendar-date boundaries between two instants."""
    return (local_date(later, tz) - local_date(earlier, tz)).days


def iso_week_key(ts: datetime, tz: tzinfo | None = None) -> str:
    """ISO calendar week of an instant, e.g. '2026-W42'."""
    year, week, _ = local_date(ts, tz).isocalendar()
    return f"{year}-W{week:02d}"


def is_new_iso_week(last_week_key: str | None, now: datetime, tz: tzinfo | None = None) -> bool:
    """True when no summary has been recorded for the ISO week containing now."""
    return last_week_key != iso_week_key(now, tz)


def time_of_day_bucket(hour: int) -> str:
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 21:
        return "evening"
    return "night"


def mood_bucket(mood: str) -> str | None:
    """Sentiment bucket a single mood label belongs to (None for neutral labels)."""
    if mood in SAD_MOODS:
        return MOOD_BUCKET_SAD
    if mood in HAPPY_MOODS:
        return MOOD_BUCKET_HAPPY
    return None


def special_date(today: date) -> str | None:
    """Holiday or (northern hemisphere) season key for seasonal mail copy."""
    month, day = today.month, today.day

    if month == 1 and day == 1:
        return "newYear"
    if month == 2 and day == 14:
        return "valentines"
    if month == 10 and day == 31:
        return "halloween"
    if month == 12 and 24 <= day <= 26:
        return "christmas"
    if month == 12 and day == 31:
        return "newYearsEve"

    if month == 3 and day >= 20:
        return "spring"
    if month == 6 and day >= 20:
        return "summer"
    if month == 9 and day >= 22:
        return "autumn"
    if month == 12 and day >= 21:
        return "winter"
    if month in (1, 2) or (month == 3 and day < 20):
        return "winter"
    if month in (4, 5) or (month == 6 and day < 20):
        return "spring"
    if month in (7, 8) or (month == 9 and day < 22):
        return "summer"
    return "autumn"
