"""
Streak Tracker

Decides once per calendar day whether a login extends or resets the streak
and grants the daily login reward.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, tzinfo

from starlit.config import DAILY_LOGIN_REWARD
from starlit.engagement.models import User
from starlit.engagement.temporal import calendar_days_between, is_same_day


@dataclass
class StreakUpdate:
    """What a login did to the user's streak and wallet."""

    first_login_today: bool
    coins_earned: int = 0
    previous_streak: int = 0
    current_streak: int = 0


def apply_login(
    user: User,
    now: datetime,
    tz: tzinfo | None = None,
    daily_reward: int = DAILY_LOGIN_REWARD,
) -> StreakUpdate:
    """
    Update streak counters for a login at `now`.

    Same-day re-entry is a no-op so repeated logins never double-credit.

    Side Effects:
        - Mutates user.current_streak, longest_streak, coins, last_visited
          on the first login of the day
    """
    previous = user.current_streak

    if is_same_day(user.last_visited, now, tz):
        return StreakUpdate(
            first_login_today=False,
            previous_streak=previous,
            current_streak=previous,
        )

    last = user.last_visited
    if last is not None and calendar_days_between(last, now, tz) == 1:
        user.current_streak += 1
    else:
        user.current_streak = 1

    user.longest_streak = max(user.longest_streak, user.current_streak)
    user.coins += daily_reward
    user.last_visited = now

    return StreakUpdate(
        first_login_today=True,
        coins_earned=daily_reward,
        previous_streak=previous,
        current_streak=user.current_streak,
    )