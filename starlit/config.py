"""Centralized configuration for the Starlit Journals backend.

Re-exports everything from starlit.infrastructure.settings so existing imports
continue to work, then adds typed constants for database, engine, mail and API
settings.  Environment variable overrides use safe defaults so the app starts
without extra env configuration.
"""

from __future__ import annotations

import os

from starlit.infrastructure.settings import *  # noqa: F401, F403 re-export existing

# --- App ---
APP_VERSION: str = "1.0.0"

# --- Database ---
DB_POOL_SIZE: int = int(os.getenv("STARLIT_DB_POOL_SIZE", "5"))
DB_POOL_TIMEOUT: float = float(os.getenv("STARLIT_DB_POOL_TIMEOUT", "5.0"))
DB_CONNECT_TIMEOUT: float = float(os.getenv("STARLIT_DB_CONNECT_TIMEOUT", "30.0"))
DB_RETRY_MAX: int = int(os.getenv("STARLIT_DB_RETRY_MAX", "5"))
DB_RETRY_BASE_DELAY: float = float(os.getenv("STARLIT_DB_RETRY_BASE_DELAY", "0.1"))
DB_RETRY_MAX_DELAY: float = float(os.getenv("STARLIT_DB_RETRY_MAX_DELAY", "2.0"))
DB_RETRY_JITTER: float = float(os.getenv("STARLIT_DB_RETRY_JITTER", "0.1"))

# --- Calendar ---
# Timezone used to decide what "today" and "yesterday" mean for streaks and stories
ENGAGEMENT_TIMEZONE: str = os.getenv("STARLIT_TIMEZONE", "UTC")

# --- Streaks & economy ---
DAILY_LOGIN_REWARD: int = int(os.getenv("STARLIT_DAILY_LOGIN_REWARD", "10"))
DEFAULT_CLAIM_AMOUNT: int = 50

# --- Milestones ---
STREAK_MILESTONES: tuple[int, ...] = (3, 7, 14, 30, 60, 90, 180, 365)
ENTRY_MILESTONES: tuple[int, ...] = (5, 10, 20, 30, 50, 100, 200, 365, 500, 1000)
LIKE_MILESTONES: tuple[int, ...] = (1, 10, 25, 50, 100)
# "exact" fires on the crossing only, "catch_up" also fires skipped thresholds
MILESTONE_POLICY: str = os.getenv("STARLIT_MILESTONE_POLICY", "exact")

# --- Mood digest ---
MOOD_RECENT_ENTRIES: int = 5
MOOD_MIN_ENTRIES: int = 3
MOOD_BUCKET_MIN_COUNT: int = 2
MOOD_COOLDOWN_DAYS: int = int(os.getenv("STARLIT_MOOD_COOLDOWN_DAYS", "10"))

# --- Weekly summary ---
WEEKLY_WINDOW_DAYS: int = 7
WEEKLY_TREND_THRESHOLD: float = 0.5
SUMMARY_PLACEHOLDER_DEFAULT: str = "None yet"

# --- Reminders ---
INACTIVITY_PERIODS_DAYS: tuple[int, ...] = (14, 7, 3)
INACTIVITY_COOLDOWN_PADDING_DAYS: int = 2
TIP_COOLDOWN_DAYS: int = 14
PROMPT_COOLDOWN_DAYS: int = 7
TIP_SEND_PROBABILITY: float = 0.3
PROMPT_SEND_PROBABILITY: float = 0.3

# --- Mail emission ---
MAIL_BATCH_CAP: int = int(os.getenv("STARLIT_MAIL_BATCH_CAP", "2"))

# --- Engine ---
ENGINE_CAS_RETRIES: int = int(os.getenv("STARLIT_ENGINE_CAS_RETRIES", "2"))

# --- API ---
API_LIST_LIMIT_DEFAULT: int = 100
API_LIST_LIMIT_MAX: int = 500

# --- Rate limiting (auth endpoints) ---
AUTH_REQUESTS_PER_MINUTE: int = int(os.getenv("STARLIT_AUTH_REQUESTS_PER_MINUTE", "30"))
AUTH_REQUESTS_PER_HOUR: int = int(os.getenv("STARLIT_AUTH_REQUESTS_PER_HOUR", "300"))
# Peers (request.client.host) allowed to set X-Forwarded-For, comma separated
TRUSTED_PROXIES: tuple[str, ...] = tuple(
    p.strip() for p in os.getenv("STARLIT_TRUSTED_PROXIES", "").split(",") if p.strip()
)

# --- Per-user engine locks ---
USER_LOCK_CACHE_SIZE: int = 10000
USER_LOCK_TTL_SECONDS: int = 600
