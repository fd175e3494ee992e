"""
Pytest configuration for Starlit tests

Every test gets its own SQLite database (STARLIT_DB_PATH points into
tmp_path) and fresh telemetry. Catalog fixtures are small in-memory
catalogs so assertions can name the exact template that was picked.
"""

from __future__ import annotations

import random
import uuid
from datetime import UTC, datetime, timedelta

import pytest

from starlit.catalog.stories import StoryCatalog
from starlit.catalog.templates import TemplateCatalog
from starlit.engagement.engine import EngagementEngine
from starlit.engagement.models import Journal, User
from starlit.engagement.repository import JournalRepository, UserRepository
from starlit.infrastructure.database import init_database, reset_pool
from starlit.observability.telemetry import reset_counters, reset_latencies

# Wednesday of ISO week 2026-W11
NOW = datetime(2026, 3, 11, 15, 0, tzinfo=UTC)

SUMMARY_TOKENS = (
    "entryCount",
    "journalingDays",
    "totalWords",
    "avgWordsPerEntry",
    "consistencyScore",
    "consistencyEmoji",
    "shortest",
    "longest",
    "consistencyMessage",
    "mostFrequentMood",
    "maxCount",
    "moodTrend",
    "trendEmoji",
    "avgMoodScore",
    "moodBreakdown",
    "preferredTime",
    "preferredDay",
    "longestEntryDay",
    "topTags",
    "topThemeSection",
    "topCollectionsSection",
    "insightsList",
    "recommendationsList",
    "randomPrompt",
)

TEMPLATE_DATA = {
    "welcome": [{"title": "Welcome!", "content": "<p>Hello {nickname}</p>"}],
    "reward": [{"title": "Signup gift", "content": "<p>Coins</p>", "rewardAmount": 50}],
    "storyPromo": [{"sender": "Andy the Sailor", "title": "Free chapter", "content": "<p>Ahoy</p>"}],
    "moodBased": {
        "sad": [{"title": "sad-mail", "content": "<p>hug</p>"}],
        "happy": [{"title": "happy-mail", "content": "<p>yay</p>"}],
        "mixed": [{"title": "mixed-mail", "content": "<p>mix</p>"}],
    },
    "specificMoods": {"tired": [{"title": "tired-mail", "content": "<p>rest</p>"}]},
    "streakMilestone": {
        "3day": {
            "title": "3 day streak",
            "content": "<p>{milestone} days! <a href='{feedbackUrl}'>feedback</a></p>",
            "mailType": "reward",
            "rewardAmount": 50,
        },
        "7day": [{"title": "7 day streak", "content": "<p>{milestone} days</p>", "rewardAmount": 70}],
    },
    "entryMilestone": {
        "5entries": [{"title": "5 entries", "content": "<p>{milestone} entries</p>", "rewardAmount": 25}],
    },
    "inactivity": {
        "short": [{"title": "inactive-short", "content": "<p>3</p>"}],
        "medium": [{"title": "inactive-medium", "content": "<p>7</p>"}],
        "long": [{"title": "inactive-long", "content": "<p>14</p>"}],
    },
    "tipsAndInspiration": [{"title": "tip", "content": "<p>tip</p>"}],
    "writingPrompts": ["What made you smile today?"],
    "promptMail": [{"sender": "The Whispering Grove", "title": "prompt", "content": "<p>{prompt}</p>"}],
    "seasonal": {
        "winter": [{"title": "winter-mail", "content": "<p>snow</p>"}],
        "spring": [{"title": "spring-mail", "content": "<p>bloom</p>"}],
        "christmas": [{"title": "christmas-mail", "content": "<p>gifts</p>"}],
    },
    "likeMilestone": {
        "1likes": [{"title": "first like", "content": "<p>{journalTitle} got {likes} like</p>"}],
        "10likes": [{"title": "ten likes", "content": "<p>{journalTitle} got {likes} likes</p>"}],
    },
    "weeklySummary": [
        {
            "title": "Weekly summary",
            "content": " | ".join(f"{token}={{{token}}}" for token in SUMMARY_TOKENS),
        }
    ],
    "mailThemes": {
        "theme_grove": {
            "sender": "Elarion",
            "styles": {"backgroundColor": "#f0fdf4", "borderRadius": "12px"},
            "contentPrefixes": ["<p>Greetings</p>"],
            "contentSuffixes": ["<p>Farewell</p>"],
            "promptTitles": ["A Whisper from the Grove"],
        }
    },
}

STORY_DATA = {
    "stories": [
        {
            "name": "Moonwake",
            "character": "Andy the Sailor",
            "image": "moonwake.jpg",
            "chapters": [
                {"title": "Harbor", "content": "One"},
                {"title": "Map", "content": "Two"},
                {"title": "Home", "content": "Three"},
            ],
        }
    ]
}


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Fresh database and telemetry for every test."""
    db_path = tmp_path / "starlit.db"
    monkeypatch.setenv("STARLIT_DB_PATH", str(db_path))
    reset_pool()
    init_database()
    reset_counters()
    reset_latencies()
    yield db_path
    reset_pool()


@pytest.fixture
def templates():
    return TemplateCatalog(TEMPLATE_DATA)


@pytest.fixture
def stories():
    return StoryCatalog.from_dict(STORY_DATA)


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def engine(templates, stories, rng):
    """Engine with tips and prompts switched off so mail batches are predictable."""
    return EngagementEngine(
        templates,
        stories,
        rng,
        tip_probability=0.0,
        prompt_probability=0.0,
        tz=UTC,
    )


@pytest.fixture
def make_user():
    """Factory that persists a user; keyword overrides go straight to User."""

    def _make(**overrides) -> User:
        suffix = uuid.uuid4().hex[:8]
        fields = {
            "id": f"user-{suffix}",
            "nickname": "Luna",
            "email": f"luna-{suffix}@example.com",
            "password": "moonlight",
            "created_at": NOW - timedelta(days=30),
            "updated_at": NOW - timedelta(days=30),
        }
        fields.update(overrides)
        return UserRepository.create(User(**fields))

    return _make


@pytest.fixture
def add_journal():
    """Factory that persists a journal entry for a user."""

    def _add(user_id: str, mood: str = "Neutral", date: datetime = NOW, **overrides) -> Journal:
        fields = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "title": overrides.pop("title", f"Entry {uuid.uuid4().hex[:6]}"),
            "slug": "",
            "content": "A quiet day with tea and a long walk",
            "mood": mood,
            "date": date,
            "created_at": date,
        }
        fields.update(overrides)
        return JournalRepository.create(Journal(**fields))

    return _add


@pytest.fixture
def now():
    return NOW
