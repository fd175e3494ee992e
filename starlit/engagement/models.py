"""
Engagement domain models for Starlit Journals.

Users carry the mutable engagement state the engine reads and writes (streaks,
coins, milestone ledgers, story cursor). Journals are the read-only evidence
base. Mail is the engine's output: immutable apart from per-recipient
read/claim flags.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Return current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def parse_dt(val: str | None) -> datetime | None:
    """Parse an ISO timestamp from storage; naive values are taken as UTC."""
    if not val:
        return None
    parsed = datetime.fromisoformat(val)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def storage_ts(val: datetime | None) -> str | None:
    """Storage form of a timestamp: ISO 8601 in UTC, so text order is time order."""
    if val is None:
        return None
    if val.tzinfo is None:
        val = val.replace(tzinfo=UTC)
    return val.astimezone(UTC).isoformat(timespec="microseconds")


class Mood(str, Enum):
    """Mood label a user picks for a journal entry."""

    HAPPY = "Happy"
    NEUTRAL = "Neutral"
    SAD = "Sad"
    ANGRY = "Angry"
    ANXIOUS = "Anxious"
    TIRED = "Tired"
    REFLECTIVE = "Reflective"
    EXCITED = "Excited"


class MailType(str, Enum):
    """Kind of mail; drives inbox rendering and dedup queries."""

    WELCOME = "welcome"
    REWARD = "reward"
    MOOD = "mood"
    STREAK = "streak"
    ENTRY = "entry"
    INACTIVITY = "inactivity"
    SUMMARY = "summary"
    SEASONAL = "seasonal"
    TIP = "tip"
    PROMPT = "prompt"
    STORY = "story"
    OTHER = "other"


class StoryState(str, Enum):
    """Where a user stands in their assigned story."""

    NO_STORY = "no_story"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


# ============================================================================
# Mail metadata (tagged by "kind")
# ============================================================================


class NoMetadata(BaseModel):
    kind: Literal["none"] = "none"


class MilestoneMetadata(BaseModel):
    kind: Literal["milestone"] = "milestone"
    milestone: int


class MoodMetadata(BaseModel):
    kind: Literal["mood"] = "mood"
    mood: str
    mood_category: str


class StoryMetadata(BaseModel):
    kind: Literal["story"] = "story"
    story_name: str
    chapter: int


class SummaryMetadata(BaseModel):
    kind: Literal["summary"] = "summary"
    week: str
    entry_count: int
    journaling_days: int
    consistency_score: int
    dominant_mood: str
    mood_trend: str


class InactivityMetadata(BaseModel):
    kind: Literal["inactivity"] = "inactivity"
    period: int


class SeasonalMetadata(BaseModel):
    kind: Literal["seasonal"] = "seasonal"
    season: str


class LikeMetadata(BaseModel):
    kind: Literal["like"] = "like"
    journal_id: str
    milestone: int


MailMetadata = Annotated[
    NoMetadata
    | MilestoneMetadata
    | MoodMetadata
    | StoryMetadata
    | SummaryMetadata
    | InactivityMetadata
    | SeasonalMetadata
    | LikeMetadata,
    Field(discriminator="kind"),
]

# Metadata shapes each mail type may carry
_ALLOWED_METADATA: dict[str, set[str]] = {
    MailType.WELCOME.value: {"none"},
    MailType.REWARD.value: {"none", "milestone"},
    MailType.MOOD.value: {"mood"},
    MailType.STREAK.value: {"milestone"},
    MailType.ENTRY.value: {"milestone"},
    MailType.INACTIVITY.value: {"inactivity"},
    MailType.SUMMARY.value: {"summary"},
    MailType.SEASONAL.value: {"none", "seasonal"},
    MailType.TIP.value: {"none"},
    MailType.PROMPT.value: {"none"},
    MailType.STORY.value: {"none", "story"},
    MailType.OTHER.value: {"none", "like"},
}


# ============================================================================
# User
# ============================================================================


def default_inventory() -> list[dict[str, Any]]:
    """Every account starts owning the plain journal theme."""
    return [
        {
            "id": "theme_default",
            "name": "Default",
            "description": "A simple, no-frills journal theme",
            "color": "#cccccc",
            "category": "theme",
            "isEmoji": False,
            "gradient": None,
            "price": 0,
            "quantity": 1,
        }
    ]


class StoryProgress(BaseModel):
    """Cursor into the story catalog. One active story per user."""

    story_name: str | None = None
    current_chapter: int | None = None
    last_sent: datetime | None = None
    is_complete: bool = False

    @property
    def state(self) -> StoryState:
        if not self.story_name or self.current_chapter is None:
            return StoryState.NO_STORY
        if self.is_complete:
            return StoryState.COMPLETE
        return StoryState.IN_PROGRESS


class User(BaseModel):
    """
    An account holder and their mutable engagement state.

    Invariant: current_streak <= longest_streak after any update.
    Milestone ledgers only ever grow.
    """

    model_config = ConfigDict(frozen=False, validate_assignment=False)

    # Identity
    id: str
    nickname: str
    email: str
    # Compared verbatim on login; not hashed (known security debt)
    password: str
    age: int | None = None
    gender: str | None = None
    subscribe: bool = False

    # Engagement
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_visited: datetime | None = None
    last_journaled: datetime | None = None

    # Economy
    coins: int = Field(default=0, ge=0)
    inventory: list[dict[str, Any]] = Field(default_factory=default_inventory)

    # Ledgers
    completed_streak_milestones: list[int] = Field(default_factory=list)
    completed_entry_milestones: list[int] = Field(default_factory=list)

    story_progress: StoryProgress = Field(default_factory=StoryProgress)
    active_mail_theme: str | None = None
    last_weekly_summary_week: str | None = None

    # Optimistic concurrency counter, bumped on every engine save
    version: int = 0

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("completed_streak_milestones", "completed_entry_milestones", mode="before")
    @classmethod
    def normalize_ledger(cls, v: Any) -> list[int]:
        if not isinstance(v, list | tuple | set):
            return []
        ledger: list[int] = []
        for item in v:
            try:
                value = int(item)
            except (TypeError, ValueError):
                continue
            if value not in ledger:
                ledger.append(value)
        return ledger

    @field_validator("story_progress", mode="before")
    @classmethod
    def normalize_story_progress(cls, v: Any) -> Any:
        if isinstance(v, StoryProgress):
            return v
        if not isinstance(v, dict):
            return StoryProgress()
        return v

    @field_validator("inventory", mode="before")
    @classmethod
    def normalize_inventory(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return []
        return v

    @model_validator(mode="after")
    def streak_invariant(self) -> User:
        if self.longest_streak < self.current_streak:
            self.longest_streak = self.current_streak
        return self

    def public_dict(self) -> dict[str, Any]:
        """Account payload safe to return to the client."""
        data = self.model_dump(mode="json", exclude={"password", "version"})
        return data

    def to_db_dict(self) -> dict[str, Any]:
        """Convert to dict for database storage."""
        progress = self.story_progress
        return {
            "id": self.id,
            "nickname": self.nickname,
            "email": self.email,
            "password": self.password,
            "age": self.age,
            "gender": self.gender,
            "subscribe": int(self.subscribe),
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_visited": storage_ts(self.last_visited),
            "last_journaled": storage_ts(self.last_journaled),
            "coins": self.coins,
            "inventory": json.dumps(self.inventory),
            "completed_streak_milestones": json.dumps(self.completed_streak_milestones),
            "completed_entry_milestones": json.dumps(self.completed_entry_milestones),
            "story_progress": json.dumps(
                {
                    "story_name": progress.story_name,
                    "current_chapter": progress.current_chapter,
                    "last_sent": storage_ts(progress.last_sent),
                    "is_complete": progress.is_complete,
                }
            ),
            "active_mail_theme": self.active_mail_theme,
            "last_weekly_summary_week": self.last_weekly_summary_week,
            "version": self.version,
            "created_at": storage_ts(self.created_at),
            "updated_at": storage_ts(self.updated_at),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> User:
        """Create User from database row, tolerating missing or malformed JSON columns."""

        def load_json(key: str, default: Any) -> Any:
            raw = row.get(key)
            if not raw:
                return default
            try:
                return json.loads(raw)
            except (TypeError, ValueError):
                return default

        progress = load_json("story_progress", {})
        if isinstance(progress, dict):
            progress = {**progress, "last_sent": parse_dt(progress.get("last_sent"))}

        return cls(
            id=row["id"],
            nickname=row["nickname"],
            email=row["email"],
            password=row["password"],
            age=row.get("age"),
            gender=row.get("gender"),
            subscribe=bool(row.get("subscribe")),
            current_streak=row.get("current_streak") or 0,
            longest_streak=row.get("longest_streak") or 0,
            last_visited=parse_dt(row.get("last_visited")),
            last_journaled=parse_dt(row.get("last_journaled")),
            coins=row.get("coins") or 0,
            inventory=load_json("inventory", []),
            completed_streak_milestones=load_json("completed_streak_milestones", []),
            completed_entry_milestones=load_json("completed_entry_milestones", []),
            story_progress=progress,
            active_mail_theme=row.get("active_mail_theme"),
            last_weekly_summary_week=row.get("last_weekly_summary_week"),
            version=row.get("version") or 0,
            created_at=parse_dt(row.get("created_at")) or utc_now(),
            updated_at=parse_dt(row.get("updated_at")) or utc_now(),
        )


# ============================================================================
# Journal
# ============================================================================


class Journal(BaseModel):
    """A journal entry. The engine only ever reads these."""

    model_config = ConfigDict(frozen=False, use_enum_values=True)

    id: str
    user_id: str
    title: str
    slug: str
    content: str
    mood: Mood
    tags: list[str] = Field(default_factory=list)
    collections: list[str] = Field(default_factory=lambda: ["All"])
    theme: str | None = None
    is_public: bool = False
    author_name: str | None = None
    likes: list[str] = Field(default_factory=list)
    like_count: int = Field(default=0, ge=0)
    word_count: int = 0
    date: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator("collections")
    @classmethod
    def always_in_all(cls, v: list[str]) -> list[str]:
        if "All" not in v:
            return ["All", *v]
        return v

    @model_validator(mode="after")
    def public_needs_author(self) -> Journal:
        if self.is_public and not self.author_name:
            raise ValueError("author_name is required for public journals")
        return self

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "slug": self.slug,
            "content": self.content,
            "mood": Mood(self.mood).value,
            "tags": json.dumps(self.tags),
            "collections": json.dumps(self.collections),
            "theme": self.theme,
            "is_public": int(self.is_public),
            "author_name": self.author_name,
            "likes": json.dumps(self.likes),
            "like_count": self.like_count,
            "word_count": self.word_count,
            "date": storage_ts(self.date),
            "created_at": storage_ts(self.created_at),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> Journal:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            slug=row["slug"],
            content=row["content"],
            mood=row["mood"],
            tags=json.loads(row.get("tags") or "[]"),
            collections=json.loads(row.get("collections") or '["All"]'),
            theme=row.get("theme"),
            is_public=bool(row.get("is_public")),
            author_name=row.get("author_name"),
            likes=json.loads(row.get("likes") or "[]"),
            like_count=row.get("like_count") or 0,
            word_count=row.get("word_count") or 0,
            date=parse_dt(row["date"]),
            created_at=parse_dt(row.get("created_at")) or utc_now(),
        )


# ============================================================================
# Mail
# ============================================================================


class Recipient(BaseModel):
    """Per-recipient mutable state of a mail."""

    user_id: str
    read: bool = False
    reward_claimed: bool = False


class Mail(BaseModel):
    """A system-generated notification with per-recipient read/claim state."""

    model_config = ConfigDict(frozen=False, use_enum_values=True)

    id: str
    sender: str = "Starlit Journals Team"
    title: str
    content: str
    mail_type: MailType = MailType.OTHER
    recipients: list[Recipient] = Field(default_factory=list)
    reward_amount: int = 0
    theme_id: str | None = None
    metadata: MailMetadata = Field(default_factory=NoMetadata)
    date: datetime = Field(default_factory=utc_now)
    expiry_date: datetime | None = None

    @model_validator(mode="after")
    def metadata_matches_type(self) -> Mail:
        mail_type = MailType(self.mail_type).value
        allowed = _ALLOWED_METADATA.get(mail_type, {"none"})
        if self.metadata.kind not in allowed:
            raise ValueError(
                f"mail_type {self.mail_type!r} cannot carry {self.metadata.kind!r} metadata"
            )
        return self

    def recipient(self, user_id: str) -> Recipient | None:
        for entry in self.recipients:
            if entry.user_id == user_id:
                return entry
        return None

    def to_db_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sender": self.sender,
            "title": self.title,
            "content": self.content,
            "mail_type": MailType(self.mail_type).value,
            "reward_amount": self.reward_amount,
            "theme_id": self.theme_id,
            "metadata": self.metadata.model_dump_json(),
            "date": storage_ts(self.date),
            "expiry_date": storage_ts(self.expiry_date),
        }

    @classmethod
    def from_db_row(cls, row: dict[str, Any], recipients: list[Recipient]) -> Mail:
        return cls(
            id=row["id"],
            sender=row["sender"],
            title=row["title"],
            content=row["content"],
            mail_type=row["mail_type"],
            recipients=recipients,
            reward_amount=row.get("reward_amount") or 0,
            theme_id=row.get("theme_id"),
            metadata=json.loads(row.get("metadata") or '{"kind": "none"}'),
            date=parse_dt(row["date"]),
            expiry_date=parse_dt(row.get("expiry_date")),
        )
