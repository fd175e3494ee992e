"""Request and response models for the Starlit API.

Responses are serialized in camelCase, which is what the web client reads.
Requests accept either camelCase or snake_case field names.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from starlit.engagement.models import Journal, Mail, MailType, Mood


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Users
# ============================================================================


class SignupRequest(ApiModel):
    nickname: str = Field(min_length=1, max_length=50)
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1, max_length=256)
    age: int | None = Field(default=None, ge=0, le=150)
    gender: str | None = None
    subscribe: bool = False

    @field_validator("email")
    @classmethod
    def looks_like_email(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("invalid email address")
        return v

    @field_validator("nickname")
    @classmethod
    def strip_nickname(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("nickname must not be blank")
        return v


class LoginRequest(ApiModel):
    email: str
    password: str


class MailResponse(ApiModel):
    """A mail as seen by one recipient."""

    id: str
    sender: str
    title: str
    content: str
    mail_type: str
    reward_amount: int
    theme_id: str | None
    metadata: dict[str, Any]
    date: datetime
    expiry_date: datetime | None
    read: bool = False
    reward_claimed: bool = False

    @classmethod
    def from_mail(cls, mail: Mail, user_id: str) -> MailResponse:
        recipient = mail.recipient(user_id)
        return cls(
            id=mail.id,
            sender=mail.sender,
            title=mail.title,
            content=mail.content,
            mail_type=MailType(mail.mail_type).value,
            reward_amount=mail.reward_amount,
            theme_id=mail.theme_id,
            metadata=mail.metadata.model_dump(mode="json"),
            date=mail.date,
            expiry_date=mail.expiry_date,
            read=recipient.read if recipient else False,
            reward_claimed=recipient.reward_claimed if recipient else False,
        )


class SignupResponse(ApiModel):
    user: dict[str, Any]
    mails_generated: int


class LoginResponse(ApiModel):
    user: dict[str, Any]
    coins_earned: int
    streak_bonus: int
    mails_generated: int
    mails: list[MailResponse] = Field(default_factory=list)


class StoryAssignRequest(ApiModel):
    story_name: str = Field(min_length=1)


# ============================================================================
# Journals
# ============================================================================


class CreateJournalRequest(ApiModel):
    user_id: str
    title: str = Field(min_length=1, max_length=200)
    content: str
    mood: Mood
    tags: list[str] = Field(default_factory=list)
    collections: list[str] = Field(default_factory=lambda: ["All"])
    theme: str | None = None
    is_public: bool = False
    author_name: str | None = None
    date: datetime | None = None


class JournalResponse(ApiModel):
    id: str
    user_id: str
    title: str
    slug: str
    content: str
    mood: str
    tags: list[str]
    collections: list[str]
    theme: str | None
    is_public: bool
    author_name: str | None
    like_count: int
    word_count: int
    date: datetime

    @classmethod
    def from_journal(cls, journal: Journal) -> JournalResponse:
        return cls(
            id=journal.id,
            user_id=journal.user_id,
            title=journal.title,
            slug=journal.slug,
            content=journal.content,
            mood=Mood(journal.mood).value,
            tags=journal.tags,
            collections=journal.collections,
            theme=journal.theme,
            is_public=journal.is_public,
            author_name=journal.author_name,
            like_count=journal.like_count,
            word_count=journal.word_count,
            date=journal.date,
        )


class LikeRequest(ApiModel):
    user_id: str


class LikeResponse(ApiModel):
    liked: bool
    like_count: int
    notification_sent: bool


# ============================================================================
# Mail
# ============================================================================


class MailActionRequest(ApiModel):
    user_id: str


class MailListResponse(ApiModel):
    mails: list[MailResponse]
    total: int


class ClaimRewardResponse(ApiModel):
    amount: int
    coins: int
