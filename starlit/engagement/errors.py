"""Engagement engine exceptions."""

from __future__ import annotations


class EngagementError(Exception):
    """Base exception for engagement engine errors."""


class UserNotFoundError(EngagementError):
    """The acting user does not exist. Fatal to the request."""

    def __init__(self, user_ref: str):
        self.user_ref = user_ref
        super().__init__(f"User not found: {user_ref}")


class JournalNotFoundError(EngagementError):
    """A journal referenced by a like event does not exist."""

    def __init__(self, journal_id: str):
        self.journal_id = journal_id
        super().__init__(f"Journal not found: {journal_id}")


class InvalidCredentialsError(EngagementError):
    """Password did not match on login."""


class ConcurrentUpdateError(EngagementError):
    """Another writer saved the user between our read and our write."""

    def __init__(self, user_id: str, expected_version: int):
        self.user_id = user_id
        self.expected_version = expected_version
        super().__init__(
            f"User {user_id} changed concurrently (expected version {expected_version})"
        )


class CatalogError(EngagementError):
    """A catalog file is missing or malformed."""


class StoryNotFoundError(EngagementError):
    """Story assignment named a story the catalog does not have."""

    def __init__(self, story_name: str):
        self.story_name = story_name
        super().__init__(f"Story not found: {story_name}")


class MailNotFoundError(EngagementError):
    def __init__(self, mail_id: str):
        self.mail_id = mail_id
        super().__init__(f"Mail not found: {mail_id}")


class NotARecipientError(EngagementError):
    """The user is not among the mail's recipients."""


class RewardNotClaimableError(EngagementError):
    """The mail carries no reward, or it was already claimed."""


class DuplicateEmailError(EngagementError):
    """Signup with an email that already has an account."""
