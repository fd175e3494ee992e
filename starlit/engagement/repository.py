"""
User, Journal and Mail repositories over the SQLite document tables.

Follows the patterns in starlit/infrastructure/database.py: pooled
connections, db_transaction for writes, retry_on_db_lock on write paths.
Methods that take an optional `conn` join the caller's transaction.
"""

from __future__ import annotations

import json
import re
import sqlite3
import unicodedata
from datetime import datetime
from typing import Any

from starlit.config import API_LIST_LIMIT_DEFAULT, DEFAULT_CLAIM_AMOUNT
from starlit.engagement.errors import (
    ConcurrentUpdateError,
    DuplicateEmailError,
    JournalNotFoundError,
    MailNotFoundError,
    NotARecipientError,
    RewardNotClaimableError,
    UserNotFoundError,
)
from starlit.engagement.models import (
    Journal,
    Mail,
    MailType,
    Recipient,
    User,
    storage_ts,
    utc_now,
)
from starlit.infrastructure.database import db_transaction, get_db_connection, retry_on_db_lock
from starlit.observability.logging import get_logger

logger = get_logger(__name__)

_USER_COLUMNS = (
    "id",
    "nickname",
    "email",
    "password",
    "age",
    "gender",
    "subscribe",
    "current_streak",
    "longest_streak",
    "last_visited",
    "last_journaled",
    "coins",
    "inventory",
    "completed_streak_milestones",
    "completed_entry_milestones",
    "story_progress",
    "active_mail_theme",
    "last_weekly_summary_week",
    "version",
    "created_at",
    "updated_at",
)

_JOURNAL_COLUMNS = (
    "id",
    "user_id",
    "title",
    "slug",
    "content",
    "mood",
    "tags",
    "collections",
    "theme",
    "is_public",
    "author_name",
    "likes",
    "like_count",
    "word_count",
    "date",
    "created_at",
)

_MAIL_COLUMNS = (
    "id",
    "sender",
    "title",
    "content",
    "mail_type",
    "reward_amount",
    "theme_id",
    "metadata",
    "date",
    "expiry_date",
)

# Metadata keys that may be matched in has_metadata(); keeps json paths out of user input
_METADATA_KEYS = frozenset(
    {
        "milestone",
        "mood",
        "mood_category",
        "story_name",
        "chapter",
        "week",
        "period",
        "season",
        "journal_id",
    }
)


def _insert_sql(table: str, columns: tuple[str, ...]) -> str:
    cols = ", ".join(columns)
    params = ", ".join(f":{c}" for c in columns)
    return f"INSERT INTO {table} ({cols}) VALUES ({params})"


# ============================================================================
# Users
# ============================================================================


class UserRepository:
    """
    Persistence for users.

    Writes from the engine go through save(), a compare-and-set on the
    version column, so two concurrent logins cannot both apply.
    """

    @staticmethod
    @retry_on_db_lock()
    def create(user: User, mails: list[Mail] | None = None) -> User:
        """
        Insert a new user, with its first mails in the same transaction.

        Raises:
            DuplicateEmailError: If the email is already registered
        """
        with db_transaction() as conn:
            try:
                conn.execute(_insert_sql("users", _USER_COLUMNS), user.to_db_dict())
            except sqlite3.IntegrityError as e:
                raise DuplicateEmailError(f"Email already registered: {user.email}") from e
            MailRepository.insert_many(mails or [], conn)

        logger.info("Created user %s", user.id)
        return user

    @staticmethod
    def get_by_id(user_id: str) -> User | None:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.from_db_row(dict(row)) if row else None

    @staticmethod
    def get_by_email(email: str) -> User | None:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE email = ?", (email.strip().lower(),)
            ).fetchone()
        return User.from_db_row(dict(row)) if row else None

    @staticmethod
    def save(user: User, expected_version: int, conn: sqlite3.Connection) -> None:
        """
        Compare-and-set write of the whole user document.

        Raises:
            ConcurrentUpdateError: If the stored version is not expected_version

        Side Effects:
            - Bumps user.version and user.updated_at on success
        """
        data = user.to_db_dict()
        data["version"] = expected_version + 1
        data["updated_at"] = storage_ts(utc_now())
        data["expected_version"] = expected_version

        assignments = ", ".join(
            f"{c} = :{c}" for c in _USER_COLUMNS if c not in ("id", "created_at")
        )
        cursor = conn.execute(
            f"UPDATE users SET {assignments} WHERE id = :id AND version = :expected_version",
            data,
        )
        if cursor.rowcount == 0:
            raise ConcurrentUpdateError(user.id, expected_version)

        user.version = expected_version + 1

    @staticmethod
    @retry_on_db_lock()
    def save_with_mails(user: User, expected_version: int, mails: list[Mail]) -> None:
        """
        Persist the user document and a mail batch atomically.

        Either both land or neither does.
        """
        with db_transaction() as conn:
            UserRepository.save(user, expected_version, conn)
            MailRepository.insert_many(mails, conn)

    @staticmethod
    def add_coins(user_id: str, amount: int, conn: sqlite3.Connection) -> int:
        """Atomically credit coins; returns the new balance."""
        cursor = conn.execute(
            "UPDATE users SET coins = coins + ?, version = version + 1, updated_at = ? WHERE id = ?",
            (amount, storage_ts(utc_now()), user_id),
        )
        if cursor.rowcount == 0:
            raise UserNotFoundError(user_id)
        row = conn.execute("SELECT coins FROM users WHERE id = ?", (user_id,)).fetchone()
        return row[0]


# ============================================================================
# Journals
# ============================================================================

_SLUG_STOP_WORDS = frozenset(
    "a an and as at but by for from in into like near nor "
    "of on onto or over the to with yet".split()
)
_SLUG_REPLACEMENTS = {"&": "and", "@": "at", "#": "number", "%": "percent", "$": "dollar"}
_SLUG_MAX_LENGTH = 60


def slugify(title: str) -> str:
    """URL slug from a title: stop words dropped, ascii only, at most 60 chars."""
    slug = title.lower().strip()
    for char, replacement in _SLUG_REPLACEMENTS.items():
        slug = slug.replace(char, f" {replacement} ")

    slug = unicodedata.normalize("NFKD", slug).encode("ascii", "ignore").decode("ascii")
    words = [w for w in slug.split() if w not in _SLUG_STOP_WORDS]
    slug = re.sub(r"[^a-z0-9\s-]", "", " ".join(words))
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug).strip("-")

    if len(slug) > _SLUG_MAX_LENGTH:
        truncated = slug[:_SLUG_MAX_LENGTH]
        slug = truncated[: truncated.rfind("-")] if "-" in truncated else truncated
        slug = slug or truncated

    return slug or "journal"


class JournalRepository:
    """Persistence for journal entries. The engine only reads through here."""

    @staticmethod
    def _unique_slug(conn: sqlite3.Connection, title: str) -> str:
        base = slugify(title)
        slug, n = base, 1
        while conn.execute("SELECT 1 FROM journals WHERE slug = ?", (slug,)).fetchone():
            slug = f"{base}-{n}"
            n += 1
        return slug

    @staticmethod
    @retry_on_db_lock()
    def create(journal: Journal) -> Journal:
        """
        Insert a journal and stamp the author's last_journaled.

        Raises:
            UserNotFoundError: If the author does not exist
        """
        with db_transaction() as conn:
            journal.slug = JournalRepository._unique_slug(conn, journal.title)
            cursor = conn.execute(
                "UPDATE users SET last_journaled = ?, version = version + 1 WHERE id = ?",
                (storage_ts(journal.date), journal.user_id),
            )
            if cursor.rowcount == 0:
                raise UserNotFoundError(journal.user_id)
            conn.execute(_insert_sql("journals", _JOURNAL_COLUMNS), journal.to_db_dict())

        logger.info("Created journal %s for user %s", journal.id, journal.user_id)
        return journal

    @staticmethod
    def get_by_id(journal_id: str) -> Journal | None:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM journals WHERE id = ?", (journal_id,)).fetchone()
        return Journal.from_db_row(dict(row)) if row else None

    @staticmethod
    def count_for_user(user_id: str) -> int:
        with get_db_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM journals WHERE user_id = ?", (user_id,)
            ).fetchone()
        return row[0]

    @staticmethod
    def recent_for_user(user_id: str, limit: int) -> list[Journal]:
        """Newest entries first."""
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM journals WHERE user_id = ? ORDER BY date DESC LIMIT ?",
                (user_id, limit),
            ).fetchall()
        return [Journal.from_db_row(dict(row)) for row in rows]

    @staticmethod
    def list_between(user_id: str, since: datetime, until: datetime) -> list[Journal]:
        """Entries with since <= date <= until, oldest first."""
        with get_db_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM journals
                WHERE user_id = ? AND date >= ? AND date <= ?
                ORDER BY date ASC
                """,
                (user_id, storage_ts(since), storage_ts(until)),
            ).fetchall()
        return [Journal.from_db_row(dict(row)) for row in rows]

    @staticmethod
    @retry_on_db_lock()
    def toggle_like(journal_id: str, user_id: str) -> tuple[bool, int]:
        """
        Like the journal if user_id has not, otherwise unlike it.

        The write is conditional on the likes list being unchanged since it
        was read, so concurrent toggles never lose an update.

        Returns:
            (liked, like_count) after the toggle

        Raises:
            JournalNotFoundError: If the journal does not exist
        """
        while True:
            with db_transaction() as conn:
                row = conn.execute(
                    "SELECT likes FROM journals WHERE id = ?", (journal_id,)
                ).fetchone()
                if row is None:
                    raise JournalNotFoundError(journal_id)

                raw = row["likes"]
                likes: list[str] = json.loads(raw or "[]")
                liked = user_id not in likes
                if liked:
                    likes.append(user_id)
                else:
                    likes = [uid for uid in likes if uid != user_id]

                cursor = conn.execute(
                    """
                    UPDATE journals SET likes = ?, like_count = ?
                    WHERE id = ? AND likes IS ?
                    """,
                    (json.dumps(likes), len(likes), journal_id, raw),
                )
                if cursor.rowcount == 1:
                    return liked, len(likes)

            logger.debug("Like toggle on %s raced, retrying", journal_id)


# ============================================================================
# Mail
# ============================================================================


class MailRepository:
    """Persistence for mail and per-recipient read/claim state."""

    @staticmethod
    def insert_many(mails: list[Mail], conn: sqlite3.Connection) -> None:
        if not mails:
            return
        conn.executemany(_insert_sql("mails", _MAIL_COLUMNS), [m.to_db_dict() for m in mails])
        conn.executemany(
            """
            INSERT INTO mail_recipients (mail_id, user_id, read, reward_claimed)
            VALUES (?, ?, ?, ?)
            """,
            [
                (m.id, r.user_id, int(r.read), int(r.reward_claimed))
                for m in mails
                for r in m.recipients
            ],
        )

    @staticmethod
    @retry_on_db_lock()
    def create_many(mails: list[Mail]) -> list[Mail]:
        """Insert mails in their own transaction."""
        with db_transaction() as conn:
            MailRepository.insert_many(mails, conn)
        return mails

    @staticmethod
    def _recipients(conn: sqlite3.Connection, mail_id: str) -> list[Recipient]:
        rows = conn.execute(
            "SELECT user_id, read, reward_claimed FROM mail_recipients WHERE mail_id = ?",
            (mail_id,),
        ).fetchall()
        return [
            Recipient(
                user_id=r["user_id"],
                read=bool(r["read"]),
                reward_claimed=bool(r["reward_claimed"]),
            )
            for r in rows
        ]

    @staticmethod
    def get_by_id(mail_id: str) -> Mail | None:
        with get_db_connection() as conn:
            row = conn.execute("SELECT * FROM mails WHERE id = ?", (mail_id,)).fetchone()
            if row is None:
                return None
            recipients = MailRepository._recipients(conn, mail_id)
        return Mail.from_db_row(dict(row), recipients)

    @staticmethod
    def list_for_user(user_id: str, limit: int = API_LIST_LIMIT_DEFAULT) -> list[Mail]:
        """Mail addressed to the user, newest first, with only that user's recipient state."""
        with get_db_connection() as conn:
            rows = conn.execute(
                """
                SELECT m.*, r.read AS r_read, r.reward_claimed AS r_reward_claimed
                FROM mails m
                JOIN mail_recipients r ON r.mail_id = m.id
                WHERE r.user_id = ?
                ORDER BY m.date DESC
                LIMIT ?
                """,
                (user_id, limit),
            ).fetchall()

        mails = []
        for row in rows:
            data = dict(row)
            recipient = Recipient(
                user_id=user_id,
                read=bool(data.pop("r_read")),
                reward_claimed=bool(data.pop("r_reward_claimed")),
            )
            mails.append(Mail.from_db_row(data, [recipient]))
        return mails

    @staticmethod
    def has_recent(user_id: str, mail_type: MailType, since: datetime) -> bool:
        """Any mail of this type sent to the user at or after `since`."""
        with get_db_connection() as conn:
            row = conn.execute(
                """
                SELECT 1 FROM mails m
                JOIN mail_recipients r ON r.mail_id = m.id
                WHERE r.user_id = ? AND m.mail_type = ? AND m.date >= ?
                LIMIT 1
                """,
                (user_id, MailType(mail_type).value, storage_ts(since)),
            ).fetchone()
        return row is not None

    @staticmethod
    def has_metadata(user_id: str, mail_type: MailType, **match: Any) -> bool:
        """Any mail of this type to the user whose metadata has all of `match`."""
        unknown = set(match) - _METADATA_KEYS
        if unknown:
            raise ValueError(f"Unknown metadata keys: {sorted(unknown)}")

        clauses = "".join(f" AND json_extract(m.metadata, '$.{key}') = ?" for key in match)
        with get_db_connection() as conn:
            row = conn.execute(
                f"""
                SELECT 1 FROM mails m
                JOIN mail_recipients r ON r.mail_id = m.id
                WHERE r.user_id = ? AND m.mail_type = ?{clauses}
                LIMIT 1
                """,
                (user_id, MailType(mail_type).value, *match.values()),
            ).fetchone()
        return row is not None

    @staticmethod
    def count_for_user(user_id: str, mail_type: MailType | None = None) -> int:
        query = (
            "SELECT COUNT(*) FROM mails m JOIN mail_recipients r ON r.mail_id = m.id "
            "WHERE r.user_id = ?"
        )
        params: list[Any] = [user_id]
        if mail_type is not None:
            query += " AND m.mail_type = ?"
            params.append(MailType(mail_type).value)
        with get_db_connection() as conn:
            return conn.execute(query, params).fetchone()[0]

    @staticmethod
    @retry_on_db_lock()
    def mark_read(mail_id: str, user_id: str) -> None:
        """
        Raises:
            MailNotFoundError: If the mail does not exist
            NotARecipientError: If user_id is not a recipient
        """
        with db_transaction() as conn:
            if not conn.execute("SELECT 1 FROM mails WHERE id = ?", (mail_id,)).fetchone():
                raise MailNotFoundError(mail_id)
            cursor = conn.execute(
                "UPDATE mail_recipients SET read = 1 WHERE mail_id = ? AND user_id = ?",
                (mail_id, user_id),
            )
            if cursor.rowcount == 0:
                raise NotARecipientError(f"User {user_id} is not a recipient of mail {mail_id}")

    @staticmethod
    @retry_on_db_lock()
    def claim_reward(mail_id: str, user_id: str) -> tuple[int, int]:
        """
        Credit the mail's reward to the user, once.

        Reward mails without an amount pay DEFAULT_CLAIM_AMOUNT. Claiming also
        marks the mail read.

        Returns:
            (amount credited, new coin balance)

        Raises:
            MailNotFoundError, NotARecipientError, RewardNotClaimableError
        """
        with db_transaction() as conn:
            row = conn.execute(
                "SELECT mail_type, reward_amount FROM mails WHERE id = ?", (mail_id,)
            ).fetchone()
            if row is None:
                raise MailNotFoundError(mail_id)

            amount = row["reward_amount"] or 0
            if row["mail_type"] == MailType.REWARD.value and amount <= 0:
                amount = DEFAULT_CLAIM_AMOUNT
            if amount <= 0:
                raise RewardNotClaimableError("This mail has no reward to claim.")

            recipient = conn.execute(
                "SELECT reward_claimed FROM mail_recipients WHERE mail_id = ? AND user_id = ?",
                (mail_id, user_id),
            ).fetchone()
            if recipient is None:
                raise NotARecipientError(f"User {user_id} is not a recipient of mail {mail_id}")

            cursor = conn.execute(
                """
                UPDATE mail_recipients SET reward_claimed = 1, read = 1
                WHERE mail_id = ? AND user_id = ? AND reward_claimed = 0
                """,
                (mail_id, user_id),
            )
            if cursor.rowcount == 0:
                raise RewardNotClaimableError("Reward already claimed.")

            balance = UserRepository.add_coins(user_id, amount, conn)

        logger.info("User %s claimed %d coins from mail %s", user_id, amount, mail_id)
        return amount, balance

    @staticmethod
    @retry_on_db_lock()
    def delete(mail_id: str) -> bool:
        with db_transaction() as conn:
            conn.execute("DELETE FROM mail_recipients WHERE mail_id = ?", (mail_id,))
            cursor = conn.execute("DELETE FROM mails WHERE id = ?", (mail_id,))
        return cursor.rowcount > 0


class RepositoryMailHistory:
    """MailHistory for one user, backed by MailRepository."""

    def __init__(self, user_id: str):
        self.user_id = user_id

    def has_recent(self, mail_type: MailType, since: datetime) -> bool:
        return MailRepository.has_recent(self.user_id, mail_type, since)

    def has_metadata(self, mail_type: MailType, **match: Any) -> bool:
        return MailRepository.has_metadata(self.user_id, mail_type, **match)
