"""
Database schema initialization for Starlit.

Contains the SQL schema and initialization logic, kept apart from database.py.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from starlit.observability.logging import get_logger

logger = get_logger(__name__)


def init_database(db_path: Path) -> None:
    """
    Initialize database with schema (idempotent)

    Safe to run multiple times - uses CREATE TABLE IF NOT EXISTS.

    Args:
        db_path: Path to the database file

    Side Effects:
    - Creates tables if they don't exist
    - Creates indexes for query performance
    - Creates the parent directory if needed
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)

    conn.executescript("""
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            nickname TEXT NOT NULL,
            email TEXT NOT NULL UNIQUE,
            password TEXT NOT NULL,
            age INTEGER,
            gender TEXT,
            subscribe INTEGER DEFAULT 0,
            current_streak INTEGER NOT NULL DEFAULT 0,
            longest_streak INTEGER NOT NULL DEFAULT 0,
            last_visited TEXT,
            last_journaled TEXT,
            coins INTEGER NOT NULL DEFAULT 0,
            inventory TEXT DEFAULT '[]',
            completed_streak_milestones TEXT DEFAULT '[]',
            completed_entry_milestones TEXT DEFAULT '[]',
            story_progress TEXT DEFAULT '{}',
            active_mail_theme TEXT,
            last_weekly_summary_week TEXT,
            version INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS journals (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            slug TEXT NOT NULL UNIQUE,
            content TEXT NOT NULL,
            mood TEXT NOT NULL,
            tags TEXT DEFAULT '[]',
            collections TEXT DEFAULT '["All"]',
            theme TEXT,
            is_public INTEGER DEFAULT 0,
            author_name TEXT,
            likes TEXT DEFAULT '[]',
            like_count INTEGER NOT NULL DEFAULT 0,
            word_count INTEGER NOT NULL DEFAULT 0,
            date TEXT NOT NULL,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_journals_user_date
        ON journals(user_id, date);

        CREATE TABLE IF NOT EXISTS mails (
            id TEXT PRIMARY KEY,
            sender TEXT NOT NULL,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            mail_type TEXT NOT NULL,
            reward_amount INTEGER DEFAULT 0,
            theme_id TEXT,
            metadata TEXT DEFAULT '{}',
            date TEXT NOT NULL,
            expiry_date TEXT
        );

        CREATE TABLE IF NOT EXISTS mail_recipients (
            mail_id TEXT NOT NULL REFERENCES mails(id) ON DELETE CASCADE,
            user_id TEXT NOT NULL,
            read INTEGER NOT NULL DEFAULT 0,
            reward_claimed INTEGER NOT NULL DEFAULT 0,
            PRIMARY KEY (mail_id, user_id)
        );

        CREATE INDEX IF NOT EXISTS idx_mail_recipients_user
        ON mail_recipients(user_id);

        CREATE INDEX IF NOT EXISTS idx_mails_type_date
        ON mails(mail_type, date);
    """)

    conn.commit()
    conn.close()

    logger.info("Database initialized: %s", db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Validate database has expected schema

    Args:
        conn: Active database connection

    Returns:
        True if valid

    Raises:
        ValueError: If tables are missing
    """
    required_tables = {
        "users": ["id", "email", "current_streak", "longest_streak", "story_progress", "version"],
        "journals": ["id", "user_id", "mood", "date", "like_count"],
        "mails": ["id", "mail_type", "metadata", "date"],
        "mail_recipients": ["mail_id", "user_id", "read", "reward_claimed"],
    }

    cursor = conn.cursor()

    cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
    existing_tables = {row[0] for row in cursor.fetchall()}

    missing_tables = set(required_tables.keys()) - existing_tables
    if missing_tables:
        raise ValueError(f"Database missing tables: {missing_tables}")

    for table, required_cols in required_tables.items():
        # Table names come from the dict above; identifiers cannot be parameterized
        if not table.replace("_", "").isalnum():
            raise ValueError(f"Invalid table name: {table}")

        cursor.execute(f"PRAGMA table_info({table})")
        existing_cols = {row[1] for row in cursor.fetchall()}

        missing_cols = set(required_cols) - existing_cols
        if missing_cols:
            raise ValueError(f"Table '{table}' missing columns: {missing_cols}")

    return True
