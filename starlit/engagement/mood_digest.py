"""
Mood Digest Generator

Looks at the most recent entries, buckets their moods, and picks a
sentiment-appropriate mail, at most once per cooldown window.
"""

from __future__ import annotations

import random
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from starlit.catalog.templates import MailTheme, TemplateCatalog
from starlit.config import MOOD_BUCKET_MIN_COUNT, MOOD_COOLDOWN_DAYS, MOOD_MIN_ENTRIES
from starlit.engagement.mail import Candidate, MailHistory, build_mail
from starlit.engagement.models import Journal, MailType, Mood, MoodMetadata, User
from starlit.engagement.temporal import (
    HAPPY_MOODS,
    MOOD_BUCKET_HAPPY,
    MOOD_BUCKET_MIXED,
    MOOD_BUCKET_SAD,
    SAD_MOODS,
    days_ago,
)
from starlit.observability.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class MoodComposition:
    counts: dict[str, int]
    dominant: str | None
    bucket: str


def classify_moods(moods: Sequence[str], min_count: int = MOOD_BUCKET_MIN_COUNT) -> MoodComposition:
    """
    Count mood labels and pick a sentiment bucket.

    The sad bucket is checked first; ties for dominant mood go to the label
    seen first.
    """
    counts = Counter(moods)

    dominant = None
    best = 0
    for mood, count in counts.items():
        if count > best:
            dominant, best = mood, count

    sad = sum(count for mood, count in counts.items() if mood in SAD_MOODS)
    happy = sum(count for mood, count in counts.items() if mood in HAPPY_MOODS)

    if sad >= min_count:
        bucket = MOOD_BUCKET_SAD
    elif happy >= min_count:
        bucket = MOOD_BUCKET_HAPPY
    else:
        bucket = MOOD_BUCKET_MIXED

    return MoodComposition(counts=dict(counts), dominant=dominant, bucket=bucket)


def template_pool_path(catalog: TemplateCatalog, composition: MoodComposition) -> tuple[str, str]:
    """Specific-mood pool for the dominant mood when present, else the bucket pool."""
    if composition.dominant and catalog.has("specificMoods", composition.dominant.lower()):
        return ("specificMoods", composition.dominant.lower())
    return ("moodBased", composition.bucket)


def mood_candidate(
    user: User,
    recent_entries: Sequence[Journal],
    history: MailHistory,
    catalog: TemplateCatalog,
    rng: random.Random,
    now: datetime,
    *,
    theme: MailTheme | None = None,
    min_entries: int = MOOD_MIN_ENTRIES,
    cooldown_days: int = MOOD_COOLDOWN_DAYS,
) -> Candidate | None:
    """recent_entries must already be the newest K entries."""
    if len(recent_entries) < min_entries:
        return None

    if history.has_recent(MailType.MOOD, days_ago(cooldown_days, now)):
        logger.debug("Mood mail for user %s suppressed by cooldown", user.id)
        return None

    composition = classify_moods([Mood(entry.mood).value for entry in recent_entries])
    path = template_pool_path(catalog, composition)
    template = catalog.pick(rng, *path)
    if template is None:
        logger.debug("No mood templates at %s", ".".join(path))
        return None

    mail = build_mail(
        template,
        user,
        MailType.MOOD,
        now,
        metadata=MoodMetadata(
            mood=composition.dominant or "", mood_category=composition.bucket
        ),
        theme=theme,
        rng=rng,
    )
    return Candidate(mail=mail, source="mood")
