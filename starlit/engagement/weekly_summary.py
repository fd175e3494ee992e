"""
Weekly Summary Compiler

Aggregates the trailing 7 days of entries into journaling statistics and
renders them into the weekly summary mail. Runs at most once per ISO week
per user; the ISO week key is stamped on the user when the mail is accepted.
"""

from __future__ import annotations

import html
import random
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, tzinfo

from starlit.catalog.templates import MailTemplate, TemplateCatalog
from starlit.config import SUMMARY_PLACEHOLDER_DEFAULT, WEEKLY_TREND_THRESHOLD, WEEKLY_WINDOW_DAYS
from starlit.engagement.mail import Candidate, build_mail, fill_placeholders
from starlit.engagement.models import Journal, MailType, Mood, SummaryMetadata, User
from starlit.engagement.temporal import (
    WEEKDAY_NAMES,
    engagement_tz,
    is_new_iso_week,
    iso_week_key,
    local_date,
    local_hour,
    time_of_day_bucket,
    window_start,
)
from starlit.observability.logging import get_logger

logger = get_logger(__name__)

# Numeric mood scale used for the average score and trend
MOOD_VALUES: dict[str, int] = {
    "Happy": 5,
    "Excited": 4,
    "Neutral": 3,
    "Reflective": 3,
    "Tired": 2,
    "Anxious": 1,
    "Sad": 1,
    "Angry": 0,
}
DEFAULT_MOOD_VALUE = 3

TREND_IMPROVING = "improving"
TREND_DECLINING = "declining"
TREND_STABLE = "stable"
TREND_EMOJI = {TREND_IMPROVING: "📈", TREND_DECLINING: "📉", TREND_STABLE: "➡️"}

FALLBACK_PROMPT = "Write about a small moment from this week that you want to remember."

FALLBACK_TEMPLATE = MailTemplate(
    title="Your Weekly Journal Insights 📊✨",
    content=(
        "<p>This week you wrote {entryCount} entries on {journalingDays}/7 days "
        "({consistencyScore}% {consistencyEmoji}). Mostly {mostFrequentMood}, "
        "trend {moodTrend} {trendEmoji}.</p><p>{randomPrompt}</p>"
    ),
)

_INSIGHT_LINE = (
    '<p style="margin: 0.5rem 0; font-size: 0.9rem; padding-left: 1rem; '
    'border-left: 2px solid #ff8a65;">• {text}</p>'
)
_RECOMMENDATION_LINE = (
    '<p style="margin: 0.5rem 0; font-size: 0.9rem; padding-left: 1rem; '
    'border-left: 2px solid #4caf50;">• {text}</p>'
)
_SECTION_LINE = (
    '<p style="margin: 0.5rem 0; font-size: 0.9rem;"><strong>{label}:</strong> {text}</p>'
)


def _user_text(text: str) -> str:
    """HTML-escape user-written text and neutralise placeholder braces."""
    return html.escape(text).replace("{", "&#123;").replace("}", "&#125;")


@dataclass
class WeeklyStats:
    entry_count: int
    journaling_days: int
    consistency_score: int
    consistency_message: str
    consistency_emoji: str
    most_frequent_mood: str
    max_count: int
    mood_counts: dict[str, int]
    avg_mood_score: float
    mood_trend: str
    total_words: int
    avg_words_per_entry: int
    shortest: int
    longest: int
    preferred_time: str
    preferred_day: str
    longest_entry_day: str
    top_tags: list[str] = field(default_factory=list)
    top_theme: str | None = None
    top_collections: list[str] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def trend_emoji(self) -> str:
        return TREND_EMOJI[self.mood_trend]


def _first_max(counts: dict[str, int], default: str) -> tuple[str, int]:
    """Highest count; ties go to the key inserted first."""
    best_key, best = default, 0
    for key, count in counts.items():
        if count > best:
            best_key, best = key, count
    return best_key, best


def _top(counts: dict[str, int], n: int) -> list[tuple[str, int]]:
    # sorted() is stable, so equal counts keep first-seen order
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)[:n]


def mood_trend(scores: Sequence[float], threshold: float = WEEKLY_TREND_THRESHOLD) -> str:
    """Compare the first half of the week's scores with the second half."""
    half = len(scores) // 2
    first, second = scores[:half], scores[half:]
    if not first or not second:
        return TREND_STABLE

    first_avg = sum(first) / len(first)
    second_avg = sum(second) / len(second)
    if second_avg > first_avg + threshold:
        return TREND_IMPROVING
    if second_avg < first_avg - threshold:
        return TREND_DECLINING
    return TREND_STABLE


def consistency_feedback(score: int) -> tuple[str, str]:
    if score >= 85:
        return "Exceptional consistency! You're building a strong habit.", "🔥"
    if score >= 60:
        return "Great consistency! Keep up the momentum.", "⭐"
    if score >= 40:
        return "Good start! Try to journal a bit more regularly.", "🌱"
    return "Every entry counts! Consider setting a daily reminder.", "💪"


def _insights(mood: str, avg_words: int, preferred_time: str) -> list[str]:
    insights = []

    if mood in ("Happy", "Excited"):
        insights.append("Your positive energy shines through your entries! ✨")
    elif mood == "Reflective":
        insights.append("You're in a thoughtful phase - perfect for self-discovery! 🤔")
    elif mood in ("Anxious", "Sad"):
        insights.append(
            "Remember: journaling during tough times builds resilience. You're doing great! 💙"
        )

    if avg_words > 200:
        insights.append("You're a natural storyteller with rich, detailed entries! 📖")
    elif avg_words < 50:
        insights.append(
            "Concise and focused - sometimes less is more! "
            "Consider expanding when you feel inspired. ✍️"
        )

    if preferred_time == "morning":
        insights.append(
            "Morning pages are powerful! You're setting positive intentions for your days. 🌅"
        )
    elif preferred_time == "evening":
        insights.append("Evening reflection helps process the day. Great for better sleep! 🌙")

    return insights


def _recommendations(
    journaling_days: int, avg_words: int, tag_count: int, trend: str, preferred_time: str
) -> list[str]:
    recommendations = []
    if journaling_days < 5:
        recommendations.append(
            f"Try setting a daily reminder to journal at your preferred time ({preferred_time})"
        )
    if avg_words < 100:
        recommendations.append("Challenge yourself to write one extra sentence per entry this week")
    if tag_count < 2:
        recommendations.append(
            "Experiment with more tags to better categorize your thoughts and feelings"
        )
    if trend == TREND_DECLINING:
        recommendations.append(
            "Consider adding gratitude or positive affirmations to your journaling routine"
        )
    return recommendations


def compute_weekly_stats(entries: Sequence[Journal], tz: tzinfo | None = None) -> WeeklyStats:
    """
    Statistics over a non-empty window of entries.

    Raises:
        ValueError: If entries is empty
    """
    if not entries:
        raise ValueError("compute_weekly_stats needs at least one entry")

    tz = tz or engagement_tz()
    ordered = sorted(entries, key=lambda e: e.date)

    mood_counts: dict[str, int] = {}
    for entry in ordered:
        mood = Mood(entry.mood).value
        mood_counts[mood] = mood_counts.get(mood, 0) + 1

    scores = [MOOD_VALUES.get(Mood(e.mood).value, DEFAULT_MOOD_VALUE) for e in ordered]
    avg_score = sum(scores) / len(scores)
    trend = mood_trend(scores)
    dominant, max_count = _first_max(mood_counts, "Neutral")

    time_counts: dict[str, int] = {}
    day_counts: dict[str, int] = {}
    for entry in ordered:
        bucket = time_of_day_bucket(local_hour(entry.date, tz))
        time_counts[bucket] = time_counts.get(bucket, 0) + 1
        day = WEEKDAY_NAMES[local_date(entry.date, tz).weekday()]
        day_counts[day] = day_counts.get(day, 0) + 1
    preferred_time, _ = _first_max(time_counts, "various times")
    preferred_day, _ = _first_max(day_counts, "various days")

    word_counts = [len(e.content.split()) for e in ordered if e.content]
    total_words = sum(word_counts)
    avg_words = int(total_words / len(ordered) + 0.5)

    longest_entry = max(ordered, key=lambda e: len(e.content or ""))
    longest_entry_day = WEEKDAY_NAMES[local_date(longest_entry.date, tz).weekday()]

    tag_counts: dict[str, int] = {}
    theme_counts: dict[str, int] = {}
    collection_counts: dict[str, int] = {}
    for entry in ordered:
        for tag in entry.tags:
            tag_counts[tag] = tag_counts.get(tag, 0) + 1
        if entry.theme:
            theme_counts[entry.theme] = theme_counts.get(entry.theme, 0) + 1
        for collection in entry.collections:
            if collection != "All":
                collection_counts[collection] = collection_counts.get(collection, 0) + 1

    top_tags = [f"{tag} ({count})" for tag, count in _top(tag_counts, 3)]
    top_theme = _top(theme_counts, 1)[0][0] if theme_counts else None
    top_collections = [f"{name} ({count})" for name, count in _top(collection_counts, 2)]

    journaling_days = len({local_date(e.date, tz) for e in ordered})
    consistency = int(journaling_days * 100 / WEEKLY_WINDOW_DAYS + 0.5)
    message, emoji = consistency_feedback(consistency)

    return WeeklyStats(
        entry_count=len(ordered),
        journaling_days=journaling_days,
        consistency_score=consistency,
        consistency_message=message,
        consistency_emoji=emoji,
        most_frequent_mood=dominant,
        max_count=max_count,
        mood_counts=mood_counts,
        avg_mood_score=avg_score,
        mood_trend=trend,
        total_words=total_words,
        avg_words_per_entry=avg_words,
        shortest=min(word_counts, default=0),
        longest=max(word_counts, default=0),
        preferred_time=preferred_time,
        preferred_day=preferred_day,
        longest_entry_day=longest_entry_day,
        top_tags=top_tags,
        top_theme=top_theme,
        top_collections=top_collections,
        insights=_insights(dominant, avg_words, preferred_time),
        recommendations=_recommendations(
            journaling_days, avg_words, len(top_tags), trend, preferred_time
        ),
    )


def placeholder_values(stats: WeeklyStats, prompt: str) -> dict[str, str]:
    """Every token the summary template may use, as display strings."""
    recommendations = stats.recommendations or [
        "You're doing great! Keep up your journaling journey."
    ]
    return {
        "entryCount": str(stats.entry_count),
        "journalingDays": str(stats.journaling_days),
        "totalWords": f"{stats.total_words:,}",
        "avgWordsPerEntry": str(stats.avg_words_per_entry),
        "consistencyScore": str(stats.consistency_score),
        "consistencyEmoji": stats.consistency_emoji,
        "shortest": str(stats.shortest),
        "longest": str(stats.longest),
        "consistencyMessage": stats.consistency_message,
        "mostFrequentMood": stats.most_frequent_mood,
        "maxCount": str(stats.max_count),
        "moodTrend": stats.mood_trend,
        "trendEmoji": stats.trend_emoji,
        "avgMoodScore": f"{stats.avg_mood_score:.1f}",
        "moodBreakdown": ", ".join(f"{m}({c})" for m, c in stats.mood_counts.items()),
        "preferredTime": stats.preferred_time,
        "preferredDay": stats.preferred_day,
        "longestEntryDay": stats.longest_entry_day,
        "topTags": (
            ", ".join(_user_text(tag) for tag in stats.top_tags) or SUMMARY_PLACEHOLDER_DEFAULT
        ),
        "topThemeSection": (
            _SECTION_LINE.format(label="Favorite Theme", text=_user_text(stats.top_theme))
            if stats.top_theme
            else ""
        ),
        "topCollectionsSection": (
            _SECTION_LINE.format(
                label="Active Collections",
                text=", ".join(_user_text(c) for c in stats.top_collections),
            )
            if stats.top_collections
            else ""
        ),
        "insightsList": "".join(_INSIGHT_LINE.format(text=i) for i in stats.insights),
        "recommendationsList": "".join(
            _RECOMMENDATION_LINE.format(text=r) for r in recommendations
        ),
        "randomPrompt": prompt,
    }


def render_summary(template: MailTemplate, stats: WeeklyStats, prompt: str) -> str:
    """Substitute stats into the template; unknown tokens get the safe default."""
    return fill_placeholders(
        template.content, placeholder_values(stats, prompt), default=SUMMARY_PLACEHOLDER_DEFAULT
    )


def summary_candidate(
    user: User,
    window_entries: Sequence[Journal],
    catalog: TemplateCatalog,
    rng: random.Random,
    now: datetime,
    *,
    tz: tzinfo | None = None,
) -> Candidate | None:
    """
    window_entries: the user's entries dated within the trailing window.

    The summary is never skinned with the user's mail theme.
    """
    week = iso_week_key(now, tz)
    if not is_new_iso_week(user.last_weekly_summary_week, now, tz):
        return None
    first_day = local_date(window_start(WEEKLY_WINDOW_DAYS, now, tz), tz)
    window_entries = [e for e in window_entries if local_date(e.date, tz) >= first_day]
    if not window_entries:
        return None

    stats = compute_weekly_stats(window_entries, tz)
    template = catalog.pick(rng, "weeklySummary") or FALLBACK_TEMPLATE
    prompt = catalog.random_prompt(rng) or FALLBACK_PROMPT

    mail = build_mail(
        template,
        user,
        MailType.SUMMARY,
        now,
        metadata=SummaryMetadata(
            week=week,
            entry_count=stats.entry_count,
            journaling_days=stats.journaling_days,
            consistency_score=stats.consistency_score,
            dominant_mood=stats.most_frequent_mood,
            mood_trend=stats.mood_trend,
        ),
        content=render_summary(template, stats, prompt),
    )

    def stamp_week() -> None:
        user.last_weekly_summary_week = week

    return Candidate(mail=mail, source="weekly_summary", on_accept=stamp_week)
