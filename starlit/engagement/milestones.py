"""
Milestone Detector

Streak-length and entry-count thresholds, each fired at most once per user.
The per-user ledger is the dedup guard; it is appended when the milestone
mail is accepted into the login batch and is never cleared.
"""

from __future__ import annotations

import random
from collections.abc import Iterable
from datetime import datetime

from starlit.catalog.templates import MailTheme, TemplateCatalog
from starlit.config import ENTRY_MILESTONES, FEEDBACK_URL, MILESTONE_POLICY, STREAK_MILESTONES
from starlit.engagement.mail import Candidate, build_mail, fill_placeholders
from starlit.engagement.models import MailType, MilestoneMetadata, User
from starlit.observability.logging import get_logger

logger = get_logger(__name__)

POLICY_EXACT = "exact"
POLICY_CATCH_UP = "catch_up"
POLICIES = (POLICY_EXACT, POLICY_CATCH_UP)

STREAK_MILESTONE_SOURCE = "streak_milestone"
ENTRY_MILESTONE_SOURCE = "entry_milestone"


def due_thresholds(
    value: int,
    thresholds: Iterable[int],
    completed: Iterable[int],
    policy: str = MILESTONE_POLICY,
) -> list[int]:
    """
    Thresholds that should fire for `value`, ascending.

    exact: only a threshold equal to value.
    catch_up: every threshold <= value not yet in the ledger.
    """
    if policy not in POLICIES:
        raise ValueError(f"Unknown milestone policy: {policy!r}")

    done = set(completed)
    if policy == POLICY_CATCH_UP:
        return sorted(t for t in thresholds if t <= value and t not in done)
    return sorted(t for t in thresholds if t == value and t not in done)


def _record(ledger: list[int], threshold: int) -> None:
    if threshold not in ledger:
        ledger.append(threshold)


def streak_milestone_candidates(
    user: User,
    catalog: TemplateCatalog,
    rng: random.Random,
    now: datetime,
    *,
    theme: MailTheme | None = None,
    policy: str = MILESTONE_POLICY,
    thresholds: Iterable[int] = STREAK_MILESTONES,
) -> list[Candidate]:
    candidates = []
    for threshold in due_thresholds(
        user.current_streak, thresholds, user.completed_streak_milestones, policy
    ):
        template = catalog.pick(rng, "streakMilestone", f"{threshold}day")
        if template is None:
            # No copy for this threshold: leave the ledger alone
            logger.debug("No streak milestone template for %d days", threshold)
            continue

        mail_type = MailType(template.mail_type) if template.mail_type else MailType.STREAK
        content = fill_placeholders(
            template.content, {"milestone": threshold, "feedbackUrl": FEEDBACK_URL}
        )
        mail = build_mail(
            template,
            user,
            mail_type,
            now,
            metadata=MilestoneMetadata(milestone=threshold),
            content=content,
            theme=theme,
            rng=rng,
        )
        candidates.append(
            Candidate(
                mail=mail,
                source=f"{STREAK_MILESTONE_SOURCE}_{threshold}",
                on_accept=lambda t=threshold: _record(user.completed_streak_milestones, t),
            )
        )
    return candidates


def entry_milestone_candidates(
    user: User,
    entry_count: int,
    catalog: TemplateCatalog,
    rng: random.Random,
    now: datetime,
    *,
    theme: MailTheme | None = None,
    policy: str = MILESTONE_POLICY,
    thresholds: Iterable[int] = ENTRY_MILESTONES,
) -> list[Candidate]:
    candidates = []
    for threshold in due_thresholds(
        entry_count, thresholds, user.completed_entry_milestones, policy
    ):
        template = catalog.pick(rng, "entryMilestone", f"{threshold}entries")
        if template is None:
            logger.debug("No entry milestone template for %d entries", threshold)
            continue

        mail_type = MailType(template.mail_type) if template.mail_type else MailType.ENTRY
        mail = build_mail(
            template,
            user,
            mail_type,
            now,
            metadata=MilestoneMetadata(milestone=threshold),
            content=fill_placeholders(template.content, {"milestone": threshold}),
            theme=theme,
            rng=rng,
        )
        candidates.append(
            Candidate(
                mail=mail,
                source=f"{ENTRY_MILESTONE_SOURCE}_{threshold}",
                on_accept=lambda t=threshold: _record(user.completed_entry_milestones, t),
            )
        )
    return candidates
