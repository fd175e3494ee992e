"""
Inactivity reminders, tips and writing prompts.

Low-priority login mails. Each is guarded by a per-type cooldown; tips and
prompts additionally roll against a send probability on the injected random
source.
"""

from __future__ import annotations

import random
from datetime import datetime

from starlit.catalog.templates import MailTemplate, MailTheme, TemplateCatalog
from starlit.config import (
    INACTIVITY_COOLDOWN_PADDING_DAYS,
    INACTIVITY_PERIODS_DAYS,
    PROMPT_COOLDOWN_DAYS,
    PROMPT_SEND_PROBABILITY,
    TIP_COOLDOWN_DAYS,
    TIP_SEND_PROBABILITY,
)
from starlit.engagement.mail import Candidate, MailHistory, build_mail, fill_placeholders
from starlit.engagement.models import InactivityMetadata, MailType, User
from starlit.engagement.temporal import days_ago, ensure_aware

# Catalog key per inactivity period (days)
INACTIVITY_KEYS: dict[int, str] = {3: "short", 7: "medium", 14: "long"}

DEFAULT_PROMPT_TEMPLATE = MailTemplate(
    sender="The Whispering Grove",
    title="A Prompt from the Woodland Scrolls",
    content="Today's prompt: {prompt}",
)


def inactivity_candidate(
    user: User,
    history: MailHistory,
    catalog: TemplateCatalog,
    rng: random.Random,
    now: datetime,
    *,
    theme: MailTheme | None = None,
    periods: tuple[int, ...] = INACTIVITY_PERIODS_DAYS,
) -> Candidate | None:
    """One reminder for the longest inactivity period that applies."""
    if user.last_journaled is None:
        return None

    last = ensure_aware(user.last_journaled)
    applicable = [p for p in periods if last < days_ago(p, now)]
    if not applicable:
        return None

    period = max(applicable)
    if history.has_recent(
        MailType.INACTIVITY, days_ago(period + INACTIVITY_COOLDOWN_PADDING_DAYS, now)
    ):
        return None

    template = catalog.pick(rng, "inactivity", INACTIVITY_KEYS.get(period, "short"))
    if template is None:
        return None

    mail = build_mail(
        template,
        user,
        MailType.INACTIVITY,
        now,
        metadata=InactivityMetadata(period=period),
        theme=theme,
        rng=rng,
    )
    return Candidate(mail=mail, source="inactivity")


def tip_candidate(
    user: User,
    history: MailHistory,
    catalog: TemplateCatalog,
    rng: random.Random,
    now: datetime,
    *,
    theme: MailTheme | None = None,
    probability: float = TIP_SEND_PROBABILITY,
) -> Candidate | None:
    if history.has_recent(MailType.TIP, days_ago(TIP_COOLDOWN_DAYS, now)):
        return None
    if rng.random() >= probability:
        return None

    template = catalog.pick(rng, "tipsAndInspiration")
    if template is None:
        return None

    return Candidate(
        mail=build_mail(template, user, MailType.TIP, now, theme=theme, rng=rng),
        source="tip",
    )


def prompt_candidate(
    user: User,
    history: MailHistory,
    catalog: TemplateCatalog,
    rng: random.Random,
    now: datetime,
    *,
    theme: MailTheme | None = None,
    probability: float = PROMPT_SEND_PROBABILITY,
) -> Candidate | None:
    if history.has_recent(MailType.PROMPT, days_ago(PROMPT_COOLDOWN_DAYS, now)):
        return None
    if rng.random() >= probability:
        return None

    prompt = catalog.random_prompt(rng)
    if prompt is None:
        return None

    template = catalog.pick(rng, "promptMail") or DEFAULT_PROMPT_TEMPLATE

    # Themes may speak in their own voice
    sender = theme.sender if theme and theme.sender else None
    title = rng.choice(theme.prompt_titles) if theme and theme.prompt_titles else None

    mail = build_mail(
        template,
        user,
        MailType.PROMPT,
        now,
        content=fill_placeholders(template.content, {"prompt": prompt}),
        theme=theme,
        rng=rng,
        sender=sender,
        title=title,
    )
    return Candidate(mail=mail, source="prompt")
