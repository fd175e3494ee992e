"""
Mail Emission

Builds mail documents from catalog templates, applies the user's mail theme,
and accumulates a capped per-login batch. Nothing here touches storage; the
engine persists the batch together with the user document.
"""

from __future__ import annotations

import random
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from starlit.catalog.templates import MailTemplate, MailTheme
from starlit.config import MAIL_BATCH_CAP
from starlit.engagement.models import Mail, MailType, NoMetadata, Recipient, User
from starlit.observability.logging import get_logger
from starlit.observability.telemetry import counter

logger = get_logger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
_CAMEL_RE = re.compile(r"([A-Z])")


class MailHistory(Protocol):
    """Read access to mail already delivered to one user."""

    def has_recent(self, mail_type: MailType, since: datetime) -> bool: ...

    def has_metadata(self, mail_type: MailType, **match: Any) -> bool: ...


def fill_placeholders(content: str, values: dict[str, Any], default: str | None = None) -> str:
    """
    Substitute {name} tokens from values.

    Tokens with no value are left alone unless a default is given, in which
    case every remaining token becomes the default.
    """

    def replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key in values and values[key] is not None:
            return str(values[key])
        if default is not None:
            return default
        return match.group(0)

    return _PLACEHOLDER_RE.sub(replace, content)


def unresolved_placeholders(content: str) -> list[str]:
    return _PLACEHOLDER_RE.findall(content)


def _css_property(name: str) -> str:
    return _CAMEL_RE.sub(r"-\1", name).lower()


def apply_theme(content: str, theme: MailTheme | None, rng: random.Random) -> str:
    """Wrap a body in the theme's styles with a random prefix and suffix."""
    if theme is None:
        return content

    styles = "; ".join(f"{_css_property(k)}: {v}" for k, v in theme.styles.items())
    prefix = rng.choice(theme.content_prefixes) if theme.content_prefixes else ""
    suffix = rng.choice(theme.content_suffixes) if theme.content_suffixes else ""

    return f'<div style="{styles}">\n    {prefix}\n    {content}\n    {suffix}\n  </div>'


def build_mail(
    template: MailTemplate,
    user: User,
    mail_type: MailType,
    now: datetime,
    *,
    metadata: Any = None,
    content: str | None = None,
    theme: MailTheme | None = None,
    rng: random.Random | None = None,
    sender: str | None = None,
    title: str | None = None,
) -> Mail:
    """Assemble a single-recipient mail from a template."""
    body = template.content if content is None else content
    if theme is not None:
        body = apply_theme(body, theme, rng or random.Random())

    return Mail(
        id=str(uuid.uuid4()),
        sender=sender or template.sender,
        title=title or template.title,
        content=body,
        mail_type=mail_type,
        recipients=[Recipient(user_id=user.id)],
        reward_amount=template.reward_amount,
        theme_id=user.active_mail_theme,
        metadata=metadata if metadata is not None else NoMetadata(),
        date=now,
    )


@dataclass
class Candidate:
    """
    A mail a detector wants to send.

    on_accept runs only if the batch takes the mail, so ledgers and cursors
    move in lockstep with what actually gets persisted.
    """

    mail: Mail
    source: str
    on_accept: Callable[[], None] | None = None
    counts_toward_cap: bool = True


class MailBatch:
    """Per-login mail accumulator with a cap; earlier offers win."""

    def __init__(self, cap: int = MAIL_BATCH_CAP):
        self.cap = cap
        self.mails: list[Mail] = []
        self.accepted: list[Candidate] = []
        self.dropped: list[str] = []
        self._capped = 0

    @property
    def full(self) -> bool:
        return self._capped >= self.cap

    def offer(self, candidate: Candidate | None) -> bool:
        if candidate is None:
            return False

        if candidate.counts_toward_cap and self.full:
            self.dropped.append(candidate.source)
            counter("mail.batch_cap_dropped")
            logger.debug("Mail batch full (cap=%d), dropped %s mail", self.cap, candidate.source)
            return False

        self.mails.append(candidate.mail)
        self.accepted.append(candidate)
        if candidate.counts_toward_cap:
            self._capped += 1
        if candidate.on_accept is not None:
            candidate.on_accept()
        return True

    def __len__(self) -> int:
        return len(self.mails)
