"""Unit tests for mail building, theming and the per-login batch cap"""

from __future__ import annotations

import random

from starlit.catalog.templates import MailTemplate, MailTheme
from starlit.engagement.mail import (
    Candidate,
    MailBatch,
    apply_theme,
    build_mail,
    fill_placeholders,
    unresolved_placeholders,
)
from starlit.engagement.models import MailType, MilestoneMetadata, User
from starlit.observability.telemetry import get_counter

TEMPLATE = MailTemplate(title="Hi", content="<p>Hello {nickname}</p>", reward_amount=20)
THEME = MailTheme(
    theme_id="theme_grove",
    styles={"backgroundColor": "#f0fdf4"},
    content_prefixes=("<p>Greetings</p>",),
    content_suffixes=("<p>Farewell</p>",),
    sender="Elarion",
)


def _user(**fields) -> User:
    return User(id="u1", nickname="Luna", email="luna@example.com", password="pw", **fields)


def _candidate(now, source: str, counts: bool = True, on_accept=None) -> Candidate:
    mail = build_mail(TEMPLATE, _user(), MailType.TIP, now)
    return Candidate(mail=mail, source=source, on_accept=on_accept, counts_toward_cap=counts)


class TestPlaceholders:
    def test_fills_known_tokens(self):
        assert fill_placeholders("Hi {name}, {count} left", {"name": "Luna", "count": 3}) == (
            "Hi Luna, 3 left"
        )

    def test_unknown_tokens_left_alone_without_default(self):
        assert fill_placeholders("Hi {name} {other}", {"name": "Luna"}) == "Hi Luna {other}"

    def test_default_replaces_every_remaining_token(self):
        assert fill_placeholders("{a} and {b}", {"a": None}, default="N/A") == "N/A and N/A"

    def test_unresolved_placeholders(self):
        assert unresolved_placeholders("{a} {b} plain") == ["a", "b"]
        assert unresolved_placeholders("<p style='x: y'>none</p>") == []


class TestTheme:
    def test_no_theme_returns_body_unchanged(self):
        assert apply_theme("<p>body</p>", None, random.Random(1)) == "<p>body</p>"

    def test_theme_wraps_with_styles_prefix_and_suffix(self):
        wrapped = apply_theme("<p>body</p>", THEME, random.Random(1))

        assert wrapped.startswith('<div style="background-color: #f0fdf4">')
        assert wrapped.index("<p>Greetings</p>") < wrapped.index("<p>body</p>")
        assert wrapped.index("<p>body</p>") < wrapped.index("<p>Farewell</p>")


class TestBuildMail:
    def test_single_recipient_unread(self, now):
        user = _user(active_mail_theme="theme_grove")
        mail = build_mail(
            TEMPLATE,
            user,
            MailType.STREAK,
            now,
            metadata=MilestoneMetadata(milestone=7),
            content="<p>custom</p>",
        )

        assert [r.user_id for r in mail.recipients] == ["u1"]
        assert not mail.recipients[0].read
        assert not mail.recipients[0].reward_claimed
        assert mail.reward_amount == 20
        assert mail.theme_id == "theme_grove"
        assert mail.content == "<p>custom</p>"
        assert mail.metadata.milestone == 7
        assert mail.date == now

    def test_sender_and_title_overrides(self, now):
        mail = build_mail(
            TEMPLATE, _user(), MailType.PROMPT, now, sender="Elarion", title="Whisper"
        )
        assert mail.sender == "Elarion"
        assert mail.title == "Whisper"


class TestMailBatch:
    def test_cap_keeps_earliest_offers(self, now):
        batch = MailBatch(cap=2)

        assert batch.offer(_candidate(now, "first"))
        assert batch.offer(_candidate(now, "second"))
        assert batch.full
        assert not batch.offer(_candidate(now, "third"))

        assert len(batch) == 2
        assert batch.dropped == ["third"]
        assert get_counter("mail.batch_cap_dropped") == 1

    def test_on_accept_runs_only_for_accepted_mail(self, now):
        calls = []
        batch = MailBatch(cap=1)

        batch.offer(_candidate(now, "a", on_accept=lambda: calls.append("a")))
        batch.offer(_candidate(now, "b", on_accept=lambda: calls.append("b")))

        assert calls == ["a"]

    def test_exempt_candidates_bypass_cap(self, now):
        batch = MailBatch(cap=1)
        batch.offer(_candidate(now, "a"))

        assert batch.offer(_candidate(now, "story", counts=False))
        assert len(batch) == 2
        # Exempt mail does not consume a slot
        assert batch.full
        assert not batch.offer(_candidate(now, "b"))

    def test_none_offer_is_ignored(self):
        batch = MailBatch(cap=2)
        assert not batch.offer(None)
        assert len(batch) == 0
