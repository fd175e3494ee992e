"""Unit tests for streak and entry milestone detection"""

from __future__ import annotations

import pytest

from starlit.config import FEEDBACK_URL
from starlit.engagement.mail import MailBatch
from starlit.engagement.milestones import (
    POLICY_CATCH_UP,
    POLICY_EXACT,
    due_thresholds,
    entry_milestone_candidates,
    streak_milestone_candidates,
)
from starlit.engagement.models import MailType, User

THRESHOLDS = (3, 7, 14, 30)


def _user(**fields) -> User:
    return User(id="u1", nickname="Luna", email="luna@example.com", password="pw", **fields)


class TestDueThresholds:
    def test_exact_fires_on_crossing_only(self):
        assert due_thresholds(7, THRESHOLDS, [], POLICY_EXACT) == [7]
        assert due_thresholds(8, THRESHOLDS, [], POLICY_EXACT) == []

    def test_exact_respects_ledger(self):
        assert due_thresholds(7, THRESHOLDS, [3, 7], POLICY_EXACT) == []

    def test_catch_up_fires_every_skipped_threshold(self):
        assert due_thresholds(9, THRESHOLDS, [], POLICY_CATCH_UP) == [3, 7]
        assert due_thresholds(15, THRESHOLDS, [3], POLICY_CATCH_UP) == [7, 14]

    def test_unknown_policy(self):
        with pytest.raises(ValueError, match="Unknown milestone policy"):
            due_thresholds(3, THRESHOLDS, [], "sometimes")


class TestStreakMilestones:
    def test_template_mail_type_overrides_default(self, templates, rng, now):
        user = _user(current_streak=3)
        [candidate] = streak_milestone_candidates(user, templates, rng, now)

        assert MailType(candidate.mail.mail_type) is MailType.REWARD
        assert candidate.mail.reward_amount == 50
        assert candidate.mail.metadata.milestone == 3
        assert FEEDBACK_URL in candidate.mail.content

    def test_ledger_only_moves_when_accepted(self, templates, rng, now):
        user = _user(current_streak=7)
        [candidate] = streak_milestone_candidates(user, templates, rng, now)

        assert MailType(candidate.mail.mail_type) is MailType.STREAK
        assert "7 days" in candidate.mail.content
        assert user.completed_streak_milestones == []

        batch = MailBatch(cap=2)
        batch.offer(candidate)
        assert user.completed_streak_milestones == [7]

    def test_rejected_candidate_leaves_ledger(self, templates, rng, now):
        user = _user(current_streak=7)
        [candidate] = streak_milestone_candidates(user, templates, rng, now)

        batch = MailBatch(cap=0)
        assert not batch.offer(candidate)
        assert user.completed_streak_milestones == []

    def test_missing_template_skips_threshold(self, templates, rng, now):
        # The fixture catalog has no 14day copy
        user = _user(current_streak=14)
        assert streak_milestone_candidates(user, templates, rng, now) == []

    def test_catch_up_emits_in_ascending_order(self, templates, rng, now):
        user = _user(current_streak=9)
        candidates = streak_milestone_candidates(
            user, templates, rng, now, policy=POLICY_CATCH_UP
        )
        assert [c.mail.metadata.milestone for c in candidates] == [3, 7]


class TestEntryMilestones:
    def test_fires_at_threshold(self, templates, rng, now):
        user = _user()
        [candidate] = entry_milestone_candidates(user, 5, templates, rng, now)

        assert MailType(candidate.mail.mail_type) is MailType.ENTRY
        assert candidate.mail.reward_amount == 25
        assert "5 entries" in candidate.mail.content

        candidate.on_accept()
        assert user.completed_entry_milestones == [5]

    def test_already_completed(self, templates, rng, now):
        user = _user(completed_entry_milestones=[5])
        assert entry_milestone_candidates(user, 5, templates, rng, now) == []
