"""
Engagement engine: the automation that runs on login, signup and like events.

Login sequence for one user:

1. Load the user (fatal if missing)
2. Streak tracker (first login of the calendar day only)
3. Detectors in priority order, each isolated so one failure never stops
   the rest: streak milestones, entry milestones, mood digest, weekly
   summary, story chapter, inactivity, tip, prompt
4. Persist the user document and the accepted mail batch in one transaction,
   conditional on the user's version (compare-and-set)

A lost compare-and-set reloads the user and recomputes from scratch, so a
concurrent login can never double-credit the daily reward or double-fire a
milestone.
"""

from __future__ import annotations

import random
import threading
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from typing import Any

from cachetools import TTLCache

from starlit.catalog.stories import StoryCatalog
from starlit.catalog.templates import MailTheme, TemplateCatalog
from starlit.config import (
    ENGINE_CAS_RETRIES,
    LIKE_MILESTONES,
    MAIL_BATCH_CAP,
    MILESTONE_POLICY,
    MOOD_RECENT_ENTRIES,
    PROMPT_SEND_PROBABILITY,
    TIP_SEND_PROBABILITY,
    USER_LOCK_CACHE_SIZE,
    USER_LOCK_TTL_SECONDS,
    WEEKLY_WINDOW_DAYS,
)
from starlit.engagement import milestones, mood_digest, reminders, story, weekly_summary
from starlit.engagement.errors import (
    ConcurrentUpdateError,
    InvalidCredentialsError,
    JournalNotFoundError,
    StoryNotFoundError,
    UserNotFoundError,
)
from starlit.engagement.mail import Candidate, MailBatch, MailHistory, build_mail, fill_placeholders
from starlit.engagement.models import (
    LikeMetadata,
    Mail,
    MailType,
    SeasonalMetadata,
    User,
    utc_now,
)
from starlit.engagement.repository import (
    JournalRepository,
    MailRepository,
    RepositoryMailHistory,
    UserRepository,
)
from starlit.engagement.streak import apply_login
from starlit.engagement.temporal import (
    engagement_tz,
    ensure_aware,
    local_date,
    special_date,
    window_start,
)
from starlit.observability.logging import get_logger
from starlit.observability.telemetry import counter, log_event, time_block

logger = get_logger(__name__)

Detector = Callable[["LoginContext"], Iterable[Candidate | None]]


@dataclass
class LoginOutcome:
    """What a login produced, for the HTTP response."""

    user: User
    coins_earned: int
    streak_bonus: int
    mails: list[Mail] = field(default_factory=list)
    first_login_today: bool = False


@dataclass
class LikeOutcome:
    liked: bool
    like_count: int
    notification: Mail | None = None


@dataclass
class LoginContext:
    """Everything a detector may read during one login attempt."""

    user: User
    now: datetime
    history: MailHistory


class EngagementEngine:
    """
    Orchestrates detectors for a user event.

    Catalogs and the random source are injected so tests can pin content and
    randomness.
    """

    def __init__(
        self,
        templates: TemplateCatalog,
        stories: StoryCatalog,
        rng: random.Random | None = None,
        *,
        batch_cap: int = MAIL_BATCH_CAP,
        milestone_policy: str = MILESTONE_POLICY,
        tip_probability: float = TIP_SEND_PROBABILITY,
        prompt_probability: float = PROMPT_SEND_PROBABILITY,
        cas_retries: int = ENGINE_CAS_RETRIES,
        tz: tzinfo | None = None,
    ):
        if milestone_policy not in milestones.POLICIES:
            raise ValueError(f"Unknown milestone policy: {milestone_policy!r}")

        self.templates = templates
        self.stories = stories
        self.rng = rng or random.Random()
        self.batch_cap = batch_cap
        self.milestone_policy = milestone_policy
        self.tip_probability = tip_probability
        self.prompt_probability = prompt_probability
        self.cas_retries = cas_retries
        self.tz = tz or engagement_tz()

        # Idle locks expire; the version check still guards any overlap
        self._locks: TTLCache[str, threading.Lock] = TTLCache(
            maxsize=USER_LOCK_CACHE_SIZE, ttl=USER_LOCK_TTL_SECONDS
        )
        self._locks_guard = threading.Lock()

    def _user_lock(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[user_id] = lock
            return lock

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def authenticate(self, email: str, password: str) -> User:
        """
        Look up a user by email and compare the password verbatim.

        Raises:
            UserNotFoundError: No account for the email
            InvalidCredentialsError: Password mismatch
        """
        user = UserRepository.get_by_email(email)
        if user is None:
            raise UserNotFoundError(email)
        if user.password != password:
            counter("auth.invalid_password")
            raise InvalidCredentialsError("Incorrect password.")
        return user

    def login(self, email: str, password: str, now: datetime | None = None) -> LoginOutcome:
        user = self.authenticate(email, password)
        return self.process_login(user.id, now)

    def process_login(self, user_id: str, now: datetime | None = None) -> LoginOutcome:
        """
        Run the login automation for one user.

        Raises:
            UserNotFoundError: If the user does not exist
            ConcurrentUpdateError: If every compare-and-set attempt lost
        """
        now = ensure_aware(now or utc_now())

        with self._user_lock(user_id), time_block("engine.login"):
            for attempt in range(self.cas_retries + 1):
                user = UserRepository.get_by_id(user_id)
                if user is None:
                    raise UserNotFoundError(user_id)

                try:
                    return self._login_attempt(user, now)
                except ConcurrentUpdateError:
                    counter("engine.cas_conflict")
                    if attempt >= self.cas_retries:
                        logger.error(
                            "Login for user %s lost %d compare-and-set attempts",
                            user_id,
                            attempt + 1,
                        )
                        raise
                    logger.warning(
                        "User %s changed during login (attempt %d), recomputing",
                        user_id,
                        attempt + 1,
                    )

        raise AssertionError("unreachable")

    def _login_attempt(self, user: User, now: datetime) -> LoginOutcome:
        expected_version = user.version
        streak = apply_login(user, now, self.tz)

        ctx = LoginContext(user=user, now=now, history=RepositoryMailHistory(user.id))
        batch = MailBatch(cap=self.batch_cap)

        for name, detector in self._login_detectors():
            try:
                for candidate in detector(ctx):
                    batch.offer(candidate)
            except Exception:
                # A broken detector must not stop its siblings or the login
                logger.exception("Detector %s failed for user %s", name, user.id)
                counter("engine.detector_failed")
                counter(f"engine.detector_failed.{name}")

        UserRepository.save_with_mails(user, expected_version, batch.mails)

        # Reported only; the coins are credited when the mail reward is claimed
        streak_bonus = sum(
            c.mail.reward_amount
            for c in batch.accepted
            if c.source.startswith(milestones.STREAK_MILESTONE_SOURCE)
        )

        log_event(
            "engine.login",
            user_id=user.id,
            first_login_today=streak.first_login_today,
            current_streak=user.current_streak,
            mails=len(batch.mails),
            dropped=len(batch.dropped),
        )
        counter("engine.mails_emitted", len(batch.mails))

        return LoginOutcome(
            user=user,
            coins_earned=streak.coins_earned,
            streak_bonus=streak_bonus,
            mails=batch.mails,
            first_login_today=streak.first_login_today,
        )

    def _login_detectors(self) -> list[tuple[str, Detector]]:
        """Detectors in priority order; earlier ones win when the batch cap is hit."""
        return [
            ("streak_milestones", self._detect_streak_milestones),
            ("entry_milestones", self._detect_entry_milestones),
            ("mood_digest", self._detect_mood),
            ("weekly_summary", self._detect_weekly_summary),
            ("story", self._detect_story),
            ("inactivity", self._detect_inactivity),
            ("tip", self._detect_tip),
            ("prompt", self._detect_prompt),
        ]

    def _theme(self, user: User) -> MailTheme | None:
        return self.templates.theme(user.active_mail_theme)

    def _detect_streak_milestones(self, ctx: LoginContext) -> list[Candidate]:
        return milestones.streak_milestone_candidates(
            ctx.user,
            self.templates,
            self.rng,
            ctx.now,
            theme=self._theme(ctx.user),
            policy=self.milestone_policy,
        )

    def _detect_entry_milestones(self, ctx: LoginContext) -> list[Candidate]:
        entry_count = JournalRepository.count_for_user(ctx.user.id)
        return milestones.entry_milestone_candidates(
            ctx.user,
            entry_count,
            self.templates,
            self.rng,
            ctx.now,
            theme=self._theme(ctx.user),
            policy=self.milestone_policy,
        )

    def _detect_mood(self, ctx: LoginContext) -> list[Candidate | None]:
        recent = JournalRepository.recent_for_user(ctx.user.id, MOOD_RECENT_ENTRIES)
        return [
            mood_digest.mood_candidate(
                ctx.user,
                recent,
                ctx.history,
                self.templates,
                self.rng,
                ctx.now,
                theme=self._theme(ctx.user),
            )
        ]

    def _detect_weekly_summary(self, ctx: LoginContext) -> list[Candidate | None]:
        entries = JournalRepository.list_between(
            ctx.user.id, window_start(WEEKLY_WINDOW_DAYS, ctx.now, self.tz), ctx.now
        )
        return [
            weekly_summary.summary_candidate(
                ctx.user, entries, self.templates, self.rng, ctx.now, tz=self.tz
            )
        ]

    def _detect_story(self, ctx: LoginContext) -> list[Candidate | None]:
        return [story.story_candidate(ctx.user, self.stories, ctx.now, self.tz)]

    def _detect_inactivity(self, ctx: LoginContext) -> list[Candidate | None]:
        return [
            reminders.inactivity_candidate(
                ctx.user,
                ctx.history,
                self.templates,
                self.rng,
                ctx.now,
                theme=self._theme(ctx.user),
            )
        ]

    def _detect_tip(self, ctx: LoginContext) -> list[Candidate | None]:
        return [
            reminders.tip_candidate(
                ctx.user,
                ctx.history,
                self.templates,
                self.rng,
                ctx.now,
                theme=self._theme(ctx.user),
                probability=self.tip_probability,
            )
        ]

    def _detect_prompt(self, ctx: LoginContext) -> list[Candidate | None]:
        return [
            reminders.prompt_candidate(
                ctx.user,
                ctx.history,
                self.templates,
                self.rng,
                ctx.now,
                theme=self._theme(ctx.user),
                probability=self.prompt_probability,
            )
        ]

    # ------------------------------------------------------------------
    # Signup
    # ------------------------------------------------------------------

    def signup_mails(self, user: User, now: datetime) -> list[Mail]:
        """Welcome, signup reward, story promotion, and a seasonal note on special dates."""
        mails: list[Mail] = []

        for category, mail_type in (
            ("welcome", MailType.WELCOME),
            ("reward", MailType.REWARD),
            ("storyPromo", MailType.STORY),
        ):
            template = self.templates.pick(self.rng, category)
            if template is None:
                logger.debug("No %s template; skipping signup mail", category)
                continue
            content = fill_placeholders(template.content, {"nickname": user.nickname})
            mails.append(build_mail(template, user, mail_type, now, content=content))

        season = special_date(local_date(now, self.tz))
        if season:
            template = self.templates.pick(self.rng, "seasonal", season)
            if template is not None:
                mails.append(
                    build_mail(
                        template,
                        user,
                        MailType.SEASONAL,
                        now,
                        metadata=SeasonalMetadata(season=season),
                    )
                )

        return mails

    def process_signup(self, user: User, now: datetime | None = None) -> list[Mail]:
        """
        Create the account and its signup mails in one transaction.

        Raises:
            DuplicateEmailError: If the email is already registered
        """
        now = ensure_aware(now or utc_now())
        mails = self.signup_mails(user, now)
        UserRepository.create(user, mails)

        log_event("engine.signup", user_id=user.id, mails=len(mails))
        return mails

    # ------------------------------------------------------------------
    # Likes
    # ------------------------------------------------------------------

    def process_like(
        self, journal_id: str, liker_id: str, now: datetime | None = None
    ) -> LikeOutcome:
        """
        Toggle a like and notify the author when the count reaches a like milestone.

        The notification is sent at most once per journal and milestone.

        Raises:
            JournalNotFoundError: If the journal does not exist
            UserNotFoundError: If the liker does not exist
        """
        now = ensure_aware(now or utc_now())

        journal = JournalRepository.get_by_id(journal_id)
        if journal is None:
            raise JournalNotFoundError(journal_id)
        if UserRepository.get_by_id(liker_id) is None:
            raise UserNotFoundError(liker_id)

        liked, like_count = JournalRepository.toggle_like(journal_id, liker_id)
        outcome = LikeOutcome(liked=liked, like_count=like_count)

        if liked and like_count in LIKE_MILESTONES:
            try:
                outcome.notification = self._like_milestone_mail(
                    journal.user_id, journal_id, journal.title, like_count, now
                )
            except Exception:
                logger.exception("Like milestone notification failed for journal %s", journal_id)
                counter("engine.detector_failed")

        log_event("engine.like", journal_id=journal_id, liked=liked, like_count=like_count)
        return outcome

    def _like_milestone_mail(
        self, author_id: str, journal_id: str, title: str, milestone: int, now: datetime
    ) -> Mail | None:
        history = RepositoryMailHistory(author_id)
        if history.has_metadata(MailType.OTHER, journal_id=journal_id, milestone=milestone):
            return None

        author = UserRepository.get_by_id(author_id)
        if author is None:
            return None

        template = self.templates.pick(self.rng, "likeMilestone", f"{milestone}likes")
        if template is None:
            return None

        mail = build_mail(
            template,
            author,
            MailType.OTHER,
            now,
            metadata=LikeMetadata(journal_id=journal_id, milestone=milestone),
            content=fill_placeholders(
                template.content, {"likes": milestone, "journalTitle": title}
            ),
            theme=self._theme(author),
            rng=self.rng,
        )
        MailRepository.create_many([mail])
        return mail

    # ------------------------------------------------------------------
    # Stories
    # ------------------------------------------------------------------

    def assign_story(self, user_id: str, story_name: str) -> User:
        """
        Start a story for the user at chapter 1.

        Raises:
            UserNotFoundError, StoryNotFoundError
        """
        found = self.stories.get(story_name)
        if found is None:
            raise StoryNotFoundError(story_name)

        with self._user_lock(user_id):
            for attempt in range(self.cas_retries + 1):
                user = UserRepository.get_by_id(user_id)
                if user is None:
                    raise UserNotFoundError(user_id)
                expected = user.version
                story.assign_story(user, found)
                try:
                    UserRepository.save_with_mails(user, expected, [])
                    break
                except ConcurrentUpdateError:
                    counter("engine.cas_conflict")
                    if attempt >= self.cas_retries:
                        raise

        log_event("engine.story_assigned", user_id=user_id, story=story_name)
        return user


def new_user_id() -> str:
    return str(uuid.uuid4())


def engine_from_defaults(rng: random.Random | None = None, **kwargs: Any) -> EngagementEngine:
    """Engine wired to the packaged catalogs."""
    return EngagementEngine(
        TemplateCatalog.load_default(), StoryCatalog.load_default(), rng, **kwargs
    )
