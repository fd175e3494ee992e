"""
Story Progression Engine

Per-user cursor through a serialized story:

    NoStory -> InProgress(n) -> Complete

At most one chapter per calendar day. Catalog misses skip delivery silently.
"""

from __future__ import annotations

import uuid
from datetime import datetime, tzinfo

from starlit.catalog.stories import Story, StoryCatalog
from starlit.engagement.mail import Candidate
from starlit.engagement.models import (
    Mail,
    MailType,
    Recipient,
    StoryMetadata,
    StoryProgress,
    StoryState,
    User,
)
from starlit.engagement.temporal import is_same_day
from starlit.observability.logging import get_logger

logger = get_logger(__name__)

_CHAPTER_BODY = """
  <div style="
    background-image: url('{image}');
    background-size: cover;
    background-repeat: no-repeat;
    background-position: center;
    padding: 2rem;
    border-radius: 10px;
    color: #2c2c2c;
    font-family: 'Indie Flower', cursive;
  ">
    <div style="
      background-color: rgba(255, 255, 255, 0.6);
      padding: 1.25rem;
      border-radius: 10px;
      white-space: pre-wrap;
    ">
      {content}
    </div>
  </div>
"""


def assign_story(user: User, story: Story) -> None:
    """Point the user at chapter 1 of a story, replacing any previous one."""
    user.story_progress = StoryProgress(
        story_name=story.name,
        current_chapter=1,
        last_sent=None,
        is_complete=False,
    )


def _chapter_mail(user: User, story: Story, number: int, now: datetime) -> Mail | None:
    chapter = story.chapter(number)
    if chapter is None:
        return None

    return Mail(
        id=str(uuid.uuid4()),
        sender=story.character,
        title=f"Chapter {number}: {chapter.title}",
        content=_CHAPTER_BODY.format(image=story.image or "", content=chapter.content),
        mail_type=MailType.STORY,
        recipients=[Recipient(user_id=user.id)],
        metadata=StoryMetadata(story_name=story.name, chapter=number),
        date=now,
    )


def story_candidate(
    user: User,
    catalog: StoryCatalog,
    now: datetime,
    tz: tzinfo | None = None,
) -> Candidate | None:
    """
    Next chapter for today, if any.

    Side Effects:
        - Marks the story complete when the cursor is already past the end
    """
    progress = user.story_progress
    if progress.state is not StoryState.IN_PROGRESS:
        return None

    if is_same_day(progress.last_sent, now, tz):
        return None

    story = catalog.get(progress.story_name)
    if story is None:
        logger.warning("User %s assigned unknown story %r", user.id, progress.story_name)
        return None

    number = progress.current_chapter or 1
    if number > story.number_of_chapters:
        progress.is_complete = True
        return None

    mail = _chapter_mail(user, story, number, now)
    if mail is None:
        return None

    def advance() -> None:
        progress.current_chapter = number + 1
        progress.last_sent = now
        if number >= story.number_of_chapters:
            progress.is_complete = True

    # Chapters never count toward the per-login cap
    return Candidate(mail=mail, source="story", on_accept=advance, counts_toward_cap=False)
