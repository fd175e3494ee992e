"""
Journal endpoints.

Only what the engagement engine needs: writing an entry (the evidence the
detectors read) and toggling likes (the like-milestone hook).
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from starlit.api.dependencies import get_engine
from starlit.api.models import (
    CreateJournalRequest,
    JournalResponse,
    LikeRequest,
    LikeResponse,
)
from starlit.engagement.engine import EngagementEngine
from starlit.engagement.models import Journal, utc_now
from starlit.engagement.repository import JournalRepository

router = APIRouter(prefix="/api/journals", tags=["journals"])


@router.post("", response_model=JournalResponse, status_code=status.HTTP_201_CREATED)
def create_journal(request: CreateJournalRequest) -> JournalResponse:
    """Save an entry and stamp the author's last_journaled."""
    now = utc_now()
    try:
        journal = Journal(
            id=str(uuid.uuid4()),
            user_id=request.user_id,
            title=request.title.strip(),
            slug="",
            content=request.content,
            mood=request.mood,
            tags=request.tags,
            collections=request.collections,
            theme=request.theme,
            is_public=request.is_public,
            author_name=request.author_name,
            word_count=len(request.content.split()),
            date=request.date or now,
            created_at=now,
        )
    except ValueError as e:
        # pydantic ValidationError subclasses ValueError
        raise HTTPException(status_code=400, detail=_first_error(e)) from None

    journal = JournalRepository.create(journal)
    return JournalResponse.from_journal(journal)


@router.post("/{journal_id}/like", response_model=LikeResponse)
def toggle_like(
    journal_id: str,
    request: LikeRequest,
    engine: EngagementEngine = Depends(get_engine),
) -> LikeResponse:
    outcome = engine.process_like(journal_id, request.user_id)
    return LikeResponse(
        liked=outcome.liked,
        like_count=outcome.like_count,
        notification_sent=outcome.notification is not None,
    )


def _first_error(exc: ValueError) -> str:
    errors = getattr(exc, "errors", None)
    if callable(errors):
        details = errors()
        if details:
            return str(details[0].get("msg", "Invalid journal"))
    return "Invalid journal"
