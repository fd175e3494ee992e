"""
User endpoints: signup, login (runs the engagement automation), profile, story assignment.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from starlit.api.dependencies import get_engine
from starlit.api.models import (
    LoginRequest,
    LoginResponse,
    MailResponse,
    SignupRequest,
    SignupResponse,
    StoryAssignRequest,
)
from starlit.engagement.engine import EngagementEngine, new_user_id
from starlit.engagement.errors import UserNotFoundError
from starlit.engagement.models import User, utc_now
from starlit.engagement.repository import UserRepository
from starlit.observability.logging import get_logger

router = APIRouter(prefix="/api/users", tags=["users"])
logger = get_logger(__name__)


@router.post("/signup", response_model=SignupResponse, status_code=status.HTTP_201_CREATED)
def signup(
    request: SignupRequest,
    engine: EngagementEngine = Depends(get_engine),
) -> SignupResponse:
    """Create an account and deliver the welcome mails."""
    now = utc_now()
    user = User(
        id=new_user_id(),
        nickname=request.nickname,
        email=request.email,
        password=request.password,
        age=request.age,
        gender=request.gender,
        subscribe=request.subscribe,
        created_at=now,
        updated_at=now,
    )
    mails = engine.process_signup(user, now)
    logger.info("Signed up user %s with %d mails", user.id, len(mails))
    return SignupResponse(user=user.public_dict(), mails_generated=len(mails))


@router.post("/login", response_model=LoginResponse)
def login(
    request: LoginRequest,
    engine: EngagementEngine = Depends(get_engine),
) -> LoginResponse:
    """
    Authenticate and run the login automation.

    Returns the coins earned today, any streak milestone bonus, and the mails
    generated by this login.
    """
    outcome = engine.login(request.email, request.password)
    return LoginResponse(
        user=outcome.user.public_dict(),
        coins_earned=outcome.coins_earned,
        streak_bonus=outcome.streak_bonus,
        mails_generated=len(outcome.mails),
        mails=[MailResponse.from_mail(m, outcome.user.id) for m in outcome.mails],
    )


@router.get("/{user_id}")
def get_user(user_id: str) -> dict:
    user = UserRepository.get_by_id(user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return {"user": user.public_dict()}


@router.post("/{user_id}/story")
def assign_story(
    user_id: str,
    request: StoryAssignRequest,
    engine: EngagementEngine = Depends(get_engine),
) -> dict:
    """Start a story at chapter 1; chapters then arrive one per login day."""
    user = engine.assign_story(user_id, request.story_name)
    return {"user": user.public_dict()}
