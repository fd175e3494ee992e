"""Translate engagement errors into HTTP responses."""

from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse

from starlit.engagement.errors import (
    ConcurrentUpdateError,
    DuplicateEmailError,
    EngagementError,
    InvalidCredentialsError,
    JournalNotFoundError,
    MailNotFoundError,
    NotARecipientError,
    RewardNotClaimableError,
    StoryNotFoundError,
    UserNotFoundError,
)
from starlit.observability.logging import get_logger
from starlit.observability.telemetry import counter

logger = get_logger(__name__)

# Most specific first; the first isinstance match wins
STATUS_BY_ERROR: tuple[tuple[type[EngagementError], int, str | None], ...] = (
    (UserNotFoundError, status.HTTP_404_NOT_FOUND, "User not found."),
    (JournalNotFoundError, status.HTTP_404_NOT_FOUND, "Journal not found."),
    (StoryNotFoundError, status.HTTP_404_NOT_FOUND, "Story not found."),
    (MailNotFoundError, status.HTTP_404_NOT_FOUND, "Mail not found."),
    (InvalidCredentialsError, status.HTTP_401_UNAUTHORIZED, "Incorrect password."),
    (NotARecipientError, status.HTTP_403_FORBIDDEN, "Not a recipient of this mail."),
    (DuplicateEmailError, status.HTTP_409_CONFLICT, "Email is already registered."),
    (RewardNotClaimableError, status.HTTP_400_BAD_REQUEST, None),
    (ConcurrentUpdateError, status.HTTP_409_CONFLICT, "Please retry the request."),
)


def status_for(exc: EngagementError) -> tuple[int, str]:
    """HTTP status and client-safe message for an engagement error."""
    for error_type, code, message in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code, message or str(exc)
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error."


async def engagement_exception_handler(request: Request, exc: EngagementError) -> JSONResponse:
    code, message = status_for(exc)
    if code >= 500:
        logger.error("Unhandled engagement error on %s: %s", request.url.path, exc)
    else:
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, exc)
    counter(f"api.errors.{code}")
    return JSONResponse(status_code=code, content={"detail": message})
