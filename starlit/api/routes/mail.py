"""
Mailbox endpoints: list, mark read, claim reward, delete.
"""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Query

from starlit.api.models import (
    ClaimRewardResponse,
    MailActionRequest,
    MailListResponse,
    MailResponse,
)
from starlit.config import API_LIST_LIMIT_DEFAULT, API_LIST_LIMIT_MAX
from starlit.engagement.repository import MailRepository
from starlit.observability.logging import get_logger
from starlit.observability.telemetry import counter

router = APIRouter(prefix="/api/mail", tags=["mail"])
logger = get_logger(__name__)


@router.get("/{user_id}", response_model=MailListResponse)
def list_mail(
    user_id: str,
    limit: int = Query(API_LIST_LIMIT_DEFAULT, ge=1, le=API_LIST_LIMIT_MAX),
) -> MailListResponse:
    """Newest first, with this user's read/claim flags."""
    mails = MailRepository.list_for_user(user_id, limit)
    return MailListResponse(
        mails=[MailResponse.from_mail(m, user_id) for m in mails],
        total=MailRepository.count_for_user(user_id),
    )


@router.put("/{mail_id}/read")
def mark_read(mail_id: str, request: MailActionRequest) -> dict:
    MailRepository.mark_read(mail_id, request.user_id)
    return {"message": "Mail marked as read."}


@router.put("/{mail_id}/claim-reward", response_model=ClaimRewardResponse)
def claim_reward(mail_id: str, request: MailActionRequest) -> ClaimRewardResponse:
    """Credit the mail's coins to the user. A reward can be claimed once."""
    amount, balance = MailRepository.claim_reward(mail_id, request.user_id)
    counter("mail.reward_claimed")
    return ClaimRewardResponse(amount=amount, coins=balance)


@router.delete("/{mail_id}")
def delete_mail(mail_id: str) -> dict:
    if not MailRepository.delete(mail_id):
        raise HTTPException(status_code=404, detail="Mail not found.")
    logger.info("Deleted mail %s", mail_id)
    return {"message": "Mail deleted."}
