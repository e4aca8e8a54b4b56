"""Review API: user sentiment corrections."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from core.database import get_db as get_session
from core.models import Sentiment
from workers.sentiment.corrections import update_sentiment

router = APIRouter(prefix="/api/brands/{brand_id}/reviews", tags=["reviews"])


class SentimentUpdateRequest(BaseModel):
    sentiment: Sentiment


class SentimentUpdateResponse(BaseModel):
    review_id: int
    old_sentiment: Sentiment
    new_sentiment: Sentiment
    change_id: int | None
    changed: bool


@router.patch("/{review_id}/sentiment", response_model=SentimentUpdateResponse)
async def correct_sentiment(
    brand_id: int,
    review_id: int,
    body: SentimentUpdateRequest,
    user_id: int = Header(alias="X-User-Id"),
    session: AsyncSession = Depends(get_session),
):
    """Override the sentiment of a review. The caller's identity comes from the auth gateway."""
    result = await update_sentiment(session, brand_id, review_id, body.sentiment, actor_user_id=user_id)
    return SentimentUpdateResponse(
        review_id=result.review_id,
        old_sentiment=result.old_sentiment,
        new_sentiment=result.new_sentiment,
        change_id=result.change_id,
        changed=result.change_id is not None,
    )
