"""
nossence.api.routes.feed — Ranked feed endpoint
================================================
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from nossence.api.deps import get_ranker
from nossence.services.feed_service import FeedRanker

router = APIRouter(tags=["feed"])


class FeedEntry(BaseModel):
    event_id: str
    kind: int
    pubkey: str
    content: str
    created_at: int
    score: int


# ---------------------------------------------------------------------------
# GET /feed
# ---------------------------------------------------------------------------
@router.get("/feed", response_model=list[FeedEntry])
def get_feed(
    ranker: Annotated[FeedRanker, Depends(get_ranker)],
    pubkey: str = Query(..., min_length=1, max_length=64),
    start: int = Query(..., ge=0, description="Exclusive lower bound, unix seconds"),
    end: int = Query(..., ge=0, description="Exclusive upper bound, unix seconds"),
    limit: int = Query(20, ge=1, le=100),
):
    """Posts created strictly between *start* and *end*, best first."""
    if end <= start:
        raise HTTPException(
            status_code=422,
            detail="end must be greater than start",
        )

    items = ranker.get_feed(
        pubkey,
        datetime.fromtimestamp(start, UTC),
        datetime.fromtimestamp(end, UTC),
        limit,
    )
    return [
        FeedEntry(
            event_id=item.id,
            kind=item.kind,
            pubkey=item.author,
            content=item.content,
            created_at=int(item.created_at.timestamp()),
            score=item.score,
        )
        for item in items
    ]
