"""
nossence.services.feed_service — Weighted Engagement Ranking
=============================================================

Scores every post created strictly inside a time window::

    score = 15 × distinct reply authors
          + 10 × distinct like authors
          + 50 × distinct zap authors

Authors are counted, not edges, so one pubkey replying five times counts
once.  Ordering is score descending, then newest first, then id — the
same window always yields the same list.

Read-only; safe to retry.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, case, distinct, func, select
from sqlalchemy.orm import aliased

from nossence.constants import LIKE_WEIGHT, REPLY_WEIGHT, ZAP_WEIGHT
from nossence.database.engine import get_session
from nossence.database.models import Interaction, InteractionType, Post

logger = logging.getLogger(__name__)

WEIGHTS: dict[InteractionType, int] = {
    InteractionType.REPLY: REPLY_WEIGHT,
    InteractionType.LIKE: LIKE_WEIGHT,
    InteractionType.ZAP: ZAP_WEIGHT,
}


@dataclass(frozen=True, slots=True)
class ScoredItem:
    """One ranked feed entry."""

    id: str
    kind: int
    author: str
    content: str
    created_at: datetime
    score: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = int(self.created_at.timestamp())
        return data


def to_unix(value: datetime | int) -> int:
    """Unix seconds for *value*.  Naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return int(value.timestamp())
    return int(value)


def _score_expression(source: type[Post]):
    """Weighted sum of distinct interacting authors, one term per edge type."""
    terms = [
        weight * func.count(
            distinct(case((Interaction.type == type_.value, source.author)))
        )
        for type_, weight in WEIGHTS.items()
    ]
    return sum(terms[1:], terms[0])


class FeedRanker:
    """Ranks posts by engagement.  Holds nothing but the engine."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def rank(self, start: datetime | int, end: datetime | int, limit: int) -> list[ScoredItem]:
        """Top *limit* posts with ``start < created_at < end``."""
        start_ts, end_ts = to_unix(start), to_unix(end)
        if limit <= 0 or start_ts >= end_ts:
            return []

        source = aliased(Post, name="source")
        target = aliased(Post, name="target")

        scores = (
            select(
                Interaction.target_id.label("target_id"),
                _score_expression(source).label("score"),
            )
            .join(source, source.id == Interaction.source_id)
            .join(target, target.id == Interaction.target_id)
            .where(target.created_at > start_ts, target.created_at < end_ts)
            .group_by(Interaction.target_id)
            .subquery("scores")
        )

        score = func.coalesce(scores.c.score, 0).label("score")
        stmt = (
            select(Post.id, Post.kind, Post.author, Post.content, Post.created_at, score)
            .outerjoin(scores, scores.c.target_id == Post.id)
            .where(Post.created_at > start_ts, Post.created_at < end_ts)
            .order_by(score.desc(), Post.created_at.desc(), Post.id)
            .limit(limit)
        )

        with get_session(self.engine) as session:
            rows = session.execute(stmt).all()

        return [
            ScoredItem(
                id=row.id,
                kind=row.kind,
                author=row.author,
                content=row.content,
                created_at=datetime.fromtimestamp(row.created_at, UTC),
                score=int(row.score),
            )
            for row in rows
        ]

    def get_feed(
        self,
        pubkey: str,
        start: datetime | int,
        end: datetime | int,
        limit: int,
    ) -> list[ScoredItem]:
        """The feed for *pubkey*.

        Ranking is global today; *pubkey* identifies the recipient for
        logging and keeps the read contract per-user.
        """
        items = self.rank(start, end, limit)
        logger.debug("Feed for %s: %d items", pubkey, len(items))
        return items
