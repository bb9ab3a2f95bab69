"""
nossence.services.delivery_service — Batch Digest Delivery
===========================================================

One run walks every active subscriber and sends each one the ranked
feed for their own window over their dedicated channel key.

Resumption policy:
    Every run starts from the first subscriber (by pubkey) and pages
    forward with a keyset cursor, ``batch_size`` rows per store read.
    ``subscribers.last_delivered_at`` is the persisted cursor per
    recipient: anyone served within ``min_delivery_gap`` is skipped, so a
    re-run after a crash or an overlapping trigger never double-sends and
    never leaves a subscriber out.

Window per subscriber::

    start = max(last_delivered_at - 1s, now - lookback)   # now - lookback if never served
    end   = now

Both bounds are exclusive at whole-second resolution, so the previous run
excluded notes created in the second of ``last_delivered_at``; starting
one second earlier picks them up in the next window.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from nossence.bot.transport import Transport, bounded
from nossence.constants import DIGEST_HEADER_TEMPLATE, DIGEST_LINE_TEMPLATE
from nossence.database.engine import run_db
from nossence.database.models import Subscriber
from nossence.services.feed_service import FeedRanker, ScoredItem
from nossence.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

# The end second of one window is re-read as the first second of the next.
_BOUNDARY_OVERLAP = timedelta(seconds=1)


@dataclass
class BatchReport:
    """Counters for one delivery run."""

    delivered: int = 0
    skipped: int = 0
    failed: int = 0


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def render_digest(items: list[ScoredItem]) -> str:
    """Digest text; ``#[0]`` is the recipient."""
    lines = [DIGEST_HEADER_TEMPLATE]
    lines.extend(
        DIGEST_LINE_TEMPLATE.format(rank=rank, score=item.score, event_id=item.id)
        for rank, item in enumerate(items, start=1)
    )
    return "\n".join(lines)


class BatchWorker:
    """Delivers ranked feeds to active subscribers, page by page."""

    def __init__(
        self,
        subscriptions: SubscriptionService,
        ranker: FeedRanker,
        transport: Transport,
        *,
        batch_size: int = 100,
        feed_limit: int = 10,
        lookback: timedelta = timedelta(hours=24),
        min_delivery_gap: timedelta = timedelta(minutes=50),
        call_timeout: float = 30.0,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.subscriptions = subscriptions
        self.ranker = ranker
        self.transport = transport
        self.batch_size = batch_size
        self.feed_limit = feed_limit
        self.lookback = lookback
        self.min_delivery_gap = min_delivery_gap
        self.call_timeout = call_timeout
        self.clock = clock

    def window_for(self, sub: Subscriber, now: datetime) -> tuple[datetime, datetime]:
        floor = now - self.lookback
        if sub.last_delivered_at is None:
            return floor, now
        resume = _as_utc(sub.last_delivered_at) - _BOUNDARY_OVERLAP
        return max(resume, floor), now

    def is_due(self, sub: Subscriber, now: datetime) -> bool:
        if sub.last_delivered_at is None:
            return True
        return now - _as_utc(sub.last_delivered_at) >= self.min_delivery_gap

    async def run_once(self) -> BatchReport:
        """Serve every due subscriber once.

        A failure for one subscriber is logged and counted; the run goes on.
        Store errors while listing subscribers propagate.
        """
        now = self.clock()
        report = BatchReport()
        after: str | None = None

        while True:
            page = await bounded(
                run_db(self.subscriptions.list_active, self.batch_size, after),
                self.call_timeout,
            )
            for sub in page:
                try:
                    if await self.deliver(sub, now):
                        report.delivered += 1
                    else:
                        report.skipped += 1
                except Exception:
                    report.failed += 1
                    logger.exception("Delivery to %s failed", sub.pubkey)

            if len(page) < self.batch_size:
                break
            after = page[-1].pubkey

        logger.info(
            "Batch delivery complete: delivered=%d skipped=%d failed=%d",
            report.delivered, report.skipped, report.failed,
        )
        return report

    async def deliver(self, sub: Subscriber, now: datetime) -> bool:
        """Rank and send one subscriber's feed.  False if nothing was sent."""
        if not self.is_due(sub, now):
            logger.debug("Skipping %s: served at %s", sub.pubkey, sub.last_delivered_at)
            return False

        start, end = self.window_for(sub, now)
        items = await bounded(
            run_db(self.ranker.get_feed, sub.pubkey, start, end, self.feed_limit),
            self.call_timeout,
        )
        if not items:
            logger.debug("Skipping %s: empty feed", sub.pubkey)
            return False

        await bounded(
            self.transport.mention(sub.channel_secret, render_digest(items), [sub.pubkey]),
            self.call_timeout,
        )
        await bounded(
            run_db(self.subscriptions.mark_delivered, sub.pubkey, now),
            self.call_timeout,
        )
        return True
