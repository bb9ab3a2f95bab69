"""
nossence.bot.core — Bot Instance & Task Supervisor
===================================================

:class:`NossenceBot` wires the services to the transport and supervises
the long-lived tasks:

1. **Mention dispatcher** — ``#subscribe`` / ``#unsubscribe`` commands.
2. **Content ingestor** — relay events into the graph (optional).
3. **Hourly schedule** — batch digest delivery.

The tasks run concurrently on one event loop; store work happens on
worker threads via ``run_db``.  :meth:`NossenceBot.start` returns once a
stop is requested or the mention stream ends, after every task has been
stopped and awaited.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from datetime import timedelta

from sqlalchemy import Engine

from nossence.bot.dispatcher import MentionDispatcher
from nossence.bot.ingest import ContentIngestor
from nossence.bot.schedule import HourlySchedule
from nossence.bot.transport import Transport
from nossence.config import NossenceConfig
from nossence.services.delivery_service import BatchWorker
from nossence.services.feed_service import FeedRanker
from nossence.services.graph_service import GraphWriter
from nossence.services.subscription_service import SubscriptionService

logger = logging.getLogger(__name__)


class NossenceBot:
    """Carries the project-wide state and owns the task lifecycle.

    Parameters
    ----------
    cfg:
        The parsed :class:`NossenceConfig` from ``config.yaml``.
    engine:
        A SQLAlchemy :class:`Engine` for the graph store.
    transport:
        Connected relay transport.
    bot_secret:
        The bot's private key (``BOT_SECRET_KEY``).
    """

    def __init__(
        self,
        cfg: NossenceConfig,
        engine: Engine,
        transport: Transport,
        bot_secret: str,
    ) -> None:
        self.cfg = cfg
        self.engine = engine
        self.transport = transport

        self.writer = GraphWriter(engine)
        self.ranker = FeedRanker(engine)
        self.subscriptions = SubscriptionService(engine)

        self.dispatcher = MentionDispatcher(
            transport, self.subscriptions, bot_secret,
            call_timeout=cfg.call_timeout_seconds,
        )
        self.ingestor = ContentIngestor(
            transport, self.writer, call_timeout=cfg.call_timeout_seconds,
        )
        self.worker = BatchWorker(
            self.subscriptions,
            self.ranker,
            transport,
            batch_size=cfg.batch_size,
            feed_limit=cfg.feed_limit,
            lookback=timedelta(hours=cfg.feed_lookback_hours),
            min_delivery_gap=timedelta(minutes=cfg.min_delivery_gap_minutes),
            call_timeout=cfg.call_timeout_seconds,
        )
        self.schedule = HourlySchedule(self.worker.run_once, name="batch-delivery")

        self._stop_requested = asyncio.Event()
        self._ingest_task: asyncio.Task | None = None

    def request_stop(self) -> None:
        """Signal-handler safe: ask :meth:`start` to shut everything down."""
        logger.info("Stop requested")
        self._stop_requested.set()

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------
    async def start(self) -> None:
        """Run until :meth:`request_stop` or until the mention stream ends."""
        dispatch_task = asyncio.create_task(self.dispatcher.run(), name="mention-dispatcher")
        if self.cfg.ingest_enabled:
            self._ingest_task = asyncio.create_task(self.ingestor.run(), name="content-ingest")
        self.schedule.start()
        logger.info("nossence bot started (ingest=%s)", self.cfg.ingest_enabled)

        stop_wait = asyncio.create_task(self._stop_requested.wait(), name="stop-wait")
        await asyncio.wait({dispatch_task, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        stop_wait.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await stop_wait

        await self.close(dispatch_task)

    async def close(self, dispatch_task: asyncio.Task) -> None:
        """Stop every task and wait for each of them before returning."""
        logger.info("Bot shutting down…")
        self.dispatcher.stop()
        await self.schedule.stop()

        if self._ingest_task is not None:
            self._ingest_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._ingest_task
            self._ingest_task = None

        results = await asyncio.gather(dispatch_task, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("Mention dispatcher exited with %r", result)

        await self.transport.close()
        logger.info("bot exiting...")
