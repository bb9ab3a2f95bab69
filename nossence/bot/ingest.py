"""
nossence.bot.ingest — Content Event Ingestion
==============================================

Streams notes, reactions, contact lists and zap receipts from the relays
and writes each one into the graph through :class:`GraphWriter`.  One bad
event is logged and skipped; the stream keeps going.
"""

from __future__ import annotations

import logging
import time

from nossence.bot.transport import EventFilter, Transport, bounded
from nossence.constants import INGESTED_KINDS
from nossence.database.engine import run_db
from nossence.engine.events import NostrEvent
from nossence.services.graph_service import ApplyOutcome, GraphWriter

logger = logging.getLogger(__name__)


class ContentIngestor:
    """Relay stream → graph."""

    def __init__(
        self,
        transport: Transport,
        writer: GraphWriter,
        *,
        call_timeout: float = 30.0,
    ) -> None:
        self.transport = transport
        self.writer = writer
        self.call_timeout = call_timeout

    async def run(self, since: int | None = None) -> None:
        since = int(time.time()) if since is None else since
        flt = EventFilter(kinds=INGESTED_KINDS, since=since)
        logger.info("Ingesting kinds %s since %d", list(INGESTED_KINDS), since)
        async for event in self.transport.subscribe(flt):
            await self.ingest(event)
        logger.warning("Content stream ended")

    async def ingest(self, event: NostrEvent) -> ApplyOutcome | None:
        """Apply one event.  Returns None if it failed (already logged)."""
        try:
            return await bounded(run_db(self.writer.apply, event), self.call_timeout)
        except Exception:
            logger.exception("Failed to store event %s (kind %d)", event.id, event.kind)
            return None
