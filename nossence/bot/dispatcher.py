"""
nossence.bot.dispatcher — Mention Commands
===========================================

Listens for kind-1 notes that tag the bot and turns them into
subscription changes:

- ``#subscribe``   → create (or restore) the subscription, then send the
  welcome note pointing at the subscriber's new channel key.
- ``#unsubscribe`` → terminate the subscription.

Events are consumed one at a time, in stream order, from an
``asyncio.Queue`` fed by a pump task.  A failure while handling one event
is logged and the loop moves on to the next.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator

from nossence.bot.transport import EventFilter, Transport, bounded
from nossence.constants import (
    SUBSCRIBE_TOKEN,
    UNSUBSCRIBE_TOKEN,
    WELCOME_TEMPLATE,
    EventKind,
)
from nossence.database.engine import run_db
from nossence.engine.events import NostrEvent
from nossence.services.subscription_service import SubscriberNotFound, SubscriptionService

logger = logging.getLogger(__name__)

# Queue sentinel: the stream ended or a stop was requested.
_STOP = object()


class MentionDispatcher:
    """Sequential consumer of the bot's mention stream.

    Parameters
    ----------
    transport:
        Relay transport used for the subscription and the welcome notes.
    subscriptions:
        Lifecycle service for subscriber records.
    bot_secret:
        The bot's private key; welcome notes are signed with it.
    call_timeout:
        Upper bound, in seconds, for every store or relay call.
    """

    def __init__(
        self,
        transport: Transport,
        subscriptions: SubscriptionService,
        bot_secret: str,
        *,
        call_timeout: float = 30.0,
    ) -> None:
        self.transport = transport
        self.subscriptions = subscriptions
        self.bot_secret = bot_secret
        self.bot_pubkey = transport.public_key(bot_secret)
        self.call_timeout = call_timeout
        self._queue: asyncio.Queue = asyncio.Queue()

    def mention_filter(self, since: int) -> EventFilter:
        return EventFilter(
            kinds=(int(EventKind.TEXT_NOTE),),
            since=since,
            mentions=(self.bot_pubkey,),
        )

    # -------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------
    async def run(self, since: int | None = None) -> None:
        """Consume mentions until the stream ends or :meth:`stop` is called.

        Only events created at or after *since* (default: now) are requested.
        """
        since = int(time.time()) if since is None else since
        stream = self.transport.subscribe(self.mention_filter(since))
        pump = asyncio.create_task(self._pump(stream), name="mention-pump")
        logger.info("Listening for mention commands as %s", self.bot_pubkey)

        try:
            while True:
                item = await self._queue.get()
                if item is _STOP:
                    break
                try:
                    await self.handle(item)
                except Exception:
                    logger.exception("Failed to handle mention %s", item.id)
        finally:
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump
        logger.info("Mention dispatcher stopped")

    def stop(self) -> None:
        """Ask :meth:`run` to return once the events already queued are handled."""
        self._queue.put_nowait(_STOP)

    async def _pump(self, stream: AsyncIterator[NostrEvent]) -> None:
        try:
            async for event in stream:
                await self._queue.put(event)
            logger.warning("Mention stream ended")
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Mention stream failed")
        self._queue.put_nowait(_STOP)

    # -------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------
    async def handle(self, event: NostrEvent) -> None:
        """Run the command carried by *event*, if any."""
        logger.info("Received mention %s from %s", event.id, event.pubkey)
        if SUBSCRIBE_TOKEN in event.content:
            await self._subscribe(event.pubkey)
        elif UNSUBSCRIBE_TOKEN in event.content:
            await self._unsubscribe(event.pubkey)

    async def _subscribe(self, pubkey: str) -> None:
        secret, is_new = await bounded(
            run_db(self.subscriptions.get_or_create, pubkey), self.call_timeout
        )
        if is_new:
            await self.send_welcome(secret, pubkey)
            logger.info("Sent welcome message to new subscriber %s", pubkey)
            return

        try:
            restored = await bounded(
                run_db(self.subscriptions.restore, pubkey), self.call_timeout
            )
        except SubscriberNotFound:
            logger.warning("Subscriber %s vanished before restore", pubkey)
            return

        if restored:
            await self.send_welcome(secret, pubkey)
            logger.info("Sent welcome message to returning subscriber %s", pubkey)
        else:
            logger.info("Skip welcome message for existing subscriber %s", pubkey)

    async def _unsubscribe(self, pubkey: str) -> None:
        logger.info("Unsubscribing %s", pubkey)
        try:
            await bounded(run_db(self.subscriptions.terminate, pubkey), self.call_timeout)
        except Exception:
            logger.warning("Failed to unsubscribe %s", pubkey, exc_info=True)

    async def send_welcome(self, channel_secret: str, pubkey: str) -> None:
        """Tell *pubkey* which channel key to follow for their feed."""
        channel_pubkey = self.transport.public_key(channel_secret)
        await bounded(
            self.transport.mention(self.bot_secret, WELCOME_TEMPLATE, [pubkey, channel_pubkey]),
            self.call_timeout,
        )
