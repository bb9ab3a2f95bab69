"""
tests/test_dispatcher.py — Mention command dispatcher tests
============================================================
Drives the dispatcher with an in-memory transport and a real
SubscriptionService on SQLite.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest
from conftest import FakeTransport, make_event, run_async

from nossence.bot.dispatcher import MentionDispatcher
from nossence.constants import WELCOME_TEMPLATE
from nossence.services.subscription_service import SubscriberNotFound, SubscriptionService

BOT_SECRET = "b0" * 32
BOT_PUB = f"pub-{BOT_SECRET[:8]}"


def mention(id: str, pubkey: str, content: str):
    return make_event(id=id, pubkey=pubkey, content=content, tags=[["p", BOT_PUB]])


@pytest.fixture
def subscriptions(db_engine):
    return SubscriptionService(db_engine)


def _dispatcher(transport, subscriptions):
    return MentionDispatcher(transport, subscriptions, BOT_SECRET, call_timeout=5)


class TestCommands:
    def test_subscribe_sends_welcome_over_new_channel(self, subscriptions):
        transport = FakeTransport([mention("m1", "alice", "hey #subscribe please")])
        run_async(_dispatcher(transport, subscriptions).run(since=0))

        secret = subscriptions.get("alice").channel_secret
        assert transport.sent == [
            (BOT_SECRET, WELCOME_TEMPLATE, ["alice", f"pub-{secret[:8]}"]),
        ]

    def test_active_subscriber_gets_no_second_welcome(self, subscriptions):
        transport = FakeTransport([
            mention("m1", "alice", "#subscribe"),
            mention("m2", "alice", "#subscribe"),
        ])
        run_async(_dispatcher(transport, subscriptions).run(since=0))
        assert len(transport.sent) == 1

    def test_unsubscribe_then_subscribe_restores_and_welcomes(self, subscriptions):
        transport = FakeTransport([
            mention("m1", "alice", "#subscribe"),
            mention("m2", "alice", "#unsubscribe"),
            mention("m3", "alice", "#subscribe"),
        ])
        run_async(_dispatcher(transport, subscriptions).run(since=0))

        assert subscriptions.get("alice").active
        assert len(transport.sent) == 2
        assert transport.sent[0] == transport.sent[1]

    def test_unsubscribe_deactivates(self, subscriptions):
        transport = FakeTransport([
            mention("m1", "alice", "#subscribe"),
            mention("m2", "alice", "stop please #unsubscribe"),
        ])
        run_async(_dispatcher(transport, subscriptions).run(since=0))
        assert not subscriptions.get("alice").active

    def test_plain_mention_is_ignored(self, subscriptions):
        transport = FakeTransport([mention("m1", "alice", "hello bot")])
        run_async(_dispatcher(transport, subscriptions).run(since=0))

        assert subscriptions.get("alice") is None
        assert transport.sent == []

    def test_unsubscribe_failure_is_logged_not_raised(self, caplog):
        subs = MagicMock(spec=SubscriptionService)
        subs.terminate.side_effect = RuntimeError("db down")
        dispatcher = _dispatcher(FakeTransport(), subs)

        run_async(dispatcher.handle(mention("m1", "alice", "#unsubscribe")))
        assert "Failed to unsubscribe alice" in caplog.text

    def test_restore_race_with_missing_record(self):
        subs = MagicMock(spec=SubscriptionService)
        subs.get_or_create.return_value = ("secret", False)
        subs.restore.side_effect = SubscriberNotFound("alice")
        transport = FakeTransport()

        run_async(_dispatcher(transport, subs).handle(mention("m1", "alice", "#subscribe")))
        assert transport.sent == []


class TestLoop:
    def test_filter_targets_bot_mentions_since_start(self, subscriptions):
        transport = FakeTransport()
        run_async(_dispatcher(transport, subscriptions).run(since=1234))

        [flt] = transport.filters
        assert flt.kinds == (1,)
        assert flt.since == 1234
        assert flt.mentions == (BOT_PUB,)

    def test_failed_event_does_not_stop_the_stream(self):
        subs = MagicMock(spec=SubscriptionService)
        subs.get_or_create.side_effect = [RuntimeError("boom"), ("secret-2", True)]
        transport = FakeTransport([
            mention("bad", "mallory", "#subscribe"),
            mention("good", "alice", "#subscribe"),
        ])

        run_async(_dispatcher(transport, subs).run(since=0))

        assert subs.get_or_create.call_count == 2
        assert transport.sent == [(BOT_SECRET, WELCOME_TEMPLATE, ["alice", "pub-secret-2"])]

    def test_failed_welcome_does_not_stop_the_stream(self, subscriptions):
        transport = FakeTransport([
            mention("m1", "mallory", "#subscribe"),
            mention("m2", "alice", "#subscribe"),
        ])
        transport.fail_for = {"mallory"}

        run_async(_dispatcher(transport, subscriptions).run(since=0))

        assert [sent[2][0] for sent in transport.sent] == ["alice"]

    def test_stop_lets_already_queued_events_finish(self, subscriptions):
        transport = FakeTransport([
            mention("m1", "alice", "#subscribe"),
            mention("m2", "bob", "#subscribe"),
        ], hang=True)
        dispatcher = _dispatcher(transport, subscriptions)
        handled = []
        handle_one = dispatcher.handle

        async def handle(event):
            handled.append(event.id)
            if event.id == "m1":
                dispatcher.stop()
            await handle_one(event)

        dispatcher.handle = handle
        run_async(asyncio.wait_for(dispatcher.run(since=0), timeout=2))

        assert handled == ["m1", "m2"]
        assert [sent[2][0] for sent in transport.sent] == ["alice", "bob"]

    def test_stop_ends_a_live_stream(self, subscriptions):
        transport = FakeTransport(hang=True)
        dispatcher = _dispatcher(transport, subscriptions)

        async def scenario():
            task = asyncio.create_task(dispatcher.run(since=0))
            await asyncio.sleep(0.05)
            dispatcher.stop()
            await asyncio.wait_for(task, timeout=2)

        run_async(scenario())
        assert transport.sent == []
