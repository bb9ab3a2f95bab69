"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from nossence.bot.transport import EventFilter
from nossence.database.models import Base
from nossence.engine.events import NostrEvent

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=UTC)
NOW_TS = int(NOW.timestamp())


def run_async(coro):
    """Run an async coroutine in a fresh event loop (no pytest-asyncio)."""
    return asyncio.run(coro)


def make_event(
    id: str = "ev-1",
    kind: int = 1,
    pubkey: str = "alice",
    content: str = "gm",
    created_at: int = NOW_TS - 600,
    tags: Sequence[Sequence[str]] = (),
) -> NostrEvent:
    return NostrEvent(
        id=id,
        kind=kind,
        pubkey=pubkey,
        content=content,
        created_at=created_at,
        tags=tuple(tuple(t) for t in tags),
    )


class FakeTransport:
    """In-memory relay transport.

    ``subscribe`` replays ``events`` that match the filter, then either ends
    or (with ``hang=True``) blocks until cancelled.
    """

    def __init__(self, events: Sequence[NostrEvent] = (), *, hang: bool = False) -> None:
        self.events = list(events)
        self.hang = hang
        self.filters: list[EventFilter] = []
        self.sent: list[tuple[str, str, list[str]]] = []
        self.fail_for: set[str] = set()
        self.closed = False

    @staticmethod
    def _matches(flt: EventFilter, event: NostrEvent) -> bool:
        if event.kind not in flt.kinds:
            return False
        if flt.mentions and not set(event.tag_values("p")) & set(flt.mentions):
            return False
        return True

    async def subscribe(self, flt: EventFilter):
        self.filters.append(flt)
        for event in self.events:
            if self._matches(flt, event):
                yield event
        if self.hang:
            await asyncio.Event().wait()

    async def mention(self, secret: str, content: str, pubkeys: Sequence[str]) -> None:
        if set(pubkeys) & self.fail_for:
            raise ConnectionError("relay rejected the note")
        self.sent.append((secret, content, list(pubkeys)))

    def public_key(self, secret: str) -> str:
        return f"pub-{secret[:8]}"

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def db_engine() -> Engine:
    """In-memory SQLite engine with all nossence tables.

    StaticPool keeps a single connection so the worker threads used by
    ``run_db`` all see the same in-memory database.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
