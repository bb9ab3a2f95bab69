"""
nossence.bot.transport — Relay Transport Seam
==============================================

The bot never talks to relays directly.  It is handed an object
satisfying :class:`Transport`, which owns relay connections, signing,
and ``#[n]`` mention resolution.  The concrete client is chosen in
``config.yaml`` by dotted path::

    transport: "my_relay_client:create_transport"

and is called with the configured relay list.
"""

from __future__ import annotations

import asyncio
import importlib
import logging
from collections.abc import AsyncIterator, Awaitable, Sequence
from dataclasses import dataclass
from typing import Protocol, TypeVar, runtime_checkable

from nossence.engine.events import NostrEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class EventFilter:
    """A NIP-01 subscription filter, reduced to the fields the bot uses."""

    kinds: tuple[int, ...]
    since: int | None = None       # unix seconds
    mentions: tuple[str, ...] = () # ``#p`` tag values

    def to_dict(self) -> dict:
        flt: dict = {"kinds": list(self.kinds)}
        if self.since is not None:
            flt["since"] = self.since
        if self.mentions:
            flt["#p"] = list(self.mentions)
        return flt


@runtime_checkable
class Transport(Protocol):
    """What the bot needs from a relay client."""

    def subscribe(self, flt: EventFilter) -> AsyncIterator[NostrEvent]:
        """Live stream of verified events matching *flt*."""
        ...

    async def mention(self, secret: str, content: str, pubkeys: Sequence[str]) -> None:
        """Publish a kind-1 note signed by *secret* that tags *pubkeys*.

        ``#[i]`` in *content* refers to ``pubkeys[i]``.
        """
        ...

    def public_key(self, secret: str) -> str:
        """Hex pubkey of the private key *secret*."""
        ...

    async def close(self) -> None:
        ...


def load_transport(path: str, relays: Sequence[str]) -> Transport:
    """Import ``module:factory`` and call it with *relays*.

    Raises
    ------
    ValueError
        If *path* is not of the form ``module:factory``.
    TypeError
        If the factory returns something that is not a :class:`Transport`.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"transport must look like 'module:factory', got {path!r}")

    factory = getattr(importlib.import_module(module_name), attr)
    transport = factory(list(relays))
    if not isinstance(transport, Transport):
        raise TypeError(f"{path} did not return a Transport (got {type(transport).__name__})")
    logger.info("Transport %s connected to %d relays", path, len(relays))
    return transport


async def bounded(aw: Awaitable[T], timeout: float) -> T:
    """Await *aw* for at most *timeout* seconds (``TimeoutError`` after)."""
    return await asyncio.wait_for(aw, timeout=timeout)
