"""
nossence.engine.events — NostrEvent and Kind Classification
============================================================

Every event that reaches the graph writer is first normalized into a
:class:`NostrEvent`, then classified into exactly one variant:

    kind 1     → Post            (note, reply to the first ``e`` tag)
    kind 7     → Reaction        (like of the first ``e`` tag)
    kind 3     → FollowList      (full snapshot of ``p`` tags)
    kind 9735  → PaymentReceipt  (zap of the first ``e`` tag, ``bolt11`` invoice)
    otherwise  → Unsupported

Classification is pure: no I/O, no decoding.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from nossence.constants import EventKind

__all__ = [
    "ClassifiedEvent",
    "FollowList",
    "NostrEvent",
    "PaymentReceipt",
    "Post",
    "Reaction",
    "Unsupported",
    "classify",
]


# ---------------------------------------------------------------------------
# NostrEvent — the inbound envelope
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class NostrEvent:
    """A signed event as delivered by the relay transport.

    Signature verification happens in the transport; by the time an event
    gets here it is trusted.
    """

    id: str
    kind: int
    pubkey: str
    content: str
    created_at: int  # unix seconds
    tags: tuple[tuple[str, ...], ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> NostrEvent:
        """Build from the NIP-01 JSON object shape."""
        return cls(
            id=str(raw["id"]),
            kind=int(raw["kind"]),
            pubkey=str(raw["pubkey"]),
            content=str(raw.get("content", "")),
            created_at=int(raw["created_at"]),
            tags=tuple(tuple(str(v) for v in tag) for tag in raw.get("tags", [])),
        )

    def tag_values(self, name: str) -> list[str]:
        """Values of every ``name`` tag, in order.  Tags without a value are skipped."""
        return [tag[1] for tag in self.tags if len(tag) >= 2 and tag[0] == name]

    def first_tag_value(self, name: str) -> str | None:
        values = self.tag_values(name)
        return values[0] if values else None

    def last_tag_value(self, name: str) -> str | None:
        values = self.tag_values(name)
        return values[-1] if values else None


# ---------------------------------------------------------------------------
# Classified variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Post:
    event: NostrEvent
    reply_to: str | None


@dataclass(frozen=True, slots=True)
class Reaction:
    event: NostrEvent
    liked: str | None


@dataclass(frozen=True, slots=True)
class FollowList:
    event: NostrEvent
    follows: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class PaymentReceipt:
    event: NostrEvent
    zapped: str | None
    invoice: str | None


@dataclass(frozen=True, slots=True)
class Unsupported:
    event: NostrEvent


ClassifiedEvent = Post | Reaction | FollowList | PaymentReceipt | Unsupported


def classify(event: NostrEvent) -> ClassifiedEvent:
    """Map *event* to its variant.  Only the first ``e`` reference counts."""
    match event.kind:
        case EventKind.TEXT_NOTE:
            return Post(event, reply_to=event.first_tag_value("e"))
        case EventKind.REACTION:
            return Reaction(event, liked=event.first_tag_value("e"))
        case EventKind.CONTACTS:
            # dict.fromkeys keeps first-seen order while dropping duplicates
            return FollowList(event, follows=tuple(dict.fromkeys(event.tag_values("p"))))
        case EventKind.ZAP_RECEIPT:
            return PaymentReceipt(
                event,
                zapped=event.first_tag_value("e"),
                invoice=event.last_tag_value("bolt11"),
            )
        case _:
            return Unsupported(event)
