"""
nossence.constants — Shared Constants
======================================

Single source of truth for event kinds, ranking weights, command tokens,
and outgoing message templates.
"""

from __future__ import annotations

import enum


# ---------------------------------------------------------------------------
# Nostr event kinds consumed by the graph writer
# ---------------------------------------------------------------------------
class EventKind(enum.IntEnum):
    """Event kinds that carry graph-relevant content."""
    TEXT_NOTE = 1
    CONTACTS = 3
    REACTION = 7
    ZAP_RECEIPT = 9735


INGESTED_KINDS: tuple[int, ...] = tuple(int(k) for k in EventKind)


# ---------------------------------------------------------------------------
# Ranking weights — points per distinct interacting author
# ---------------------------------------------------------------------------
REPLY_WEIGHT = 15
LIKE_WEIGHT = 10
ZAP_WEIGHT = 50

MSAT_PER_SAT = 1000


# ---------------------------------------------------------------------------
# Mention commands
# ---------------------------------------------------------------------------
SUBSCRIBE_TOKEN = "#subscribe"
UNSUBSCRIBE_TOKEN = "#unsubscribe"


# ---------------------------------------------------------------------------
# Outgoing message templates.  ``#[n]`` is resolved by the transport to the
# n-th mentioned pubkey.
# ---------------------------------------------------------------------------
WELCOME_TEMPLATE = (
    "Hello, #[0]! Your nossence recommendations is ready, "
    "follow: #[1] to fetch your own feed."
)

DIGEST_HEADER_TEMPLATE = "Your nossence digest for #[0]"
DIGEST_LINE_TEMPLATE = "{rank}. [{score}] nostr:{event_id}"
