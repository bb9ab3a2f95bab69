"""
nossence.services.graph_service — Event → Graph Mutations
==========================================================

Central write path for the social graph.

Responsibilities:
1. Classify each inbound event by kind.
2. Translate it into idempotent upserts (``ON CONFLICT DO NOTHING``), so
   duplicate or re-ordered delivery never duplicates a node or an edge.
3. Apply all mutations of one event inside a single transaction; any
   store error rolls the whole event back and propagates to the caller.

All public methods are synchronous — call via ``await run_db(writer.apply, ...)``.
"""

from __future__ import annotations

import enum
import logging

from sqlalchemy import Engine, delete, text
from sqlalchemy.orm import Session

from nossence.database.engine import get_session
from nossence.database.models import Follow, InteractionType
from nossence.engine.events import (
    FollowList,
    NostrEvent,
    PaymentReceipt,
    Post,
    Reaction,
    Unsupported,
    classify,
)
from nossence.engine.invoice import MsatDecoder, decode_msat, zap_amount_sats

logger = logging.getLogger(__name__)


class ApplyOutcome(enum.StrEnum):
    """What :meth:`GraphWriter.apply` did with an event."""
    APPLIED = "applied"
    UNSUPPORTED = "unsupported"  # unknown kind, nothing written
    NO_TARGET = "no_target"      # zap without an ``e`` reference, nothing written


# ---------------------------------------------------------------------------
# Upsert statements (portable between PostgreSQL and SQLite)
# ---------------------------------------------------------------------------
_UPSERT_USER = text(
    "INSERT INTO users (pubkey) VALUES (:pubkey) ON CONFLICT DO NOTHING"
)

_UPSERT_POST = text("""
    INSERT INTO posts (id, kind, author, content, created_at)
    VALUES (:id, :kind, :author, :content, :created_at)
    ON CONFLICT DO NOTHING
""")

_UPSERT_INTERACTION = text("""
    INSERT INTO interactions (source_id, target_id, type, amount)
    VALUES (:source_id, :target_id, :type, :amount)
    ON CONFLICT DO NOTHING
""")

_UPSERT_FOLLOW = text(
    "INSERT INTO follows (follower, followee) VALUES (:follower, :followee) "
    "ON CONFLICT DO NOTHING"
)


# ---------------------------------------------------------------------------
# Low-level mutation recipes — each one is idempotent on its own
# ---------------------------------------------------------------------------
def upsert_user(session: Session, pubkey: str) -> None:
    session.execute(_UPSERT_USER, {"pubkey": pubkey})


def upsert_user_and_post(session: Session, event: NostrEvent) -> None:
    """Author node, content node, and the CREATE edge between them.

    The CREATE edge is the post's ``author`` column, so a post can never
    exist without exactly one.
    """
    upsert_user(session, event.pubkey)
    session.execute(
        _UPSERT_POST,
        {
            "id": event.id,
            "kind": event.kind,
            "author": event.pubkey,
            "content": event.content,
            "created_at": event.created_at,
        },
    )


def upsert_interaction(
    session: Session,
    source_id: str,
    target_id: str,
    type_: InteractionType,
    amount: int | None = None,
) -> None:
    session.execute(
        _UPSERT_INTERACTION,
        {
            "source_id": source_id,
            "target_id": target_id,
            "type": type_.value,
            "amount": amount,
        },
    )


def replace_follows(session: Session, follower: str, followees: tuple[str, ...]) -> None:
    """Drop every FOLLOW edge of *follower* and write *followees* instead."""
    upsert_user(session, follower)
    session.execute(delete(Follow).where(Follow.follower == follower))
    for followee in followees:
        upsert_user(session, followee)
        session.execute(_UPSERT_FOLLOW, {"follower": follower, "followee": followee})


# ---------------------------------------------------------------------------
# GraphWriter — main write service
# ---------------------------------------------------------------------------
class GraphWriter:
    """Applies Nostr events to the graph.

    Parameters
    ----------
    engine:
        The store engine; every :meth:`apply` is one transaction on it.
    decoder:
        bolt11 → msat decoder.  Defaults to the ``bolt11`` library.
    """

    def __init__(self, engine: Engine, decoder: MsatDecoder = decode_msat) -> None:
        self.engine = engine
        self.decoder = decoder

    def apply(self, event: NostrEvent) -> ApplyOutcome:
        """Apply *event* atomically.

        Raises
        ------
        InvoiceDecodeError
            For a zap receipt whose invoice cannot be decoded.  Nothing is
            written for that event.
        sqlalchemy.exc.SQLAlchemyError
            On store failure.  The transaction is rolled back.
        """
        match classify(event):
            case Post(event=ev, reply_to=target):
                with get_session(self.engine) as session:
                    upsert_user_and_post(session, ev)
                    if target is not None:
                        upsert_interaction(session, ev.id, target, InteractionType.REPLY)

            case Reaction(event=ev, liked=target):
                with get_session(self.engine) as session:
                    upsert_user_and_post(session, ev)
                    if target is not None:
                        upsert_interaction(session, ev.id, target, InteractionType.LIKE)

            case FollowList(event=ev, follows=follows):
                with get_session(self.engine) as session:
                    replace_follows(session, ev.pubkey, follows)
                logger.debug("Replaced follow list of %s (%d follows)", ev.pubkey, len(follows))

            case PaymentReceipt(event=ev, zapped=None):
                logger.debug("Ignoring zap %s without a target note", ev.id)
                return ApplyOutcome.NO_TARGET

            case PaymentReceipt(event=ev, zapped=target, invoice=invoice):
                # Decode before opening the transaction: a bad invoice
                # must not leave a half-written zap behind.
                amount = zap_amount_sats(invoice, self.decoder)
                with get_session(self.engine) as session:
                    upsert_user_and_post(session, ev)
                    upsert_interaction(session, ev.id, target, InteractionType.ZAP, amount)

            case Unsupported(event=ev):
                logger.warning("Unsupported event kind %d (event %s)", ev.kind, ev.id)
                return ApplyOutcome.UNSUPPORTED

        return ApplyOutcome.APPLIED
