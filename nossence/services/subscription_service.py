"""
nossence.services.subscription_service — Subscriber Lifecycle
==============================================================

State machine per pubkey::

    (none) ──get_or_create──▶ ACTIVE ──terminate──▶ INACTIVE
                                 ▲                      │
                                 └──────restore─────────┘

Creation is create-if-absent on the ``subscribers`` primary key, so two
concurrent first-time ``#subscribe`` commands for the same pubkey end up
sharing one record and one channel secret.

All public methods are synchronous — call via ``await run_db(...)``.
"""

from __future__ import annotations

import logging
import secrets
from datetime import UTC, datetime

from sqlalchemy import DateTime, Engine, bindparam, select, text, update
from sqlalchemy.orm import Session

from nossence.database.engine import get_session
from nossence.database.models import Subscriber

logger = logging.getLogger(__name__)


class SubscriberNotFound(LookupError):
    """No subscriber record exists for the pubkey."""

    def __init__(self, pubkey: str) -> None:
        super().__init__(f"no subscriber for pubkey {pubkey}")
        self.pubkey = pubkey


def generate_channel_secret() -> str:
    """A fresh 32-byte private key, hex encoded."""
    return secrets.token_hex(32)


def _now() -> datetime:
    return datetime.now(UTC)


_CREATE_IF_ABSENT = text("""
    INSERT INTO subscribers (pubkey, channel_secret, subscribed_at, unsubscribed_at)
    VALUES (:pubkey, :channel_secret, :subscribed_at, NULL)
    ON CONFLICT (pubkey) DO NOTHING
""").bindparams(bindparam("subscribed_at", type_=DateTime(timezone=True)))


def _get(session: Session, pubkey: str) -> Subscriber | None:
    return session.get(Subscriber, pubkey)


class SubscriptionService:
    """Owns the ``subscribers`` table.

    Parameters
    ----------
    engine:
        The store engine.
    clock:
        Returns "now"; injectable for tests.
    """

    def __init__(self, engine: Engine, clock=_now) -> None:
        self.engine = engine
        self.clock = clock

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, pubkey: str) -> Subscriber | None:
        """Detached snapshot of the subscriber, or None."""
        with get_session(self.engine) as session:
            sub = _get(session, pubkey)
            if sub is not None:
                session.expunge(sub)
            return sub

    def list_active(self, limit: int, after: str | None = None) -> list[Subscriber]:
        """Up to *limit* active subscribers with ``pubkey > after``, by pubkey."""
        stmt = (
            select(Subscriber)
            .where(Subscriber.unsubscribed_at.is_(None))
            .order_by(Subscriber.pubkey)
            .limit(limit)
        )
        if after is not None:
            stmt = stmt.where(Subscriber.pubkey > after)
        with get_session(self.engine) as session:
            subs = list(session.scalars(stmt).all())
            for sub in subs:
                session.expunge(sub)
            return subs

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def get_or_create(self, pubkey: str) -> tuple[str, bool]:
        """Return ``(channel_secret, is_new)``.

        An existing record, active or not, is returned untouched with
        ``is_new=False``.
        """
        candidate = generate_channel_secret()
        with get_session(self.engine) as session:
            result = session.execute(
                _CREATE_IF_ABSENT,
                {
                    "pubkey": pubkey,
                    "channel_secret": candidate,
                    "subscribed_at": self.clock(),
                },
            )
            created = result.rowcount == 1
            secret = session.scalar(
                select(Subscriber.channel_secret).where(Subscriber.pubkey == pubkey)
            )

        if created:
            logger.info("Created subscriber %s", pubkey)
        else:
            logger.info("Found existing subscriber %s", pubkey)
        return secret, created

    def terminate(self, pubkey: str) -> None:
        """Mark *pubkey* unsubscribed as of now.  Unknown pubkeys are a no-op."""
        with get_session(self.engine) as session:
            result = session.execute(
                update(Subscriber)
                .where(Subscriber.pubkey == pubkey)
                .values(unsubscribed_at=self.clock())
            )
        if result.rowcount == 0:
            logger.info("Terminate for unknown subscriber %s ignored", pubkey)
        else:
            logger.info("Terminated subscriber %s", pubkey)

    def restore(self, pubkey: str) -> bool:
        """Reactivate an inactive subscriber.

        Returns False when the subscriber is already active.

        Raises
        ------
        SubscriberNotFound
            If *pubkey* never subscribed.
        """
        with get_session(self.engine) as session:
            sub = _get(session, pubkey)
            if sub is None:
                raise SubscriberNotFound(pubkey)
            if sub.unsubscribed_at is None:
                return False
            sub.unsubscribed_at = None
            sub.subscribed_at = self.clock()

        logger.info("Restored subscriber %s", pubkey)
        return True

    def mark_delivered(self, pubkey: str, when: datetime) -> None:
        with get_session(self.engine) as session:
            session.execute(
                update(Subscriber)
                .where(Subscriber.pubkey == pubkey)
                .values(last_delivered_at=when)
            )
