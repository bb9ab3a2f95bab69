"""
nossence.database.models — SQLAlchemy 2.0 Graph Models
=======================================================

The social graph, stored relationally.

Nodes:
- users         — One row per Nostr pubkey ever referenced
- posts         — Addressable content items (notes, reactions, zap receipts)

Edges:
- posts.author  — CREATE (User → Post); exactly one per post by construction
- interactions  — REPLY / LIKE / ZAP (Post → Post), ZAP carries ``amount``
- follows       — FOLLOW (User → User)

Delivery state:
- subscribers   — Digest recipients and their channel secrets
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all nossence ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class InteractionType(enum.StrEnum):
    """Post → Post edge types that feed the ranking."""
    REPLY = "REPLY"
    LIKE = "LIKE"
    ZAP = "ZAP"


# ---------------------------------------------------------------------------
# Users — one row per pubkey
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    pubkey: Mapped[str] = mapped_column(String(64), primary_key=True)

    posts: Mapped[list[Post]] = relationship(back_populates="author_user")

    def __repr__(self) -> str:
        return f"<User pubkey={self.pubkey[:8]}…>"


# ---------------------------------------------------------------------------
# Posts — content items, immutable once written
# ---------------------------------------------------------------------------
class Post(Base):
    __tablename__ = "posts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[int] = mapped_column(Integer, nullable=False)
    author: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.pubkey"), nullable=False
    )
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)  # unix seconds

    author_user: Mapped[User] = relationship(back_populates="posts")

    __table_args__ = (
        Index("ix_posts_created_at", "created_at"),
        Index("ix_posts_author", "author"),
    )

    def __repr__(self) -> str:
        return f"<Post id={self.id[:8]}… kind={self.kind}>"


# ---------------------------------------------------------------------------
# Interactions — REPLY / LIKE / ZAP edges between posts
# ---------------------------------------------------------------------------
class Interaction(Base):
    """Directed edge from the interacting post to the post it targets.

    ``target_id`` is deliberately not a foreign key: the target may not
    have been ingested yet, and the edge starts counting once it is.
    """
    __tablename__ = "interactions"

    source_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True
    )
    target_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    type: Mapped[str] = mapped_column(String(8), primary_key=True)
    amount: Mapped[int | None] = mapped_column(BigInteger, default=None)  # sats, ZAP only

    __table_args__ = (
        Index("ix_interactions_target_type", "target_id", "type"),
    )

    def __repr__(self) -> str:
        return f"<Interaction {self.type} {self.source_id[:8]}… → {self.target_id[:8]}…>"


# ---------------------------------------------------------------------------
# Follows — FOLLOW edges, replaced wholesale per contact list
# ---------------------------------------------------------------------------
class Follow(Base):
    __tablename__ = "follows"

    follower: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.pubkey", ondelete="CASCADE"), primary_key=True
    )
    followee: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.pubkey", ondelete="CASCADE"), primary_key=True
    )

    def __repr__(self) -> str:
        return f"<Follow {self.follower[:8]}… → {self.followee[:8]}…>"


# ---------------------------------------------------------------------------
# Subscribers — digest recipients
# ---------------------------------------------------------------------------
class Subscriber(Base):
    """A digest recipient.  ``unsubscribed_at IS NULL`` means active."""
    __tablename__ = "subscribers"

    pubkey: Mapped[str] = mapped_column(String(64), primary_key=True)
    channel_secret: Mapped[str] = mapped_column(String(64), nullable=False)
    subscribed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    unsubscribed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_delivered_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    __table_args__ = (
        Index("ix_subscribers_active", "unsubscribed_at"),
    )

    @property
    def active(self) -> bool:
        return self.unsubscribed_at is None

    def __repr__(self) -> str:
        return f"<Subscriber pubkey={self.pubkey[:8]}… active={self.active}>"
