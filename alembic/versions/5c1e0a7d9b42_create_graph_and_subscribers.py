"""Create graph tables and subscribers

Revision ID: 5c1e0a7d9b42
Revises:
Create Date: 2026-10-19 10:12:31.204418

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c1e0a7d9b42'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Users, posts, interaction and follow edges, subscribers."""

    # --- nodes ---
    op.create_table(
        "users",
        sa.Column("pubkey", sa.String(64), primary_key=True),
    )
    op.create_table(
        "posts",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("kind", sa.Integer, nullable=False),
        sa.Column("author", sa.String(64), sa.ForeignKey("users.pubkey"), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("created_at", sa.BigInteger, nullable=False),
    )
    op.create_index("ix_posts_created_at", "posts", ["created_at"])
    op.create_index("ix_posts_author", "posts", ["author"])

    # --- edges ---
    op.create_table(
        "interactions",
        sa.Column(
            "source_id", sa.String(64),
            sa.ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("target_id", sa.String(64), primary_key=True),
        sa.Column("type", sa.String(8), primary_key=True),
        sa.Column("amount", sa.BigInteger, nullable=True),
    )
    op.create_index(
        "ix_interactions_target_type", "interactions", ["target_id", "type"],
    )
    op.create_table(
        "follows",
        sa.Column(
            "follower", sa.String(64),
            sa.ForeignKey("users.pubkey", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column(
            "followee", sa.String(64),
            sa.ForeignKey("users.pubkey", ondelete="CASCADE"), primary_key=True,
        ),
    )

    # --- delivery ---
    op.create_table(
        "subscribers",
        sa.Column("pubkey", sa.String(64), primary_key=True),
        sa.Column("channel_secret", sa.String(64), nullable=False),
        sa.Column("subscribed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("unsubscribed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_delivered_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_subscribers_active", "subscribers", ["unsubscribed_at"])


def downgrade() -> None:
    op.drop_index("ix_subscribers_active", table_name="subscribers")
    op.drop_table("subscribers")
    op.drop_table("follows")
    op.drop_index("ix_interactions_target_type", table_name="interactions")
    op.drop_table("interactions")
    op.drop_index("ix_posts_author", table_name="posts")
    op.drop_index("ix_posts_created_at", table_name="posts")
    op.drop_table("posts")
    op.drop_table("users")
