"""
tests/test_graph_service.py — Event → graph mutation tests
===========================================================
Covers idempotent upserts per kind, follow-list replacement, zap amounts,
no-op outcomes, and transaction rollback.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from conftest import make_event
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from nossence.database.models import Follow, Interaction, InteractionType, Post, User
from nossence.engine.invoice import InvoiceDecodeError
from nossence.services.graph_service import ApplyOutcome, GraphWriter


@pytest.fixture
def decoder():
    return MagicMock(return_value=3000)


@pytest.fixture
def writer(db_engine, decoder):
    return GraphWriter(db_engine, decoder=decoder)


def _count(engine, model) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(model))


def _interactions(engine) -> list[tuple[str, str, str, int | None]]:
    with Session(engine) as session:
        rows = session.scalars(select(Interaction).order_by(Interaction.source_id)).all()
        return [(r.source_id, r.target_id, r.type, r.amount) for r in rows]


def _follows(engine, follower: str) -> set[str]:
    with Session(engine) as session:
        return set(session.scalars(
            select(Follow.followee).where(Follow.follower == follower)
        ).all())


class TestNotes:
    def test_note_creates_user_post_and_authorship(self, writer, db_engine):
        outcome = writer.apply(make_event(id="n1", pubkey="alice", content="gm"))
        assert outcome is ApplyOutcome.APPLIED

        with Session(db_engine) as session:
            post = session.get(Post, "n1")
            assert post.author == "alice"
            assert post.kind == 1
            assert post.content == "gm"
            assert session.get(User, "alice") is not None

    def test_reply_links_to_first_reference(self, writer, db_engine):
        writer.apply(make_event(id="root"))
        writer.apply(make_event(id="r1", pubkey="bob", tags=[["e", "root"], ["e", "other"]]))

        assert _interactions(db_engine) == [("r1", "root", InteractionType.REPLY, None)]

    def test_applying_same_event_twice_is_idempotent(self, writer, db_engine):
        event = make_event(id="r1", pubkey="bob", tags=[["e", "root"]])
        writer.apply(event)
        writer.apply(event)

        assert _count(db_engine, User) == 1
        assert _count(db_engine, Post) == 1
        assert _count(db_engine, Interaction) == 1

    def test_post_content_is_immutable_once_stored(self, writer, db_engine):
        writer.apply(make_event(id="n1", content="original"))
        writer.apply(make_event(id="n1", content="tampered"))

        with Session(db_engine) as session:
            assert session.get(Post, "n1").content == "original"

    def test_reply_before_target_still_links(self, writer, db_engine):
        """Out-of-order delivery: the edge exists before its target does."""
        writer.apply(make_event(id="r1", pubkey="bob", tags=[["e", "late"]]))
        writer.apply(make_event(id="late", pubkey="alice"))

        assert _interactions(db_engine) == [("r1", "late", InteractionType.REPLY, None)]


class TestReactions:
    def test_like_edge(self, writer, db_engine):
        writer.apply(make_event(id="n1"))
        writer.apply(make_event(id="l1", kind=7, pubkey="carol", content="+", tags=[["e", "n1"]]))

        assert _interactions(db_engine) == [("l1", "n1", InteractionType.LIKE, None)]
        with Session(db_engine) as session:
            assert session.get(Post, "l1").kind == 7

    def test_reaction_without_reference_stores_only_the_item(self, writer, db_engine):
        writer.apply(make_event(id="l1", kind=7, content="+"))
        assert _count(db_engine, Post) == 1
        assert _count(db_engine, Interaction) == 0


class TestFollowLists:
    def test_second_list_replaces_the_first(self, writer, db_engine):
        writer.apply(make_event(id="c1", kind=3, pubkey="alice", tags=[["p", "b"], ["p", "c"]]))
        writer.apply(make_event(id="c2", kind=3, pubkey="alice", tags=[["p", "c"], ["p", "d"]]))

        assert _follows(db_engine, "alice") == {"c", "d"}

    def test_every_endpoint_has_a_user(self, writer, db_engine):
        writer.apply(make_event(id="c1", kind=3, pubkey="alice", tags=[["p", "b"], ["p", "b"]]))

        assert _follows(db_engine, "alice") == {"b"}
        with Session(db_engine) as session:
            assert set(session.scalars(select(User.pubkey)).all()) == {"alice", "b"}

    def test_empty_list_clears_follows(self, writer, db_engine):
        writer.apply(make_event(id="c1", kind=3, pubkey="alice", tags=[["p", "b"]]))
        writer.apply(make_event(id="c2", kind=3, pubkey="alice"))

        assert _follows(db_engine, "alice") == set()

    def test_other_authors_untouched(self, writer, db_engine):
        writer.apply(make_event(id="c1", kind=3, pubkey="bob", tags=[["p", "x"]]))
        writer.apply(make_event(id="c2", kind=3, pubkey="alice", tags=[["p", "y"]]))

        assert _follows(db_engine, "bob") == {"x"}

    def test_contact_list_is_not_a_post(self, writer, db_engine):
        writer.apply(make_event(id="c1", kind=3, pubkey="alice", tags=[["p", "b"]]))
        assert _count(db_engine, Post) == 0


class TestZaps:
    def test_zap_edge_carries_amount_in_sats(self, writer, db_engine, decoder):
        writer.apply(make_event(id="n1"))
        outcome = writer.apply(make_event(
            id="z1", kind=9735, pubkey="lnurl", tags=[["e", "n1"], ["bolt11", "lnbc30n1..."]],
        ))

        assert outcome is ApplyOutcome.APPLIED
        decoder.assert_called_once_with("lnbc30n1...")
        assert _interactions(db_engine) == [("z1", "n1", InteractionType.ZAP, 3)]

    def test_zap_without_target_is_ignored(self, writer, db_engine, decoder):
        outcome = writer.apply(make_event(id="z1", kind=9735, tags=[["bolt11", "lnbc..."]]))

        assert outcome is ApplyOutcome.NO_TARGET
        decoder.assert_not_called()
        assert _count(db_engine, Post) == 0
        assert _count(db_engine, User) == 0

    def test_bad_invoice_writes_nothing(self, writer, db_engine, decoder):
        decoder.side_effect = InvoiceDecodeError("bad checksum")
        with pytest.raises(InvoiceDecodeError):
            writer.apply(make_event(id="z1", kind=9735, tags=[["e", "n1"], ["bolt11", "x"]]))

        assert _count(db_engine, Post) == 0
        assert _count(db_engine, Interaction) == 0

    def test_missing_bolt11_tag_is_a_decode_error(self, writer):
        with pytest.raises(InvoiceDecodeError):
            writer.apply(make_event(id="z1", kind=9735, tags=[["e", "n1"]]))

    def test_bad_invoice_does_not_affect_other_events(self, writer, db_engine, decoder):
        decoder.side_effect = InvoiceDecodeError("bad")
        with pytest.raises(InvoiceDecodeError):
            writer.apply(make_event(id="z1", kind=9735, tags=[["e", "n1"], ["bolt11", "x"]]))

        assert writer.apply(make_event(id="n2")) is ApplyOutcome.APPLIED
        assert _count(db_engine, Post) == 1


class TestOutcomes:
    def test_unsupported_kind_is_a_noop(self, writer, db_engine):
        outcome = writer.apply(make_event(id="m1", kind=0, content="{}"))
        assert outcome is ApplyOutcome.UNSUPPORTED
        assert _count(db_engine, User) == 0

    def test_store_failure_rolls_back_the_whole_event(self, writer, db_engine):
        boom = OperationalError("INSERT INTO interactions", {}, Exception("disk I/O error"))
        with patch("nossence.services.graph_service.upsert_interaction", side_effect=boom):
            with pytest.raises(OperationalError):
                writer.apply(make_event(id="r1", pubkey="bob", tags=[["e", "root"]]))

        assert _count(db_engine, User) == 0
        assert _count(db_engine, Post) == 0
