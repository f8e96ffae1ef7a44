"""Tests for the follow graph."""
import pytest
from sqlalchemy import func, select

from app.chirp import create_app
from app.chirp.errors import NotFound, ValidationFailed
from app.chirp.models import Account, Base
from app.chirp.modules.social_graph.models import FollowEdge
from app.chirp.modules.social_graph import service as graph_service
from app.chirp.modules.social_graph.service import (
    follow,
    followed_ids,
    follower_count,
    follower_ids,
    followers,
    following,
    following_count,
    get_edge,
    is_following,
    unfollow,
)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


@pytest.fixture()
def s(app):
    s = app.extensions["sqlalchemy_sessionmaker"]()
    yield s
    s.close()


@pytest.fixture()
def accounts(s):
    rows = [
        Account(name=name.title(), email=f"{name}@example.com", password_digest="x", activated=True)
        for name in ("albert", "betty", "carl", "dana")
    ]
    s.add_all(rows)
    s.commit()
    return rows


def _edge_count(s, a, b):
    return s.execute(
        select(func.count(FollowEdge.id))
        .where(FollowEdge.follower_id == a.id)
        .where(FollowEdge.followed_id == b.id)
    ).scalar_one()


class TestFollow:
    def test_follow_then_is_following(self, s, accounts):
        a, b, *_ = accounts
        assert not is_following(s, a.id, b.id)
        follow(s, a.id, b.id)
        assert is_following(s, a.id, b.id)

    def test_edges_are_directed(self, s, accounts):
        a, b, *_ = accounts
        follow(s, a.id, b.id)
        assert not is_following(s, b.id, a.id)

    def test_follow_twice_leaves_one_edge(self, s, accounts):
        a, b, *_ = accounts
        first = follow(s, a.id, b.id)
        second = follow(s, a.id, b.id)
        assert first.id == second.id
        assert _edge_count(s, a, b) == 1

    def test_self_follow_rejected(self, s, accounts):
        a = accounts[0]
        with pytest.raises(ValidationFailed) as exc:
            follow(s, a.id, a.id)
        assert exc.value.field == "followed_id"
        assert not is_following(s, a.id, a.id)

    def test_unknown_account(self, s, accounts):
        with pytest.raises(NotFound):
            follow(s, accounts[0].id, 9999)
        with pytest.raises(NotFound):
            follow(s, 9999, accounts[0].id)

    def test_follow_survives_commit(self, s, accounts):
        a, b, *_ = accounts
        follow(s, a.id, b.id)
        s.commit()
        assert is_following(s, a.id, b.id)

    def test_concurrent_duplicate_returns_existing_edge(self, app, s, accounts, monkeypatch):
        a, b, *_ = accounts
        other = app.extensions["sqlalchemy_sessionmaker"]()
        other.add(FollowEdge(follower_id=a.id, followed_id=b.id))
        other.commit()
        other.close()

        # The existence check ran before the other request inserted its edge.
        real_get_edge = graph_service.get_edge
        calls = []

        def stale_get_edge(s, follower_id, followed_id):
            calls.append((follower_id, followed_id))
            if len(calls) == 1:
                return None
            return real_get_edge(s, follower_id, followed_id)

        monkeypatch.setattr(graph_service, "get_edge", stale_get_edge)

        edge = follow(s, a.id, b.id)
        assert (edge.follower_id, edge.followed_id) == (a.id, b.id)
        assert len(calls) == 2
        assert _edge_count(s, a, b) == 1
        s.commit()
        assert is_following(s, a.id, b.id)


class TestUnfollow:
    def test_unfollow_then_not_following(self, s, accounts):
        a, b, *_ = accounts
        follow(s, a.id, b.id)
        assert unfollow(s, a.id, b.id) is True
        assert not is_following(s, a.id, b.id)

    def test_unfollow_when_not_following_is_noop(self, s, accounts):
        a, b, *_ = accounts
        assert unfollow(s, a.id, b.id) is False
        assert unfollow(s, a.id, b.id) is False

    def test_refollow_creates_fresh_edge(self, s, accounts):
        a, b, *_ = accounts
        follow(s, a.id, b.id)
        unfollow(s, a.id, b.id)
        second = follow(s, a.id, b.id)
        assert is_following(s, a.id, b.id)
        assert _edge_count(s, a, b) == 1
        assert get_edge(s, a.id, b.id).id == second.id


class TestMembership:
    def test_followed_and_follower_ids(self, s, accounts):
        a, b, c, d = accounts
        follow(s, a.id, b.id)
        follow(s, a.id, c.id)
        follow(s, d.id, a.id)

        assert followed_ids(s, a.id) == {b.id, c.id}
        assert follower_ids(s, a.id) == {d.id}
        assert followed_ids(s, b.id) == set()

    def test_counts(self, s, accounts):
        a, b, c, d = accounts
        follow(s, a.id, b.id)
        follow(s, c.id, b.id)
        follow(s, d.id, b.id)
        assert following_count(s, a.id) == 1
        assert follower_count(s, b.id) == 3
        assert follower_count(s, a.id) == 0

    def test_listings(self, s, accounts):
        a, b, c, d = accounts
        follow(s, a.id, b.id)
        follow(s, a.id, c.id)
        follow(s, d.id, c.id)

        assert {x.id for x in following(s, a.id)} == {b.id, c.id}
        # Newest edge first.
        assert [x.id for x in following(s, a.id)][0] == c.id
        assert {x.id for x in followers(s, c.id)} == {a.id, d.id}
