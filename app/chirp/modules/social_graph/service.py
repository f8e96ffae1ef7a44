from __future__ import annotations

import logging

from sqlalchemy import Select, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.chirp.audit import record_event
from app.chirp.errors import NotFound, PersistenceFailure, ValidationError, ValidationFailed
from app.chirp.models import Account
from app.chirp.modules.social_graph.models import FollowEdge

logger = logging.getLogger(__name__)


def _require_account(s: Session, account_id: int) -> Account:
    account = s.get(Account, account_id)
    if account is None:
        raise NotFound("Account", account_id)
    return account


def _expire_edges(s: Session, follower: Account, followed: Account) -> None:
    # Loaded edge collections go stale after a direct insert/delete of an edge.
    s.expire(follower, ["following_edges"])
    s.expire(followed, ["follower_edges"])


def get_edge(s: Session, follower_id: int, followed_id: int) -> FollowEdge | None:
    return s.execute(
        select(FollowEdge)
        .where(FollowEdge.follower_id == follower_id)
        .where(FollowEdge.followed_id == followed_id)
    ).scalar_one_or_none()


def follow(s: Session, follower_id: int, followed_id: int) -> FollowEdge:
    """
    Create the follower -> followed edge. Following twice is a no-op that returns the existing edge.
    """
    if follower_id == followed_id:
        raise ValidationFailed([ValidationError("followed_id", "Accounts cannot follow themselves.")])
    follower = _require_account(s, follower_id)
    followed = _require_account(s, followed_id)

    edge = get_edge(s, follower_id, followed_id)
    if edge is not None:
        return edge

    try:
        with s.begin_nested():  # SAVEPOINT: a concurrent duplicate only rolls this back
            edge = FollowEdge(follower_id=follower_id, followed_id=followed_id)
            s.add(edge)
            s.flush()
    except IntegrityError as e:
        edge = get_edge(s, follower_id, followed_id)
        if edge is not None:
            logger.info("GRAPH: concurrent follow follower_id=%s followed_id=%s (no-op)", follower_id, followed_id)
            return edge
        raise PersistenceFailure("Could not save follow edge.") from e
    except SQLAlchemyError as e:
        raise PersistenceFailure("Could not save follow edge.") from e
    _expire_edges(s, follower, followed)

    record_event(
        s,
        actor=follower,
        action="follow.create",
        entity_type="FollowEdge",
        entity_id=str(edge.id),
        metadata={"followed_id": followed_id},
    )
    logger.info("GRAPH: follow follower_id=%s followed_id=%s", follower_id, followed_id)
    return edge


def unfollow(s: Session, follower_id: int, followed_id: int) -> bool:
    """Remove the edge if present. Returns whether anything was deleted; a missing edge is not an error."""
    edge = get_edge(s, follower_id, followed_id)
    if edge is None:
        return False

    follower, followed = edge.follower, edge.followed
    s.delete(edge)
    try:
        s.flush()
    except SQLAlchemyError as e:
        raise PersistenceFailure("Could not delete follow edge.") from e
    _expire_edges(s, follower, followed)

    record_event(
        s,
        actor=follower,
        action="follow.destroy",
        entity_type="FollowEdge",
        entity_id=str(edge.id),
        metadata={"followed_id": followed_id},
    )
    logger.info("GRAPH: unfollow follower_id=%s followed_id=%s", follower_id, followed_id)
    return True


def is_following(s: Session, follower_id: int, followed_id: int) -> bool:
    return s.execute(
        select(FollowEdge.id)
        .where(FollowEdge.follower_id == follower_id)
        .where(FollowEdge.followed_id == followed_id)
        .limit(1)
    ).first() is not None


def followed_ids_query(follower_id: int) -> Select:
    """Ids followed by `follower_id`, as a subquery-ready SELECT (never materialized here)."""
    return select(FollowEdge.followed_id).where(FollowEdge.follower_id == follower_id)


def follower_ids_query(followed_id: int) -> Select:
    return select(FollowEdge.follower_id).where(FollowEdge.followed_id == followed_id)


def followed_ids(s: Session, follower_id: int) -> set[int]:
    return set(s.execute(followed_ids_query(follower_id)).scalars())


def follower_ids(s: Session, followed_id: int) -> set[int]:
    return set(s.execute(follower_ids_query(followed_id)).scalars())


def following_count(s: Session, account_id: int) -> int:
    return s.execute(
        select(func.count(FollowEdge.id)).where(FollowEdge.follower_id == account_id)
    ).scalar_one()


def follower_count(s: Session, account_id: int) -> int:
    return s.execute(
        select(func.count(FollowEdge.id)).where(FollowEdge.followed_id == account_id)
    ).scalar_one()


def following(s: Session, account_id: int) -> list[Account]:
    """Accounts `account_id` follows, most recently followed first."""
    return list(
        s.execute(
            select(Account)
            .join(FollowEdge, FollowEdge.followed_id == Account.id)
            .where(FollowEdge.follower_id == account_id)
            .order_by(FollowEdge.created_at.desc(), FollowEdge.id.desc())
        ).scalars()
    )


def followers(s: Session, account_id: int) -> list[Account]:
    """Accounts following `account_id`, most recent follower first."""
    return list(
        s.execute(
            select(Account)
            .join(FollowEdge, FollowEdge.follower_id == Account.id)
            .where(FollowEdge.followed_id == account_id)
            .order_by(FollowEdge.created_at.desc(), FollowEdge.id.desc())
        ).scalars()
    )
