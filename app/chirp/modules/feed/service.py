"""
Timeline for an account: its own posts plus those of every account it follows.

The followed set stays inside the database as a subquery; it is never pulled
into Python and expanded into a long OR/IN list.
"""
from __future__ import annotations

from sqlalchemy import Select, or_, select
from sqlalchemy.orm import Session

from app.chirp.models import Account
from app.chirp.modules.posts.models import Post
from app.chirp.modules.social_graph.service import followed_ids_query


def feed_query(account_id: int) -> Select:
    """
    SELECT for the feed, newest first with id as tie-breaker so a fixed snapshot
    always yields the same order. Callers may add LIMIT/OFFSET or a keyset filter.
    """
    return (
        select(Post)
        .where(
            or_(
                Post.account_id == account_id,
                Post.account_id.in_(followed_ids_query(account_id)),
            )
        )
        .order_by(Post.created_at.desc(), Post.id.desc())
    )


def feed(s: Session, account: Account | int) -> list[Post]:
    account_id = account.id if isinstance(account, Account) else account
    return list(s.execute(feed_query(account_id)).scalars())
