from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.chirp.audit import record_event
from app.chirp.constants import PICTURE_MAX_BYTES, POST_MAX_LENGTH
from app.chirp.errors import NotFound, PersistenceFailure, ValidationError, ValidationFailed
from app.chirp.models import Account
from app.chirp.modules.posts.models import Post
from app.chirp.utils import normalize_text

logger = logging.getLogger(__name__)


def validate_post_payload(payload: dict[str, Any], *, author: Account | None) -> list[ValidationError]:
    errs: list[ValidationError] = []
    if author is None or author.id is None:
        errs.append(ValidationError("account_id", "Author is required."))

    content = normalize_text(payload.get("content"))
    if not content:
        errs.append(ValidationError("content", "Content can't be blank."))
    elif len(content) > POST_MAX_LENGTH:
        errs.append(ValidationError("content", f"Content is too long (maximum is {POST_MAX_LENGTH} characters)."))

    size = payload.get("picture_size")
    if size is not None:
        try:
            size = int(size)
        except (TypeError, ValueError):
            errs.append(ValidationError("picture", "Picture size must be a number of bytes."))
        else:
            if size < 0:
                errs.append(ValidationError("picture", "Picture size must be a number of bytes."))
            elif size > PICTURE_MAX_BYTES:
                errs.append(ValidationError("picture", "Picture should be less than 5MB."))
    return errs


def create_post(s: Session, author: Account | None, payload: dict[str, Any], *, now: datetime | None = None) -> Post:
    errs = validate_post_payload(payload, author=author)
    if errs or author is None:
        raise ValidationFailed(errs)

    now = now or datetime.utcnow()
    size = payload.get("picture_size")
    post = Post(
        account_id=author.id,
        content=normalize_text(payload.get("content")),
        picture_key=normalize_text(payload.get("picture_key")) or None,
        picture_size=int(size) if size is not None else None,
        created_at=now,
        updated_at=now,
    )
    s.add(post)
    try:
        s.flush()
    except SQLAlchemyError as e:
        raise PersistenceFailure("Could not save post.") from e
    record_event(s, actor=author, action="post.create", entity_type="Post", entity_id=str(post.id))
    logger.info("POST: created post_id=%s account_id=%s", post.id, author.id)
    return post


def delete_post(s: Session, author: Account, post_id: int) -> None:
    """Only the author may delete; anyone else gets NotFound, same as a missing post."""
    post = s.execute(
        select(Post).where(Post.id == post_id).where(Post.account_id == author.id)
    ).scalar_one_or_none()
    if post is None:
        raise NotFound("Post", post_id)
    s.delete(post)
    try:
        s.flush()
    except SQLAlchemyError as e:
        raise PersistenceFailure("Could not delete post.") from e
    record_event(s, actor=author, action="post.delete", entity_type="Post", entity_id=str(post_id))
    logger.info("POST: deleted post_id=%s account_id=%s", post_id, author.id)


def posts_by(s: Session, account_id: int) -> list[Post]:
    return list(
        s.execute(
            select(Post)
            .where(Post.account_id == account_id)
            .order_by(Post.created_at.desc(), Post.id.desc())
        ).scalars()
    )
