from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

if TYPE_CHECKING:
    from app.chirp.modules.posts.models import Post
    from app.chirp.modules.social_graph.models import FollowEdge


class Base(DeclarativeBase):
    pass


class Account(Base):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)  # always lower-case

    # Digests only; plaintext secrets are never persisted.
    password_digest: Mapped[str] = mapped_column(String(255), nullable=False)
    remember_digest: Mapped[str | None] = mapped_column(String(255), nullable=True)
    activation_digest: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reset_digest: Mapped[str | None] = mapped_column(String(255), nullable=True)

    activated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    reset_sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    posts: Mapped[list["Post"]] = relationship(
        "Post",
        back_populates="author",
        cascade="all, delete-orphan",
        lazy="select",
    )
    following_edges: Mapped[list["FollowEdge"]] = relationship(
        "FollowEdge",
        back_populates="follower",
        cascade="all, delete-orphan",
        foreign_keys="FollowEdge.follower_id",
        lazy="select",
    )
    follower_edges: Mapped[list["FollowEdge"]] = relationship(
        "FollowEdge",
        back_populates="followed",
        cascade="all, delete-orphan",
        foreign_keys="FollowEdge.followed_id",
        lazy="select",
    )

    def __repr__(self) -> str:
        return f"<Account id={self.id} email={self.email!r} activated={self.activated}>"


# Case-insensitive uniqueness even for rows written around the service layer.
Index("uq_accounts_email_lower", func.lower(Account.email), unique=True)


class AuditEvent(Base):
    """
    Append-only audit trail event for credential and graph transitions.
    Never holds plaintext passwords, tokens or digests.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_events_action", "action"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_account_id: Mapped[int | None] = mapped_column(ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    actor_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    action: Mapped[str] = mapped_column(String(128), nullable=False)  # e.g. "auth.login"
    entity_type: Mapped[str | None] = mapped_column(String(128), nullable=True)  # e.g. "Account"
    entity_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    metadata_json: Mapped[str | None] = mapped_column(Text, nullable=True)  # small JSON string


# Ensure module models are imported so Base.metadata includes their tables.
# (Kept at bottom to avoid circular imports.)
from app.chirp.modules.posts.models import Post  # noqa: E402,F401
from app.chirp.modules.social_graph.models import FollowEdge  # noqa: E402,F401
