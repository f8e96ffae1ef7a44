from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.chirp.models import Base

if TYPE_CHECKING:
    from app.chirp.models import Account


class FollowEdge(Base):
    """Directed edge: `follower` sees `followed`'s posts in their feed."""

    __tablename__ = "follow_edges"
    __table_args__ = (
        UniqueConstraint("follower_id", "followed_id", name="uq_follow_edges_pair"),
        CheckConstraint("follower_id != followed_id", name="ck_follow_edges_no_self_follow"),
        Index("idx_follow_edges_follower_id", "follower_id"),
        Index("idx_follow_edges_followed_id", "followed_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    follower_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    followed_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    follower: Mapped["Account"] = relationship(
        "Account",
        back_populates="following_edges",
        foreign_keys=[follower_id],
    )
    followed: Mapped["Account"] = relationship(
        "Account",
        back_populates="follower_edges",
        foreign_keys=[followed_id],
    )
