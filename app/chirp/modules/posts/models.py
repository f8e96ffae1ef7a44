from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.chirp.models import Base

if TYPE_CHECKING:
    from app.chirp.models import Account


class Post(Base):
    __tablename__ = "posts"
    __table_args__ = (
        # Feed and profile listings filter by author and sort by recency.
        Index("idx_posts_account_id_created_at", "account_id", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Image bytes live outside the database; only a reference and size are kept.
    picture_key: Mapped[str | None] = mapped_column(String(512), nullable=True)
    picture_size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    author: Mapped["Account"] = relationship("Account", back_populates="posts", lazy="joined")
