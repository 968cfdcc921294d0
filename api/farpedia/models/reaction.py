from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import FID_LENGTH, Base, BigIntPK

# Referenced by the duplicate-detection code paths
LIKES_UNIQUE_CONSTRAINT = "uq_likes_article_id_user_fid"
FLAGS_UNIQUE_CONSTRAINT = "uq_flags_article_id_user_fid"


class Like(Base):
    __tablename__ = "likes"
    __table_args__ = (
        UniqueConstraint("article_id", "user_fid", name=LIKES_UNIQUE_CONSTRAINT),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    article_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("articles.id"), nullable=False, index=True
    )
    user_fid: Mapped[str] = mapped_column(String(FID_LENGTH), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class Flag(Base):
    __tablename__ = "flags"
    __table_args__ = (
        UniqueConstraint("article_id", "user_fid", name=FLAGS_UNIQUE_CONSTRAINT),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    article_id: Mapped[int] = mapped_column(
        BigIntPK, ForeignKey("articles.id"), nullable=False, index=True
    )
    user_fid: Mapped[str] = mapped_column(String(FID_LENGTH), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
