from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import FID_LENGTH, Base, BigIntPK, JSONDoc

if TYPE_CHECKING:
    from .edit import ArticleEdit


class Article(Base):
    __tablename__ = "articles"
    __table_args__ = (Index("ix_articles_published_created_at", "published", "created_at"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    author_fid: Mapped[str] = mapped_column(String(FID_LENGTH), nullable=False, index=True)

    # Category tag ("token", "project", ...) and optional token_address
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSONDoc, nullable=True)

    # Publication state: created unpublished, flipped by the first approved edit
    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    vetted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Reputation score accepted by the admission gate, kept for audit
    neynar_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    like_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    flag_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    edits: Mapped[list["ArticleEdit"]] = relationship(
        "ArticleEdit", back_populates="article", lazy="raise"
    )

    @property
    def category(self) -> Optional[str]:
        return (self.metadata_json or {}).get("category")
