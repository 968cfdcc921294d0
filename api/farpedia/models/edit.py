import enum
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import FID_LENGTH, Base, BigIntPK

if TYPE_CHECKING:
    from .article import Article


class EditStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"


class ArticleEdit(Base):
    """A proposed replacement for an article's title and body.

    Moves pending -> approved exactly once. There is no rejected state.
    """

    __tablename__ = "article_edits"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    article_id: Mapped[int] = mapped_column(
        BigIntPK,
        ForeignKey("articles.id", name="fk_article_edits_article_id_articles"),
        nullable=False,
        index=True,
    )
    author_fid: Mapped[str] = mapped_column(String(FID_LENGTH), nullable=False, index=True)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reviewer_fid: Mapped[Optional[str]] = mapped_column(String(FID_LENGTH), nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    article: Mapped["Article"] = relationship(
        "Article", back_populates="edits", lazy="raise", foreign_keys=[article_id]
    )

    @property
    def status(self) -> EditStatus:
        return EditStatus.approved if self.approved else EditStatus.pending
