"""Points ledger ORM models.

contributions is the append-only ledger and the source of truth.
user_points is a denormalized per-fid total maintained by increment-on-write;
it can drift when an increment fails after its ledger row committed, and is
rebuilt from the ledger by farpedia.worker.points_worker.
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import FID_LENGTH, Base, BigIntPK


class SourceType(str, enum.Enum):
    edit = "edit"
    review = "review"
    like = "like"


class ContributionReason(str, enum.Enum):
    initial_publication = "initial_publication"
    approved_edit = "approved_edit"
    reviewed_edit = "reviewed_edit"
    like_received = "like_received"


class Contribution(Base):
    __tablename__ = "contributions"
    __table_args__ = (Index("ix_contributions_source", "source_type", "source_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    fid: Mapped[str] = mapped_column(String(FID_LENGTH), nullable=False, index=True)
    source_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source_id: Mapped[int] = mapped_column(BigIntPK, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class UserPoints(Base):
    __tablename__ = "user_points"

    fid: Mapped[str] = mapped_column(String(FID_LENGTH), primary_key=True)
    total_points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
