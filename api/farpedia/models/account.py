from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import FID_LENGTH, Base, JSONDoc


class Account(Base):
    """One row per Farcaster identity ever seen.

    Profile columns are a cache of the Neynar profile at the last upsert.
    """

    __tablename__ = "accounts"

    fid: Mapped[str] = mapped_column(String(FID_LENGTH), primary_key=True)
    username: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    pfp_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    custody_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    verified_addresses: Mapped[Optional[dict]] = mapped_column(JSONDoc, nullable=True)
    follower_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    is_admin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_reviewer: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
