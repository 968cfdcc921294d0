"""Pydantic schemas for the points ledger read endpoint."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class ContributionItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_type: str
    source_id: int
    points: int
    reason: str
    created_at: datetime
    source_url: Optional[str] = None


class UserPointsResponse(BaseModel):
    fid: str
    total_points: int
    contributions: list[ContributionItem]
