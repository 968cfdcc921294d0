"""Pydantic schemas for accounts and admin role management."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    fid: str
    username: Optional[str] = None
    display_name: Optional[str] = None
    pfp_url: Optional[str] = None
    follower_count: Optional[int] = None
    is_admin: bool
    is_reviewer: bool
    created_at: datetime


class SessionResponse(BaseModel):
    """GET /auth/me: the verified identity and its account."""

    fid: str
    account: AccountResponse
    total_points: int


class AccountRolesUpdate(BaseModel):
    fid: str = Field(min_length=1, max_length=32)
    is_admin: Optional[bool] = None
    is_reviewer: Optional[bool] = None

    @model_validator(mode="after")
    def at_least_one_role(self) -> "AccountRolesUpdate":
        if self.is_admin is None and self.is_reviewer is None:
            raise ValueError("Provide is_admin and/or is_reviewer")
        return self
