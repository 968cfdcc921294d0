"""Pydantic schemas for likes and flags."""

from typing import Optional

from pydantic import BaseModel, Field


class FlagCreate(BaseModel):
    """Optional context for a flag."""

    reason: Optional[str] = Field(None, max_length=1000)


class ReactionResponse(BaseModel):
    slug: str
    created: bool
    count: int
    message: str
