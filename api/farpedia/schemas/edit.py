"""Pydantic schemas for edit proposals and their approval."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from farpedia.models.edit import EditStatus
from farpedia.schemas.article import ArticleResponse
from farpedia.schemas.points import ContributionItem


class EditCreate(BaseModel):
    """Request schema for proposing a replacement body (and optionally title)."""

    body: str = Field(min_length=1)
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    summary: Optional[str] = Field(None, max_length=1000)


class EditResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    article_id: int
    author_fid: str
    title: Optional[str] = None
    body: str
    summary: Optional[str] = None
    status: EditStatus
    approved: bool
    reviewer_fid: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime


class EditListResponse(BaseModel):
    edits: list[EditResponse]


class ApprovalResponse(BaseModel):
    """Result of an approval: the applied edit, the article and the awards."""

    edit: EditResponse
    article: ArticleResponse
    approved_by: str
    rule: str
    first_publication: bool
    contributions: list[ContributionItem]
