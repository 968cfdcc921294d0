"""Pydantic schemas for article creation and retrieval."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

SLUG_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"


class ArticleMetadata(BaseModel):
    """Free-form article metadata. Unknown keys are kept."""

    model_config = ConfigDict(extra="allow")

    category: Optional[Literal["token", "project", "person", "other"]] = None
    token_address: Optional[str] = Field(None, max_length=128)


class ArticleCreate(BaseModel):
    """Request schema for creating an article. The author is the token holder."""

    slug: str = Field(min_length=1, max_length=120, pattern=SLUG_PATTERN)
    title: str = Field(min_length=1, max_length=300)
    body: str = Field(min_length=1)
    metadata: ArticleMetadata = Field(default_factory=ArticleMetadata)

    @field_validator("slug", mode="before")
    @classmethod
    def normalize_slug(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ArticleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    slug: str
    title: str
    body: str
    author_fid: str
    metadata: Optional[dict] = Field(None, validation_alias="metadata_json")
    published: bool
    published_at: Optional[datetime] = None
    vetted: bool
    neynar_score: Optional[float] = None
    like_count: int
    flag_count: int
    created_at: datetime
    updated_at: datetime


class ArticleCreated(BaseModel):
    """Response after creation: the article and the pending initial edit."""

    article: ArticleResponse
    initial_edit_id: int
    message: str = "Article submitted for review"


class SlugCheckRequest(BaseModel):
    slug: str = Field(min_length=1, max_length=120)


class SlugCheckResponse(BaseModel):
    slug: str
    available: bool


class CountsRequest(BaseModel):
    slugs: list[str] = Field(min_length=1, max_length=200)


class ArticleCounts(BaseModel):
    likes: int = 0
    flags: int = 0


class CountsResponse(BaseModel):
    counts: dict[str, ArticleCounts]
