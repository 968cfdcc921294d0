"""Farpedia Pydantic schemas package.

Re-exports all request and response schemas for convenient importing:

    from farpedia.schemas import ArticleCreate, EditCreate, ApprovalResponse, ...
"""

from farpedia.schemas.account import AccountResponse, AccountRolesUpdate, SessionResponse
from farpedia.schemas.article import (
    ArticleCounts,
    ArticleCreate,
    ArticleCreated,
    ArticleMetadata,
    ArticleResponse,
    CountsRequest,
    CountsResponse,
    SlugCheckRequest,
    SlugCheckResponse,
)
from farpedia.schemas.common import PaginatedResponse
from farpedia.schemas.edit import ApprovalResponse, EditCreate, EditListResponse, EditResponse
from farpedia.schemas.points import ContributionItem, UserPointsResponse
from farpedia.schemas.reaction import FlagCreate, ReactionResponse

__all__ = [
    # Article
    "ArticleCreate",
    "ArticleCreated",
    "ArticleMetadata",
    "ArticleResponse",
    "ArticleCounts",
    "CountsRequest",
    "CountsResponse",
    "SlugCheckRequest",
    "SlugCheckResponse",
    # Edit
    "EditCreate",
    "EditResponse",
    "EditListResponse",
    "ApprovalResponse",
    # Reactions
    "FlagCreate",
    "ReactionResponse",
    # Accounts
    "AccountResponse",
    "AccountRolesUpdate",
    "SessionResponse",
    # Points
    "ContributionItem",
    "UserPointsResponse",
    # Common
    "PaginatedResponse",
]
