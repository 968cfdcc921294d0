from .base import Base
from .account import Account
from .article import Article
from .edit import ArticleEdit, EditStatus
from .points import Contribution, ContributionReason, SourceType, UserPoints
from .reaction import Flag, Like

__all__ = [
    "Base",
    "Account",
    "Article",
    "ArticleEdit",
    "EditStatus",
    "Contribution",
    "ContributionReason",
    "SourceType",
    "UserPoints",
    "Like",
    "Flag",
]
