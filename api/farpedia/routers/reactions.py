"""Like and flag endpoints. Both are idempotent per (article, fid).

POST /api/v1/articles/{slug}/like
POST /api/v1/articles/{slug}/flag
"""

from typing import Optional

from fastapi import APIRouter, Body

from farpedia.dependencies import AppSettings, CurrentFid, DbSession, UserCache
from farpedia.middleware.rate_limiter import WriteRateLimit
from farpedia.schemas.reaction import FlagCreate, ReactionResponse
from farpedia.services.articles import flag_article, like_article

router = APIRouter(prefix="/api/v1", tags=["reactions"])


@router.post("/articles/{slug}/like", response_model=ReactionResponse)
async def like(
    slug: str,
    fid: CurrentFid,
    db: DbSession,
    app_settings: AppSettings,
    user_cache: UserCache,
    _rate: WriteRateLimit,
) -> ReactionResponse:
    """Like an article. Liking twice returns 200 without a second effect."""
    result = await like_article(db, slug, fid, app_settings)
    if result.credited_fid:
        user_cache.invalidate(result.credited_fid)
    return ReactionResponse(
        slug=result.slug,
        created=result.created,
        count=result.count,
        message="Liked" if result.created else "Already liked",
    )


@router.post("/articles/{slug}/flag", response_model=ReactionResponse)
async def flag(
    slug: str,
    fid: CurrentFid,
    db: DbSession,
    _rate: WriteRateLimit,
    body: Optional[FlagCreate] = Body(default=None),
) -> ReactionResponse:
    """Flag an article for moderator attention. Idempotent per fid."""
    result = await flag_article(db, slug, fid, reason=body.reason if body else None)
    return ReactionResponse(
        slug=result.slug,
        created=result.created,
        count=result.count,
        message="Flagged" if result.created else "Already flagged",
    )
