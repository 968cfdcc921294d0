"""Article endpoints.

POST /api/v1/articles              -- create (admission gated), unpublished until approved
GET  /api/v1/articles              -- list, newest first
GET  /api/v1/articles/{slug}       -- fetch one
POST /api/v1/articles/check-slug   -- 200 when free, 409 when taken
POST /api/v1/articles/counts       -- likes and flags for many slugs
"""

from typing import Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse

from farpedia.dependencies import CurrentFid, DbSession, Gate
from farpedia.middleware.rate_limiter import WriteRateLimit
from farpedia.schemas.article import (
    ArticleCounts,
    ArticleCreate,
    ArticleCreated,
    ArticleResponse,
    CountsRequest,
    CountsResponse,
    SlugCheckRequest,
    SlugCheckResponse,
)
from farpedia.schemas.common import PaginatedResponse
from farpedia.services.articles import (
    article_counts,
    create_article,
    get_article,
    is_slug_available,
    list_articles,
)

router = APIRouter(prefix="/api/v1", tags=["articles"])


@router.post("/articles", response_model=ArticleCreated, status_code=201)
async def submit_article(
    body: ArticleCreate,
    fid: CurrentFid,
    gate: Gate,
    db: DbSession,
    _rate: WriteRateLimit,
) -> ArticleCreated:
    """Create an article about a token or project.

    The author's reputation score must clear the admission gate (403 with
    the score otherwise). The article starts unpublished with a pending
    initial edit; approving that edit publishes it.
    """
    score = await gate.evaluate(fid)
    article, edit = await create_article(
        db,
        author_fid=fid,
        slug=body.slug,
        title=body.title,
        body=body.body,
        metadata=body.metadata.model_dump(exclude_none=True),
        score=score,
    )
    return ArticleCreated(
        article=ArticleResponse.model_validate(article),
        initial_edit_id=edit.id,
    )


@router.get("/articles", response_model=PaginatedResponse[ArticleResponse])
async def get_articles(
    db: DbSession,
    published_only: bool = True,
    category: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> PaginatedResponse[ArticleResponse]:
    articles, total = await list_articles(
        db, published_only=published_only, category=category, limit=limit, offset=offset
    )
    return PaginatedResponse[ArticleResponse](
        items=[ArticleResponse.model_validate(a) for a in articles],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/articles/check-slug", response_model=SlugCheckResponse)
async def check_slug(body: SlugCheckRequest, db: DbSession):
    slug = body.slug.strip().lower()
    available = await is_slug_available(db, slug)
    result = SlugCheckResponse(slug=slug, available=available)
    if not available:
        return JSONResponse(status_code=409, content=result.model_dump())
    return result


@router.post("/articles/counts", response_model=CountsResponse)
async def get_counts(body: CountsRequest, db: DbSession) -> CountsResponse:
    counts = await article_counts(db, body.slugs)
    return CountsResponse(
        counts={slug: ArticleCounts(**values) for slug, values in counts.items()}
    )


@router.get("/articles/{slug}", response_model=ArticleResponse)
async def get_article_by_slug(slug: str, db: DbSession) -> ArticleResponse:
    article = await get_article(db, slug)
    return ArticleResponse.model_validate(article)
