"""Edit proposal endpoints.

GET  /api/v1/articles/{slug}/edits                      -- proposals, newest first
POST /api/v1/articles/{slug}/edits                      -- propose a new body/title
POST /api/v1/articles/{slug}/edits/{edit_id}/approve    -- apply it and award points
"""

from fastapi import APIRouter

from farpedia.dependencies import AppSettings, CurrentFid, DbSession, UserCache
from farpedia.middleware.rate_limiter import WriteRateLimit
from farpedia.schemas.edit import ApprovalResponse, EditCreate, EditListResponse, EditResponse
from farpedia.services.articles import approve_edit, list_edits, propose_edit

router = APIRouter(prefix="/api/v1", tags=["edits"])


@router.get("/articles/{slug}/edits", response_model=EditListResponse)
async def get_edits(slug: str, db: DbSession) -> EditListResponse:
    edits = await list_edits(db, slug)
    return EditListResponse(edits=[EditResponse.model_validate(e) for e in edits])


@router.post(
    "/articles/{slug}/edits",
    response_model=EditResponse,
    status_code=201,
)
async def submit_edit(
    slug: str,
    body: EditCreate,
    fid: CurrentFid,
    db: DbSession,
    _rate: WriteRateLimit,
) -> EditResponse:
    """Propose a replacement body (and optionally title) for an article.

    Any authenticated identity may propose. The edit stays pending until the
    article author, an admin or a reviewer approves it.
    """
    edit = await propose_edit(
        db, slug, author_fid=fid, body=body.body, title=body.title, summary=body.summary
    )
    return EditResponse.model_validate(edit)


@router.post(
    "/articles/{slug}/edits/{edit_id}/approve",
    response_model=ApprovalResponse,
)
async def approve(
    slug: str,
    edit_id: int,
    fid: CurrentFid,
    db: DbSession,
    app_settings: AppSettings,
    user_cache: UserCache,
    _rate: WriteRateLimit,
) -> ApprovalResponse:
    """Approve a pending edit.

    Validation rules:
    - Article and edit must exist (404)
    - Edit must still be pending (409 already_approved)
    - Caller must be the article author, on ADMIN_FIDS, or an admin/reviewer (403)

    The first approval of an article also publishes it.
    """
    result = await approve_edit(db, slug, edit_id, fid, app_settings)
    for contribution_fid in {result.edit.author_fid, fid}:
        user_cache.invalidate(contribution_fid)
    return result
