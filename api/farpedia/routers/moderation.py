"""Admin endpoints: flagged articles, account roles and the points export.

Access: fids on ADMIN_FIDS when it is set, otherwise accounts with is_admin.
"""

import csv
import io

from fastapi import APIRouter, Query
from fastapi.responses import Response

from farpedia.dependencies import AdminFid, DbSession
from farpedia.schemas.account import AccountResponse, AccountRolesUpdate
from farpedia.schemas.article import ArticleResponse
from farpedia.schemas.common import PaginatedResponse
from farpedia.services.accounts import list_accounts, set_account_roles
from farpedia.services.articles import list_flagged
from farpedia.services.points import AIRDROP_MAX_TOP, top_contributors

router = APIRouter(prefix="/api/v1", tags=["moderation"])


# ---------------------------------------------------------------------------
# GET /api/v1/moderation/flagged
# ---------------------------------------------------------------------------


@router.get("/moderation/flagged", response_model=PaginatedResponse[ArticleResponse])
async def get_flagged(
    _admin: AdminFid,
    db: DbSession,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> PaginatedResponse[ArticleResponse]:
    """Articles with at least one flag, most flagged first."""
    articles, total = await list_flagged(db, limit=limit, offset=offset)
    return PaginatedResponse[ArticleResponse](
        items=[ArticleResponse.model_validate(a) for a in articles],
        total=total,
        limit=limit,
        offset=offset,
    )


# ---------------------------------------------------------------------------
# /api/v1/admin/accounts
# ---------------------------------------------------------------------------


@router.get("/admin/accounts", response_model=PaginatedResponse[AccountResponse])
async def get_accounts(
    _admin: AdminFid,
    db: DbSession,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> PaginatedResponse[AccountResponse]:
    accounts, total = await list_accounts(db, limit=limit, offset=offset)
    return PaginatedResponse[AccountResponse](
        items=[AccountResponse.model_validate(a) for a in accounts],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.patch("/admin/accounts", response_model=AccountResponse)
async def update_account_roles(
    body: AccountRolesUpdate,
    admin_fid: AdminFid,
    db: DbSession,
) -> AccountResponse:
    """Grant or revoke admin/reviewer on any fid, creating the account if needed."""
    account = await set_account_roles(
        db,
        body.fid,
        is_admin=body.is_admin,
        is_reviewer=body.is_reviewer,
        actor_fid=admin_fid,
    )
    return AccountResponse.model_validate(account)


# ---------------------------------------------------------------------------
# GET /api/v1/admin/airdrop
# ---------------------------------------------------------------------------


@router.get("/admin/airdrop", response_class=Response)
async def export_airdrop(
    _admin: AdminFid,
    db: DbSession,
    top: int = Query(default=100),
) -> Response:
    """CSV of the top fids by total points with each one's share of all points.

    top is clamped to 1..10000 rather than rejected.
    """
    rows = await top_contributors(db, top)
    top = min(AIRDROP_MAX_TOP, max(1, top))

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["fid", "total_points", "share"])
    for row in rows:
        writer.writerow([row.fid, row.total_points, f"{row.share:.6f}" if row.share else "0"])

    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="airdrop_top_{top}.csv"'},
    )
