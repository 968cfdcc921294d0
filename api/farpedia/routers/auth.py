"""Session endpoint.

GET /api/v1/auth/me -- verify the QuickAuth token, refresh the account row
"""

import structlog
from fastapi import APIRouter

from farpedia.dependencies import AppSettings, CurrentFid, DbSession, Neynar
from farpedia.errors import Unavailable
from farpedia.schemas.account import AccountResponse, SessionResponse
from farpedia.services.accounts import upsert_account
from farpedia.services.points import get_total_points

log = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1", tags=["auth"])


@router.get("/auth/me", response_model=SessionResponse)
async def me(
    fid: CurrentFid,
    db: DbSession,
    neynar: Neynar,
    app_settings: AppSettings,
) -> SessionResponse:
    """Return the caller's fid, account and points.

    The Neynar profile refreshes the cached profile columns. A provider
    failure does not fail the login; the account is upserted without it.
    """
    try:
        profile = await neynar.fetch_user(fid)
    except Unavailable as exc:
        log.warning("profile_refresh_skipped", fid=fid, error=exc.detail)
        profile = None

    account = await upsert_account(db, fid, profile, app_settings)
    total_points = await get_total_points(db, fid)
    return SessionResponse(
        fid=fid,
        account=AccountResponse.model_validate(account),
        total_points=total_points,
    )
