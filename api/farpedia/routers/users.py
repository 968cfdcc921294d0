"""Public points summary.

GET /api/v1/users/{fid} -- total points and recent contributions
"""

from fastapi import APIRouter

from farpedia.dependencies import DbSession, UserCache
from farpedia.schemas.points import UserPointsResponse
from farpedia.services.points import get_user_summary

router = APIRouter(prefix="/api/v1", tags=["users"])


@router.get("/users/{fid}", response_model=UserPointsResponse)
async def get_user_points(fid: str, db: DbSession, user_cache: UserCache) -> UserPointsResponse:
    """Served from a short-lived per-fid cache; approvals invalidate it."""
    return await user_cache.get_or_load(fid, lambda: get_user_summary(db, fid))
