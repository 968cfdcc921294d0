from typing import Annotated, Optional

import redis.asyncio as aioredis
from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from farpedia.config import Settings, settings
from farpedia.database import get_db
from farpedia.services.admission import AdmissionGate
from farpedia.services.authorization import require_admin
from farpedia.services.cache import TTLCache
from farpedia.services.identity import QuickAuthVerifier, extract_bearer_token, resolve_request_domain
from farpedia.services.neynar import NeynarClient

DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_settings() -> Settings:
    """Overridable in tests via app.dependency_overrides."""
    return settings


AppSettings = Annotated[Settings, Depends(get_settings)]


# Shared clients live on app.state (set during lifespan startup)
async def get_redis(request: Request) -> aioredis.Redis:
    return request.app.state.redis


async def get_verifier(request: Request) -> QuickAuthVerifier:
    return request.app.state.verifier


async def get_neynar(request: Request) -> NeynarClient:
    return request.app.state.neynar


async def get_admission_gate(request: Request) -> AdmissionGate:
    return request.app.state.admission_gate


async def get_user_cache(request: Request) -> TTLCache:
    return request.app.state.user_cache


RedisClient = Annotated[aioredis.Redis, Depends(get_redis)]
Verifier = Annotated[QuickAuthVerifier, Depends(get_verifier)]
Neynar = Annotated[NeynarClient, Depends(get_neynar)]
Gate = Annotated[AdmissionGate, Depends(get_admission_gate)]
UserCache = Annotated[TTLCache, Depends(get_user_cache)]


async def get_current_fid(
    request: Request,
    verifier: Verifier,
    app_settings: AppSettings,
    authorization: Optional[str] = Header(None),
) -> str:
    """Authenticate a request via its QuickAuth bearer token.

    The token's audience must match the domain this request was served on,
    resolved from Origin, then Host, then the configured canonical host.
    """
    token = extract_bearer_token(authorization)
    domain = resolve_request_domain(
        request.headers.get("origin"),
        request.headers.get("host"),
        app_settings.canonical_host,
    )
    fid = await verifier.verify(token, domain)
    request.state.fid = fid
    return fid


CurrentFid = Annotated[str, Depends(get_current_fid)]


async def get_admin_fid(fid: CurrentFid, db: DbSession, app_settings: AppSettings) -> str:
    """Gate: the authenticated fid must be an operator or an admin account."""
    await require_admin(db, fid, app_settings)
    return fid


AdminFid = Annotated[str, Depends(get_admin_fid)]
