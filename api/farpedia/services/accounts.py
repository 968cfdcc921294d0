"""Account rows: profile cache, roles, and the auto-admin heuristic.

Accounts are upserted on every authentication. The heuristic can only grant
is_admin; revoking is an explicit admin action through set_account_roles.
"""

from typing import Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from farpedia.config import Settings
from farpedia.models.account import Account
from farpedia.services.neynar import NeynarUser

log = structlog.get_logger(__name__)


def qualifies_for_auto_admin(fid: str, profile: Optional[NeynarUser], app_settings: Settings) -> bool:
    """Active-status label plus either enough followers or a trusted fid."""
    if not app_settings.auto_admin_enabled or profile is None:
        return False
    if profile.active_status != app_settings.auto_admin_active_status:
        return False
    if fid in app_settings.trusted_fid_set:
        return True
    return (profile.follower_count or 0) >= app_settings.auto_admin_min_followers


def _apply_profile(account: Account, profile: Optional[NeynarUser]) -> None:
    if profile is None:
        return
    account.username = profile.username
    account.display_name = profile.display_name
    account.pfp_url = profile.pfp_url
    account.custody_address = profile.custody_address
    account.verified_addresses = profile.verified_addresses
    account.follower_count = profile.follower_count


async def get_account(db: AsyncSession, fid: str) -> Optional[Account]:
    result = await db.execute(select(Account).where(Account.fid == fid))
    return result.scalar_one_or_none()


async def upsert_account(
    db: AsyncSession,
    fid: str,
    profile: Optional[NeynarUser],
    app_settings: Settings,
) -> Account:
    """Create or refresh fid's account from its Neynar profile."""
    grant_admin = qualifies_for_auto_admin(fid, profile, app_settings)

    for attempt in (1, 2):
        account = await get_account(db, fid)
        created = account is None
        if account is None:
            account = Account(fid=fid, is_admin=False, is_reviewer=False)
            db.add(account)
        _apply_profile(account, profile)
        if grant_admin and not account.is_admin:
            account.is_admin = True
            log.info("auto_admin_granted", fid=fid, follower_count=profile.follower_count)
        try:
            await db.commit()
        except IntegrityError:
            # Concurrent first login inserted the row; merge into it
            await db.rollback()
            if attempt == 2:
                raise
            continue
        break

    await db.refresh(account)
    if created:
        log.info("account_created", fid=fid)
    return account


async def set_account_roles(
    db: AsyncSession,
    fid: str,
    is_admin: Optional[bool] = None,
    is_reviewer: Optional[bool] = None,
    actor_fid: Optional[str] = None,
) -> Account:
    """Set role flags, creating the account when it has never logged in."""
    account = await get_account(db, fid)
    if account is None:
        account = Account(fid=fid, is_admin=False, is_reviewer=False)
        db.add(account)
    if is_admin is not None:
        account.is_admin = is_admin
    if is_reviewer is not None:
        account.is_reviewer = is_reviewer
    await db.commit()
    await db.refresh(account)
    log.info(
        "account_roles_updated",
        fid=fid,
        is_admin=account.is_admin,
        is_reviewer=account.is_reviewer,
        actor_fid=actor_fid,
    )
    return account


async def list_accounts(db: AsyncSession, limit: int = 50, offset: int = 0) -> tuple[list[Account], int]:
    total_result = await db.execute(select(func.count()).select_from(Account))
    result = await db.execute(
        select(Account).order_by(Account.created_at.desc(), Account.fid).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total_result.scalar_one()

