"""Who may approve edits, and who counts as an admin.

Approval policy, first match wins:
1. the actor wrote the article
2. ADMIN_FIDS is configured: the actor must be listed (the accounts table
   is not consulted at all)
3. the actor's account has is_admin or is_reviewer
Anything else is Forbidden.

A store failure while reading the account raises Unavailable so callers
can tell "try again" from "not allowed".
"""

import enum
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from farpedia.config import Settings
from farpedia.errors import Forbidden, Unavailable
from farpedia.models.account import Account

log = structlog.get_logger(__name__)


class ApprovalRule(str, enum.Enum):
    author = "author"
    allowlist = "allowlist"
    admin = "admin"
    reviewer = "reviewer"


async def _load_roles(db: AsyncSession, fid: str) -> Optional[tuple[bool, bool]]:
    try:
        result = await db.execute(
            select(Account.is_admin, Account.is_reviewer).where(Account.fid == fid)
        )
        row = result.one_or_none()
    except (SQLAlchemyError, OSError) as exc:
        log.error("account_lookup_failed", fid=fid, error=str(exc))
        raise Unavailable("Account store unavailable") from exc
    if row is None:
        return None
    return bool(row[0]), bool(row[1])


async def authorize_approval(
    db: AsyncSession,
    actor_fid: str,
    author_fid: str,
    app_settings: Settings,
) -> ApprovalRule:
    """Return the rule that lets actor_fid approve edits on author_fid's article.

    Raises:
        Forbidden: no rule matched.
        Unavailable: the accounts table could not be read.
    """
    if str(actor_fid) == str(author_fid):
        return ApprovalRule.author

    allowlist = app_settings.admin_fid_set
    if allowlist:
        if actor_fid in allowlist:
            return ApprovalRule.allowlist
        raise Forbidden("Only the article author, admins and reviewers can approve edits")

    roles = await _load_roles(db, actor_fid)
    if roles is not None:
        is_admin, is_reviewer = roles
        if is_admin:
            return ApprovalRule.admin
        if is_reviewer:
            return ApprovalRule.reviewer

    raise Forbidden("Only the article author, admins and reviewers can approve edits")


async def require_admin(db: AsyncSession, fid: str, app_settings: Settings) -> None:
    """Gate for the admin endpoints: allow-list when configured, else is_admin."""
    allowlist = app_settings.admin_fid_set
    if allowlist:
        if fid not in allowlist:
            raise Forbidden("Admin access required")
        return

    roles = await _load_roles(db, fid)
    if roles is None or not roles[0]:
        raise Forbidden("Admin access required")
