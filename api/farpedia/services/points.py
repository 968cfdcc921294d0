"""Points ledger and the per-user aggregate.

contributions is append-only and authoritative. user_points is a cache
maintained by increment-on-write:

- Ledger rows are written inside the caller's transaction (record_contribution)
  so an award commits together with the action that earned it.
- The aggregate is incremented afterwards, one commit per contribution, with
  a column-expression UPDATE (no read-modify-write). A failed increment is
  rolled back, logged as user_points_increment_failed and counted; the ledger
  row stays. recompute_user_points rebuilds every total from the ledger.

Known gap: recompute reads the sums and then writes them; an increment that
lands between the two is overwritten and reappears on the next recompute.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from farpedia.errors import Unavailable
from farpedia.metrics import points_awarded, user_points_increment_failures
from farpedia.models.article import Article
from farpedia.models.edit import ArticleEdit
from farpedia.models.points import Contribution, SourceType, UserPoints
from farpedia.schemas.points import ContributionItem, UserPointsResponse

log = structlog.get_logger(__name__)

AIRDROP_MAX_TOP = 10_000


@dataclass(frozen=True)
class RecomputeResult:
    updated: int
    inserted: int
    reset: int

    @property
    def total(self) -> int:
        return self.updated + self.inserted + self.reset


@dataclass(frozen=True)
class ContributorShare:
    fid: str
    total_points: int
    share: float


async def record_contribution(
    db: AsyncSession,
    fid: str,
    source_type: SourceType,
    source_id: int,
    points: int,
    reason: str,
) -> Contribution:
    """Append a ledger row. Flushed, not committed: the caller owns the transaction."""
    contribution = Contribution(
        fid=str(fid),
        source_type=SourceType(source_type).value,
        source_id=source_id,
        points=points,
        reason=str(getattr(reason, "value", reason)),
    )
    db.add(contribution)
    await db.flush()
    return contribution


async def increment_user_points(db: AsyncSession, fid: str, delta: int) -> None:
    """Add delta to fid's total, creating the row seeded with delta if absent.

    Raises IntegrityError when a concurrent writer created the row first;
    apply_to_aggregate retries the UPDATE in that case.
    """
    result = await db.execute(
        update(UserPoints)
        .where(UserPoints.fid == fid)
        .values(total_points=UserPoints.total_points + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        return
    db.add(UserPoints(fid=fid, total_points=delta))
    await db.flush()


async def apply_to_aggregate(db: AsyncSession, contributions: list[Contribution]) -> int:
    """Fold committed ledger rows into user_points. Returns how many were applied.

    Never raises for store failures: the ledger is already durable and the
    recompute job repairs whatever is missed here.
    """
    # Snapshot first: a rollback expires every loaded instance
    pending = [(c.id, c.fid, c.points, c.source_type) for c in contributions]

    applied = 0
    for contribution_id, fid, delta, source_type in pending:
        if delta > 0:
            points_awarded.labels(source_type=source_type).inc(delta)
        if delta == 0:
            continue
        try:
            try:
                await increment_user_points(db, fid, delta)
                await db.commit()
            except IntegrityError:
                # Lost the race to insert the first row; it exists now
                await db.rollback()
                await increment_user_points(db, fid, delta)
                await db.commit()
        except (SQLAlchemyError, OSError) as exc:
            await db.rollback()
            user_points_increment_failures.inc()
            log.error(
                "user_points_increment_failed",
                fid=fid,
                contribution_id=contribution_id,
                points=delta,
                error=str(exc),
            )
            continue
        applied += 1
    return applied


async def award_points(
    db: AsyncSession,
    fid: str,
    source_type: SourceType,
    source_id: int,
    points: int,
    reason: str,
) -> Contribution:
    """Record a contribution on its own and update the aggregate.

    The ledger insert is committed before the aggregate is touched, so an
    aggregate failure never loses the award.
    """
    try:
        contribution = await record_contribution(db, fid, source_type, source_id, points, reason)
        await db.commit()
    except (SQLAlchemyError, OSError) as exc:
        await db.rollback()
        log.error("contribution_insert_failed", fid=fid, source_type=str(source_type), error=str(exc))
        raise Unavailable("Points ledger unavailable") from exc

    log.info(
        "points_awarded",
        fid=fid,
        source_type=contribution.source_type,
        source_id=source_id,
        points=points,
        reason=contribution.reason,
    )
    await apply_to_aggregate(db, [contribution])
    return contribution


async def recompute_user_points(db: AsyncSession) -> RecomputeResult:
    """Rewrite every user_points row from the sum of the ledger.

    Rows for fids that no longer have ledger entries are reset to zero.
    Idempotent: a second run over an unchanged ledger writes the same totals.
    """
    totals_result = await db.execute(
        select(Contribution.fid, func.coalesce(func.sum(Contribution.points), 0))
        .group_by(Contribution.fid)
    )
    totals = {fid: int(total) for fid, total in totals_result.all()}

    existing_result = await db.execute(select(UserPoints.fid))
    existing = set(existing_result.scalars().all())

    updated = inserted = reset = 0
    for fid in sorted(totals):
        total = totals[fid]
        if fid in existing:
            await db.execute(
                update(UserPoints)
                .where(UserPoints.fid == fid)
                .values(total_points=total, last_updated=func.now())
                .execution_options(synchronize_session=False)
            )
            updated += 1
        else:
            db.add(UserPoints(fid=fid, total_points=total))
            inserted += 1

    orphaned = sorted(existing - totals.keys())
    if orphaned:
        await db.execute(
            update(UserPoints)
            .where(UserPoints.fid.in_(orphaned))
            .values(total_points=0, last_updated=func.now())
            .execution_options(synchronize_session=False)
        )
        reset = len(orphaned)

    await db.commit()
    return RecomputeResult(updated=updated, inserted=inserted, reset=reset)


async def get_total_points(db: AsyncSession, fid: str) -> int:
    result = await db.execute(select(UserPoints.total_points).where(UserPoints.fid == fid))
    return int(result.scalar_one_or_none() or 0)


async def get_user_summary(db: AsyncSession, fid: str, limit: int = 200) -> UserPointsResponse:
    """Total points plus the most recent contributions, newest first.

    Each contribution gets a source_url when the edit or article it points at
    still resolves; unresolved sources are left without one.
    """
    total_points = await get_total_points(db, fid)

    result = await db.execute(
        select(Contribution)
        .where(Contribution.fid == fid)
        .order_by(Contribution.created_at.desc(), Contribution.id.desc())
        .limit(limit)
    )
    contributions = result.scalars().all()

    edit_ids = {
        c.source_id
        for c in contributions
        if c.source_type in (SourceType.edit.value, SourceType.review.value)
    }
    article_ids = {c.source_id for c in contributions if c.source_type == SourceType.like.value}

    edit_slugs: dict[int, str] = {}
    if edit_ids:
        rows = await db.execute(
            select(ArticleEdit.id, Article.slug)
            .join(Article, Article.id == ArticleEdit.article_id)
            .where(ArticleEdit.id.in_(edit_ids))
        )
        edit_slugs = {edit_id: slug for edit_id, slug in rows.all()}

    article_slugs: dict[int, str] = {}
    if article_ids:
        rows = await db.execute(
            select(Article.id, Article.slug).where(Article.id.in_(article_ids))
        )
        article_slugs = {article_id: slug for article_id, slug in rows.all()}

    items = []
    for c in contributions:
        source_url: Optional[str] = None
        if c.source_id in edit_slugs and c.source_type != SourceType.like.value:
            source_url = f"/articles/{edit_slugs[c.source_id]}/edits/{c.source_id}"
        elif c.source_type == SourceType.like.value and c.source_id in article_slugs:
            source_url = f"/articles/{article_slugs[c.source_id]}"
        items.append(
            ContributionItem(
                id=c.id,
                source_type=c.source_type,
                source_id=c.source_id,
                points=c.points,
                reason=c.reason,
                created_at=c.created_at,
                source_url=source_url,
            )
        )

    return UserPointsResponse(fid=fid, total_points=total_points, contributions=items)


async def top_contributors(db: AsyncSession, top: int = 100) -> list[ContributorShare]:
    """Highest user_points totals with each fid's share of all points.

    top is clamped to 1..AIRDROP_MAX_TOP. Ties are broken by fid so the
    export is stable between runs.
    """
    top = min(AIRDROP_MAX_TOP, max(1, top))

    grand_total = int(
        (await db.execute(select(func.coalesce(func.sum(UserPoints.total_points), 0)))).scalar_one()
    )
    result = await db.execute(
        select(UserPoints.fid, UserPoints.total_points)
        .order_by(UserPoints.total_points.desc(), UserPoints.fid)
        .limit(top)
    )
    return [
        ContributorShare(
            fid=fid,
            total_points=total_points,
            share=total_points / grand_total if grand_total > 0 else 0.0,
        )
        for fid, total_points in result.all()
    ]
