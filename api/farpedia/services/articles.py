"""Articles, edit proposals, and the approval workflow.

An article is created unpublished together with a pending edit that carries
the submitted content. Approving an edit applies it to the article; the first
approval also publishes. Approval, publication and the ledger rows commit in
one transaction; the user_points aggregate is updated after commit.

Likes and flags are idempotent per (article, fid). Duplicates are detected
from the unique constraint violation, not from a pre-check.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from farpedia.config import Settings
from farpedia.errors import AlreadyApproved, Conflict, EditExpired, Forbidden, NotFound, Unavailable
from farpedia.metrics import edit_approvals
from farpedia.models.article import Article
from farpedia.models.edit import ArticleEdit
from farpedia.models.points import Contribution, ContributionReason, SourceType
from farpedia.models.reaction import FLAGS_UNIQUE_CONSTRAINT, LIKES_UNIQUE_CONSTRAINT, Flag, Like
from farpedia.schemas.article import ArticleResponse
from farpedia.schemas.edit import ApprovalResponse, EditResponse
from farpedia.schemas.points import ContributionItem
from farpedia.services.authorization import authorize_approval
from farpedia.services.points import apply_to_aggregate, record_contribution

log = structlog.get_logger(__name__)

INITIAL_EDIT_SUMMARY = "Initial submission"


@dataclass(frozen=True)
class ReactionResult:
    slug: str
    created: bool
    count: int
    # Set when the reaction credited points to this fid
    credited_fid: Optional[str] = None


def is_unique_violation(exc: IntegrityError, constraint: str) -> bool:
    """True when exc was raised by the named unique constraint.

    Postgres reports the constraint name; SQLite only says which columns.
    """
    message = str(exc.orig)
    return constraint in message or "UNIQUE constraint failed" in message


async def _get_article_or_404(db: AsyncSession, slug: str) -> Article:
    result = await db.execute(select(Article).where(Article.slug == slug))
    article = result.scalar_one_or_none()
    if article is None:
        raise NotFound(f"Article '{slug}' not found")
    return article


async def get_article(db: AsyncSession, slug: str) -> Article:
    return await _get_article_or_404(db, slug)


async def is_slug_available(db: AsyncSession, slug: str) -> bool:
    result = await db.execute(select(Article.id).where(Article.slug == slug))
    return result.scalar_one_or_none() is None


async def create_article(
    db: AsyncSession,
    author_fid: str,
    slug: str,
    title: str,
    body: str,
    metadata: Optional[dict[str, Any]] = None,
    score: Optional[float] = None,
) -> tuple[Article, ArticleEdit]:
    """Insert an unpublished article and its pending initial edit.

    Raises Conflict when the slug is taken.
    """
    if not await is_slug_available(db, slug):
        raise Conflict(f"Slug '{slug}' is already taken")

    article = Article(
        slug=slug,
        title=title,
        body=body,
        author_fid=author_fid,
        metadata_json=metadata or {},
        published=False,
        vetted=False,
        neynar_score=score,
    )
    db.add(article)
    try:
        await db.flush()
        edit = ArticleEdit(
            article_id=article.id,
            author_fid=author_fid,
            title=title,
            body=body,
            summary=INITIAL_EDIT_SUMMARY,
        )
        db.add(edit)
        await db.commit()
    except IntegrityError as exc:
        # Lost a race for the slug against a concurrent create
        await db.rollback()
        raise Conflict(f"Slug '{slug}' is already taken") from exc

    await db.refresh(article)
    await db.refresh(edit)
    log.info("article_created", slug=slug, author_fid=author_fid, score=score)
    return article, edit


async def list_articles(
    db: AsyncSession,
    published_only: bool = True,
    category: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Article], int]:
    """Return a page of articles, newest first, and the unpaginated total."""
    query = select(Article)
    if published_only:
        query = query.where(Article.published.is_(True))
    if category:
        query = query.where(Article.metadata_json["category"].as_string() == category)

    count_result = await db.execute(select(func.count()).select_from(query.subquery()))
    total = count_result.scalar_one()

    result = await db.execute(
        query.order_by(Article.created_at.desc(), Article.id.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), total


async def article_counts(db: AsyncSession, slugs: list[str]) -> dict[str, dict[str, int]]:
    """Likes and flags per slug. Unknown slugs report zeros."""
    counts = {slug: {"likes": 0, "flags": 0} for slug in slugs}
    if not slugs:
        return counts
    result = await db.execute(
        select(Article.slug, Article.like_count, Article.flag_count).where(
            Article.slug.in_(set(slugs))
        )
    )
    for slug, likes, flags in result.all():
        counts[slug] = {"likes": likes, "flags": flags}
    return counts


async def propose_edit(
    db: AsyncSession,
    slug: str,
    author_fid: str,
    body: str,
    title: Optional[str] = None,
    summary: Optional[str] = None,
) -> ArticleEdit:
    article = await _get_article_or_404(db, slug)
    edit = ArticleEdit(
        article_id=article.id,
        author_fid=author_fid,
        title=title,
        body=body,
        summary=summary,
    )
    db.add(edit)
    await db.commit()
    await db.refresh(edit)
    log.info("edit_proposed", slug=slug, edit_id=edit.id, author_fid=author_fid)
    return edit


async def list_edits(db: AsyncSession, slug: str) -> list[ArticleEdit]:
    article = await _get_article_or_404(db, slug)
    result = await db.execute(
        select(ArticleEdit)
        .where(ArticleEdit.article_id == article.id)
        .order_by(ArticleEdit.created_at.desc(), ArticleEdit.id.desc())
    )
    return list(result.scalars().all())


def _ensure_open(edit: ArticleEdit, app_settings: Settings, now: datetime) -> None:
    max_age_days = app_settings.edit_proposal_max_age_days
    if max_age_days is None:
        return
    created_at = edit.created_at
    if created_at.tzinfo is None:
        # SQLite hands back naive UTC timestamps
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now - created_at > timedelta(days=max_age_days):
        raise EditExpired(f"Edit {edit.id} is older than {max_age_days} days")


async def approve_edit(
    db: AsyncSession,
    slug: str,
    edit_id: int,
    actor_fid: str,
    app_settings: Settings,
) -> ApprovalResponse:
    """Approve a pending edit, apply it to its article and award points.

    Raises:
        NotFound: no article with that slug, or no such edit on it.
        AlreadyApproved: the edit was approved before, or a concurrent
            approver claimed it first.
        Forbidden: actor_fid may not approve edits on this article.
        EditExpired: the proposal outlived EDIT_PROPOSAL_MAX_AGE_DAYS.
        Unavailable: the store failed; nothing was applied.
    """
    article = await _get_article_or_404(db, slug)
    result = await db.execute(
        select(ArticleEdit).where(
            ArticleEdit.id == edit_id, ArticleEdit.article_id == article.id
        )
    )
    edit = result.scalar_one_or_none()
    if edit is None:
        edit_approvals.labels(outcome="not_found").inc()
        raise NotFound(f"Edit {edit_id} not found on '{slug}'")
    if edit.approved:
        edit_approvals.labels(outcome="already_approved").inc()
        raise AlreadyApproved(f"Edit {edit_id} is already approved")

    try:
        rule = await authorize_approval(db, actor_fid, article.author_fid, app_settings)
    except Forbidden:
        edit_approvals.labels(outcome="forbidden").inc()
        log.info("edit_approval_denied", slug=slug, edit_id=edit_id, actor_fid=actor_fid)
        raise

    now = datetime.now(timezone.utc)
    try:
        _ensure_open(edit, app_settings, now)
    except EditExpired:
        edit_approvals.labels(outcome="expired").inc()
        raise

    article_id = article.id
    edit_author = edit.author_fid
    edit_title = edit.title
    edit_body = edit.body

    contributions: list[Contribution] = []
    try:
        claim = await db.execute(
            update(ArticleEdit)
            .where(ArticleEdit.id == edit_id, ArticleEdit.approved.is_(False))
            .values(approved=True, reviewer_fid=actor_fid, approved_at=now)
            .execution_options(synchronize_session=False)
        )
        if claim.rowcount != 1:
            await db.rollback()
            edit_approvals.labels(outcome="already_approved").inc()
            raise AlreadyApproved(f"Edit {edit_id} is already approved")

        published = await db.execute(
            update(Article)
            .where(Article.id == article_id, Article.published.is_(False))
            .values(published=True, published_at=now)
            .execution_options(synchronize_session=False)
        )
        first_publication = published.rowcount == 1

        changes: dict[str, Any] = {"body": edit_body, "vetted": True}
        if edit_title:
            changes["title"] = edit_title
        await db.execute(
            update(Article)
            .where(Article.id == article_id)
            .values(**changes)
            .execution_options(synchronize_session=False)
        )

        if first_publication:
            author_points, reason = app_settings.points_initial, ContributionReason.initial_publication
        else:
            author_points, reason = app_settings.points_edit, ContributionReason.approved_edit
        if author_points:
            contributions.append(
                await record_contribution(
                    db, edit_author, SourceType.edit, edit_id, author_points, reason.value
                )
            )
        if app_settings.points_review > 0 and actor_fid != edit_author:
            contributions.append(
                await record_contribution(
                    db,
                    actor_fid,
                    SourceType.review,
                    edit_id,
                    app_settings.points_review,
                    ContributionReason.reviewed_edit.value,
                )
            )
        await db.commit()
    except (SQLAlchemyError, OSError) as exc:
        await db.rollback()
        edit_approvals.labels(outcome="failed").inc()
        log.error(
            "edit_approval_rolled_back",
            slug=slug,
            edit_id=edit_id,
            actor_fid=actor_fid,
            error=str(exc),
        )
        raise Unavailable("Could not apply the edit; nothing was changed") from exc

    await db.refresh(article)
    await db.refresh(edit)
    for contribution in contributions:
        await db.refresh(contribution)

    # Built before the aggregate update: its rollback path expires instances
    response = ApprovalResponse(
        edit=EditResponse.model_validate(edit),
        article=ArticleResponse.model_validate(article),
        approved_by=actor_fid,
        rule=rule.value,
        first_publication=first_publication,
        contributions=[ContributionItem.model_validate(c) for c in contributions],
    )

    edit_approvals.labels(outcome="approved").inc()
    log.info(
        "edit_approved",
        slug=slug,
        edit_id=edit_id,
        actor_fid=actor_fid,
        rule=rule.value,
        first_publication=first_publication,
        contributions=len(contributions),
    )

    await apply_to_aggregate(db, contributions)
    return response


async def like_article(
    db: AsyncSession,
    slug: str,
    fid: str,
    app_settings: Settings,
) -> ReactionResult:
    """Like an article once. A repeat like is a successful no-op.

    A new like bumps like_count and credits the article author, unless the
    author liked their own article.
    """
    article = await _get_article_or_404(db, slug)
    article_id = article.id
    author_fid = article.author_fid

    contributions: list[Contribution] = []
    try:
        db.add(Like(article_id=article_id, user_fid=fid))
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        if not is_unique_violation(exc, LIKES_UNIQUE_CONSTRAINT):
            raise
        log.info("like_duplicate", slug=slug, fid=fid)
        return ReactionResult(slug=slug, created=False, count=await _count(db, Article.like_count, article_id))

    try:
        await db.execute(
            update(Article)
            .where(Article.id == article_id)
            .values(like_count=Article.like_count + 1)
            .execution_options(synchronize_session=False)
        )
        points = app_settings.points_like_received
        if points and author_fid != fid:
            contributions.append(
                await record_contribution(
                    db,
                    author_fid,
                    SourceType.like,
                    article_id,
                    points,
                    ContributionReason.like_received.value,
                )
            )
        await db.commit()
    except (SQLAlchemyError, OSError) as exc:
        await db.rollback()
        log.error("like_failed", slug=slug, fid=fid, error=str(exc))
        raise Unavailable("Could not record the like") from exc

    count = await _count(db, Article.like_count, article_id)
    log.info("article_liked", slug=slug, fid=fid, author_fid=author_fid)
    await apply_to_aggregate(db, contributions)
    return ReactionResult(
        slug=slug,
        created=True,
        count=count,
        credited_fid=author_fid if contributions else None,
    )


async def flag_article(
    db: AsyncSession,
    slug: str,
    fid: str,
    reason: Optional[str] = None,
) -> ReactionResult:
    """Flag an article once. A repeat flag is a successful no-op."""
    article = await _get_article_or_404(db, slug)
    article_id = article.id

    try:
        db.add(Flag(article_id=article_id, user_fid=fid, reason=reason))
        await db.flush()
    except IntegrityError as exc:
        await db.rollback()
        if not is_unique_violation(exc, FLAGS_UNIQUE_CONSTRAINT):
            raise
        log.info("flag_duplicate", slug=slug, fid=fid)
        return ReactionResult(slug=slug, created=False, count=await _count(db, Article.flag_count, article_id))

    try:
        await db.execute(
            update(Article)
            .where(Article.id == article_id)
            .values(flag_count=Article.flag_count + 1)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except (SQLAlchemyError, OSError) as exc:
        await db.rollback()
        log.error("flag_failed", slug=slug, fid=fid, error=str(exc))
        raise Unavailable("Could not record the flag") from exc

    log.info("article_flagged", slug=slug, fid=fid)
    return ReactionResult(slug=slug, created=True, count=await _count(db, Article.flag_count, article_id))


async def list_flagged(db: AsyncSession, limit: int = 50, offset: int = 0) -> tuple[list[Article], int]:
    """Articles with at least one flag, most flagged first."""
    base = select(Article).where(Article.flag_count > 0)
    count_result = await db.execute(select(func.count()).select_from(base.subquery()))
    result = await db.execute(
        base.order_by(Article.flag_count.desc(), Article.id.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all()), count_result.scalar_one()


async def _count(db: AsyncSession, column, article_id: int) -> int:
    result = await db.execute(select(column).where(Article.id == article_id))
    return int(result.scalar_one())
