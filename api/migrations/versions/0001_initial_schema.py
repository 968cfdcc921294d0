"""Initial schema: articles, edits, accounts, points ledger, likes, flags

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-18 00:00:00.000000

Written by hand so constraint names match the ones the application matches
on when it detects duplicate likes and flags.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

from alembic import op

revision: str = "3f1a9c2e7b10"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps(*names: str) -> list[sa.Column]:
    return [
        sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))
        for name in names
    ]


def upgrade() -> None:
    op.create_table(
        "articles",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("slug", sa.String(120), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("author_fid", sa.String(32), nullable=False),
        sa.Column("metadata", JSONB(), nullable=True),
        sa.Column("published", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("vetted", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("neynar_score", sa.Float(), nullable=True),
        sa.Column("like_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("flag_count", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps("created_at", "updated_at"),
    )
    op.create_index("ix_articles_slug", "articles", ["slug"], unique=True)
    op.create_index("ix_articles_author_fid", "articles", ["author_fid"])
    op.create_index("ix_articles_published_created_at", "articles", ["published", "created_at"])

    op.create_table(
        "article_edits",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "article_id",
            sa.BigInteger(),
            sa.ForeignKey("articles.id", name="fk_article_edits_article_id_articles"),
            nullable=False,
        ),
        sa.Column("author_fid", sa.String(32), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("approved", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("reviewer_fid", sa.String(32), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps("created_at"),
    )
    op.create_index("ix_article_edits_article_id", "article_edits", ["article_id"])
    op.create_index("ix_article_edits_author_fid", "article_edits", ["author_fid"])

    op.create_table(
        "accounts",
        sa.Column("fid", sa.String(32), primary_key=True),
        sa.Column("username", sa.String(100), nullable=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("pfp_url", sa.String(1024), nullable=True),
        sa.Column("custody_address", sa.String(64), nullable=True),
        sa.Column("verified_addresses", JSONB(), nullable=True),
        sa.Column("follower_count", sa.Integer(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("is_reviewer", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps("created_at", "updated_at"),
    )

    op.create_table(
        "contributions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("fid", sa.String(32), nullable=False),
        sa.Column("source_type", sa.String(20), nullable=False),
        sa.Column("source_id", sa.BigInteger(), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(50), nullable=False),
        *_timestamps("created_at"),
    )
    op.create_index("ix_contributions_fid", "contributions", ["fid"])
    op.create_index("ix_contributions_source", "contributions", ["source_type", "source_id"])

    op.create_table(
        "user_points",
        sa.Column("fid", sa.String(32), primary_key=True),
        sa.Column("total_points", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps("last_updated"),
    )

    op.create_table(
        "likes",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("article_id", sa.BigInteger(), sa.ForeignKey("articles.id"), nullable=False),
        sa.Column("user_fid", sa.String(32), nullable=False),
        *_timestamps("created_at"),
        sa.UniqueConstraint("article_id", "user_fid", name="uq_likes_article_id_user_fid"),
    )
    op.create_index("ix_likes_article_id", "likes", ["article_id"])

    op.create_table(
        "flags",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("article_id", sa.BigInteger(), sa.ForeignKey("articles.id"), nullable=False),
        sa.Column("user_fid", sa.String(32), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        *_timestamps("created_at"),
        sa.UniqueConstraint("article_id", "user_fid", name="uq_flags_article_id_user_fid"),
    )
    op.create_index("ix_flags_article_id", "flags", ["article_id"])


def downgrade() -> None:
    op.drop_index("ix_flags_article_id", table_name="flags")
    op.drop_table("flags")
    op.drop_index("ix_likes_article_id", table_name="likes")
    op.drop_table("likes")
    op.drop_table("user_points")
    op.drop_index("ix_contributions_source", table_name="contributions")
    op.drop_index("ix_contributions_fid", table_name="contributions")
    op.drop_table("contributions")
    op.drop_table("accounts")
    op.drop_index("ix_article_edits_author_fid", table_name="article_edits")
    op.drop_index("ix_article_edits_article_id", table_name="article_edits")
    op.drop_table("article_edits")
    op.drop_index("ix_articles_published_created_at", table_name="articles")
    op.drop_index("ix_articles_author_fid", table_name="articles")
    op.drop_index("ix_articles_slug", table_name="articles")
    op.drop_table("articles")
