"""Create news pipeline tables"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "20260301_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "news_articles",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("url_hash", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("pub_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ticker", sa.String(length=16), nullable=True),
        sa.Column("source", sa.String(length=100), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("source_count", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("source_urls", sa.JSON(), nullable=False),
        sa.Column("credibility", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("merged_into_id", sa.Uuid(), sa.ForeignKey("news_articles.id"), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("url", name="uq_news_articles_url"),
        sa.UniqueConstraint("url_hash", name="uq_news_articles_url_hash"),
    )
    op.create_index("ix_news_articles_ticker_pub_date", "news_articles", ["ticker", "pub_date"], unique=False)
    op.create_index("ix_news_articles_status", "news_articles", ["status"], unique=False)

    op.create_table(
        "news_scores",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("article_id", sa.Uuid(), sa.ForeignKey("news_articles.id"), nullable=False),
        sa.Column("impact", sa.Integer(), nullable=False),
        sa.Column("urgency", sa.Integer(), nullable=False),
        sa.Column("certainty", sa.Integer(), nullable=False),
        sa.Column("durability", sa.Integer(), nullable=False),
        sa.Column("attention", sa.Integer(), nullable=False),
        sa.Column("relevance", sa.Integer(), nullable=False),
        sa.Column("sector_impact", sa.Integer(), nullable=False),
        sa.Column("institutional_interest", sa.Integer(), nullable=False),
        sa.Column("volatility", sa.Integer(), nullable=False),
        sa.Column("sentiment", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_score", sa.Integer(), nullable=False),
        sa.Column("reasoning", sa.Text(), nullable=True),
        sa.Column("is_fallback", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_useful", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("summary_text", sa.Text(), nullable=True),
        sa.Column("auto_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("social_posted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("social_posted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("social_post_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("llm_model", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("article_id", name="uq_news_scores_article"),
    )
    op.create_index("ix_news_scores_total", "news_scores", ["total_score"], unique=False)

    op.create_table(
        "social_media_posts",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("article_id", sa.Uuid(), sa.ForeignKey("news_articles.id"), nullable=False),
        sa.Column("platforms", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("needs_update", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("supersedes_id", sa.Uuid(), sa.ForeignKey("social_media_posts.id"), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_social_media_posts_article", "social_media_posts", ["article_id"], unique=False)
    op.create_index("ix_social_media_posts_needs_update", "social_media_posts", ["needs_update"], unique=False)

    op.create_table(
        "social_media_logs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("post_id", sa.Uuid(), sa.ForeignKey("social_media_posts.id"), nullable=False),
        sa.Column("platform", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("formatted_content", sa.Text(), nullable=True),
        sa.Column("platform_response", sa.JSON(), nullable=True),
        sa.Column("message_id", sa.String(length=128), nullable=True),
        sa.Column("error_code", sa.String(length=32), nullable=True),
        sa.Column("error_message", sa.String(length=512), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_retries", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("post_id", "platform", name="uq_social_media_logs_post_platform"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("push_token", sa.String(length=512), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("ticker", sa.String(length=16), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "ticker", name="uq_subscriptions_user_ticker"),
    )
    op.create_index("ix_subscriptions_ticker", "subscriptions", ["ticker"], unique=False)

    op.create_table(
        "notification_logs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("article_id", sa.Uuid(), sa.ForeignKey("news_articles.id"), nullable=False),
        sa.Column("channel", sa.String(length=8), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.String(length=512), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "article_id", "channel", name="uq_notification_logs_triple"),
    )

    op.create_table(
        "job_runs",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("stage", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("task_name", sa.String(length=100), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_code", sa.String(length=64), nullable=True),
        sa.Column("error_message", sa.String(length=512), nullable=True),
        sa.Column("trace_id", sa.String(length=64), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_job_runs_stage_status", "job_runs", ["stage", "status"], unique=False)
    op.create_index("ix_job_runs_trace", "job_runs", ["trace_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_job_runs_trace", table_name="job_runs")
    op.drop_index("ix_job_runs_stage_status", table_name="job_runs")
    op.drop_table("job_runs")
    op.drop_table("notification_logs")
    op.drop_index("ix_subscriptions_ticker", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("users")
    op.drop_table("social_media_logs")
    op.drop_index("ix_social_media_posts_needs_update", table_name="social_media_posts")
    op.drop_index("ix_social_media_posts_article", table_name="social_media_posts")
    op.drop_table("social_media_posts")
    op.drop_index("ix_news_scores_total", table_name="news_scores")
    op.drop_table("news_scores")
    op.drop_index("ix_news_articles_status", table_name="news_articles")
    op.drop_index("ix_news_articles_ticker_pub_date", table_name="news_articles")
    op.drop_table("news_articles")
