"""SQLAlchemy models for the news pipeline."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Mapping

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import Uuid


class Base(DeclarativeBase):
    """Base class for ORM models."""


class TimestampMixin:
    """Adds created_at/updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class InvalidTransitionError(ValueError):
    """허용되지 않은 상태 전이."""


class JobStage(str, Enum):
    PROCESS = "process"
    PUBLISH = "publish"
    NOTIFY = "notify"
    UPDATE = "update"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRY = "retry"


class ArticleStatus(str, Enum):
    PENDING = "pending"
    ADMITTED = "admitted"
    MERGED = "merged"
    SCORED = "scored"
    DISCARDED = "discarded"


class PostStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"


class LogStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    RETRYING = "retrying"


class NotificationChannel(str, Enum):
    EMAIL = "email"
    PUSH = "push"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


ARTICLE_TRANSITIONS: Mapping[ArticleStatus, frozenset[ArticleStatus]] = {
    ArticleStatus.PENDING: frozenset({ArticleStatus.ADMITTED, ArticleStatus.MERGED}),
    ArticleStatus.ADMITTED: frozenset({ArticleStatus.SCORED, ArticleStatus.DISCARDED}),
    ArticleStatus.MERGED: frozenset(),
    ArticleStatus.SCORED: frozenset(),
    ArticleStatus.DISCARDED: frozenset(),
}

POST_TRANSITIONS: Mapping[PostStatus, frozenset[PostStatus]] = {
    PostStatus.PROCESSING: frozenset({PostStatus.COMPLETED, PostStatus.PARTIAL_FAILURE, PostStatus.FAILED}),
    PostStatus.COMPLETED: frozenset(),
    PostStatus.PARTIAL_FAILURE: frozenset(),
    PostStatus.FAILED: frozenset(),
}

LOG_TRANSITIONS: Mapping[LogStatus, frozenset[LogStatus]] = {
    LogStatus.PENDING: frozenset({LogStatus.SENT, LogStatus.FAILED, LogStatus.RETRYING}),
    LogStatus.RETRYING: frozenset({LogStatus.SENT, LogStatus.FAILED, LogStatus.RETRYING}),
    LogStatus.SENT: frozenset(),
    LogStatus.FAILED: frozenset(),
}


def _check_transition(table: Mapping, current: Enum, target: Enum) -> None:
    if target not in table[current]:
        raise InvalidTransitionError(f"{current.value} → {target.value} 전이는 허용되지 않습니다.")


class Article(TimestampMixin, Base):
    """수집된 뉴스 기사. 삭제하지 않는다."""

    __tablename__ = "news_articles"
    __table_args__ = (
        UniqueConstraint("url", name="uq_news_articles_url"),
        UniqueConstraint("url_hash", name="uq_news_articles_url_hash"),
        Index("ix_news_articles_ticker_pub_date", "ticker", "pub_date"),
        Index("ix_news_articles_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    url_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    pub_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    ticker: Mapped[str | None] = mapped_column(String(16))
    source: Mapped[str | None] = mapped_column(String(100))
    status: Mapped[ArticleStatus] = mapped_column(
        SAEnum(ArticleStatus, name="article_status", native_enum=False, length=16),
        nullable=False,
        default=ArticleStatus.PENDING,
    )
    source_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source_urls: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    credibility: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    merged_into_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("news_articles.id")
    )

    def transition(self, target: ArticleStatus) -> None:
        _check_transition(ARTICLE_TRANSITIONS, self.status, target)
        self.status = target


class Score(TimestampMixin, Base):
    """기사별 점수 (1:1). total_score는 compute_total_score 결과만 기록한다."""

    __tablename__ = "news_scores"
    __table_args__ = (
        UniqueConstraint("article_id", name="uq_news_scores_article"),
        Index("ix_news_scores_total", "total_score"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    article_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("news_articles.id"), nullable=False
    )
    impact: Mapped[int] = mapped_column(Integer, nullable=False)
    urgency: Mapped[int] = mapped_column(Integer, nullable=False)
    certainty: Mapped[int] = mapped_column(Integer, nullable=False)
    durability: Mapped[int] = mapped_column(Integer, nullable=False)
    attention: Mapped[int] = mapped_column(Integer, nullable=False)
    relevance: Mapped[int] = mapped_column(Integer, nullable=False)
    sector_impact: Mapped[int] = mapped_column(Integer, nullable=False)
    institutional_interest: Mapped[int] = mapped_column(Integer, nullable=False)
    volatility: Mapped[int] = mapped_column(Integer, nullable=False)
    sentiment: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False)
    reasoning: Mapped[str | None] = mapped_column(Text)
    is_fallback: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_useful: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    confidence: Mapped[float | None] = mapped_column(Float)
    summary_text: Mapped[str | None] = mapped_column(Text)
    auto_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    social_posted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    social_posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    social_post_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    llm_model: Mapped[str | None] = mapped_column(String(64))


class PublishPost(TimestampMixin, Base):
    """기사 1건에 대한 소셜 발행 시도."""

    __tablename__ = "social_media_posts"
    __table_args__ = (
        Index("ix_social_media_posts_article", "article_id"),
        Index("ix_social_media_posts_needs_update", "needs_update"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    article_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("news_articles.id"), nullable=False
    )
    platforms: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    status: Mapped[PostStatus] = mapped_column(
        SAEnum(PostStatus, name="post_status", native_enum=False, length=20),
        nullable=False,
        default=PostStatus.PROCESSING,
    )
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    needs_update: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    supersedes_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("social_media_posts.id")
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def transition(self, target: PostStatus) -> None:
        _check_transition(POST_TRANSITIONS, self.status, target)
        self.status = target


class PublishLogEntry(TimestampMixin, Base):
    """(post, platform) 단위 발행 기록."""

    __tablename__ = "social_media_logs"
    __table_args__ = (
        UniqueConstraint("post_id", "platform", name="uq_social_media_logs_post_platform"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    post_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("social_media_posts.id"), nullable=False
    )
    platform: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[LogStatus] = mapped_column(
        SAEnum(LogStatus, name="log_status", native_enum=False, length=16),
        nullable=False,
        default=LogStatus.PENDING,
    )
    formatted_content: Mapped[str | None] = mapped_column(Text)
    platform_response: Mapped[dict | None] = mapped_column(JSON)
    message_id: Mapped[str | None] = mapped_column(String(128))
    error_code: Mapped[str | None] = mapped_column(String(32))
    error_message: Mapped[str | None] = mapped_column(String(512))
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    def transition(self, target: LogStatus) -> None:
        _check_transition(LOG_TRANSITIONS, self.status, target)
        self.status = target


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str | None] = mapped_column(String(320))
    push_token: Mapped[str | None] = mapped_column(String(512))


class Subscription(TimestampMixin, Base):
    __tablename__ = "subscriptions"
    __table_args__ = (
        UniqueConstraint("user_id", "ticker", name="uq_subscriptions_user_ticker"),
        Index("ix_subscriptions_ticker", "ticker"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    ticker: Mapped[str] = mapped_column(String(16), nullable=False)


class NotificationLogEntry(TimestampMixin, Base):
    """(user, article, channel) 단위 알림 기록."""

    __tablename__ = "notification_logs"
    __table_args__ = (
        UniqueConstraint("user_id", "article_id", "channel", name="uq_notification_logs_triple"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    article_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("news_articles.id"), nullable=False
    )
    channel: Mapped[NotificationChannel] = mapped_column(
        SAEnum(NotificationChannel, name="notification_channel", native_enum=False, length=8),
        nullable=False,
    )
    status: Mapped[NotificationStatus] = mapped_column(
        SAEnum(NotificationStatus, name="notification_status", native_enum=False, length=16),
        nullable=False,
        default=NotificationStatus.PENDING,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(String(512))
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class JobRun(TimestampMixin, Base):
    """Represents a single job execution."""

    __tablename__ = "job_runs"
    __table_args__ = (
        Index("ix_job_runs_stage_status", "stage", "status"),
        Index("ix_job_runs_trace", "trace_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    stage: Mapped[JobStage] = mapped_column(
        SAEnum(JobStage, name="job_stage", native_enum=False, length=16),
        nullable=False,
    )
    status: Mapped[JobStatus] = mapped_column(
        SAEnum(JobStatus, name="job_status", native_enum=False, length=16),
        nullable=False,
        default=JobStatus.PENDING,
    )
    task_name: Mapped[str | None] = mapped_column(String(100))
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_code: Mapped[str | None] = mapped_column(String(64))
    error_message: Mapped[str | None] = mapped_column(String(512))
    trace_id: Mapped[str | None] = mapped_column(String(64))
