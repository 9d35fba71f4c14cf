"""Repositories for articles, scores, publish posts, subscriptions and job runs."""

from __future__ import annotations

import hashlib
import uuid
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from analysis.models.domain import NewsScore
from ingestion.db.models import (
    Article,
    ArticleStatus,
    JobRun,
    JobStage,
    JobStatus,
    LogStatus,
    NotificationChannel,
    NotificationLogEntry,
    NotificationStatus,
    PostStatus,
    PublishLogEntry,
    PublishPost,
    Score,
    Subscription,
    User,
)
from ingestion.utils.ticker import check_subscription_limit, validate_ticker

DEDUP_CANDIDATE_STATUSES = (ArticleStatus.ADMITTED, ArticleStatus.SCORED)
UPDATABLE_POST_STATUSES = (PostStatus.COMPLETED, PostStatus.PARTIAL_FAILURE)


class NotFoundError(LookupError):
    """요청한 레코드가 없거나 사용할 수 없음."""


class SubscriptionLimitError(ValueError):
    """사용자 구독 한도 초과."""


def url_hash(url: str) -> str:
    return hashlib.sha256(url.strip().encode("utf-8")).hexdigest()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_uuid(value: uuid.UUID | str) -> uuid.UUID:
    return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


class NewsRepository:
    """Session 위에서 동작하는 좁은 저장소 연산 모음. 커밋은 호출자 몫."""

    def __init__(self, session: Session) -> None:
        self.session = session

    # --- articles -------------------------------------------------------

    def insert_article(
        self,
        *,
        url: str,
        title: str,
        pub_date: datetime,
        description: str | None = None,
        ticker: str | None = None,
        source: str | None = None,
    ) -> Article:
        article = Article(
            url=url.strip(),
            url_hash=url_hash(url),
            title=title.strip(),
            description=description,
            pub_date=pub_date,
            ticker=ticker,
            source=source,
            status=ArticleStatus.PENDING,
            source_count=1,
            source_urls=[url.strip()],
            credibility=0.5,
        )
        self.session.add(article)
        self.session.flush()
        return article

    def get_article(self, article_id: uuid.UUID | str) -> Article:
        article = self.session.get(Article, _as_uuid(article_id))
        if article is None:
            raise NotFoundError(f"기사를 찾을 수 없습니다: {article_id}")
        return article

    def find_article_by_url(self, url: str) -> Optional[Article]:
        return self.session.scalar(select(Article).where(Article.url_hash == url_hash(url)))

    def existing_url_hashes(self, hashes: Iterable[str]) -> Set[str]:
        stmt = select(Article.url_hash).where(Article.url_hash.in_(list(hashes)))
        return {row[0] for row in self.session.execute(stmt)}

    def list_pending_articles(self, limit: int = 50) -> List[Article]:
        stmt = (
            select(Article)
            .where(Article.status == ArticleStatus.PENDING)
            .order_by(Article.pub_date.asc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def list_admitted_unscored(self, limit: int = 50) -> List[Article]:
        stmt = (
            select(Article)
            .where(Article.status == ArticleStatus.ADMITTED)
            .order_by(Article.pub_date.asc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    def find_recent_by_ticker(
        self,
        ticker: str,
        since: datetime,
        *,
        exclude_id: uuid.UUID | None = None,
    ) -> List[Article]:
        stmt = select(Article).where(
            Article.ticker == ticker,
            Article.pub_date >= since,
            Article.status.in_(DEDUP_CANDIDATE_STATUSES),
        )
        if exclude_id is not None:
            stmt = stmt.where(Article.id != exclude_id)
        return list(self.session.scalars(stmt.order_by(Article.pub_date.desc())))

    def mark_posts_needing_update(self, article_id: uuid.UUID) -> int:
        posts = self.session.scalars(
            select(PublishPost).where(
                PublishPost.article_id == article_id,
                PublishPost.status.in_(UPDATABLE_POST_STATUSES),
                PublishPost.supersedes_id.is_(None),
                PublishPost.needs_update.is_(False),
            )
        )
        count = 0
        for post in posts:
            post.needs_update = True
            count += 1
        self.session.flush()
        return count

    # --- scores ---------------------------------------------------------

    def get_score(self, article_id: uuid.UUID | str) -> Optional[Score]:
        return self.session.scalar(select(Score).where(Score.article_id == _as_uuid(article_id)))

    def upsert_score(
        self,
        article_id: uuid.UUID,
        result: NewsScore,
        *,
        is_useful: bool = True,
        confidence: float | None = None,
    ) -> Score:
        row = self.get_score(article_id)
        if row is None:
            row = Score(article_id=article_id)
            self.session.add(row)
        for name, value in result.scores.model_dump().items():
            setattr(row, name, value)
        row.total_score = result.total_score
        row.reasoning = result.reasoning
        row.is_fallback = result.is_fallback
        row.is_useful = is_useful
        row.confidence = confidence
        row.llm_model = result.llm_model
        if result.summary:
            row.summary_text = result.summary
        self.session.flush()
        return row

    def set_summary(self, article_id: uuid.UUID, summary: str) -> Score:
        row = self.get_score(article_id)
        if row is None:
            raise NotFoundError(f"점수가 없는 기사입니다: {article_id}")
        row.summary_text = summary
        self.session.flush()
        return row

    def mark_auto_published(self, article_id: uuid.UUID, at: datetime | None = None) -> None:
        row = self.get_score(article_id)
        if row is None:
            raise NotFoundError(f"점수가 없는 기사입니다: {article_id}")
        row.auto_published = True
        row.auto_published_at = at or _now()
        self.session.flush()

    def mark_social_posted(self, article_id: uuid.UUID, at: datetime | None = None) -> Score:
        """social_post_count는 증가만 한다."""
        row = self.get_score(article_id)
        if row is None:
            raise NotFoundError(f"점수가 없는 기사입니다: {article_id}")
        row.social_posted = True
        row.social_posted_at = at or _now()
        row.social_post_count = (row.social_post_count or 0) + 1
        self.session.flush()
        return row

    def list_notifiable(self, since: datetime, limit: Optional[int] = None) -> List[Tuple[Article, Score]]:
        """since 이후 점수가 매겨진 유용한 기사 (티커 있는 것만), 오래된 순."""
        stmt = (
            select(Article, Score)
            .join(Score, Score.article_id == Article.id)
            .where(
                Score.is_useful.is_(True),
                Score.created_at >= since,
                Article.ticker.is_not(None),
                Article.status == ArticleStatus.SCORED,
            )
            .order_by(Score.created_at.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [(article, score) for article, score in self.session.execute(stmt)]

    # --- publish posts --------------------------------------------------

    def create_publish_post(
        self,
        article_id: uuid.UUID,
        platforms: Sequence[str],
        *,
        supersedes_id: uuid.UUID | None = None,
    ) -> PublishPost:
        post = PublishPost(
            article_id=article_id,
            platforms=list(platforms),
            status=PostStatus.PROCESSING,
            supersedes_id=supersedes_id,
        )
        self.session.add(post)
        self.session.flush()
        return post

    def get_publish_post(self, post_id: uuid.UUID | str) -> PublishPost:
        post = self.session.get(PublishPost, _as_uuid(post_id))
        if post is None:
            raise NotFoundError(f"게시물을 찾을 수 없습니다: {post_id}")
        return post

    def append_publish_log(
        self,
        post_id: uuid.UUID,
        platform: str,
        *,
        formatted_content: str | None = None,
        max_retries: int = 3,
    ) -> PublishLogEntry:
        entry = PublishLogEntry(
            post_id=post_id,
            platform=platform,
            status=LogStatus.PENDING,
            formatted_content=formatted_content,
            max_retries=max_retries,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    def update_publish_post(
        self,
        post: PublishPost,
        status: PostStatus,
        *,
        success_count: int,
        failure_count: int,
    ) -> PublishPost:
        post.transition(status)
        post.success_count = success_count
        post.failure_count = failure_count
        post.completed_at = _now()
        self.session.flush()
        return post

    def list_publish_logs(self, post_id: uuid.UUID) -> List[PublishLogEntry]:
        stmt = select(PublishLogEntry).where(PublishLogEntry.post_id == post_id).order_by(PublishLogEntry.platform)
        return list(self.session.scalars(stmt))

    def list_posts_needing_update(self, limit: int = 20) -> List[PublishPost]:
        stmt = (
            select(PublishPost)
            .where(PublishPost.needs_update.is_(True))
            .order_by(PublishPost.created_at.asc())
            .limit(limit)
        )
        return list(self.session.scalars(stmt))

    # --- subscribers / notifications -----------------------------------

    def add_subscription(self, user_id: uuid.UUID, ticker: str, *, limit: int = 5) -> Subscription:
        if not validate_ticker(ticker):
            raise ValueError(f"유효하지 않은 종목 코드입니다: {ticker}")
        tickers = list(self.session.scalars(select(Subscription.ticker).where(Subscription.user_id == user_id)))
        if ticker in tickers:
            return self.session.scalars(
                select(Subscription).where(Subscription.user_id == user_id, Subscription.ticker == ticker)
            ).one()
        quota = check_subscription_limit(tickers, limit)
        if not quota.allowed:
            raise SubscriptionLimitError(f"최대 {quota.limit}개 종목까지 구독할 수 있습니다.")
        sub = Subscription(user_id=user_id, ticker=ticker)
        self.session.add(sub)
        self.session.flush()
        return sub

    def list_subscribers_by_tickers(self, tickers: Iterable[str]) -> Dict[uuid.UUID, Tuple[User, Set[str]]]:
        """구독자 → (User, 구독 중인 대상 티커 집합)."""
        wanted = sorted(set(tickers))
        if not wanted:
            return {}
        stmt = (
            select(User, Subscription.ticker)
            .join(Subscription, Subscription.user_id == User.id)
            .where(Subscription.ticker.in_(wanted))
        )
        result: Dict[uuid.UUID, Tuple[User, Set[str]]] = {}
        for user, ticker in self.session.execute(stmt):
            entry = result.setdefault(user.id, (user, set()))
            entry[1].add(ticker)
        return result

    def sent_notification_articles(
        self,
        user_id: uuid.UUID,
        article_ids: Iterable[uuid.UUID],
        channel: NotificationChannel,
    ) -> Set[uuid.UUID]:
        stmt = select(NotificationLogEntry.article_id).where(
            NotificationLogEntry.user_id == user_id,
            NotificationLogEntry.article_id.in_(list(article_ids)),
            NotificationLogEntry.channel == channel,
            NotificationLogEntry.status == NotificationStatus.SENT,
        )
        return {row[0] for row in self.session.execute(stmt)}

    def append_notification_log(
        self,
        user_id: uuid.UUID,
        article_id: uuid.UUID,
        channel: NotificationChannel,
        status: NotificationStatus,
        *,
        error_message: str | None = None,
    ) -> NotificationLogEntry:
        """(user, article, channel) 당 1행. 이미 sent인 행은 덮어쓰지 않는다."""
        entry = self.session.scalar(
            select(NotificationLogEntry).where(
                NotificationLogEntry.user_id == user_id,
                NotificationLogEntry.article_id == article_id,
                NotificationLogEntry.channel == channel,
            )
        )
        if entry is None:
            entry = NotificationLogEntry(
                user_id=user_id,
                article_id=article_id,
                channel=channel,
                attempts=0,
            )
            self.session.add(entry)
        elif entry.status == NotificationStatus.SENT:
            return entry
        entry.status = status
        entry.attempts = (entry.attempts or 0) + 1
        entry.error_message = error_message[:512] if error_message else None
        if status == NotificationStatus.SENT:
            entry.sent_at = _now()
        self.session.flush()
        return entry


class JobRunRecorder:
    """Context manager to record job run lifecycle."""

    def __init__(
        self,
        session: Session,
        *,
        stage: JobStage,
        task_name: str,
        trace_id: str | None = None,
    ) -> None:
        self._session = session
        self._job = JobRun(
            stage=stage,
            status=JobStatus.RUNNING,
            task_name=task_name,
            trace_id=trace_id,
            started_at=_now(),
        )

    def __enter__(self) -> JobRun:
        self._session.add(self._job)
        # RUNNING 상태를 먼저 커밋해 이후 작업이 실패해도 기록이 남도록 한다
        self._session.commit()
        return self._job

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        if exc is None:
            self._job.status = JobStatus.SUCCEEDED
        else:
            self._session.rollback()
            self._job.status = JobStatus.FAILED
            self._job.error_code = exc_type.__name__[:64] if exc_type else None
            self._job.error_message = str(exc)[:512]
        self._job.finished_at = _now()
        self._session.add(self._job)
        self._session.commit()
