"""Celery tasks for the deliver stage: social publishing, post updates, notifications."""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from celery import shared_task

from ingestion.db.models import Base, JobStage
from ingestion.db.session import get_engine, session_scope
from ingestion.repositories.articles import JobRunRecorder, NewsRepository
from ingestion.settings import get_settings
from ingestion.utils.logging import get_logger, trace_context
from publish.dispatcher import SocialDispatcher
from publish.mailer import ResendMailer
from publish.models import Platform, PublishSummary, parse_platforms
from publish.notifier import DispatchResult, EmailSender, NotificationDispatcher, PushSender
from publish.platforms import PlatformPublisher, build_publishers
from publish.post_updater import PostUpdater, PostUpdateResult
from publish.push import FcmPushSender

# Injection points for tests; None means real HTTP clients built from settings.
PUBLISHERS_FACTORY: Callable[[], Mapping[Platform, PlatformPublisher]] | None = None
EMAIL_SENDER_FACTORY: Callable[[], EmailSender] | None = None
PUSH_SENDER_FACTORY: Callable[[], PushSender] | None = None

logger = get_logger(__name__)


def _ensure_schema() -> None:
    engine = get_engine()
    Base.metadata.create_all(bind=engine)


def build_social_dispatcher(repository: NewsRepository) -> SocialDispatcher:
    settings = get_settings()
    publishers = PUBLISHERS_FACTORY() if PUBLISHERS_FACTORY else build_publishers()
    return SocialDispatcher(
        repository,
        publishers,
        max_attempts=settings.publish_max_retries,
        base_delay_seconds=settings.retry_base_delay_seconds,
    )


def build_notification_dispatcher(repository: NewsRepository) -> NotificationDispatcher:
    settings = get_settings()
    email_sender = EMAIL_SENDER_FACTORY() if EMAIL_SENDER_FACTORY else ResendMailer()
    push_sender = PUSH_SENDER_FACTORY() if PUSH_SENDER_FACTORY else FcmPushSender()
    return NotificationDispatcher(
        repository,
        email_sender,
        push_sender,
        batch_size=settings.notify_batch_size,
        batch_delay_seconds=settings.notify_batch_delay_seconds,
        article_limit=settings.notify_article_limit,
    )


def publish_article_core(article_id: str, platforms: Sequence[str]) -> PublishSummary:
    """수동 선택 기사 발행. 요약이 없으면 NotFoundError."""
    _ensure_schema()
    targets = parse_platforms(list(platforms))
    with session_scope() as session:
        dispatcher = build_social_dispatcher(NewsRepository(session))
        return asyncio.run(dispatcher.publish(article_id, targets))


def publish_status_core(post_id: str) -> PublishSummary:
    _ensure_schema()
    with session_scope() as session:
        return build_social_dispatcher(NewsRepository(session)).get_status(post_id)


def send_notifications_core(since_minutes: Optional[int] = None, batch_size: Optional[int] = None) -> DispatchResult:
    _ensure_schema()
    settings = get_settings()
    trace_id = str(uuid.uuid4())
    window = since_minutes or settings.notify_since_minutes
    with session_scope() as session, JobRunRecorder(
        session, stage=JobStage.NOTIFY, task_name="send_notifications", trace_id=trace_id
    ), trace_context(trace_id):
        logger.info("notify.start", extra={"trace_id": trace_id, "since_minutes": window})
        dispatcher = build_notification_dispatcher(NewsRepository(session))
        result = asyncio.run(dispatcher.dispatch(since_minutes=window, batch_size=batch_size))
        session.commit()
        return result


def send_immediate_core(article_id: str) -> DispatchResult:
    _ensure_schema()
    with session_scope() as session:
        dispatcher = build_notification_dispatcher(NewsRepository(session))
        return asyncio.run(dispatcher.send_immediate(article_id))


def update_outdated_posts_core(limit: int = 50) -> PostUpdateResult:
    _ensure_schema()
    trace_id = str(uuid.uuid4())
    with session_scope() as session, JobRunRecorder(
        session, stage=JobStage.UPDATE, task_name="update_outdated_posts", trace_id=trace_id
    ), trace_context(trace_id):
        repository = NewsRepository(session)
        updater = PostUpdater(repository, build_social_dispatcher(repository))
        result = asyncio.run(updater.update_outdated_posts(limit=limit))
        session.commit()
        logger.info(
            "post_update.done",
            extra={"trace_id": trace_id, "updated": result.updated, "failed": result.failed},
        )
        return result


def _dispatch_payload(result: DispatchResult) -> Dict[str, Any]:
    return {
        "total_users": result.total_users,
        "emails_sent": result.emails_sent,
        "emails_failed": result.emails_failed,
        "push_sent": result.push_sent,
        "push_failed": result.push_failed,
        "errors": list(result.errors),
    }


@shared_task(
    name="ingestion.tasks.deliver.publish_article",
    queue="deliver.publish",
)
def publish_article(article_id: str, platforms: List[str]) -> Dict[str, Any]:  # pragma: no cover - thin wrapper
    return publish_article_core(article_id, platforms).model_dump(mode="json")


@shared_task(
    name="ingestion.tasks.deliver.send_notifications",
    queue="deliver.notify",
)
def send_notifications(since_minutes: Optional[int] = None) -> Dict[str, Any]:  # pragma: no cover - thin wrapper
    return _dispatch_payload(send_notifications_core(since_minutes))


@shared_task(
    name="ingestion.tasks.deliver.update_outdated_posts",
    queue="deliver.publish",
)
def update_outdated_posts(limit: int = 50) -> Dict[str, Any]:  # pragma: no cover - thin wrapper
    result = update_outdated_posts_core(limit)
    return {"updated": result.updated, "failed": result.failed, "errors": list(result.errors)}
