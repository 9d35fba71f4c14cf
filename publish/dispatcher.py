"""Social dispatcher: format → publish concurrently → aggregate → persist.

Every platform task yields a PublishResult (never an escaped exception), so one
platform's failure never cancels the others. RATE_LIMIT/NETWORK_ERROR results
are retried with exponential backoff up to max_attempts.
"""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from ingestion.db.models import LogStatus, PostStatus, PublishLogEntry, PublishPost
from ingestion.repositories.articles import NewsRepository, NotFoundError
from ingestion.utils.logging import get_logger
from publish.formatters import format_news
from publish.models import (
    ErrorCode,
    FormattedContent,
    NewsContent,
    Platform,
    PublishResult,
    PublishSummary,
)
from publish.platforms.base import EditNotSupportedError, PlatformPublisher

logger = get_logger(__name__)

Formatter = Callable[[NewsContent, Platform], FormattedContent]
Sender = Callable[[Platform, PlatformPublisher, FormattedContent], Awaitable[PublishResult]]


def aggregate_status(success_count: int, failure_count: int) -> PostStatus:
    if success_count + failure_count == 0:
        raise ValueError("집계할 플랫폼 결과가 없습니다.")
    if failure_count == 0:
        return PostStatus.COMPLETED
    if success_count == 0:
        return PostStatus.FAILED
    return PostStatus.PARTIAL_FAILURE


async def _publish_new(platform: Platform, publisher: PlatformPublisher, content: FormattedContent) -> PublishResult:
    return await publisher.publish(content)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SocialDispatcher:
    def __init__(
        self,
        repository: NewsRepository,
        publishers: Mapping[Platform, PlatformPublisher],
        *,
        max_attempts: int = 3,
        base_delay_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._repo = repository
        self._publishers = dict(publishers)
        self._max_attempts = max(1, int(max_attempts))
        self._base_delay = base_delay_seconds
        self._sleep = sleep

    def load_content(self, article_id: uuid.UUID | str) -> NewsContent:
        """발행 가능한 콘텐츠(유용 + 요약 존재)를 조회. 없으면 NotFoundError."""
        article = self._repo.get_article(article_id)
        score = self._repo.get_score(article.id)
        if score is None or not score.is_useful or not (score.summary_text or "").strip():
            raise NotFoundError(f"발행 가능한 요약이 없습니다: {article_id}")
        if not article.ticker:
            raise NotFoundError(f"티커가 없는 기사입니다: {article_id}")
        return NewsContent(
            article_id=article.id,
            ticker=article.ticker,
            title=article.title,
            summary=score.summary_text,
            url=article.url,
            pub_date=article.pub_date,
            source_count=article.source_count,
            credibility=article.credibility,
            total_score=score.total_score,
            sentiment=score.sentiment,
        )

    async def publish(self, article_id: uuid.UUID | str, platforms: Sequence[Platform]) -> PublishSummary:
        targets = list(dict.fromkeys(Platform(p) for p in platforms))
        if not targets:
            raise ValueError("최소 1개 이상의 플랫폼이 필요합니다.")
        content = self.load_content(article_id)
        summary = await self.dispatch(content, targets)
        if summary.success_count > 0:
            self._repo.mark_social_posted(content.article_id)
        return summary

    async def dispatch(
        self,
        content: NewsContent,
        platforms: Sequence[Platform],
        *,
        formatter: Formatter = format_news,
        sender: Sender = _publish_new,
        supersedes_id: Optional[uuid.UUID] = None,
    ) -> PublishSummary:
        post = self._repo.create_publish_post(
            content.article_id,
            [p.value for p in platforms],
            supersedes_id=supersedes_id,
        )
        logger.info(
            "publish.start",
            extra={"post_id": str(post.id), "article_id": str(content.article_id), "platforms": [p.value for p in platforms]},
        )
        try:
            results: List[PublishResult] = list(
                await asyncio.gather(
                    *(self._run_platform(post, platform, content, formatter, sender) for platform in platforms)
                )
            )
        except asyncio.CancelledError:
            self._close_cancelled(post)
            raise
        success_count = sum(1 for r in results if r.success)
        failure_count = len(results) - success_count
        status = aggregate_status(success_count, failure_count)
        self._repo.update_publish_post(post, status, success_count=success_count, failure_count=failure_count)
        logger.info(
            "publish.done",
            extra={
                "post_id": str(post.id),
                "status": status.value,
                "success": success_count,
                "failed": failure_count,
            },
        )
        return PublishSummary(
            post_id=post.id,
            article_id=content.article_id,
            status=status,
            success_count=success_count,
            failure_count=failure_count,
            results=results,
            created_at=post.created_at,
            completed_at=post.completed_at,
        )

    async def _run_platform(
        self,
        post: PublishPost,
        platform: Platform,
        content: NewsContent,
        formatter: Formatter,
        sender: Sender,
    ) -> PublishResult:
        entry = self._repo.append_publish_log(post.id, platform.value, max_retries=self._max_attempts)
        try:
            formatted = formatter(content, platform)
            entry.formatted_content = formatted.text
            publisher = self._publishers.get(platform)
            if publisher is None:
                result = PublishResult(
                    platform=platform,
                    success=False,
                    error_code=ErrorCode.UNKNOWN,
                    error=f"no publisher registered for {platform.value}",
                )
            else:
                result = await self._with_retry(entry, lambda: sender(platform, publisher, formatted))
        except asyncio.CancelledError:
            self._record(
                entry,
                PublishResult(platform=platform, success=False, error_code=ErrorCode.UNKNOWN, error="dispatch cancelled"),
            )
            raise
        except EditNotSupportedError as exc:
            result = PublishResult(
                platform=platform,
                success=False,
                error_code=ErrorCode.INVALID_CONTENT,
                error=str(exc),
            )
        except Exception as exc:
            logger.exception("publish.platform_error", extra={"post_id": str(post.id), "platform": platform.value})
            result = PublishResult(
                platform=platform,
                success=False,
                error_code=ErrorCode.UNKNOWN,
                error=str(exc) or exc.__class__.__name__,
            )
        self._record(entry, result)
        return result

    async def _with_retry(
        self,
        entry: PublishLogEntry,
        attempt_fn: Callable[[], Awaitable[PublishResult]],
    ) -> PublishResult:
        attempt = 1
        while True:
            result = await attempt_fn()
            if not result.retryable or attempt >= self._max_attempts:
                return result.model_copy(update={"attempts": attempt})
            delay = self._base_delay * (2 ** (attempt - 1))
            logger.info(
                "publish.retry",
                extra={
                    "platform": result.platform.value,
                    "attempt": attempt,
                    "error_code": result.error_code.value if result.error_code else None,
                    "delay": delay,
                },
            )
            entry.transition(LogStatus.RETRYING)
            entry.retry_count = attempt
            await self._sleep(delay)
            attempt += 1

    def _close_cancelled(self, post: PublishPost) -> None:
        """취소된 발행: 남은 로그를 실패로 닫고 게시물을 종료 상태로 만든다."""
        logs = self._repo.list_publish_logs(post.id)
        for entry in logs:
            if entry.status not in (LogStatus.SENT, LogStatus.FAILED):
                entry.transition(LogStatus.FAILED)
                entry.error_code = ErrorCode.UNKNOWN.value
                entry.error_message = "dispatch cancelled"
        success_count = sum(1 for entry in logs if entry.status == LogStatus.SENT)
        failure_count = len(logs) - success_count
        if logs:
            status = aggregate_status(success_count, failure_count)
        else:
            status = PostStatus.FAILED
        self._repo.update_publish_post(post, status, success_count=success_count, failure_count=failure_count)
        logger.warning("publish.cancelled", extra={"post_id": str(post.id), "status": status.value})

    def _record(self, entry: PublishLogEntry, result: PublishResult) -> None:
        entry.platform_response = result.raw_response
        entry.message_id = result.message_id
        if result.success:
            entry.transition(LogStatus.SENT)
            entry.sent_at = result.timestamp
        else:
            entry.transition(LogStatus.FAILED)
            entry.error_code = result.error_code.value if result.error_code else ErrorCode.UNKNOWN.value
            entry.error_message = (result.error or "")[:512] or None
            entry.failed_at = result.timestamp
            logger.warning(
                "publish.platform_failed",
                extra={"platform": entry.platform, "error_code": entry.error_code, "error": entry.error_message},
            )
        self._repo.session.flush()

    def get_status(self, post_id: uuid.UUID | str) -> PublishSummary:
        post = self._repo.get_publish_post(post_id)
        results: List[PublishResult] = []
        for log in self._repo.list_publish_logs(post.id):
            results.append(
                PublishResult(
                    platform=Platform(log.platform),
                    success=log.status == LogStatus.SENT,
                    message_id=log.message_id,
                    error_code=ErrorCode(log.error_code) if log.error_code else None,
                    error=log.error_message,
                    raw_response=log.platform_response,
                    attempts=(log.retry_count or 0) + 1,
                    timestamp=log.sent_at or log.failed_at or log.created_at or _now(),
                )
            )
        return PublishSummary(
            post_id=post.id,
            article_id=post.article_id,
            status=post.status,
            success_count=post.success_count,
            failure_count=post.failure_count,
            results=results,
            created_at=post.created_at,
            completed_at=post.completed_at,
        )

    def message_ids(self, post_id: uuid.UUID) -> Dict[Platform, str]:
        """발행 성공한 플랫폼별 메시지 ID."""
        return {
            Platform(log.platform): log.message_id
            for log in self._repo.list_publish_logs(post_id)
            if log.status == LogStatus.SENT and log.message_id
        }
