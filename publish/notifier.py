"""Subscriber notification fan-out (email + push).

Each (user, article, channel) triple is logged once; triples already logged as
sent are skipped on later runs, failed ones are retried on the next run.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from analysis.scoring import fallback_summary
from ingestion.db.models import Article, NotificationChannel, NotificationStatus, Score, User
from ingestion.repositories.articles import NewsRepository, NotFoundError
from ingestion.utils.logging import get_logger
from publish.mailer import EmailResult
from publish.push import PushResult
from publish.templates import (
    NewsItem,
    build_digest_email,
    digest_push_payload,
    generate_single_news_email,
    single_push_payload,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]
Notifiable = Tuple[Article, Score]


class EmailSender(Protocol):
    async def send_email(self, to: str, subject: str, html: str, text: str) -> EmailResult: ...


class PushSender(Protocol):
    async def send_push(
        self,
        tokens: Sequence[str],
        title: str,
        body: str,
        data: Optional[Mapping[str, str]] = None,
    ) -> PushResult: ...


@dataclass
class DispatchResult:
    total_users: int = 0
    emails_sent: int = 0
    emails_failed: int = 0
    push_sent: int = 0
    push_failed: int = 0
    errors: List[str] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_news_item(article: Article, score: Score) -> NewsItem:
    summary = (score.summary_text or "").strip() or fallback_summary(article.title, article.description)
    return NewsItem(
        ticker=article.ticker or "",
        title=article.title,
        summary=summary,
        url=article.url,
        pub_date=article.pub_date,
    )


class NotificationDispatcher:
    def __init__(
        self,
        repository: NewsRepository,
        email_sender: EmailSender,
        push_sender: PushSender,
        *,
        batch_size: int = 50,
        batch_delay_seconds: float = 0.1,
        article_limit: int = 50,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Clock = _utcnow,
    ) -> None:
        self._repo = repository
        self._email = email_sender
        self._push = push_sender
        self._batch_size = max(1, batch_size)
        self._batch_delay = batch_delay_seconds
        self._article_limit = max(1, article_limit)
        self._sleep = sleep
        self._clock = clock

    async def dispatch(self, since_minutes: int = 30, batch_size: Optional[int] = None) -> DispatchResult:
        """since_minutes 이내 점수화된 기사 중 오래된 순으로 최대 batch_size건을 알린다."""
        since = self._clock() - timedelta(minutes=since_minutes)
        rows = self._repo.list_notifiable(since, limit=batch_size or self._article_limit)
        result = DispatchResult()
        if not rows:
            logger.info("notify.nothing_to_send", extra={"since_minutes": since_minutes})
            return result

        by_ticker: Dict[str, List[Notifiable]] = {}
        for article, score in rows:
            by_ticker.setdefault(article.ticker or "", []).append((article, score))
        subscribers = self._repo.list_subscribers_by_tickers(by_ticker)
        result.total_users = len(subscribers)

        targets: List[Tuple[User, List[Notifiable]]] = []
        for user, tickers in subscribers.values():
            items = [row for ticker in sorted(tickers) for row in by_ticker.get(ticker, [])]
            if items:
                targets.append((user, items))

        await self._run_batches(targets, result)
        logger.info(
            "notify.dispatch_done",
            extra={
                "articles": len(rows),
                "users": result.total_users,
                "emails_sent": result.emails_sent,
                "emails_failed": result.emails_failed,
                "push_sent": result.push_sent,
                "push_failed": result.push_failed,
                "errors": len(result.errors),
            },
        )
        return result

    async def send_immediate(self, article_id: uuid.UUID | str) -> DispatchResult:
        """시간 창과 무관하게 단일 기사를 해당 종목 구독자에게 즉시 발송."""
        article = self._repo.get_article(article_id)
        score = self._repo.get_score(article.id)
        if score is None or not score.is_useful:
            raise NotFoundError(f"알림 가능한 점수가 없습니다: {article_id}")
        if not article.ticker:
            raise NotFoundError(f"티커가 없는 기사입니다: {article_id}")

        subscribers = self._repo.list_subscribers_by_tickers([article.ticker])
        result = DispatchResult(total_users=len(subscribers))
        targets = [(user, [(article, score)]) for user, _ in subscribers.values()]
        await self._run_batches(targets, result)
        return result

    async def _run_batches(self, targets: Sequence[Tuple[User, List[Notifiable]]], result: DispatchResult) -> None:
        for start in range(0, len(targets), self._batch_size):
            if start > 0:
                await self._sleep(self._batch_delay)
            batch = targets[start : start + self._batch_size]
            await asyncio.gather(*(self._notify_user(user, items, result) for user, items in batch))

    async def _notify_user(self, user: User, items: List[Notifiable], result: DispatchResult) -> None:
        # 채널별로 독립 처리: 이메일 실패가 푸시를 막지 않는다
        if user.email:
            try:
                await self._send_email(user, items, result)
            except Exception as exc:
                logger.exception("notify.email_error", extra={"user_id": str(user.id)})
                result.emails_failed += 1
                result.errors.append(f"email {user.email}: {exc}")
        if user.push_token:
            try:
                await self._send_push(user, items, result)
            except Exception as exc:
                logger.exception("notify.push_error", extra={"user_id": str(user.id)})
                result.push_failed += 1
                result.errors.append(f"push {user.id}: {exc}")

    def _pending(self, user: User, items: List[Notifiable], channel: NotificationChannel) -> List[Notifiable]:
        sent = self._repo.sent_notification_articles(user.id, [a.id for a, _ in items], channel)
        return [(a, s) for a, s in items if a.id not in sent]

    def _log(
        self,
        user: User,
        items: List[Notifiable],
        channel: NotificationChannel,
        ok: bool,
        error: Optional[str],
    ) -> None:
        status = NotificationStatus.SENT if ok else NotificationStatus.FAILED
        for article, _ in items:
            self._repo.append_notification_log(user.id, article.id, channel, status, error_message=error)

    async def _send_email(self, user: User, items: List[Notifiable], result: DispatchResult) -> None:
        pending = self._pending(user, items, NotificationChannel.EMAIL)
        if not pending:
            return
        news = [to_news_item(a, s) for a, s in pending]
        template = generate_single_news_email(news[0]) if len(news) == 1 else build_digest_email(news)
        sent = await self._email.send_email(user.email or "", template.subject, template.html, template.text)
        self._log(user, pending, NotificationChannel.EMAIL, sent.success, sent.error)
        if sent.success:
            result.emails_sent += 1
        else:
            result.emails_failed += 1
            result.errors.append(f"email {user.email}: {sent.error or 'unknown error'}")

    async def _send_push(self, user: User, items: List[Notifiable], result: DispatchResult) -> None:
        pending = self._pending(user, items, NotificationChannel.PUSH)
        if not pending:
            return
        if len(pending) == 1:
            article, score = pending[0]
            payload = single_push_payload(to_news_item(article, score), str(article.id))
        else:
            payload = digest_push_payload(len(pending))
        outcome = await self._push.send_push([user.push_token or ""], payload.title, payload.body, payload.data)
        ok = outcome.failure_count == 0
        error = "; ".join(outcome.errors) if outcome.errors else None
        self._log(user, pending, NotificationChannel.PUSH, ok, error)
        if ok:
            result.push_sent += 1
        else:
            result.push_failed += 1
            result.errors.append(f"push {user.id}: {error or 'unknown error'}")
