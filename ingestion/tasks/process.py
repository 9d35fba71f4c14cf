"""Celery tasks for the processing stage: admission, dedup, scoring, auto-publish."""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import redis as redislib
from celery import shared_task

from analysis.models.domain import ArticleInput
from analysis.scoring import ScoringEngine, should_auto_publish
from analysis.tasks.analyze import build_scoring_engine, ensure_summary, score_config
from ingestion.db.models import Article, ArticleStatus, Base, JobStage
from ingestion.db.session import get_engine, session_scope
from ingestion.repositories.articles import JobRunRecorder, NewsRepository, url_hash
from ingestion.services.deduplicator import DeduplicationService, InMemoryKeyStore, KeyStore, RedisKeyStore
from ingestion.settings import get_settings
from ingestion.tasks.deliver import build_social_dispatcher
from ingestion.utils.logging import get_logger, trace_context
from ingestion.utils.ticker import extract_ticker_from_article
from publish.auto_publisher import AutoPublisher

# KeyStore factory is kept pluggable for tests.
KEYSTORE_FACTORY: Callable[[], KeyStore] | None = None

logger = get_logger(__name__)


@dataclass
class ProcessSummary:
    admitted: int = 0
    merged: int = 0
    scored: int = 0
    discarded: int = 0
    score_errors: int = 0
    auto_published: int = 0
    errors: List[str] = field(default_factory=list)


def _ensure_schema() -> None:
    # For local runs/tests, ensure schema exists (idempotent)
    engine = get_engine()
    Base.metadata.create_all(bind=engine)


def _build_keystore() -> KeyStore:
    if KEYSTORE_FACTORY is not None:
        return KEYSTORE_FACTORY()
    settings = get_settings()
    client = redislib.Redis.from_url(settings.redis_url, socket_connect_timeout=0.2)
    try:
        client.ping()
    except redislib.RedisError:
        logger.info("dedupe.keystore.memory", extra={"reason": "redis_ping_failed"})
        return InMemoryKeyStore()
    logger.info("dedupe.keystore.redis", extra={"redis_url": settings.redis_url})
    return RedisKeyStore(client, default_ttl_seconds=int(settings.dedup_redis_ttl_seconds))


def ingest_article(
    repository: NewsRepository,
    keystore: KeyStore,
    *,
    url: str,
    title: str,
    pub_date: datetime,
    description: Optional[str] = None,
    ticker: Optional[str] = None,
    source: Optional[str] = None,
) -> Optional[Article]:
    """URL 기준 정확 중복을 걸러낸 뒤 pending 상태로 저장한다. 이미 있으면 None."""
    key = url_hash(url)
    if keystore.has(key) or repository.existing_url_hashes([key]):
        keystore.add(key)
        logger.info("ingest.duplicate_url", extra={"url": url})
        return None
    resolved = ticker or extract_ticker_from_article(title, description)
    article = repository.insert_article(
        url=url,
        title=title,
        pub_date=pub_date,
        description=description,
        ticker=resolved,
        source=source,
    )
    keystore.add(key)
    logger.info("ingest.saved", extra={"article_id": str(article.id), "ticker": resolved})
    return article


def deduplicate_pending(repository: NewsRepository, service: DeduplicationService, limit: int, summary: ProcessSummary) -> None:
    for article in repository.list_pending_articles(limit):
        if not article.ticker:
            article.ticker = extract_ticker_from_article(article.title, article.description)
        outcome = service.process(article)
        if outcome.merged:
            summary.merged += 1
        else:
            summary.admitted += 1
    repository.session.flush()


async def score_admitted(
    repository: NewsRepository,
    engine: ScoringEngine,
    limit: int,
    summary: ProcessSummary,
) -> List[Article]:
    """승인된 기사를 배치로 점수화하고, 자동 발행 후보(유용 + 기준 이상)를 돌려준다."""
    articles = {str(a.id): a for a in repository.list_admitted_unscored(limit)}
    if not articles:
        return []
    inputs = [ArticleInput(id=key, title=a.title, description=a.description) for key, a in articles.items()]
    results = await engine.batch_score(inputs, with_filter=True)

    candidates: List[Article] = []
    for result in results:
        article = articles[result.article_id]
        if result.score is None:
            summary.score_errors += 1
            summary.errors.append(f"{result.article_id}: {result.error}")
            continue
        verdict = result.usefulness
        is_useful = bool(verdict and verdict.is_useful)
        repository.upsert_score(
            article.id,
            result.score,
            is_useful=is_useful,
            confidence=verdict.confidence if verdict else 0.5,
        )
        if is_useful:
            article.transition(ArticleStatus.SCORED)
            summary.scored += 1
            if should_auto_publish(result.score.total_score, engine.config):
                candidates.append(article)
        else:
            article.transition(ArticleStatus.DISCARDED)
            summary.discarded += 1
    repository.session.flush()
    return candidates


async def _process(repository: NewsRepository, limit: int) -> ProcessSummary:
    settings = get_settings()
    summary = ProcessSummary()
    deduplicate_pending(
        repository,
        DeduplicationService(repository, window_days=settings.dedup_window_days),
        limit,
        summary,
    )
    engine = build_scoring_engine()
    candidates = await score_admitted(repository, engine, limit, summary)
    repository.session.commit()

    if candidates:
        publisher = AutoPublisher(
            repository,
            build_social_dispatcher(repository),
            ensure_summary=lambda article_id: ensure_summary(repository, engine, article_id),
            config=score_config(),
        )
        for article in candidates:
            score = repository.get_score(article.id)
            outcome = await publisher.run(article.id, score.total_score if score else 0)
            if outcome.summary is not None and outcome.summary.success_count > 0:
                summary.auto_published += 1
            if outcome.error:
                summary.errors.append(f"{article.id}: {outcome.error}")
            repository.session.commit()
    return summary


def process_articles_core(limit: Optional[int] = None) -> ProcessSummary:
    """Core logic for one processing run; test-friendly."""
    _ensure_schema()
    settings = get_settings()
    trace_id = str(uuid.uuid4())
    batch_limit = limit or settings.process_batch_limit
    with session_scope() as session, JobRunRecorder(
        session, stage=JobStage.PROCESS, task_name="process_articles", trace_id=trace_id
    ), trace_context(trace_id):
        logger.info("process.start", extra={"trace_id": trace_id, "limit": batch_limit})
        summary = asyncio.run(_process(NewsRepository(session), batch_limit))
        logger.info("process.done", extra={"trace_id": trace_id, **asdict(summary), "errors": len(summary.errors)})
        return summary


def ingest_core(items: List[Dict[str, Any]]) -> int:
    """외부 수집기가 전달한 기사 목록을 저장하고 저장 건수를 돌려준다."""
    _ensure_schema()
    keystore = _build_keystore()
    saved = 0
    with session_scope() as session:
        repository = NewsRepository(session)
        for item in items:
            pub_date = item["pub_date"]
            if isinstance(pub_date, str):
                pub_date = datetime.fromisoformat(pub_date)
            article = ingest_article(
                repository,
                keystore,
                url=item["url"],
                title=item["title"],
                pub_date=pub_date,
                description=item.get("description"),
                ticker=item.get("ticker"),
                source=item.get("source"),
            )
            if article is not None:
                saved += 1
    return saved


@shared_task(name="ingestion.tasks.process.ingest_articles", queue="ingestion.ingest")
def ingest_articles(items: List[Dict[str, Any]]) -> int:  # pragma: no cover - thin wrapper
    return ingest_core(items)


@shared_task(name="ingestion.tasks.process.process_articles", queue="ingestion.process")
def process_articles(limit: Optional[int] = None) -> Dict[str, Any]:  # pragma: no cover - thin wrapper
    return asdict(process_articles_core(limit))
