"""Celery tasks for the scoring/summary stage."""

from __future__ import annotations

import uuid
from typing import Callable, Optional

from celery import shared_task

from analysis.scoring import ScoreConfig, ScoringEngine
from ingestion.db.models import Base
from ingestion.db.session import get_engine, session_scope
from ingestion.repositories.articles import NewsRepository, NotFoundError
from ingestion.settings import get_settings
from ingestion.utils.logging import get_logger
from llm.client.openai_client import OpenAIClient, ProviderFn

# Provider factory injection point for tests (returns provider fn or None for real OpenAI)
PROVIDER_FACTORY: Callable[[], Optional[ProviderFn]] | None = None

logger = get_logger(__name__)


def _ensure_schema() -> None:
    engine = get_engine()
    Base.metadata.create_all(bind=engine)


def score_config() -> ScoreConfig:
    settings = get_settings()
    return ScoreConfig(auto_publish_threshold=settings.auto_publish_threshold)


def build_scoring_engine() -> ScoringEngine:
    settings = get_settings()
    provider = PROVIDER_FACTORY() if PROVIDER_FACTORY else None
    return ScoringEngine(
        client=OpenAIClient.from_env(provider=provider),
        config=score_config(),
        batch_size=settings.scoring_batch_size,
        batch_delay_seconds=settings.scoring_batch_delay_seconds,
    )


def ensure_summary(repository: NewsRepository, engine: ScoringEngine, article_id: uuid.UUID | str) -> str:
    """저장된 요약을 돌려주고, 없으면 생성해 저장한다. 점수가 없으면 NotFoundError."""
    article = repository.get_article(article_id)
    score = repository.get_score(article.id)
    if score is None:
        raise NotFoundError(f"점수가 없는 기사입니다: {article_id}")
    if (score.summary_text or "").strip():
        return score.summary_text
    summary = engine.summarize(article.title, article.description)
    repository.set_summary(article.id, summary)
    logger.info("summary.generated", extra={"article_id": str(article.id), "chars": len(summary)})
    return summary


def generate_summary_core(article_id: str) -> str:
    _ensure_schema()
    engine = build_scoring_engine()
    with session_scope() as session:
        return ensure_summary(NewsRepository(session), engine, article_id)


@shared_task(
    name="analysis.tasks.analyze.generate_summary",
    queue="analysis.summary",
)
def generate_summary(article_id: str) -> str:  # pragma: no cover - thin wrapper
    return generate_summary_core(article_id)
