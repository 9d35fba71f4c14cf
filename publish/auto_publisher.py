"""Auto-publish high-score articles to every platform."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from analysis.scoring import DEFAULT_SCORE_CONFIG, ScoreConfig, should_auto_publish
from ingestion.repositories.articles import NewsRepository
from ingestion.utils.logging import get_logger
from publish.dispatcher import SocialDispatcher
from publish.models import Platform, PublishSummary

logger = get_logger(__name__)


@dataclass(frozen=True)
class AutoPublishResult:
    should_publish: bool
    attempted: bool
    summary: Optional[PublishSummary] = None
    error: Optional[str] = None


class AutoPublisher:
    """점수가 기준 이상이면 요약을 보장한 뒤 전체 플랫폼에 발행한다. 예외를 올리지 않는다."""

    def __init__(
        self,
        repository: NewsRepository,
        dispatcher: SocialDispatcher,
        *,
        ensure_summary: Callable[[uuid.UUID], str],
        config: ScoreConfig = DEFAULT_SCORE_CONFIG,
    ) -> None:
        self._repo = repository
        self._dispatcher = dispatcher
        self._ensure_summary = ensure_summary
        self._config = config

    async def run(self, article_id: uuid.UUID, total_score: int) -> AutoPublishResult:
        if not should_auto_publish(total_score, self._config):
            return AutoPublishResult(should_publish=False, attempted=False)

        platforms = [Platform(p) for p in self._config.auto_publish_platforms]
        try:
            self._ensure_summary(article_id)
            summary = await self._dispatcher.publish(article_id, platforms)
        except Exception as exc:
            logger.warning(
                "auto_publish.failed",
                extra={"article_id": str(article_id), "score": total_score, "error": str(exc)[:200]},
            )
            return AutoPublishResult(should_publish=True, attempted=True, error=str(exc) or exc.__class__.__name__)

        if summary.success_count > 0:
            self._repo.mark_auto_published(article_id)
        logger.info(
            "auto_publish.done",
            extra={"article_id": str(article_id), "score": total_score, "status": summary.status.value},
        )
        return AutoPublishResult(should_publish=True, attempted=True, summary=summary)
