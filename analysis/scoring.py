"""뉴스 점수 산출 엔진.

- compute_total_score: 9개 하위 점수 + 감성 → 1~100 종합 점수 (순수 함수)
- ScoringEngine: LLM 응답을 디코딩/검증하고, 실패 시 중립 기본값으로 대체
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from analysis.models.domain import (
    ArticleInput,
    BatchScoreResult,
    FilterResponse,
    FilterResult,
    NewsScore,
    ScoreResponse,
    SubScores,
    round_half_up,
)
from analysis.prompts.templates import (
    build_filter_messages,
    build_score_messages,
    build_summary_messages,
)
from ingestion.utils.logging import get_logger
from llm.client.openai_client import OpenAIClient

logger = get_logger(__name__)

VISIBLE_WEIGHTS: Dict[str, float] = {
    "impact": 0.15,
    "urgency": 0.10,
    "certainty": 0.12,
    "durability": 0.08,
    "attention": 0.08,
    "relevance": 0.07,
}
HIDDEN_WEIGHTS: Dict[str, float] = {
    "sector_impact": 0.10,
    "institutional_interest": 0.12,
    "volatility": 0.08,
}
SENTIMENT_WEIGHT = 0.10

FALLBACK_REASONING = "점수 산출 실패로 기본값 적용"

GRADE_LABELS: Dict[str, str] = {
    "S": "핵심 뉴스",
    "A": "중요 뉴스",
    "B": "일반 뉴스",
    "C": "참고 뉴스",
    "D": "낮은 중요도",
}

SENTIMENT_LABELS: Dict[int, str] = {
    -2: "매우 악재",
    -1: "악재",
    0: "중립",
    1: "호재",
    2: "매우 호재",
}

SENTIMENT_EMOJIS: Dict[int, str] = {
    -2: "🔴",
    -1: "🟠",
    0: "🟡",
    1: "🟢",
    2: "🔵",
}


@dataclass(frozen=True)
class ScoreConfig:
    auto_publish_threshold: int = 80
    grade_thresholds: Tuple[Tuple[str, int], ...] = (("S", 80), ("A", 65), ("B", 50), ("C", 35))
    auto_publish_platforms: Tuple[str, ...] = ("telegram", "twitter", "threads", "toss")


DEFAULT_SCORE_CONFIG = ScoreConfig()


def compute_total_score(scores: SubScores) -> int:
    """가중 합(0~10) × 10 을 반올림하고 1~100으로 보정."""
    visible = sum(getattr(scores, name) * weight for name, weight in VISIBLE_WEIGHTS.items())
    hidden = sum(getattr(scores, name) * weight for name, weight in HIDDEN_WEIGHTS.items())
    sentiment = ((scores.sentiment + 2) / 4) * 10 * SENTIMENT_WEIGHT
    total = round_half_up(round((visible + hidden + sentiment) * 10, 6))
    return max(1, min(100, total))


def should_auto_publish(total_score: int, config: ScoreConfig = DEFAULT_SCORE_CONFIG) -> bool:
    return total_score >= config.auto_publish_threshold


def get_score_grade(total_score: int, config: ScoreConfig = DEFAULT_SCORE_CONFIG) -> str:
    for grade, threshold in config.grade_thresholds:
        if total_score >= threshold:
            return grade
    return "D"


def fallback_score() -> NewsScore:
    scores = SubScores.neutral()
    return NewsScore(
        scores=scores,
        total_score=compute_total_score(scores),
        reasoning=FALLBACK_REASONING,
        is_fallback=True,
    )


def fallback_summary(title: str, description: Optional[str]) -> str:
    if description:
        return description[:150] + "..."
    return title[:100]


def _clean_summary(text: str) -> str:
    cleaned = text.strip().strip("\"'")
    return " ".join(cleaned.split())


@dataclass
class ScoringEngine:
    """LLM 응답으로부터 점수/요약/유용성 판별을 산출한다. 어떤 경우에도 예외를 올리지 않는다."""

    client: OpenAIClient
    config: ScoreConfig = DEFAULT_SCORE_CONFIG
    batch_size: int = 10
    batch_delay_seconds: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def score(self, title: str, description: Optional[str] = None, *, with_summary: bool = False) -> NewsScore:
        try:
            response = self.client.generate(
                build_score_messages(title, description, with_summary=with_summary),
                json_mode=True,
            )
            parsed = ScoreResponse.model_validate(json.loads(response.content))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("score.invalid_response", extra={"title": title[:80], "error": str(exc)[:200]})
            return fallback_score()
        except Exception as exc:
            logger.warning("score.llm_failed", extra={"title": title[:80], "error": str(exc)[:200]})
            return fallback_score()

        return NewsScore(
            scores=parsed.scores,
            total_score=compute_total_score(parsed.scores),
            reasoning=parsed.reasoning,
            summary=parsed.summary if with_summary else None,
            llm_model=response.model,
        )

    def filter(self, title: str, description: Optional[str] = None) -> FilterResult:
        """유용성 판별. 실패 시 보수적으로 '유용하지 않음'."""
        try:
            response = self.client.generate(build_filter_messages(title, description), json_mode=True)
            parsed = FilterResponse.model_validate(json.loads(response.content))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("filter.invalid_response", extra={"title": title[:80], "error": str(exc)[:200]})
            return FilterResult(is_useful=False, confidence=0.5, reasoning="Failed to parse AI response")
        except Exception as exc:
            logger.warning("filter.llm_failed", extra={"title": title[:80], "error": str(exc)[:200]})
            return FilterResult(is_useful=False, confidence=0.5, reasoning=str(exc)[:200] or "Unknown error")
        return FilterResult(
            is_useful=parsed.is_useful,
            confidence=parsed.confidence,
            reasoning=parsed.reasoning,
        )

    def summarize(self, title: str, description: Optional[str] = None) -> str:
        try:
            response = self.client.generate(build_summary_messages(title, description), json_mode=False)
            summary = _clean_summary(response.content)
        except Exception as exc:
            logger.warning("summarize.llm_failed", extra={"title": title[:80], "error": str(exc)[:200]})
            return fallback_summary(title, description)
        if not summary:
            return fallback_summary(title, description)
        return summary

    async def _score_one(self, article: ArticleInput, with_filter: bool = False) -> BatchScoreResult:
        verdict: Optional[FilterResult] = None
        try:
            if with_filter:
                verdict = await asyncio.to_thread(self.filter, article.title, article.description)
            score = await asyncio.to_thread(self.score, article.title, article.description)
        except Exception as exc:
            logger.exception("score.batch_item_failed", extra={"article_id": article.id})
            return BatchScoreResult(article_id=article.id, error=str(exc) or exc.__class__.__name__)
        return BatchScoreResult(article_id=article.id, score=score, usefulness=verdict)

    async def batch_score(
        self,
        articles: Sequence[ArticleInput],
        *,
        with_filter: bool = False,
    ) -> List[BatchScoreResult]:
        """batch_size 단위로 동시 실행하고, 배치 사이에 batch_delay_seconds 대기한다.

        with_filter=True 이면 기사마다 유용성 판별을 먼저 수행해 결과에 담는다.
        """
        size = max(1, int(self.batch_size))
        batches = [list(articles[i : i + size]) for i in range(0, len(articles), size)]
        results: List[BatchScoreResult] = []
        for index, batch in enumerate(batches):
            logger.info(
                "score.batch_start",
                extra={"batch": index + 1, "batches": len(batches), "size": len(batch)},
            )
            results.extend(await asyncio.gather(*(self._score_one(article, with_filter) for article in batch)))
            if index < len(batches) - 1:
                await self.sleep(self.batch_delay_seconds)
        logger.info(
            "score.batch_done",
            extra={
                "scored": sum(1 for r in results if r.score is not None),
                "errors": sum(1 for r in results if r.error is not None),
            },
        )
        return results
