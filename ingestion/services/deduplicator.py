"""Deduplication: exact URL keystore and near-duplicate merge service."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol, Sequence, TypeVar

from ingestion.db.models import Article, ArticleStatus
from ingestion.repositories.articles import NewsRepository
from ingestion.services.similarity import DUPLICATE_THRESHOLD, NewsText, news_similarity
from ingestion.utils.logging import get_logger

logger = get_logger(__name__)


class KeyStore(Protocol):
    def has(self, key: str) -> bool: ...  # noqa: D401
    def add(self, key: str, ttl_seconds: int | None = None) -> None: ...  # noqa: D401


class InMemoryKeyStore:
    """Simple in-memory keystore for tests/local runs."""

    def __init__(self) -> None:
        self._set: set[str] = set()

    def has(self, key: str) -> bool:  # pragma: no cover - trivial
        return key in self._set

    def add(self, key: str, ttl_seconds: int | None = None) -> None:  # pragma: no cover - trivial
        self._set.add(key)


class _RedisLikeClient(Protocol):
    def exists(self, name: str) -> int: ...  # returns 1 if exists, else 0
    def set(self, name: str, value: str, *, ex: int | None = None, nx: bool | None = None) -> bool | None: ...


class RedisKeyStore:
    """Redis 기반 URL 해시 KeyStore.

    - 존재 확인: `EXISTS key` → 정수(0/1)
    - 추가: `SET key value NX EX <ttl>` → 키가 없을 때만 설정
    """

    def __init__(self, client: _RedisLikeClient, *, prefix: str = "news:url", default_ttl_seconds: int | None = None) -> None:
        self._client = client
        self._prefix = prefix
        self._default_ttl = default_ttl_seconds

    def _format(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def has(self, key: str) -> bool:
        return bool(self._client.exists(self._format(key)))

    def add(self, key: str, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        self._client.set(self._format(key), "1", ex=ttl, nx=True)


def calculate_credibility(source_count: int) -> float:
    """출처 수 → 신뢰도. 1: 0.5, 2: 0.7, 3: 0.85, 4 이상: 0.95."""
    if source_count >= 4:
        return 0.95
    if source_count == 3:
        return 0.85
    if source_count == 2:
        return 0.7
    return 0.5


T = TypeVar("T", bound=NewsText)


def find_duplicate(
    item: NewsText,
    candidates: Sequence[T],
    *,
    threshold: float = DUPLICATE_THRESHOLD,
) -> Optional[T]:
    """임계값 이상인 후보 중 가장 유사한 것을 반환. 없으면 None."""
    best: Optional[T] = None
    best_score = threshold
    for candidate in candidates:
        if candidate is item:
            continue
        score = news_similarity(item, candidate)
        if score >= best_score and (best is None or score > best_score):
            best, best_score = candidate, score
    return best


@dataclass(frozen=True)
class DedupOutcome:
    article: Article
    merged_into: Optional[Article] = None
    posts_flagged: int = 0

    @property
    def merged(self) -> bool:
        return self.merged_into is not None


class DeduplicationService:
    """새 기사를 최근 같은 티커 기사와 비교해 병합(merge) 또는 승인(admit)한다."""

    def __init__(
        self,
        repository: NewsRepository,
        *,
        window_days: int = 7,
        threshold: float = DUPLICATE_THRESHOLD,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repo = repository
        self._window = timedelta(days=window_days)
        self._threshold = threshold
        self._clock = clock

    def find_existing_duplicate(self, article: Article) -> Optional[Article]:
        if not article.ticker:
            return None
        since = self._clock() - self._window
        candidates = self._repo.find_recent_by_ticker(article.ticker, since, exclude_id=article.id)
        return find_duplicate(article, candidates, threshold=self._threshold)

    def merge(self, article: Article, existing: Article) -> int:
        existing.source_count = (existing.source_count or 1) + 1
        urls = list(existing.source_urls or [])
        if article.url not in urls:
            urls.append(article.url)
        existing.source_urls = urls
        existing.credibility = calculate_credibility(existing.source_count)
        article.merged_into_id = existing.id
        article.transition(ArticleStatus.MERGED)
        return self._repo.mark_posts_needing_update(existing.id)

    def process(self, article: Article) -> DedupOutcome:
        if article.status != ArticleStatus.PENDING:
            return DedupOutcome(article=article)
        existing = self.find_existing_duplicate(article)
        if existing is None:
            article.transition(ArticleStatus.ADMITTED)
            self._repo.session.flush()
            logger.info("dedup.admitted", extra={"article_id": str(article.id), "ticker": article.ticker})
            return DedupOutcome(article=article)

        flagged = self.merge(article, existing)
        self._repo.session.flush()
        logger.info(
            "dedup.merged",
            extra={
                "article_id": str(article.id),
                "merged_into": str(existing.id),
                "ticker": article.ticker,
                "source_count": existing.source_count,
                "credibility": existing.credibility,
                "posts_flagged": flagged,
            },
        )
        return DedupOutcome(article=article, merged_into=existing, posts_flagged=flagged)
