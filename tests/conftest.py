from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from analysis.models.domain import NewsScore, SubScores  # noqa: E402
from analysis.scoring import compute_total_score  # noqa: E402
from ingestion.db.models import Article, ArticleStatus, Base, Score, User  # noqa: E402
from ingestion.db.session import get_engine, get_sessionmaker  # noqa: E402
from ingestion.repositories.articles import NewsRepository  # noqa: E402
from ingestion.settings import reset_settings_cache  # noqa: E402
from llm.settings import reset_analysis_settings_cache  # noqa: E402
from publish.mailer import EmailResult  # noqa: E402
from publish.models import ErrorCode, FormattedContent, Platform, PublishResult  # noqa: E402
from publish.push import PushResult  # noqa: E402
from publish.settings import reset_publish_settings_cache  # noqa: E402

_PUBLISH_ENV = (
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
    "TWITTER_CONSUMER_KEY",
    "TWITTER_CONSUMER_SECRET",
    "TWITTER_ACCESS_TOKEN",
    "TWITTER_ACCESS_TOKEN_SECRET",
    "THREADS_USER_ID",
    "THREADS_ACCESS_TOKEN",
    "TOSS_API_ENDPOINT",
    "TOSS_API_TOKEN",
    "RESEND_API_KEY",
    "FCM_PROJECT_ID",
    "FCM_ACCESS_TOKEN",
    "CRON_SECRET",
)


def _reset_caches() -> None:
    reset_settings_cache()
    reset_analysis_settings_cache()
    reset_publish_settings_cache()


@pytest.fixture(autouse=True)
def _env(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("INGESTION_REDIS_URL", "redis://localhost:6379/0")
    monkeypatch.setenv("POSTGRES_DSN", f"sqlite:///{tmp_path / 'news.db'}")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-123")
    monkeypatch.setenv("ANALYSIS_RETRY_BASE_DELAY_SECONDS", "0")
    for key in _PUBLISH_ENV:
        monkeypatch.delenv(key, raising=False)
    _reset_caches()
    yield
    _reset_caches()


@pytest.fixture()
def session():
    Base.metadata.create_all(bind=get_engine())
    db = get_sessionmaker()()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def repo(session) -> NewsRepository:
    return NewsRepository(session)


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture()
def no_sleep() -> SleepRecorder:
    return SleepRecorder()


def scores_of(value: int, sentiment: int = 0) -> SubScores:
    return SubScores(
        impact=value,
        urgency=value,
        certainty=value,
        durability=value,
        attention=value,
        relevance=value,
        sector_impact=value,
        institutional_interest=value,
        volatility=value,
        sentiment=sentiment,
    )


def make_article(
    repo: NewsRepository,
    *,
    url: str = "https://news.example.com/1",
    title: str = "삼성전자(005930) 4분기 영업이익 6.5조원 기록",
    description: Optional[str] = "삼성전자가 4분기 영업이익 6.5조원을 기록하며 시장 기대치를 웃돌았다.",
    ticker: Optional[str] = "005930",
    pub_date: Optional[datetime] = None,
) -> Article:
    return repo.insert_article(
        url=url,
        title=title,
        description=description,
        ticker=ticker,
        pub_date=pub_date or datetime.now(timezone.utc),
        source="test",
    )


def make_scored_article(
    repo: NewsRepository,
    *,
    url: str = "https://news.example.com/scored",
    title: str = "삼성전자(005930) 4분기 영업이익 6.5조원 기록",
    ticker: Optional[str] = "005930",
    summary: Optional[str] = "삼성전자가 시장 기대치를 웃도는 실적을 발표했다.",
    value: int = 9,
    is_useful: bool = True,
) -> tuple[Article, Score]:
    article = make_article(repo, url=url, title=title, ticker=ticker)
    article.transition(ArticleStatus.ADMITTED)
    subs = scores_of(value)
    score = repo.upsert_score(
        article.id,
        NewsScore(scores=subs, total_score=compute_total_score(subs), summary=summary, llm_model="gpt-4o-mini"),
        is_useful=is_useful,
        confidence=0.9,
    )
    article.transition(ArticleStatus.SCORED)
    repo.session.flush()
    return article, score


def make_user(repo: NewsRepository, *, email: Optional[str] = "investor@example.com", push_token: Optional[str] = None, tickers: Sequence[str] = ("005930",)) -> User:
    user = User(email=email, push_token=push_token)
    repo.session.add(user)
    repo.session.flush()
    for ticker in tickers:
        repo.add_subscription(user.id, ticker)
    return user


class FakePublisher:
    """결정적 결과를 순서대로 돌려주는 발행기. 결과가 소진되면 마지막 결과를 반복한다."""

    def __init__(self, platform: Platform, outcomes: Sequence[Optional[ErrorCode]] = (None,), *, supports_edit: bool = True) -> None:
        self.platform = platform
        self.outcomes = list(outcomes)
        self.supports_edit = supports_edit
        self.published: List[FormattedContent] = []
        self.edited: List[tuple[str, FormattedContent]] = []

    def _next(self) -> PublishResult:
        index = min(len(self.published) + len(self.edited) - 1, len(self.outcomes) - 1)
        code = self.outcomes[index]
        if code is None:
            return PublishResult(platform=self.platform, success=True, message_id=f"{self.platform.value}-msg-{index}")
        return PublishResult(platform=self.platform, success=False, error_code=code, error=f"{code.value} from fake")

    async def publish(self, content: FormattedContent) -> PublishResult:
        self.published.append(content)
        return self._next()

    async def edit(self, message_id: str, content: FormattedContent) -> PublishResult:
        from publish.platforms.base import EditNotSupportedError

        if not self.supports_edit:
            raise EditNotSupportedError(self.platform)
        self.edited.append((message_id, content))
        return self._next()


@dataclass
class FakeEmailSender:
    fail_for: set = field(default_factory=set)
    sent: List[Dict[str, Any]] = field(default_factory=list)

    async def send_email(self, to: str, subject: str, html: str, text: str) -> EmailResult:
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        if to in self.fail_for:
            return EmailResult(success=False, error="provider rejected")
        return EmailResult(success=True, message_id=f"email-{len(self.sent)}")


@dataclass
class FakePushSender:
    sent: List[Dict[str, Any]] = field(default_factory=list)
    fail: bool = False

    async def send_push(self, tokens: Sequence[str], title: str, body: str, data: Optional[Mapping[str, str]] = None) -> PushResult:
        self.sent.append({"tokens": list(tokens), "title": title, "body": body, "data": dict(data or {})})
        if self.fail:
            return PushResult(success_count=0, failure_count=len(tokens), errors=["Token 0: unregistered"])
        return PushResult(success_count=len(tokens), failure_count=0)


def llm_response(content: Any, *, model: str = "gpt-4o-mini") -> Dict[str, Any]:
    text = content if isinstance(content, str) else json.dumps(content, ensure_ascii=False)
    return {
        "choices": [{"message": {"content": text}}],
        "usage": {"prompt_tokens": 120, "completion_tokens": 80},
        "model": model,
    }


def fake_llm_provider(*, score_value: int = 9, sentiment: int = 2, useful: bool = True, summary: str = "요약 문장입니다."):
    """시스템 프롬프트로 요청 종류(판별/요약/점수)를 구분하는 LLM provider."""

    def provider(payload: Dict[str, Any]) -> Dict[str, Any]:
        system = payload["messages"][0]["content"]
        if "필터링" in system:
            return llm_response({"isUseful": useful, "confidence": 0.9, "reasoning": "실적 발표"})
        if "요약 전문가" in system:
            return llm_response(summary)
        keys = ("impact", "urgency", "certainty", "durability", "attention", "relevance", "sectorImpact", "institutionalInterest", "volatility")
        scores: Dict[str, Any] = {key: score_value for key in keys}
        scores["sentiment"] = sentiment
        return llm_response({"summary": summary, "scores": scores, "reasoning": "테스트"})

    return provider
