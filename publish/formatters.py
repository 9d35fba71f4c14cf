"""Platform formatters.

Each formatter is pure and deterministic. When the text exceeds the platform's
max length the summary is shortened (then dropped), then the title, while the
URL and hashtags are kept. A hard cut at max length is the last resort.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Dict, List, Tuple
from zoneinfo import ZoneInfo

from analysis.scoring import GRADE_LABELS, SENTIMENT_EMOJIS, SENTIMENT_LABELS, get_score_grade
from publish.models import PLATFORM_CONFIGS, FormattedContent, NewsContent, Platform

KST = ZoneInfo("Asia/Seoul")
ELLIPSIS = "..."
SEPARATOR = "━━━━━━━━━━"

Builder = Callable[[str, str], str]


def to_local(value: datetime) -> datetime:
    """naive 값은 UTC로 간주하고 KST로 변환."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(KST)


def hashtags_for(ticker: str) -> List[str]:
    return [f"#{ticker}", "#한국주식", "#뉴스"]


def _shorten(text: str, overflow: int) -> str | None:
    keep = len(text) - overflow - len(ELLIPSIS)
    if keep <= 0:
        return None
    return text[:keep].rstrip() + ELLIPSIS


def _fit(build: Builder, title: str, summary: str, max_length: int) -> Tuple[str, bool]:
    text = build(title, summary)
    if len(text) <= max_length:
        return text, False

    if summary:
        shortened = _shorten(summary, len(text) - max_length)
        if shortened is not None:
            text = build(title, shortened)
            if len(text) <= max_length:
                return text, True
        summary = ""
        text = build(title, summary)
        if len(text) <= max_length:
            return text, True

    shortened = _shorten(title, len(text) - max_length)
    if shortened is not None:
        text = build(shortened, summary)
        if len(text) <= max_length:
            return text, True
    return text[:max_length], True


def format_for_telegram(news: NewsContent) -> FormattedContent:
    config = PLATFORM_CONFIGS[Platform.TELEGRAM]
    when = to_local(news.pub_date).strftime("%Y년 %m월 %d일 %H:%M")
    tags = hashtags_for(news.ticker)

    def build(title: str, summary: str) -> str:
        parts = [f"🏢 {news.ticker} 관련 뉴스", f"📰 {title}"]
        if summary:
            parts.append(summary)
        parts += [f"📅 {when}", f"🔗 전체 기사 읽기: {news.url}", " ".join(tags)]
        return "\n\n".join(parts)

    text, truncated = _fit(build, news.title, news.summary, config.max_length)
    return FormattedContent(platform=Platform.TELEGRAM, text=text, hashtags=tags, truncated=truncated)


def format_for_twitter(news: NewsContent) -> FormattedContent:
    config = PLATFORM_CONFIGS[Platform.TWITTER]
    tags = hashtags_for(news.ticker)

    def build(title: str, summary: str) -> str:
        content = f"{title}\n\n{summary}" if summary else title
        return f"{content}\n\n{news.url}\n\n{' '.join(tags)}"

    text, truncated = _fit(build, news.title, news.summary, config.max_length)
    return FormattedContent(platform=Platform.TWITTER, text=text, hashtags=tags, truncated=truncated)


def format_for_threads(news: NewsContent) -> FormattedContent:
    config = PLATFORM_CONFIGS[Platform.THREADS]
    when = to_local(news.pub_date).strftime("%m/%d %H:%M")
    tags = hashtags_for(news.ticker)

    def build(title: str, summary: str) -> str:
        body = f"{title}\n\n{summary}" if summary else title
        return (
            f"📈 {news.ticker} 관련 뉴스\n\n{SEPARATOR}\n\n{body}\n\n{SEPARATOR}\n\n"
            f"📅 {when}\n🔗 {news.url}\n\n{' '.join(tags)}"
        )

    text, truncated = _fit(build, news.title, news.summary, config.max_length)
    return FormattedContent(platform=Platform.THREADS, text=text, hashtags=tags, truncated=truncated)


def format_for_toss(news: NewsContent) -> FormattedContent:
    config = PLATFORM_CONFIGS[Platform.TOSS]
    when = to_local(news.pub_date).strftime("%m.%d %H:%M")

    def build(title: str, summary: str) -> str:
        head = f"[{news.ticker}] {title}"
        if summary:
            head = f"{head}\n\n{summary}"
        return f"{head}\n\n📅 {when}\n🔗 {news.url}"

    text, truncated = _fit(build, news.title, news.summary, config.max_length)
    return FormattedContent(platform=Platform.TOSS, text=text, truncated=truncated)


FORMATTERS: Dict[Platform, Callable[[NewsContent], FormattedContent]] = {
    Platform.TELEGRAM: format_for_telegram,
    Platform.TWITTER: format_for_twitter,
    Platform.THREADS: format_for_threads,
    Platform.TOSS: format_for_toss,
}


def format_news(news: NewsContent, platform: Platform) -> FormattedContent:
    try:
        formatter = FORMATTERS[Platform(platform)]
    except (KeyError, ValueError) as exc:
        raise ValueError(f"Unknown platform: {platform}") from exc
    return formatter(news)


def credibility_emoji(credibility: float) -> str:
    if credibility >= 0.9:
        return "✅"
    if credibility >= 0.7:
        return "☑️"
    return "⚠️"


def format_update(news: NewsContent, platform: Platform) -> FormattedContent:
    """출처 수/신뢰도/등급이 반영된 업데이트 본문."""
    config = PLATFORM_CONFIGS[Platform(platform)]
    sources = f"\n📰 {news.source_count}개 출처에서 보도" if news.source_count > 1 else ""
    score_line = ""
    if news.total_score is not None:
        grade = get_score_grade(news.total_score)
        score_line = f"📊 점수: {news.total_score}점 ({grade}등급 · {GRADE_LABELS[grade]})\n"
    sentiment_value = news.sentiment if news.sentiment is not None else 0
    sentiment = f"{SENTIMENT_EMOJIS.get(sentiment_value, '🟡')} 투자심리: {SENTIMENT_LABELS.get(sentiment_value, '중립')}"
    tags = "#주식 #뉴스 #투자정보" if config.supports_hashtags else ""

    def build(title: str, summary: str) -> str:
        parts = [f"{credibility_emoji(news.credibility)} [업데이트] {title}"]
        body = f"{summary}{sources}".strip("\n")
        if body:
            parts.append(body)
        parts += [f"{score_line}{sentiment}", f"🔗 {news.url}"]
        if tags:
            parts.append(tags)
        return "\n\n".join(parts)

    text, truncated = _fit(build, news.title, news.summary, config.max_length)
    return FormattedContent(platform=config.name, text=text, truncated=truncated)
