from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from publish.formatters import (
    credibility_emoji,
    format_for_telegram,
    format_for_threads,
    format_for_toss,
    format_for_twitter,
    format_news,
    format_update,
    to_local,
)
from publish.models import PLATFORM_CONFIGS, NewsContent, Platform

URL = "https://news.example.com/samsung-q4"


def _news(**overrides) -> NewsContent:
    data = dict(
        article_id=uuid.uuid4(),
        ticker="005930",
        title="삼성전자 4분기 영업이익 6.5조원",
        summary="삼성전자가 4분기 영업이익 6.5조원을 기록하며 시장 기대치를 웃돌았다.",
        url=URL,
        pub_date=datetime(2026, 1, 10, 0, 30, tzinfo=timezone.utc),
        source_count=1,
        credibility=0.5,
        total_score=91,
        sentiment=2,
    )
    data.update(overrides)
    return NewsContent(**data)


def test_to_local_treats_naive_as_utc():
    assert to_local(datetime(2026, 1, 10, 0, 30)).hour == 9
    assert to_local(datetime(2026, 1, 10, 0, 30, tzinfo=timezone.utc)).strftime("%H:%M") == "09:30"


def test_telegram_layout():
    result = format_for_telegram(_news())
    assert result.text.startswith("🏢 005930 관련 뉴스\n\n📰 삼성전자 4분기 영업이익 6.5조원")
    assert "📅 2026년 01월 10일 09:30" in result.text
    assert f"🔗 전체 기사 읽기: {URL}" in result.text
    assert result.text.endswith("#005930 #한국주식 #뉴스")
    assert result.hashtags == ["#005930", "#한국주식", "#뉴스"]
    assert result.truncated is False


def test_twitter_layout():
    text = format_for_twitter(_news()).text
    assert text == (
        "삼성전자 4분기 영업이익 6.5조원\n\n"
        "삼성전자가 4분기 영업이익 6.5조원을 기록하며 시장 기대치를 웃돌았다.\n\n"
        f"{URL}\n\n#005930 #한국주식 #뉴스"
    )


def test_threads_and_toss_layout():
    threads = format_for_threads(_news()).text
    assert threads.startswith("📈 005930 관련 뉴스")
    assert "📅 01/10 09:30" in threads

    toss = format_for_toss(_news())
    assert toss.text.startswith("[005930] 삼성전자 4분기 영업이익 6.5조원")
    assert "📅 01.10 09:30" in toss.text
    assert toss.hashtags == []
    assert "#" not in toss.text


def test_long_summary_is_shortened_before_title():
    result = format_for_twitter(_news(summary="실적 " * 200))
    assert len(result.text) <= 280
    assert result.truncated is True
    assert result.text.startswith("삼성전자 4분기 영업이익 6.5조원\n\n실적")
    assert URL in result.text
    assert result.text.endswith("#뉴스")


def test_huge_title_still_fits_twitter():
    result = format_for_twitter(_news(title="가" * 10_000, summary="요약 " * 100))
    assert len(result.text) <= 280
    assert URL in result.text
    assert "..." in result.text


@pytest.mark.parametrize("platform", list(Platform))
def test_every_platform_respects_max_length(platform):
    news = _news(title="긴 제목 " * 500, summary="긴 요약 " * 2000)
    for formatted in (format_news(news, platform), format_update(news, platform)):
        assert len(formatted.text) <= PLATFORM_CONFIGS[platform].max_length
        assert formatted.platform == platform


def test_format_news_rejects_unknown_platform():
    with pytest.raises(ValueError):
        format_news(_news(), "myspace")  # type: ignore[arg-type]


def test_formatting_is_deterministic():
    news = _news()
    assert format_news(news, Platform.THREADS) == format_news(news, Platform.THREADS)


def test_update_text_reflects_sources_and_score():
    text = format_update(_news(source_count=3, credibility=0.85), Platform.TELEGRAM).text
    assert text.startswith("☑️ [업데이트] 삼성전자")
    assert "📰 3개 출처에서 보도" in text
    assert "📊 점수: 91점 (S등급 · 핵심 뉴스)" in text
    assert "🔵 투자심리: 매우 호재" in text
    assert "#주식 #뉴스 #투자정보" in text

    toss = format_update(_news(), Platform.TOSS).text
    assert "출처에서 보도" not in toss
    assert "#" not in toss


def test_update_text_uses_grade_and_sentiment_labels():
    text = format_update(_news(total_score=40, sentiment=-1), Platform.TELEGRAM).text
    assert "📊 점수: 40점 (C등급 · 참고 뉴스)" in text
    assert "🟠 투자심리: 악재" in text


def test_credibility_emoji():
    assert credibility_emoji(0.95) == "✅"
    assert credibility_emoji(0.7) == "☑️"
    assert credibility_emoji(0.5) == "⚠️"
