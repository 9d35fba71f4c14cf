from __future__ import annotations

from datetime import datetime, timezone

from publish.templates import (
    FOOTER_TITLE,
    NewsItem,
    build_digest_email,
    digest_push_payload,
    format_date,
    generate_digest_email,
    generate_multi_ticker_digest_email,
    generate_single_news_email,
    single_push_payload,
)

PUB = datetime(2026, 1, 10, 0, 30, tzinfo=timezone.utc)


def _item(ticker: str = "005930", title: str = "삼성전자 실적 발표", url: str = "https://n/1") -> NewsItem:
    return NewsItem(ticker=ticker, title=title, summary="영업이익이 늘었다.", url=url, pub_date=PUB)


def test_format_date_in_kst():
    assert format_date(PUB) == "2026년 01월 10일 09:30"


def test_single_email():
    template = generate_single_news_email(_item())
    assert template.subject == "[005930] 삼성전자 실적 발표"
    assert "📰 요약:\n영업이익이 늘었다." in template.text
    assert "전체 기사 읽기: https://n/1" in template.text
    assert FOOTER_TITLE in template.html
    assert '<html lang="ko">' in template.html


def test_html_escapes_user_values():
    template = generate_single_news_email(_item(title="<script>alert(1)</script>", url='https://n/?a=1&b="2"'))
    assert "<script>" not in template.html
    assert "&lt;script&gt;" in template.html
    assert "&amp;b=&quot;2&quot;" in template.html
    assert "<script>alert(1)</script>" in template.text


def test_digest_email_numbers_items():
    template = generate_digest_email("005930", [_item(), _item(title="삼성전자 배당", url="https://n/2")])
    assert template.subject == "[005930] 새로운 뉴스 2건"
    assert template.text.startswith("[005930] 새로운 뉴스 2건\n\n1. 삼성전자 실적 발표")
    assert "2. 삼성전자 배당" in template.text


def test_multi_ticker_digest():
    template = generate_multi_ticker_digest_email({"005930": [_item(), _item(url="https://n/2")], "000660": [_item("000660", "SK하이닉스")]})
    assert template.subject == "새로운 주식 뉴스 3건 (2개 종목)"
    assert "[005930] 2건" in template.text
    assert "[000660] 1건" in template.text
    assert "📊 주식 뉴스 다이제스트" in template.html


def test_build_digest_email_picks_layout():
    assert build_digest_email([_item(), _item(url="https://n/2")]).subject == "[005930] 새로운 뉴스 2건"
    assert build_digest_email([_item(), _item("000660")]).subject == "새로운 주식 뉴스 2건 (2개 종목)"


def test_push_payloads():
    single = single_push_payload(_item(), "article-1")
    assert single.title == "[005930] 삼성전자 실적 발표"
    assert single.body == "영업이익이 늘었다."
    assert single.data["type"] == "single"
    assert single.data["articleId"] == "article-1"

    digest = digest_push_payload(4)
    assert digest.title == "📰 새로운 주식 뉴스"
    assert digest.body == "4건의 새로운 뉴스가 도착했습니다."
    assert digest.data == {"type": "digest", "count": "4"}
