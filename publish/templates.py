"""Email/push templates for subscriber notifications.

All user-provided values are HTML-escaped in the html part; the text part is
kept plain.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from html import escape
from typing import Dict, List, Mapping, Sequence

from publish.formatters import to_local

FOOTER_TITLE = "주식 뉴스 요약 서비스"
SINGLE_FOOTER = "이 알림은 구독하신 종목에 대한 새로운 뉴스가 있을 때 전송됩니다."
DIGEST_FOOTER = "이 다이제스트는 구독하신 종목의 새로운 뉴스를 모아서 전송됩니다."
MULTI_DIGEST_FOOTER = "이 다이제스트는 구독하신 모든 종목의 새로운 뉴스를 모아서 전송됩니다."
DIGEST_PUSH_TITLE = "📰 새로운 주식 뉴스"

_BODY_STYLE = (
    "font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; "
    "line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;"
)
_CARD_STYLE = "background-color: white; border: 1px solid #e0e0e0; border-radius: 8px; padding: 16px; margin-bottom: 16px;"
_LINK_STYLE = "color: #0066cc; text-decoration: none; font-weight: 500;"


@dataclass(frozen=True)
class NewsItem:
    ticker: str
    title: str
    summary: str
    url: str
    pub_date: datetime


@dataclass(frozen=True)
class EmailTemplate:
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class PushPayload:
    title: str
    body: str
    data: Dict[str, str]


def format_date(value: datetime) -> str:
    return to_local(value).strftime("%Y년 %m월 %d일 %H:%M")


def _page(subject: str, body: str, footer: str) -> str:
    return (
        '<!DOCTYPE html>\n<html lang="ko">\n<head>\n<meta charset="UTF-8">\n'
        f"<title>{escape(subject)}</title>\n</head>\n"
        f'<body style="{_BODY_STYLE}">\n{body}\n'
        '<div style="border-top: 1px solid #e0e0e0; padding-top: 16px; margin-top: 24px; '
        'text-align: center; color: #999; font-size: 12px;">\n'
        f'<p style="margin: 0 0 8px 0;">{FOOTER_TITLE}</p>\n'
        f'<p style="margin: 0;">{footer}</p>\n</div>\n</body>\n</html>'
    )


def _item_html(news: NewsItem, *, heading: str = "h3") -> str:
    return (
        f'<div style="{_CARD_STYLE}">\n'
        f"<{heading} style=\"margin: 0 0 8px 0; color: #1a1a1a;\">{escape(news.title)}</{heading}>\n"
        f'<p style="color: #666; font-size: 13px; margin: 0 0 12px 0;">{format_date(news.pub_date)}</p>\n'
        f'<p style="margin: 0 0 12px 0; font-size: 14px; color: #444;">{escape(news.summary)}</p>\n'
        f'<a href="{escape(news.url, quote=True)}" style="{_LINK_STYLE}">전체 기사 읽기 →</a>\n'
        "</div>"
    )


def generate_single_news_email(news: NewsItem) -> EmailTemplate:
    subject = f"[{news.ticker}] {news.title}"
    body = (
        '<div style="background-color: #f8f9fa; border-radius: 8px; padding: 20px; margin-bottom: 20px;">\n'
        '<div style="background-color: #0066cc; color: white; display: inline-block; padding: 4px 12px; '
        f'border-radius: 4px; font-weight: bold;">{escape(news.ticker)}</div>\n'
        f'<h2 style="margin: 12px 0; color: #1a1a1a;">{escape(news.title)}</h2>\n'
        f'<p style="color: #666; font-size: 14px; margin: 0;">{format_date(news.pub_date)}</p>\n'
        "</div>\n"
        f'<div style="{_CARD_STYLE}">\n'
        '<h3 style="margin: 0 0 12px 0; font-size: 16px;">📰 요약</h3>\n'
        f'<p style="margin: 0; font-size: 15px; color: #444;">{escape(news.summary)}</p>\n'
        "</div>\n"
        '<div style="text-align: center; margin: 24px 0;">\n'
        f'<a href="{escape(news.url, quote=True)}" style="display: inline-block; background-color: #0066cc; '
        'color: white; text-decoration: none; padding: 12px 32px; border-radius: 6px;">전체 기사 읽기</a>\n'
        "</div>"
    )
    text = "\n".join(
        [
            subject,
            "",
            format_date(news.pub_date),
            "",
            "📰 요약:",
            news.summary,
            "",
            f"전체 기사 읽기: {news.url}",
            "",
            "---",
            FOOTER_TITLE,
            SINGLE_FOOTER,
        ]
    )
    return EmailTemplate(subject=subject, html=_page(subject, body, SINGLE_FOOTER), text=text)


def generate_digest_email(ticker: str, news_list: Sequence[NewsItem]) -> EmailTemplate:
    count = len(news_list)
    subject = f"[{ticker}] 새로운 뉴스 {count}건"
    header = (
        '<div style="background-color: #0066cc; color: white; border-radius: 8px; padding: 24px; '
        'margin-bottom: 24px; text-align: center;">\n'
        f'<div style="font-size: 18px; font-weight: bold; margin-bottom: 8px;">{escape(ticker)}</div>\n'
        f'<h1 style="margin: 0; font-size: 24px;">새로운 뉴스 {count}건</h1>\n'
        "</div>"
    )
    body = "\n".join([header, *(_item_html(news) for news in news_list)])
    items_text = "\n---\n".join(
        f"{index}. {news.title}\n   {format_date(news.pub_date)}\n\n   {news.summary}\n\n   전체 기사: {news.url}"
        for index, news in enumerate(news_list, start=1)
    )
    text = f"{subject}\n\n{items_text}\n\n---\n{FOOTER_TITLE}\n{DIGEST_FOOTER}"
    return EmailTemplate(subject=subject, html=_page(subject, body, DIGEST_FOOTER), text=text)


def generate_multi_ticker_digest_email(ticker_news: Mapping[str, Sequence[NewsItem]]) -> EmailTemplate:
    tickers = list(ticker_news)
    total = sum(len(items) for items in ticker_news.values())
    subject = f"새로운 주식 뉴스 {total}건 ({len(tickers)}개 종목)"
    headline = f"{total}건의 새로운 뉴스 ({len(tickers)}개 종목)"

    sections: List[str] = [
        '<div style="background-color: #0066cc; color: white; border-radius: 8px; padding: 24px; '
        'margin-bottom: 24px; text-align: center;">\n'
        '<h1 style="margin: 0 0 8px 0; font-size: 24px;">📊 주식 뉴스 다이제스트</h1>\n'
        f'<p style="margin: 0; font-size: 16px;">{headline}</p>\n'
        "</div>"
    ]
    text_sections: List[str] = []
    for ticker in tickers:
        items = ticker_news[ticker]
        sections.append(
            '<div style="border-radius: 8px; padding: 20px; margin-bottom: 20px;">\n'
            '<div style="background-color: #0066cc; color: white; display: inline-block; padding: 6px 14px; '
            f'border-radius: 4px; font-weight: bold;">{escape(ticker)} ({len(items)}건)</div>\n'
            + "\n".join(_item_html(news, heading="h4") for news in items)
            + "\n</div>"
        )
        lines = [f"[{ticker}] {len(items)}건"]
        for index, news in enumerate(items, start=1):
            lines.append(
                f"  {index}. {news.title}\n     {format_date(news.pub_date)}\n"
                f"     {news.summary}\n     링크: {news.url}"
            )
        text_sections.append("\n".join(lines))

    text = (
        f"📊 주식 뉴스 다이제스트\n{headline}\n\n"
        + "\n---\n".join(text_sections)
        + f"\n\n---\n{FOOTER_TITLE}\n{MULTI_DIGEST_FOOTER}"
    )
    return EmailTemplate(subject=subject, html=_page(subject, "\n".join(sections), MULTI_DIGEST_FOOTER), text=text)


def build_digest_email(news_list: Sequence[NewsItem]) -> EmailTemplate:
    """종목이 하나면 종목 다이제스트, 여럿이면 종목별 묶음 다이제스트."""
    grouped: Dict[str, List[NewsItem]] = {}
    for news in news_list:
        grouped.setdefault(news.ticker, []).append(news)
    if len(grouped) == 1:
        ticker, items = next(iter(grouped.items()))
        return generate_digest_email(ticker, items)
    return generate_multi_ticker_digest_email(grouped)


def single_push_payload(news: NewsItem, article_id: str) -> PushPayload:
    return PushPayload(
        title=f"[{news.ticker}] {news.title}",
        body=news.summary,
        data={"type": "single", "articleId": article_id, "ticker": news.ticker, "url": news.url},
    )


def digest_push_payload(count: int) -> PushPayload:
    return PushPayload(
        title=DIGEST_PUSH_TITLE,
        body=f"{count}건의 새로운 뉴스가 도착했습니다.",
        data={"type": "digest", "count": str(count)},
    )
