"""Ticker extraction/validation for KRX 6-digit codes."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

_TICKER_RE = re.compile(r"^\d{6}$")
_PATTERNS = (
    re.compile(r"\((\d{6})\)"),  # 종목명(005930)
    re.compile(r"종목코드:\s*(\d{6})"),
    re.compile(r"\[종목\]\s*(\d{6})"),
    re.compile(r"(?:^|\D)(\d{6})(?:\D|$)"),
)


def extract_ticker(text: Optional[str]) -> Optional[str]:
    if not text or not text.strip():
        return None
    for pattern in _PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return None


def extract_ticker_from_article(title: str, description: Optional[str] = None) -> Optional[str]:
    return extract_ticker(title) or extract_ticker(description)


def validate_ticker(ticker: object) -> bool:
    return isinstance(ticker, str) and bool(_TICKER_RE.match(ticker))


@dataclass(frozen=True)
class SubscriptionLimit:
    allowed: bool
    count: int
    limit: int
    remaining: int


def check_subscription_limit(existing_tickers: Iterable[str], limit: int = 5) -> SubscriptionLimit:
    count = len(list(existing_tickers))
    return SubscriptionLimit(
        allowed=count < limit,
        count=count,
        limit=limit,
        remaining=max(0, limit - count),
    )
