"""Text similarity helpers used for near-duplicate news detection.

All functions are pure and never raise for string input: empty text simply
yields a similarity of 0 (or 1 when both sides are empty for edit distance).
"""

from __future__ import annotations

from typing import Optional, Protocol

from rapidfuzz.distance import Levenshtein

DUPLICATE_THRESHOLD = 0.75
SIMILAR_THRESHOLD = 0.6

JACCARD_WEIGHT = 0.7
LEVENSHTEIN_WEIGHT = 0.3
TITLE_WEIGHT = 0.8
DESCRIPTION_WEIGHT = 0.2


class NewsText(Protocol):
    title: str
    description: Optional[str]


def _word_set(text: str) -> set[str]:
    return {word for word in text.lower().split() if word}


def jaccard_similarity(a: str, b: str) -> float:
    """단어 집합 기반 Jaccard 유사도 (0~1)."""
    words_a = _word_set(a)
    words_b = _word_set(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def levenshtein_distance(a: str, b: str) -> int:
    return Levenshtein.distance(a, b)


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - (편집 거리 / 긴 문자열 길이)."""
    return Levenshtein.normalized_similarity(a, b)


def text_similarity(a: str, b: str) -> float:
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    jaccard = jaccard_similarity(a, b)
    levenshtein = levenshtein_similarity(a, b)
    return JACCARD_WEIGHT * jaccard + LEVENSHTEIN_WEIGHT * levenshtein


def news_similarity(a: NewsText, b: NewsText) -> float:
    """제목 80% + 설명 20%. 한쪽이라도 설명이 없으면 제목만 사용."""
    title_score = text_similarity(a.title or "", b.title or "")
    if a.description and b.description:
        description_score = text_similarity(a.description, b.description)
        return TITLE_WEIGHT * title_score + DESCRIPTION_WEIGHT * description_score
    return title_score


def is_duplicate(a: NewsText, b: NewsText, threshold: float = DUPLICATE_THRESHOLD) -> bool:
    return news_similarity(a, b) >= threshold


def is_similar(a: NewsText, b: NewsText, threshold: float = SIMILAR_THRESHOLD) -> bool:
    return news_similarity(a, b) >= threshold
