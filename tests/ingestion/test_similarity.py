from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import pytest

from ingestion.services.similarity import (
    is_duplicate,
    is_similar,
    jaccard_similarity,
    levenshtein_distance,
    levenshtein_similarity,
    news_similarity,
    text_similarity,
)


@dataclass
class Item:
    title: str
    description: Optional[str] = None


def test_jaccard_uses_lowercased_word_sets():
    assert jaccard_similarity("Samsung Earnings beat", "samsung earnings miss") == pytest.approx(2 / 4)
    assert jaccard_similarity("", "") == 0.0


def test_levenshtein_distance_basic():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("같다", "같다") == 0
    assert levenshtein_similarity("", "") == 1.0


@pytest.mark.parametrize("text", ["삼성전자 실적 발표", "a", "SK하이닉스(000660) HBM 공급 확대"])
def test_text_similarity_identity(text: str):
    assert text_similarity(text, text) == 1.0


def test_text_similarity_empty_is_zero():
    assert text_similarity("", "삼성전자") == 0.0
    assert text_similarity("삼성전자", "") == 0.0


def test_similarity_is_symmetric():
    a = Item("삼성전자 4분기 영업이익 6.5조원", "시장 기대치를 웃돌았다")
    b = Item("삼성전자, 4분기 영업익 6.5조…기대 상회", "예상치를 넘어섰다")
    assert news_similarity(a, b) == pytest.approx(news_similarity(b, a))


def test_news_similarity_uses_title_only_without_descriptions():
    a = Item("현대차 신형 전기차 공개", None)
    b = Item("현대차 신형 전기차 공개", "설명만 있음")
    assert news_similarity(a, b) == 1.0


def test_news_similarity_weights_title_and_description():
    a = Item("같은 제목", "완전히 다른 설명 하나")
    b = Item("같은 제목", "전혀 무관한 문장 둘")
    expected = 0.8 * 1.0 + 0.2 * text_similarity(a.description, b.description)
    assert news_similarity(a, b) == pytest.approx(expected)


def test_duplicate_and_similar_thresholds():
    a = Item("삼성전자(005930) 4분기 영업이익 6.5조원 기록 시장 기대치 상회")
    b = Item("삼성전자(005930) 4분기 영업이익 6.5조원 기록 시장 예상 상회")
    c = Item("카카오 신규 서비스 출시 예정")
    assert is_duplicate(a, b)
    assert is_similar(a, b)
    assert not is_duplicate(a, c)
    assert not is_similar(a, c)


def test_levenshtein_similarity_normalizes_by_longer_text():
    assert levenshtein_similarity("kitten", "sitting") == pytest.approx(1 - 3 / 7)
    assert levenshtein_similarity("abc", "") == 0.0
