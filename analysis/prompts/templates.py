"""프롬프트 템플릿/빌더.

LLM에게 유용성 판별, 요약, 점수 산출을 요청하는 시스템/유저 메시지를 생성한다.
점수/판별은 JSON 출력만 허용하고, 요약은 평문으로 받는다.
"""

from __future__ import annotations

from typing import List, Optional

MAX_DESCRIPTION_CHARS = 4000

SCORE_JSON_SCHEMA = (
    "{"
    '"summary": string (2-3 sentences), '
    '"scores": {"impact": 1-10, "urgency": 1-10, "certainty": 1-10, "durability": 1-10, '
    '"attention": 1-10, "relevance": 1-10, "sectorImpact": 1-10, '
    '"institutionalInterest": 1-10, "volatility": 1-10, "sentiment": -2..2}, '
    '"reasoning": string (one sentence)'
    "}"
)

FILTER_JSON_SCHEMA = '{"isUseful": boolean, "confidence": number (0.0..1.0), "reasoning": string (one sentence)}'

SCORE_CRITERIA = (
    "## 점수 산정 기준 (각 1-10점)\n"
    "### 시각화용 6가지 지표\n"
    "1. impact (영향력): 회사 실적에 미치는 영향 규모. 1-3 미미, 4-6 분기 실적 일부, 7-10 매출/이익 큰 변화\n"
    "2. urgency (긴급성): 주가 반영 속도. 1-3 장기, 4-6 분기~1년, 7-10 즉시(실적 발표, M&A, 긴급 공시)\n"
    "3. certainty (확실성): 1-3 루머/추측, 4-6 언론 보도, 7-10 공시/공식 발표\n"
    "4. durability (지속성): 1-3 일회성, 4-6 몇 분기, 7-10 구조적 변화\n"
    "5. attention (관심도): 1-3 일상적 뉴스, 4-6 업계 화제, 7-10 시장 전체 주목\n"
    "6. relevance (연관성): 1-3 개별 이슈, 4-6 섹터 테마, 7-10 핫 테마(AI, 반도체, 2차전지 등)\n"
    "### 계산용 3가지 지표\n"
    "7. sectorImpact (섹터 영향): 1-3 해당 종목만, 4-6 관련 종목들, 7-10 업종/시장 전체\n"
    "8. institutionalInterest (기관 관심도): 1-3 개인 위주, 4-6 일부 기관, 7-10 외국인/기관 큰 관심\n"
    "9. volatility (변동성): 1-3 미미, 4-6 2-5%, 7-10 5% 이상\n"
    "### 투자 심리\n"
    "- sentiment: -2(매우 악재), -1(악재), 0(중립), +1(호재), +2(매우 호재)\n"
)


def _article_block(title: str, description: Optional[str]) -> str:
    body = (description or "").strip()[:MAX_DESCRIPTION_CHARS]
    return f"제목: {title.strip()}\n내용: {body}"


def build_score_messages(title: str, description: Optional[str], *, with_summary: bool = True) -> List[dict]:
    """점수 산출(선택적으로 요약 포함) 메시지."""
    task = "다음 뉴스를 요약하고, 투자자에게 유용한 점수를 산정해주세요." if with_summary else (
        "다음 뉴스의 투자자 관점 점수를 산정해주세요. summary는 생략합니다."
    )
    system = (
        "역할: 당신은 한국 주식 뉴스 분석 전문가입니다.\n"
        f"목표: {task}\n\n"
        "요약 규칙: 반드시 2-3문장, 숫자/회사명/주요 사건 등 핵심 정보만, 투자 판단에 도움되는 정보 우선.\n\n"
        f"{SCORE_CRITERIA}\n"
        f"출력 형식: JSON ONLY (추가 설명/코드블록 금지). 스키마: {SCORE_JSON_SCHEMA}"
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": _article_block(title, description)},
    ]


def build_filter_messages(title: str, description: Optional[str]) -> List[dict]:
    system = (
        "역할: 당신은 한국 주식 뉴스 필터링 전문가입니다.\n"
        "다음 뉴스 기사가 투자자에게 \"유용한\" 뉴스인지 판단합니다.\n\n"
        "유용한 뉴스: 실적 발표, 매출/이익 증감, 신제품/신사업, M&A, 투자 유치, 주요 임원 인사,\n"
        "정부 규제/법률 변화의 영향, 주가에 직접 영향을 줄 수 있는 구체적 사건.\n"
        "무용한 뉴스: 일반적인 시장 전망, 특정 기업과 무관한 시장 동향, 애널리스트의 일반적 의견,\n"
        "오래된 뉴스의 재탕, 원인 없이 주가 움직임만 언급.\n\n"
        f"출력 형식: JSON ONLY. 스키마: {FILTER_JSON_SCHEMA}"
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": _article_block(title, description)},
    ]


def build_summary_messages(title: str, description: Optional[str]) -> List[dict]:
    system = (
        "역할: 당신은 한국 주식 뉴스 요약 전문가입니다.\n"
        "다음 뉴스 기사를 정확히 2-3문장으로 요약합니다.\n"
        "규칙: 핵심 정보만 포함(숫자, 회사명, 주요 사건), 불필요한 수식어 제거,\n"
        "명확하고 간결한 한국어, 투자 판단에 도움되는 정보 우선.\n"
        "요약문만 작성하세요 (JSON이나 다른 형식 없이)."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": _article_block(title, description)},
    ]
