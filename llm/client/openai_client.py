"""OpenAI LLM 클라이언트 래퍼.

특징
- JSON 응답 형식 요청 (점수/필터) 또는 평문 응답 (요약)
- 일시 오류 재시도(지수 백오프) / 타임아웃 / 요청당 비용 상한 적용
- Provider 주입으로 테스트 시 네트워크/실제 의존성 제거
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from llm.settings import AnalysisSettings, get_analysis_settings


class LLMError(Exception):
    """LLM 호출 관련 기본 오류."""


class TransientLLMError(LLMError):
    """일시 오류(재시도 대상)."""


class PermanentLLMError(LLMError):
    """영구 오류(재시도 불가)."""


ProviderFn = Callable[[Dict[str, Any]], Dict[str, Any]]
SleepFn = Callable[[float], None]


_PRICE_PER_1K_TOKENS_USD: Dict[str, Dict[str, float]] = {
    "gpt-4o-mini": {"prompt": 0.00015, "completion": 0.0006},
    "gpt-4.1": {"prompt": 0.0020, "completion": 0.0080},
}


def _estimate_cost_usd(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    price = _PRICE_PER_1K_TOKENS_USD.get(model, _PRICE_PER_1K_TOKENS_USD["gpt-4o-mini"])
    return (
        (prompt_tokens / 1000.0) * price["prompt"]
        + (completion_tokens / 1000.0) * price["completion"]
    )


def _estimate_tokens_from_messages(messages: List[dict]) -> int:
    """길이 기반 보수적 토큰 추정."""
    total_chars = 0
    for message in messages:
        content = message.get("content", "") if isinstance(message, dict) else ""
        total_chars += len(str(content))
    return max(1, math.ceil(total_chars / 4))


@dataclass(frozen=True)
class LLMResponse:
    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost_usd: float = 0.0


@dataclass(frozen=True)
class OpenAIClient:
    settings: AnalysisSettings
    provider: Optional[ProviderFn] = None
    sleep: SleepFn = field(default=time.sleep, repr=False)

    @classmethod
    def from_env(cls, provider: Optional[ProviderFn] = None) -> "OpenAIClient":
        return cls(get_analysis_settings(), provider=provider)

    def _get_provider(self) -> ProviderFn:
        if self.provider is not None:
            return self.provider
        try:
            import openai  # type: ignore
        except ImportError as exc:  # pragma: no cover - 테스트에선 provider 주입
            raise PermanentLLMError("openai 라이브러리를 찾을 수 없습니다.") from exc

        client = openai.OpenAI(
            api_key=self.settings.openai_api_key,
            timeout=float(self.settings.analysis_request_timeout_seconds),
            max_retries=0,
        )

        def _call(payload: Dict[str, Any]) -> Dict[str, Any]:  # pragma: no cover - 네트워크 미사용
            try:
                resp = client.chat.completions.create(**payload)
            except (openai.RateLimitError, openai.APIConnectionError, openai.InternalServerError) as exc:
                raise TransientLLMError(str(exc)) from exc
            except openai.APIStatusError as exc:
                raise PermanentLLMError(str(exc)) from exc
            return {
                "choices": [
                    {
                        "message": {"content": resp.choices[0].message.content},
                    }
                ],
                "usage": {
                    "prompt_tokens": getattr(resp.usage, "prompt_tokens", 0),
                    "completion_tokens": getattr(resp.usage, "completion_tokens", 0),
                },
                "model": resp.model,
            }

        return _call

    def _build_payload(self, messages: List[dict], *, json_mode: bool) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.settings.analysis_model,
            "messages": messages,
            "temperature": float(self.settings.analysis_temperature),
            "max_tokens": int(self.settings.analysis_max_tokens),
        }
        if json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _backoff_seconds(self, attempt: int) -> float:
        return float(self.settings.analysis_retry_base_delay_seconds) * (2 ** (attempt - 1))

    def generate(self, messages: List[dict], *, json_mode: bool = True) -> LLMResponse:
        """메시지를 전송하고 응답 본문을 반환한다.

        TransientLLMError는 ANALYSIS_RETRY_MAX_ATTEMPTS까지 재시도하며, 시도 사이에
        base * 2^(n-1)초 대기한다. PermanentLLMError는 즉시 전파한다.
        """
        payload = self._build_payload(messages, json_mode=json_mode)
        estimated = _estimate_cost_usd(
            self.settings.analysis_model,
            _estimate_tokens_from_messages(messages),
            int(self.settings.analysis_max_tokens),
        )
        if estimated > float(self.settings.analysis_cost_limit_usd):
            raise PermanentLLMError("예상 비용 상한 초과")

        provider = self._get_provider()
        max_attempts = int(self.settings.analysis_retry_max_attempts)
        last_exc: Optional[Exception] = None
        for attempt in range(1, max_attempts + 1):
            try:
                resp = provider(payload)
            except TransientLLMError as exc:
                last_exc = exc
                if attempt < max_attempts:
                    self.sleep(self._backoff_seconds(attempt))
                continue

            model = resp.get("model") or self.settings.analysis_model
            usage = resp.get("usage") or {}
            prompt_tokens = int(usage.get("prompt_tokens", 0))
            completion_tokens = int(usage.get("completion_tokens", 0))
            content = (resp.get("choices") or [{}])[0].get("message", {}).get("content") or ""
            if not content.strip():
                raise PermanentLLMError("LLM 응답이 비어 있습니다.")
            return LLMResponse(
                content=content,
                model=model,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                cost_usd=_estimate_cost_usd(model, prompt_tokens, completion_tokens),
            )

        assert last_exc is not None
        raise TransientLLMError(f"LLM 호출 재시도 한도 초과: {last_exc}") from last_exc
