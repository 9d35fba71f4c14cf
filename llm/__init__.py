"""LLM module - OpenAI client and settings."""

from llm.client.openai_client import (
    LLMError,
    LLMResponse,
    OpenAIClient,
    PermanentLLMError,
    ProviderFn,
    TransientLLMError,
)
from llm.settings import AnalysisSettings, get_analysis_settings

__all__ = [
    "LLMError",
    "LLMResponse",
    "OpenAIClient",
    "PermanentLLMError",
    "ProviderFn",
    "TransientLLMError",
    "AnalysisSettings",
    "get_analysis_settings",
]
