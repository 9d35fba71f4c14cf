"""LLM client module."""

from llm.client.openai_client import (
    LLMError,
    LLMResponse,
    OpenAIClient,
    PermanentLLMError,
    ProviderFn,
    TransientLLMError,
)

__all__ = [
    "LLMError",
    "LLMResponse",
    "OpenAIClient",
    "PermanentLLMError",
    "ProviderFn",
    "TransientLLMError",
]
