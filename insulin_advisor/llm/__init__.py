"""LLM abstraction layer for the recommendation model."""

from insulin_advisor.llm.base import (
    BaseLLM,
    LLMConnectionError,
    LLMEmptyResponseError,
    LLMError,
    LLMOverloadError,
    LLMResponse,
    LLMStatusError,
    LLMTimeoutError,
    Message,
    MessageRole,
)
from insulin_advisor.llm.openai_llm import OpenAILLM, create_llm_from_settings

__all__ = [
    "BaseLLM",
    "LLMConnectionError",
    "LLMEmptyResponseError",
    "LLMError",
    "LLMOverloadError",
    "LLMResponse",
    "LLMStatusError",
    "LLMTimeoutError",
    "Message",
    "MessageRole",
    "OpenAILLM",
    "create_llm_from_settings",
]
