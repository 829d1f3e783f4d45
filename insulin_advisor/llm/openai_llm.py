"""Chat-completion provider using the OpenAI API (or any compatible server)."""

import logging
from typing import Any, Optional

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    OpenAIError,
    RateLimitError,
)

from insulin_advisor.llm.base import (
    BaseLLM,
    LLMConnectionError,
    LLMError,
    LLMOverloadError,
    LLMResponse,
    LLMStatusError,
    LLMTimeoutError,
    Message,
)

logger = logging.getLogger(__name__)


class OpenAILLM(BaseLLM):
    """OpenAI chat completions via the official async client."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: Optional[str] = None,
        timeout: int = 60,
    ):
        """Initialize OpenAI client.

        Args:
            api_key: Provider API key
            model: Model name (e.g. gpt-4o-mini)
            base_url: OpenAI-compatible API endpoint, None for the default
            timeout: Request timeout in seconds
        """
        self._base_url = base_url
        self._model = model
        self._timeout = timeout

        # Requests are single-shot: the client must not retry on its own
        self._client = AsyncOpenAI(
            base_url=base_url,
            api_key=api_key or "not-configured",
            timeout=httpx.Timeout(timeout, connect=10.0),
            max_retries=0,
        )

    @property
    def model_name(self) -> str:
        return self._model

    @property
    def provider(self) -> str:
        return "openai"

    async def complete(
        self,
        messages: list[Message],
        *,
        temperature: float = 0.7,
        max_tokens: int = 4096,
        stop: Optional[list[str]] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate completion using the chat completions endpoint."""
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[m.to_dict() for m in messages],
                temperature=temperature,
                max_tokens=max_tokens,
                stop=stop,
                **kwargs,
            )

        # APITimeoutError subclasses APIConnectionError, so it goes first
        except APITimeoutError as e:
            logger.error(f"OpenAI timeout: {e}")
            raise LLMTimeoutError(f"Model request timed out after {self._timeout}s") from e
        except APIConnectionError as e:
            logger.error(f"OpenAI connection error: {e}")
            raise LLMConnectionError(f"Failed to connect to model provider: {e}") from e
        except RateLimitError as e:
            logger.warning(f"OpenAI rate limited: {e}")
            raise LLMOverloadError("Model provider is overloaded") from e
        except APIStatusError as e:
            logger.error(f"OpenAI returned {e.status_code}: {e}")
            raise LLMStatusError(
                f"Model provider returned status {e.status_code}", status_code=e.status_code
            ) from e
        except OpenAIError as e:
            logger.error(f"OpenAI error: {e}")
            raise LLMError(str(e)) from e

        if not response.choices:
            return LLMResponse(content="", model=response.model, raw_response=response)

        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            usage={
                "prompt_tokens": response.usage.prompt_tokens if response.usage else 0,
                "completion_tokens": response.usage.completion_tokens if response.usage else 0,
            },
            finish_reason=choice.finish_reason,
            raw_response=response,
        )

    async def health_check(self) -> bool:
        """Check if the provider is reachable."""
        try:
            await self._client.models.list()
            return True
        except OpenAIError as e:
            logger.debug(f"OpenAI health check failed: {e}")
            return False


def create_llm_from_settings() -> OpenAILLM:
    """Create the model client from application settings."""
    from insulin_advisor.config import get_settings

    settings = get_settings()
    return OpenAILLM(
        api_key=settings.openai_api_key,
        model=settings.llm_model,
        base_url=settings.openai_base_url,
        timeout=settings.llm_timeout,
    )
