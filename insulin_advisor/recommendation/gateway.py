"""Gateway to the external reasoning model."""

import logging
from dataclasses import dataclass
from typing import Optional

from insulin_advisor.llm import BaseLLM, LLMEmptyResponseError, LLMError, Message, MessageRole
from insulin_advisor.models.recommendation import AIRecommendation, Confidence
from insulin_advisor.observability import ObservabilityLogger, get_observability_logger
from insulin_advisor.recommendation.parser import DEFAULT_FALLBACK_DOSE, parse_model_response
from insulin_advisor.recommendation.prompt_builder import SYSTEM_PROMPT

logger = logging.getLogger(__name__)


@dataclass
class GatewayReply:
    """Either the model's raw text or a conservative fallback, never both."""

    content: Optional[str] = None
    fallback: Optional[AIRecommendation] = None
    error: Optional[str] = None

    @property
    def used_fallback(self) -> bool:
        return self.fallback is not None


def fallback_recommendation(error: Exception, dose_units: float = DEFAULT_FALLBACK_DOSE) -> AIRecommendation:
    """Conservative answer returned whenever the model cannot be used."""
    return AIRecommendation(
        dose_units=dose_units,
        reasoning=(
            "Unable to get AI recommendation due to technical issues. Please consult with your "
            "healthcare provider for insulin dosing guidance. "
            f"Error: {str(error) or type(error).__name__}"
        ),
        safety_notes="Technical error occurred - manual review required",
        confidence=Confidence.LOW,
        recommended_monitoring="Consult healthcare provider immediately",
    )


class ModelGateway:
    """Sends a recommendation prompt to the model, absorbing provider failures.

    The call is made once, with a low temperature and JSON-object response
    mode. Provider errors never propagate: they become a low-confidence
    fallback recommendation.
    """

    def __init__(
        self,
        llm: BaseLLM,
        temperature: float = 0.2,
        max_tokens: int = 1000,
        fallback_dose_units: float = DEFAULT_FALLBACK_DOSE,
        system_prompt: str = SYSTEM_PROMPT,
        obs: Optional[ObservabilityLogger] = None,
    ):
        self.llm = llm
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.fallback_dose_units = fallback_dose_units
        self.system_prompt = system_prompt
        self._obs = obs

    @property
    def obs(self) -> ObservabilityLogger:
        return self._obs or get_observability_logger()

    async def invoke(self, prompt: str, request_id: Optional[str] = None) -> GatewayReply:
        """Call the model once.

        Returns:
            GatewayReply with the raw content, or with a fallback on any
            provider error or empty answer
        """
        messages = [
            Message(role=MessageRole.SYSTEM, content=self.system_prompt),
            Message(role=MessageRole.USER, content=prompt),
        ]

        try:
            with self.obs.llm_call(
                provider=self.llm.provider,
                model=self.llm.model_name,
                messages=[m.to_dict() for m in messages],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                request_id=request_id,
            ) as event:
                response = await self.llm.complete(
                    messages,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    response_format={"type": "json_object"},
                )
                if not response.content.strip():
                    raise LLMEmptyResponseError("No response content from model")

                event.response_content = response.content
                if response.usage:
                    event.input_tokens = response.input_tokens
                    event.output_tokens = response.output_tokens
                    event.total_tokens = response.input_tokens + response.output_tokens

        except LLMError as e:
            logger.error(f"Model call failed: {e}")
            return self._fallback(e)
        except Exception as e:
            logger.exception(f"Unexpected error calling model: {e}")
            return self._fallback(e)

        logger.debug(f"Raw model response: {response.content}")
        return GatewayReply(content=response.content)

    def _fallback(self, error: Exception) -> GatewayReply:
        logger.warning("Falling back to conservative recommendation")
        return GatewayReply(
            fallback=fallback_recommendation(error, self.fallback_dose_units),
            error=str(error) or type(error).__name__,
        )

    def parse(self, reply: GatewayReply) -> AIRecommendation:
        if reply.fallback is not None:
            return reply.fallback
        return parse_model_response(reply.content or "", fallback_dose=self.fallback_dose_units)

    async def recommend(self, prompt: str, request_id: Optional[str] = None) -> AIRecommendation:
        """Invoke the model and parse its answer in one step."""
        return self.parse(await self.invoke(prompt, request_id=request_id))
