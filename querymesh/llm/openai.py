"""
OpenAI LLM Provider

Implementation of BaseLLMProvider for OpenAI chat models.
JSON mode maps to the chat completions ``response_format`` parameter.
"""

import logging

import openai
from openai import AsyncOpenAI

from querymesh.llm.base import BaseLLMProvider
from querymesh.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)


class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat completion provider built on the async SDK client."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
        client: AsyncOpenAI | None = None,
    ):
        super().__init__(
            provider_name="openai",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )

        self.model = model
        self.client = client or AsyncOpenAI(
            api_key=api_key,
            timeout=float(timeout),
        )

        logger.info(f"OpenAI provider initialized with model: {model}", extra={"model": model})

    async def _complete(self, request: LLMRequest) -> LLMResponse:
        """
        Call chat completions.

        Raises:
            openai.APIError: On API errors
            openai.APITimeoutError: On timeout
        """
        extra_params = {}
        if request.json_mode:
            extra_params["response_format"] = {"type": "json_object"}

        try:
            messages = [{"role": msg.role, "content": msg.content} for msg in request.messages]

            response = await self.client.chat.completions.create(
                model=request.model or self.model,
                messages=messages,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
                **extra_params,
            )

            usage = response.usage
            llm_response = LLMResponse(
                content=response.choices[0].message.content or "",
                model=response.model,
                usage=LLMUsage(
                    prompt_tokens=usage.prompt_tokens if usage else 0,
                    completion_tokens=usage.completion_tokens if usage else 0,
                    total_tokens=usage.total_tokens if usage else 0,
                ),
                finish_reason=self._map_finish_reason(response.choices[0].finish_reason),
                provider="openai",
                metadata={"id": response.id, "created": response.created},
            )

            return llm_response

        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout: {e}")
            raise
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            raise

    def _map_finish_reason(self, reason: str | None) -> str:
        """Map OpenAI finish reason to our standard format."""
        if reason in {"stop", "length", "content_filter"}:
            return reason
        return "stop"
