"""
Anthropic LLM Provider

Implementation of BaseLLMProvider for Anthropic's Claude models.
The Messages API has no JSON response format, so JSON mode is requested
through the system prompt and by prefilling the assistant turn with "{".
"""

import logging

from anthropic import AsyncAnthropic

from querymesh.llm.base import BaseLLMProvider
from querymesh.llm.models import LLMRequest, LLMResponse, LLMUsage

logger = logging.getLogger(__name__)

_JSON_INSTRUCTION = "Respond with a single valid JSON object and nothing else."


class AnthropicProvider(BaseLLMProvider):
    """Anthropic (Claude) provider using the async anthropic SDK."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-sonnet-20241022",
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
        client: AsyncAnthropic | None = None,
    ):
        super().__init__(
            provider_name="anthropic",
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
        )

        self.model = model
        self.client = client or AsyncAnthropic(api_key=api_key, timeout=float(timeout))

        logger.info(f"Anthropic provider initialized with model: {model}", extra={"model": model})

    async def _complete(self, request: LLMRequest) -> LLMResponse:
        """Call the Messages API."""
        # Anthropic takes the system prompt separately
        system_parts = []
        messages = []
        for msg in request.messages:
            if msg.role == "system":
                system_parts.append(msg.content)
            else:
                messages.append({"role": msg.role, "content": msg.content})

        if request.json_mode:
            system_parts.append(_JSON_INSTRUCTION)
            messages.append({"role": "assistant", "content": "{"})

        params = {}
        if system_parts:
            params["system"] = "\n\n".join(system_parts)

        response = await self.client.messages.create(
            model=request.model or self.model,
            max_tokens=request.max_tokens,
            temperature=request.temperature,
            messages=messages,
            **params,
        )

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        if request.json_mode:
            text = "{" + text

        llm_response = LLMResponse(
            content=text,
            model=response.model,
            usage=LLMUsage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            ),
            finish_reason=self._map_finish_reason(response.stop_reason),
            provider="anthropic",
            metadata={"id": response.id},
        )

        return llm_response

    def _map_finish_reason(self, reason: str | None) -> str:
        """Map Anthropic stop reason to standard format."""
        if reason == "max_tokens":
            return "length"
        return "stop"
