"""
Base LLM Provider

Every pipeline stage talks to a model through ``BaseLLMProvider.generate``.
The base class owns the parts that do not depend on the vendor: request
defaults, per-stage debug logging and call latency. Subclasses only translate
an ``LLMRequest`` into one SDK call in ``_complete``.
"""

import logging
import time
from abc import ABC, abstractmethod

from querymesh.llm.models import LLMRequest, LLMResponse

logger = logging.getLogger(__name__)


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Attributes:
        provider_name: Unique identifier for this provider
        temperature: Sampling temperature used when a request leaves it unset
        max_tokens: Completion budget used when a request leaves it unset
        timeout: SDK request timeout in seconds
    """

    def __init__(
        self,
        provider_name: str,
        temperature: float = 0.0,
        max_tokens: int = 2000,
        timeout: int = 30,
    ):
        self.provider_name = provider_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def generate(self, request: LLMRequest) -> LLMResponse:
        """
        Run one completion.

        Request metadata (``stage``, ``prompt``) is used for logging only and is
        never sent to the vendor. SDK errors propagate unchanged; callers decide
        whether a failed call is fatal.
        """
        if request.temperature is None:
            request.temperature = self.temperature
        if request.max_tokens is None:
            request.max_tokens = self.max_tokens

        stage = request.stage
        prompt = request.prompt or "-"
        logger.debug(
            f"{self.provider_name} request for {stage}",
            extra={
                "provider": self.provider_name,
                "stage": stage,
                "prompt": prompt,
                "message_count": len(request.messages),
                "json_mode": request.json_mode,
            },
        )

        started = time.perf_counter()
        response = await self._complete(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        logger.debug(
            f"{self.provider_name} answered {stage} in {elapsed_ms:.0f}ms "
            f"({response.tokens} tokens)",
            extra={
                "provider": self.provider_name,
                "stage": stage,
                "model": response.model,
                "total_tokens": response.tokens,
                "finish_reason": response.finish_reason,
                "latency_ms": round(elapsed_ms, 1),
            },
        )
        return response

    @abstractmethod
    async def _complete(self, request: LLMRequest) -> LLMResponse:
        """Send an already-defaulted request to the vendor."""
