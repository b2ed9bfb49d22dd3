"""
Base Stage Framework

Abstract base class for every stage in the query pipeline.
Provides a consistent interface, timing, logging, retries and LLM accounting.

Usage:
    class MyStage(BaseStage):
        def __init__(self, llm):
            super().__init__(name="my_stage", llm=llm)

        async def execute(self, query: Query) -> MyResult:
            payload, tokens = await self._generate_json(
                "agents/my_prompt.md", temperature=0.1, query=query.text
            )
            return MyResult(tokens_used=tokens)
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from querymesh.llm.base import BaseLLMProvider
from querymesh.llm.models import LLMMessage
from querymesh.llm.structured import complete_json
from querymesh.models.errors import LLMCallFailed, StageError
from querymesh.models.stages import StageResult
from querymesh.prompts.loader import PromptLoader

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "system/main.md"


@dataclass
class StageUsage:
    """LLM usage collected during one stage invocation."""

    llm_calls: int = 0
    tokens: int = 0


_current_usage: ContextVar[StageUsage | None] = ContextVar("querymesh_stage_usage", default=None)


class BaseStage(ABC):
    """
    Abstract base class for all pipeline stages.

    Responsibilities:
        - Define standard interface via execute() method
        - Provide timing and retry handling in __call__
        - Count LLM calls per invocation
        - Render prompts and run JSON-mode completions

    Attributes:
        name: Stage identifier used in logs, timings and the token ledger
        llm: Completion provider (None for deterministic stages)
        prompts: Prompt template loader
        llm_timeout_seconds: Upper bound for a single LLM call
        max_retries: Retry attempts on recoverable StageError

    Usage counters live in a context variable rather than on the instance, so a
    single stage object can serve concurrent requests.
    """

    def __init__(
        self,
        name: str,
        llm: BaseLLMProvider | None = None,
        prompts: PromptLoader | None = None,
        llm_timeout_seconds: float = 30.0,
        max_retries: int = 1,
    ):
        self.name = name
        self.llm = llm
        self.prompts = prompts or PromptLoader()
        self.llm_timeout_seconds = llm_timeout_seconds
        self.max_retries = max_retries

    @abstractmethod
    async def execute(self, *args: Any, **kwargs: Any) -> StageResult:
        """
        Run the stage's core logic.

        Returns:
            A StageResult subclass with tokens_used filled in

        Raises:
            StageError: On failures the stage cannot absorb
        """
        pass  # pragma: no cover - abstract method

    async def __call__(self, *args: Any, **kwargs: Any) -> StageResult:
        """
        Execute the stage with timing, logging and retries.

        Recoverable StageErrors are retried with exponential backoff. Anything
        that is not a StageError is wrapped in a non-recoverable one.
        """
        start_time = time.perf_counter()
        attempt = 0

        while True:
            usage = StageUsage()
            token = _current_usage.set(usage)
            try:
                result = await self.execute(*args, **kwargs)
            except StageError as e:
                attempt += 1
                if not e.recoverable or attempt > self.max_retries:
                    duration_ms = (time.perf_counter() - start_time) * 1000
                    logger.error(
                        f"Failed {self.name} after {attempt} attempts",
                        extra={"stage": self.name, "error": e.to_dict(), "duration_ms": duration_ms},
                    )
                    raise

                wait_time = 2 ** (attempt - 1)
                logger.warning(
                    f"Retrying {self.name} in {wait_time}s",
                    extra={"stage": self.name, "attempt": attempt, "error": e.to_dict()},
                )
                await self._sleep(wait_time)
                continue
            except asyncio.CancelledError:
                raise
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.error(
                    f"Unexpected error in {self.name}",
                    extra={
                        "stage": self.name,
                        "error_type": type(e).__name__,
                        "duration_ms": duration_ms,
                    },
                    exc_info=True,
                )
                raise StageError(
                    stage=self.name,
                    message=f"Unexpected error: {type(e).__name__}",
                    recoverable=False,
                    context={"error_type": type(e).__name__},
                ) from e
            finally:
                _current_usage.reset(token)

            result.llm_calls = usage.llm_calls
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"Completed {self.name}",
                extra={
                    "stage": self.name,
                    "duration_ms": duration_ms,
                    "attempt": attempt + 1,
                    "llm_calls": usage.llm_calls,
                    "tokens_used": result.tokens_used,
                },
            )
            return result

    def _track_llm_call(self, tokens: int | None = None) -> None:
        """Record one LLM call against the current invocation."""
        usage = _current_usage.get()
        if usage is None:
            return
        usage.llm_calls += 1
        if tokens:
            usage.tokens += tokens

        logger.debug(
            f"LLM call tracked for {self.name}",
            extra={
                "stage": self.name,
                "total_llm_calls": usage.llm_calls,
                "tokens_this_call": tokens,
            },
        )

    def _messages(self, prompt_path: str, **variables: Any) -> list[LLMMessage]:
        """System prompt plus a rendered user prompt."""
        return [
            LLMMessage(role="system", content=self.prompts.load(SYSTEM_PROMPT)),
            LLMMessage(role="user", content=self.prompts.render(prompt_path, **variables)),
        ]

    async def _generate_json(
        self,
        prompt_path: str,
        *,
        temperature: float,
        max_tokens: int | None = None,
        raise_on_failure: bool = False,
        **variables: Any,
    ) -> tuple[dict[str, Any] | None, int]:
        """
        Render a prompt and run one JSON-mode completion.

        Returns:
            (payload, tokens); payload is None if the call failed or the output
            was not a JSON object

        Raises:
            LLMCallFailed: Only when raise_on_failure is set
        """
        if self.llm is None:
            return None, 0

        messages = self._messages(prompt_path, **variables)
        try:
            payload, tokens = await complete_json(
                self.llm,
                messages,
                stage=self.name,
                temperature=temperature,
                max_tokens=max_tokens,
                timeout=self.llm_timeout_seconds,
                prompt=prompt_path,
            )
        except LLMCallFailed as e:
            self._track_llm_call(0)
            if raise_on_failure:
                raise
            logger.warning(
                f"LLM call failed in {self.name}, using fallback",
                extra={"stage": self.name, "error": e.to_dict()},
            )
            return None, 0

        self._track_llm_call(tokens)
        return payload, tokens

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
