"""
Structured (JSON) completions.

One bounded call that returns a parsed object plus the tokens it cost, and a
validator that maps the object onto a stage's schema.
"""

import asyncio
import logging
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from querymesh.llm.base import BaseLLMProvider
from querymesh.llm.models import LLMMessage, LLMRequest
from querymesh.models.errors import LLMCallFailed, MalformedModelOutput
from querymesh.utils.json_output import extract_json_payload

logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


async def complete_json(
    provider: BaseLLMProvider,
    messages: list[LLMMessage],
    *,
    stage: str,
    temperature: float,
    max_tokens: int | None = None,
    timeout: float = 30.0,
    model: str | None = None,
    prompt: str | None = None,
) -> tuple[dict[str, Any] | None, int]:
    """
    Run one JSON-mode completion.

    Returns:
        (payload, tokens) where payload is None if the output was not a JSON object

    Raises:
        LLMCallFailed: On timeout or provider error
    """
    request = LLMRequest(
        messages=messages,
        temperature=temperature,
        max_tokens=max_tokens,
        model=model,
        json_mode=True,
        metadata={"stage": stage, "prompt": prompt},
    )
    try:
        response = await asyncio.wait_for(provider.generate(request), timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise LLMCallFailed(
            stage, f"LLM call timed out after {timeout}s", context={"timeout": timeout}
        ) from exc
    except Exception as exc:
        raise LLMCallFailed(
            stage,
            f"LLM call failed: {type(exc).__name__}",
            context={"error_type": type(exc).__name__},
        ) from exc

    tokens = response.tokens
    payload = extract_json_payload(response.content)
    if payload is None:
        error = MalformedModelOutput(
            stage,
            "Model output was not a JSON object",
            context={"preview": response.content[:200]},
        )
        logger.warning(str(error), extra={"error": error.to_dict()})
    return payload, tokens


def validate_payload(
    schema: type[SchemaT], payload: dict[str, Any] | None, stage: str
) -> SchemaT | None:
    """Validate a parsed payload against a stage schema, or None on mismatch."""
    if payload is None:
        return None
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        error = MalformedModelOutput(
            stage,
            f"Model output did not match {schema.__name__}",
            context={"errors": exc.error_count()},
        )
        logger.warning(str(error), extra={"error": error.to_dict()})
        return None
