"""
SafetyStage: content gate ahead of every other stage.

Pure pattern matching, no LLM call. Requests matching a denylist category are
refused outright; bulk-export phrasing is allowed but flagged as medium risk.
"""

import logging
import re

from querymesh.models.query import Query
from querymesh.models.stages import SafetyResult
from querymesh.stages.base import BaseStage

logger = logging.getLogger(__name__)

SAFETY_TOKENS = 20

REFUSAL_MESSAGE = (
    "I'm sorry, but I can't process that type of request. I'm designed to help with "
    "data analysis and business insights. Please ask me questions about your data, "
    "files, or business metrics."
)
REFUSAL_TOKENS = 30

DENYLIST: dict[str, list[str]] = {
    "security": [
        r"\b(?:hack|exploit|vulnerabilit|attack|breach|inject)\w*",
        r"\b(?:sql injection|xss|csrf|ddos)\b",
        r"\b(?:backdoor|malware|virus|trojan)\w*",
    ],
    "illegal": [
        r"\b(?:illegal|unlawful|criminal|fraud|scam)\w*",
        r"\b(?:steal|theft|robbery|kidnap)\w*",
        r"\b(?:drugs|weapons|violence|harm)\b",
    ],
    "privacy": [
        r"\b(?:personal data|private information|confidential)\b",
        r"\b(?:ssn|social security|credit card|password)s?\b",
        r"\b(?:spy|surveillance|tracking)\b",
    ],
    "system": [
        r"\b(?:system files|root access|admin privileges)\b",
        r"\b(?:execute code|run script|command line)\b",
        r"\b(?:delete files|format disk|shutdown)\b",
    ],
}

MEDIUM_RISK_TERMS = (
    "all data",
    "everything",
    "entire database",
    "export all",
    "download all",
    "copy all",
)

_COMPILED = {
    category: [re.compile(pattern, re.IGNORECASE) for pattern in patterns]
    for category, patterns in DENYLIST.items()
}


class SafetyStage(BaseStage):
    """Denylist and risk-level screening of the raw question."""

    def __init__(self, **kwargs):
        super().__init__(name="safety", **kwargs)

    async def execute(self, query: Query) -> SafetyResult:
        try:
            return self._evaluate(query.text)
        except Exception as e:
            logger.warning(
                "Guardrails check failed, defaulting to allow",
                extra={"stage": self.name, "error_type": type(e).__name__},
            )
            return SafetyResult(
                allowed=True,
                risk_level="medium",
                reason="Guardrails check failed, defaulting to allow",
                confidence=0.5,
                tokens_used=SAFETY_TOKENS,
            )

    def _evaluate(self, text: str) -> SafetyResult:
        category = self._blocked_category(text)
        if category:
            logger.info(
                f"Request blocked by {category} rule",
                extra={"stage": self.name, "category": category},
            )
            return SafetyResult(
                allowed=False,
                risk_level="high",
                reason=f"Request contains {category} related content that violates our usage policies",
                tokens_used=SAFETY_TOKENS,
            )

        lowered = text.lower()
        if any(term in lowered for term in MEDIUM_RISK_TERMS):
            return SafetyResult(
                allowed=True,
                risk_level="medium",
                reason="Request asks for bulk data access",
                tokens_used=SAFETY_TOKENS,
            )

        return SafetyResult(
            allowed=True,
            risk_level="low",
            reason="No policy concerns detected",
            tokens_used=SAFETY_TOKENS,
        )

    @staticmethod
    def _blocked_category(text: str) -> str | None:
        for category, patterns in _COMPILED.items():
            if any(pattern.search(text) for pattern in patterns):
                return category
        return None
