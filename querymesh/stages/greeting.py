"""
GreetingStage: short-circuit conversational messages.

Pattern tables decide most cases. Only short messages that match nothing are
sent to the LLM. Anything mentioning data is never treated as a greeting.
"""

import logging
import random
import re

from pydantic import BaseModel, ConfigDict, Field

from querymesh.llm.structured import validate_payload
from querymesh.models.query import Query
from querymesh.models.stages import GreetingResult, GreetingType
from querymesh.stages.base import BaseStage

logger = logging.getLogger(__name__)

GREETING_TOKENS = 50

DEFAULT_GREETING = (
    "Hello! I'm your AI data analysis assistant. How can I help you analyze your data today?"
)

GREETING_PATTERNS: dict[str, list[str]] = {
    "hello": [r"\bhello\b", r"\bhi\b", r"\bhey\b", r"\bgood (?:morning|afternoon|evening)\b", r"\bgreetings\b"],
    "goodbye": [r"\bbye\b", r"\bgoodbye\b", r"\bsee you\b", r"\bfarewell\b", r"\btake care\b", r"\bhave a good day\b"],
    "thanks": [r"\bthank you\b", r"\bthanks\b", r"\bappreciate\b", r"\bgrateful\b", r"\bmuch obliged\b"],
    "small_talk": [
        r"\bhow are you\b",
        r"\bhow do you do\b",
        r"\bwhat'?s up\b",
        r"\bhow'?s it going\b",
        r"\bnice to meet you\b",
    ],
}

DATA_KEYWORDS = (
    "analyze", "show", "display", "find", "get", "list", "top", "bottom", "highest",
    "lowest", "revenue", "sales", "performance", "metrics", "trends", "reports",
    "attendance", "districts", "students", "percentage", "statistics", "chart", "graph",
    "plot", "visualize", "data", "sql", "query", "table", "database", "insights",
    "business", "compare", "rank", "queries",
)

GREETING_RESPONSES: dict[str, list[str]] = {
    "hello": [
        DEFAULT_GREETING,
        "Hi there! Ready to dive into some data analysis? What would you like to explore?",
        "Hey! I'm here to help you understand your data better. What questions do you have?",
    ],
    "goodbye": [
        "You're welcome! Feel free to ask if you need any more help analyzing your data.",
        "Goodbye! I'm here whenever you need help with your data analysis.",
        "Take care! Don't hesitate to reach out for more data insights.",
    ],
    "thanks": [
        "You're very welcome! I'm glad I could help with your data analysis.",
        "Happy to help! Feel free to ask if you need more insights.",
        "You're welcome! I'm here whenever you need assistance with your data.",
    ],
    "small_talk": [
        "I'm doing well, thank you! I'm ready to help you analyze your data. What would you like to explore?",
        "I'm here and ready to assist! What data questions can I help you with today?",
        "I'm doing great! Let's focus on your data analysis needs. What would you like to know?",
    ],
}

_PATTERNS = {
    greeting_type: [re.compile(p, re.IGNORECASE) for p in patterns]
    for greeting_type, patterns in GREETING_PATTERNS.items()
}
# prefix match so plurals and inflections ("tables", "queries") count
_DATA_KEYWORD_RE = re.compile(r"\b(?:" + "|".join(DATA_KEYWORDS) + r")", re.IGNORECASE)


class GreetingPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    greeting_type: GreetingType = Field("none", alias="greetingType")
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    reasoning: str = ""


class GreetingStage(BaseStage):
    """
    Detects hello, goodbye, thanks and small talk.

    Args:
        rng: Source of randomness for picking a canned reply; inject a seeded
            random.Random for deterministic output
        llm_max_chars: Messages at least this long never reach the LLM
    """

    def __init__(
        self,
        rng: random.Random | None = None,
        llm_max_chars: int = 50,
        **kwargs,
    ):
        super().__init__(name="greeting", **kwargs)
        self.rng = rng or random.Random()
        self.llm_max_chars = llm_max_chars

    async def execute(self, query: Query) -> GreetingResult:
        text = query.text.strip()

        if _DATA_KEYWORD_RE.search(text):
            return GreetingResult(greeting_type="none", confidence=0.9)

        greeting_type = self._match_patterns(text)
        if greeting_type:
            return self._respond(greeting_type, confidence=0.9, tokens=0)

        if len(text) >= self.llm_max_chars:
            return GreetingResult(greeting_type="none", confidence=0.8)

        payload, tokens = await self._generate_json(
            "agents/greeting.md", temperature=0.1, max_tokens=150, query=text
        )
        parsed = validate_payload(GreetingPayload, payload, self.name)
        if parsed is None or parsed.greeting_type == "none":
            return GreetingResult(
                greeting_type="none",
                confidence=parsed.confidence if parsed else 0.0,
                tokens_used=tokens,
            )
        return self._respond(parsed.greeting_type, confidence=parsed.confidence, tokens=tokens)

    def _match_patterns(self, text: str) -> str | None:
        for greeting_type, patterns in _PATTERNS.items():
            if any(pattern.search(text) for pattern in patterns):
                return greeting_type
        return None

    def canned_response(self, greeting_type: str) -> str:
        """Pick one reply from the rotation table for a greeting type."""
        responses = GREETING_RESPONSES.get(greeting_type)
        return self.rng.choice(responses) if responses else DEFAULT_GREETING

    def _respond(self, greeting_type: str, confidence: float, tokens: int) -> GreetingResult:
        response = self.canned_response(greeting_type)
        logger.info(
            f"Detected {greeting_type} message",
            extra={"stage": self.name, "greeting_type": greeting_type},
        )
        return GreetingResult(
            greeting_type=greeting_type,
            confidence=confidence,
            response=response,
            tokens_used=GREETING_TOKENS + tokens,
        )
