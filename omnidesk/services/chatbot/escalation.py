"""Escalation detector - determines when the bot must hand off to a human."""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from omnidesk.core.config import settings
from omnidesk.models import ChatbotConfig
from omnidesk.services.sentiment import SentimentAnalyzer

logger = structlog.get_logger()


class EscalationTrigger(str, Enum):
    """Reasons for escalating to a human."""

    EXPLICIT_REQUEST = "explicit_request"  # Keyword in the customer's message
    BOT_HANDOFF = "bot_handoff"  # Keyword in the bot's own reply
    NEGATIVE_SENTIMENT = "negative_sentiment"
    AI_FAILURE = "ai_failure"


@dataclass
class EscalationDecision:
    """Result of escalation evaluation."""

    should_escalate: bool
    trigger: EscalationTrigger | None = None
    reason: str = ""
    context: dict[str, Any] | None = None


def match_keyword(text: str, keywords: Iterable[str]) -> str | None:
    """First keyword contained in ``text``, case-insensitively."""
    text_lower = text.lower()
    for keyword in keywords:
        if keyword and keyword.lower() in text_lower:
            return keyword
    return None


class EscalationDetector:
    """Evaluates whether a bot exchange should go to a human agent.

    Checks, in order:
    - escalation keywords in the customer's message
    - escalation keywords in the bot's reply
    - negative sentiment of the customer's message below the threshold
    """

    def __init__(
        self,
        sentiment_analyzer: SentimentAnalyzer | None = None,
        keywords: Iterable[str] | None = None,
        sentiment_threshold: float | None = None,
    ) -> None:
        self.sentiment = sentiment_analyzer
        self.keywords = list(keywords) if keywords is not None else list(settings.escalation_keywords)
        self.sentiment_threshold = (
            sentiment_threshold
            if sentiment_threshold is not None
            else settings.handoff_sentiment_threshold
        )

    def keywords_for(self, chatbot: ChatbotConfig | None) -> list[str]:
        """Default vocabulary plus the chatbot's own keywords."""
        if chatbot is None or not chatbot.escalation_keywords:
            return self.keywords
        return [*self.keywords, *chatbot.escalation_keywords]

    async def evaluate(
        self,
        user_message: str,
        reply: str,
        chatbot: ChatbotConfig | None = None,
        conversation_id: str | None = None,
    ) -> EscalationDecision:
        """Evaluate whether the exchange needs a human.

        Args:
            user_message: Current customer message
            reply: The bot's proposed answer
            chatbot: Chatbot whose extra keywords apply
            conversation_id: For logging only
        """
        keywords = self.keywords_for(chatbot)

        matched = match_keyword(user_message, keywords)
        if matched:
            logger.info("Escalation triggered: explicit request", conversation_id=conversation_id)
            return EscalationDecision(
                should_escalate=True,
                trigger=EscalationTrigger.EXPLICIT_REQUEST,
                reason=f"Customer asked for a human (keyword: {matched})",
                context={"matched_keyword": matched},
            )

        matched = match_keyword(reply, keywords)
        if matched:
            logger.info("Escalation triggered: bot handoff", conversation_id=conversation_id)
            return EscalationDecision(
                should_escalate=True,
                trigger=EscalationTrigger.BOT_HANDOFF,
                reason=f"Bot reply suggests a transfer (keyword: {matched})",
                context={"matched_keyword": matched},
            )

        if self.sentiment is not None:
            result = await self.sentiment.analyze(user_message)
            if result.score < self.sentiment_threshold:
                logger.info(
                    "Escalation triggered: negative sentiment",
                    conversation_id=conversation_id,
                    sentiment_score=result.score,
                )
                return EscalationDecision(
                    should_escalate=True,
                    trigger=EscalationTrigger.NEGATIVE_SENTIMENT,
                    reason=f"Negative sentiment detected (score: {result.score:.2f})",
                    context={
                        "sentiment": result.sentiment,
                        "score": result.score,
                        "threshold": self.sentiment_threshold,
                    },
                )

        return EscalationDecision(should_escalate=False)
