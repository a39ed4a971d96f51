"""Sentiment analysis using AWS Comprehend or a keyword fallback."""

import asyncio
import re
from dataclasses import dataclass
from typing import Literal

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from omnidesk.core.config import settings

logger = structlog.get_logger()

COMPREHEND_LANGUAGES = {"en", "es", "fr", "de", "it", "pt"}
COMPREHEND_MAX_CHARS = 5000

_WORD = re.compile(r"\w+", re.UNICODE)

POSITIVE_WORDS = {
    # English
    "good", "great", "excellent", "amazing", "wonderful", "perfect",
    "happy", "pleased", "satisfied", "thanks", "thank", "love", "awesome",
    "helpful", "best", "nice", "appreciate",
    # Portuguese
    "obrigado", "obrigada", "valeu", "bom", "boa", "ótimo", "ótima",
    "excelente", "perfeito", "maravilhoso", "adorei", "feliz", "satisfeito",
    "legal", "show",
    # Spanish
    "gracias", "bien", "genial", "bueno",
}

NEGATIVE_WORDS = {
    # English
    "bad", "terrible", "awful", "horrible", "angry", "frustrated",
    "disappointed", "upset", "hate", "worst", "useless", "annoying",
    "ridiculous", "unacceptable", "furious",
    # Portuguese
    "ruim", "péssimo", "péssima", "horrível", "absurdo", "raiva",
    "irritado", "irritada", "frustrado", "frustrada", "decepcionado",
    "decepcionada", "inaceitável", "lixo", "odeio", "pior", "revoltado",
    # Spanish
    "mal", "enojado", "decepcionante",
}

INTENSIFIERS = {"very", "really", "extremely", "totally", "muito", "muy", "super", "extremamente"}


@dataclass
class SentimentResult:
    """Result from sentiment analysis."""

    sentiment: Literal["POSITIVE", "NEGATIVE", "NEUTRAL", "MIXED"]
    score: float  # -1 to 1 scale (negative to positive)
    confidence: float  # 0 to 1

    # Raw scores
    positive_score: float = 0.0
    negative_score: float = 0.0
    neutral_score: float = 0.0
    mixed_score: float = 0.0


class SentimentAnalyzer:
    """Sentiment analyzer using AWS Comprehend.

    Falls back to keyword matching when AWS is not configured or a call fails.
    """

    def __init__(self, use_comprehend: bool | None = None) -> None:
        self._comprehend_client = None
        configured = bool(settings.aws_access_key_id and settings.aws_secret_access_key)
        self._use_comprehend = configured if use_comprehend is None else use_comprehend and configured

        if self._use_comprehend:
            self._comprehend_client = boto3.client(
                "comprehend",
                region_name=settings.aws_region,
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
            )
            logger.info("AWS Comprehend initialized")
        else:
            logger.info("Using fallback sentiment analysis (AWS not configured)")

    async def analyze(self, text: str, language: str = "pt") -> SentimentResult:
        """Analyze sentiment of text.

        Args:
            text: Text to analyze
            language: Language code (default: pt)
        """
        if not text.strip():
            return SentimentResult(sentiment="NEUTRAL", score=0.0, confidence=1.0)

        if self._use_comprehend:
            return await self._analyze_with_comprehend(text, language)
        return self._analyze_with_keywords(text)

    async def _analyze_with_comprehend(self, text: str, language: str) -> SentimentResult:
        try:
            response = await asyncio.to_thread(
                self._comprehend_client.detect_sentiment,
                Text=text[:COMPREHEND_MAX_CHARS],
                LanguageCode=language if language in COMPREHEND_LANGUAGES else "en",
            )
        except (BotoCoreError, ClientError) as e:
            logger.error("Comprehend analysis failed, using fallback", error=str(e))
            return self._analyze_with_keywords(text)

        scores = response["SentimentScore"]
        composite_score = scores["Positive"] - scores["Negative"]

        logger.debug(
            "Comprehend sentiment analysis",
            sentiment=response["Sentiment"],
            score=round(composite_score, 3),
        )
        return SentimentResult(
            sentiment=response["Sentiment"],
            score=composite_score,
            confidence=max(scores.values()),
            positive_score=scores["Positive"],
            negative_score=scores["Negative"],
            neutral_score=scores["Neutral"],
            mixed_score=scores["Mixed"],
        )

    def _analyze_with_keywords(self, text: str) -> SentimentResult:
        words = set(_WORD.findall(text.lower()))
        positive_count: float = len(words & POSITIVE_WORDS)
        negative_count: float = len(words & NEGATIVE_WORDS)

        if words & INTENSIFIERS:
            positive_count *= 1.5
            negative_count *= 1.5

        total = positive_count + negative_count + 0.1

        positive_score = positive_count / total if positive_count > 0 else 0.1
        negative_score = negative_count / total if negative_count > 0 else 0.1
        neutral_score = max(0.0, 1 - positive_score - negative_score)

        # Normalize
        total_score = positive_score + negative_score + neutral_score
        positive_score /= total_score
        negative_score /= total_score
        neutral_score /= total_score

        if positive_score > negative_score and positive_score > neutral_score:
            sentiment = "POSITIVE"
        elif negative_score > positive_score and negative_score > neutral_score:
            sentiment = "NEGATIVE"
        else:
            sentiment = "NEUTRAL"

        composite_score = positive_score - negative_score
        logger.debug("Keyword sentiment analysis", sentiment=sentiment, score=round(composite_score, 3))

        return SentimentResult(
            sentiment=sentiment,
            score=composite_score,
            confidence=max(positive_score, negative_score, neutral_score),
            positive_score=positive_score,
            negative_score=negative_score,
            neutral_score=neutral_score,
        )
