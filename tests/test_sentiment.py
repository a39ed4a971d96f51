"""Tests for sentiment analysis."""

import pytest

from omnidesk.services.sentiment.analyzer import SentimentAnalyzer


@pytest.fixture
def analyzer():
    """Create sentiment analyzer using the keyword fallback."""
    return SentimentAnalyzer(use_comprehend=False)


@pytest.mark.asyncio
async def test_positive_sentiment(analyzer):
    """Test positive sentiment detection."""
    result = await analyzer.analyze("Adorei o atendimento, muito obrigado!")
    assert result.sentiment == "POSITIVE"
    assert result.score > 0


@pytest.mark.asyncio
async def test_negative_sentiment(analyzer):
    """Test negative sentiment detection."""
    result = await analyzer.analyze("Isso é péssimo, estou muito irritado")
    assert result.sentiment == "NEGATIVE"
    assert result.score < -0.5


@pytest.mark.asyncio
async def test_english_still_understood(analyzer):
    result = await analyzer.analyze("This is terrible and I hate it. Worst experience ever!")
    assert result.sentiment == "NEGATIVE"
    assert result.score < 0


@pytest.mark.asyncio
async def test_neutral_sentiment(analyzer):
    """Test neutral sentiment detection."""
    result = await analyzer.analyze("O pedido chegou na terça-feira.")
    assert result.sentiment == "NEUTRAL"
    assert abs(result.score) < 0.5


@pytest.mark.asyncio
async def test_empty_text(analyzer):
    """Test handling of empty text."""
    result = await analyzer.analyze("   ")
    assert result.sentiment == "NEUTRAL"
    assert result.score == 0.0
