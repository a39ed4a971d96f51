"""Sentiment analysis service."""

from omnidesk.services.sentiment.analyzer import SentimentAnalyzer, SentimentResult

__all__ = ["SentimentAnalyzer", "SentimentResult"]
