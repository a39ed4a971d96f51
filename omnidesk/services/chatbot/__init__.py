"""Chatbot replies and escalation to humans."""

from omnidesk.services.chatbot.escalation import (
    EscalationDecision,
    EscalationDetector,
    EscalationTrigger,
)
from omnidesk.services.chatbot.pipeline import ChatbotPipeline, ChatbotReply

__all__ = [
    "ChatbotPipeline",
    "ChatbotReply",
    "EscalationDecision",
    "EscalationDetector",
    "EscalationTrigger",
]
