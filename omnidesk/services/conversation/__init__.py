"""Conversation lifecycle."""

from omnidesk.services.conversation.lifecycle import ConversationLifecycleManager, conversation_payload

__all__ = ["ConversationLifecycleManager", "conversation_payload"]
