"""Inbound and outbound message flows."""

from omnidesk.services.messaging.inbound import InboundMessageProcessor, InboundResult
from omnidesk.services.messaging.outbound import OutboundMessenger

__all__ = ["InboundMessageProcessor", "InboundResult", "OutboundMessenger"]
