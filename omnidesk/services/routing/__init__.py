"""Routing of inbound messages to the bot or a human agent."""

from omnidesk.services.routing.assigner import AgentAssigner
from omnidesk.services.routing.business_hours import is_business_hours
from omnidesk.services.routing.engine import RoutingEngine
from omnidesk.services.routing.outcome import RoutingDecision, RoutingOutcome

__all__ = [
    "AgentAssigner",
    "RoutingDecision",
    "RoutingEngine",
    "RoutingOutcome",
    "is_business_hours",
]
