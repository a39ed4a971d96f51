"""Result of routing an inbound message."""

from dataclasses import dataclass
from enum import Enum


class RoutingDecision(str, Enum):
    HANDLED_BY_BOT = "handled_by_bot"
    ASSIGNED_TO_AGENT = "assigned_to_agent"
    QUEUED_PENDING = "queued_pending"


@dataclass(frozen=True)
class RoutingOutcome:
    """Where a message ended up; ``agent_id`` is set for ASSIGNED_TO_AGENT."""

    kind: RoutingDecision
    agent_id: str | None = None

    @classmethod
    def bot(cls) -> "RoutingOutcome":
        return cls(RoutingDecision.HANDLED_BY_BOT)

    @classmethod
    def agent(cls, agent_id: str) -> "RoutingOutcome":
        return cls(RoutingDecision.ASSIGNED_TO_AGENT, agent_id)

    @classmethod
    def queued(cls) -> "RoutingOutcome":
        return cls(RoutingDecision.QUEUED_PENDING)
