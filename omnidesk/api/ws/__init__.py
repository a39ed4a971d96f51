"""Socket.IO namespaces."""

from omnidesk.api.ws.agent_namespace import AgentNamespace, register_agent_namespace

__all__ = ["AgentNamespace", "register_agent_namespace"]
