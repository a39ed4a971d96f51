"""Presence tracker - which agents currently hold live realtime connections."""

import threading
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class _Connection:
    agent_id: str
    company_id: str | None
    department_id: str | None


class PresenceTracker:
    """Process-local map of agents to their open connections.

    An agent is online while it has at least one connection. Nothing here is
    persisted; a restart starts from an empty map. Methods never await, and
    every mutation is done under a lock so the tracker is also safe to use
    from worker threads.
    """

    def __init__(self) -> None:
        self._agent_connections: dict[str, set[str]] = {}
        self._connections: dict[str, _Connection] = {}
        self._lock = threading.Lock()

    def connect(
        self,
        agent_id: str,
        connection_id: str,
        company_id: str | None = None,
        department_id: str | None = None,
    ) -> bool:
        """Register a connection.

        Returns:
            True if this was the agent's first connection (it just came online)
        """
        with self._lock:
            previous = self._connections.get(connection_id)
            if previous is not None and previous.agent_id != agent_id:
                self._drop(connection_id)

            connections = self._agent_connections.setdefault(agent_id, set())
            came_online = not connections
            connections.add(connection_id)
            self._connections[connection_id] = _Connection(agent_id, company_id, department_id)

        if came_online:
            logger.debug("Agent online", agent_id=agent_id, company_id=company_id)
        return came_online

    def disconnect(self, connection_id: str) -> str | None:
        """Remove a connection and return the agent that owned it."""
        with self._lock:
            connection = self._drop(connection_id)
        return connection.agent_id if connection else None

    def _drop(self, connection_id: str) -> _Connection | None:
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None
        remaining = self._agent_connections.get(connection.agent_id)
        if remaining is not None:
            remaining.discard(connection_id)
            if not remaining:
                del self._agent_connections[connection.agent_id]
        return connection

    def is_online(self, agent_id: str) -> bool:
        with self._lock:
            return bool(self._agent_connections.get(agent_id))

    def connection_count(self, agent_id: str) -> int:
        with self._lock:
            return len(self._agent_connections.get(agent_id, ()))

    def online_agents(self, company_id: str | None = None) -> set[str]:
        """Agents with at least one connection, optionally for one company."""
        with self._lock:
            if company_id is None:
                return set(self._agent_connections)
            return {
                conn.agent_id for conn in self._connections.values() if conn.company_id == company_id
            }

    def clear(self) -> None:
        with self._lock:
            self._agent_connections.clear()
            self._connections.clear()
