"""Tests for the presence tracker."""

from omnidesk.services.presence import PresenceTracker


def test_agent_online_while_any_connection_remains():
    tracker = PresenceTracker()

    assert tracker.connect("agent-a", "sid-1", company_id="acme") is True
    assert tracker.connect("agent-a", "sid-2", company_id="acme") is False
    assert tracker.connection_count("agent-a") == 2

    assert tracker.disconnect("sid-1") == "agent-a"
    assert tracker.is_online("agent-a")

    tracker.disconnect("sid-2")
    assert not tracker.is_online("agent-a")
    assert tracker.online_agents() == set()


def test_unknown_connection_disconnect_is_ignored():
    tracker = PresenceTracker()
    assert tracker.disconnect("missing") is None


def test_online_agents_filtered_by_company():
    tracker = PresenceTracker()
    tracker.connect("agent-a", "sid-1", company_id="acme")
    tracker.connect("agent-x", "sid-2", company_id="globex")

    assert tracker.online_agents("acme") == {"agent-a"}
    assert tracker.online_agents() == {"agent-a", "agent-x"}


def test_reused_connection_id_moves_to_new_agent():
    tracker = PresenceTracker()
    tracker.connect("agent-a", "sid-1", company_id="acme")
    tracker.connect("agent-b", "sid-1", company_id="acme")

    assert not tracker.is_online("agent-a")
    assert tracker.is_online("agent-b")


def test_clear():
    tracker = PresenceTracker()
    tracker.connect("agent-a", "sid-1")
    tracker.clear()
    assert not tracker.is_online("agent-a")
