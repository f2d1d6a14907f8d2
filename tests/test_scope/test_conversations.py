"""Tests for assistant conversations bound to a scope request."""

from types import SimpleNamespace

import pytest

from orgscope.errors import StaleScopeError
from orgscope.scope.conversations import ConversationRegistry


class StubCoordinator:
    def __init__(self):
        self.active = {}

    def active_result(self, session_id):
        if session_id not in self.active:
            raise StaleScopeError("no scope resolved for session")
        return self.active[session_id]


@pytest.fixture
def coordinator():
    return StubCoordinator()


@pytest.fixture
def registry(coordinator):
    return ConversationRegistry(coordinator)


def result(request_id, clock):
    return SimpleNamespace(request_id=request_id, computed_at=clock())


def test_conversation_uses_its_bound_scope(registry, coordinator, clock):
    coordinator.active["s1"] = result("r1", clock)
    conversation = registry.start("s1", coordinator.active["s1"])

    assert registry.get(conversation.conversation_id, "s1") is conversation
    assert registry.get(conversation.conversation_id, "s2") is None
    assert registry.scope_for(conversation).request_id == "r1"


def test_superseded_scope_makes_conversation_stale(registry, coordinator, clock):
    coordinator.active["s1"] = result("r1", clock)
    conversation = registry.start("s1", coordinator.active["s1"])

    coordinator.active["s1"] = result("r2", clock)

    with pytest.raises(StaleScopeError):
        registry.scope_for(conversation)


def test_restart_drops_superseded_conversations(registry, clock):
    first = registry.start("s1", result("r1", clock))
    same_scope = registry.start("s1", result("r1", clock))
    other_session = registry.start("s2", result("r9", clock))

    restarted = registry.start("s1", result("r2", clock))

    assert registry.get(first.conversation_id, "s1") is None
    assert registry.get(same_scope.conversation_id, "s1") is None
    assert registry.get(restarted.conversation_id, "s1") is restarted
    assert registry.get(other_session.conversation_id, "s2") is other_session


def test_repeated_toggles_keep_one_conversation_per_session(registry, clock):
    for i in range(50):
        registry.start("s1", result(f"r{i}", clock))
    assert len(registry._conversations) == 1


def test_conversations_share_an_unchanged_scope(registry, clock):
    first = registry.start("s1", result("r1", clock))
    second = registry.start("s1", result("r1", clock))
    assert registry.get(first.conversation_id, "s1") is first
    assert registry.get(second.conversation_id, "s1") is second


def test_session_end_removes_conversations(registry, clock):
    conversation = registry.start("s1", result("r1", clock))
    registry.end_session("s1", "logout")
    assert registry.get(conversation.conversation_id, "s1") is None
