"""
Assistant conversations.

A conversation is bound at start to the scope request that was active for
its session; its `AssistantContext` is fixed from then on. Nothing said in the
conversation can widen it: when the bound request is invalidated (role
toggle, snapshot refresh, TTL, session end) the conversation is stale and
must be restarted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import secrets
import threading

from orgscope.errors import StaleScopeError
from orgscope.scope.requests import ScopeCoordinator, ScopeResult


@dataclass(frozen=True)
class Conversation:
    conversation_id: str
    session_id: str
    request_id: str
    started_at: datetime


class ConversationRegistry:
    def __init__(self, coordinator: ScopeCoordinator) -> None:
        self._coordinator = coordinator
        self._conversations: dict[str, Conversation] = {}
        self._lock = threading.Lock()

    def start(self, session_id: str, result: ScopeResult) -> Conversation:
        conversation = Conversation(
            conversation_id=secrets.token_urlsafe(16),
            session_id=session_id,
            request_id=result.request_id,
            started_at=result.computed_at,
        )
        with self._lock:
            # Older conversations of this session are bound to superseded requests.
            superseded = [
                cid
                for cid, c in self._conversations.items()
                if c.session_id == session_id and c.request_id != result.request_id
            ]
            for conversation_id in superseded:
                del self._conversations[conversation_id]
            self._conversations[conversation.conversation_id] = conversation
        return conversation

    def get(self, conversation_id: str, session_id: str) -> Conversation | None:
        with self._lock:
            conversation = self._conversations.get(conversation_id)
        if conversation is None or conversation.session_id != session_id:
            return None
        return conversation

    def scope_for(self, conversation: Conversation) -> ScopeResult:
        """The bound scope, or `StaleScopeError` if it is no longer the active one."""
        result = self._coordinator.active_result(conversation.session_id)
        if result.request_id != conversation.request_id:
            raise StaleScopeError("conversation scope was superseded; start a new conversation")
        return result

    def end_session(self, session_id: str, reason: str) -> None:
        with self._lock:
            ended = [cid for cid, c in self._conversations.items() if c.session_id == session_id]
            for conversation_id in ended:
                del self._conversations[conversation_id]
