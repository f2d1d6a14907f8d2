"""
Scope request lifecycle.

    Requested -> Resolving -> Compiled -> Active -> Invalidated

Any non-final state may also jump straight to Invalidated. Invalidation
sources: a newer request for the same session (role toggle, dashboard
reload), a new directory snapshot version, scope TTL expiry, session end.

`ScopeCoordinator` keeps at most one current request per session ("last
request wins"). Cancellation is cooperative: a resolution checks its request
at each stage and an invalidated request can never reach Active, so its
partially computed artifacts are dropped instead of applied.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
import threading
import uuid
from typing import Callable

from orgscope.directory.records import RoleLevel
from orgscope.directory.snapshot import DirectorySnapshot
from orgscope.directory.store import SnapshotStore
from orgscope.errors import DirectoryUnavailable, NoDataAvailable, StaleScopeError
from orgscope.scope.compiler import CompiledArtifacts, FilterCompiler
from orgscope.scope.override import OverrideDecision, Principal, RoleOverrideController
from orgscope.scope.resolver import HierarchyResolver
from orgscope.scope.types import DataScope

logger = logging.getLogger(__name__)


class ScopeRequestState(str, Enum):
    REQUESTED = "requested"
    RESOLVING = "resolving"
    COMPILED = "compiled"
    ACTIVE = "active"
    INVALIDATED = "invalidated"


_TRANSITIONS: dict[ScopeRequestState, frozenset[ScopeRequestState]] = {
    ScopeRequestState.REQUESTED: frozenset({ScopeRequestState.RESOLVING, ScopeRequestState.INVALIDATED}),
    ScopeRequestState.RESOLVING: frozenset({ScopeRequestState.COMPILED, ScopeRequestState.INVALIDATED}),
    ScopeRequestState.COMPILED: frozenset({ScopeRequestState.ACTIVE, ScopeRequestState.INVALIDATED}),
    ScopeRequestState.ACTIVE: frozenset({ScopeRequestState.INVALIDATED}),
    ScopeRequestState.INVALIDATED: frozenset(),
}


@dataclass(frozen=True)
class ScopeResult:
    request_id: str
    principal_id: int
    decision: OverrideDecision
    scope: DataScope
    artifacts: CompiledArtifacts
    computed_at: datetime
    stale: bool = False


class ScopeRequest:
    def __init__(
        self,
        session_id: str,
        principal_id: int,
        requested_level: RoleLevel | None,
        created_at: datetime,
    ) -> None:
        self.request_id = uuid.uuid4().hex
        self.session_id = session_id
        self.principal_id = principal_id
        self.requested_level = requested_level
        self.created_at = created_at
        self.snapshot_version: int | None = None
        self.invalidation_reason: str | None = None
        self._state = ScopeRequestState.REQUESTED
        self._result: ScopeResult | None = None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"ScopeRequest(id={self.request_id[:8]}, principal={self.principal_id}, state={self._state.value})"

    @property
    def state(self) -> ScopeRequestState:
        return self._state

    @property
    def invalidated(self) -> bool:
        return self._state is ScopeRequestState.INVALIDATED

    def transition(self, new_state: ScopeRequestState, result: ScopeResult | None = None) -> None:
        with self._lock:
            if self._state is ScopeRequestState.INVALIDATED:
                raise StaleScopeError(f"scope request invalidated ({self.invalidation_reason})")
            if new_state not in _TRANSITIONS[self._state]:
                raise ValueError(f"illegal scope request transition {self._state.value} -> {new_state.value}")
            self._state = new_state
            if result is not None:
                self._result = result

    def invalidate(self, reason: str) -> bool:
        with self._lock:
            if self._state is ScopeRequestState.INVALIDATED:
                return False
            self._state = ScopeRequestState.INVALIDATED
            self.invalidation_reason = reason
            self._result = None
        logger.debug("Invalidated %r reason=%s", self, reason)
        return True

    def result(self) -> ScopeResult:
        """The compiled result; `StaleScopeError` once invalidated."""
        with self._lock:
            if self._state is ScopeRequestState.INVALIDATED:
                raise StaleScopeError(f"scope request invalidated ({self.invalidation_reason})")
            if self._result is None:
                raise StaleScopeError(f"scope request not compiled (state {self._state.value})")
            return self._result


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScopeCoordinator:
    def __init__(
        self,
        store: SnapshotStore,
        compiler: FilterCompiler,
        overrides: RoleOverrideController,
        *,
        scope_ttl: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._compiler = compiler
        self._overrides = overrides
        self._scope_ttl = scope_ttl
        self._clock = clock
        self._current: dict[str, ScopeRequest] = {}
        self._last_good: dict[str, ScopeResult] = {}
        self._lock = threading.Lock()
        store.subscribe(self.on_snapshot_activated)

    # ---- request flow -----------------------------------------------------------------

    def begin(self, session_id: str, principal_id: int, requested_level: RoleLevel | None) -> ScopeRequest:
        request = ScopeRequest(session_id, principal_id, requested_level, self._clock())
        with self._lock:
            previous = self._current.get(session_id)
            self._current[session_id] = request
        if previous is not None:
            previous.invalidate("superseded")
        return request

    def resolve(self, request: ScopeRequest) -> ScopeResult:
        try:
            request.transition(ScopeRequestState.RESOLVING)
            read = self._store.read()
            request.snapshot_version = read.snapshot.version

            resolver = HierarchyResolver(read.snapshot)
            anchor = resolver.resolve_anchor(request.principal_id)
            decision = self._overrides.decide(Principal(anchor.id, anchor.role_level), request.requested_level)
            scope = resolver.compute_scope(anchor, decision.level)
            artifacts = self._compiler.compile_all(scope)

            result = ScopeResult(
                request_id=request.request_id,
                principal_id=request.principal_id,
                decision=decision,
                scope=scope,
                artifacts=artifacts,
                computed_at=self._clock(),
                stale=read.stale,
            )
            request.transition(ScopeRequestState.COMPILED, result)
            self._activate(request, result)
            return result
        except StaleScopeError:
            raise
        except Exception as e:
            request.invalidate(f"failed: {type(e).__name__}")
            raise

    def request_scope(self, session_id: str, principal_id: int, requested_level: RoleLevel | None) -> ScopeResult:
        """
        Begin and resolve a request. When the directory is unavailable, serve
        the session's last-known-good result flagged stale if it is within
        the scope TTL, else raise `NoDataAvailable`.
        """

        request = self.begin(session_id, principal_id, requested_level)
        try:
            return self.resolve(request)
        except DirectoryUnavailable as e:
            fallback = self._fallback(session_id, principal_id, requested_level)
            if fallback is None:
                logger.warning("No data available for principal=%s: %s", principal_id, e)
                raise NoDataAvailable("directory unavailable and no cached scope") from e
            logger.warning("Serving last-known-good scope for principal=%s (stale)", principal_id)
            return fallback

    def current(self, session_id: str) -> ScopeRequest | None:
        with self._lock:
            request = self._current.get(session_id)
        if request is not None and request.state is ScopeRequestState.ACTIVE:
            result = request.result()
            if self._clock() - result.computed_at > self._scope_ttl:
                request.invalidate("ttl_expired")
        return request

    def active_result(self, session_id: str) -> ScopeResult:
        request = self.current(session_id)
        if request is None:
            raise StaleScopeError("no scope resolved for session")
        if request.state is not ScopeRequestState.ACTIVE:
            raise StaleScopeError(f"scope request not active (state {request.state.value})")
        return request.result()

    # ---- invalidation sources ---------------------------------------------------------

    def invalidate_session(self, session_id: str, reason: str) -> None:
        with self._lock:
            request = self._current.pop(session_id, None)
            self._last_good.pop(session_id, None)
        if request is not None:
            request.invalidate(f"session_ended: {reason}")

    def on_snapshot_activated(self, snapshot: DirectorySnapshot) -> None:
        with self._lock:
            requests = list(self._current.values())
            self._last_good.clear()
        count = 0
        for request in requests:
            if request.snapshot_version is not None and request.snapshot_version != snapshot.version:
                count += request.invalidate("snapshot_refreshed")
        if count:
            logger.info("Snapshot v%s invalidated %s active scope requests", snapshot.version, count)

    # ---- internals --------------------------------------------------------------------

    def _activate(self, request: ScopeRequest, result: ScopeResult) -> None:
        with self._lock:
            is_current = self._current.get(request.session_id) is request
            same_version = self._store.version == result.scope.snapshot_version or result.stale
            if is_current and same_version:
                request.transition(ScopeRequestState.ACTIVE)
                self._last_good[request.session_id] = result
                return
        request.invalidate("superseded" if not is_current else "snapshot_refreshed")
        raise StaleScopeError("scope request superseded before activation")

    def _fallback(self, session_id: str, principal_id: int, requested_level: RoleLevel | None) -> ScopeResult | None:
        with self._lock:
            cached = self._last_good.get(session_id)
        if cached is None or cached.principal_id != principal_id:
            return None
        if cached.decision.requested_level != (RoleLevel(requested_level) if requested_level else None):
            return None
        if self._clock() - cached.computed_at > self._scope_ttl:
            return None

        request = self.begin(session_id, principal_id, requested_level)
        request.snapshot_version = cached.scope.snapshot_version
        stale = replace(cached, request_id=request.request_id, stale=True)
        request.transition(ScopeRequestState.RESOLVING)
        request.transition(ScopeRequestState.COMPILED, stale)
        with self._lock:
            if self._current.get(session_id) is request:
                request.transition(ScopeRequestState.ACTIVE)
                return stale
        request.invalidate("superseded")
        return None
