"""
Session manager: sole owner of identity-provider token material.

Other components get a token-free `SessionView`; the only way to obtain the
token is `access_token()`, which fails fast with `ReauthenticationRequired`
when the token is expired or the session is gone. It never waits for a
refresh in progress.

Token refresh happens elsewhere (`orgscope.session.refresh`): the scheduler
asks `refresh_due()` for work and reports outcomes back as messages through
`post()`. Messages are applied by `process_events()`, which both the
scheduler and the request path call; the queue is the only channel between
them.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging
import queue
import secrets
import threading
from typing import Callable, Protocol, Union

from orgscope.errors import ReauthenticationRequired

logger = logging.getLogger(__name__)


class RefreshState(str, Enum):
    VALID = "valid"
    REFRESHING = "refreshing"
    RETRYING = "retrying"
    REAUTH_REQUIRED = "reauth_required"


@dataclass(frozen=True)
class TokenGrant:
    token: str
    expires_at: datetime
    refresh_token: str | None = None


class TokenProvider(Protocol):
    """
    Identity collaborator. `refresh` raises `TokenRefreshError` for transient
    failures and `ReauthenticationRequired` when the grant is dead.
    """

    def refresh(self, principal_id: int, grant: TokenGrant) -> TokenGrant: ...


@dataclass(frozen=True)
class SessionView:
    session_id: str
    principal_id: int
    issued_at: datetime
    expires_at: datetime
    last_activity: datetime
    refresh_state: RefreshState


@dataclass(frozen=True)
class RefreshJob:
    session_id: str
    principal_id: int
    grant: TokenGrant


@dataclass(frozen=True)
class TokenRefreshed:
    session_id: str
    grant: TokenGrant


@dataclass(frozen=True)
class TokenRefreshFailed:
    session_id: str
    error: str
    permanent: bool = False


SessionEvent = Union[TokenRefreshed, TokenRefreshFailed]
TerminationListener = Callable[[str, str], None]


@dataclass
class _Session:
    session_id: str
    principal_id: int
    grant: TokenGrant
    issued_at: datetime
    last_activity: datetime
    refresh_state: RefreshState = RefreshState.VALID
    consecutive_failures: int = 0

    def view(self) -> SessionView:
        return SessionView(
            session_id=self.session_id,
            principal_id=self.principal_id,
            issued_at=self.issued_at,
            expires_at=self.grant.expires_at,
            last_activity=self.last_activity,
            refresh_state=self.refresh_state,
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionManager:
    def __init__(
        self,
        *,
        refresh_threshold: timedelta = timedelta(minutes=5),
        idle_timeout: timedelta = timedelta(hours=8),
        max_consecutive_failures: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._refresh_threshold = refresh_threshold
        self._idle_timeout = idle_timeout
        self._max_failures = max_consecutive_failures
        self._clock = clock
        self._sessions: dict[str, _Session] = {}
        self._lock = threading.RLock()
        self._events: queue.Queue[SessionEvent] = queue.Queue()
        self._listeners: list[TerminationListener] = []

    # ---- lifecycle --------------------------------------------------------------------

    def add_listener(self, listener: TerminationListener) -> None:
        """Call `listener(session_id, reason)` whenever a session ends."""
        self._listeners.append(listener)

    def create(self, principal_id: int, grant: TokenGrant) -> SessionView:
        now = self._clock()
        if grant.expires_at <= now:
            raise ReauthenticationRequired("token already expired")
        session = _Session(
            session_id=secrets.token_urlsafe(32),
            principal_id=principal_id,
            grant=grant,
            issued_at=now,
            last_activity=now,
        )
        with self._lock:
            self._sessions[session.session_id] = session
        logger.info("Session created principal=%s expires_at=%s", principal_id, grant.expires_at.isoformat())
        return session.view()

    def terminate(self, session_id: str, reason: str = "logout") -> bool:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        logger.info("Session ended principal=%s reason=%s", session.principal_id, reason)
        for listener in list(self._listeners):
            listener(session_id, reason)
        return True

    def sweep_idle(self) -> list[str]:
        now = self._clock()
        with self._lock:
            idle = [s.session_id for s in self._sessions.values() if now - s.last_activity >= self._idle_timeout]
        for session_id in idle:
            self.terminate(session_id, "idle_timeout")
        return idle

    # ---- request path -----------------------------------------------------------------

    def get(self, session_id: str, *, touch: bool = True) -> SessionView:
        self.process_events()
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise ReauthenticationRequired("unknown session")
        if now - session.last_activity >= self._idle_timeout:
            self.terminate(session_id, "idle_timeout")
            raise ReauthenticationRequired("session idle timeout")
        if session.refresh_state is RefreshState.REAUTH_REQUIRED:
            raise ReauthenticationRequired("session requires sign-in")
        if session.grant.expires_at <= now:
            raise ReauthenticationRequired("token expired")
        if touch:
            with self._lock:
                session.last_activity = now
        return session.view()

    def access_token(self, session_id: str) -> str:
        self.get(session_id)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise ReauthenticationRequired("unknown session")
            return session.grant.token

    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    # ---- refresh channel --------------------------------------------------------------

    def refresh_due(self) -> list[RefreshJob]:
        """Sessions whose token lifetime dropped below the threshold; marks them REFRESHING."""
        now = self._clock()
        jobs: list[RefreshJob] = []
        with self._lock:
            for session in self._sessions.values():
                if session.refresh_state in (RefreshState.REFRESHING, RefreshState.REAUTH_REQUIRED):
                    continue
                if session.grant.expires_at - now < self._refresh_threshold:
                    session.refresh_state = RefreshState.REFRESHING
                    jobs.append(RefreshJob(session.session_id, session.principal_id, session.grant))
        return jobs

    def post(self, event: SessionEvent) -> None:
        self._events.put(event)

    def process_events(self) -> int:
        applied = 0
        hard_failed: list[str] = []
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            applied += 1
            with self._lock:
                session = self._sessions.get(event.session_id)
                if session is None:
                    continue
                if isinstance(event, TokenRefreshed):
                    session.grant = replace(
                        event.grant,
                        refresh_token=event.grant.refresh_token or session.grant.refresh_token,
                    )
                    session.refresh_state = RefreshState.VALID
                    session.consecutive_failures = 0
                    logger.debug("Token refreshed principal=%s", session.principal_id)
                    continue
                session.consecutive_failures += 1
                if event.permanent or session.consecutive_failures >= self._max_failures:
                    session.refresh_state = RefreshState.REAUTH_REQUIRED
                    hard_failed.append(session.session_id)
                else:
                    session.refresh_state = RefreshState.RETRYING
                logger.warning(
                    "Token refresh failed principal=%s failures=%s permanent=%s error=%s",
                    session.principal_id,
                    session.consecutive_failures,
                    event.permanent,
                    event.error,
                )
        for session_id in hard_failed:
            self.terminate(session_id, "reauthentication_required")
        return applied
