"""
Background token refresh.

`TokenRefreshScheduler.run_once()` is one tick: refresh every session inside
the refresh-ahead window, with bounded retry and backoff per session, then
report each outcome to the `SessionManager` as a message. A round that ends
in failure counts as one consecutive failure; the manager hard-fails the
session to re-authentication once the limit is reached.

Sleeping for backoff happens on the worker thread only, so request handling
is never held up by a slow identity provider.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from orgscope.errors import ReauthenticationRequired, TokenRefreshError
from orgscope.retry import call_with_retry
from orgscope.session.manager import (
    RefreshJob,
    SessionManager,
    TokenProvider,
    TokenRefreshed,
    TokenRefreshFailed,
)

logger = logging.getLogger(__name__)


class TokenRefreshScheduler:
    def __init__(
        self,
        manager: SessionManager,
        provider: TokenProvider,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._manager = manager
        self._provider = provider
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep

    def run_once(self) -> int:
        jobs = self._manager.refresh_due()
        for job in jobs:
            self._manager.post(self._refresh(job))
        self._manager.sweep_idle()
        self._manager.process_events()
        return len(jobs)

    def _refresh(self, job: RefreshJob) -> TokenRefreshed | TokenRefreshFailed:
        try:
            grant = call_with_retry(
                lambda: self._provider.refresh(job.principal_id, job.grant),
                retry_on=(TokenRefreshError,),
                max_attempts=self._max_attempts,
                backoff_seconds=self._backoff_seconds,
                sleep=self._sleep,
                description="token refresh",
            )
        except TokenRefreshError as e:
            return TokenRefreshFailed(job.session_id, str(e) or type(e).__name__)
        except ReauthenticationRequired as e:
            return TokenRefreshFailed(job.session_id, str(e) or type(e).__name__, permanent=True)
        return TokenRefreshed(job.session_id, grant)
