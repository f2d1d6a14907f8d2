"""Tests for the background token refresh scheduler and the Entra provider."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from orgscope.errors import ReauthenticationRequired, TokenRefreshError
from orgscope.msal_util.token_client import RefreshedTokens, TokenEndpointUnavailable, TokenGrantRejected
from orgscope.session.manager import RefreshState, SessionManager, TokenGrant
from orgscope.session.providers import DemoTokenProvider, EntraTokenProvider
from orgscope.session.refresh import TokenRefreshScheduler


class ScriptedProvider:
    """Raises the queued errors in order, then issues fresh grants."""

    def __init__(self, clock, errors=()):
        self._clock = clock
        self.errors = list(errors)
        self.calls = 0

    def refresh(self, principal_id, grant):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return TokenGrant(token=f"tok-{self.calls + 1}", expires_at=self._clock() + timedelta(hours=1))


@pytest.fixture
def ended():
    return []


@pytest.fixture
def manager(clock, ended):
    manager = SessionManager(clock=clock)
    manager.add_listener(lambda session_id, reason: ended.append((session_id, reason)))
    return manager


def _scheduler(manager, provider, sleeps):
    return TokenRefreshScheduler(manager, provider, max_attempts=3, backoff_seconds=1.0, sleep=sleeps.append)


def _open(manager, clock):
    grant = TokenGrant(token="tok-1", expires_at=clock() + timedelta(hours=1), refresh_token="rt-1")
    return manager.create(7, grant)


def test_nothing_due(manager, clock):
    _open(manager, clock)
    provider = ScriptedProvider(clock)
    assert _scheduler(manager, provider, []).run_once() == 0
    assert provider.calls == 0


def test_refresh_ahead_replaces_token(manager, clock):
    view = _open(manager, clock)
    provider = ScriptedProvider(clock)
    clock.advance(minutes=56)

    assert _scheduler(manager, provider, []).run_once() == 1

    assert manager.access_token(view.session_id) == "tok-2"
    assert manager.get(view.session_id).refresh_state is RefreshState.VALID
    # The refresh token survives a response that omits it.
    clock.advance(minutes=56)
    [job] = manager.refresh_due()
    assert job.grant.refresh_token == "rt-1"


def test_transient_errors_retried_with_backoff(manager, clock):
    view = _open(manager, clock)
    provider = ScriptedProvider(clock, [TokenRefreshError("timeout"), TokenRefreshError("timeout")])
    sleeps = []
    clock.advance(minutes=56)

    _scheduler(manager, provider, sleeps).run_once()

    assert sleeps == [1.0, 2.0]
    assert provider.calls == 3
    assert manager.access_token(view.session_id) == "tok-4"


def test_three_failed_rounds_require_reauthentication(manager, clock, ended):
    view = _open(manager, clock)
    provider = ScriptedProvider(clock, [TokenRefreshError("timeout")] * 9)
    scheduler = _scheduler(manager, provider, [])
    clock.advance(minutes=56)

    scheduler.run_once()
    scheduler.run_once()
    assert manager.get(view.session_id).refresh_state is RefreshState.RETRYING
    scheduler.run_once()

    assert ended == [(view.session_id, "reauthentication_required")]
    assert provider.calls == 9


def test_rejected_grant_is_permanent(manager, clock, ended):
    view = _open(manager, clock)
    provider = ScriptedProvider(clock, [ReauthenticationRequired("refresh token rejected")])
    sleeps = []
    clock.advance(minutes=56)

    _scheduler(manager, provider, sleeps).run_once()

    assert provider.calls == 1
    assert sleeps == []
    assert ended == [(view.session_id, "reauthentication_required")]


def test_idle_sessions_swept_on_tick(manager, clock, ended):
    view = _open(manager, clock)
    clock.advance(hours=8)
    _scheduler(manager, DemoTokenProvider(clock=clock), []).run_once()
    assert ended == [(view.session_id, "idle_timeout")]


def test_demo_provider_issues_fresh_grants(clock):
    provider = DemoTokenProvider(lifetime=timedelta(minutes=30), clock=clock)
    first = provider.issue(1)
    second = provider.refresh(1, first)
    assert first.expires_at == clock() + timedelta(minutes=30)
    assert second.token != first.token


EXPIRES = datetime(2024, 3, 1, 11, 0, tzinfo=timezone.utc)


def test_entra_provider_maps_tokens():
    client = MagicMock()
    client.refresh.return_value = RefreshedTokens(access_token="at", expires_at=EXPIRES, refresh_token="rt-2")

    grant = EntraTokenProvider(client).refresh(7, TokenGrant("old", EXPIRES, "rt-1"))

    client.refresh.assert_called_once_with("rt-1")
    assert grant == TokenGrant(token="at", expires_at=EXPIRES, refresh_token="rt-2")


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (TokenEndpointUnavailable("ConnectionError"), TokenRefreshError),
        (TokenGrantRejected("invalid_grant"), ReauthenticationRequired),
    ],
)
def test_entra_provider_maps_errors(error, expected):
    client = MagicMock()
    client.refresh.side_effect = error
    with pytest.raises(expected):
        EntraTokenProvider(client).refresh(7, TokenGrant("old", EXPIRES, "rt-1"))


def test_entra_provider_without_refresh_token():
    client = MagicMock()
    with pytest.raises(ReauthenticationRequired):
        EntraTokenProvider(client).refresh(7, TokenGrant("old", EXPIRES, None))
    client.refresh.assert_not_called()
