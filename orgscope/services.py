"""
Service wiring.

`build_services()` assembles the long-lived objects from `Settings` and the
scope configuration; `create_app()` keeps the result on `app.state.services`.
Tests build their own container with a static directory source and a fake
clock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
import logging
import time
from typing import Callable

from sqlalchemy.orm import sessionmaker

from orgscope.directory.sources import DatabaseDirectorySource, DirectorySource, GraphDirectorySource
from orgscope.directory.store import SnapshotStore
from orgscope.msal_util.config import EntraConfig
from orgscope.msal_util.token_client import EntraTokenClient
from orgscope.msal_util.validator import EntraTokenValidator
from orgscope.scope.compiler import FilterCompiler, FilterSchema
from orgscope.scope.conversations import ConversationRegistry
from orgscope.scope.override import RoleOverrideController
from orgscope.scope.privacy import CohortPrivacyGuard
from orgscope.scope.requests import ScopeCoordinator
from orgscope.security.config import ScopeConfig
from orgscope.session.manager import SessionManager, TokenProvider
from orgscope.session.providers import DemoTokenProvider, EntraTokenProvider
from orgscope.session.refresh import TokenRefreshScheduler
from orgscope.settings import Settings
from orgscope.workers import PeriodicWorker

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ScopeServices:
    settings: Settings
    scope_config: ScopeConfig
    session_factory: sessionmaker
    store: SnapshotStore
    compiler: FilterCompiler
    overrides: RoleOverrideController
    coordinator: ScopeCoordinator
    conversations: ConversationRegistry
    sessions: SessionManager
    token_provider: TokenProvider
    refresher: TokenRefreshScheduler
    guard: CohortPrivacyGuard
    validator: EntraTokenValidator | None = None
    workers: list[PeriodicWorker] = field(default_factory=list)

    def start_workers(self) -> None:
        if not self.workers:
            self.workers = [
                PeriodicWorker(
                    "directory-refresh",
                    self.store.refresh_if_due,
                    self.settings.directory_refresh_interval_seconds,
                ),
                PeriodicWorker(
                    "token-refresh",
                    self.refresher.run_once,
                    self.settings.token_refresh_interval_seconds,
                ),
            ]
        for worker in self.workers:
            worker.start()

    def stop_workers(self) -> None:
        for worker in self.workers:
            worker.stop()


def _default_source(settings: Settings, scope_config: ScopeConfig, session_factory: sessionmaker) -> DirectorySource:
    if settings.directory_source == "graph":
        return GraphDirectorySource(EntraConfig.from_environ(), scope_config)
    return DatabaseDirectorySource(session_factory)


def build_services(
    settings: Settings,
    scope_config: ScopeConfig,
    *,
    session_factory: sessionmaker,
    source: DirectorySource | None = None,
    token_provider: TokenProvider | None = None,
    clock: Callable[[], datetime] = _utcnow,
    sleep: Callable[[float], None] = time.sleep,
) -> ScopeServices:
    store = SnapshotStore(
        source or _default_source(settings, scope_config, session_factory),
        region_codes=scope_config.region_codes,
        ttl=timedelta(seconds=settings.directory_ttl_seconds),
        max_stale=timedelta(seconds=settings.directory_max_stale_seconds),
        max_attempts=settings.retry_max_attempts,
        backoff_seconds=settings.retry_backoff_seconds,
        clock=clock,
        sleep=sleep,
    )
    compiler = FilterCompiler(FilterSchema.from_config(scope_config))
    overrides = RoleOverrideController(clock=clock)
    coordinator = ScopeCoordinator(
        store,
        compiler,
        overrides,
        scope_ttl=timedelta(seconds=settings.scope_ttl_seconds),
        clock=clock,
    )
    conversations = ConversationRegistry(coordinator)

    sessions = SessionManager(
        refresh_threshold=timedelta(seconds=settings.token_refresh_threshold_seconds),
        idle_timeout=timedelta(seconds=settings.session_idle_timeout_seconds),
        max_consecutive_failures=settings.token_max_consecutive_failures,
        clock=clock,
    )
    sessions.add_listener(coordinator.invalidate_session)
    sessions.add_listener(conversations.end_session)

    validator = None
    if token_provider is None:
        if settings.auth_mode == "entra":
            entra = EntraConfig.from_environ()
            validator = EntraTokenValidator(entra)
            token_provider = EntraTokenProvider(EntraTokenClient(entra))
        else:
            token_provider = DemoTokenProvider(
                lifetime=timedelta(seconds=settings.demo_token_lifetime_seconds),
                clock=clock,
            )

    refresher = TokenRefreshScheduler(
        sessions,
        token_provider,
        max_attempts=settings.retry_max_attempts,
        backoff_seconds=settings.retry_backoff_seconds,
        sleep=sleep,
    )

    logger.info(
        "Services built auth_mode=%s directory_source=%s regions=%s",
        settings.auth_mode,
        settings.directory_source if source is None else type(source).__name__,
        sorted(scope_config.region_codes),
    )
    return ScopeServices(
        settings=settings,
        scope_config=scope_config,
        session_factory=session_factory,
        store=store,
        compiler=compiler,
        overrides=overrides,
        coordinator=coordinator,
        conversations=conversations,
        sessions=sessions,
        token_provider=token_provider,
        refresher=refresher,
        guard=CohortPrivacyGuard(settings.min_cohort_size),
        validator=validator,
    )
