from __future__ import annotations

from collections.abc import Generator, Iterator
from contextlib import contextmanager

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from orgscope.db.filters import SCOPE_INFO_KEY
from orgscope.settings import get_settings


_settings = get_settings()

engine = create_engine(
    _settings.resolved_db_url(),
    connect_args={"check_same_thread": False} if _settings.resolved_db_url().startswith("sqlite") else {},
)

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, class_=Session)


def get_session_factory(request: Request) -> sessionmaker:
    services = getattr(request.app.state, "services", None)
    return services.session_factory if services is not None else SessionLocal


@contextmanager
def scoped_session(session_factory: sessionmaker, predicate) -> Iterator[Session]:
    """Session whose ORM selects are limited by `predicate` (a `CatalogPredicate`)."""
    db = session_factory()
    db.info[SCOPE_INFO_KEY] = predicate
    try:
        yield db
    finally:
        db.close()


def get_db(request: Request) -> Generator[Session, None, None]:
    """
    Main DB dependency.

    When the request resolved a scope, its compiled catalog predicate is put
    on `Session.info`; the `do_orm_execute` hook in `orgscope.db.filters`
    then scopes every ORM select on this session.
    """

    db = get_session_factory(request)()
    try:
        predicate = getattr(getattr(request, "state", None), "catalog_predicate", None)
        if predicate is not None:
            db.info[SCOPE_INFO_KEY] = predicate
        yield db
    finally:
        db.close()
