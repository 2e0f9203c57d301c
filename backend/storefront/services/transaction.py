# Overview: Unit-of-work scopes, row locking and retry helpers shared by all services.

"""
Transaction handling.

Every mutating service function takes an optional `uow` keyword. Called
without one it opens its own scope and commits (or rolls back) before
returning; called with one it joins the caller's scope and leaves the commit
to the caller. This lets order creation, commission creation and payment
initiation share one atomic unit without any module-level transaction state.

    with unit_of_work() as uow:
        order = create_order(..., uow=uow)
        cart_service.clear_cart(owner, uow=uow)
    # committed here; after-commit hooks (cache invalidation) run now
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Callable

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StorefrontError
from ..extensions import db


class UnitOfWork:
    """A single transactional scope over the Flask-SQLAlchemy session."""

    def __init__(self, session):
        self.session = session
        self._after_commit: list[Callable[[], None]] = []

    def add(self, instance):
        self.session.add(instance)
        return instance

    def flush(self) -> None:
        self.session.flush()

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Defer a side effect (cache invalidation) until the scope commits."""
        self._after_commit.append(callback)

    def _run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            callback()


@contextmanager
def unit_of_work(uow: UnitOfWork | None = None):
    if uow is not None:
        yield uow
        return

    work = UnitOfWork(db.session)
    try:
        yield work
        work.session.commit()
    except Exception:
        work.session.rollback()
        raise
    work._run_after_commit()


@contextmanager
def best_effort(uow: UnitOfWork, description: str):
    """
    Run a secondary write inside a savepoint and tolerate its failure.

    A failure rolls back only the savepoint and is logged as a warning; the
    enclosing unit of work carries on.
    """
    try:
        with uow.session.begin_nested():
            yield
    except (SQLAlchemyError, StorefrontError):
        current_app.logger.warning("Best-effort step failed: %s", description, exc_info=True)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but PostgreSQL honors it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a top-level DB operation with retry on concurrency failures.

    Only wrap calls that own their unit of work; a joined scope must let the
    error reach its owner.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning("Retrying after concurrency conflict (attempt %s)", attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
