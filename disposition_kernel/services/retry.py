"""
Persistence error translation and bounded retry.

Responsibility:
    Converts driver-level storage failures into ``PersistenceError`` and
    re-runs a whole unit of work, in a fresh session, when one occurs.

Architecture position:
    Kernel > Services -- imperative shell.  Used by callers that own the
    transaction boundary (API handlers, batch tooling).

Invariants enforced:
    MAX_ATTEMPTS -- safety limit on re-runs.
    Only ``PersistenceError`` is retried.  Business-rule errors would
    repeat identically and propagate on the first attempt.

Usage:
    outcome = run_with_retry(
        "decide",
        lambda session: DecisionEngine(session).decide(ref, actor, payload),
    )
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Callable, ContextManager, Generator, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.orm import Session

from disposition_kernel.db.engine import session_scope
from disposition_kernel.exceptions import PersistenceError
from disposition_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")

MAX_ATTEMPTS = 3


@contextmanager
def translate_store_errors(operation: str) -> Generator[None, None, None]:
    """Re-raise connection-level SQLAlchemy failures as PersistenceError."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.error(
            "persistence_failure",
            extra={"operation": operation, "error": type(exc.orig).__name__ if exc.orig else None},
        )
        raise PersistenceError(operation, str(exc.orig or exc)) from exc


def run_with_retry(
    operation: str,
    work: Callable[[Session], T],
    *,
    max_attempts: int = MAX_ATTEMPTS,
    scope: Callable[[], ContextManager[Session]] = session_scope,
    backoff_seconds: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``work`` inside a transactional scope, retrying on PersistenceError.

    Each attempt gets a fresh session from ``scope``; a failed attempt is
    rolled back in full before the next one starts.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            with translate_store_errors(operation):
                with scope() as session:
                    return work(session)
        except PersistenceError as exc:
            if attempt >= max_attempts:
                logger.error(
                    "persistence_retry_exhausted",
                    extra={"operation": operation, "attempts": attempt},
                )
                raise
            logger.warning(
                "persistence_retry",
                extra={
                    "operation": operation,
                    "attempt": attempt,
                    "max_attempts": max_attempts,
                    "detail": exc.detail,
                },
            )
            sleep(backoff_seconds * attempt)
