# Overview: Service-layer operations for concurrency; transaction boundaries, retry and error translation.

from __future__ import annotations

import time
from typing import Any, Callable

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import (
    ConflictError,
    NotFoundError,
    ReferentialError,
    TransientIOError,
    ValidationError,
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


class UnitOfWork:
    """
    Step tracker for one logical ledger operation.

    Services call uow.step("...") before each write so that a failure can be
    logged with the exact step it happened in.
    """

    def __init__(self, operation: str):
        self.operation = operation
        self.current_step = "begin"
        self.completed_steps: list[str] = []

    def step(self, name: str) -> None:
        if self.current_step != "begin":
            self.completed_steps.append(self.current_step)
        self.current_step = name


def translate_integrity_error(exc: IntegrityError) -> Exception:
    """Map backend constraint violations onto the domain taxonomy."""
    message = str(getattr(exc, "orig", exc)).lower()
    if "foreign key" in message:
        return ReferentialError("Operation blocked: the record is still referenced by other data")
    if "unique" in message or "duplicate" in message:
        return ConflictError("A record with the same unique value already exists")
    if "check constraint" in message or "stock_non_negative" in message:
        return ValidationError("Operation would violate a data constraint")
    return ConflictError("Operation conflicts with existing data")


_DOMAIN_ERRORS = (ValidationError, NotFoundError, ConflictError, ReferentialError)


def run_in_transaction(
    operation: str,
    func: Callable[[UnitOfWork], Any],
    *,
    attempts: int = 3,
    backoff_base: float = 0.1,
):
    """
    Run func as ONE database transaction: commit on success, rollback on any failure.

    - OperationalError / StaleDataError (locks, deadlocks, optimistic version
      conflicts) are retried with exponential backoff. When retries run out,
      OperationalError surfaces as TransientIOError and StaleDataError as
      ConflictError.
    - IntegrityError is translated (unique -> ConflictError, FK -> ReferentialError).
    - Domain errors propagate unchanged; nothing is written.

    func receives the UnitOfWork and must not commit itself. It may run more
    than once, so it must (re)load everything it touches.
    """
    logger = current_app.logger
    for attempt in range(attempts):
        uow = UnitOfWork(operation)
        try:
            result = func(uow)
            uow.step("commit")
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            logger.warning(
                "%s failed at step '%s' (attempt %d/%d): %s",
                operation, uow.current_step, attempt + 1, attempts, exc,
            )
            if attempt >= attempts - 1:
                logger.error(
                    "%s rolled back after %d attempts; completed steps before failure: %s",
                    operation, attempts, uow.completed_steps,
                )
                if isinstance(exc, StaleDataError):
                    raise ConflictError(f"{operation}: record was modified concurrently, reload and retry") from exc
                raise TransientIOError(f"{operation}: data store unavailable, try again") from exc
            time.sleep(backoff_base * (2 ** attempt))
        except IntegrityError as exc:
            db.session.rollback()
            logger.warning("%s failed at step '%s': %s", operation, uow.current_step, exc.orig)
            raise translate_integrity_error(exc) from exc
        except _DOMAIN_ERRORS as exc:
            db.session.rollback()
            logger.info("%s rejected at step '%s': %s", operation, uow.current_step, exc)
            raise
        except Exception:
            db.session.rollback()
            logger.exception("%s failed at step '%s'", operation, uow.current_step)
            raise


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Used for read paths; writes go through
    run_in_transaction.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise TransientIOError("Data store unavailable, try again") from exc
            time.sleep(backoff_base * (2 ** attempt))
