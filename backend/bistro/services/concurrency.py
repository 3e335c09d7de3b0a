# Overview: Transaction plumbing shared by the ledger and lifecycle services.

from __future__ import annotations

import logging
import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict
from ..extensions import db

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_BACKOFF = 0.1
MAX_BACKOFF = 1.0


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id column on
    the locked model turns a lost race into StaleDataError at flush time.
    """
    return query.with_for_update()


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    if has_app_context():
        cfg = current_app.config
        if attempts is None:
            attempts = cfg.get("TRANSACTION_RETRY_ATTEMPTS", DEFAULT_ATTEMPTS)
        if backoff_base is None:
            backoff_base = cfg.get("TRANSACTION_RETRY_BACKOFF", DEFAULT_BACKOFF)
    return max(1, attempts or DEFAULT_ATTEMPTS), (
        DEFAULT_BACKOFF if backoff_base is None else backoff_base
    )


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute one transactional unit of work with retry on concurrency failures.

    `func` must do all of its reads and writes and commit. Any exception rolls
    the session back so no partial work survives. OperationalError (locked
    database, deadlock, lock timeout) and StaleDataError (optimistic version
    conflict) re-run `func` from scratch; after the last attempt they surface
    as ConcurrencyConflict. Every other exception propagates unchanged.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Giving up after %d attempts: %s", attempts, exc.__class__.__name__)
                raise ConcurrencyConflict(
                    "Operation conflicted with a concurrent update, try again",
                    details={"attempts": attempts},
                ) from exc
            logger.info("Concurrency conflict (attempt %d/%d), retrying", attempt + 1, attempts)
            time.sleep(min(backoff_base * (2 ** attempt), MAX_BACKOFF))
        except Exception:
            db.session.rollback()
            raise
