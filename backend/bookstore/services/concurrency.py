# Overview: Transaction helpers for single-writer order updates.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import StaleOrderVersion


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The version_id column still catches a lost update there.
    """
    return query.with_for_update()


def check_expected_version(entity, expected_version: int | None) -> None:
    """Reject a write prepared against an older revision of the row."""
    if expected_version is None:
        return
    if entity.version_id != expected_version:
        raise StaleOrderVersion(
            f"{type(entity).__name__} {entity.id} was modified concurrently "
            f"(expected version {expected_version}, current {entity.version_id})",
            details={"expected_version": expected_version, "current_version": entity.version_id},
        )


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of work that commits at its end.

    Any failure rolls the session back before propagating, so no partial
    write survives. Lock contention (OperationalError) is retried with
    backoff; an optimistic locking conflict (StaleDataError) is surfaced as
    StaleOrderVersion for the caller to retry against fresh state.
    """
    for attempt in range(attempts):
        try:
            return func()
        except StaleDataError as exc:
            db.session.rollback()
            raise StaleOrderVersion("Record was modified concurrently; reload and retry") from exc
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
