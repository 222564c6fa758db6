"""Retry helper for SQLite writes that hit transient lock contention."""

from __future__ import annotations

import logging
import random
import sqlite3
import time
from collections.abc import Callable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

_LOCK_MARKERS = ("database is locked", "database is busy", "locked", "busy")


def is_lock_error(exc: sqlite3.OperationalError) -> bool:
    """Return whether an operational error looks like writer contention."""
    message = str(exc).lower()
    return any(marker in message for marker in _LOCK_MARKERS)


def run_with_sqlite_lock_retry(
    operation: Callable[[], T],
    *,
    op_name: str,
    max_attempts: int = 4,
    base_delay_s: float = 0.02,
    max_delay_s: float = 0.25,
) -> T:
    """Run `operation`, retrying with jittered backoff while the DB is locked.

    Non-lock errors and the final failed attempt propagate unchanged. The
    operation must be a complete transaction so a retry never replays half of
    one.
    """
    attempts = max(1, int(max_attempts))
    delay = max(0.0, float(base_delay_s))
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except sqlite3.OperationalError as exc:
            if not is_lock_error(exc) or attempt >= attempts:
                raise
            jitter = random.random() * delay * 0.5 if delay > 0 else 0.0
            sleep_for = max(0.0, min(max_delay_s, delay + jitter))
            logger.debug(
                "SQLite busy during %s (attempt %d/%d); retrying in %.3fs",
                op_name,
                attempt,
                attempts,
                sleep_for,
            )
            time.sleep(sleep_for)
            delay = min(max_delay_s, max(0.005, delay * 2.0))
    raise RuntimeError(f"SQLite retry loop exhausted unexpectedly for {op_name}")
