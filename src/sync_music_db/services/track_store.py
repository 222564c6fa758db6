"""SQLite-backed track table used as the durable side of reconciliation.

The public API is async but all DB work is synchronous and dispatched through
`run_blocking(...)`. Each call opens a fresh connection and every mutating call
is a single transaction, so a cancelled caller never leaves a half-applied
batch behind.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
import time
from collections.abc import Iterable
from dataclasses import dataclass, fields
from pathlib import Path

from sync_music_db.db.schema import (
    DEFAULT_TABLE_NAME,
    TRACK_COLUMNS,
    create_schema,
    upsert_statement,
    validate_table_name,
)
from sync_music_db.services.metadata import TrackTags
from sync_music_db.services.sqlite_retry import run_with_sqlite_lock_retry
from sync_music_db.utils.async_utils import run_blocking

REMOVE_BATCH_SIZE = 25
_PERF_WARN_MS = 50.0
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Track:
    """One persisted row: file identity, last synced mtime and its tags."""

    path: str
    mtime: int
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    year: int | None = None
    duration: int | None = None
    track_no: int | None = None
    tags: tuple[str, ...] = ()
    is_vbr: bool = False
    bitrate: int | None = None
    codec: str | None = None
    container: str | None = None

    @classmethod
    def from_tags(cls, path: str, mtime: int, tags: TrackTags) -> Track:
        """Merge extractor output with the file identity observed on disk."""
        values = {field.name: getattr(tags, field.name) for field in fields(tags)}
        return cls(path=path, mtime=mtime, **values)

    def to_row(self) -> tuple[object, ...]:
        """Return bind values in `TRACK_COLUMNS` order."""
        values: list[object] = []
        for column in TRACK_COLUMNS:
            value = getattr(self, column)
            if column == "tags":
                value = json.dumps(list(value))
            elif column == "is_vbr":
                value = int(value)
            values.append(value)
        return tuple(values)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Track:
        return cls(
            path=row["path"],
            mtime=int(row["mtime"]),
            title=row["title"],
            artist=row["artist"],
            album=row["album"],
            year=row["year"],
            duration=row["duration"],
            track_no=row["track_no"],
            tags=_decode_tags(row["tags"]),
            is_vbr=bool(row["is_vbr"]),
            bitrate=row["bitrate"],
            codec=row["codec"],
            container=row["container"],
        )


class TrackStore:
    """Async wrapper around the track table of one SQLite database."""

    def __init__(self, db_path: Path, *, table_name: str = DEFAULT_TABLE_NAME) -> None:
        self._db_path = Path(db_path)
        self._table = validate_table_name(table_name)
        self._upsert_sql = upsert_statement(self._table)

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def table_name(self) -> str:
        return self._table

    async def initialize(self) -> None:
        await run_blocking(self._initialize_sync)

    async def fetch_mtimes(self) -> dict[str, int]:
        return await run_blocking(self._fetch_mtimes_sync)

    async def remove_tracks(self, paths: Iterable[str]) -> list[str]:
        return await run_blocking(self._remove_tracks_sync, list(paths))

    async def remove_track(self, path: str) -> int:
        return await run_blocking(self._remove_track_sync, path)

    async def remove_dir(self, directory: str) -> int:
        return await run_blocking(self._remove_dir_sync, directory)

    async def upsert_tracks(self, tracks: Iterable[Track]) -> int:
        return await run_blocking(self._upsert_tracks_sync, list(tracks))

    async def get_track(self, path: str) -> Track | None:
        return await run_blocking(self._get_track_sync, path)

    async def count(self) -> int:
        return await run_blocking(self._count_sync)

    async def list_paths(self, prefix: str | None = None) -> list[str]:
        return await run_blocking(self._list_paths_sync, prefix)

    def _connect(self) -> sqlite3.Connection:
        """Create a fresh SQLite connection configured for a single writer."""
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _initialize_sync(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            create_schema(conn, self._table)
            journal_mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
            logger.info(
                "Track table %s ready in %s (journal_mode=%s)",
                self._table,
                self._db_path,
                journal_mode,
            )

    def _fetch_mtimes_sync(self) -> dict[str, int]:
        start = time.perf_counter()
        with self._connect() as conn:
            rows = conn.execute(f"SELECT path, mtime FROM {self._table}").fetchall()
        result = {row["path"]: row["mtime"] for row in rows}
        _log_slow_db_op("fetch_mtimes", start=start, rows=len(result))
        return result

    def _remove_tracks_sync(self, paths: list[str]) -> list[str]:
        """Delete rows by path in fixed-size batches, one transaction each."""
        removed: list[str] = []
        start = time.perf_counter()
        for offset in range(0, len(paths), REMOVE_BATCH_SIZE):
            batch = paths[offset : offset + REMOVE_BATCH_SIZE]

            def _op(batch: list[str] = batch) -> list[str]:
                deleted: list[str] = []
                with self._connect() as conn:
                    conn.execute("BEGIN IMMEDIATE")
                    for path in batch:
                        cursor = conn.execute(
                            f"DELETE FROM {self._table} WHERE path = ?", (path,)
                        )
                        if cursor.rowcount:
                            deleted.append(path)
                return deleted

            removed.extend(run_with_sqlite_lock_retry(_op, op_name="tracks.remove"))
        _log_slow_db_op(
            "remove_tracks", start=start, requested=len(paths), removed=len(removed)
        )
        return removed

    def _remove_track_sync(self, path: str) -> int:
        def _op() -> int:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"DELETE FROM {self._table} WHERE path = ?", (path,)
                )
                return int(cursor.rowcount or 0)

        return run_with_sqlite_lock_retry(_op, op_name="tracks.remove_one")

    def _remove_dir_sync(self, directory: str) -> int:
        prefix = directory.rstrip(os.sep) + os.sep

        def _op() -> int:
            with self._connect() as conn:
                cursor = conn.execute(
                    f"DELETE FROM {self._table} WHERE substr(path, 1, ?) = ?",
                    (len(prefix), prefix),
                )
                return int(cursor.rowcount or 0)

        return run_with_sqlite_lock_retry(_op, op_name="tracks.remove_dir")

    def _upsert_tracks_sync(self, tracks: list[Track]) -> int:
        if not tracks:
            return 0
        rows = [track.to_row() for track in tracks]
        start = time.perf_counter()

        def _op() -> int:
            with self._connect() as conn:
                conn.execute("BEGIN IMMEDIATE")
                conn.executemany(self._upsert_sql, rows)
            return len(rows)

        written = run_with_sqlite_lock_retry(_op, op_name="tracks.upsert")
        _log_slow_db_op("upsert_tracks", start=start, rows=written)
        return written

    def _get_track_sync(self, path: str) -> Track | None:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM {self._table} WHERE path = ? LIMIT 1", (path,)
            ).fetchone()
        if row is None:
            return None
        return Track.from_row(row)

    def _count_sync(self) -> int:
        with self._connect() as conn:
            return int(conn.execute(f"SELECT COUNT(*) FROM {self._table}").fetchone()[0])

    def _list_paths_sync(self, prefix: str | None) -> list[str]:
        with self._connect() as conn:
            if prefix is None:
                rows = conn.execute(
                    f"SELECT path FROM {self._table} ORDER BY path"
                ).fetchall()
            else:
                rows = conn.execute(
                    f"SELECT path FROM {self._table} WHERE substr(path, 1, ?) = ? ORDER BY path",
                    (len(prefix), prefix),
                ).fetchall()
        return [row["path"] for row in rows]


def _decode_tags(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return ()
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value)


def _log_slow_db_op(op: str, *, start: float, **context: object) -> None:
    elapsed_ms = (time.perf_counter() - start) * 1000.0
    if elapsed_ms < _PERF_WARN_MS:
        return
    logger.info(
        "TrackStore operation exceeded perf threshold",
        extra={
            "event": "track_store_slow_query",
            "operation": op,
            "elapsed_ms": round(elapsed_ms, 2),
            **context,
        },
    )
