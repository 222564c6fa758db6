"""SQLite schema for the synced track table.

The table name is configurable so several libraries can share one database;
it is validated as a bare identifier before being spliced into SQL.
"""

from __future__ import annotations

import re
import sqlite3

DEFAULT_TABLE_NAME = "tracks"

TRACK_COLUMNS = (
    "path",
    "mtime",
    "title",
    "artist",
    "album",
    "year",
    "duration",
    "track_no",
    "tags",
    "is_vbr",
    "bitrate",
    "codec",
    "container",
)
"""Columns written by the sync engine, in bind order. `path` is always first."""

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_TABLE_TEMPLATE = """
    CREATE TABLE IF NOT EXISTS {table} (
        id INTEGER PRIMARY KEY,
        path TEXT UNIQUE,
        mtime INTEGER,
        title TEXT,
        artist TEXT,
        album TEXT,
        year INTEGER,
        duration INTEGER,
        track_no INTEGER,
        disk INTEGER DEFAULT 1,
        tags TEXT,
        is_vbr INTEGER DEFAULT 0,
        bitrate INTEGER,
        codec TEXT,
        container TEXT
    )
"""

_INDEX_TEMPLATES = (
    "CREATE INDEX IF NOT EXISTS idx_{table}_artist ON {table}(artist ASC)",
    "CREATE INDEX IF NOT EXISTS idx_{table}_title ON {table}(title)",
)


def validate_table_name(table_name: str) -> str:
    """Return `table_name` unchanged when it is a safe SQL identifier."""
    if not isinstance(table_name, str) or not _IDENTIFIER_RE.match(table_name):
        raise ValueError(
            f"Unsupported table name {table_name!r}.\n"
            "Likely cause: the name contains characters other than letters, digits and '_'.\n"
            "Next step: choose a plain identifier such as 'tracks'."
        )
    return table_name


def schema_statements(table_name: str = DEFAULT_TABLE_NAME) -> list[str]:
    """Return the DDL statements for `table_name` in execution order."""
    table = validate_table_name(table_name)
    return [
        _TABLE_TEMPLATE.format(table=table),
        *(template.format(table=table) for template in _INDEX_TEMPLATES),
    ]


def create_schema(
    conn: sqlite3.Connection, table_name: str = DEFAULT_TABLE_NAME
) -> None:
    """Create the track table and its lookup indexes when missing."""
    for statement in schema_statements(table_name):
        conn.execute(statement)


def upsert_statement(table_name: str = DEFAULT_TABLE_NAME) -> str:
    """Build the insert-or-overwrite statement keyed on `path`."""
    table = validate_table_name(table_name)
    columns = ", ".join(TRACK_COLUMNS)
    placeholders = ", ".join("?" for _ in TRACK_COLUMNS)
    assignments = ",\n        ".join(
        f"{column} = excluded.{column}" for column in TRACK_COLUMNS[1:]
    )
    return (
        f"INSERT INTO {table} ({columns})\n"
        f"    VALUES ({placeholders})\n"
        "    ON CONFLICT(path) DO UPDATE SET\n"
        f"        {assignments}"
    )
