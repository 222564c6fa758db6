"""Filesystem change notifier backed by `watchfiles`.

Raw watchfiles batches are already debounced; `coalesce_changes` folds each
batch into at most one `ChangeEvent` per settled path so a directory that was
copied in or deleted as a whole arrives as a single event for the directory.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Protocol

from watchfiles import Change, awatch

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 1000
_READY_PROBE_MS = 250

ChangeKind = Literal["update", "remove"]


@dataclass(frozen=True)
class ChangeEvent:
    """One settled change for a file or directory path."""

    kind: ChangeKind
    path: str


class Watcher(Protocol):
    """Notifier contract consumed by `LibrarySync`."""

    ready: asyncio.Event

    def events(self) -> AsyncIterator[list[ChangeEvent]]: ...

    def close(self) -> None: ...


WatcherFactory = Callable[[Path, int], Watcher]


def coalesce_changes(
    changes: Iterable[tuple[Change, str]],
    *,
    root: Path | None = None,
    exists: Callable[[str], bool] = os.path.exists,
) -> list[ChangeEvent]:
    """Fold one raw batch into sorted per-path events.

    A path reported both as deleted and as added/modified resolves to its
    current state on disk. Events nested under a directory that is itself in
    the batch with the same kind are dropped, and updates for `root` itself
    are ignored.
    """
    kinds: dict[str, set[ChangeKind]] = {}
    for change, raw_path in changes:
        path = os.path.normpath(raw_path)
        kind: ChangeKind = "remove" if change == Change.deleted else "update"
        kinds.setdefault(path, set()).add(kind)

    settled: dict[str, ChangeKind] = {}
    for path, seen in kinds.items():
        if len(seen) == 1:
            settled[path] = next(iter(seen))
        else:
            settled[path] = "update" if exists(path) else "remove"

    root_path = os.path.normpath(str(root)) if root is not None else None
    events: list[ChangeEvent] = []
    for path in sorted(settled):
        kind = settled[path]
        if kind == "update" and path == root_path:
            continue
        if _has_ancestor(path, kind, settled):
            continue
        events.append(ChangeEvent(kind=kind, path=path))
    return events


def _has_ancestor(path: str, kind: ChangeKind, settled: dict[str, ChangeKind]) -> bool:
    parent = os.path.dirname(path)
    while parent and parent != path:
        if settled.get(parent) == kind:
            return True
        path, parent = parent, os.path.dirname(parent)
    return False


class DirectoryWatcher:
    """Recursive watch over one directory yielding coalesced change batches."""

    def __init__(self, root: Path, debounce_ms: int = DEFAULT_DEBOUNCE_MS) -> None:
        self.root = Path(root)
        self.debounce_ms = max(0, int(debounce_ms))
        self.ready = asyncio.Event()
        self._stop_event = asyncio.Event()

    async def events(self) -> AsyncIterator[list[ChangeEvent]]:
        # yield_on_timeout makes awatch hand back an empty batch once the
        # native watcher is running; that first batch is the ready signal.
        async for changes in awatch(
            self.root,
            watch_filter=None,
            debounce=self.debounce_ms,
            stop_event=self._stop_event,
            rust_timeout=_READY_PROBE_MS,
            yield_on_timeout=True,
            recursive=True,
        ):
            if not self.ready.is_set():
                logger.debug("Watching %s (debounce=%dms)", self.root, self.debounce_ms)
                self.ready.set()
            batch = coalesce_changes(changes, root=self.root)
            if batch:
                yield batch

    def close(self) -> None:
        self._stop_event.set()
