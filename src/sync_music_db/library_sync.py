"""Keeps a track table consistent with the audio files under one directory.

`LibrarySync.refresh()` runs a full reconciliation pass (snapshot, dead-row
removal, upsert of new or changed files) and then attaches a watcher whose
coalesced events are applied incrementally with the same store primitives.
All notifications go through the instance's `EventBus`.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import stat
from collections.abc import Callable, Iterable, Sequence
from contextlib import suppress
from pathlib import Path
from types import TracebackType

from sync_music_db.events import (
    EventBus,
    SyncFailed,
    SyncListener,
    TrackAdded,
    TrackRemoved,
)
from sync_music_db.media_formats import AUDIO_EXTENSIONS, make_classifier
from sync_music_db.services.metadata import EMPTY_TAGS, TrackTags, read_track_tags
from sync_music_db.services.snapshot import (
    LibraryRootError,
    build_snapshot,
    iter_files,
    mtime_ms,
)
from sync_music_db.services.track_store import Track, TrackStore
from sync_music_db.services.watcher import (
    DEFAULT_DEBOUNCE_MS,
    ChangeEvent,
    DirectoryWatcher,
    Watcher,
    WatcherFactory,
)
from sync_music_db.sync_state import SyncStatus
from sync_music_db.utils.async_utils import run_blocking

logger = logging.getLogger(__name__)

UPSERT_BATCH_SIZE = 25

Extractor = Callable[[Path], TrackTags]


class SyncState(enum.Enum):
    DETACHED = "detached"
    WATCHING = "watching"
    PROCESSING = "processing"


class LibrarySync:
    """Reconciles `store` with the files under `root` and keeps it current."""

    def __init__(
        self,
        store: TrackStore,
        root: Path,
        *,
        delay_ms: int = DEFAULT_DEBOUNCE_MS,
        ignore_ext: bool = True,
        extensions: Iterable[str] = AUDIO_EXTENSIONS,
        extractor: Extractor = read_track_tags,
        watcher_factory: WatcherFactory = DirectoryWatcher,
        concurrency: int = 4,
    ) -> None:
        self._store = store
        self.root = Path(os.path.abspath(root))
        self.delay_ms = max(0, int(delay_ms))
        self._classify = make_classifier(ignore_ext=ignore_ext, extensions=extensions)
        self._extractor = extractor
        self._watcher_factory = watcher_factory
        self._semaphore = asyncio.Semaphore(max(1, concurrency))
        self._bus = EventBus()
        self._status = SyncStatus(self._bus)
        self._state = SyncState.DETACHED
        # path -> mtime ms still waiting to be written during a full pass
        self._local_mtimes: dict[str, int] = {}
        self._watcher: Watcher | None = None
        self._watch_task: asyncio.Task[None] | None = None
        self._refresh_task: asyncio.Task[bool] | None = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._status.is_ready

    @property
    def is_synced(self) -> bool:
        return self._status.is_synced

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Register a lifecycle listener; returns its unsubscribe callable."""
        return self._bus.subscribe(listener)

    async def __aenter__(self) -> LibrarySync:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def refresh(self) -> bool:
        """Run a full pass and start watching.

        Returns `True` once the library is ready. Failures are reported via a
        `SyncFailed` notification and return `False`; so does a refresh that
        was interrupted by `close()`.
        """
        await self.close()
        task = asyncio.create_task(self._refresh())
        self._refresh_task = task
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return False
            task.cancel()
            raise
        finally:
            if self._refresh_task is task:
                self._refresh_task = None

    async def close(self) -> None:
        """Stop watching and abandon in-flight work; safe to call repeatedly."""
        task = self._refresh_task
        self._refresh_task = None
        current = asyncio.current_task()
        if task is not None and not task.done() and task is not current:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await self._detach_watcher()
        self._local_mtimes = {}
        self._state = SyncState.DETACHED
        await self._status.reset()

    async def _refresh(self) -> bool:
        try:
            self._local_mtimes = await run_blocking(
                build_snapshot, self.root, self._classify
            )
            await self._reconcile()
            await self._attach_watcher()
        except Exception as exc:
            logger.error("Refresh of %s failed: %s", self.root, exc)
            self._local_mtimes = {}
            await self._detach_watcher()
            self._state = SyncState.DETACHED
            await self._bus.emit(SyncFailed(exc))
            return False
        if self._state is SyncState.DETACHED:
            self._state = SyncState.WATCHING
        await self._status.mark_ready()
        return True

    async def _reconcile(self) -> None:
        """Diff the snapshot against stored rows and apply the difference."""
        stored = await self._store.fetch_mtimes()
        stale: list[str] = []
        unchanged = 0
        for path, mtime in stored.items():
            local_mtime = self._local_mtimes.get(path)
            if local_mtime is None:
                stale.append(path)
            elif local_mtime == mtime:
                del self._local_mtimes[path]
                unchanged += 1

        removed = 0
        for path in await self._store.remove_tracks(stale):
            removed += 1
            await self._bus.emit(TrackRemoved(path))

        pending = sorted(self._local_mtimes.items())
        written = await self._upsert_files(pending)
        self._local_mtimes = {}
        logger.info(
            "Full sync of %s complete",
            self.root,
            extra={
                "event": "full_sync",
                "removed": removed,
                "written": written,
                "unchanged": unchanged,
            },
        )

    async def _upsert_files(self, files: Sequence[tuple[str, int]]) -> int:
        """Extract tags for `files` and upsert them in transactional chunks."""
        written = 0
        for offset in range(0, len(files), UPSERT_BATCH_SIZE):
            chunk = files[offset : offset + UPSERT_BATCH_SIZE]
            tracks = await asyncio.gather(
                *(self._load_track(path, mtime) for path, mtime in chunk)
            )
            await self._store.upsert_tracks(tracks)
            for track in tracks:
                written += 1
                await self._bus.emit(TrackAdded(track))
        return written

    async def _load_track(self, path: str, mtime: int) -> Track:
        async with self._semaphore:
            try:
                tags = await run_blocking(self._extractor, Path(path))
            except Exception as exc:  # pragma: no cover - safety net
                logger.exception("Failed to read tags for %s: %s", path, exc)
                tags = EMPTY_TAGS
        return Track.from_tags(path, mtime, tags)

    async def _attach_watcher(self) -> None:
        watcher = self._watcher_factory(self.root, self.delay_ms)
        self._watcher = watcher
        watch_task = asyncio.create_task(self._watch_loop(watcher))
        self._watch_task = watch_task
        ready_task = asyncio.create_task(watcher.ready.wait())
        try:
            await asyncio.wait(
                {ready_task, watch_task}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            ready_task.cancel()
        if watcher.ready.is_set():
            return
        error = None if watch_task.cancelled() else watch_task.exception()
        if error is not None:
            raise error
        raise RuntimeError(f"Watcher for '{self.root}' stopped before it was ready")

    async def _detach_watcher(self) -> None:
        watcher, task = self._watcher, self._watch_task
        self._watcher = None
        self._watch_task = None
        if watcher is not None:
            watcher.close()
        if task is None:
            return
        if task.done():
            if not task.cancelled():
                task.exception()
            return
        task.cancel()
        if task is not asyncio.current_task():
            with suppress(asyncio.CancelledError):
                await task

    async def _watch_loop(self, watcher: Watcher) -> None:
        try:
            async for batch in watcher.events():
                for event in batch:
                    await self._apply_change(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if not watcher.ready.is_set():
                raise
            logger.error("Watcher for %s stopped: %s", self.root, exc)
            await self._bus.emit(SyncFailed(exc))
        if self._watcher is watcher:
            logger.warning("Watcher for %s ended; library detached", self.root)
            self._watcher = None
            self._watch_task = None
            self._state = SyncState.DETACHED
            await self._status.reset()

    async def _apply_change(self, event: ChangeEvent) -> None:
        """Apply one coalesced notification as an incremental pass."""
        self._state = SyncState.PROCESSING
        await self._status.set_synced(False)
        try:
            if event.kind == "update":
                await self._apply_update(Path(event.path))
            else:
                await self._apply_remove(event.path)
        except Exception as exc:
            if _is_vanished(exc):
                logger.debug("Ignoring %s for vanished path %s", event.kind, event.path)
            else:
                logger.warning(
                    "Failed to apply %s for %s: %s", event.kind, event.path, exc
                )
                await self._bus.emit(SyncFailed(exc))
        self._state = SyncState.WATCHING
        await self._status.set_synced(True)

    async def _apply_update(self, path: Path) -> None:
        stat_result = await run_blocking(os.stat, path)
        if stat.S_ISDIR(stat_result.st_mode):
            # One coalesced event may stand for many files written into a tree.
            files = await run_blocking(_list_files, path, self._classify)
            await self._upsert_files(files)
            return
        if not self._classify(path):
            return
        await self._upsert_files([(str(path), mtime_ms(stat_result))])

    async def _apply_remove(self, path: str) -> None:
        # The entity is gone so its type is unknown; try both deletes.
        removed = await self._store.remove_track(path)
        removed += await self._store.remove_dir(path)
        if removed:
            await self._bus.emit(TrackRemoved(path))


def _list_files(
    directory: Path, classify: Callable[[Path], bool]
) -> list[tuple[str, int]]:
    return list(iter_files(directory, classify))


def _is_vanished(exc: BaseException) -> bool:
    if isinstance(exc, FileNotFoundError):
        return True
    if isinstance(exc, LibraryRootError):
        return not exc.root.exists()
    return False
