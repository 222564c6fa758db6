"""Lifecycle notifications emitted by the sync engine and their fan-out.

Listeners receive `SyncEvent` instances and may be plain callables or
coroutine functions. Delivery is in emission order, which mirrors the order
in which store operations were performed.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from sync_music_db.services.track_store import Track

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncEvent:
    """Marker base type for sync lifecycle notifications."""

    pass


@dataclass(frozen=True)
class TrackAdded(SyncEvent):
    """A row was inserted or overwritten for `track.path`."""

    track: Track


@dataclass(frozen=True)
class TrackRemoved(SyncEvent):
    """Rows were deleted for a file path or for every file under a directory."""

    path: str


@dataclass(frozen=True)
class SyncedChanged(SyncEvent):
    """The store started (`False`) or finished (`True`) a reconciliation step."""

    synced: bool


@dataclass(frozen=True)
class LibraryReady(SyncEvent):
    """Initial scan finished and the live watcher is attached."""

    pass


@dataclass(frozen=True)
class SyncFailed(SyncEvent):
    """A refresh or live update failed; the engine stays usable."""

    error: BaseException


SyncListener = Callable[[SyncEvent], Union[Awaitable[None], None]]


class EventBus:
    """Ordered listener registry for `SyncEvent` fan-out."""

    def __init__(self) -> None:
        self._listeners: list[SyncListener] = []

    def subscribe(self, listener: SyncListener) -> Callable[[], None]:
        """Register `listener` and return a callable that removes it again."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    async def emit(self, event: SyncEvent) -> None:
        """Deliver `event` to every listener; listener errors are only logged."""
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Sync listener failed for %s", type(event).__name__
                )
