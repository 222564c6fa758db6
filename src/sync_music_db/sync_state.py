"""Readiness and sync-status bookkeeping for a `LibrarySync` instance."""

from __future__ import annotations

import logging

from sync_music_db.events import EventBus, LibraryReady, SyncedChanged

logger = logging.getLogger(__name__)


class SyncStatus:
    """Holds `is_ready` / `is_synced` and reports every synced transition.

    Redundant transitions are reported too: observers track reconciliation
    steps, not only the resulting value.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self.is_ready = False
        self.is_synced = False

    async def set_synced(self, synced: bool) -> None:
        self.is_synced = synced
        await self._bus.emit(SyncedChanged(synced))

    async def mark_ready(self) -> None:
        """Flag the library as synced and watched, then announce readiness."""
        self.is_ready = True
        await self.set_synced(True)
        logger.info("Library ready")
        await self._bus.emit(LibraryReady())

    async def reset(self) -> None:
        self.is_ready = False
        await self.set_synced(False)
