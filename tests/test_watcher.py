"""Tests for change coalescing and the watchfiles-backed watcher."""

from __future__ import annotations

import asyncio
import os

from watchfiles import Change

import sync_music_db.services.watcher as watcher_module
from sync_music_db.services.watcher import (
    ChangeEvent,
    DirectoryWatcher,
    coalesce_changes,
)


def _p(*parts: str) -> str:
    return os.path.join(os.sep, "music", *parts)


def test_coalesce_maps_change_kinds() -> None:
    events = coalesce_changes(
        {
            (Change.added, _p("a.mp3")),
            (Change.modified, _p("b.mp3")),
            (Change.deleted, _p("c.mp3")),
        }
    )
    assert events == [
        ChangeEvent("update", _p("a.mp3")),
        ChangeEvent("update", _p("b.mp3")),
        ChangeEvent("remove", _p("c.mp3")),
    ]


def test_coalesce_collapses_removed_directory_contents() -> None:
    events = coalesce_changes(
        {
            (Change.deleted, _p("sub", "one.mp3")),
            (Change.deleted, _p("sub", "deep", "two.mp3")),
            (Change.deleted, _p("sub", "deep")),
            (Change.deleted, _p("sub")),
            (Change.deleted, _p("subway.mp3")),
        }
    )
    assert events == [
        ChangeEvent("remove", _p("sub")),
        ChangeEvent("remove", _p("subway.mp3")),
    ]


def test_coalesce_collapses_added_directory_contents() -> None:
    events = coalesce_changes(
        {
            (Change.added, _p("album")),
            (Change.added, _p("album", "1.mp3")),
            (Change.modified, _p("album", "2.mp3")),
        }
    )
    assert events == [ChangeEvent("update", _p("album"))]


def test_coalesce_keeps_removals_under_updated_directory() -> None:
    events = coalesce_changes(
        {
            (Change.modified, _p("album")),
            (Change.deleted, _p("album", "gone.mp3")),
        }
    )
    assert events == [
        ChangeEvent("update", _p("album")),
        ChangeEvent("remove", _p("album", "gone.mp3")),
    ]


def test_coalesce_resolves_mixed_kinds_from_disk_state() -> None:
    raw = {(Change.deleted, _p("a.mp3")), (Change.added, _p("a.mp3"))}

    assert coalesce_changes(raw, exists=lambda _path: True) == [
        ChangeEvent("update", _p("a.mp3"))
    ]
    assert coalesce_changes(raw, exists=lambda _path: False) == [
        ChangeEvent("remove", _p("a.mp3"))
    ]


def test_coalesce_ignores_updates_for_watch_root() -> None:
    root = _p()
    events = coalesce_changes(
        {(Change.modified, root), (Change.added, _p("a.mp3"))},
        root=root,  # type: ignore[arg-type]
    )
    assert events == [ChangeEvent("update", _p("a.mp3"))]


def test_directory_watcher_signals_ready_and_yields_batches(
    tmp_path, monkeypatch
) -> None:
    captured: dict[str, object] = {}

    async def fake_awatch(*paths, **kwargs):
        captured["paths"] = paths
        captured.update(kwargs)
        yield set()
        yield {(Change.added, str(tmp_path / "a.mp3"))}
        yield set()

    monkeypatch.setattr(watcher_module, "awatch", fake_awatch)

    async def run() -> tuple[list[list[ChangeEvent]], bool]:
        watcher = DirectoryWatcher(tmp_path, 250)
        batches = [batch async for batch in watcher.events()]
        return batches, watcher.ready.is_set()

    batches, ready = asyncio.run(run())

    assert ready is True
    assert batches == [[ChangeEvent("update", str(tmp_path / "a.mp3"))]]
    assert captured["paths"] == (tmp_path,)
    assert captured["debounce"] == 250
    assert captured["yield_on_timeout"] is True
    assert captured["recursive"] is True


def test_directory_watcher_close_sets_stop_event(tmp_path) -> None:
    watcher = DirectoryWatcher(tmp_path)
    watcher.close()
    assert watcher._stop_event.is_set()
    assert watcher.debounce_ms == 1000
