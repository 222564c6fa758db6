"""Tests for CLI argument handling and console rendering."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest

import sync_music_db.cli as cli_module
from sync_music_db import __version__
from sync_music_db.cli import build_parser, render_event, resolve_config
from sync_music_db.config import SyncConfig
from sync_music_db.events import (
    LibraryReady,
    SyncedChanged,
    SyncFailed,
    TrackAdded,
    TrackRemoved,
)
from sync_music_db.library_sync import LibrarySync
from sync_music_db.services.track_store import Track


def test_cli_parser_defaults() -> None:
    args = build_parser().parse_args([])
    assert args.music_dir is None
    assert args.db is None
    assert args.delay is None
    assert args.all_files is False
    assert args.once is False


def test_cli_version_flag(capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        build_parser().parse_args(["--version"])
    assert excinfo.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_resolve_config_overlays_explicit_flags() -> None:
    base = SyncConfig(music_dir="/from/config", table_name="songs", delay_ms=500)
    args = build_parser().parse_args(
        ["/music", "--db", "lib.sqlite", "--delay", "90000", "--all-files", "--quiet"]
    )

    config = resolve_config(args, base)

    assert config.music_dir == "/music"
    assert config.db_path == "lib.sqlite"
    assert config.table_name == "songs"
    assert config.delay_ms == 60_000
    assert config.ignore_ext is False
    assert config.log_level == "WARNING"


def test_resolve_config_keeps_file_values_without_flags() -> None:
    base = SyncConfig(music_dir="/from/config", ignore_ext=False, log_level="DEBUG")
    config = resolve_config(build_parser().parse_args([]), base)
    assert config == base


def test_render_event_messages() -> None:
    tagged = Track(path="/music/a.mp3", mtime=1, title="Song", artist="Band")
    untagged = Track(path="/music/[live].mp3", mtime=1)

    assert render_event(TrackAdded(tagged)) == "[green]+[/green] Band - Song"
    assert render_event(TrackAdded(untagged)) == "[green]+[/green] \\[live].mp3"
    assert render_event(TrackRemoved("/music/sub")) == "[red]-[/red] /music/sub"
    assert "watching" in (render_event(LibraryReady()) or "")
    assert "boom" in (render_event(SyncFailed(OSError("boom"))) or "")
    assert render_event(SyncedChanged(True)) is None


def test_main_without_music_dir_exits_with_usage_error(tmp_path, capsys) -> None:
    code = cli_module.main(["--config", str(tmp_path / "missing.json")])
    assert code == 2
    assert "No music directory given." in capsys.readouterr().err


def test_main_reports_corrupt_config(tmp_path, capsys) -> None:
    config = tmp_path / "config.json"
    config.write_text("{oops", encoding="utf-8")
    code = cli_module.main(["--config", str(config)])
    assert code == 2
    assert "not valid JSON" in capsys.readouterr().err


class _ReadyWatcher:
    def __init__(self, root: Path, delay_ms: int) -> None:
        self.ready = asyncio.Event()

    async def events(self):
        self.ready.set()
        await asyncio.Event().wait()
        yield []

    def close(self) -> None:
        pass


def test_main_once_syncs_and_exits(tmp_path, monkeypatch, capsys) -> None:
    music = tmp_path / "music"
    music.mkdir()
    (music / "a.mp3").write_bytes(b"not really audio")
    (music / "notes.txt").write_text("skip", encoding="utf-8")
    db_file = tmp_path / "library.sqlite"

    def _sync_with_fake_watcher(*args, **kwargs) -> LibrarySync:
        return LibrarySync(*args, watcher_factory=_ReadyWatcher, **kwargs)

    monkeypatch.setattr(cli_module, "LibrarySync", _sync_with_fake_watcher)
    monkeypatch.setenv("SYNC_MUSIC_DB_HOME", str(tmp_path / "home"))

    root = logging.getLogger()
    original_handlers = list(root.handlers)
    original_level = root.level
    try:
        code = cli_module.main(
            [
                str(music),
                "--db",
                str(db_file),
                "--table",
                "songs",
                "--once",
                "--config",
                str(tmp_path / "missing.json"),
            ]
        )
    finally:
        root.handlers.clear()
        for handler in original_handlers:
            root.addHandler(handler)
        root.setLevel(original_level)

    out = capsys.readouterr().out
    assert code == 0
    assert "+ a.mp3" in out
    assert "1 tracks in table 'songs'" in out
    assert (tmp_path / "home" / "logs" / "sync-music-db.log").exists()


def test_main_reads_default_config_from_home_env(tmp_path, monkeypatch, capsys) -> None:
    home = tmp_path / "home"
    home.mkdir()
    (home / "config.json").write_text("[]", encoding="utf-8")
    monkeypatch.setenv("SYNC_MUSIC_DB_HOME", str(home))

    code = cli_module.main([])

    err = capsys.readouterr().err
    assert code == 2
    assert "must contain a JSON object" in err
    assert str(home / "config.json") in err
