"""Tests for JSON config loading."""

from __future__ import annotations

import json
import os

import pytest

from sync_music_db.config import SyncConfig, load_config, load_config_with_notice


def test_missing_config_uses_defaults_without_notice(tmp_path) -> None:
    config, notice = load_config_with_notice(tmp_path / "missing.json")
    assert config == SyncConfig()
    assert notice is None
    assert config.table_name == "tracks"
    assert config.delay_ms == 1000
    assert config.ignore_ext is True
    assert ".mp3" in config.extensions


def test_config_values_are_loaded(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "music_dir": "/srv/music",
                "db_path": "/srv/music.sqlite",
                "table_name": "songs",
                "delay_ms": 250,
                "ignore_ext": False,
                "extensions": ["MP3", "flac", ".mp3"],
                "log_level": "debug",
            }
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config == SyncConfig(
        music_dir="/srv/music",
        db_path="/srv/music.sqlite",
        table_name="songs",
        delay_ms=250,
        ignore_ext=False,
        extensions=(".mp3", ".flac"),
        log_level="DEBUG",
    )


def test_invalid_values_fall_back_to_defaults(tmp_path, caplog) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "music_dir": "   ",
                "table_name": "tracks; DROP TABLE x",
                "delay_ms": "soon",
                "ignore_ext": "yes",
                "extensions": "mp3",
            }
        ),
        encoding="utf-8",
    )

    config, notice = load_config_with_notice(path)

    assert notice is None
    assert config == SyncConfig()
    assert "Ignoring invalid table name" in caplog.text


def test_delay_is_clamped(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text('{"delay_ms": 999999}', encoding="utf-8")
    assert load_config(path).delay_ms == 60_000


def test_corrupt_json_returns_notice(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")

    config, notice = load_config_with_notice(path)

    assert config == SyncConfig()
    assert notice is not None
    assert "Likely cause: config file is not valid JSON." in notice
    assert str(path) in notice


def test_non_object_json_returns_notice(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.write_text("[1, 2]", encoding="utf-8")

    config, notice = load_config_with_notice(path)

    assert config == SyncConfig()
    assert notice is not None
    assert "must contain a JSON object" in notice


@pytest.mark.skipif(os.name == "nt", reason="directory read semantics differ")
def test_unreadable_config_returns_notice(tmp_path) -> None:
    path = tmp_path / "config.json"
    path.mkdir()

    config, notice = load_config_with_notice(path)

    assert config == SyncConfig()
    assert notice is not None
    assert "unreadable" in notice
