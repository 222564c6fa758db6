"""JSON configuration for the sync command.

Loading is tolerant of missing or invalid values: a bad file degrades to
defaults plus a user-facing notice instead of aborting startup.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from sync_music_db.db.schema import DEFAULT_TABLE_NAME, validate_table_name
from sync_music_db.media_formats import AUDIO_EXTENSIONS
from sync_music_db.runtime_config import normalize_delay_ms, normalize_extensions
from sync_music_db.services.watcher import DEFAULT_DEBOUNCE_MS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncConfig:
    """Effective settings for one sync session."""

    music_dir: str | None = None
    db_path: str | None = None
    table_name: str = DEFAULT_TABLE_NAME
    delay_ms: int = DEFAULT_DEBOUNCE_MS
    ignore_ext: bool = True
    extensions: tuple[str, ...] = tuple(sorted(AUDIO_EXTENSIONS))
    log_level: str = "INFO"


def _coerce_config(data: dict[str, Any]) -> SyncConfig:
    """Coerce an untyped JSON object into `SyncConfig` with safe defaults."""
    defaults = SyncConfig()

    def _str_or_none(value: Any) -> str | None:
        if isinstance(value, str) and value.strip():
            return value
        return None

    def _table_or_default(value: Any) -> str:
        if not isinstance(value, str):
            return defaults.table_name
        try:
            return validate_table_name(value)
        except ValueError:
            logger.warning("Ignoring invalid table name %r in config.", value)
            return defaults.table_name

    def _extensions_or_default(value: Any) -> tuple[str, ...]:
        if not isinstance(value, list):
            return defaults.extensions
        normalized = normalize_extensions(item for item in value if isinstance(item, str))
        return normalized or defaults.extensions

    ignore_ext = data.get("ignore_ext")
    log_level = data.get("log_level")
    return SyncConfig(
        music_dir=_str_or_none(data.get("music_dir")),
        db_path=_str_or_none(data.get("db_path")),
        table_name=_table_or_default(data.get("table_name")),
        delay_ms=normalize_delay_ms(data.get("delay_ms"), defaults.delay_ms),
        ignore_ext=ignore_ext if isinstance(ignore_ext, bool) else defaults.ignore_ext,
        extensions=_extensions_or_default(data.get("extensions")),
        log_level=log_level.upper()
        if isinstance(log_level, str) and log_level.strip()
        else defaults.log_level,
    )


def load_config_with_notice(path: Path) -> tuple[SyncConfig, str | None]:
    """Load config and return an optional user-facing notice."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug("Config file missing at %s; using defaults.", path)
        return SyncConfig(), None
    except OSError as exc:
        logger.warning("Failed to read config file %s: %s; using defaults.", path, exc)
        return (
            SyncConfig(),
            "Config settings were ignored.\n"
            "Likely cause: config file is unreadable due to permissions or IO issues.\n"
            f"Next step: verify access to '{path}' and retry.",
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Config file at %s is invalid JSON; using defaults.", path)
        return (
            SyncConfig(),
            "Config settings were ignored.\n"
            "Likely cause: config file is not valid JSON.\n"
            f"Next step: repair or remove '{path}' and retry.",
        )

    if not isinstance(data, dict):
        logger.warning("Config file at %s is not a JSON object; using defaults.", path)
        return (
            SyncConfig(),
            "Config settings were ignored.\n"
            "Likely cause: config file must contain a JSON object.\n"
            f"Next step: repair or remove '{path}' and retry.",
        )

    return _coerce_config(data), None


def load_config(path: Path) -> SyncConfig:
    """Load config from disk, falling back to defaults."""
    config, _notice = load_config_with_notice(path)
    return config
