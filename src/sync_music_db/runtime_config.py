"""Runtime configuration normalization helpers.

These helpers keep CLI flag and config file interpretation deterministic.
"""

from __future__ import annotations

from collections.abc import Iterable

MAX_DELAY_MS = 60_000


def resolve_log_level(*, verbose: bool, quiet: bool) -> str:
    """Resolve effective log level from CLI flags.

    Precedence is deterministic: --quiet overrides --verbose.
    """
    if quiet:
        return "WARNING"
    if verbose:
        return "DEBUG"
    return "INFO"


def normalize_delay_ms(value: object, default: int = 1000) -> int:
    """Clamp a debounce delay to `[0, MAX_DELAY_MS]`."""
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return max(0, min(MAX_DELAY_MS, value))


def normalize_extensions(values: Iterable[str]) -> tuple[str, ...]:
    """Lower-case suffixes and ensure each carries a leading dot."""
    normalized: list[str] = []
    for value in values:
        text = value.strip().lower()
        if not text:
            continue
        if not text.startswith("."):
            text = f".{text}"
        if text not in normalized:
            normalized.append(text)
    return tuple(normalized)
