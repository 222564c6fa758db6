"""Audio file classification used to decide which files get synced."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path

AUDIO_EXTENSIONS = frozenset(
    {
        ".aac",
        ".ac3",
        ".aiff",
        ".alac",
        ".ape",
        ".dff",
        ".dsf",
        ".flac",
        ".m4a",
        ".mka",
        ".mp2",
        ".mp3",
        ".mpc",
        ".ogg",
        ".opus",
        ".wav",
        ".wma",
        ".wv",
    }
)
"""Default suffixes treated as audio when extension filtering is enabled."""

Classifier = Callable[[Path], bool]


def is_audio_file(path: Path, extensions: Iterable[str] = AUDIO_EXTENSIONS) -> bool:
    """Return whether path suffix is in the supplied audio extension set."""
    if not isinstance(extensions, (set, frozenset)):
        extensions = frozenset(extensions)
    return path.suffix.lower() in extensions


def make_classifier(
    *, ignore_ext: bool = True, extensions: Iterable[str] = AUDIO_EXTENSIONS
) -> Classifier:
    """Build the relevance predicate for library files.

    With `ignore_ext` enabled (the default) only files whose suffix is in
    `extensions` are relevant; with it disabled every file is accepted.
    """
    if not ignore_ext:
        return _accept_all
    allowed = frozenset(ext.lower() for ext in extensions)

    def _classify(path: Path) -> bool:
        return is_audio_file(path, allowed)

    return _classify


def _accept_all(path: Path) -> bool:
    return True
