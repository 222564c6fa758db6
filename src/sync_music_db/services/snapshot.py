"""Directory walking that captures file modification times for reconciliation."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path

from sync_music_db.media_formats import Classifier

logger = logging.getLogger(__name__)


class LibraryRootError(OSError):
    """Raised when a directory walk cannot start."""

    def __init__(self, root: Path, reason: str) -> None:
        super().__init__(
            f"Cannot scan music directory '{root}'.\n"
            f"Likely cause: {reason}.\n"
            "Next step: check the path exists and is readable, then refresh again."
        )
        self.root = root


def mtime_ms(stat_result: os.stat_result) -> int:
    """Return modification time in whole milliseconds, floor-truncated."""
    return stat_result.st_mtime_ns // 1_000_000


def iter_files(directory: Path, classifier: Classifier) -> Iterator[tuple[str, int]]:
    """Yield `(absolute path, mtime ms)` for relevant files under `directory`.

    Entries that disappear or cannot be read mid-walk are skipped. Directory
    symlinks are not followed.
    """
    root = Path(os.path.abspath(directory))
    _check_root(root)
    pending = [str(root)]
    while pending:
        current = pending.pop()
        try:
            with os.scandir(current) as entries:
                children = list(entries)
        except OSError as exc:
            if current == str(root):
                raise LibraryRootError(root, exc.strerror or str(exc)) from exc
            logger.debug("Skipping unreadable directory %s: %s", current, exc)
            continue
        subdirs: list[str] = []
        for entry in sorted(children, key=lambda item: item.name):
            try:
                if entry.is_dir(follow_symlinks=False):
                    subdirs.append(entry.path)
                    continue
                if not entry.is_file():
                    continue
                if not classifier(Path(entry.path)):
                    continue
                stat_result = entry.stat()
            except OSError as exc:
                logger.debug("Skipping unreadable entry %s: %s", entry.path, exc)
                continue
            yield entry.path, mtime_ms(stat_result)
        pending.extend(reversed(subdirs))


def build_snapshot(root: Path, classifier: Classifier) -> dict[str, int]:
    """Map every relevant file under `root` to its current mtime in ms."""
    snapshot = dict(iter_files(root, classifier))
    logger.debug("Snapshot of %s holds %d files", root, len(snapshot))
    return snapshot


def _check_root(root: Path) -> None:
    try:
        is_dir = root.is_dir()
    except OSError as exc:
        raise LibraryRootError(root, exc.strerror or str(exc)) from exc
    if is_dir:
        return
    if root.exists():
        raise LibraryRootError(root, "the path is not a directory")
    raise LibraryRootError(root, "the path does not exist")
