"""Command-line interface for sync-music-db."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from rich.console import Console
from rich.markup import escape

from . import __version__
from .config import SyncConfig, load_config_with_notice
from .events import LibraryReady, SyncEvent, SyncFailed, TrackAdded, TrackRemoved
from .library_sync import LibrarySync
from .logging_utils import setup_logging
from .paths import resolve_user_paths
from .runtime_config import normalize_delay_ms, resolve_log_level
from .services.track_store import TrackStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sync-music-db",
        description="Keep a SQLite track table in sync with a music directory.",
    )
    parser.add_argument(
        "music_dir", nargs="?", help="Directory to scan and watch for audio files"
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--db", help="SQLite database file to write tracks into")
    parser.add_argument("--table", help="Table name for track rows (default: tracks)")
    parser.add_argument(
        "--delay", type=int, help="Watcher debounce delay in milliseconds"
    )
    parser.add_argument(
        "--all-files",
        action="store_true",
        help="Sync every file instead of only known audio extensions",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Exit after the initial sync instead of watching for changes",
    )
    parser.add_argument("--config", help="Read settings from this JSON file")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--quiet", action="store_true", help="Only show warnings and errors"
    )
    parser.add_argument("--log-file", help="Write logs to a file path")
    return parser


def resolve_config(args: argparse.Namespace, base: SyncConfig) -> SyncConfig:
    """Overlay explicit CLI flags on top of file-based settings."""
    config = base
    if args.music_dir:
        config = replace(config, music_dir=args.music_dir)
    if args.db:
        config = replace(config, db_path=args.db)
    if args.table:
        config = replace(config, table_name=args.table)
    if args.delay is not None:
        config = replace(config, delay_ms=normalize_delay_ms(args.delay))
    if args.all_files:
        config = replace(config, ignore_ext=False)
    if args.verbose or args.quiet:
        config = replace(
            config, log_level=resolve_log_level(verbose=args.verbose, quiet=args.quiet)
        )
    return config


def render_event(event: SyncEvent) -> str | None:
    """Return console markup for user-facing notifications."""
    if isinstance(event, TrackAdded):
        track = event.track
        label = track.title or Path(track.path).name
        if track.artist:
            label = f"{track.artist} - {label}"
        return f"[green]+[/green] {escape(label)}"
    if isinstance(event, TrackRemoved):
        return f"[red]-[/red] {escape(event.path)}"
    if isinstance(event, LibraryReady):
        return "[bold blue]Library synced; watching for changes.[/bold blue]"
    if isinstance(event, SyncFailed):
        return f"[bold red]Sync error:[/bold red] {escape(str(event.error))}"
    return None


async def run_sync(config: SyncConfig, *, once: bool, console: Console) -> int:
    """Create the table, sync once and optionally keep watching."""
    if config.music_dir is None or config.db_path is None:
        raise ValueError("music_dir and db_path must be resolved before syncing")
    store = TrackStore(Path(config.db_path), table_name=config.table_name)
    await store.initialize()

    def _print(event: SyncEvent) -> None:
        text = render_event(event)
        if text is not None:
            console.print(text)

    async with LibrarySync(
        store,
        Path(config.music_dir),
        delay_ms=config.delay_ms,
        ignore_ext=config.ignore_ext,
        extensions=config.extensions,
    ) as sync:
        sync.subscribe(_print)
        if not await sync.refresh():
            return 1
        if once:
            total = await store.count()
            console.print(f"{total} tracks in table '{store.table_name}'")
            return 0
        await asyncio.Event().wait()
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    console = Console()
    try:
        user_paths = resolve_user_paths()
        source = Path(args.config) if args.config else user_paths.config_file
        base, notice = load_config_with_notice(source)
        if notice:
            print(notice, file=sys.stderr)
        config = resolve_config(args, base)
        if config.music_dir is None:
            print(
                "No music directory given.\n"
                "Next step: pass a directory argument or set 'music_dir' in the config file.",
                file=sys.stderr,
            )
            return 2
        if config.db_path is None:
            config = replace(config, db_path=str(user_paths.db_file))
        setup_logging(
            log_dir=user_paths.log_dir,
            level=config.log_level,
            log_file=Path(args.log_file) if args.log_file else None,
        )
        logger.info("Syncing %s into %s", config.music_dir, config.db_path)
        return asyncio.run(run_sync(config, once=args.once, console=console))
    except KeyboardInterrupt:
        console.print("\n[yellow]Watch stopped.[/yellow]")
        return 0
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except Exception as exc:  # pragma: no cover - top-level safety net
        logger.exception("Unhandled error: %s", exc)
        print("Unexpected error. Re-run with --verbose for details.", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
