"""Nox session definitions mirroring repository quality gates."""

from __future__ import annotations

import nox

nox.options.sessions = ["lint", "typecheck", "tests"]


@nox.session
def lint(session: nox.Session) -> None:
    """Run lint and formatting checks without mutating files."""
    session.install("ruff")
    session.run("ruff", "check", ".")
    session.run("ruff", "format", "--check", ".")


@nox.session(name="lint-fix")
def lint_fix(session: nox.Session) -> None:
    """Apply ruff fixes and formatting."""
    session.install("ruff")
    session.run("ruff", "check", "--fix", ".")
    session.run("ruff", "format", ".")


@nox.session
def typecheck(session: nox.Session) -> None:
    """Run mypy on the package with project dependencies installed."""
    session.install("mypy")
    session.install("-e", ".")
    session.run("mypy", "src")


@nox.session
def tests(session: nox.Session) -> None:
    """Run pytest with the test extra installed."""
    session.install("-e", ".[test]")
    session.run("pytest", *session.posargs)


@nox.session(name="watch-smoke")
def watch_smoke(session: nox.Session) -> None:
    """Sync a directory once against a scratch database (pass DIR as posarg)."""
    if not session.posargs:
        session.error("usage: nox -s watch-smoke -- /path/to/music")
    session.install("-e", ".")
    db_file = session.create_tmp() + "/smoke.sqlite"
    session.run(
        "sync-music-db", session.posargs[0], "--db", db_file, "--once", "--verbose"
    )
