"""Async bridge for running blocking filesystem and SQLite work off the loop."""

from __future__ import annotations

import asyncio
import atexit
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, TypeVar

T = TypeVar("T")

_IO_EXECUTOR = ThreadPoolExecutor(
    max_workers=4, thread_name_prefix="sync-music-db-io"
)


@atexit.register
def _shutdown_io_executor() -> None:
    _IO_EXECUTOR.shutdown(wait=False, cancel_futures=True)


async def run_blocking(func: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Run blocking callable on the IO executor and await its result.

    The executor future is shielded: cancelling the awaiting task never
    interrupts the callable, so a SQLite transaction that already started is
    always allowed to commit or roll back on its own.
    """
    if not callable(func):
        raise TypeError("func must be callable")
    loop = asyncio.get_running_loop()
    if kwargs:
        future = loop.run_in_executor(_IO_EXECUTOR, partial(func, *args, **kwargs))
    else:
        future = loop.run_in_executor(_IO_EXECUTOR, func, *args)
    # Executor completion wakeups are occasionally lost in sandboxed runners,
    # so poll the shielded future instead of awaiting it once.
    while True:
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout=0.1)
        except asyncio.TimeoutError:
            continue
