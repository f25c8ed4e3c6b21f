"""Expiry reaper: the out-of-band job that physically deletes expired rows.

Reads never depend on it. Both backends already hide expired rooms and
sessions at read time. The reaper only keeps tables (or dicts) from
growing without bound. A failed pass is logged and retried on the next
interval; it never stops the loop.

Usage:
    from roomstate.reaper import run_reaper

    stop = asyncio.Event()
    task = asyncio.create_task(run_reaper(backend, interval=300, stop=stop))
    ...
    stop.set()
    await task
"""

import asyncio
import logging

from roomstate.errors import BackendUnavailable
from roomstate.hooks.interfaces import Backend

logger = logging.getLogger("roomstate")


async def purge_once(backend: Backend) -> int:
    """Runs one purge pass. Returns rows removed, 0 if the backend was down."""
    try:
        removed = await backend.purge_expired()
    except BackendUnavailable:
        logger.warning("Expiry reaper pass failed; will retry next interval")
        return 0
    if removed:
        logger.info("Expiry reaper removed %d expired rows", removed)
    return removed


async def run_reaper(backend: Backend, interval: float, stop: asyncio.Event) -> None:
    """Purges every interval seconds until stop is set."""
    while not stop.is_set():
        await purge_once(backend)
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except TimeoutError:
            continue
