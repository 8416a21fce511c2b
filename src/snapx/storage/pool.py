"""Worker threads for blocking driver calls.

pymongo, the Cloudinary SDK and local file writes all block. ``IOPool`` runs
them on a fixed set of threads so the event loop keeps serving other
requests while a store read or an upload is in flight. At most
``max_concurrent_io`` calls run at once; further calls wait their turn.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from snapx.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class IOPool:
    """Bounded executor for store and object-storage calls."""

    def __init__(self, settings: Settings) -> None:
        self._slots = asyncio.Semaphore(settings.max_concurrent_io)
        self._executor = ThreadPoolExecutor(
            max_workers=settings.max_concurrent_io,
            thread_name_prefix="snapx-io",
        )
        self._lock = threading.Lock()
        self._in_flight = 0
        self._waiting = 0

    def _track(self, *, in_flight: int = 0, waiting: int = 0) -> None:
        with self._lock:
            self._in_flight += in_flight
            self._waiting += waiting

    async def run(self, func: Callable[..., T], *args: object) -> T:
        """Call ``func(*args)`` on a worker thread and return its result.

        Exceptions raised by ``func`` propagate unchanged; callers translate
        driver errors at their own boundary.
        """
        self._track(waiting=1)
        try:
            await self._slots.acquire()
        finally:
            self._track(waiting=-1)

        self._track(in_flight=1)
        try:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(self._executor, functools.partial(func, *args))
        finally:
            self._slots.release()
            self._track(in_flight=-1)

    @property
    def in_flight(self) -> int:
        """Driver calls currently executing on a worker thread."""
        with self._lock:
            return self._in_flight

    @property
    def waiting(self) -> int:
        """Driver calls queued behind the concurrency limit."""
        with self._lock:
            return self._waiting

    def shutdown(self) -> None:
        """Wait for running calls, then stop the worker threads."""
        self._executor.shutdown(wait=True)
        logger.info("I/O pool shut down")
