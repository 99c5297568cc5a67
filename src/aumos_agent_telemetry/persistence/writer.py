"""Fire-and-forget executor for persistence writes.

BackgroundWriter runs store writes on a single worker thread so that the
tracking hot path never waits on file I/O.  Writes run in submission order.
A failing write is logged and dropped.

Example
-------
>>> writer = BackgroundWriter()
>>> writer.submit(print, "written off the hot path")
>>> writer.flush()
True
>>> writer.close()
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Callable

logger = logging.getLogger(__name__)


class BackgroundWriter:
    """Single-worker executor for best-effort writes.

    Parameters
    ----------
    synchronous:
        Run writes inline on the caller's thread instead.  Still isolates
        and logs failures.
    """

    def __init__(self, synchronous: bool = False) -> None:
        self._synchronous = synchronous
        self._executor: ThreadPoolExecutor | None = None
        self._pending: set[Future[None]] = set()
        self._lock = threading.Lock()
        self._closed = False

    def submit(self, func: Callable[..., object], *args: object) -> None:
        """Schedule ``func(*args)``; never raises."""
        if self._synchronous or self._closed:
            self._run(func, args)
            return
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="telemetry-writer")
            future = self._executor.submit(self._run, func, args)
            self._pending.add(future)
        future.add_done_callback(self._discard)

    def flush(self, timeout: float | None = 5.0) -> bool:
        """Wait for pending writes.

        Returns
        -------
        bool
            ``True`` when every pending write finished within ``timeout``.
        """
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        """Drain pending writes and stop the worker thread."""
        with self._lock:
            executor, self._executor = self._executor, None
            self._closed = True
        if executor is not None:
            executor.shutdown(wait=True)

    def _discard(self, future: Future[None]) -> None:
        with self._lock:
            self._pending.discard(future)

    @staticmethod
    def _run(func: Callable[..., object], args: tuple[object, ...]) -> None:
        try:
            func(*args)
        except Exception:
            logger.exception("Background persistence write failed (%s).", getattr(func, "__name__", func))
