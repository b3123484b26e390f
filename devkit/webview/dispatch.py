"""The sequencing context that owns all store mutation.

CDP events are read on a background thread; anything that touches a store or a
filter model is handed over to one dispatcher so mutations happen serially, in
submission order, on a single thread.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from typing import Any, Protocol

logger = logging.getLogger("webdevkit.dispatch")


class Dispatcher(Protocol):
    def submit(self, fn: Callable[..., Any], *args: Any) -> None: ...


class ImmediateDispatcher:
    """Runs work inline; for callers already on the sequencing context."""

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("dispatched task failed")

    def drain(self, timeout: float | None = None) -> bool:  # noqa: ARG002
        return True

    def stop(self) -> None:
        return


_STOP = object()


class SerialDispatcher:
    """Single worker thread executing submitted callables in FIFO order."""

    def __init__(self, name: str = "webdevkit-main") -> None:
        self._queue: queue.Queue[Any] = queue.Queue()
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    @property
    def is_current(self) -> bool:
        return threading.current_thread() is self._thread

    def submit(self, fn: Callable[..., Any], *args: Any) -> None:
        if self._stopped.is_set():
            logger.debug("dispatcher stopped; dropping %r", fn)
            return
        self._queue.put((fn, args))

    def drain(self, timeout: float | None = None) -> bool:
        """Block until everything submitted so far has run."""
        if self.is_current:
            return True
        if self._stopped.is_set():
            return False
        done = threading.Event()
        self.submit(done.set)
        return done.wait(timeout)

    def stop(self, timeout: float | None = 2.0) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        self._queue.put(_STOP)
        if not self.is_current:
            self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            fn, args = item
            try:
                fn(*args)
            except Exception:
                logger.exception("dispatched task failed")
