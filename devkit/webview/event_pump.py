from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from typing import Any

logger = logging.getLogger("webdevkit.event_pump")

_STOP = object()


class EventPump:
    """Serial delivery of CDP events to one handler on a dedicated thread.

    The CDP reader thread only enqueues; the handler runs here so it may issue
    CDP commands (dialog answers, fetch decisions) and wait for their replies.
    Handler failures are logged and never stop the pump.
    """

    def __init__(self, on_event: Callable[[dict[str, Any]], None], *, name: str = "webdevkit-engine") -> None:
        self._on_event = on_event
        self._queue: queue.Queue[Any] = queue.Queue()
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def is_current(self) -> bool:
        return threading.current_thread() is self._thread

    def start(self) -> None:
        if self._thread.is_alive() or self._stop.is_set():
            return
        self._thread.start()

    def put(self, event: dict[str, Any]) -> None:
        if self._stop.is_set():
            return
        self._queue.put(event)

    def stop(self, timeout: float = 2.0) -> None:
        if self._stop.is_set():
            return
        self._stop.set()
        self._queue.put(_STOP)
        if self._thread.is_alive() and not self.is_current:
            self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            if event is _STOP:
                break
            try:
                self._on_event(event)
            except Exception:
                logger.exception("engine event handler failed for %s", event.get("method"))
