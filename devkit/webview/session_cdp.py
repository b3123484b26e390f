"""Raw CDP websocket connection.

One reader thread owns `recv()`: command responses are handed to the caller
waiting on that id, events go to the event sink (or a bounded queue when no
sink is attached). `send()` is safe to call from any thread except the reader
thread itself.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from contextlib import suppress
from typing import Any

import websocket

from .http_client import HttpClientError

logger = logging.getLogger("webdevkit.cdp")

EventSink = Callable[[dict[str, Any]], None]


class _Pending:
    __slots__ = ("done", "response")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.response: dict[str, Any] | None = None


class CdpConnection:
    """Websocket to one DevTools target with id-matched replies."""

    def __init__(self, ws_url: str, timeout: float = 5.0, *, ws: Any = None):
        self.ws = ws if ws is not None else websocket.create_connection(ws_url, timeout=timeout)
        self.ws_url = ws_url
        self.timeout = timeout
        self._next_id = 1
        self._id_lock = threading.Lock()
        self._send_lock = threading.Lock()
        self._pending: dict[int, _Pending] = {}
        self._pending_lock = threading.Lock()
        # Held until a sink is attached; oldest entries go first past the limit.
        self._backlog: list[dict[str, Any]] = []
        self.backlog_limit = 2000
        self._queue_cond = threading.Condition()
        self._event_sink: EventSink | None = None
        self._closed = threading.Event()
        self._reader = threading.Thread(target=self._read_loop, name="webdevkit-cdp-reader", daemon=True)
        self._reader.start()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def set_event_sink(self, sink: EventSink | None) -> None:
        """Attach a sink called (on the reader thread) for every CDP event.

        Events queued before the sink was attached are replayed to it first.
        """
        with self._queue_cond:
            self._event_sink = sink
            backlog = self._backlog if sink is not None else []
            if sink is not None:
                self._backlog = []
        for event in backlog:
            self._deliver(sink, event)

    def _deliver(self, sink: EventSink | None, event: dict[str, Any]) -> None:
        if sink is None:
            return
        try:
            sink(event)
        except Exception:
            logger.exception("CDP event sink failed for %s", event.get("method"))

    def _on_event(self, event: dict[str, Any]) -> None:
        with self._queue_cond:
            sink = self._event_sink
            if sink is None:
                self._backlog.append(event)
                overflow = len(self._backlog) - self.backlog_limit
                if overflow > 0:
                    del self._backlog[:overflow]
                self._queue_cond.notify_all()
        if sink is not None:
            self._deliver(sink, event)

    def _take(self, method: str) -> dict[str, Any] | None:
        # Caller holds _queue_cond.
        index = next((n for n, ev in enumerate(self._backlog) if ev.get("method") == method), None)
        if index is None:
            return None
        params = self._backlog.pop(index).get("params")
        return params if isinstance(params, dict) else {}

    def pop_event(self, event_name: str) -> dict[str, Any] | None:
        """Remove and return params of the first backlogged `event_name`."""
        with self._queue_cond:
            return self._take(event_name)

    def wait_for_event(self, event_name: str, timeout: float = 10.0) -> dict[str, Any] | None:
        """Block until `event_name` shows up in the backlog.

        Only useful before a sink is attached; afterwards events bypass the
        backlog and this returns None once `timeout` elapses.
        """
        deadline = time.monotonic() + timeout
        with self._queue_cond:
            params = self._take(event_name)
            while params is None:
                remaining = deadline - time.monotonic()
                if remaining <= 0 or self.closed:
                    break
                self._queue_cond.wait(min(0.5, remaining))
                params = self._take(event_name)
            return params

    def _read_loop(self) -> None:
        while not self._closed.is_set():
            try:
                raw = self.ws.recv()
            except websocket.WebSocketTimeoutException:
                continue
            except Exception as exc:  # noqa: BLE001
                msg = str(exc).lower()
                if isinstance(exc, TimeoutError) or "timed out" in msg:
                    continue
                if not self._closed.is_set():
                    logger.info("CDP connection lost: %s", exc)
                break
            if not raw:
                continue
            try:
                data = json.loads(raw)
            except (TypeError, ValueError):
                continue
            if not isinstance(data, dict):
                continue

            if isinstance(data.get("method"), str) and "id" not in data:
                self._on_event(data)
                continue

            msg_id = data.get("id")
            with self._pending_lock:
                slot = self._pending.pop(msg_id, None) if isinstance(msg_id, int) else None
            if slot is not None:
                slot.response = data
                slot.done.set()

        self._closed.set()
        with self._pending_lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for slot in pending:
            slot.done.set()
        with self._queue_cond:
            self._queue_cond.notify_all()

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Issue `method` and block until its reply arrives or `timeout` passes."""
        if self.closed:
            raise HttpClientError("CDP connection is closed")
        if threading.current_thread() is self._reader:
            raise HttpClientError("send() called from the CDP reader thread")

        with self._id_lock:
            msg_id = self._next_id
            self._next_id += 1

        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params

        slot = _Pending()
        with self._pending_lock:
            self._pending[msg_id] = slot
            if self._closed.is_set():
                self._pending.pop(msg_id, None)
                raise HttpClientError("CDP connection is closed")
        try:
            with self._send_lock:
                self.ws.send(json.dumps(msg))
        except Exception as exc:  # noqa: BLE001
            with self._pending_lock:
                self._pending.pop(msg_id, None)
            raise HttpClientError(str(exc)) from exc

        if not slot.done.wait(self.timeout):
            with self._pending_lock:
                self._pending.pop(msg_id, None)
            raise HttpClientError(f"CDP response timed out ({method})")

        data = slot.response
        if data is None:
            raise HttpClientError("CDP connection closed while waiting for a response")
        if "error" in data:
            raise HttpClientError(str(data["error"]))
        result = data.get("result")
        return result if isinstance(result, dict) else {}

    def send_many(self, commands: list[dict[str, Any]], *, stop_on_error: bool = True) -> list[dict[str, Any]]:
        """Run `{"method", "params"}` commands one after another.

        With `stop_on_error` off, a failed command leaves an `{"ok": False}`
        record in its slot and the batch carries on.
        """
        results: list[dict[str, Any]] = []
        for index, command in enumerate(c for c in commands if isinstance(c, dict)):
            method = str(command.get("method") or "").strip()
            params = command.get("params")
            try:
                if not method:
                    raise HttpClientError(f"command #{index} has no method")
                results.append(self.send(method, params if isinstance(params, dict) else None))
            except HttpClientError as exc:
                if stop_on_error:
                    raise
                failure: dict[str, Any] = {"ok": False, "error": str(exc), "index": index}
                if method:
                    failure["method"] = method
                results.append(failure)
        return results

    def close(self) -> None:
        """Close the WebSocket connection and stop the reader thread."""
        if self._closed.is_set():
            return
        self._closed.set()
        with suppress(Exception):
            self.ws.close()
        if threading.current_thread() is not self._reader:
            self._reader.join(timeout=2.0)


__all__ = ["CdpConnection", "EventSink"]
