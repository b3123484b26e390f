from __future__ import annotations

import json
import queue
import threading
from typing import Any

import pytest
import websocket

from devkit.webview.http_client import HttpClientError
from devkit.webview.session_cdp import CdpConnection


class FakeWs:
    """In-memory websocket: replies to each command via `responder`."""

    def __init__(self, responder: Any = None) -> None:
        self.inbox: queue.Queue[str] = queue.Queue()
        self.sent: list[dict[str, Any]] = []
        self.closed = threading.Event()
        self.responder = responder

    def recv(self) -> str:
        if self.closed.is_set():
            raise websocket.WebSocketConnectionClosedException("closed")
        try:
            return self.inbox.get(timeout=0.05)
        except queue.Empty:
            raise websocket.WebSocketTimeoutException("timed out") from None

    def send(self, raw: str) -> None:
        msg = json.loads(raw)
        self.sent.append(msg)
        if self.responder is not None:
            reply = self.responder(msg)
            if reply is not None:
                self.inbox.put(json.dumps(reply))

    def push_event(self, method: str, params: dict[str, Any] | None = None) -> None:
        self.inbox.put(json.dumps({"method": method, "params": params or {}}))

    def close(self) -> None:
        self.closed.set()


def _echo(msg: dict[str, Any]) -> dict[str, Any]:
    return {"id": msg["id"], "result": {"echo": msg["method"]}}


def test_send_waits_for_matching_response() -> None:
    ws = FakeWs(_echo)
    conn = CdpConnection("ws://fake", timeout=2.0, ws=ws)
    try:
        assert conn.send("Page.enable") == {"echo": "Page.enable"}
        assert conn.send("Runtime.enable", {"a": 1}) == {"echo": "Runtime.enable"}
        assert ws.sent[1]["params"] == {"a": 1}
        assert "params" not in ws.sent[0]
    finally:
        conn.close()


def test_error_reply_raises() -> None:
    ws = FakeWs(lambda msg: {"id": msg["id"], "error": {"code": -32000, "message": "nope"}})
    conn = CdpConnection("ws://fake", timeout=2.0, ws=ws)
    try:
        with pytest.raises(HttpClientError, match="nope"):
            conn.send("Page.navigate", {"url": "x"})
    finally:
        conn.close()


def test_timeout_raises() -> None:
    conn = CdpConnection("ws://fake", timeout=0.1, ws=FakeWs(None))
    try:
        with pytest.raises(HttpClientError, match="timed out"):
            conn.send("Page.enable")
    finally:
        conn.close()


def test_events_queue_until_sink_attached_then_replay() -> None:
    ws = FakeWs(_echo)
    conn = CdpConnection("ws://fake", timeout=2.0, ws=ws)
    try:
        ws.push_event("Page.loadEventFired", {"timestamp": 1})
        assert conn.wait_for_event("Page.loadEventFired", timeout=2.0) == {"timestamp": 1}

        ws.push_event("Page.frameNavigated", {"frame": {"id": "F"}})
        ws.push_event("Inspector.targetCrashed")
        # Round-trip a command so both events have been read.
        conn.send("Runtime.enable")

        seen: list[str] = []
        conn.set_event_sink(lambda ev: seen.append(ev["method"]))
        assert seen == ["Page.frameNavigated", "Inspector.targetCrashed"]

        done = threading.Event()
        conn.set_event_sink(lambda ev: (seen.append(ev["method"]), done.set()))
        ws.push_event("Page.loadEventFired")
        assert done.wait(2.0)
        assert seen[-1] == "Page.loadEventFired"
    finally:
        conn.close()


def test_pop_event_returns_oldest_matching() -> None:
    ws = FakeWs(_echo)
    conn = CdpConnection("ws://fake", timeout=2.0, ws=ws)
    try:
        ws.push_event("A", {"n": 1})
        ws.push_event("A", {"n": 2})
        conn.send("Runtime.enable")
        assert conn.pop_event("A") == {"n": 1}
        assert conn.pop_event("A") == {"n": 2}
        assert conn.pop_event("A") is None
    finally:
        conn.close()


def test_send_many_collects_errors_when_not_stopping() -> None:
    def responder(msg: dict[str, Any]) -> dict[str, Any]:
        if msg["method"] == "Bad.method":
            return {"id": msg["id"], "error": {"message": "unknown"}}
        return _echo(msg)

    conn = CdpConnection("ws://fake", timeout=2.0, ws=FakeWs(responder))
    try:
        out = conn.send_many(
            [{"method": "Page.enable"}, {"method": "Bad.method"}, {"params": {}}],
            stop_on_error=False,
        )
        assert out[0] == {"echo": "Page.enable"}
        assert out[1]["ok"] is False and out[1]["method"] == "Bad.method"
        assert out[2]["ok"] is False and out[2]["index"] == 2

        with pytest.raises(HttpClientError):
            conn.send_many([{"method": "Bad.method"}])
    finally:
        conn.close()


def test_send_after_close_raises() -> None:
    ws = FakeWs(_echo)
    conn = CdpConnection("ws://fake", timeout=2.0, ws=ws)
    conn.close()
    assert conn.closed
    assert ws.closed.is_set()
    with pytest.raises(HttpClientError, match="closed"):
        conn.send("Page.enable")


def test_connection_loss_releases_waiters() -> None:
    ws = FakeWs(None)
    conn = CdpConnection("ws://fake", timeout=5.0, ws=ws)
    errors: list[str] = []

    def call() -> None:
        try:
            conn.send("Page.enable")
        except HttpClientError as exc:
            errors.append(str(exc))

    t = threading.Thread(target=call)
    t.start()
    ws.close()
    t.join(3.0)
    assert not t.is_alive()
    assert errors and "closed" in errors[0]
