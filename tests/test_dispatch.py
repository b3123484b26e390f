from __future__ import annotations

import threading

from devkit.webview.dispatch import ImmediateDispatcher, SerialDispatcher


def test_serial_dispatcher_runs_in_submission_order_on_one_thread() -> None:
    dispatcher = SerialDispatcher(name="test-main")
    seen: list[tuple[str, int]] = []
    threads: set[str] = set()

    def task(tag: str, i: int) -> None:
        seen.append((tag, i))
        threads.add(threading.current_thread().name)

    def produce(tag: str) -> None:
        for i in range(50):
            dispatcher.submit(task, tag, i)

    producers = [threading.Thread(target=produce, args=(tag,)) for tag in ("a", "b")]
    for p in producers:
        p.start()
    for p in producers:
        p.join()

    assert dispatcher.drain(2.0) is True
    assert len(seen) == 100
    for tag in ("a", "b"):
        assert [i for t, i in seen if t == tag] == list(range(50))
    assert threads == {"test-main"}
    dispatcher.stop()


def test_serial_dispatcher_survives_failing_task() -> None:
    dispatcher = SerialDispatcher()
    seen: list[str] = []

    def boom() -> None:
        raise RuntimeError("boom")

    dispatcher.submit(boom)
    dispatcher.submit(seen.append, "after")
    assert dispatcher.drain(2.0) is True
    assert seen == ["after"]
    dispatcher.stop()


def test_serial_dispatcher_drops_work_after_stop() -> None:
    dispatcher = SerialDispatcher()
    dispatcher.stop()
    seen: list[int] = []
    dispatcher.submit(seen.append, 1)
    assert dispatcher.drain(0.1) is False
    assert seen == []


def test_is_current_only_inside_worker() -> None:
    dispatcher = SerialDispatcher()
    inside: list[bool] = []
    dispatcher.submit(lambda: inside.append(dispatcher.is_current))
    assert dispatcher.drain(2.0) is True
    assert inside == [True]
    assert dispatcher.is_current is False
    dispatcher.stop()


def test_immediate_dispatcher_runs_inline_and_logs_failures() -> None:
    dispatcher = ImmediateDispatcher()
    seen: list[int] = []
    dispatcher.submit(seen.append, 1)
    dispatcher.submit(lambda: 1 / 0)
    dispatcher.submit(seen.append, 2)
    assert seen == [1, 2]
    assert dispatcher.drain() is True
