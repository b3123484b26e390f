from __future__ import annotations

from datetime import datetime, timezone

import pytest

from devkit.webview.events import ConsoleLevel, Event, EventCategory
from devkit.webview.store import EXPORT_TITLE, BoundedEventStore, export_events


def _ev(i: int) -> Event:
    return Event.create(ConsoleLevel.LOG, "log", {"message": f"m{i}"})


def test_append_keeps_insertion_order() -> None:
    store = BoundedEventStore(capacity=10, evict_batch=3)
    events = [_ev(i) for i in range(5)]
    for e in events:
        store.append(e)
    assert store.events == tuple(events)
    assert len(store) == 5


def test_batch_eviction_drops_oldest_chunk() -> None:
    store = BoundedEventStore(capacity=10, evict_batch=3)
    events = [_ev(i) for i in range(11)]
    for e in events:
        store.append(e)
    # 11th append overflows by one: the oldest 3 go at once.
    assert store.events == tuple(events[3:])


def test_default_capacity_never_exceeded() -> None:
    store = BoundedEventStore()
    appended: list[Event] = []
    for i in range(1101):
        e = _ev(i)
        appended.append(e)
        store.append(e)
        assert len(store) <= 1000
    # Eviction fires on appends 1001 and 1101, each time dropping 100.
    assert len(store) == 901
    assert store.events == tuple(appended[-901:])


def test_eviction_fires_only_past_capacity() -> None:
    store = BoundedEventStore(capacity=1000, evict_batch=100)
    for i in range(1000):
        store.append(_ev(i))
    assert len(store) == 1000
    store.append(_ev(1000))
    assert len(store) == 901


def test_extend_applies_same_eviction() -> None:
    store = BoundedEventStore(capacity=5, evict_batch=2)
    events = [_ev(i) for i in range(8)]
    store.extend(events)
    assert store.events == tuple(events[4:])


def test_invalid_capacity_rejected() -> None:
    with pytest.raises(ValueError):
        BoundedEventStore(capacity=0)


def test_pause_buffers_and_resume_flushes_in_order() -> None:
    store = BoundedEventStore(capacity=5, evict_batch=2)
    assert store.toggle_pause() is True
    events = [_ev(i) for i in range(8)]
    for e in events:
        store.append(e)
    assert store.events == ()
    assert store.pending == tuple(events)

    assert store.toggle_pause() is False
    assert store.pending == ()
    assert store.events == tuple(events[4:])


def test_clear_resets_events_and_pause_buffer() -> None:
    store = BoundedEventStore(capacity=5)
    store.append(_ev(0))
    store.toggle_pause()
    store.append(_ev(1))
    store.clear()
    assert store.events == ()
    assert store.pending == ()
    store.toggle_pause()
    assert store.events == ()
    assert "Total Events: 0" in store.export_text()


def test_subscribers_notified_and_can_unsubscribe() -> None:
    store = BoundedEventStore(capacity=5)
    seen: list[int] = []
    unsubscribe = store.subscribe(lambda snapshot: seen.append(len(snapshot)))
    store.append(_ev(0))
    store.append(_ev(1))
    store.toggle_pause()
    store.append(_ev(2))
    store.toggle_pause()
    store.clear()
    assert seen == [1, 2, 2, 3, 0]

    unsubscribe()
    store.append(_ev(3))
    assert seen == [1, 2, 2, 3, 0]


def test_failing_subscriber_does_not_break_append() -> None:
    store = BoundedEventStore(capacity=5)
    seen: list[int] = []

    def bad(_snapshot: tuple[Event, ...]) -> None:
        raise RuntimeError("nope")

    store.subscribe(bad)
    store.subscribe(lambda snapshot: seen.append(len(snapshot)))
    store.append(_ev(0))
    assert len(store) == 1
    assert seen == [1]


def test_export_format() -> None:
    a = Event.create(EventCategory.NAVIGATION, "didStartProvisionalNavigation", {"url": "https://a.test/"})
    b = Event.create(ConsoleLevel.ERROR, "error", {"message": "boom"})
    now = datetime(2024, 1, 2, 3, 4, 5, 678000, tzinfo=timezone.utc)

    text = export_events([a, b], now=now)
    lines = text.split("\n")
    assert lines[:5] == [
        EXPORT_TITLE,
        "Generated: 2024-01-02T03:04:05.678Z",
        "Total Events: 2",
        "=" * 80,
        "",
    ]
    assert lines[5] == f"[{a.formatted_timestamp}] Navigation - didStartProvisionalNavigation"
    assert lines[6] == "  url: https://a.test/"
    assert lines[7] == ""
    assert lines[8] == f"[{b.formatted_timestamp}] error - error"
    assert lines[9] == "  message: boom"
    assert lines[10] == ""


def test_export_tagged_lines_match_event_count() -> None:
    store = BoundedEventStore(capacity=50)
    for i in range(12):
        store.append(Event.create(EventCategory.UI_DELEGATE, "alert", {"message": f"line1\nline{i}"}))
    text = store.export_text(title="Custom")
    assert text.startswith("Custom\n")
    assert sum(1 for line in text.splitlines() if line.startswith("[")) == 12
