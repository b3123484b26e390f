"""Bounded, insertion-ordered event log with batch eviction and a pause buffer."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator, Sequence
from contextlib import suppress
from datetime import datetime, timezone

from .events import Event

logger = logging.getLogger("webdevkit.store")

DEFAULT_CAPACITY = 1000
DEFAULT_EVICT_BATCH = 100
EXPORT_TITLE = "WebView Events Export"
EXPORT_RULE_WIDTH = 80

Subscriber = Callable[[tuple[Event, ...]], None]


def _iso_now(now: datetime | None = None) -> str:
    dt = now or datetime.now(timezone.utc)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def export_events(
    events: Sequence[Event],
    *,
    title: str = EXPORT_TITLE,
    now: datetime | None = None,
) -> str:
    """Render events as the plain-text export report."""
    lines = [
        title,
        f"Generated: {_iso_now(now)}",
        f"Total Events: {len(events)}",
        "=" * EXPORT_RULE_WIDTH,
        "",
    ]
    for event in events:
        lines.append(f"[{event.formatted_timestamp}] {event.category.display_name} - {event.label}")
        for line in event.raw_description.split("\n"):
            if line:
                lines.append(f"  {line}")
        lines.append("")
    return "\n".join(lines) + "\n"


class BoundedEventStore:
    """Append-only event log capped at `capacity` entries.

    When an append pushes the length past capacity, the oldest
    `max(evict_batch, overflow)` events are dropped in one slice. While paused,
    appends go to a holding buffer that is flushed (in order, same eviction) on
    resume.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, evict_batch: int = DEFAULT_EVICT_BATCH) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = int(capacity)
        self.evict_batch = max(1, min(int(evict_batch), self.capacity))
        self._events: list[Event] = []
        self._pending: list[Event] = []
        self._paused = False
        self._lock = threading.RLock()
        self._subscribers: list[Subscriber] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self.events)

    @property
    def events(self) -> tuple[Event, ...]:
        with self._lock:
            return tuple(self._events)

    @property
    def pending(self) -> tuple[Event, ...]:
        with self._lock:
            return tuple(self._pending)

    @property
    def paused(self) -> bool:
        return self._paused

    def _evict(self) -> None:
        overflow = len(self._events) - self.capacity
        if overflow <= 0:
            return
        drop = max(self.evict_batch, overflow)
        del self._events[:drop]
        logger.debug("evicted %d oldest events (capacity=%d)", drop, self.capacity)

    def append(self, event: Event) -> None:
        with self._lock:
            if self._paused:
                self._pending.append(event)
                return
            self._events.append(event)
            self._evict()
            snapshot = tuple(self._events)
        self._notify(snapshot)

    def extend(self, events: Iterable[Event]) -> None:
        with self._lock:
            batch = list(events)
            if not batch:
                return
            if self._paused:
                self._pending.extend(batch)
                return
            for event in batch:
                self._events.append(event)
                self._evict()
            snapshot = tuple(self._events)
        self._notify(snapshot)

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
            self._pending.clear()
        self._notify(())

    def toggle_pause(self) -> bool:
        """Flip between recording and paused; returns the new paused state."""
        with self._lock:
            self._paused = not self._paused
            paused = self._paused
            if not paused:
                flushed = self._pending
                self._pending = []
                for event in flushed:
                    self._events.append(event)
                    self._evict()
                logger.debug("resumed; flushed %d buffered events", len(flushed))
            snapshot = tuple(self._events)
        self._notify(snapshot)
        return paused

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a change callback; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock, suppress(ValueError):
                self._subscribers.remove(callback)

        return _unsubscribe

    def _notify(self, snapshot: tuple[Event, ...]) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("event store subscriber failed")

    def export_text(
        self,
        events: Sequence[Event] | None = None,
        *,
        title: str = EXPORT_TITLE,
        now: datetime | None = None,
    ) -> str:
        return export_events(self.events if events is None else events, title=title, now=now)
