"""Live, filtered projection over a BoundedEventStore."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from contextlib import suppress
from datetime import datetime

from .events import Category, Event
from .store import EXPORT_TITLE, BoundedEventStore, export_events

logger = logging.getLogger("webdevkit.filtering")

Observer = Callable[["FilterViewModel"], None]


class FilterViewModel:
    """Search + category filter over one store.

    Every mutation (search text, category selection, store content) recomputes
    `filtered` and `counts_by_category` synchronously and then notifies
    observers before returning.
    """

    def __init__(self, store: BoundedEventStore, categories: Iterable[Category]) -> None:
        self.store = store
        self.categories: tuple[Category, ...] = tuple(categories)
        self._search_text = ""
        self._selected: frozenset[Category] = frozenset(self.categories)
        self._filtered: tuple[Event, ...] = ()
        self._counts: dict[Category, int] = {c: 0 for c in self.categories}
        self._observers: list[Observer] = []
        self._lock = threading.RLock()
        self._recompute(store.events)
        self._unsubscribe: Callable[[], None] | None = store.subscribe(self._on_store_changed)

    # ── filter state ─────────────────────────────────────────────────────

    @property
    def search_text(self) -> str:
        return self._search_text

    @search_text.setter
    def search_text(self, value: str) -> None:
        with self._lock:
            self._search_text = str(value or "")
            self._recompute(self.store.events)
        self._notify()

    @property
    def selected_categories(self) -> frozenset[Category]:
        return self._selected

    @selected_categories.setter
    def selected_categories(self, value: Iterable[Category]) -> None:
        with self._lock:
            self._selected = frozenset(value)
            self._recompute(self.store.events)
        self._notify()

    @property
    def paused(self) -> bool:
        return self.store.paused

    def toggle_pause(self) -> bool:
        return self.store.toggle_pause()

    def toggle_category(self, category: Category) -> None:
        selected = set(self._selected)
        if category in selected:
            selected.remove(category)
        else:
            selected.add(category)
        self.selected_categories = selected

    def select_all(self) -> None:
        self.selected_categories = self.categories

    def clear(self) -> None:
        self.store.clear()

    # ── projections ──────────────────────────────────────────────────────

    @property
    def filtered(self) -> tuple[Event, ...]:
        return self._filtered

    @property
    def counts_by_category(self) -> dict[Category, int]:
        return dict(self._counts)

    def export_text(self, *, title: str = EXPORT_TITLE, now: datetime | None = None) -> str:
        """Export the currently filtered events."""
        return export_events(self._filtered, title=title, now=now)

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        with self._lock:
            self._observers.append(observer)

        def _unsubscribe() -> None:
            with self._lock, suppress(ValueError):
                self._observers.remove(observer)

        return _unsubscribe

    def close(self) -> None:
        """Stop following the store."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ── internals ────────────────────────────────────────────────────────

    def _on_store_changed(self, _snapshot: tuple[Event, ...]) -> None:
        # Re-read the store: snapshots from concurrent producers may arrive out of order.
        with self._lock:
            self._recompute(self.store.events)
        self._notify()

    def _recompute(self, events: tuple[Event, ...]) -> None:
        needle = self._search_text.lower()
        selected = self._selected
        self._filtered = tuple(e for e in events if e.category in selected and e.matches(needle))
        counts = {c: 0 for c in self.categories}
        for e in events:
            if e.category in counts:
                counts[e.category] += 1
        self._counts = counts

    def _notify(self) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(self)
            except Exception:
                logger.exception("filter observer failed")
