from __future__ import annotations

from devkit.webview.events import ConsoleLevel, Event, EventCategory
from devkit.webview.filtering import FilterViewModel
from devkit.webview.store import BoundedEventStore

ALL_CATEGORIES = [*EventCategory, *ConsoleLevel]


def _scenario() -> tuple[BoundedEventStore, FilterViewModel, list[Event]]:
    store = BoundedEventStore(capacity=1000)
    model = FilterViewModel(store, ALL_CATEGORIES)
    a = Event.create(EventCategory.NAVIGATION, "didStart")
    b = Event.create(ConsoleLevel.ERROR, "error", {"message": "boom"})
    c = Event.create(EventCategory.NAVIGATION, "didFinish")
    for e in (a, b, c):
        store.append(e)
    return store, model, [a, b, c]


def test_filtered_follows_store() -> None:
    store, model, (a, b, c) = _scenario()
    assert store.events == (a, b, c)
    assert model.filtered == (a, b, c)


def test_excluding_a_category() -> None:
    _store, model, (_a, b, _c) = _scenario()
    model.toggle_category(EventCategory.NAVIGATION)
    assert model.filtered == (b,)
    assert EventCategory.NAVIGATION not in model.selected_categories


def test_search_with_all_categories() -> None:
    _store, model, (_a, b, _c) = _scenario()
    model.search_text = "boom"
    assert model.filtered == (b,)


def test_search_is_case_insensitive() -> None:
    store = BoundedEventStore()
    model = FilterViewModel(store, ALL_CATEGORIES)
    ev = Event.create(EventCategory.UI_DELEGATE, "Error")
    store.append(ev)
    model.search_text = "error"
    assert model.filtered == (ev,)
    model.search_text = "ERROR"
    assert model.filtered == (ev,)


def test_search_matches_category_name() -> None:
    _store, model, (a, _b, c) = _scenario()
    model.search_text = "Navigation"
    assert model.filtered == (a, c)


def test_empty_selection_is_always_empty() -> None:
    _store, model, _events = _scenario()
    model.selected_categories = set()
    for text in ("", "boom", "did"):
        model.search_text = text
        assert model.filtered == ()


def test_toggle_all_off_stays_empty_not_default_all() -> None:
    _store, model, (a, b, c) = _scenario()
    for category in ALL_CATEGORIES:
        model.toggle_category(category)
    assert model.selected_categories == frozenset()
    assert model.filtered == ()
    model.select_all()
    assert model.filtered == (a, b, c)


def test_counts_are_unfiltered() -> None:
    _store, model, _events = _scenario()
    model.search_text = "boom"
    counts = model.counts_by_category
    assert counts[EventCategory.NAVIGATION] == 2
    assert counts[ConsoleLevel.ERROR] == 1
    assert counts[ConsoleLevel.LOG] == 0
    assert set(counts) == set(ALL_CATEGORIES)


def test_clear_empties_every_projection() -> None:
    store, model, _events = _scenario()
    model.toggle_pause()
    store.append(Event.create(ConsoleLevel.LOG, "log"))
    model.clear()
    assert model.filtered == ()
    assert all(v == 0 for v in model.counts_by_category.values())
    assert "Total Events: 0" in model.export_text()
    model.toggle_pause()
    assert model.filtered == ()


def test_pause_holds_events_until_resume() -> None:
    store, model, events = _scenario()
    assert model.toggle_pause() is True
    assert model.paused is True
    late = Event.create(ConsoleLevel.WARN, "warn", {"message": "late"})
    store.append(late)
    assert model.filtered == tuple(events)
    assert model.toggle_pause() is False
    assert model.filtered == (*events, late)


def test_observers_notified_on_every_mutation() -> None:
    store, model, _events = _scenario()
    calls: list[int] = []
    unsubscribe = model.subscribe(lambda m: calls.append(len(m.filtered)))
    model.search_text = "boom"
    model.toggle_category(ConsoleLevel.ERROR)
    store.append(Event.create(ConsoleLevel.ERROR, "error", {"message": "boom again"}))
    assert calls == [1, 0, 0]
    unsubscribe()
    model.select_all()
    assert calls == [1, 0, 0]


def test_export_counts_filtered_events() -> None:
    _store, model, _events = _scenario()
    model.toggle_category(ConsoleLevel.ERROR)
    text = model.export_text()
    assert "Total Events: 2" in text
    assert sum(1 for line in text.splitlines() if line.startswith("[")) == len(model.filtered)


def test_close_stops_following_store() -> None:
    store, model, events = _scenario()
    model.close()
    store.append(Event.create(ConsoleLevel.LOG, "log"))
    assert model.filtered == tuple(events)
