"""Web storage snapshot model (localStorage, sessionStorage, cookies)."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class WebStorageType(str, Enum):
    LOCAL_STORAGE = "local_storage"
    SESSION_STORAGE = "session_storage"
    COOKIES = "cookies"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, raw: str | None) -> WebStorageType | None:
        """Map loose user input ("local", "sessionStorage", "cookie") to a type."""
        v = (raw or "").strip().lower().replace("-", "").replace("_", "").replace(" ", "")
        if v in {"local", "localstorage"}:
            return cls.LOCAL_STORAGE
        if v in {"session", "sessionstorage"}:
            return cls.SESSION_STORAGE
        if v in {"cookie", "cookies"}:
            return cls.COOKIES
        return None


_DISPLAY_NAMES = {
    WebStorageType.LOCAL_STORAGE: "Local Storage",
    WebStorageType.SESSION_STORAGE: "Session Storage",
    WebStorageType.COOKIES: "Cookies",
}

ALL_STORAGE_TYPES: frozenset[WebStorageType] = frozenset(WebStorageType)

_ids = itertools.count(1)


@dataclass(frozen=True, slots=True)
class WebStorageItem:
    key: str
    value: str
    type: WebStorageType
    id: int = field(default_factory=lambda: next(_ids), compare=False)


def parse_storage_entries(raw: Any, storage_type: WebStorageType) -> list[WebStorageItem]:
    """Convert an `Object.entries(storage)` result into items.

    Entries that are not `[str, str]` pairs are skipped.
    """
    if not isinstance(raw, list):
        return []
    items: list[WebStorageItem] = []
    for entry in raw:
        if not isinstance(entry, (list, tuple)) or len(entry) != 2:
            continue
        key, value = entry
        if not isinstance(key, str) or not isinstance(value, str):
            continue
        items.append(WebStorageItem(key=key, value=value, type=storage_type))
    return items


def parse_cookie_string(raw: Any) -> list[WebStorageItem]:
    """Split a `document.cookie` string into cookie items."""
    if not isinstance(raw, str) or not raw:
        return []
    items: list[WebStorageItem] = []
    for pair in raw.split(";"):
        key, sep, value = pair.strip().partition("=")
        if not sep or not key or not value:
            continue
        items.append(WebStorageItem(key=key, value=value, type=WebStorageType.COOKIES))
    return items


def filter_storage_items(
    items: list[WebStorageItem],
    *,
    storage_type: WebStorageType | None = None,
    search: str = "",
) -> list[WebStorageItem]:
    typed = items if storage_type is None else [i for i in items if i.type == storage_type]
    if not search:
        return typed
    needle = search.lower()
    return [i for i in typed if needle in i.key.lower() or needle in i.value.lower()]


def group_by_type(items: list[WebStorageItem]) -> dict[WebStorageType, list[WebStorageItem]]:
    """Group items by storage type, keeping the canonical type order."""
    out: dict[WebStorageType, list[WebStorageItem]] = {}
    for storage_type in WebStorageType:
        bucket = [i for i in items if i.type == storage_type]
        if bucket:
            out[storage_type] = bucket
    return out
