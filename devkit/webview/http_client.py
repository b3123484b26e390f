from __future__ import annotations

import json
from typing import Any
from urllib.error import URLError
from urllib.request import Request, urlopen

from .config import DevKitConfig


class HttpClientError(Exception):
    pass


def _http_get_json(url: str, timeout: float = 2.0) -> Any:
    """Fetch JSON from URL."""
    req = Request(url, headers={"User-Agent": "webdevkit/1.0"})
    try:
        with urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode())
    except (TimeoutError, URLError, ValueError) as exc:
        raise HttpClientError(str(exc)) from exc


def list_targets(config: DevKitConfig) -> list[dict[str, Any]]:
    """Return debuggable page targets exposed by the browser's /json/list endpoint."""
    data = _http_get_json(f"{config.base_http_url}/json/list", timeout=config.cdp_timeout)
    if not isinstance(data, list):
        raise HttpClientError("Unexpected /json/list payload")
    return [
        t
        for t in data
        if isinstance(t, dict) and t.get("type") == "page" and isinstance(t.get("webSocketDebuggerUrl"), str)
    ]


def find_target(config: DevKitConfig, *, target_id: str | None = None, url_contains: str | None = None) -> dict[str, Any]:
    """Pick one page target by id, by URL substring, or the first page."""
    targets = list_targets(config)
    if target_id:
        for t in targets:
            if t.get("id") == target_id:
                return t
        raise HttpClientError(f"No page target with id {target_id}")
    if url_contains:
        needle = url_contains.lower()
        for t in targets:
            if needle in str(t.get("url") or "").lower():
                return t
        raise HttpClientError(f"No page target matching {url_contains!r}")
    if not targets:
        raise HttpClientError(f"No page targets at {config.base_http_url}")
    return targets[0]
