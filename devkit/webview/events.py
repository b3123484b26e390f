"""Normalized event records and the normalizer that builds them.

Every intercepted call (a console method, a navigation callback, a UI dialog
callback, a posted script message) becomes one immutable `Event`. Values
captured by a hook are rendered to display strings exactly once, at creation,
so the stores only ever hold plain text.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

logger = logging.getLogger("webdevkit.events")

NO_URL = "no URL"


class EventCategory(str, Enum):
    """Lifecycle event kinds."""

    NAVIGATION = "navigation"
    SCRIPT_MESSAGE = "script_message"
    UI_DELEGATE = "ui_delegate"

    @property
    def display_name(self) -> str:
        return _CATEGORY_NAMES[self]


_CATEGORY_NAMES = {
    EventCategory.NAVIGATION: "Navigation",
    EventCategory.SCRIPT_MESSAGE: "Script Message",
    EventCategory.UI_DELEGATE: "UI Delegate",
}


class ConsoleLevel(str, Enum):
    """Console severities intercepted in the page."""

    LOG = "log"
    WARN = "warn"
    ERROR = "error"
    INFO = "info"
    DEBUG = "debug"

    @property
    def display_name(self) -> str:
        return self.value

    @classmethod
    def parse(cls, raw: Any) -> ConsoleLevel | None:
        if not isinstance(raw, str):
            return None
        v = raw.strip().lower()
        if v == "warning":
            v = "warn"
        try:
            return cls(v)
        except ValueError:
            return None


Category = EventCategory | ConsoleLevel


class NavigationMethod(str, Enum):
    DECIDE_POLICY_FOR_NAVIGATION_ACTION = "decidePolicyForNavigationAction"
    DECIDE_POLICY_FOR_NAVIGATION_RESPONSE = "decidePolicyForNavigationResponse"
    DID_START_PROVISIONAL_NAVIGATION = "didStartProvisionalNavigation"
    DID_RECEIVE_SERVER_REDIRECT = "didReceiveServerRedirectForProvisionalNavigation"
    DID_FAIL_PROVISIONAL_NAVIGATION = "didFailProvisionalNavigation"
    DID_COMMIT_NAVIGATION = "didCommitNavigation"
    DID_FINISH_NAVIGATION = "didFinishNavigation"
    DID_FAIL_NAVIGATION = "didFailNavigation"
    DID_RECEIVE_AUTHENTICATION_CHALLENGE = "didReceiveAuthenticationChallenge"
    WEB_CONTENT_PROCESS_DID_TERMINATE = "webContentProcessDidTerminate"


class UIDelegateMethod(str, Enum):
    CREATE_WEB_VIEW = "createWebViewWithConfiguration"
    WEB_VIEW_DID_CLOSE = "webViewDidClose"
    RUN_JAVASCRIPT_ALERT_PANEL = "runJavaScriptAlertPanelWithMessage"
    RUN_JAVASCRIPT_CONFIRM_PANEL = "runJavaScriptConfirmPanelWithMessage"
    RUN_JAVASCRIPT_TEXT_INPUT_PANEL = "runJavaScriptTextInputPanelWithPrompt"
    REQUEST_MEDIA_CAPTURE_PERMISSION = "requestMediaCapturePermission"
    REQUEST_DEVICE_ORIENTATION_PERMISSION = "requestDeviceOrientationAndMotionPermission"


def render_value(value: Any) -> str:
    """Render one captured value for display.

    Precedence: URL-like, error-like, request/response-like, then str().
    """
    if value is None:
        return "nil"
    if isinstance(value, Enum):
        return render_value(value.value)
    if isinstance(value, str):
        return value
    geturl = getattr(value, "geturl", None)
    if callable(geturl):
        try:
            return str(geturl())
        except Exception:  # noqa: BLE001
            return str(value)
    if isinstance(value, BaseException):
        msg = str(value)
        return msg if msg else type(value).__name__
    if hasattr(value, "url") and not isinstance(value, Mapping):
        url = getattr(value, "url", None)
        if url is None or url == "":
            return NO_URL
        return render_value(url)
    if isinstance(value, bool):
        return "true" if value else "false"
    try:
        return str(value)
    except Exception:  # noqa: BLE001
        return "<unstringifiable>"


def format_detail(detail: Mapping[str, str]) -> str:
    return "\n".join(f"{key}: {value}" for key, value in detail.items()).strip()


_event_ids = itertools.count(1)
_clock_lock = threading.Lock()
_last_timestamp = 0.0


def _next_timestamp() -> float:
    # Wall-clock steps backwards are clamped so timestamps never decrease.
    global _last_timestamp
    with _clock_lock:
        _last_timestamp = max(_last_timestamp, time.time())
        return _last_timestamp


@dataclass(frozen=True, slots=True, eq=False)
class Event:
    id: int
    timestamp: float
    category: Category
    label: str
    detail: Mapping[str, str]
    raw_description: str

    @classmethod
    def create(
        cls,
        category: Category,
        label: str | Enum,
        detail: Mapping[str, Any] | None = None,
        *,
        timestamp: float | None = None,
    ) -> Event:
        rendered = {str(k): render_value(v) for k, v in (detail or {}).items()}
        return cls(
            id=next(_event_ids),
            timestamp=_next_timestamp() if timestamp is None else float(timestamp),
            category=category,
            label=str(label.value if isinstance(label, Enum) else label),
            detail=MappingProxyType(rendered),
            raw_description=format_detail(rendered),
        )

    @property
    def formatted_timestamp(self) -> str:
        """Wall-clock time as HH:MM:SS.mmm (local time)."""
        dt = datetime.fromtimestamp(self.timestamp)
        return dt.strftime("%H:%M:%S.") + f"{dt.microsecond // 1000:03d}"

    def matches(self, needle: str) -> bool:
        """Case-insensitive substring match; `needle` must already be lower-case."""
        if not needle:
            return True
        return (
            needle in self.label.lower()
            or needle in self.raw_description.lower()
            or needle in self.category.display_name.lower()
            or needle in self.category.value.lower()
        )


def _stringify_arg(arg: Any) -> str:
    if isinstance(arg, str):
        return arg
    try:
        return json.dumps(arg, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(arg)


def console_event(payload: Any) -> Event | None:
    """Build a console Event from a binding payload `{"method": ..., "args": [...]}`.

    The payload may arrive as the raw JSON string the page sent. Malformed
    payloads yield None.
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError:
            logger.debug("console payload is not JSON; dropped")
            return None
    if not isinstance(payload, dict):
        return None
    level = ConsoleLevel.parse(payload.get("method"))
    args = payload.get("args")
    if level is None or not isinstance(args, list):
        logger.debug("malformed console payload dropped: method=%r", payload.get("method"))
        return None
    message = " ".join(_stringify_arg(a) for a in args)
    return Event.create(level, level.value, {"message": message})


def script_message_event(handler_name: str, body: Any, frame_url: str | None = None) -> Event:
    return Event.create(
        EventCategory.SCRIPT_MESSAGE,
        handler_name,
        {
            "name": handler_name,
            "body": _stringify_arg(body) if not isinstance(body, str) else body,
            "frameInfo": frame_url or "unknown",
        },
    )
