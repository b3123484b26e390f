"""Composition root: one debugger attached to one web view.

The caller owns the returned `WebViewDebugger`. Live debuggers are also
indexed by view in a weak-keyed table so a second attach finds the first one,
whatever features it enabled.
"""

from __future__ import annotations

import logging
import weakref
from collections.abc import Iterable
from contextlib import suppress
from typing import Any

from .config import DevKitConfig
from .delegates import NavigationDelegateProxy, ScriptMessage, ScriptMessageHandlerProxy, UIDelegateProxy
from .dispatch import Dispatcher, SerialDispatcher
from .dom import DOMNode
from .events import ConsoleLevel, Event, EventCategory
from .filtering import FilterViewModel
from .http_client import HttpClientError
from .injector import Injector
from .scripts import COOKIES_SOURCE, DOM_TREE_SOURCE, LOCAL_STORAGE_SOURCE, SESSION_STORAGE_SOURCE
from .storage import WebStorageItem, WebStorageType, parse_cookie_string, parse_storage_entries
from .store import BoundedEventStore

logger = logging.getLogger("webdevkit.debugger")

_attached: weakref.WeakKeyDictionary[Any, WebViewDebugger] = weakref.WeakKeyDictionary()

_STORAGE_SOURCES = {
    WebStorageType.LOCAL_STORAGE: LOCAL_STORAGE_SOURCE,
    WebStorageType.SESSION_STORAGE: SESSION_STORAGE_SOURCE,
    WebStorageType.COOKIES: COOKIES_SOURCE,
}


class DevKitError(Exception):
    """Base error for explicit, user-requested debugger operations."""


class WebViewDeallocated(DevKitError):
    def __init__(self) -> None:
        super().__init__("web view is no longer available")


class FeatureDisabled(DevKitError):
    def __init__(self, feature: str) -> None:
        super().__init__(f"{feature} is disabled by configuration")
        self.feature = feature


class ScriptExecutionFailed(DevKitError):
    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"script execution failed: {cause}")
        self.cause = cause


class WebViewDebugger:
    def __init__(
        self,
        view: Any,
        config: DevKitConfig | None = None,
        *,
        dispatcher: Dispatcher | None = None,
    ) -> None:
        self.config = config or DevKitConfig.default()
        self._view_ref = weakref.ref(view)
        self._owns_dispatcher = dispatcher is None
        self.dispatcher: Any = dispatcher if dispatcher is not None else SerialDispatcher()

        self.console_store = BoundedEventStore(self.config.max_console_log_count, self.config.evict_batch)
        self.event_store = BoundedEventStore(self.config.max_event_count, self.config.evict_batch)
        self.console = FilterViewModel(self.console_store, list(ConsoleLevel))
        self.events = FilterViewModel(self.event_store, list(EventCategory))

        self.injector = Injector(view)
        self._navigation_proxy: NavigationDelegateProxy | None = None
        self._ui_proxy: UIDelegateProxy | None = None
        self._script_handlers: dict[str, Any] = {}
        self._active = True
        with suppress(TypeError):
            _attached[view] = self

        if self.config.enable_console_logging:
            self.injector.install_console_hook(self._record_console)
        if self.config.enable_event_capture:
            self._wrap_delegates(view)

    @property
    def view(self) -> Any:
        return self._view_ref()

    @property
    def active(self) -> bool:
        return self._active

    @property
    def console_logs(self) -> tuple[Event, ...]:
        return self.console_store.events

    def _record_console(self, event: Event) -> None:
        self.dispatcher.submit(self.console_store.append, event)

    def _record_event(self, event: Event) -> None:
        self.dispatcher.submit(self.event_store.append, event)

    def _wrap_delegates(self, view: Any) -> None:
        self._navigation_proxy = NavigationDelegateProxy(view.navigation_delegate, self._record_event)
        view.navigation_delegate = self._navigation_proxy
        self._ui_proxy = UIDelegateProxy(view.ui_delegate, self._record_event)
        view.ui_delegate = self._ui_proxy

    def _restore_delegates(self, view: Any) -> None:
        if self._navigation_proxy is not None and view.navigation_delegate is self._navigation_proxy:
            view.navigation_delegate = self._navigation_proxy.original
        if self._ui_proxy is not None and view.ui_delegate is self._ui_proxy:
            view.ui_delegate = self._ui_proxy.original
        self._navigation_proxy = None
        self._ui_proxy = None

    # ── inspection ───────────────────────────────────────────────────────

    def fetch_dom_tree(self) -> DOMNode | None:
        view = self.view
        if view is None or not self.config.enable_dom_inspection:
            return None
        try:
            raw = view.evaluate(DOM_TREE_SOURCE)
        except HttpClientError as exc:
            logger.warning("DOM fetch failed: %s", exc)
            return None
        return DOMNode.from_json(raw)

    def fetch_web_storage(self, types: Iterable[WebStorageType] | None = None) -> list[WebStorageItem]:
        view = self.view
        if view is None or not self.config.enable_storage_inspection:
            return []
        wanted = set(types) if types is not None else set(self.config.storage_types)
        items: list[WebStorageItem] = []
        for storage_type in WebStorageType:
            if storage_type not in wanted or storage_type not in self.config.storage_types:
                continue
            try:
                raw = view.evaluate(_STORAGE_SOURCES[storage_type])
            except HttpClientError as exc:
                logger.warning("%s fetch failed: %s", storage_type.display_name, exc)
                continue
            if storage_type == WebStorageType.COOKIES:
                items.extend(parse_cookie_string(raw))
            else:
                items.extend(parse_storage_entries(raw, storage_type))
        return items

    def execute_javascript(self, script: str) -> Any:
        """Evaluate `script` in the page and return its JSON-able result.

        Raises WebViewDeallocated, FeatureDisabled (every feature is off,
        e.g. the production preset) or ScriptExecutionFailed.
        """
        view = self.view
        if view is None:
            raise WebViewDeallocated()
        config = self.config
        if not (
            config.enable_console_logging
            or config.enable_dom_inspection
            or config.enable_storage_inspection
            or config.enable_event_capture
        ):
            raise FeatureDisabled("script execution")
        try:
            return view.evaluate(script)
        except HttpClientError as exc:
            raise ScriptExecutionFailed(exc) from exc

    # ── script message handlers ──────────────────────────────────────────

    def add_script_message_handler(self, name: str, handler: Any) -> bool:
        """Route `webdevkit.messageHandlers[name].postMessage(body)` to `handler`.

        `handler` is a callable taking a ScriptMessage or an object with
        `did_receive_script_message(message)`. With event capture enabled
        each message is also recorded as a Script Message event. Returns False
        when `name` already has a handler.
        """
        if self.view is None or name in self._script_handlers:
            return False
        if self.config.enable_event_capture:
            proxy = ScriptMessageHandlerProxy(name, handler, self._record_event)
            target = proxy.did_receive_script_message
        else:
            proxy = handler
            target = _as_message_callable(handler)
        if not self.injector.add_message_channel(name, target):
            return False
        self._script_handlers[name] = proxy
        return True

    def remove_script_message_handler(self, name: str) -> None:
        self.injector.remove_message_channel(name)
        self._script_handlers.pop(name, None)

    @property
    def script_message_handlers(self) -> tuple[str, ...]:
        return tuple(self._script_handlers)

    # ── housekeeping ─────────────────────────────────────────────────────

    def clear_console(self) -> None:
        """Empty the console log; returns once the clear has run on the dispatcher."""
        self._run_serially(self.console_store.clear)

    def clear_events(self) -> None:
        self._run_serially(self.event_store.clear)

    def _run_serially(self, fn: Any) -> None:
        self.dispatcher.submit(fn)
        drain = getattr(self.dispatcher, "drain", None)
        if callable(drain) and not drain(2.0):
            logger.warning("dispatcher did not drain; %s may still be pending", getattr(fn, "__qualname__", fn))

    def cleanup(self) -> None:
        """Restore the original delegates and remove every injected hook."""
        if not self._active:
            return
        self._active = False
        view = self.view
        if view is not None:
            if _attached.get(view) is self:
                del _attached[view]
            self._restore_delegates(view)
        self.injector.uninstall()
        self._script_handlers.clear()
        self.console.close()
        self.events.close()
        if self._owns_dispatcher:
            self.dispatcher.stop()


def _as_message_callable(handler: Any) -> Any:
    fn = getattr(handler, "did_receive_script_message", None)
    if callable(fn):
        return fn
    if callable(handler):
        return handler

    def _drop(message: ScriptMessage) -> None:
        logger.debug("no handler for script message %s", message.name)

    return _drop


def existing_debugger(view: Any) -> WebViewDebugger | None:
    """The active debugger attached to `view`, if any."""
    with suppress(TypeError):
        found = _attached.get(view)
        if found is not None and found.active:
            return found
    for delegate in (getattr(view, "navigation_delegate", None), getattr(view, "ui_delegate", None)):
        if isinstance(delegate, (NavigationDelegateProxy, UIDelegateProxy)):
            owner = getattr(delegate.on_event, "__self__", None)
            if isinstance(owner, WebViewDebugger) and owner.active:
                return owner
    return None


def attach_debugger(
    view: Any,
    config: DevKitConfig | None = None,
    *,
    dispatcher: Dispatcher | None = None,
) -> WebViewDebugger:
    """Attach instrumentation to `view`, reusing a debugger that is already attached."""
    found = existing_debugger(view)
    if found is not None:
        return found
    return WebViewDebugger(view, config, dispatcher=dispatcher)
