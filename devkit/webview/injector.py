from __future__ import annotations

import json
import logging
import weakref
from collections.abc import Callable
from typing import Any

from .delegates import ScriptMessage
from .events import Event, console_event
from .http_client import HttpClientError
from .scripts import CONSOLE_BINDING_NAME, CONSOLE_HOOK_SOURCE, message_binding_name, message_handler_shim

logger = logging.getLogger("webdevkit.injector")

_CONSOLE_KEY = "console"


class Injector:
    """Installs page-side hooks into a web view.

    Holds only a weak reference to the view; every call checks it is still
    alive and becomes a no-op otherwise. CDP failures are logged at debug
    level and swallowed.
    """

    def __init__(self, view: Any) -> None:
        self._view_ref = weakref.ref(view)
        self._installed = False
        self._scripts: dict[str, str] = {}
        self._channels: dict[str, str] = {}

    @property
    def view(self) -> Any:
        return self._view_ref()

    @property
    def installed(self) -> bool:
        return self._installed

    @property
    def channels(self) -> tuple[str, ...]:
        return tuple(self._channels)

    def install_console_hook(self, sink: Callable[[Event], None]) -> bool:
        """Forward every page console call to `sink` as a normalized Event.

        Idempotent: a second call returns True without installing anything.
        """
        if self._installed:
            return True
        view = self.view
        if view is None:
            return False

        def _on_console(payload: str) -> None:
            event = console_event(payload)
            if event is None:
                logger.debug("dropping malformed console payload: %.200s", payload)
                return
            sink(event)

        try:
            view.add_binding(CONSOLE_BINDING_NAME, _on_console)
            identifier = view.add_script_on_new_document(CONSOLE_HOOK_SOURCE)
        except HttpClientError as exc:
            logger.debug("console hook not installed: %s", exc)
            return False
        if identifier:
            self._scripts[_CONSOLE_KEY] = identifier
        self._installed = True
        self._evaluate_now(view, CONSOLE_HOOK_SOURCE)
        return True

    def add_message_channel(self, name: str, on_message: Callable[[ScriptMessage], None]) -> bool:
        """Expose `webdevkit.messageHandlers[name].postMessage(body)` in the page.

        A name that already has a channel is refused with False; remove it first.
        """
        if not name or name in self._channels:
            return False
        view = self.view
        if view is None:
            return False
        binding = message_binding_name(name)

        def _on_message(payload: str) -> None:
            try:
                data = json.loads(payload)
            except ValueError:
                logger.debug("dropping malformed message on %s", name)
                return
            if not isinstance(data, dict):
                return
            frame = data.get("frame")
            on_message(ScriptMessage(name=name, body=data.get("body"), frame_url=frame if isinstance(frame, str) else None))

        shim = message_handler_shim(name, binding)
        try:
            view.add_binding(binding, _on_message)
            identifier = view.add_script_on_new_document(shim)
        except HttpClientError as exc:
            logger.debug("message channel %s not installed: %s", name, exc)
            return False
        self._channels[name] = binding
        if identifier:
            self._scripts[f"channel:{name}"] = identifier
        self._evaluate_now(view, shim)
        return True

    def remove_message_channel(self, name: str) -> bool:
        binding = self._channels.pop(name, None)
        if binding is None:
            return False
        view = self.view
        if view is None:
            return False
        self._remove_binding(view, binding)
        self._remove_script(view, self._scripts.pop(f"channel:{name}", None))
        return True

    def uninstall(self) -> None:
        """Remove every binding and document-start script this injector added."""
        view = self.view
        channels = list(self._channels)
        if view is not None:
            for name in channels:
                self.remove_message_channel(name)
            if self._installed:
                self._remove_binding(view, CONSOLE_BINDING_NAME)
            for identifier in list(self._scripts.values()):
                self._remove_script(view, identifier)
        self._channels.clear()
        self._scripts.clear()
        self._installed = False

    @staticmethod
    def _evaluate_now(view: Any, source: str) -> None:
        try:
            view.evaluate(source, timeout=2.0)
        except HttpClientError as exc:
            logger.debug("hook not evaluated in current document: %s", exc)

    @staticmethod
    def _remove_binding(view: Any, name: str) -> None:
        try:
            view.remove_binding(name)
        except HttpClientError as exc:
            logger.debug("removeBinding %s failed: %s", name, exc)

    @staticmethod
    def _remove_script(view: Any, identifier: str | None) -> None:
        if not identifier:
            return
        try:
            view.remove_script_on_new_document(identifier)
        except HttpClientError as exc:
            logger.debug("removeScriptToEvaluateOnNewDocument failed: %s", exc)
