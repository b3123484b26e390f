"""A Chromium tab presented as a delegate-driven web view.

`CdpWebView` turns raw CDP events into navigation / UI delegate callbacks and
answers the browser with the delegate's decision (continue or fail a paused
document request, accept or dismiss a JS dialog, answer an auth challenge).
All callbacks run serially on the engine thread (`EventPump`).
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from contextlib import suppress
from typing import Any
from urllib.parse import urlsplit

from .delegates import (
    AuthChallenge,
    AuthChallengeDisposition,
    FrameInfo,
    NavigationAction,
    NavigationActionPolicy,
    NavigationResponse,
    NavigationResponsePolicy,
    NavigationType,
)
from .event_pump import EventPump
from .http_client import HttpClientError
from .session_cdp import CdpConnection

logger = logging.getLogger("webdevkit.web_view")

BindingHandler = Callable[[str], None]

_DOCUMENT_FETCH_PATTERNS = [
    {"resourceType": "Document", "requestStage": "Request"},
    {"resourceType": "Document", "requestStage": "Response"},
]

_NAVIGATION_REASONS = {
    "anchorClick": NavigationType.LINK_ACTIVATED,
    "formSubmissionGet": NavigationType.FORM_SUBMITTED,
    "formSubmissionPost": NavigationType.FORM_SUBMITTED,
    "reload": NavigationType.RELOAD,
}

_MAX_TRACKED_REQUESTS = 200


class NavigationError(Exception):
    """A document load failed (network error, blocked, aborted)."""

    def __init__(self, message: str, *, url: str | None = None, blocked_reason: str | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.blocked_reason = blocked_reason


def _header(headers: Any, name: str) -> str | None:
    if isinstance(headers, dict):
        for k, v in headers.items():
            if str(k).lower() == name:
                return str(v)
    if isinstance(headers, list):
        for entry in headers:
            if isinstance(entry, dict) and str(entry.get("name", "")).lower() == name:
                return str(entry.get("value"))
    return None


class CdpWebView:
    """One page target driven over CDP."""

    def __init__(self, connection: CdpConnection, *, target_id: str = "", url: str = "") -> None:
        self.conn = connection
        self.target_id = target_id
        self.url: str | None = url or None
        self.title: str | None = None
        self.navigation_delegate: Any = None
        self.ui_delegate: Any = None
        self.main_frame_id: str | None = None
        self._committed = True
        self._document_requests: dict[str, str] = {}
        self._pending_nav_type: dict[str, NavigationType] = {}
        self._bindings: dict[str, BindingHandler] = {}
        self._bindings_lock = threading.Lock()
        self._closed = False
        self._started = False
        self._pump = EventPump(self.handle_event, name=f"webdevkit-engine-{target_id or 'tab'}")

    @classmethod
    def connect(cls, ws_url: str, *, timeout: float = 5.0, target_id: str = "", url: str = "") -> CdpWebView:
        return cls(CdpConnection(ws_url, timeout=timeout), target_id=target_id, url=url)

    @property
    def is_alive(self) -> bool:
        return not self._closed and not getattr(self.conn, "closed", False)

    # ── lifecycle ────────────────────────────────────────────────────────

    def start(self, *, intercept_navigation: bool = True) -> None:
        """Enable the CDP domains we listen to and begin delivering events."""
        if self._started:
            return
        self._started = True
        commands: list[dict[str, Any]] = [
            {"method": "Page.enable", "params": {}},
            {"method": "Runtime.enable", "params": {}},
            {"method": "Network.enable", "params": {}},
            {"method": "Inspector.enable", "params": {}},
        ]
        if intercept_navigation:
            commands.append(
                {"method": "Fetch.enable", "params": {"patterns": _DOCUMENT_FETCH_PATTERNS, "handleAuthRequests": True}}
            )
        self.conn.send_many(commands, stop_on_error=False)

        with suppress(HttpClientError):
            tree = self.conn.send("Page.getFrameTree")
            frame = (tree.get("frameTree") or {}).get("frame") or {}
            if isinstance(frame.get("id"), str):
                self.main_frame_id = frame["id"]
            if isinstance(frame.get("url"), str) and frame["url"]:
                self.url = frame["url"]
        self._refresh_title()

        self._pump.start()
        self.conn.set_event_sink(self._pump.put)
        logger.info("web view started target=%s url=%s", self.target_id or "?", self.url)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        with suppress(Exception):
            self.conn.set_event_sink(None)
        self._pump.stop()
        self.conn.close()

    # ── commands ─────────────────────────────────────────────────────────

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if self._closed:
            raise HttpClientError("web view is closed")
        return self.conn.send(method, params)

    def evaluate(self, expression: str, *, timeout: float | None = None) -> Any:
        """Evaluate JavaScript in the page and return the JSON-able result."""
        old_timeout: float | None = None
        if timeout is not None:
            old_timeout = self.conn.timeout
            self.conn.timeout = float(timeout)
        try:
            result = self.send(
                "Runtime.evaluate",
                {"expression": expression, "returnByValue": True, "awaitPromise": True},
            )
        finally:
            if old_timeout is not None:
                self.conn.timeout = old_timeout

        details = result.get("exceptionDetails")
        if isinstance(details, dict):
            exc = details.get("exception") if isinstance(details.get("exception"), dict) else {}
            msg = exc.get("description") or details.get("text") or "JavaScript exception"
            raise HttpClientError(str(msg))

        remote = result.get("result") if isinstance(result.get("result"), dict) else {}
        if remote.get("type") == "undefined" or remote.get("subtype") == "null":
            return None
        return remote.get("value")

    def add_script_on_new_document(self, source: str) -> str | None:
        res = self.send("Page.addScriptToEvaluateOnNewDocument", {"source": source})
        identifier = res.get("identifier")
        return identifier if isinstance(identifier, str) and identifier else None

    def remove_script_on_new_document(self, identifier: str) -> None:
        self.send("Page.removeScriptToEvaluateOnNewDocument", {"identifier": identifier})

    def add_binding(self, name: str, handler: BindingHandler) -> None:
        """Expose `window[name](string)` in the page; calls reach `handler` on the engine thread."""
        with self._bindings_lock:
            self._bindings[name] = handler
        self.send("Runtime.addBinding", {"name": name})

    def remove_binding(self, name: str) -> None:
        with self._bindings_lock:
            self._bindings.pop(name, None)
        self.send("Runtime.removeBinding", {"name": name})

    def has_binding(self, name: str) -> bool:
        with self._bindings_lock:
            return name in self._bindings

    # ── event routing ────────────────────────────────────────────────────

    def handle_event(self, event: dict[str, Any]) -> None:
        method = event.get("method")
        params = event.get("params")
        if not isinstance(method, str):
            return
        if not isinstance(params, dict):
            params = {}
        handler = self._handlers.get(method)
        if handler is not None:
            handler(self, params)

    def _nav_call(self, name: str, *args: Any, default: Any = None) -> Any:
        return self._delegate_call(self.navigation_delegate, name, *args, default=default)

    def _ui_call(self, name: str, *args: Any, default: Any = None) -> Any:
        return self._delegate_call(self.ui_delegate, name, *args, default=default)

    def _delegate_call(self, delegate: Any, name: str, *args: Any, default: Any = None) -> Any:
        fn = getattr(delegate, name, None) if delegate is not None else None
        if not callable(fn):
            return default
        try:
            result = fn(self, *args)
        except Exception:
            logger.exception("delegate %s failed; using default", name)
            return default
        return default if result is None and default is not None else result

    def _is_main_frame(self, frame_id: Any) -> bool:
        if not isinstance(frame_id, str) or not frame_id:
            return True
        return self.main_frame_id is None or frame_id == self.main_frame_id

    def _remember_document_request(self, request_id: str, frame_id: str) -> None:
        self._document_requests[request_id] = frame_id
        if len(self._document_requests) > _MAX_TRACKED_REQUESTS:
            drop = len(self._document_requests) - _MAX_TRACKED_REQUESTS
            for k in list(self._document_requests.keys())[:drop]:
                self._document_requests.pop(k, None)

    def _refresh_title(self) -> None:
        with suppress(HttpClientError):
            title = self.evaluate("document.title", timeout=1.0)
            self.title = title if isinstance(title, str) else None

    def _on_frame_requested_navigation(self, params: dict[str, Any]) -> None:
        frame_id = params.get("frameId")
        reason = params.get("reason")
        if isinstance(frame_id, str) and isinstance(reason, str):
            self._pending_nav_type[frame_id] = _NAVIGATION_REASONS.get(reason, NavigationType.OTHER)

    def _on_request_paused(self, params: dict[str, Any]) -> None:
        request_id = params.get("requestId")
        if not isinstance(request_id, str):
            return
        request = params.get("request") if isinstance(params.get("request"), dict) else {}
        url = request.get("url") if isinstance(request.get("url"), str) else None
        frame_id = params.get("frameId")
        main = self._is_main_frame(frame_id)
        frame = FrameInfo(is_main_frame=main, url=url, frame_id=frame_id if isinstance(frame_id, str) else None)

        at_response = "responseStatusCode" in params or "responseErrorReason" in params
        if at_response:
            status = params.get("responseStatusCode")
            response = NavigationResponse(
                url=url,
                mime_type=_header(params.get("responseHeaders"), "content-type"),
                status_code=status if isinstance(status, int) else None,
                is_for_main_frame=main,
                request_id=request_id,
            )
            policy = self._nav_call(
                "decide_policy_for_navigation_response", response, default=NavigationResponsePolicy.ALLOW
            )
            allowed = policy != NavigationResponsePolicy.CANCEL
        else:
            nav_type = NavigationType.OTHER
            if isinstance(frame_id, str):
                nav_type = self._pending_nav_type.pop(frame_id, NavigationType.OTHER)
            action = NavigationAction(
                url=url,
                navigation_type=nav_type,
                target_frame=frame,
                method=str(request.get("method") or "GET"),
                request_id=request_id,
            )
            policy = self._nav_call("decide_policy_for_navigation_action", action, default=NavigationActionPolicy.ALLOW)
            allowed = policy != NavigationActionPolicy.CANCEL

        if allowed:
            self.send("Fetch.continueResponse" if at_response else "Fetch.continueRequest", {"requestId": request_id})
        else:
            self.send("Fetch.failRequest", {"requestId": request_id, "errorReason": "BlockedByClient"})

    def _on_auth_required(self, params: dict[str, Any]) -> None:
        request_id = params.get("requestId")
        if not isinstance(request_id, str):
            return
        challenge_raw = params.get("authChallenge") if isinstance(params.get("authChallenge"), dict) else {}
        origin = str(challenge_raw.get("origin") or "")
        challenge = AuthChallenge(
            host=urlsplit(origin).hostname or origin,
            authentication_method=str(challenge_raw.get("scheme") or ""),
            realm=challenge_raw.get("realm") if isinstance(challenge_raw.get("realm"), str) else None,
            request_id=request_id,
        )
        answer = self._nav_call(
            "did_receive_authentication_challenge",
            challenge,
            default=(AuthChallengeDisposition.PERFORM_DEFAULT_HANDLING, None),
        )
        disposition, credential = answer if isinstance(answer, tuple) and len(answer) == 2 else (answer, None)
        response: dict[str, Any]
        if disposition == AuthChallengeDisposition.USE_CREDENTIAL and credential is not None:
            response = {
                "response": "ProvideCredentials",
                "username": credential.user,
                "password": credential.password,
            }
        elif disposition == AuthChallengeDisposition.CANCEL:
            response = {"response": "CancelAuth"}
        else:
            response = {"response": "Default"}
        self.send("Fetch.continueWithAuth", {"requestId": request_id, "authChallengeResponse": response})

    def _on_frame_started_loading(self, params: dict[str, Any]) -> None:
        if not self._is_main_frame(params.get("frameId")):
            return
        self._committed = False
        self._nav_call("did_start_provisional_navigation")

    def _on_request_will_be_sent(self, params: dict[str, Any]) -> None:
        if params.get("type") != "Document":
            return
        request_id = params.get("requestId")
        frame_id = params.get("frameId")
        if not isinstance(request_id, str) or not self._is_main_frame(frame_id):
            return
        self._remember_document_request(request_id, frame_id if isinstance(frame_id, str) else "")
        request = params.get("request") if isinstance(params.get("request"), dict) else {}
        if isinstance(params.get("redirectResponse"), dict):
            if isinstance(request.get("url"), str):
                self.url = request["url"]
            self._nav_call("did_receive_server_redirect_for_provisional_navigation")

    def _on_loading_failed(self, params: dict[str, Any]) -> None:
        request_id = params.get("requestId")
        if not isinstance(request_id, str) or request_id not in self._document_requests:
            return
        self._document_requests.pop(request_id, None)
        blocked = params.get("blockedReason") if isinstance(params.get("blockedReason"), str) else None
        error = NavigationError(
            str(params.get("errorText") or "Navigation failed"),
            url=self.url,
            blocked_reason=blocked,
        )
        if self._committed:
            self._nav_call("did_fail_navigation", error)
        else:
            self._nav_call("did_fail_provisional_navigation", error)

    def _on_frame_navigated(self, params: dict[str, Any]) -> None:
        frame = params.get("frame") if isinstance(params.get("frame"), dict) else {}
        if frame.get("parentId"):
            return
        if isinstance(frame.get("id"), str):
            self.main_frame_id = frame["id"]
        if isinstance(frame.get("url"), str):
            self.url = frame["url"]
        self._committed = True
        self._nav_call("did_commit_navigation")

    def _on_load_event_fired(self, params: dict[str, Any]) -> None:  # noqa: ARG002
        self._refresh_title()
        self._nav_call("did_finish_navigation")

    def _on_target_crashed(self, params: dict[str, Any]) -> None:  # noqa: ARG002
        self._nav_call("web_content_process_did_terminate")

    def _on_dialog_opening(self, params: dict[str, Any]) -> None:
        dtype = params.get("type")
        message = str(params.get("message") or "")
        frame_id = params.get("frameId")
        frame = FrameInfo(
            is_main_frame=self._is_main_frame(frame_id),
            url=params.get("url") if isinstance(params.get("url"), str) else None,
            frame_id=frame_id if isinstance(frame_id, str) else None,
        )
        answer: dict[str, Any]
        if dtype == "alert":
            self._ui_call("run_javascript_alert_panel", message, frame)
            answer = {"accept": True}
        elif dtype == "confirm":
            accepted = self._ui_call("run_javascript_confirm_panel", message, frame, default=False)
            answer = {"accept": bool(accepted)}
        elif dtype == "prompt":
            default_prompt = params.get("defaultPrompt") if isinstance(params.get("defaultPrompt"), str) else None
            text = self._ui_call("run_javascript_text_input_panel", message, default_prompt, frame)
            answer = {"accept": text is not None, "promptText": str(text) if text is not None else ""}
        else:
            # beforeunload has no delegate counterpart; let the page go.
            answer = {"accept": True}
        self.send("Page.handleJavaScriptDialog", answer)

    def _on_window_open(self, params: dict[str, Any]) -> None:
        url = params.get("url") if isinstance(params.get("url"), str) else None
        features: dict[str, Any] = {}
        raw_features = params.get("windowFeatures")
        if isinstance(raw_features, list):
            for feature in raw_features:
                key, _, value = str(feature).partition("=")
                if key:
                    features[key] = value or True
        action = NavigationAction(
            url=url,
            navigation_type=NavigationType.LINK_ACTIVATED if params.get("userGesture") else NavigationType.OTHER,
            target_frame=None,
        )
        self._ui_call("create_web_view", action, features)

    def _on_detached(self, params: dict[str, Any]) -> None:
        if params.get("reason") == "target_closed":
            self._ui_call("web_view_did_close")
        self._closed = True

    def _on_binding_called(self, params: dict[str, Any]) -> None:
        name = params.get("name")
        payload = params.get("payload")
        with self._bindings_lock:
            handler = self._bindings.get(name) if isinstance(name, str) else None
        if handler is None or not isinstance(payload, str):
            return
        handler(payload)

    _handlers: dict[str, Callable[[CdpWebView, dict[str, Any]], None]] = {
        "Page.frameRequestedNavigation": _on_frame_requested_navigation,
        "Fetch.requestPaused": _on_request_paused,
        "Fetch.authRequired": _on_auth_required,
        "Page.frameStartedLoading": _on_frame_started_loading,
        "Network.requestWillBeSent": _on_request_will_be_sent,
        "Network.loadingFailed": _on_loading_failed,
        "Page.frameNavigated": _on_frame_navigated,
        "Page.loadEventFired": _on_load_event_fired,
        "Inspector.targetCrashed": _on_target_crashed,
        "Page.javascriptDialogOpening": _on_dialog_opening,
        "Page.windowOpen": _on_window_open,
        "Inspector.detached": _on_detached,
        "Runtime.bindingCalled": _on_binding_called,
    }
