"""Delegate interfaces for the web view and the capturing proxies that wrap them.

A proxy records one normalized Event for every callback, then forwards the call
to the delegate that was installed before instrumentation (if any). The
original delegate's decision is authoritative; without one, a safe default is
returned: allow navigation, default auth handling, dismiss dialogs, deny
permissions, no popup window.

Delegates are duck-typed: an original delegate only needs to implement the
methods it cares about.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from .events import Event, EventCategory, NavigationMethod, UIDelegateMethod, script_message_event

EventHandler = Callable[[Event], None]


class NavigationType(str, Enum):
    LINK_ACTIVATED = "linkActivated"
    FORM_SUBMITTED = "formSubmitted"
    BACK_FORWARD = "backForward"
    RELOAD = "reload"
    FORM_RESUBMITTED = "formResubmitted"
    OTHER = "other"


class NavigationActionPolicy(str, Enum):
    ALLOW = "allow"
    CANCEL = "cancel"


class NavigationResponsePolicy(str, Enum):
    ALLOW = "allow"
    CANCEL = "cancel"


class AuthChallengeDisposition(str, Enum):
    USE_CREDENTIAL = "useCredential"
    PERFORM_DEFAULT_HANDLING = "performDefaultHandling"
    CANCEL = "cancel"


class PermissionDecision(str, Enum):
    PROMPT = "prompt"
    GRANT = "grant"
    DENY = "deny"


class MediaCaptureType(str, Enum):
    CAMERA = "camera"
    MICROPHONE = "microphone"
    CAMERA_AND_MICROPHONE = "cameraAndMicrophone"


@dataclass(frozen=True)
class FrameInfo:
    is_main_frame: bool
    url: str | None = None
    frame_id: str | None = None


@dataclass(frozen=True)
class NavigationAction:
    url: str | None
    navigation_type: NavigationType = NavigationType.OTHER
    target_frame: FrameInfo | None = None
    method: str = "GET"
    request_id: str | None = None


@dataclass(frozen=True)
class NavigationResponse:
    url: str | None
    mime_type: str | None = None
    status_code: int | None = None
    is_for_main_frame: bool = True
    request_id: str | None = None


@dataclass(frozen=True)
class SecurityOrigin:
    protocol: str
    host: str
    port: int = 0

    def __str__(self) -> str:
        return f"{self.protocol}://{self.host}:{self.port}"


@dataclass(frozen=True)
class AuthChallenge:
    host: str
    authentication_method: str
    realm: str | None = None
    request_id: str | None = None


@dataclass(frozen=True)
class Credential:
    user: str
    password: str


AuthResponse = tuple[AuthChallengeDisposition, Credential | None]


@dataclass(frozen=True)
class ScriptMessage:
    name: str
    body: Any
    frame_url: str | None = None


class NavigationDelegate(Protocol):
    """Navigation callbacks, all optional. Decision methods return a policy."""

    def decide_policy_for_navigation_action(self, view: Any, action: NavigationAction) -> NavigationActionPolicy: ...

    def decide_policy_for_navigation_response(
        self, view: Any, response: NavigationResponse
    ) -> NavigationResponsePolicy: ...

    def did_start_provisional_navigation(self, view: Any) -> None: ...

    def did_receive_server_redirect_for_provisional_navigation(self, view: Any) -> None: ...

    def did_fail_provisional_navigation(self, view: Any, error: BaseException) -> None: ...

    def did_commit_navigation(self, view: Any) -> None: ...

    def did_finish_navigation(self, view: Any) -> None: ...

    def did_fail_navigation(self, view: Any, error: BaseException) -> None: ...

    def did_receive_authentication_challenge(self, view: Any, challenge: AuthChallenge) -> AuthResponse: ...

    def web_content_process_did_terminate(self, view: Any) -> None: ...


class UIDelegate(Protocol):
    """Dialog, window and permission callbacks, all optional."""

    def create_web_view(self, view: Any, action: NavigationAction, window_features: dict[str, Any]) -> Any: ...

    def web_view_did_close(self, view: Any) -> None: ...

    def run_javascript_alert_panel(self, view: Any, message: str, frame: FrameInfo) -> None: ...

    def run_javascript_confirm_panel(self, view: Any, message: str, frame: FrameInfo) -> bool: ...

    def run_javascript_text_input_panel(
        self, view: Any, prompt: str, default_text: str | None, frame: FrameInfo
    ) -> str | None: ...

    def request_media_capture_permission(
        self, view: Any, origin: SecurityOrigin, frame: FrameInfo, capture_type: MediaCaptureType
    ) -> PermissionDecision: ...

    def request_device_orientation_and_motion_permission(
        self, view: Any, origin: SecurityOrigin, frame: FrameInfo
    ) -> PermissionDecision: ...


def _view_url(view: Any) -> str | None:
    return getattr(view, "url", None)


class _CapturingProxy:
    category: EventCategory

    def __init__(self, original: Any = None, on_event: EventHandler | None = None) -> None:
        self.original = original
        self.on_event = on_event

    def _log(self, method: Enum, detail: dict[str, Any]) -> None:
        handler = self.on_event
        if handler is None:
            return
        handler(Event.create(self.category, method, detail))

    def _forward(self, name: str, *args: Any, default: Any = None) -> Any:
        fn = getattr(self.original, name, None) if self.original is not None else None
        if not callable(fn):
            return default
        return fn(*args)


class NavigationDelegateProxy(_CapturingProxy):
    category = EventCategory.NAVIGATION

    def decide_policy_for_navigation_action(self, view: Any, action: NavigationAction) -> NavigationActionPolicy:
        self._log(
            NavigationMethod.DECIDE_POLICY_FOR_NAVIGATION_ACTION,
            {
                "url": action,
                "navigationType": action.navigation_type,
                "targetFrame": bool(action.target_frame and action.target_frame.is_main_frame),
            },
        )
        return self._forward(
            "decide_policy_for_navigation_action", view, action, default=NavigationActionPolicy.ALLOW
        )

    def decide_policy_for_navigation_response(
        self, view: Any, response: NavigationResponse
    ) -> NavigationResponsePolicy:
        detail: dict[str, Any] = {"url": response, "mimeType": response.mime_type}
        if response.status_code is not None:
            detail["statusCode"] = response.status_code
        self._log(NavigationMethod.DECIDE_POLICY_FOR_NAVIGATION_RESPONSE, detail)
        return self._forward(
            "decide_policy_for_navigation_response", view, response, default=NavigationResponsePolicy.ALLOW
        )

    def did_start_provisional_navigation(self, view: Any) -> None:
        self._log(NavigationMethod.DID_START_PROVISIONAL_NAVIGATION, {"url": _view_url(view)})
        self._forward("did_start_provisional_navigation", view)

    def did_receive_server_redirect_for_provisional_navigation(self, view: Any) -> None:
        self._log(NavigationMethod.DID_RECEIVE_SERVER_REDIRECT, {"url": _view_url(view)})
        self._forward("did_receive_server_redirect_for_provisional_navigation", view)

    def did_fail_provisional_navigation(self, view: Any, error: BaseException) -> None:
        self._log(NavigationMethod.DID_FAIL_PROVISIONAL_NAVIGATION, {"url": _view_url(view), "error": error})
        self._forward("did_fail_provisional_navigation", view, error)

    def did_commit_navigation(self, view: Any) -> None:
        self._log(NavigationMethod.DID_COMMIT_NAVIGATION, {"url": _view_url(view)})
        self._forward("did_commit_navigation", view)

    def did_finish_navigation(self, view: Any) -> None:
        self._log(
            NavigationMethod.DID_FINISH_NAVIGATION,
            {"url": _view_url(view), "title": getattr(view, "title", None)},
        )
        self._forward("did_finish_navigation", view)

    def did_fail_navigation(self, view: Any, error: BaseException) -> None:
        self._log(NavigationMethod.DID_FAIL_NAVIGATION, {"url": _view_url(view), "error": error})
        self._forward("did_fail_navigation", view, error)

    def did_receive_authentication_challenge(self, view: Any, challenge: AuthChallenge) -> AuthResponse:
        self._log(
            NavigationMethod.DID_RECEIVE_AUTHENTICATION_CHALLENGE,
            {"protectionSpace": challenge.host, "authenticationMethod": challenge.authentication_method},
        )
        return self._forward(
            "did_receive_authentication_challenge",
            view,
            challenge,
            default=(AuthChallengeDisposition.PERFORM_DEFAULT_HANDLING, None),
        )

    def web_content_process_did_terminate(self, view: Any) -> None:
        self._log(NavigationMethod.WEB_CONTENT_PROCESS_DID_TERMINATE, {"url": _view_url(view)})
        self._forward("web_content_process_did_terminate", view)


class UIDelegateProxy(_CapturingProxy):
    category = EventCategory.UI_DELEGATE

    def create_web_view(self, view: Any, action: NavigationAction, window_features: dict[str, Any]) -> Any:
        self._log(
            UIDelegateMethod.CREATE_WEB_VIEW,
            {
                "url": action,
                "navigationType": action.navigation_type,
                "targetFrame": bool(action.target_frame and action.target_frame.is_main_frame),
            },
        )
        return self._forward("create_web_view", view, action, window_features)

    def web_view_did_close(self, view: Any) -> None:
        self._log(UIDelegateMethod.WEB_VIEW_DID_CLOSE, {"url": _view_url(view)})
        self._forward("web_view_did_close", view)

    def run_javascript_alert_panel(self, view: Any, message: str, frame: FrameInfo) -> None:
        self._log(
            UIDelegateMethod.RUN_JAVASCRIPT_ALERT_PANEL,
            {"message": message, "sourceURL": frame.url, "isMainFrame": frame.is_main_frame},
        )
        self._forward("run_javascript_alert_panel", view, message, frame)

    def run_javascript_confirm_panel(self, view: Any, message: str, frame: FrameInfo) -> bool:
        self._log(
            UIDelegateMethod.RUN_JAVASCRIPT_CONFIRM_PANEL,
            {"message": message, "sourceURL": frame.url, "isMainFrame": frame.is_main_frame},
        )
        return bool(self._forward("run_javascript_confirm_panel", view, message, frame, default=False))

    def run_javascript_text_input_panel(
        self, view: Any, prompt: str, default_text: str | None, frame: FrameInfo
    ) -> str | None:
        self._log(
            UIDelegateMethod.RUN_JAVASCRIPT_TEXT_INPUT_PANEL,
            {
                "prompt": prompt,
                "defaultText": default_text,
                "sourceURL": frame.url,
                "isMainFrame": frame.is_main_frame,
            },
        )
        return self._forward("run_javascript_text_input_panel", view, prompt, default_text, frame)

    def request_media_capture_permission(
        self, view: Any, origin: SecurityOrigin, frame: FrameInfo, capture_type: MediaCaptureType
    ) -> PermissionDecision:
        self._log(
            UIDelegateMethod.REQUEST_MEDIA_CAPTURE_PERMISSION,
            {"origin": str(origin), "type": capture_type, "sourceURL": frame.url},
        )
        return self._forward(
            "request_media_capture_permission", view, origin, frame, capture_type, default=PermissionDecision.DENY
        )

    def request_device_orientation_and_motion_permission(
        self, view: Any, origin: SecurityOrigin, frame: FrameInfo
    ) -> PermissionDecision:
        self._log(
            UIDelegateMethod.REQUEST_DEVICE_ORIENTATION_PERMISSION,
            {"origin": str(origin), "sourceURL": frame.url},
        )
        return self._forward(
            "request_device_orientation_and_motion_permission", view, origin, frame, default=PermissionDecision.DENY
        )


class ScriptMessageHandlerProxy:
    """Records each posted script message, then hands it to the wrapped handler.

    The wrapped handler may be a plain callable or an object with
    `did_receive_script_message(message)`.
    """

    def __init__(self, handler_name: str, original: Any = None, on_event: EventHandler | None = None) -> None:
        self.handler_name = handler_name
        self.original = original
        self.on_event = on_event

    def did_receive_script_message(self, message: ScriptMessage) -> None:
        if self.on_event is not None:
            self.on_event(script_message_event(self.handler_name, message.body, message.frame_url))
        target = self.original
        if target is None:
            return
        fn = getattr(target, "did_receive_script_message", None)
        if callable(fn):
            fn(message)
        elif callable(target):
            target(message)
