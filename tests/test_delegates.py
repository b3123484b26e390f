from __future__ import annotations

from typing import Any

from devkit.webview.delegates import (
    AuthChallenge,
    AuthChallengeDisposition,
    Credential,
    FrameInfo,
    MediaCaptureType,
    NavigationAction,
    NavigationActionPolicy,
    NavigationDelegateProxy,
    NavigationResponse,
    NavigationResponsePolicy,
    NavigationType,
    PermissionDecision,
    ScriptMessage,
    ScriptMessageHandlerProxy,
    SecurityOrigin,
    UIDelegateProxy,
)
from devkit.webview.events import Event, EventCategory


class DummyView:
    url = "https://example.com/"
    title = "Example"


FRAME = FrameInfo(is_main_frame=True, url="https://example.com/")


def _capture() -> tuple[list[Event], Any]:
    events: list[Event] = []
    return events, events.append


def test_navigation_proxy_defaults_without_original() -> None:
    events, sink = _capture()
    proxy = NavigationDelegateProxy(None, sink)
    view = DummyView()

    action = NavigationAction(url="https://a.test/", navigation_type=NavigationType.LINK_ACTIVATED, target_frame=FRAME)
    assert proxy.decide_policy_for_navigation_action(view, action) is NavigationActionPolicy.ALLOW
    response = NavigationResponse(url="https://a.test/", mime_type="text/html", status_code=200)
    assert proxy.decide_policy_for_navigation_response(view, response) is NavigationResponsePolicy.ALLOW
    challenge = AuthChallenge(host="a.test", authentication_method="basic")
    assert proxy.did_receive_authentication_challenge(view, challenge) == (
        AuthChallengeDisposition.PERFORM_DEFAULT_HANDLING,
        None,
    )

    assert [e.label for e in events] == [
        "decidePolicyForNavigationAction",
        "decidePolicyForNavigationResponse",
        "didReceiveAuthenticationChallenge",
    ]
    assert all(e.category is EventCategory.NAVIGATION for e in events)
    assert events[0].detail == {"url": "https://a.test/", "navigationType": "linkActivated", "targetFrame": "true"}
    assert events[1].detail == {"url": "https://a.test/", "mimeType": "text/html", "statusCode": "200"}
    assert events[2].detail == {"protectionSpace": "a.test", "authenticationMethod": "basic"}


def test_navigation_proxy_forwards_and_original_decision_wins() -> None:
    calls: list[str] = []

    class Original:
        def decide_policy_for_navigation_action(self, view: Any, action: NavigationAction) -> NavigationActionPolicy:
            calls.append(f"action:{action.url}")
            return NavigationActionPolicy.CANCEL

        def did_receive_authentication_challenge(self, view: Any, challenge: AuthChallenge) -> Any:
            return (AuthChallengeDisposition.USE_CREDENTIAL, Credential("u", "p"))

        def did_finish_navigation(self, view: Any) -> None:
            calls.append("finish")

    events, sink = _capture()
    proxy = NavigationDelegateProxy(Original(), sink)
    view = DummyView()

    assert proxy.decide_policy_for_navigation_action(view, NavigationAction(url="https://b.test/")) is (
        NavigationActionPolicy.CANCEL
    )
    disposition, credential = proxy.did_receive_authentication_challenge(view, AuthChallenge("b.test", "basic"))
    assert disposition is AuthChallengeDisposition.USE_CREDENTIAL
    assert credential == Credential("u", "p")

    proxy.did_finish_navigation(view)
    # Not implemented by the original: recorded, nothing forwarded.
    proxy.did_commit_navigation(view)

    assert calls == ["action:https://b.test/", "finish"]
    assert [e.label for e in events][-2:] == ["didFinishNavigation", "didCommitNavigation"]
    assert events[-2].detail == {"url": "https://example.com/", "title": "Example"}


def test_navigation_failure_records_error_message() -> None:
    events, sink = _capture()
    proxy = NavigationDelegateProxy(None, sink)
    proxy.did_fail_provisional_navigation(DummyView(), ConnectionError("net::ERR_NAME_NOT_RESOLVED"))
    assert events[0].label == "didFailProvisionalNavigation"
    assert events[0].detail["error"] == "net::ERR_NAME_NOT_RESOLVED"


def test_ui_proxy_defaults_dismiss_and_deny() -> None:
    events, sink = _capture()
    proxy = UIDelegateProxy(None, sink)
    view = DummyView()
    origin = SecurityOrigin("https", "cam.test", 443)

    proxy.run_javascript_alert_panel(view, "hi", FRAME)
    assert proxy.run_javascript_confirm_panel(view, "sure?", FRAME) is False
    assert proxy.run_javascript_text_input_panel(view, "name?", "bob", FRAME) is None
    assert proxy.create_web_view(view, NavigationAction(url=None), {}) is None
    assert (
        proxy.request_media_capture_permission(view, origin, FRAME, MediaCaptureType.CAMERA)
        is PermissionDecision.DENY
    )
    assert proxy.request_device_orientation_and_motion_permission(view, origin, FRAME) is PermissionDecision.DENY

    assert all(e.category is EventCategory.UI_DELEGATE for e in events)
    assert events[0].detail == {"message": "hi", "sourceURL": "https://example.com/", "isMainFrame": "true"}
    assert events[2].detail["defaultText"] == "bob"
    assert events[3].detail["url"] == "no URL"
    assert events[4].detail["origin"] == "https://cam.test:443"
    assert events[4].detail["type"] == "camera"


def test_ui_proxy_forwards_to_original() -> None:
    class Original:
        def run_javascript_confirm_panel(self, view: Any, message: str, frame: FrameInfo) -> bool:
            return True

        def run_javascript_text_input_panel(self, view: Any, prompt: str, default: str | None, frame: Any) -> str:
            return "alice"

        def request_media_capture_permission(self, view: Any, origin: Any, frame: Any, kind: Any) -> Any:
            return PermissionDecision.GRANT

    proxy = UIDelegateProxy(Original(), None)
    view = DummyView()
    assert proxy.run_javascript_confirm_panel(view, "ok?", FRAME) is True
    assert proxy.run_javascript_text_input_panel(view, "name?", None, FRAME) == "alice"
    assert (
        proxy.request_media_capture_permission(view, SecurityOrigin("https", "x", 443), FRAME, MediaCaptureType.MICROPHONE)
        is PermissionDecision.GRANT
    )


def test_script_message_proxy_records_then_forwards() -> None:
    events, sink = _capture()
    received: list[ScriptMessage] = []

    class Handler:
        def did_receive_script_message(self, message: ScriptMessage) -> None:
            received.append(message)

    proxy = ScriptMessageHandlerProxy("bridge", Handler(), sink)
    msg = ScriptMessage(name="bridge", body={"n": 1}, frame_url="https://example.com/")
    proxy.did_receive_script_message(msg)

    assert received == [msg]
    assert events[0].category is EventCategory.SCRIPT_MESSAGE
    assert events[0].detail["frameInfo"] == "https://example.com/"


def test_script_message_proxy_accepts_plain_callable() -> None:
    received: list[Any] = []
    proxy = ScriptMessageHandlerProxy("bridge", received.append, None)
    proxy.did_receive_script_message(ScriptMessage(name="bridge", body="x"))
    assert [m.body for m in received] == ["x"]
