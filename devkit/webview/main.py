"""
Command-line entry point: attach the debugger to a running Chromium tab.

Events and console messages are streamed to the log while attached; on exit
(Ctrl-C or --duration) the filtered logs are printed as export reports.
Nothing is written to disk.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import replace
from typing import Any

from .config import DevKitConfig
from .debugger import DevKitError, WebViewDebugger, attach_debugger
from .events import Event
from .http_client import HttpClientError, find_target, list_targets
from .storage import group_by_type
from .store import BoundedEventStore
from .web_view import CdpWebView

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(message)s",
)
logger = logging.getLogger("webdevkit")

__all__ = ["build_parser", "main"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="webdevkit", description="Debug a Chromium tab over CDP.")
    parser.add_argument("--host", help="CDP host (default: $WEBDEVKIT_CDP_HOST or 127.0.0.1)")
    parser.add_argument("--port", type=int, help="CDP port (default: $WEBDEVKIT_CDP_PORT or 9222)")
    parser.add_argument("--target-id", help="attach to the page target with this id")
    parser.add_argument("--url-contains", help="attach to the first page whose URL contains this text")
    parser.add_argument("--features", help="comma list: console,dom,storage,events (or all/none)")
    parser.add_argument("--list", action="store_true", help="list page targets and exit")
    parser.add_argument("--dom", action="store_true", help="print the DOM tree and exit")
    parser.add_argument("--storage", action="store_true", help="print web storage and exit")
    parser.add_argument("--eval", dest="expression", help="evaluate JavaScript, print the result and exit")
    parser.add_argument("--search", default="", help="only export events matching this text")
    parser.add_argument("--duration", type=float, help="stop after this many seconds")
    return parser


def _config_from_args(args: argparse.Namespace) -> DevKitConfig:
    config = DevKitConfig.from_env()
    if args.host:
        config = replace(config, cdp_host=args.host)
    if args.port:
        config = replace(config, cdp_port=args.port)
    features = DevKitConfig.normalize_features(args.features)
    if features is not None:
        config = replace(
            config,
            enable_console_logging="console" in features,
            enable_dom_inspection="dom" in features,
            enable_storage_inspection="storage" in features,
            enable_event_capture="events" in features,
        )
    return config


def _stream_to_log(store: BoundedEventStore, kind: str) -> None:
    last_id = 0

    def _on_change(snapshot: tuple[Event, ...]) -> None:
        nonlocal last_id
        for event in snapshot:
            if event.id <= last_id:
                continue
            last_id = event.id
            logger.info("%s [%s] %s %s", kind, event.category.display_name, event.label, event.raw_description)

    store.subscribe(_on_change)


def _print_targets(config: DevKitConfig) -> int:
    for target in list_targets(config):
        print(f"{target.get('id')}\t{target.get('title') or ''}\t{target.get('url') or ''}")
    return 0


def _one_shot(debugger: WebViewDebugger, args: argparse.Namespace) -> int:
    if args.dom:
        node = debugger.fetch_dom_tree()
        if node is None:
            print("DOM not available", file=sys.stderr)
            return 1
        print(node.to_raw_text())
    if args.storage:
        for storage_type, items in group_by_type(debugger.fetch_web_storage()).items():
            print(storage_type.display_name)
            for item in items:
                print(f"  {item.key} = {item.value}")
    if args.expression:
        result: Any = debugger.execute_javascript(args.expression)
        print(result)
    return 0


def _run_session(debugger: WebViewDebugger, args: argparse.Namespace) -> int:
    _stream_to_log(debugger.event_store, "event")
    _stream_to_log(debugger.console_store, "console")
    debugger.console.search_text = args.search
    debugger.events.search_text = args.search

    deadline = time.monotonic() + args.duration if args.duration else None
    view = debugger.view
    try:
        while view is not None and view.is_alive:
            if deadline is not None and time.monotonic() >= deadline:
                break
            time.sleep(0.2)
    except KeyboardInterrupt:
        pass

    drain = getattr(debugger.dispatcher, "drain", None)
    if callable(drain):
        drain(2.0)
    print(debugger.events.export_text())
    print(debugger.console.export_text(title="Console Export"))
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = _config_from_args(args)

    try:
        if args.list:
            return _print_targets(config)
        target = find_target(config, target_id=args.target_id, url_contains=args.url_contains)
        view = CdpWebView.connect(
            str(target["webSocketDebuggerUrl"]),
            timeout=config.cdp_timeout,
            target_id=str(target.get("id") or ""),
            url=str(target.get("url") or ""),
        )
    except HttpClientError as exc:
        logger.error("cannot attach: %s", exc)
        return 2

    one_shot = bool(args.dom or args.storage or args.expression)
    debugger = attach_debugger(view, config)
    try:
        view.start(intercept_navigation=config.enable_event_capture and not one_shot)
        if one_shot:
            return _one_shot(debugger, args)
        logger.info("attached to %s (%s)", view.url or "?", view.target_id)
        return _run_session(debugger, args)
    except DevKitError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        debugger.cleanup()
        view.close()


if __name__ == "__main__":
    sys.exit(main())
