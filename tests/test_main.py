from __future__ import annotations

from typing import Any

import pytest

from devkit.webview import main as cli
from devkit.webview.http_client import HttpClientError


def test_args_override_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WEBDEVKIT_CDP_PORT", "9333")
    monkeypatch.delenv("WEBDEVKIT_FEATURES", raising=False)
    args = cli.build_parser().parse_args(["--host", "10.1.1.1", "--features", "console"])
    config = cli._config_from_args(args)
    assert config.base_http_url == "http://10.1.1.1:9333"
    assert config.enable_console_logging
    assert not config.enable_event_capture


def test_list_prints_targets(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    def fake_list(config: Any) -> list[dict[str, Any]]:
        return [{"id": "T1", "title": "Home", "url": "https://a.test/"}]

    monkeypatch.setattr(cli, "list_targets", fake_list)
    assert cli.main(["--list"]) == 0
    assert capsys.readouterr().out.strip() == "T1\tHome\thttps://a.test/"


def test_missing_target_exits_with_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_find(config: Any, **kwargs: Any) -> dict[str, Any]:
        raise HttpClientError("No page targets")

    monkeypatch.setattr(cli, "find_target", fake_find)
    assert cli.main(["--url-contains", "nothing"]) == 2
