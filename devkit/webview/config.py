from __future__ import annotations

import os
from dataclasses import dataclass, field, replace

from .storage import ALL_STORAGE_TYPES, WebStorageType

FEATURE_NAMES = ("console", "dom", "storage", "events")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class DevKitConfig:
    enable_console_logging: bool = True
    enable_dom_inspection: bool = True
    enable_storage_inspection: bool = True
    enable_event_capture: bool = True
    storage_types: frozenset[WebStorageType] = field(default_factory=lambda: ALL_STORAGE_TYPES)
    max_console_log_count: int = 1000
    max_event_count: int = 1000
    evict_batch: int = 100
    cdp_host: str = "127.0.0.1"
    cdp_port: int = 9222
    cdp_timeout: float = 5.0

    @classmethod
    def default(cls) -> DevKitConfig:
        return cls()

    @classmethod
    def minimal(cls) -> DevKitConfig:
        """Console capture only."""
        return cls(
            enable_console_logging=True,
            enable_dom_inspection=False,
            enable_storage_inspection=False,
            enable_event_capture=False,
        )

    @classmethod
    def production(cls) -> DevKitConfig:
        """Everything off: attaching a debugger becomes a no-op."""
        return cls(
            enable_console_logging=False,
            enable_dom_inspection=False,
            enable_storage_inspection=False,
            enable_event_capture=False,
        )

    @classmethod
    def builder(cls) -> DevKitConfigBuilder:
        return DevKitConfigBuilder()

    @staticmethod
    def normalize_features(raw: str | None) -> frozenset[str] | None:
        """Parse a comma list of feature names; None means "keep defaults"."""
        if raw is None or not raw.strip():
            return None
        out: set[str] = set()
        for part in raw.split(","):
            name = part.strip().lower()
            if name in {"all", "*"}:
                return frozenset(FEATURE_NAMES)
            if name in {"none", "off"}:
                return frozenset()
            if name in {"log", "logs", "console"}:
                out.add("console")
            elif name in {"dom", "tree"}:
                out.add("dom")
            elif name in {"storage", "web-storage", "webstorage"}:
                out.add("storage")
            elif name in {"events", "event", "delegates"}:
                out.add("events")
        return frozenset(out)

    @classmethod
    def from_env(cls) -> DevKitConfig:
        config = cls(
            cdp_host=os.environ.get("WEBDEVKIT_CDP_HOST", "127.0.0.1").strip() or "127.0.0.1",
            cdp_port=_env_int("WEBDEVKIT_CDP_PORT", 9222),
            cdp_timeout=_env_float("WEBDEVKIT_CDP_TIMEOUT", 5.0),
            max_console_log_count=max(1, _env_int("WEBDEVKIT_MAX_CONSOLE", 1000)),
            max_event_count=max(1, _env_int("WEBDEVKIT_MAX_EVENTS", 1000)),
            evict_batch=max(1, _env_int("WEBDEVKIT_EVICT_BATCH", 100)),
        )
        features = cls.normalize_features(os.environ.get("WEBDEVKIT_FEATURES"))
        if features is not None:
            config = replace(
                config,
                enable_console_logging="console" in features,
                enable_dom_inspection="dom" in features,
                enable_storage_inspection="storage" in features,
                enable_event_capture="events" in features,
            )
        storage_raw = os.environ.get("WEBDEVKIT_STORAGE", "")
        if storage_raw.strip():
            types = {WebStorageType.parse(part) for part in storage_raw.split(",")}
            types.discard(None)
            config = replace(config, storage_types=frozenset(types))
        return config

    @property
    def base_http_url(self) -> str:
        return f"http://{self.cdp_host}:{self.cdp_port}"


class DevKitConfigBuilder:
    """Fluent builder: DevKitConfig.builder().with_dom_inspection(False).build()."""

    def __init__(self) -> None:
        self._config = DevKitConfig()

    def _set(self, **changes) -> DevKitConfigBuilder:
        self._config = replace(self._config, **changes)
        return self

    def with_console_logging(self, enabled: bool) -> DevKitConfigBuilder:
        return self._set(enable_console_logging=enabled)

    def with_dom_inspection(self, enabled: bool) -> DevKitConfigBuilder:
        return self._set(enable_dom_inspection=enabled)

    def with_storage_inspection(self, enabled: bool) -> DevKitConfigBuilder:
        return self._set(enable_storage_inspection=enabled)

    def with_event_capture(self, enabled: bool) -> DevKitConfigBuilder:
        return self._set(enable_event_capture=enabled)

    def with_storage_types(self, types) -> DevKitConfigBuilder:
        return self._set(storage_types=frozenset(types))

    def with_max_console_log_count(self, count: int) -> DevKitConfigBuilder:
        return self._set(max_console_log_count=max(1, int(count)))

    def with_max_event_count(self, count: int) -> DevKitConfigBuilder:
        return self._set(max_event_count=max(1, int(count)))

    def with_evict_batch(self, count: int) -> DevKitConfigBuilder:
        return self._set(evict_batch=max(1, int(count)))

    def with_cdp_endpoint(self, host: str, port: int) -> DevKitConfigBuilder:
        return self._set(cdp_host=host, cdp_port=int(port))

    def build(self) -> DevKitConfig:
        return self._config
