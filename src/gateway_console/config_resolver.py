from __future__ import annotations

import json
import os
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from gateway_console.gateway.errors import ConfigError, ConfigErrorKind
from gateway_console.gateway.result import Result
from gateway_console.redaction import redact

DEFAULT_PORT = 18789
DEFAULT_URL = f"http://localhost:{DEFAULT_PORT}"
DEFAULT_SETTINGS_PATH = Path.home() / ".openclaw" / "openclaw.json"
TOKEN_ENV_VAR = "OPENCLAW_GATEWAY_TOKEN"
CACHE_WINDOW_SECONDS = 60.0


class ConfigSource(str, Enum):
    AUTO_DISCOVERED = "auto_discovered"
    MANUAL = "manual"


@dataclass(frozen=True)
class GatewayConfig:
    url: str
    token: str
    source: ConfigSource


@dataclass(frozen=True)
class GatewayOverrides:
    url: str | None = None
    token: str | None = None


@dataclass(frozen=True)
class DiscoveredSettings:
    url: str | None = None
    token: str | None = None


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def load_settings_file(path: Path) -> dict | None:
    """Read the local gateway settings document, or None when unusable."""
    if not path.exists():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as ex:
        logger.warning(f"Ignoring unreadable gateway settings {path}: {ex}")
        return None
    if not isinstance(data, dict):
        logger.warning(f"Ignoring gateway settings {path}: top level is not an object")
        return None
    return data


def extract_settings(data: dict | None) -> DiscoveredSettings:
    if not data:
        return DiscoveredSettings()
    gateway = data.get("gateway")
    if not isinstance(gateway, dict):
        return DiscoveredSettings()

    url = _clean(gateway.get("url"))
    port = _clean(gateway.get("port"))
    if url is None and port is not None:
        if port.isdigit():
            url = f"http://localhost:{port}"
        else:
            logger.warning(f"Ignoring non-numeric gateway.port {port!r}")

    auth = gateway.get("auth")
    token = _clean(auth.get("token")) if isinstance(auth, dict) else None
    return DiscoveredSettings(url=url, token=token)


def is_valid_url(url: str) -> bool:
    try:
        parsed = httpx.URL(url)
        port = parsed.port
    except (httpx.InvalidURL, ValueError):
        return False
    if parsed.scheme not in ("http", "https") or not parsed.host:
        return False
    return port is None or 0 < port <= 65535


class ConfigResolver:
    """Produces the GatewayConfig from overrides, the settings file and the environment.

    Precedence, highest first: both fields overridden; individual field
    overrides merged with discovered values; discovered values; the default
    local URL with the token from the environment.

    Successful results are memoized for ``cache_seconds``; ``invalidate()``
    drops the memo so the next ``resolve()`` re-reads everything.
    """

    def __init__(
        self,
        overrides: GatewayOverrides | None = None,
        *,
        settings_path: Path | None = None,
        environ: Mapping[str, str] | None = None,
        cache_seconds: float = CACHE_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._overrides = overrides or GatewayOverrides()
        self._settings_path = settings_path or DEFAULT_SETTINGS_PATH
        self._environ = environ if environ is not None else os.environ
        self._cache_seconds = cache_seconds
        self._clock = clock
        self._memo: tuple[GatewayConfig, float] | None = None

    @property
    def overrides(self) -> GatewayOverrides:
        return self._overrides

    def invalidate(self, overrides: GatewayOverrides | None = None) -> None:
        if overrides is not None:
            self._overrides = overrides
        self._memo = None
        logger.debug("Gateway config cache invalidated")

    def resolve(self) -> Result[GatewayConfig, ConfigError]:
        now = self._clock()
        if self._memo is not None:
            config, resolved_at = self._memo
            if now - resolved_at < self._cache_seconds:
                logger.debug("Using cached gateway config")
                return Result.success(config)

        result = self._resolve_uncached()
        if result.ok:
            self._memo = (result.value, now)
        return result

    def _resolve_uncached(self) -> Result[GatewayConfig, ConfigError]:
        manual_url = _clean(self._overrides.url)
        manual_token = _clean(self._overrides.token)

        if manual_url and manual_token:
            url, token, source = manual_url, manual_token, ConfigSource.MANUAL
        else:
            discovered = extract_settings(load_settings_file(self._settings_path))
            url = manual_url or discovered.url or DEFAULT_URL
            token = manual_token or discovered.token or _clean(self._environ.get(TOKEN_ENV_VAR))
            source = ConfigSource.AUTO_DISCOVERED

        if not token:
            return Result.failure(
                ConfigError(
                    ConfigErrorKind.MISSING_TOKEN,
                    f"No gateway token: set GatewayToken, {self._settings_path} or {TOKEN_ENV_VAR}",
                )
            )

        url = url.rstrip("/")
        if not is_valid_url(url):
            return Result.failure(ConfigError(ConfigErrorKind.INVALID_URL, f"Invalid gateway URL: {url!r}"))

        logger.info(f"Gateway config: url={url}, token={redact(token)}, source={source.value}")
        return Result.success(GatewayConfig(url=url, token=token, source=source))
