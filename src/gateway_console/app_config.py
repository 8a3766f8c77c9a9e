from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from gateway_console.config_resolver import GatewayOverrides
from gateway_console.gateway.client import DEFAULT_HISTORY_LIMIT


@dataclass
class ConsoleConfig:
    gateway_url: str | None
    gateway_token: str | None
    wait_for_response: bool
    default_session_key: str | None
    settings_path: str | None
    history_limit: int
    message_limit: int | None
    log_level: str
    log_consumers: list | None

    @property
    def overrides(self) -> GatewayOverrides:
        return GatewayOverrides(url=self.gateway_url, token=self.gateway_token)


def load_json_config(path: Path | None = None) -> dict:
    config_path = path or Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def _to_optional_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value).strip() or None


def _to_optional_int(value: object) -> int | None:
    if value is None or str(value).strip() == "":
        return None
    return int(value)


def parse_console_config(config: dict) -> ConsoleConfig:
    return ConsoleConfig(
        gateway_url=_to_optional_str(config.get("GatewayUrl")),
        gateway_token=_to_optional_str(config.get("GatewayToken")),
        wait_for_response=_to_bool(config.get("WaitForResponse", False), default=False),
        default_session_key=_to_optional_str(config.get("DefaultSessionKey")),
        settings_path=_to_optional_str(config.get("SettingsPath")),
        history_limit=int(config.get("HistoryLimit", DEFAULT_HISTORY_LIMIT)),
        message_limit=_to_optional_int(config.get("MessageLimit")),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )
