from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from gateway_console.gateway.errors import GatewayError


class ModelFamily(str, Enum):
    OPUS = "opus"
    SONNET = "sonnet"
    OTHER = "other"

    @classmethod
    def from_model_id(cls, model: str | None) -> ModelFamily | None:
        if not model:
            return None
        lowered = model.lower()
        if "opus" in lowered:
            return cls.OPUS
        if "sonnet" in lowered:
            return cls.SONNET
        return cls.OTHER


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


@dataclass(frozen=True)
class Session:
    session_key: str
    channel: str
    status: str
    display_name: str | None = None
    model: str | None = None
    last_activity_ms: int | None = None
    token_usage: int | None = None

    @property
    def model_family(self) -> ModelFamily | None:
        return ModelFamily.from_model_id(self.model)

    @property
    def label(self) -> str:
        return self.display_name or self.session_key


@dataclass(frozen=True)
class Message:
    role: MessageRole
    content: str
    timestamp_ms: int


@dataclass(frozen=True)
class SendRequest:
    session_key: str
    message: str
    wait_for_response: bool

    def to_payload(self) -> dict[str, str]:
        return {"sessionKey": self.session_key, "message": self.message}


@dataclass(frozen=True)
class SendResult:
    success: bool
    response: str | None = None
    error: GatewayError | None = None


def _first(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


def _optional_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _optional_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _text_content(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, dict) and block.get("type") == "text":
                parts.append(str(block.get("text", "")))
            elif isinstance(block, str):
                parts.append(block)
        return "\n".join(parts)
    if content is None:
        return ""
    return str(content)


def parse_session(data: dict[str, Any]) -> Session | None:
    key = _first(data, "sessionKey", "key")
    if not key:
        logger.debug("Skipping session entry without a key")
        return None
    return Session(
        session_key=str(key),
        channel=str(data.get("channel") or "unknown"),
        status=str(data.get("status") or "unknown"),
        display_name=_optional_str(_first(data, "displayName", "label")),
        model=_optional_str(_first(data, "model")),
        last_activity_ms=_optional_int(_first(data, "lastActivityEpochMillis", "lastActivity", "updatedAt")),
        token_usage=_optional_int(_first(data, "tokenUsage", "totalTokens")),
    )


def parse_sessions(payload: Any) -> tuple[Session, ...]:
    if not isinstance(payload, dict):
        raise ValueError("Session list response is not an object")
    entries = payload.get("sessions") or []
    if not isinstance(entries, list):
        raise ValueError("'sessions' is not a list")
    sessions = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        session = parse_session(entry)
        if session is not None:
            sessions.append(session)
    return tuple(sessions)


def parse_message(data: dict[str, Any]) -> Message | None:
    try:
        role = MessageRole(str(data.get("role", "")).lower())
    except ValueError:
        logger.debug(f"Skipping history entry with role {data.get('role')!r}")
        return None
    return Message(
        role=role,
        content=_text_content(data.get("content")),
        timestamp_ms=_optional_int(_first(data, "timestampEpochMillis", "timestamp")) or 0,
    )


def parse_history(payload: Any) -> tuple[Message, ...]:
    if not isinstance(payload, dict):
        raise ValueError("History response is not an object")
    entries = payload.get("messages") or []
    if not isinstance(entries, list):
        raise ValueError("'messages' is not a list")
    messages = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        message = parse_message(entry)
        if message is not None:
            messages.append(message)
    return tuple(messages)
