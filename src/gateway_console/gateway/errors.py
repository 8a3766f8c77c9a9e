from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ConfigErrorKind(str, Enum):
    MISSING_TOKEN = "missing_token"
    INVALID_URL = "invalid_url"


class GatewayErrorKind(str, Enum):
    AUTH_FAILURE = "auth_failure"
    UNREACHABLE = "unreachable"
    UNAVAILABLE = "unavailable"
    SESSION_NOT_FOUND = "session_not_found"
    INVALID_MODEL = "invalid_model"
    RESPONSE_PENDING = "response_pending"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ConfigError:
    kind: ConfigErrorKind
    message: str


@dataclass(frozen=True)
class GatewayError:
    kind: GatewayErrorKind
    message: str
    status_code: int | None = None

    @property
    def is_pending(self) -> bool:
        """True when the outcome is unknown rather than failed."""
        return self.kind is GatewayErrorKind.RESPONSE_PENDING
