from gateway_console.gateway.errors import ConfigError, ConfigErrorKind, GatewayError, GatewayErrorKind
from gateway_console.gateway.models import Message, MessageRole, ModelFamily, SendResult, Session
from gateway_console.gateway.result import Result

__all__ = [
    "ConfigError",
    "ConfigErrorKind",
    "GatewayError",
    "GatewayErrorKind",
    "Message",
    "MessageRole",
    "ModelFamily",
    "Result",
    "SendResult",
    "Session",
]
