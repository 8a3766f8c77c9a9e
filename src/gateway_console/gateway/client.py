from __future__ import annotations

import asyncio
import time
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from gateway_console.config_resolver import GatewayConfig
from gateway_console.gateway.errors import GatewayError, GatewayErrorKind
from gateway_console.gateway.models import (
    Message,
    SendRequest,
    SendResult,
    Session,
    parse_history,
    parse_sessions,
)
from gateway_console.gateway.result import Result
from gateway_console.redaction import redact

LIST_TIMEOUT_SECONDS = 30.0
FIRE_TIMEOUT_SECONDS = 5.0
WAIT_TIMEOUT_SECONDS = 30.0
HISTORY_TIMEOUT_SECONDS = 30.0
STATUS_TIMEOUT_SECONDS = 30.0
DEFAULT_HISTORY_LIMIT = 20

_MAX_DETAIL_CHARS = 200


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        detail = data.get("error") or data.get("message")
        if detail:
            return str(detail)[:_MAX_DETAIL_CHARS]
    text = response.text.strip()
    return text[:_MAX_DETAIL_CHARS] or response.reason_phrase


def status_error(
    response: httpx.Response,
    *,
    not_found: GatewayErrorKind = GatewayErrorKind.UNKNOWN,
    bad_request: GatewayErrorKind = GatewayErrorKind.UNKNOWN,
) -> GatewayError | None:
    """Map a non-2xx response to a GatewayError; None for success."""
    code = response.status_code
    if 200 <= code < 300:
        return None

    if code in (401, 403):
        kind = GatewayErrorKind.AUTH_FAILURE
    elif code in (502, 503, 504):
        kind = GatewayErrorKind.UNAVAILABLE
    elif code == 404:
        kind = not_found
    elif code == 400:
        kind = bad_request
    else:
        kind = GatewayErrorKind.UNKNOWN
    return GatewayError(kind, f"HTTP {code}: {_error_detail(response)}", status_code=code)


def transport_error(ex: Exception, *, pending_on_timeout: bool = False) -> GatewayError:
    """Classify an exception raised while talking to the gateway.

    Connect-phase failures mean the request never left, so they are always
    UNREACHABLE. Later timeouts only mean we stopped waiting.
    """
    if isinstance(ex, (httpx.ConnectTimeout, httpx.PoolTimeout, httpx.ConnectError)):
        return GatewayError(GatewayErrorKind.UNREACHABLE, f"Gateway unreachable: {type(ex).__name__}")
    if isinstance(ex, (httpx.TimeoutException, asyncio.TimeoutError)):
        if pending_on_timeout:
            return GatewayError(
                GatewayErrorKind.RESPONSE_PENDING,
                "No reply before the timeout; the message may still be delivered",
            )
        return GatewayError(GatewayErrorKind.UNREACHABLE, "Gateway timed out")
    if isinstance(ex, httpx.HTTPError):
        return GatewayError(GatewayErrorKind.UNREACHABLE, f"Gateway unreachable: {ex}")
    if isinstance(ex, ValueError):
        return GatewayError(GatewayErrorKind.UNKNOWN, f"Malformed gateway response: {ex}")
    return GatewayError(GatewayErrorKind.UNKNOWN, f"{type(ex).__name__}: {ex}")


class GatewayClient:
    """Request executor bound to one resolved GatewayConfig.

    Each operation opens its own short-lived ``httpx.AsyncClient``, applies
    its own deadline, and returns a result value instead of raising.
    """

    def __init__(self, config: GatewayConfig, *, transport: httpx.AsyncBaseTransport | None = None):
        self._config = config
        self._transport = transport

    @property
    def config(self) -> GatewayConfig:
        return self._config

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.token}",
            "Accept": "application/json",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        logger.debug(f"{method} {path} timeout={timeout:.0f}s token={redact(self._config.token)}")
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                base_url=self._config.url,
                headers=self._headers(),
                timeout=timeout,
                transport=self._transport,
            ) as client:
                response = await asyncio.wait_for(
                    client.request(method, path, params=params, json=json),
                    timeout,
                )
        except Exception as ex:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.warning(f"{method} {path} failed: {type(ex).__name__} ({elapsed_ms:.0f} ms)")
            raise
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{method} {path} -> {response.status_code} ({elapsed_ms:.0f} ms)")
        return response

    async def list_sessions(self, message_limit: int | None = None) -> Result[tuple[Session, ...], GatewayError]:
        params = {"messageLimit": message_limit} if message_limit is not None else None
        try:
            response = await self._request("GET", "/sessions/list", timeout=LIST_TIMEOUT_SECONDS, params=params)
            error = status_error(response)
            if error is not None:
                return Result.failure(error)
            return Result.success(parse_sessions(response.json()))
        except Exception as ex:
            return Result.failure(transport_error(ex))

    async def send_message(self, session_key: str, message: str, wait_for_response: bool) -> SendResult:
        request = SendRequest(session_key, message, wait_for_response)
        timeout = WAIT_TIMEOUT_SECONDS if wait_for_response else FIRE_TIMEOUT_SECONDS
        logger.debug(f"Sending {len(message)} chars to {session_key} (wait={wait_for_response})")
        try:
            response = await self._request("POST", "/sessions/send", timeout=timeout, json=request.to_payload())
            error = status_error(response, not_found=GatewayErrorKind.SESSION_NOT_FOUND)
            if error is not None:
                return SendResult(success=False, error=error)
            data = response.json()
        except Exception as ex:
            return SendResult(success=False, error=transport_error(ex, pending_on_timeout=True))

        if not isinstance(data, dict):
            return SendResult(success=False, error=transport_error(ValueError("send response is not an object")))
        if not data.get("success", False):
            detail = str(data.get("error") or "Gateway rejected the message")
            return SendResult(success=False, error=GatewayError(GatewayErrorKind.UNKNOWN, detail))
        reply = data.get("response")
        return SendResult(success=True, response=str(reply) if reply else None)

    async def get_history(
        self, session_key: str, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> Result[tuple[Message, ...], GatewayError]:
        path = f"/sessions/history/{quote(session_key, safe='')}"
        try:
            response = await self._request(
                "GET", path, timeout=HISTORY_TIMEOUT_SECONDS, params={"limit": max(1, limit)}
            )
            error = status_error(response, not_found=GatewayErrorKind.SESSION_NOT_FOUND)
            if error is not None:
                return Result.failure(error)
            return Result.success(parse_history(response.json()))
        except Exception as ex:
            return Result.failure(transport_error(ex))

    async def set_model(self, session_key: str, model: str | None = None) -> Result[bool, GatewayError]:
        body: dict[str, Any] = {"sessionKey": session_key}
        if model is not None:
            body["model"] = model
        try:
            response = await self._request("POST", "/session/status", timeout=STATUS_TIMEOUT_SECONDS, json=body)
            error = status_error(
                response,
                not_found=GatewayErrorKind.SESSION_NOT_FOUND,
                bad_request=GatewayErrorKind.INVALID_MODEL,
            )
            if error is not None:
                return Result.failure(error)
            data = response.json()
        except Exception as ex:
            return Result.failure(transport_error(ex))
        return Result.success(bool(data.get("success", False)) if isinstance(data, dict) else False)
