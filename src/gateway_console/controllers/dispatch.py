from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum

from loguru import logger

from gateway_console.gateway.client import GatewayClient
from gateway_console.gateway.errors import GatewayError, GatewayErrorKind
from gateway_console.session_cache import SessionCache

FALLBACK_SESSION_KEY = "main"


class DispatchState(str, Enum):
    IDLE = "idle"
    COMPOSING = "composing"
    SUBMITTING = "submitting"
    SENT = "sent"
    AWAITING_RESPONSE = "awaiting_response"
    RESPONDED = "responded"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = {
    DispatchState.SENT,
    DispatchState.RESPONDED,
    DispatchState.TIMED_OUT,
    DispatchState.FAILED,
}


@dataclass(frozen=True)
class Draft:
    message: str
    session_key: str


@dataclass(frozen=True)
class DispatchSnapshot:
    state: DispatchState
    draft: Draft
    wait_for_response: bool | None = None
    response: str | None = None
    error: GatewayError | None = None
    validation_error: str | None = None


def effective_mode(default_wait: bool, alternate_requested: bool) -> bool:
    """Wait-for-response flag for one submission; the alternate action flips the default."""
    return default_wait != alternate_requested


class DispatchController:
    """Composes and sends one message to a session.

    Every entry point returns the resulting DispatchSnapshot; ``on_change``
    additionally sees intermediate states such as AWAITING_RESPONSE.
    """

    def __init__(
        self,
        client: GatewayClient,
        *,
        wait_for_response: bool = False,
        default_session_key: str | None = None,
        cache: SessionCache | None = None,
        on_change: Callable[[DispatchSnapshot], None] | None = None,
    ):
        self._client = client
        self._wait_default = wait_for_response
        self._default_session_key = (default_session_key or "").strip() or FALLBACK_SESSION_KEY
        self._cache = cache
        self._on_change = on_change
        self._request_seq = 0
        self._snapshot = DispatchSnapshot(DispatchState.IDLE, Draft("", self._default_session_key))

    @property
    def snapshot(self) -> DispatchSnapshot:
        return self._snapshot

    @property
    def default_session_key(self) -> str:
        return self._default_session_key

    @property
    def wait_for_response(self) -> bool:
        return self._wait_default

    def _transition(self, snapshot: DispatchSnapshot) -> DispatchSnapshot:
        if snapshot.state is not self._snapshot.state:
            logger.debug(f"Dispatch {self._snapshot.state.value} -> {snapshot.state.value}")
        self._snapshot = snapshot
        if self._on_change is not None:
            self._on_change(snapshot)
        return snapshot

    def compose(self, message: str | None = None, session_key: str | None = None) -> DispatchSnapshot:
        draft = self._snapshot.draft
        if message is not None:
            draft = replace(draft, message=message)
        if session_key is not None:
            draft = replace(draft, session_key=session_key.strip() or self._default_session_key)
        return self._transition(DispatchSnapshot(DispatchState.COMPOSING, draft))

    def reset(self) -> DispatchSnapshot:
        self._request_seq += 1
        session_key = self._snapshot.draft.session_key
        return self._transition(DispatchSnapshot(DispatchState.IDLE, Draft("", session_key)))

    async def submit(self, *, alternate: bool = False) -> DispatchSnapshot:
        draft = self._snapshot.draft
        if not draft.message.strip():
            return self._transition(
                DispatchSnapshot(DispatchState.COMPOSING, draft, validation_error="Message is required")
            )
        return await self._dispatch(draft, effective_mode(self._wait_default, alternate))

    async def retry(self) -> DispatchSnapshot:
        """Re-send the failed draft in the mode it was first sent with."""
        snapshot = self._snapshot
        if snapshot.state is not DispatchState.FAILED:
            logger.debug(f"Retry ignored in state {snapshot.state.value}")
            return snapshot
        wait = snapshot.wait_for_response if snapshot.wait_for_response is not None else self._wait_default
        return await self._dispatch(snapshot.draft, wait)

    async def _dispatch(self, draft: Draft, wait: bool) -> DispatchSnapshot:
        self._request_seq += 1
        token = self._request_seq

        self._transition(DispatchSnapshot(DispatchState.SUBMITTING, draft, wait_for_response=wait))
        if wait:
            self._transition(DispatchSnapshot(DispatchState.AWAITING_RESPONSE, draft, wait_for_response=wait))

        result = await self._client.send_message(draft.session_key, draft.message, wait)
        if token != self._request_seq:
            logger.debug(f"Discarding superseded send result (request {token})")
            return self._snapshot

        if result.success:
            if wait and result.response:
                outcome = DispatchSnapshot(DispatchState.RESPONDED, draft, wait, response=result.response)
            else:
                outcome = DispatchSnapshot(DispatchState.SENT, draft, wait)
        elif result.error is not None and result.error.kind is GatewayErrorKind.RESPONSE_PENDING:
            outcome = DispatchSnapshot(DispatchState.TIMED_OUT, draft, wait, error=result.error)
        else:
            error = result.error or GatewayError(GatewayErrorKind.UNKNOWN, "Send failed")
            outcome = DispatchSnapshot(DispatchState.FAILED, draft, wait, error=error)

        if self._snapshot.state is DispatchState.COMPOSING:
            # edited while in flight; report the outcome without losing the new draft
            outcome = replace(outcome, draft=self._snapshot.draft)

        if outcome.state is not DispatchState.FAILED and self._cache is not None:
            self._cache.invalidate()
        return self._transition(outcome)
