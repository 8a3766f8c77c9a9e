from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType

from loguru import logger

from gateway_console.gateway.client import DEFAULT_HISTORY_LIMIT, GatewayClient
from gateway_console.gateway.errors import GatewayError, GatewayErrorKind
from gateway_console.gateway.models import Message, ModelFamily, Session
from gateway_console.session_cache import SessionCache

ACTIVE_WINDOW_MS = 2 * 60 * 1000

_OVERRIDE_TARGETS = {
    ModelFamily.OPUS: ModelFamily.SONNET,
    ModelFamily.SONNET: ModelFamily.OPUS,
}


class SessionsState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    REFRESHING = "refreshing"


class HistoryState(str, Enum):
    LOADING = "history_loading"
    READY = "history_ready"


@dataclass(frozen=True)
class HistoryView:
    session_key: str
    state: HistoryState
    messages: tuple[Message, ...] = ()
    error: GatewayError | None = None


def _frozen(mapping: dict) -> Mapping:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class SessionsSnapshot:
    state: SessionsState
    sessions: tuple[Session, ...] = ()
    error: GatewayError | None = None
    history: HistoryView | None = None
    switching: frozenset[str] = frozenset()
    row_errors: Mapping[str, GatewayError] = field(default_factory=lambda: _frozen({}))

    def find(self, session_key: str) -> Session | None:
        for session in self.sessions:
            if session.session_key == session_key:
                return session
        return None


def model_override_target(session: Session) -> ModelFamily | None:
    """The model a session can be switched to, or None when no override is offered."""
    family = session.model_family
    if family is None:
        return None
    return _OVERRIDE_TARGETS.get(family)


def activity_label(session: Session, now_ms: int | None = None) -> str:
    if session.last_activity_ms is None:
        return "Unknown"
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    elapsed_ms = max(0, now_ms - session.last_activity_ms)
    if elapsed_ms <= ACTIVE_WINDOW_MS:
        return "Active"
    minutes = elapsed_ms // 60_000
    if minutes < 60:
        return f"Idle {minutes}m"
    return f"Idle {minutes // 60}h"


class SessionsController:
    """Dashboard state: the session list, one history view, per-row model switches.

    Each kind of request carries a sequence token; a result that lands after
    a newer request of the same kind was issued is dropped.
    """

    def __init__(
        self,
        client: GatewayClient,
        cache: SessionCache,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        on_change: Callable[[SessionsSnapshot], None] | None = None,
    ):
        self._client = client
        self._cache = cache
        self._history_limit = history_limit
        self._on_change = on_change
        self._tokens: dict[str, int] = {}
        self._snapshot = SessionsSnapshot(SessionsState.LOADING)

    @property
    def snapshot(self) -> SessionsSnapshot:
        return self._snapshot

    def _next_token(self, kind: str) -> int:
        token = self._tokens.get(kind, 0) + 1
        self._tokens[kind] = token
        return token

    def _is_current(self, kind: str, token: int) -> bool:
        if self._tokens.get(kind) == token:
            return True
        logger.debug(f"Discarding superseded {kind} result (request {token})")
        return False

    def _transition(self, snapshot: SessionsSnapshot) -> SessionsSnapshot:
        if snapshot.state is not self._snapshot.state:
            logger.debug(f"Sessions {self._snapshot.state.value} -> {snapshot.state.value}")
        self._snapshot = snapshot
        if self._on_change is not None:
            self._on_change(snapshot)
        return snapshot

    async def mount(self) -> SessionsSnapshot:
        token = self._next_token("list")
        self._transition(replace(self._snapshot, state=SessionsState.LOADING))
        listing = await self._cache.get(False)
        if not self._is_current("list", token):
            return self._snapshot
        return self._transition(
            replace(self._snapshot, state=SessionsState.READY, sessions=listing.sessions, error=listing.error)
        )

    async def refresh(self) -> SessionsSnapshot:
        token = self._next_token("list")
        # before the first load completes this is a forced load, not a refresh
        loading = self._snapshot.state is SessionsState.LOADING
        self._transition(
            replace(self._snapshot, state=SessionsState.LOADING if loading else SessionsState.REFRESHING)
        )
        listing = await self._cache.get(True)
        if not self._is_current("list", token):
            return self._snapshot
        return self._transition(
            replace(self._snapshot, state=SessionsState.READY, sessions=listing.sessions, error=listing.error)
        )

    async def load_history(self, session_key: str, limit: int | None = None) -> SessionsSnapshot:
        token = self._next_token("history")
        self._transition(replace(self._snapshot, history=HistoryView(session_key, HistoryState.LOADING)))
        result = await self._client.get_history(session_key, limit or self._history_limit)
        if not self._is_current("history", token):
            return self._snapshot
        if result.ok:
            view = HistoryView(session_key, HistoryState.READY, messages=result.value)
        else:
            view = HistoryView(session_key, HistoryState.READY, error=result.error)
        return self._transition(replace(self._snapshot, history=view))

    def close_history(self) -> SessionsSnapshot:
        self._next_token("history")
        return self._transition(replace(self._snapshot, history=None))

    async def switch_model(self, session_key: str) -> SessionsSnapshot:
        session = self._snapshot.find(session_key)
        target = model_override_target(session) if session is not None else None
        if target is None:
            error = GatewayError(
                GatewayErrorKind.INVALID_MODEL,
                "Model override is only offered for Opus and Sonnet sessions",
            )
            return self._transition(self._with_row_error(session_key, error))

        kind = f"model:{session_key}"
        token = self._next_token(kind)
        errors = {k: v for k, v in self._snapshot.row_errors.items() if k != session_key}
        self._transition(
            replace(
                self._snapshot,
                switching=self._snapshot.switching | {session_key},
                row_errors=_frozen(errors),
            )
        )
        logger.info(f"Switching {session_key} to {target.value}")
        result = await self._client.set_model(session_key, target.value)
        if not self._is_current(kind, token):
            return self._snapshot

        switching = self._snapshot.switching - {session_key}
        if not result.ok or not result.value:
            error = result.error or GatewayError(GatewayErrorKind.UNKNOWN, "Gateway rejected the model change")
            return self._transition(
                replace(self._with_row_error(session_key, error), switching=switching)
            )

        self._transition(replace(self._snapshot, switching=switching))
        self._cache.invalidate()
        return await self.refresh()

    def _with_row_error(self, session_key: str, error: GatewayError) -> SessionsSnapshot:
        errors = dict(self._snapshot.row_errors)
        errors[session_key] = error
        return replace(self._snapshot, row_errors=_frozen(errors))
