from __future__ import annotations

from gateway_console.controllers.dispatch import DispatchSnapshot, DispatchState
from gateway_console.controllers.sessions import (
    HistoryState,
    SessionsSnapshot,
    SessionsState,
    activity_label,
    model_override_target,
)
from gateway_console.gateway.errors import GatewayError, GatewayErrorKind
from gateway_console.gateway.models import Session

_ERROR_HINTS = {
    GatewayErrorKind.AUTH_FAILURE: "check the gateway token",
    GatewayErrorKind.UNREACHABLE: "is the gateway running?",
    GatewayErrorKind.UNAVAILABLE: "the gateway is starting or overloaded",
    GatewayErrorKind.SESSION_NOT_FOUND: "no such session",
    GatewayErrorKind.INVALID_MODEL: "model not accepted",
}


class SessionFormatter:
    def __init__(self, *, line_prefix: str, preview_chars: int = 400):
        self._line_prefix = line_prefix
        self._preview_chars = preview_chars

    def format_error(self, error: GatewayError) -> str:
        hint = _ERROR_HINTS.get(error.kind)
        suffix = f" ({hint})" if hint else ""
        return f"{error.message}{suffix}"

    def format_session_row(
        self,
        session: Session,
        *,
        selected_key: str | None,
        now_ms: int | None = None,
        switching: bool = False,
        error: GatewayError | None = None,
    ) -> str:
        marker = "*" if session.session_key == selected_key else " "
        model = session.model or "-"
        target = model_override_target(session)
        override = f" (/model -> {target.value})" if target is not None else ""
        tokens = f" tokens={session.token_usage:,}" if session.token_usage is not None else ""
        line = (
            f"{self._line_prefix}{marker} {session.label} [{session.channel}] "
            f"model={model}{override} status={session.status} "
            f"{activity_label(session, now_ms)}{tokens}"
        )
        if session.label != session.session_key:
            line += f" (key={session.session_key})"
        if switching:
            line += " [switching model...]"
        if error is not None:
            line += f" [error: {self.format_error(error)}]"
        return line

    def format_dashboard_lines(
        self, snapshot: SessionsSnapshot, *, selected_key: str | None, now_ms: int | None = None
    ) -> list[str]:
        if snapshot.state is SessionsState.LOADING:
            return [f"{self._line_prefix}Loading sessions..."]

        lines: list[str] = []
        if snapshot.error is not None:
            stale = " (showing last known list)" if snapshot.sessions else ""
            lines.append(f"{self._line_prefix}Could not refresh sessions: {self.format_error(snapshot.error)}{stale}")
        if not snapshot.sessions:
            lines.append(f"{self._line_prefix}No active sessions.")
            return lines

        lines.append(f"{self._line_prefix}Sessions ({len(snapshot.sessions)}):")
        for session in snapshot.sessions:
            lines.append(
                self.format_session_row(
                    session,
                    selected_key=selected_key,
                    now_ms=now_ms,
                    switching=session.session_key in snapshot.switching,
                    error=snapshot.row_errors.get(session.session_key),
                )
            )
        return lines

    def format_history_lines(self, snapshot: SessionsSnapshot) -> list[str]:
        view = snapshot.history
        if view is None:
            return []
        if view.state is HistoryState.LOADING:
            return [f"{self._line_prefix}Loading history for {view.session_key}..."]
        if view.error is not None:
            return [f"{self._line_prefix}History for {view.session_key} failed: {self.format_error(view.error)}"]
        if not view.messages:
            return [f"{self._line_prefix}No messages in {view.session_key}."]

        lines = [f"{self._line_prefix}History for {view.session_key} ({len(view.messages)} messages):"]
        for message in view.messages:
            content = message.content.strip()
            if len(content) > self._preview_chars:
                content = content[: self._preview_chars - 3] + "..."
            lines.append(f"{self._line_prefix}{message.role.value}> {content}")
        return lines

    def format_dispatch_outcome(self, snapshot: DispatchSnapshot) -> str:
        key = snapshot.draft.session_key
        if snapshot.validation_error:
            return f"{self._line_prefix}{snapshot.validation_error}"
        if snapshot.state is DispatchState.SENT:
            return f"{self._line_prefix}Sent to {key}."
        if snapshot.state is DispatchState.RESPONDED:
            return f"{self._line_prefix}{key}> {snapshot.response}"
        if snapshot.state is DispatchState.TIMED_OUT:
            return f"{self._line_prefix}No reply from {key} yet; it may still arrive. Check back with /history {key}."
        if snapshot.state is DispatchState.FAILED and snapshot.error is not None:
            return f"{self._line_prefix}Failed to send to {key}: {self.format_error(snapshot.error)}. Use /retry to resend."
        return f"{self._line_prefix}{snapshot.state.value}"
