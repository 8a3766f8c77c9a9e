from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    """Routes console input: slash commands to handlers, anything else to ``on_message``."""

    def __init__(
        self,
        *,
        on_message: Callable[[str], Awaitable[None]],
        on_help: Callable[[], Awaitable[None]],
        on_alternate: Callable[[str], Awaitable[None]],
        on_retry: Callable[[], Awaitable[None]],
        on_use: Callable[[str], Awaitable[None]],
        on_sessions: Callable[[str], Awaitable[None]],
        on_history: Callable[[str], Awaitable[None]],
        on_model: Callable[[str], Awaitable[None]],
        on_reload: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_message = on_message
        self._on_help = on_help
        self._on_alternate = on_alternate
        self._on_retry = on_retry
        self._on_use = on_use
        self._on_sessions = on_sessions
        self._on_history = on_history
        self._on_model = on_model
        self._on_reload = on_reload
        self._on_unknown = on_unknown

    async def handle(self, user_input: str) -> None:
        trimmed = user_input.strip()
        if not trimmed:
            return
        if not trimmed.startswith("/"):
            await self._on_message(trimmed)
            return

        command, _, rest = trimmed.partition(" ")
        rest = rest.strip()

        if command == "/help":
            await self._on_help()
        elif command == "/alt":
            await self._on_alternate(rest)
        elif command == "/retry":
            await self._on_retry()
        elif command == "/use":
            await self._on_use(rest)
        elif command == "/sessions":
            await self._on_sessions(rest)
        elif command == "/history":
            await self._on_history(rest)
        elif command == "/model":
            await self._on_model(rest)
        elif command == "/reload":
            await self._on_reload()
        else:
            self._on_unknown(trimmed)
