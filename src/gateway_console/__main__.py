import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from gateway_console.app_config import load_json_config, parse_console_config
from gateway_console.bootstrap import ConsoleRuntime, bootstrap_runtime, reload_runtime
from gateway_console.commands.router import CommandRouter
from gateway_console.controllers import DispatchState, effective_mode
from gateway_console.services.session_formatter import SessionFormatter

LINE_PREFIX = "gateway> "

_HELP_LINES = [
    "<text>                 send to the selected session (default mode)",
    "/alt <text>            send in the other mode (wait <-> fire-and-forget)",
    "/retry                 resend the last failed message",
    "/use <key>             select the session to send to",
    "/sessions [refresh]    show sessions (cached for 30s unless refreshed)",
    "/history <key> [n]     show the last n messages of a session",
    "/model <key>           switch a session between Opus and Sonnet",
    "/reload                re-read gateway settings",
    "exit | quit            leave",
]


class Console:
    def __init__(self, runtime: ConsoleRuntime):
        self._runtime = runtime
        self._formatter = SessionFormatter(line_prefix=LINE_PREFIX)
        self._router = CommandRouter(
            on_message=self._send,
            on_help=self._help,
            on_alternate=self._send_alternate,
            on_retry=self._retry,
            on_use=self._use,
            on_sessions=self._sessions,
            on_history=self._history,
            on_model=self._model,
            on_reload=self._reload,
            on_unknown=self._unknown,
        )

    @property
    def runtime(self) -> ConsoleRuntime:
        return self._runtime

    @property
    def selected_key(self) -> str:
        return self._runtime.dispatch.snapshot.draft.session_key

    async def handle(self, user_input: str) -> None:
        await self._router.handle(user_input)

    def _print(self, lines: list[str]) -> None:
        for line in lines:
            print(line)

    async def _dispatch(self, text: str, *, alternate: bool) -> None:
        dispatch = self._runtime.dispatch
        dispatch.compose(message=text)
        if text and effective_mode(self._runtime.config.wait_for_response, alternate):
            print(f"{LINE_PREFIX}Waiting for {self.selected_key} to reply...")
        snapshot = await dispatch.submit(alternate=alternate)
        print(self._formatter.format_dispatch_outcome(snapshot))
        if snapshot.state in (DispatchState.SENT, DispatchState.RESPONDED):
            dispatch.reset()

    async def _send(self, text: str) -> None:
        await self._dispatch(text, alternate=False)

    async def _send_alternate(self, text: str) -> None:
        if not text:
            print(f"{LINE_PREFIX}Usage: /alt <text>")
            return
        await self._dispatch(text, alternate=True)

    async def _retry(self) -> None:
        dispatch = self._runtime.dispatch
        if dispatch.snapshot.state is not DispatchState.FAILED:
            print(f"{LINE_PREFIX}Nothing to retry.")
            return
        snapshot = await dispatch.retry()
        print(self._formatter.format_dispatch_outcome(snapshot))

    async def _help(self) -> None:
        self._print([f"{LINE_PREFIX}{line}" for line in _HELP_LINES])

    async def _use(self, args: str) -> None:
        if not args:
            print(f"{LINE_PREFIX}Selected session: {self.selected_key}")
            return
        self._runtime.dispatch.compose(session_key=args)
        print(f"{LINE_PREFIX}Selected session: {self.selected_key}")

    async def _sessions(self, args: str) -> None:
        sessions = self._runtime.sessions
        if args == "refresh":
            snapshot = await sessions.refresh()
        else:
            snapshot = await sessions.mount()
        self._print(self._formatter.format_dashboard_lines(snapshot, selected_key=self.selected_key))

    async def _history(self, args: str) -> None:
        parts = args.split()
        if not parts:
            print(f"{LINE_PREFIX}Usage: /history <key> [limit]")
            return
        limit = None
        if len(parts) > 1:
            if not parts[1].isdigit():
                print(f"{LINE_PREFIX}Limit must be a positive integer")
                return
            limit = int(parts[1])
        snapshot = await self._runtime.sessions.load_history(parts[0], limit)
        self._print(self._formatter.format_history_lines(snapshot))

    async def _model(self, args: str) -> None:
        if not args:
            print(f"{LINE_PREFIX}Usage: /model <key>")
            return
        sessions = self._runtime.sessions
        if sessions.snapshot.find(args) is None:
            await sessions.mount()
        snapshot = await sessions.switch_model(args)
        error = snapshot.row_errors.get(args)
        if error is not None:
            print(f"{LINE_PREFIX}Model switch failed: {self._formatter.format_error(error)}")
            return
        self._print(self._formatter.format_dashboard_lines(snapshot, selected_key=self.selected_key))

    async def _reload(self) -> None:
        try:
            config = parse_console_config(load_json_config())
            self._runtime = reload_runtime(self._runtime, config)
        except (OSError, ValueError) as ex:
            logger.error(f"Reload failed: {ex}")
            return
        print(f"{LINE_PREFIX}Using gateway {self._runtime.client.config.url}")

    def _unknown(self, command: str) -> None:
        print(f"{LINE_PREFIX}Unknown command: {command} (try /help)")


async def main() -> None:
    load_dotenv()

    config = parse_console_config(load_json_config())

    try:
        runtime = await bootstrap_runtime(config)
    except ValueError as ex:
        logger.error(str(ex))
        sys.exit(1)

    resolved = runtime.client.config
    print("gateway-console (type 'exit' to quit, '/help' for commands)")
    print(f"Gateway: {resolved.url} ({resolved.source.value})")
    print(f"Default mode: {'wait for response' if config.wait_for_response else 'fire-and-forget'}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")

    console = Console(runtime)
    formatter = SessionFormatter(line_prefix=LINE_PREFIX)
    for line in formatter.format_dashboard_lines(runtime.sessions.snapshot, selected_key=console.selected_key):
        print(line)
    print()

    while True:
        try:
            user_input = input(f"[{console.selected_key}] you> ")
        except (EOFError, KeyboardInterrupt):
            break

        trimmed = user_input.strip()
        if trimmed in ("exit", "quit"):
            break

        try:
            await console.handle(trimmed)
        except Exception as ex:
            logger.error(f"Unhandled error: {ex}")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
