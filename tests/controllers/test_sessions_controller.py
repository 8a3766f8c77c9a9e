import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from gateway_console.controllers.sessions import (
    HistoryState,
    SessionsController,
    SessionsSnapshot,
    SessionsState,
    activity_label,
    model_override_target,
)
from gateway_console.gateway.errors import GatewayError, GatewayErrorKind
from gateway_console.gateway.models import Message, MessageRole, ModelFamily, Session
from gateway_console.gateway.result import Result
from gateway_console.session_cache import SessionCache

NOW_MS = 1_700_000_000_000

_OPUS = Session(session_key="main", channel="telegram", status="running", model="claude-opus-4-5")
_SONNET = Session(session_key="main", channel="telegram", status="running", model="claude-sonnet-4-5")
_OTHER = Session(session_key="gpt", channel="web", status="idle", model="gpt-5")
_OUTAGE = GatewayError(GatewayErrorKind.UNREACHABLE, "Gateway unreachable: ConnectError")


def _session_at(offset_ms: int) -> Session:
    return Session(session_key="main", channel="web", status="running", last_activity_ms=NOW_MS - offset_ms)


class ActivityLabelTests(unittest.TestCase):
    def test_recent_activity_is_active(self) -> None:
        self.assertEqual("Active", activity_label(_session_at(90_000), NOW_MS))
        self.assertEqual("Active", activity_label(_session_at(120_000), NOW_MS))

    def test_minutes_under_an_hour(self) -> None:
        self.assertEqual("Idle 6m", activity_label(_session_at(400_000), NOW_MS))
        self.assertEqual("Idle 59m", activity_label(_session_at(59 * 60_000 + 59_000), NOW_MS))

    def test_hours_from_sixty_minutes(self) -> None:
        self.assertEqual("Idle 1h", activity_label(_session_at(60 * 60_000), NOW_MS))
        self.assertEqual("Idle 26h", activity_label(_session_at(26 * 3_600_000 + 5), NOW_MS))

    def test_missing_activity_is_unknown(self) -> None:
        self.assertEqual("Unknown", activity_label(_OPUS, NOW_MS))


class ModelOverrideTargetTests(unittest.TestCase):
    def test_pairs_opus_and_sonnet(self) -> None:
        self.assertEqual(ModelFamily.SONNET, model_override_target(_OPUS))
        self.assertEqual(ModelFamily.OPUS, model_override_target(_SONNET))

    def test_not_offered_for_other_models(self) -> None:
        self.assertIsNone(model_override_target(_OTHER))
        self.assertIsNone(model_override_target(Session(session_key="x", channel="web", status="idle")))


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class SessionsControllerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = MagicMock()
        self.client.list_sessions = AsyncMock()
        self.client.get_history = AsyncMock()
        self.client.set_model = AsyncMock()
        self.cache = SessionCache(self.client, clock=_Clock())
        self.seen: list[SessionsSnapshot] = []
        self.controller = SessionsController(self.client, self.cache, on_change=self.seen.append)

    def test_starts_loading(self) -> None:
        self.assertEqual(SessionsState.LOADING, self.controller.snapshot.state)

    def test_mount_success_is_ready(self) -> None:
        self.client.list_sessions.side_effect = [Result.success((_OPUS, _OTHER))]
        snapshot = asyncio.run(self.controller.mount())
        self.assertEqual(SessionsState.READY, snapshot.state)
        self.assertEqual((_OPUS, _OTHER), snapshot.sessions)
        self.assertIsNone(snapshot.error)

    def test_mount_failure_is_ready_and_empty(self) -> None:
        self.client.list_sessions.side_effect = [Result.failure(_OUTAGE)]
        snapshot = asyncio.run(self.controller.mount())
        self.assertEqual(SessionsState.READY, snapshot.state)
        self.assertEqual((), snapshot.sessions)
        self.assertEqual(_OUTAGE, snapshot.error)

    def test_refresh_passes_through_refreshing(self) -> None:
        self.client.list_sessions.side_effect = [Result.success((_OPUS,)), Result.success((_OPUS, _OTHER))]

        async def scenario() -> SessionsSnapshot:
            await self.controller.mount()
            return await self.controller.refresh()

        snapshot = asyncio.run(scenario())
        self.assertIn(SessionsState.REFRESHING, [s.state for s in self.seen])
        self.assertEqual(SessionsState.READY, snapshot.state)
        self.assertEqual(2, len(snapshot.sessions))
        self.assertEqual(2, self.client.list_sessions.await_count)

    def test_refresh_before_first_load_stays_loading(self) -> None:
        self.client.list_sessions.side_effect = [Result.success((_OPUS,))]
        snapshot = asyncio.run(self.controller.refresh())

        self.assertNotIn(SessionsState.REFRESHING, [s.state for s in self.seen])
        self.assertEqual([SessionsState.LOADING, SessionsState.READY], [s.state for s in self.seen])
        self.assertEqual(SessionsState.READY, snapshot.state)
        self.assertEqual((_OPUS,), snapshot.sessions)

    def test_refresh_failure_keeps_stale_sessions(self) -> None:
        self.client.list_sessions.side_effect = [Result.success((_OPUS,)), Result.failure(_OUTAGE)]

        async def scenario() -> SessionsSnapshot:
            await self.controller.mount()
            return await self.controller.refresh()

        snapshot = asyncio.run(scenario())
        self.assertEqual(SessionsState.READY, snapshot.state)
        self.assertEqual((_OPUS,), snapshot.sessions)
        self.assertEqual(_OUTAGE, snapshot.error)

    def test_history_loads_for_row(self) -> None:
        messages = (Message(MessageRole.USER, "hi", 1), Message(MessageRole.ASSISTANT, "hello", 2))
        self.client.get_history.side_effect = [Result.success(messages)]
        snapshot = asyncio.run(self.controller.load_history("main"))

        self.assertEqual(HistoryState.READY, snapshot.history.state)
        self.assertEqual(messages, snapshot.history.messages)
        self.assertIn(HistoryState.LOADING, [s.history.state for s in self.seen if s.history])
        self.client.get_history.assert_awaited_once_with("main", 20)

    def test_history_failure_is_scoped_to_view(self) -> None:
        missing = GatewayError(GatewayErrorKind.SESSION_NOT_FOUND, "HTTP 404")
        self.client.get_history.side_effect = [Result.failure(missing)]
        snapshot = asyncio.run(self.controller.load_history("ghost", 5))
        self.assertEqual(missing, snapshot.history.error)
        self.assertIsNone(snapshot.error)
        self.client.get_history.assert_awaited_once_with("ghost", 5)

    def test_close_history(self) -> None:
        self.client.get_history.side_effect = [Result.success(())]
        asyncio.run(self.controller.load_history("main"))
        self.assertIsNone(self.controller.close_history().history)

    def test_model_switch_success_invalidates_and_refreshes_once(self) -> None:
        self.client.list_sessions.side_effect = [Result.success((_OPUS,)), Result.success((_SONNET,))]
        self.client.set_model.side_effect = [Result.success(True)]

        async def scenario() -> SessionsSnapshot:
            await self.controller.mount()
            return await self.controller.switch_model("main")

        with patch.object(self.cache, "invalidate", wraps=self.cache.invalidate) as invalidate:
            snapshot = asyncio.run(scenario())

        self.client.set_model.assert_awaited_once_with("main", "sonnet")
        invalidate.assert_called_once_with()
        self.assertEqual(2, self.client.list_sessions.await_count)
        self.assertEqual((_SONNET,), snapshot.sessions)
        self.assertEqual(frozenset(), snapshot.switching)
        self.assertNotIn("main", snapshot.row_errors)
        self.assertTrue(any("main" in s.switching for s in self.seen))

    def test_model_switch_failure_is_row_scoped(self) -> None:
        rejected = GatewayError(GatewayErrorKind.INVALID_MODEL, "HTTP 400: unknown model", status_code=400)
        self.client.list_sessions.side_effect = [Result.success((_OPUS, _OTHER))]
        self.client.set_model.side_effect = [Result.failure(rejected)]

        async def scenario() -> SessionsSnapshot:
            await self.controller.mount()
            return await self.controller.switch_model("main")

        with patch.object(self.cache, "invalidate", wraps=self.cache.invalidate) as invalidate:
            snapshot = asyncio.run(scenario())

        invalidate.assert_not_called()
        self.assertEqual(1, self.client.list_sessions.await_count)
        self.assertEqual(SessionsState.READY, snapshot.state)
        self.assertEqual((_OPUS, _OTHER), snapshot.sessions)
        self.assertIsNone(snapshot.error)
        self.assertEqual(rejected, snapshot.row_errors["main"])
        self.assertEqual(frozenset(), snapshot.switching)

    def test_model_switch_rejected_body_is_row_error(self) -> None:
        self.client.list_sessions.side_effect = [Result.success((_SONNET,))]
        self.client.set_model.side_effect = [Result.success(False)]

        async def scenario() -> SessionsSnapshot:
            await self.controller.mount()
            return await self.controller.switch_model("main")

        snapshot = asyncio.run(scenario())
        self.client.set_model.assert_awaited_once_with("main", "opus")
        self.assertEqual(GatewayErrorKind.UNKNOWN, snapshot.row_errors["main"].kind)

    def test_model_switch_not_offered_for_other_models(self) -> None:
        self.client.list_sessions.side_effect = [Result.success((_OTHER,))]

        async def scenario() -> SessionsSnapshot:
            await self.controller.mount()
            return await self.controller.switch_model("gpt")

        snapshot = asyncio.run(scenario())
        self.client.set_model.assert_not_awaited()
        self.assertEqual(GatewayErrorKind.INVALID_MODEL, snapshot.row_errors["gpt"].kind)

    def test_superseded_refresh_is_discarded(self) -> None:
        release_first = asyncio.Event()
        calls = {"count": 0}

        async def list_sessions(limit):
            calls["count"] += 1
            if calls["count"] == 1:
                await release_first.wait()
                return Result.success((_OTHER,))
            return Result.success((_OPUS,))

        self.client.list_sessions.side_effect = list_sessions

        async def scenario() -> SessionsSnapshot:
            first = asyncio.create_task(self.controller.refresh())
            await asyncio.sleep(0)
            second = await self.controller.refresh()
            self.assertEqual((_OPUS,), second.sessions)
            release_first.set()
            return await first

        snapshot = asyncio.run(scenario())
        self.assertEqual((_OPUS,), snapshot.sessions)
        self.assertEqual((_OPUS,), self.controller.snapshot.sessions)


if __name__ == "__main__":
    unittest.main()
