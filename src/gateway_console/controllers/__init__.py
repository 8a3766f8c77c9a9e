from gateway_console.controllers.dispatch import (
    DispatchController,
    DispatchSnapshot,
    DispatchState,
    Draft,
    effective_mode,
)
from gateway_console.controllers.sessions import (
    HistoryState,
    HistoryView,
    SessionsController,
    SessionsSnapshot,
    SessionsState,
    activity_label,
    model_override_target,
)

__all__ = [
    "DispatchController",
    "DispatchSnapshot",
    "DispatchState",
    "Draft",
    "HistoryState",
    "HistoryView",
    "SessionsController",
    "SessionsSnapshot",
    "SessionsState",
    "activity_label",
    "effective_mode",
    "model_override_target",
]
