from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable

from finexa.domain.sync_errors import InvalidSyncTransition
from finexa.domain.sync_models import SyncState, SyncStatus

logger = logging.getLogger(__name__)

SyncStateListener = Callable[[SyncState], None]

_ALLOWED: dict[str, frozenset[SyncStatus]] = {
    "begin_sync": frozenset({"offline", "online", "error"}),
    "finish_online": frozenset({"syncing"}),
    "finish_error": frozenset({"syncing"}),
}


class SyncStatusModel:
    """Observable holder of the current ``SyncState``.

    Every transition publishes a new immutable state to the subscribers. A
    listener that raises is logged and skipped so the remaining listeners and
    the sync cycle itself keep running.
    """

    def __init__(self, initial: SyncState | None = None) -> None:
        self._state = initial or SyncState()
        self._listeners: list[SyncStateListener] = []

    @property
    def state(self) -> SyncState:
        return self._state

    def subscribe(self, listener: SyncStateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def begin_sync(self) -> SyncState:
        self._check("begin_sync")
        return self._publish(replace(self._state, status="syncing", error=None))

    def finish_online(self, *, last_synced: str, pending_changes: int) -> SyncState:
        self._check("finish_online")
        return self._publish(
            SyncState(status="online", last_synced=last_synced, pending_changes=pending_changes, error=None)
        )

    def finish_error(self, message: str, *, pending_changes: int) -> SyncState:
        self._check("finish_error")
        return self._publish(replace(self._state, status="error", error=message, pending_changes=pending_changes))

    def force_offline(self, *, pending_changes: int | None = None) -> SyncState:
        pending = self._state.pending_changes if pending_changes is None else pending_changes
        return self._publish(replace(self._state, status="offline", error=None, pending_changes=pending))

    def update_pending(self, pending_changes: int) -> SyncState:
        if pending_changes == self._state.pending_changes:
            return self._state
        return self._publish(replace(self._state, pending_changes=pending_changes))

    def _check(self, transition: str) -> None:
        if self._state.status not in _ALLOWED[transition]:
            raise InvalidSyncTransition(f"Cannot {transition} while {self._state.status}")

    def _publish(self, state: SyncState) -> SyncState:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("sync_state_listener_failed status=%s", state.status)
        return state
