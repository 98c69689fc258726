from __future__ import annotations

import asyncio
import logging
from typing import Callable

from finexa.application.sync_orchestrator import SyncOrchestrator
from finexa.application.sync_status import SyncStateListener, SyncStatusModel
from finexa.bootstrap.logging import log_operational_error
from finexa.core.errors import ValidationError
from finexa.domain.ports import SessionPort, SyncNotifierPort
from finexa.domain.sync_models import SyncContext, SyncResult, SyncState

logger = logging.getLogger(__name__)

SYNC_STARTED_MESSAGE = "Syncing data..."
SYNC_SUCCEEDED_MESSAGE = "Sync completed successfully"
SYNC_FAILED_MESSAGE = "Sync failed"


class LoggingNotifier(SyncNotifierPort):
    """Default notifier when no UI is attached: toasts become log lines."""

    def info(self, message: str) -> None:
        logger.info("notify_info %s", message)

    def success(self, message: str) -> None:
        logger.info("notify_success %s", message)

    def error(self, message: str) -> None:
        logger.warning("notify_error %s", message)


class SyncService:
    """Status and trigger API the UI talks to."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        status: SyncStatusModel,
        session: SessionPort,
        notifier: SyncNotifierPort | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._status = status
        self._session = session
        self._notifier = notifier or LoggingNotifier()
        self._unsubscribe_session = session.subscribe(self._on_session_changed)
        self._on_session_changed(session.current_context())

    @property
    def sync_state(self) -> SyncState:
        return self._status.state

    def subscribe(self, listener: SyncStateListener) -> Callable[[], None]:
        return self._status.subscribe(listener)

    def calculate_pending_changes(self) -> int:
        return self._orchestrator.calculate_pending_changes()

    def refresh_pending(self) -> SyncState:
        return self._status.update_pending(self.calculate_pending_changes())

    async def trigger_sync(self) -> SyncResult:
        self._notify("info", SYNC_STARTED_MESSAGE)
        result = await self._run("manual")
        if result.success:
            self._notify("success", SYNC_SUCCEEDED_MESSAGE)
        else:
            self._notify("error", result.error or SYNC_FAILED_MESSAGE)
        return result

    async def background_sync(self) -> SyncResult:
        return await self._run("background")

    async def run_periodic_sync(self, interval_seconds: float, stop_event: asyncio.Event) -> int:
        """Runs background cycles every ``interval_seconds`` until ``stop_event`` is set.

        Returns the number of cycles started.
        """
        if interval_seconds <= 0:
            raise ValidationError("interval_seconds must be positive")
        cycles = 0
        while not stop_event.is_set():
            await self.background_sync()
            cycles += 1
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("periodic_sync_stopped cycles=%s", cycles)
        return cycles

    def close(self) -> None:
        self._unsubscribe_session()

    async def _run(self, trigger: str) -> SyncResult:
        context = self._session.current_context()
        try:
            return await self._orchestrator.run_cycle(context)
        except Exception as exc:
            log_operational_error(logger, "Sync trigger failed", exc=exc, extra={"trigger": trigger})
            return SyncResult(success=False, error=str(exc) or SYNC_FAILED_MESSAGE)

    def _on_session_changed(self, context: SyncContext) -> None:
        pending = self.calculate_pending_changes()
        if not context.can_sync:
            self._status.force_offline(pending_changes=pending)
        else:
            self._status.update_pending(pending)

    def _notify(self, kind: str, message: str) -> None:
        try:
            getattr(self._notifier, kind)(message)
        except Exception:
            logger.exception("sync_notifier_failed kind=%s", kind)
