from __future__ import annotations

import asyncio
import logging
import traceback
from datetime import datetime, timezone
from typing import Any, Callable

from PySide6.QtCore import QObject, QThread, Signal, Slot

from finexa.application.sync_service import SyncService
from finexa.bootstrap.logging import log_operational_error
from finexa.core.observability import OperationContext, log_event
from finexa.domain.ports import SessionPort
from finexa.domain.sync_models import SyncState
from finexa.ui.controllers.sync_indicator_rules import SyncIndicatorInput, decide_sync_indicator

logger = logging.getLogger(__name__)

_TOAST_TITLE = "Sync"


class _SyncWorker(QObject):
    finished = Signal(object)
    failed = Signal(object)

    def __init__(self, operation: Callable[[], Any], correlation_id: str, operation_name: str) -> None:
        super().__init__()
        self._operation = operation
        self._correlation_id = correlation_id
        self._operation_name = operation_name

    @Slot()
    def run(self) -> None:
        try:
            log_event(logger, "sync_ui_started", {"operation": self._operation_name}, self._correlation_id)
            result = asyncio.run(self._operation())
        except Exception as exc:
            log_operational_error(
                logger,
                "Sync failed",
                exc=exc,
                extra={"operation": self._operation_name, "correlation_id": self._correlation_id},
            )
            self.failed.emit({"error": exc, "details": traceback.format_exc()})
            return
        self.finished.emit(result)


class QtSyncBridge(QObject):
    """Moves state changes and toasts raised on the worker thread to the GUI thread."""

    state_changed = Signal(object)
    notified = Signal(str, str)

    def on_state(self, state: SyncState) -> None:
        self.state_changed.emit(state)

    def info(self, message: str) -> None:
        self.notified.emit("info", message)

    def success(self, message: str) -> None:
        self.notified.emit("success", message)

    def error(self, message: str) -> None:
        self.notified.emit("error", message)


class SyncController:
    def __init__(
        self,
        window,
        sync_service: SyncService,
        session: SessionPort,
        bridge: QtSyncBridge,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.window = window
        self._sync_service = sync_service
        self._session = session
        self._bridge = bridge
        self._clock = clock
        self._sync_thread: QThread | None = None
        self._sync_worker: _SyncWorker | None = None
        bridge.state_changed.connect(self.update_sync_indicator)
        bridge.notified.connect(self._show_toast)
        self._unsubscribe = sync_service.subscribe(bridge.on_state)

    @property
    def sync_in_progress(self) -> bool:
        return self._sync_thread is not None

    def on_sync(self) -> None:
        if self.sync_in_progress:
            return
        if not self._session.current_context().is_cloud_mode:
            return
        self._sync_thread = QThread()
        operation_context = OperationContext("sync_ui")
        self._sync_worker = _SyncWorker(self._sync_service.trigger_sync, operation_context.correlation_id, "trigger_sync")
        self._sync_worker.moveToThread(self._sync_thread)
        self._wire_worker(self._sync_worker, self._sync_thread)
        self._sync_thread.start()

    def _wire_worker(self, worker: _SyncWorker, thread: QThread) -> None:
        thread.started.connect(worker.run)
        for done in (worker.finished, worker.failed):
            done.connect(thread.quit)
            done.connect(worker.deleteLater)
        worker.finished.connect(self._on_sync_finished)
        worker.failed.connect(self._on_sync_failed)
        thread.finished.connect(thread.deleteLater)
        thread.finished.connect(self._clear_thread)

    def update_sync_indicator(self, state: SyncState | None = None) -> None:
        w = self.window
        decision = decide_sync_indicator(
            SyncIndicatorInput(
                state=state or self._sync_service.sync_state,
                is_cloud_mode=self._session.current_context().is_cloud_mode,
                now=self._clock(),
            )
        )
        button = getattr(w, "sync_button", None)
        if button is not None:
            button.setEnabled(decision.enabled)
            button.setText(decision.text)
            button.setToolTip(decision.tooltip)
            button.setProperty("severity", decision.severity)
        badge = getattr(w, "sync_badge", None)
        if badge is not None:
            badge.setVisible(decision.badge is not None)
            badge.setText(decision.badge or "")

    def close(self) -> None:
        self._unsubscribe()

    def _on_sync_finished(self, result) -> None:
        logger.info("sync_ui_finished success=%s", getattr(result, "success", None))
        self.update_sync_indicator()

    def _on_sync_failed(self, payload: dict[str, Any]) -> None:
        error = payload.get("error")
        self._show_toast("error", str(error) or "Sync failed")
        self.update_sync_indicator()

    def _clear_thread(self) -> None:
        self._sync_thread = None
        self._sync_worker = None

    def _show_toast(self, kind: str, message: str) -> None:
        toast = getattr(self.window, "toast", None)
        if toast is None:
            return
        show = getattr(toast, kind, None) or getattr(toast, "info", None)
        if show is not None:
            show(message, title=_TOAST_TITLE)
