from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence

from finexa.application.sync_registry import SYNC_DESCRIPTORS, SyncDescriptor
from finexa.application.sync_status import SyncStatusModel
from finexa.bootstrap.logging import log_operational_error
from finexa.core.errors import AppError
from finexa.core.observability import OperationContext, log_event
from finexa.domain.ports import LocalRecordStorePort, RemoteStorePort
from finexa.domain.records import is_pending_raw
from finexa.domain.sync_models import DatasetOutcome, SyncContext, SyncCycleReport, SyncPhase, SyncResult

logger = logging.getLogger(__name__)


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class SyncOrchestrator:
    """Runs pull-then-push cycles between the local store and the remote store.

    At most one cycle runs at a time; a trigger that finds the guard held gets
    the not-ready result and leaves the running cycle alone. Pulls for every
    dataset finish before the first push starts. A dataset that fails in
    either phase is recorded in the cycle report and the loop moves on.
    """

    def __init__(
        self,
        store: LocalRecordStorePort,
        status: SyncStatusModel,
        remote: RemoteStorePort | None = None,
        *,
        descriptors: Sequence[SyncDescriptor] = SYNC_DESCRIPTORS,
        clock: Callable[[], str] = _utc_now_iso,
    ) -> None:
        self._store = store
        self._status = status
        self._remote = remote
        self._descriptors = tuple(descriptors)
        self._clock = clock
        self._guard = threading.Lock()

    @property
    def has_remote(self) -> bool:
        return self._remote is not None

    @property
    def is_busy(self) -> bool:
        return self._guard.locked()

    def attach_remote(self, remote: RemoteStorePort | None) -> None:
        self._remote = remote

    def calculate_pending_changes(self) -> int:
        return sum(
            1
            for descriptor in self._descriptors
            for raw in self._read_dataset(descriptor.local_key)
            if is_pending_raw(raw)
        )

    async def run_cycle(self, context: SyncContext) -> SyncResult:
        if not context.can_sync or self._remote is None:
            logger.info("sync_not_ready cloud_mode=%s has_remote=%s", context.is_cloud_mode, self.has_remote)
            return SyncResult.not_ready()
        if not self._guard.acquire(blocking=False):
            logger.info("sync_skipped_busy")
            return SyncResult.not_ready()
        try:
            with OperationContext("sync_cycle") as operation:
                return await self._run_guarded(self._remote, str(context.owner_id), operation.correlation_id)
        finally:
            self._guard.release()

    async def _run_guarded(self, remote: RemoteStorePort, owner_id: str, cycle_id: str) -> SyncResult:
        started_at = self._clock()
        self._status.begin_sync()
        log_event(logger, "sync_started", {"datasets": [item.local_key for item in self._descriptors]}, cycle_id)
        outcomes: list[DatasetOutcome] = []
        try:
            for descriptor in self._descriptors:
                outcomes.append(await self._pull(remote, descriptor, owner_id))
            for descriptor in self._descriptors:
                outcomes.append(await self._push(remote, descriptor, owner_id))
        except Exception as exc:
            log_operational_error(
                logger,
                "Sync cycle aborted",
                exc=exc,
                extra={"correlation_id": cycle_id, "completed_operations": len(outcomes)},
            )
            report = SyncCycleReport(cycle_id, started_at, self._clock(), tuple(outcomes))
            message = str(exc) or "Sync failed"
            self._finish(report, error=message)
            return SyncResult(success=False, error=message, report=report)

        report = SyncCycleReport(cycle_id, started_at, self._clock(), tuple(outcomes))
        message = report.failure_message()
        self._finish(report, error=message)
        return SyncResult(success=message is None, error=message, report=report)

    def _finish(self, report: SyncCycleReport, *, error: str | None) -> None:
        pending = self.calculate_pending_changes()
        if self._status.state.status != "syncing":
            # The session left cloud mode while the cycle was running.
            self._status.update_pending(pending)
        elif error is None:
            self._status.finish_online(last_synced=report.finished_at, pending_changes=pending)
        else:
            self._status.finish_error(error, pending_changes=pending)
        log_event(
            logger,
            "sync_finished",
            {
                "ok": error is None,
                "pulled": report.pulled,
                "pushed": report.pushed,
                "failures": len(report.failures),
                "pending_changes": pending,
            },
            report.cycle_id,
        )

    async def _pull(self, remote: RemoteStorePort, descriptor: SyncDescriptor, owner_id: str) -> DatasetOutcome:
        try:
            rows = await remote.table(descriptor.remote_table).select(owner_id)
            if not rows:
                # An empty remote never wipes local data that was not pushed yet.
                return DatasetOutcome(descriptor.local_key, "pull", ok=True, rows=0)
            records = [descriptor.from_remote(row).to_local() for row in rows]
            self._store.set(descriptor.local_key, records)
        except Exception as exc:
            return self._failed(descriptor, "pull", exc)
        logger.info("sync_pull_ok dataset=%s rows=%s", descriptor.local_key, len(records))
        return DatasetOutcome(descriptor.local_key, "pull", ok=True, rows=len(records))

    async def _push(self, remote: RemoteStorePort, descriptor: SyncDescriptor, owner_id: str) -> DatasetOutcome:
        try:
            snapshot = {
                str(raw["id"]): dict(raw)
                for raw in self._read_dataset(descriptor.local_key)
                if is_pending_raw(raw) and raw.get("id") not in (None, "")
            }
            if not snapshot:
                return DatasetOutcome(descriptor.local_key, "push", ok=True, rows=0)
            synced_at = self._clock()
            rows = [descriptor.to_remote(descriptor.parse_local(raw), owner_id, synced_at) for raw in snapshot.values()]
            await remote.table(descriptor.remote_table).upsert(rows, on_conflict="id")
            marked = self._mark_synced(descriptor.local_key, snapshot, synced_at, owner_id)
        except Exception as exc:
            return self._failed(descriptor, "push", exc)
        logger.info("sync_push_ok dataset=%s rows=%s marked=%s", descriptor.local_key, len(rows), marked)
        return DatasetOutcome(descriptor.local_key, "push", ok=True, rows=len(rows))

    def _mark_synced(self, dataset_key: str, pushed: Mapping[str, Mapping[str, Any]], synced_at: str, owner_id: str) -> int:
        """Stamps ``synced_at`` on records still equal to what was pushed.

        The dataset is re-read after the upsert: records edited, added or
        removed meanwhile keep their current content and stay pending.
        """
        current = self._read_dataset(dataset_key)
        marked = 0
        updated: list[Any] = []
        for raw in current:
            record_id = str(raw.get("id")) if isinstance(raw, Mapping) else None
            if record_id is not None and pushed.get(record_id) == raw:
                stamped = {key: value for key, value in raw.items() if key != "last_synced_at"}
                stamped.update({"user_id": owner_id, "synced_at": synced_at})
                updated.append(stamped)
                marked += 1
            else:
                updated.append(raw)
        if marked:
            self._store.set(dataset_key, updated)
        return marked

    def _read_dataset(self, dataset_key: str) -> list[Any]:
        records = self._store.get(dataset_key, [])
        if records is None:
            return []
        if not isinstance(records, list):
            logger.warning("dataset_not_a_list key=%s type=%s", dataset_key, type(records).__name__)
            return []
        return records

    @staticmethod
    def _failed(descriptor: SyncDescriptor, phase: SyncPhase, exc: Exception) -> DatasetOutcome:
        log_event(
            logger,
            "sync_dataset_failed",
            {"dataset": descriptor.local_key, "phase": phase, "error": str(exc), "error_type": type(exc).__name__},
        )
        if isinstance(exc, AppError):
            logger.warning("sync_%s_failed dataset=%s error=%s", phase, descriptor.local_key, exc)
        else:
            log_operational_error(
                logger,
                f"Unexpected {phase} failure",
                exc=exc,
                extra={"dataset": descriptor.local_key, "phase": phase},
            )
        return DatasetOutcome(descriptor.local_key, phase, ok=False, error=str(exc) or type(exc).__name__)
