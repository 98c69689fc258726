from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping

from finexa.application.sync_registry import SYNCABLE_DATASETS, descriptor_for
from finexa.core.errors import ValidationError
from finexa.domain.ports import LocalRecordStorePort
from finexa.domain.records import SYNC_META_KEYS, LocalOnly, SyncableRecord
from finexa.domain.sync_errors import RecordShapeError

logger = logging.getLogger(__name__)

_PROTECTED_KEYS = frozenset({"id", "createdAt"}) | SYNC_META_KEYS


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class RecordsService:
    """CRUD over the syncable datasets, plus whole-store backup and restore."""

    def __init__(
        self,
        store: LocalRecordStorePort,
        *,
        on_change: Callable[[], Any] | None = None,
        clock: Callable[[], str] = _utc_now_iso,
        id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._store = store
        self._on_change = on_change
        self._clock = clock
        self._id_factory = id_factory

    def list(self, dataset: str) -> list[SyncableRecord]:
        descriptor = self._descriptor(dataset)
        records: list[SyncableRecord] = []
        for raw in self._raw(dataset):
            try:
                records.append(descriptor.parse_local(raw))
            except RecordShapeError:
                logger.warning("record_skipped dataset=%s reason=invalid_shape", dataset)
        return records

    def get(self, dataset: str, record_id: str) -> SyncableRecord:
        for record in self.list(dataset):
            if record.id == record_id:
                return record
        raise ValidationError(f"No record '{record_id}' in '{dataset}'")

    def add(self, dataset: str, fields: Mapping[str, Any]) -> SyncableRecord:
        descriptor = self._descriptor(dataset)
        payload = {key: value for key, value in fields.items() if key not in _PROTECTED_KEYS}
        payload.update({"id": self._id_factory(), "createdAt": self._clock()})
        record = descriptor.parse_local(payload).with_sync(LocalOnly())
        self._store.set(dataset, [*self._raw(dataset), record.to_local()])
        logger.info("record_added dataset=%s", dataset)
        self._changed()
        return record

    def update(self, dataset: str, record_id: str, changes: Mapping[str, Any]) -> SyncableRecord:
        descriptor = self._descriptor(dataset)
        allowed = {key: value for key, value in changes.items() if key not in _PROTECTED_KEYS}
        raw_records = self._raw(dataset)
        for index, raw in enumerate(raw_records):
            if isinstance(raw, Mapping) and str(raw.get("id")) == record_id:
                updated = descriptor.parse_local(raw).with_changes(allowed)
                raw_records[index] = updated.to_local()
                self._store.set(dataset, raw_records)
                logger.info("record_updated dataset=%s", dataset)
                self._changed()
                return updated
        raise ValidationError(f"No record '{record_id}' in '{dataset}'")

    def delete(self, dataset: str, record_id: str) -> None:
        self._descriptor(dataset)
        raw_records = self._raw(dataset)
        remaining = [raw for raw in raw_records if not (isinstance(raw, Mapping) and str(raw.get("id")) == record_id)]
        if len(remaining) == len(raw_records):
            raise ValidationError(f"No record '{record_id}' in '{dataset}'")
        self._store.set(dataset, remaining)
        logger.info("record_deleted dataset=%s", dataset)
        self._changed()

    def clear_all_data(self) -> None:
        self._store.clear()
        logger.info("local_data_cleared")
        self._changed()

    def export_data(self) -> str:
        return self._store.export_all()

    def import_data(self, payload: str) -> bool:
        imported = self._store.import_all(payload)
        if imported:
            self._changed()
        return imported

    @staticmethod
    def _descriptor(dataset: str):
        if dataset not in SYNCABLE_DATASETS:
            raise ValidationError(f"Unknown dataset '{dataset}'")
        return descriptor_for(dataset)

    def _raw(self, dataset: str) -> list[Any]:
        records = self._store.get(dataset, [])
        return list(records) if isinstance(records, list) else []

    def _changed(self) -> None:
        if self._on_change is None:
            return
        try:
            self._on_change()
        except Exception:
            logger.exception("records_change_listener_failed")
