from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any, Callable

from finexa.core.errors import PersistenceError
from finexa.domain.ports import LocalRecordStorePort

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "finexa"

_UPSERT_SQL = """
    INSERT INTO local_store (namespace, key, value, updated_at)
    VALUES (?, ?, ?, ?)
    ON CONFLICT (namespace, key) DO UPDATE SET
        value = excluded.value,
        updated_at = excluded.updated_at
"""


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class SQLiteLocalRecordStore(LocalRecordStorePort):
    """Namespaced key/value store of JSON documents, one row per dataset.

    Reads never raise: a missing key, a corrupt document or a SQLite failure
    all degrade to the caller's default. Each write is a single statement in
    its own transaction, so a dataset is either fully replaced or untouched.
    """

    def __init__(
        self,
        connection: sqlite3.Connection,
        *,
        namespace: str = DEFAULT_NAMESPACE,
        clock: Callable[[], str] = _utc_now_iso,
    ) -> None:
        self._connection = connection
        self._namespace = namespace
        self._clock = clock

    @property
    def namespace(self) -> str:
        return self._namespace

    def get(self, dataset_key: str, default: Any = None) -> Any:
        try:
            row = self._connection.execute(
                "SELECT value FROM local_store WHERE namespace = ? AND key = ?",
                (self._namespace, dataset_key),
            ).fetchone()
        except sqlite3.Error:
            logger.warning("local_store_read_failed key=%s", dataset_key, exc_info=True)
            return default
        if row is None or not row[0]:
            return default
        try:
            return json.loads(row[0])
        except (TypeError, ValueError):
            logger.warning("local_store_corrupt_value key=%s", dataset_key)
            return default

    def set(self, dataset_key: str, records: Any) -> None:
        payload = self._serialize(dataset_key, records)
        try:
            with self._connection:
                self._connection.execute(_UPSERT_SQL, (self._namespace, dataset_key, payload, self._clock()))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not persist '{dataset_key}': {exc}") from exc

    def remove(self, key: str) -> None:
        try:
            with self._connection:
                self._connection.execute(
                    "DELETE FROM local_store WHERE namespace = ? AND key = ?",
                    (self._namespace, key),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not remove '{key}': {exc}") from exc

    def clear(self) -> None:
        try:
            with self._connection:
                self._connection.execute("DELETE FROM local_store WHERE namespace = ?", (self._namespace,))
        except sqlite3.Error as exc:
            raise PersistenceError(f"Could not clear namespace '{self._namespace}': {exc}") from exc

    def export_all(self) -> str:
        rows = self._connection.execute(
            "SELECT key, value FROM local_store WHERE namespace = ? ORDER BY key",
            (self._namespace,),
        ).fetchall()
        data: dict[str, Any] = {}
        for key, value in rows:
            try:
                data[key] = json.loads(value)
            except (TypeError, ValueError):
                data[key] = value
        return json.dumps(data, indent=2, ensure_ascii=False)

    def import_all(self, snapshot: str) -> bool:
        try:
            data = json.loads(snapshot)
        except (TypeError, ValueError):
            logger.warning("local_store_import_rejected reason=invalid_json")
            return False
        if not isinstance(data, dict):
            logger.warning("local_store_import_rejected reason=not_an_object")
            return False

        now = self._clock()
        try:
            rows = [
                (self._namespace, str(key), json.dumps(value, ensure_ascii=False), now)
                for key, value in data.items()
            ]
        except (TypeError, ValueError):
            logger.warning("local_store_import_rejected reason=unserializable_value")
            return False

        try:
            with self._connection:
                self._connection.executemany(_UPSERT_SQL, rows)
        except sqlite3.Error:
            logger.exception("local_store_import_failed")
            return False
        logger.info("local_store_import_ok keys=%s", len(rows))
        return True

    @staticmethod
    def _serialize(dataset_key: str, records: Any) -> str:
        try:
            return json.dumps(records, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"'{dataset_key}' is not JSON serializable: {exc}") from exc
