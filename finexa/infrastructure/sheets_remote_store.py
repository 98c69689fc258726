from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence

from finexa.domain.ports import Row
from finexa.domain.sync_errors import RemoteNotFoundError
from finexa.infrastructure.sheets_client import SheetsClient
from finexa.infrastructure.sheets_rows import (
    dedupe_by_key,
    index_rows_by_key,
    merge_headers,
    normalize_cell,
    normalize_rows,
    row_range,
    row_to_cells,
)

logger = logging.getLogger(__name__)

OWNER_COLUMN = "user_id"
ID_COLUMN = "id"


class SheetsRemoteTable:
    """One worksheet seen as a table: header row of columns, one row per record."""

    def __init__(self, client: SheetsClient, name: str) -> None:
        self._client = client
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def select(self, owner_id: str) -> list[Row]:
        return await asyncio.to_thread(self._select_blocking, owner_id)

    async def upsert(self, rows: Sequence[Row], *, on_conflict: str = ID_COLUMN) -> None:
        if not rows:
            return
        await asyncio.to_thread(self._upsert_blocking, list(rows), on_conflict)

    async def update(self, row_id: str, patch: Row) -> None:
        await asyncio.to_thread(self._update_blocking, str(row_id), dict(patch))

    async def delete(self, row_id: str) -> None:
        await asyncio.to_thread(self._delete_blocking, str(row_id))

    def _select_blocking(self, owner_id: str) -> list[Row]:
        values = self._client.read_all_values(self._name)
        owner = normalize_cell(owner_id)
        rows = [dict(payload) for _, payload in normalize_rows(values) if payload.get(OWNER_COLUMN) == owner]
        logger.debug("sheets_select table=%s rows=%s", self._name, len(rows))
        return rows

    def _upsert_blocking(self, rows: list[Row], key: str) -> None:
        values = self._client.read_all_values(self._name)
        current_headers = values[0] if values else []
        headers = self._sync_headers(current_headers, [column for row in rows for column in row])
        index = index_rows_by_key(normalize_rows(values), key)

        updates: list[dict[str, Any]] = []
        appends: list[list[Any]] = []
        for row in dedupe_by_key(rows, key):
            cells = row_to_cells(headers, row)
            row_number = index.get(normalize_cell(row.get(key)))
            if row_number is None:
                appends.append(cells)
            else:
                updates.append({"range": row_range(row_number, len(headers)), "values": [cells]})

        self._client.batch_update(self._name, updates)
        self._client.append_rows(self._name, appends)
        logger.info("sheets_upsert table=%s updated=%s appended=%s", self._name, len(updates), len(appends))

    def _update_blocking(self, row_id: str, patch: Row) -> None:
        values = self._client.read_all_values(self._name)
        rows = normalize_rows(values)
        row_number = index_rows_by_key(rows, ID_COLUMN).get(normalize_cell(row_id))
        if row_number is None:
            raise RemoteNotFoundError(f"Row '{row_id}' does not exist in '{self._name}'")
        current = next(payload for number, payload in rows if number == row_number)
        merged: dict[str, Any] = {**current, **patch, ID_COLUMN: current[ID_COLUMN]}
        headers = self._sync_headers(values[0], patch.keys())
        self._client.batch_update(
            self._name,
            [{"range": row_range(row_number, len(headers)), "values": [row_to_cells(headers, merged)]}],
        )

    def _delete_blocking(self, row_id: str) -> None:
        values = self._client.read_all_values(self._name)
        row_number = index_rows_by_key(normalize_rows(values), ID_COLUMN).get(normalize_cell(row_id))
        if row_number is None:
            logger.debug("sheets_delete_missing table=%s id=%s", self._name, row_id)
            return
        self._client.delete_row(self._name, row_number)

    def _sync_headers(self, current: Sequence[Any], columns: Any) -> list[str]:
        headers = merge_headers(current, columns)
        if headers != merge_headers(current, ()):
            self._client.write_header(self._name, headers)
        return headers


class SheetsRemoteStore:
    def __init__(self, client: SheetsClient) -> None:
        self._client = client
        self._tables: dict[str, SheetsRemoteTable] = {}

    def table(self, name: str) -> SheetsRemoteTable:
        if name not in self._tables:
            self._tables[name] = SheetsRemoteTable(self._client, name)
        return self._tables[name]

    async def ensure_schema(self, schema: Mapping[str, Sequence[str]]) -> list[str]:
        return await asyncio.to_thread(self._ensure_schema_blocking, dict(schema))

    def _ensure_schema_blocking(self, schema: dict[str, Sequence[str]]) -> list[str]:
        """Creates missing worksheets and header columns. Returns the tables touched."""
        existing = self._client.worksheet_titles()
        touched: list[str] = []
        for name, columns in schema.items():
            if name not in existing:
                self._client.create_worksheet(name, len(columns))
                self._client.write_header(name, list(columns))
                touched.append(name)
                continue
            values = self._client.read_all_values(name)
            current = values[0] if values else []
            headers = merge_headers(current, columns)
            if headers != merge_headers(current, ()):
                self._client.write_header(name, headers)
                touched.append(name)
        logger.info("sheets_schema_ready touched=%s", touched)
        return touched
