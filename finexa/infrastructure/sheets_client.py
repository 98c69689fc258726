from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable, TypeVar

import gspread
from google.auth.exceptions import GoogleAuthError

from finexa.bootstrap.logging import log_operational_error
from finexa.core.observability import get_correlation_id
from finexa.domain.sync_errors import RemotePermissionError, RemoteRateLimitError
from finexa.infrastructure.sheets_errors import RATE_LIMIT_MESSAGE, map_gspread_exception
from finexa.infrastructure.sheets_rows import read_backoff_seconds, write_backoff_seconds

logger = logging.getLogger(__name__)

_MAX_RETRIES = 5
_WRITE_MAX_RETRIES = 5
_BASE_BACKOFF_SECONDS = 1
_NEW_WORKSHEET_ROWS = 1000

T = TypeVar("T")

_OPEN_ERRORS = (
    gspread.exceptions.GSpreadException,
    GoogleAuthError,
    FileNotFoundError,
    json.JSONDecodeError,
    OSError,
)


class SheetsClient:
    """Blocking gspread session bound to one spreadsheet.

    Every call goes through the rate-limit retry loop and surfaces failures as
    the ``RemoteError`` family. Worksheet handles are cached, values never are:
    the sync cycle always needs the current remote contents.
    """

    def __init__(
        self,
        credentials_path: Path | str,
        spreadsheet_id: str,
        *,
        client_factory: Callable[..., Any] = gspread.service_account,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        self._credentials_path = Path(credentials_path)
        self._spreadsheet_id = spreadsheet_id
        self._client_factory = client_factory
        self._sleep = sleeper
        self._spreadsheet: Any | None = None
        self._worksheet_cache: dict[str, Any] = {}
        self._lock = threading.Lock()

    @property
    def spreadsheet_id(self) -> str:
        return self._spreadsheet_id

    def spreadsheet(self) -> Any:
        with self._lock:
            if self._spreadsheet is None:
                self._spreadsheet = self._open()
            return self._spreadsheet

    def _open(self) -> Any:
        logger.info("Connecting to Google Sheets spreadsheet_id=%s", self._spreadsheet_id)
        try:
            client = self._client_factory(filename=str(self._credentials_path))
        except _OPEN_ERRORS as exc:
            raise map_gspread_exception(exc) from exc
        return self._with_rate_limit_retry(
            "open_spreadsheet",
            lambda: client.open_by_key(self._spreadsheet_id),
        )

    def get_worksheet(self, name: str) -> Any:
        if name in self._worksheet_cache:
            return self._worksheet_cache[name]
        spreadsheet = self.spreadsheet()
        worksheet = self._with_rate_limit_retry(f"spreadsheet.worksheet({name})", lambda: spreadsheet.worksheet(name))
        self._worksheet_cache[name] = worksheet
        return worksheet

    def worksheet_titles(self) -> set[str]:
        spreadsheet = self.spreadsheet()
        worksheets = self._with_rate_limit_retry("spreadsheet.worksheets", spreadsheet.worksheets)
        for worksheet in worksheets:
            self._worksheet_cache.setdefault(worksheet.title, worksheet)
        return {worksheet.title for worksheet in worksheets}

    def create_worksheet(self, name: str, column_count: int) -> Any:
        spreadsheet = self.spreadsheet()
        worksheet = self._with_write_retry(
            f"spreadsheet.add_worksheet({name})",
            lambda: spreadsheet.add_worksheet(title=name, rows=_NEW_WORKSHEET_ROWS, cols=max(column_count, 1)),
        )
        self._worksheet_cache[name] = worksheet
        return worksheet

    def read_all_values(self, name: str) -> list[list[str]]:
        worksheet = self.get_worksheet(name)
        return self._with_rate_limit_retry(f"worksheet.get_all_values({name})", worksheet.get_all_values)

    def write_header(self, name: str, headers: list[str]) -> None:
        worksheet = self.get_worksheet(name)
        self._with_write_retry(
            f"worksheet.update({name})",
            lambda: worksheet.update(range_name="A1", values=[headers], value_input_option="RAW"),
        )

    def batch_update(self, name: str, data: list[dict[str, Any]]) -> None:
        if not data:
            return
        worksheet = self.get_worksheet(name)
        self._with_write_retry(
            f"worksheet.batch_update({name})",
            lambda: worksheet.batch_update(data, value_input_option="RAW"),
        )

    def append_rows(self, name: str, rows: list[list[Any]]) -> None:
        if not rows:
            return
        worksheet = self.get_worksheet(name)
        self._with_write_retry(
            f"worksheet.append_rows({name})",
            lambda: worksheet.append_rows(rows, value_input_option="RAW"),
        )

    def delete_row(self, name: str, row_number: int) -> None:
        worksheet = self.get_worksheet(name)
        self._with_write_retry(f"worksheet.delete_rows({name})", lambda: worksheet.delete_rows(row_number))

    def _with_rate_limit_retry(self, operation_name: str, operation: Callable[[], T]) -> T:
        return self._retry(operation_name, operation, _MAX_RETRIES, lambda attempt: read_backoff_seconds(attempt, _BASE_BACKOFF_SECONDS))

    def _with_write_retry(self, operation_name: str, operation: Callable[[], T]) -> T:
        return self._retry(operation_name, operation, _WRITE_MAX_RETRIES, write_backoff_seconds)

    def _retry(
        self,
        operation_name: str,
        operation: Callable[[], T],
        max_retries: int,
        backoff: Callable[[int], float],
    ) -> T:
        for attempt in range(1, max_retries + 1):
            try:
                return operation()
            except (gspread.exceptions.GSpreadException, GoogleAuthError, OSError) as exc:
                mapped_error = map_gspread_exception(exc)
                if not isinstance(mapped_error, RemoteRateLimitError):
                    if isinstance(mapped_error, RemotePermissionError):
                        self._log_permission_error(mapped_error, operation_name)
                    raise mapped_error from exc
                if attempt >= max_retries:
                    logger.error("Persistent Google Sheets rate limit on %s after %s attempts", operation_name, attempt)
                    raise RemoteRateLimitError(RATE_LIMIT_MESSAGE) from exc
                backoff_seconds = backoff(attempt)
                logger.warning(
                    "Google Sheets rate limit (%s). attempt=%s/%s backoff=%.3fs",
                    operation_name,
                    attempt,
                    max_retries,
                    backoff_seconds,
                )
                self._sleep(backoff_seconds)
        raise RemoteRateLimitError(RATE_LIMIT_MESSAGE)

    def _log_permission_error(self, error: RemotePermissionError, operation_name: str) -> None:
        log_operational_error(
            logger,
            "Sync failed: insufficient Google Sheets permissions",
            exc=error,
            extra={
                "correlation_id": get_correlation_id(),
                "operation": operation_name,
                "spreadsheet_id": self._spreadsheet_id,
            },
        )
