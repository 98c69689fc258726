from __future__ import annotations

import json

import gspread
from google.auth.exceptions import DefaultCredentialsError, GoogleAuthError, RefreshError, TransportError

from finexa.domain.sync_errors import (
    RemoteAuthError,
    RemoteError,
    RemoteNotFoundError,
    RemotePermissionError,
    RemoteRateLimitError,
    RemoteUnavailableError,
)

RATE_LIMIT_MESSAGE = "Google Sheets rate limit reached. Wait a minute and retry."


def extract_response_status_code(ex: Exception) -> int | None:
    response = getattr(ex, "response", None)
    return getattr(response, "status_code", None)


def _extract_api_error_text(ex: gspread.exceptions.APIError) -> str:
    response = getattr(ex, "response", None)
    if response is not None:
        text = getattr(response, "text", "")
        if text:
            return text
    return str(ex)


def _is_rate_limited(text_lower: str, status_code: int | None) -> bool:
    if status_code in {429, 500, 503}:
        return True
    return any(
        token in text_lower
        for token in (
            "[429]",
            "resource_exhausted",
            "rate_limit_exceeded",
            "quota exceeded",
        )
    )


def classify_api_error(text_lower: str, status_code: int | None) -> RemoteError:
    if _is_rate_limited(text_lower, status_code):
        return RemoteRateLimitError(RATE_LIMIT_MESSAGE)
    if status_code == 401 or "[401]" in text_lower or "unauthenticated" in text_lower:
        return RemoteAuthError("The remote session is not authenticated.")
    if "google sheets api has not been used" in text_lower or "it is disabled" in text_lower:
        return RemotePermissionError("The Google Sheets API is not enabled for this project.")
    if status_code == 404 or "[404]" in text_lower or "requested entity was not found" in text_lower:
        return RemoteNotFoundError("The spreadsheet or worksheet does not exist.")
    if status_code == 403 or "[403]" in text_lower or "permission_denied" in text_lower:
        return RemotePermissionError("The spreadsheet is not shared with the service account.")
    return RemoteError(text_lower.strip() or "Unknown Google Sheets error")


def map_gspread_exception(ex: Exception) -> RemoteError:
    if isinstance(ex, RemoteError):
        return ex
    if isinstance(ex, gspread.exceptions.APIError):
        return classify_api_error(_extract_api_error_text(ex).lower(), extract_response_status_code(ex))
    if isinstance(ex, (gspread.exceptions.SpreadsheetNotFound, gspread.exceptions.WorksheetNotFound)):
        return RemoteNotFoundError(f"Not found in Google Sheets: {ex}")
    if isinstance(ex, FileNotFoundError):
        path = getattr(ex, "filename", None)
        return RemoteAuthError(f"credentials.json not found at {path}." if path else "credentials.json not found.")
    if isinstance(ex, (json.JSONDecodeError, DefaultCredentialsError, RefreshError)):
        return RemoteAuthError("The service account credentials are not valid.")
    if isinstance(ex, TransportError):
        return RemoteUnavailableError(f"Google services unreachable: {ex}")
    if isinstance(ex, (TimeoutError, ConnectionError, OSError)):
        return RemoteUnavailableError(f"Remote store unreachable: {ex}")
    if isinstance(ex, (gspread.exceptions.GSpreadException, GoogleAuthError)):
        return RemoteError(str(ex) or ex.__class__.__name__)
    return RemoteError(f"Unexpected remote failure: {ex}")
