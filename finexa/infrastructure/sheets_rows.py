from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

from gspread.utils import rowcol_to_a1


def normalize_cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_headers(headers: Sequence[Any]) -> list[str]:
    normalized: list[str] = []
    for idx, header in enumerate(headers):
        clean = normalize_cell(header)
        normalized.append(clean if clean else f"col_{idx + 1}")
    return normalized


def normalize_payload(headers: Sequence[Any], row: Sequence[Any]) -> dict[str, str]:
    normalized_headers = normalize_headers(headers)
    payload: dict[str, str] = {}
    for idx, header in enumerate(normalized_headers):
        payload[header] = normalize_cell(row[idx] if idx < len(row) else "")
    return payload


def is_non_empty_payload(payload: Mapping[str, Any]) -> bool:
    return any(normalize_cell(value) for value in payload.values())


def normalize_rows(values: Sequence[Sequence[Any]]) -> list[tuple[int, dict[str, str]]]:
    """Pairs each non-empty data row with its 1-based sheet row number."""
    if not values:
        return []
    headers = values[0]
    rows: list[tuple[int, dict[str, str]]] = []
    for row_number, row in enumerate(values[1:], start=2):
        payload = normalize_payload(headers, row)
        if is_non_empty_payload(payload):
            rows.append((row_number, payload))
    return rows


def merge_headers(current: Sequence[Any], columns: Iterable[str]) -> list[str]:
    """Keeps the existing column order and appends unknown columns at the end."""
    merged = [normalize_cell(header) for header in current]
    while merged and not merged[-1]:
        merged.pop()
    for column in columns:
        if column not in merged:
            merged.append(column)
    return merged


def index_rows_by_key(rows: Iterable[tuple[int, Mapping[str, str]]], key: str) -> dict[str, int]:
    index: dict[str, int] = {}
    for row_number, payload in rows:
        value = normalize_cell(payload.get(key))
        if value and value not in index:
            index[value] = row_number
    return index


def to_cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, (int, float)):
        return value
    return str(value)


def row_to_cells(headers: Sequence[str], row: Mapping[str, Any]) -> list[Any]:
    return [to_cell(row.get(header)) for header in headers]


def row_range(row_number: int, column_count: int) -> str:
    return f"A{row_number}:{rowcol_to_a1(row_number, max(column_count, 1))}"


def dedupe_by_key(rows: Iterable[Mapping[str, Any]], key: str) -> list[Mapping[str, Any]]:
    """Last occurrence wins, first-seen order is kept."""
    ordered: dict[str, Mapping[str, Any]] = {}
    for row in rows:
        ordered[normalize_cell(row.get(key))] = row
    return list(ordered.values())


def read_backoff_seconds(attempt: int, base_seconds: float = 1) -> float:
    return base_seconds * (2 ** (attempt - 1))


def write_backoff_seconds(attempt: int) -> float:
    return 2 ** (attempt - 1)
