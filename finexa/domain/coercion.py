from __future__ import annotations

from typing import Any


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    if not text.strip():
        return None
    return text


def text_or_default(value: Any, default: str = "") -> str:
    resolved = optional_text(value)
    return default if resolved is None else resolved


def coerce_float(value: Any, default: float = 0.0) -> float:
    if value in (None, ""):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def coerce_int(value: Any, default: int = 0) -> int:
    if value in (None, ""):
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default


def compact(payload: dict[str, Any]) -> dict[str, Any]:
    """Drops absent values so optional fields stay undefined in the local JSON."""
    return {key: value for key, value in payload.items() if value is not None}
