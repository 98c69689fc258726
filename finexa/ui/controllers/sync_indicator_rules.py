from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from finexa.domain.sync_models import SyncState


@dataclass(frozen=True)
class SyncIndicatorInput:
    """Signals needed to render the sync badge."""

    state: SyncState
    is_cloud_mode: bool
    now: datetime


@dataclass(frozen=True)
class SyncIndicatorDecision:
    """Immutable rendering decision, independent of Qt."""

    enabled: bool
    text: str
    icon: str
    severity: str
    badge: str | None
    tooltip: str
    reason_code: str


_STATUS_TEXT = {"syncing": "Syncing...", "error": "Sync Error", "offline": "Offline"}
_STATUS_ICON = {"online": "cloud", "syncing": "refresh", "error": "alert", "offline": "cloud_off"}
_STATUS_SEVERITY = {"online": "success", "syncing": "info", "error": "error", "offline": "muted"}


def _parse_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_relative(moment: datetime, now: datetime) -> str:
    seconds = max(0, int((now - moment).total_seconds()))
    if seconds < 45:
        return "less than a minute ago"
    minutes = round(seconds / 60)
    if minutes < 60:
        return "1 minute ago" if minutes == 1 else f"{minutes} minutes ago"
    hours = round(minutes / 60)
    if hours < 24:
        return "about 1 hour ago" if hours == 1 else f"about {hours} hours ago"
    days = round(hours / 24)
    return "1 day ago" if days == 1 else f"{days} days ago"


def _status_text(entry: SyncIndicatorInput) -> str:
    state = entry.state
    if state.status == "online":
        last_synced = _parse_iso(state.last_synced)
        return f"Synced {format_relative(last_synced, entry.now)}" if last_synced else "Online"
    return _STATUS_TEXT.get(state.status, "Offline")


def _tooltip(entry: SyncIndicatorInput) -> str:
    state = entry.state
    lines = ["Cloud Mode" if entry.is_cloud_mode else "Offline Mode"]
    if entry.is_cloud_mode and state.last_synced:
        lines.append(f"Last synced: {state.last_synced}")
    if entry.is_cloud_mode and state.pending_changes > 0:
        lines.append(f"{state.pending_changes} changes pending")
    if state.error:
        lines.append(state.error)
    if entry.is_cloud_mode:
        lines.append("Click to sync now")
    return "\n".join(lines)


def decide_sync_indicator(entry: SyncIndicatorInput) -> SyncIndicatorDecision:
    state = entry.state
    badge = str(state.pending_changes) if state.pending_changes > 0 else None
    if not entry.is_cloud_mode:
        return SyncIndicatorDecision(
            enabled=False,
            text="Offline Mode",
            icon="hard_drive",
            severity="muted",
            badge=badge,
            tooltip=_tooltip(entry),
            reason_code="local_mode",
        )
    return SyncIndicatorDecision(
        enabled=state.status != "syncing",
        text=_status_text(entry),
        icon=_STATUS_ICON.get(state.status, "cloud_off"),
        severity=_STATUS_SEVERITY.get(state.status, "muted"),
        badge=badge,
        tooltip=_tooltip(entry),
        reason_code="sync_in_progress" if state.status == "syncing" else f"sync_{state.status}",
    )
