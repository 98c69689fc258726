from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal

SyncStatus = Literal["offline", "syncing", "online", "error"]
SyncPhase = Literal["pull", "push"]

NOT_READY_MESSAGE = "Not ready to sync"


@dataclass(frozen=True)
class SyncContext:
    """Session facts the orchestrator needs; re-derived on every trigger."""

    owner_id: str | None
    is_cloud_mode: bool

    @property
    def can_sync(self) -> bool:
        return self.is_cloud_mode and bool((self.owner_id or "").strip())


@dataclass(frozen=True)
class SyncState:
    status: SyncStatus = "offline"
    last_synced: str | None = None
    pending_changes: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DatasetOutcome:
    dataset: str
    phase: SyncPhase
    ok: bool
    rows: int = 0
    error: str | None = None


@dataclass(frozen=True)
class SyncCycleReport:
    cycle_id: str
    started_at: str
    finished_at: str
    outcomes: tuple[DatasetOutcome, ...] = ()

    @property
    def failures(self) -> tuple[DatasetOutcome, ...]:
        return tuple(outcome for outcome in self.outcomes if not outcome.ok)

    @property
    def has_failures(self) -> bool:
        return bool(self.failures)

    @property
    def pulled(self) -> int:
        return sum(outcome.rows for outcome in self.outcomes if outcome.ok and outcome.phase == "pull")

    @property
    def pushed(self) -> int:
        return sum(outcome.rows for outcome in self.outcomes if outcome.ok and outcome.phase == "push")

    def failure_message(self) -> str | None:
        failures = self.failures
        if not failures:
            return None
        details = "; ".join(f"{item.dataset} ({item.phase}): {item.error}" for item in failures)
        return f"Sync failed for {len(failures)} dataset operation(s): {details}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class SyncResult:
    success: bool
    error: str | None = None
    report: SyncCycleReport | None = None

    @classmethod
    def not_ready(cls) -> "SyncResult":
        return cls(success=False, error=NOT_READY_MESSAGE)
